"""
ZIP-level housing statistics endpoints.
"""

import logging
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, HTTPException, Path, Query

from ..models import (
    ErrorResponse,
    SummaryResponse,
    ZipListResponse,
    ZipSearchResponse,
    ZipStats,
)
from ..dependencies import get_housing_store, get_settings
from ..config import Settings
from enrichment.database import HousingStatsStore

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1",
    tags=["housing"]
)


@router.get("/summary", response_model=SummaryResponse)
def get_summary(
    store: Annotated[HousingStatsStore, Depends(get_housing_store)]
):
    """
    National summary.

    ZIP count, total population and housing units, averages of the
    per-ZIP medians, and the number of states and metro areas covered.
    """
    try:
        return SummaryResponse(**store.get_summary())
    except Exception as e:
        logger.error(f"Summary query failed: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to load summary: {str(e)}")


@router.get("/zips", response_model=ZipListResponse)
def list_zips(
    settings: Annotated[Settings, Depends(get_settings)],
    store: Annotated[HousingStatsStore, Depends(get_housing_store)],
    state: Optional[str] = Query(None, min_length=2, max_length=2, description="Two-letter state code"),
    county: Optional[str] = Query(None, description="County name, e.g. 'Harris County'"),
    metro: Optional[str] = Query(None, description="Metro area title"),
    min_home_value: Optional[int] = Query(None, ge=0),
    max_home_value: Optional[int] = Query(None, ge=0),
    min_rent: Optional[int] = Query(None, ge=0),
    max_rent: Optional[int] = Query(None, ge=0),
    min_population: Optional[int] = Query(None, ge=0),
    sort: str = Query("zip_code", description="Column to sort by"),
    order: str = Query("asc", pattern="^(asc|desc)$"),
    limit: Optional[int] = Query(None, ge=1, description="Page size"),
    offset: int = Query(0, ge=0),
):
    """
    Filtered, sorted and paginated ZIP list.

    Unknown sort columns fall back to zip_code. `total` is the number
    of matching rows before pagination.
    """
    if limit is None:
        limit = settings.default_page_size
    if limit > settings.max_page_size:
        raise HTTPException(
            status_code=400,
            detail=f"limit exceeds maximum of {settings.max_page_size} per request"
        )

    try:
        total, rows = store.list_zips(
            state=state,
            county=county,
            metro=metro,
            min_home_value=min_home_value,
            max_home_value=max_home_value,
            min_rent=min_rent,
            max_rent=max_rent,
            min_population=min_population,
            sort=sort,
            order=order,
            limit=limit,
            offset=offset,
        )
    except Exception as e:
        logger.error(f"ZIP list query failed: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to list ZIP codes: {str(e)}")

    return ZipListResponse(
        total=total,
        limit=limit,
        offset=offset,
        results=[ZipStats(**r) for r in rows]
    )


@router.get("/zips/search", response_model=ZipSearchResponse)
def search_zips(
    settings: Annotated[Settings, Depends(get_settings)],
    store: Annotated[HousingStatsStore, Depends(get_housing_store)],
    q: str = Query(..., min_length=2, description="ZIP prefix or city name prefix"),
):
    """
    Prefix search.

    Digits match the start of the ZIP code; anything else matches the
    start of the city name, case-insensitively.
    """
    try:
        rows = store.search_zips(q, limit=settings.search_limit)
    except Exception as e:
        logger.error(f"ZIP search failed: {e}")
        raise HTTPException(status_code=500, detail=f"Search failed: {str(e)}")

    return ZipSearchResponse(query=q, count=len(rows), results=rows)


@router.get(
    "/zips/{zip_code}",
    response_model=ZipStats,
    responses={404: {"model": ErrorResponse}}
)
def get_zip(
    store: Annotated[HousingStatsStore, Depends(get_housing_store)],
    zip_code: str = Path(..., pattern=r"^\d{5}$", description="5-digit ZIP code"),
):
    """Housing statistics for one ZIP code."""
    try:
        row = store.get_zip(zip_code)
    except Exception as e:
        logger.error(f"ZIP lookup failed for {zip_code}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to load ZIP {zip_code}: {str(e)}")

    if row is None:
        raise HTTPException(status_code=404, detail=f"ZIP code {zip_code} not found")
    return ZipStats(**row)
