"""
State, county and metro area aggregate endpoints.
"""

import logging
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, HTTPException, Path, Query

from ..models import (
    CountiesResponse,
    CountyStats,
    ErrorResponse,
    MetrosResponse,
    MetroStats,
    StatesResponse,
    StateStats,
)
from ..dependencies import get_housing_store, get_settings
from ..config import Settings
from enrichment.database import HousingStatsStore

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1",
    tags=["geography"]
)


@router.get("/states", response_model=StatesResponse)
def list_states(
    store: Annotated[HousingStatsStore, Depends(get_housing_store)]
):
    """
    Per-state aggregates.

    ZIPs without a state are left out until the enrichment job fills them.
    """
    try:
        rows = store.list_states()
    except Exception as e:
        logger.error(f"State aggregate query failed: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to list states: {str(e)}")

    return StatesResponse(count=len(rows), states=[StateStats(**r) for r in rows])


@router.get(
    "/states/{state}/counties",
    response_model=CountiesResponse,
    responses={404: {"model": ErrorResponse}}
)
def list_counties(
    store: Annotated[HousingStatsStore, Depends(get_housing_store)],
    state: str = Path(..., min_length=2, max_length=2, description="Two-letter state code"),
):
    """Per-county aggregates within one state."""
    state = state.upper()
    try:
        rows = store.list_counties(state)
    except Exception as e:
        logger.error(f"County aggregate query failed for {state}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to list counties: {str(e)}")

    if not rows:
        raise HTTPException(status_code=404, detail=f"No counties found for state {state}")

    return CountiesResponse(
        state_abbr=state,
        count=len(rows),
        counties=[CountyStats(**r) for r in rows]
    )


@router.get("/metros", response_model=MetrosResponse)
def list_metros(
    settings: Annotated[Settings, Depends(get_settings)],
    store: Annotated[HousingStatsStore, Depends(get_housing_store)],
    state: Optional[str] = Query(None, min_length=2, max_length=2, description="Only ZIPs in this state"),
    min_zips: int = Query(1, ge=1, description="Minimum ZIP codes per metro"),
    limit: Optional[int] = Query(None, ge=1, description="Maximum metros returned"),
):
    """Per-metro aggregates, most populous first."""
    if limit is None:
        limit = min(settings.default_metros, settings.max_metros)
    if limit > settings.max_metros:
        raise HTTPException(
            status_code=400,
            detail=f"limit exceeds maximum of {settings.max_metros} per request"
        )

    try:
        rows = store.list_metros(state=state, min_zips=min_zips, limit=limit)
    except Exception as e:
        logger.error(f"Metro aggregate query failed: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to list metro areas: {str(e)}")

    return MetrosResponse(count=len(rows), metros=[MetroStats(**r) for r in rows])
