"""
Health check and data coverage endpoints.
"""

import logging
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException

from ..models import HealthResponse, CoverageResponse
from ..dependencies import get_housing_store, get_settings
from ..config import Settings
from enrichment.database import HousingStatsStore, get_store

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1",
    tags=["health"]
)


def _coverage_pct(missing: int, total: int) -> float:
    if total == 0:
        return 0.0
    return round((total - missing) / total * 100, 2)


@router.get("/health", response_model=HealthResponse)
def health_check(
    settings: Annotated[Settings, Depends(get_settings)]
):
    """
    Health check endpoint.

    Returns the health status of the API and database connection.
    Never fails; a broken database is reported in the body.
    """
    try:
        store = get_store(settings.database_url, pool_size=settings.db_pool_size)
        store._verify_connection()

        return HealthResponse(
            status="healthy",
            version=settings.app_version,
            database="connected"
        )
    except Exception as e:
        logger.warning(f"Health check failed: {e}")
        return HealthResponse(
            status="unhealthy",
            version=settings.app_version,
            database=f"disconnected: {str(e)}"
        )


@router.get("/coverage", response_model=CoverageResponse)
def get_coverage(
    store: Annotated[HousingStatsStore, Depends(get_housing_store)]
):
    """
    Geographic enrichment coverage.

    Counts rows missing state, county and metro area (NULL or empty),
    the same report the enrichment jobs print before and after a run.
    """
    try:
        gaps = store.count_gaps()
    except Exception as e:
        logger.error(f"Coverage query failed: {e}")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to compute coverage: {str(e)}"
        )

    return CoverageResponse(
        **gaps.to_dict(),
        state_coverage_pct=_coverage_pct(gaps.missing_state, gaps.total),
        county_coverage_pct=_coverage_pct(gaps.missing_county, gaps.total),
        metro_coverage_pct=_coverage_pct(gaps.missing_metro, gaps.total),
    )
