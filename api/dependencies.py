"""
FastAPI Dependencies

Shared dependencies for dependency injection.
"""

from typing import Annotated
from fastapi import Depends, HTTPException

from enrichment.database import HousingStatsStore, get_store
from .config import Settings, get_settings


def get_housing_store(
    settings: Annotated[Settings, Depends(get_settings)]
) -> HousingStatsStore:
    """
    Get the cached HousingStatsStore for the configured database.

    The store (and its connection pool) is created on first use and
    reused for all requests.
    """
    try:
        return get_store(settings.database_url, pool_size=settings.db_pool_size)
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to connect to database: {str(e)}"
        )
