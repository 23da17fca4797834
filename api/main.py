"""
Housing Stats API Server

Public-facing REST API over the housing_stats table: ZIP-level housing
statistics plus state, county and metro aggregates.
"""

import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routers import geography, health, housing

# Configure logging
logging.basicConfig(
    level=os.getenv('LOG_LEVEL', 'INFO'),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


# ============================================
# Application Lifespan
# ============================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown"""
    logger.info("Starting Housing Stats API")

    yield

    logger.info("Shutting down Housing Stats API")


# ============================================
# FastAPI Application
# ============================================

app = FastAPI(
    title="Housing Stats API",
    description="""
    US housing statistics for ~66K ZIP codes.

    ## Endpoints

    - **GET /api/v1/summary** - National totals and averages
    - **GET /api/v1/zips** - Filtered, sorted, paginated ZIP list
    - **GET /api/v1/zips/search?q=** - ZIP or city prefix search
    - **GET /api/v1/zips/{zip_code}** - One ZIP code
    - **GET /api/v1/states** - Per-state aggregates
    - **GET /api/v1/states/{state}/counties** - Per-county aggregates
    - **GET /api/v1/metros** - Per-metro aggregates
    - **GET /api/v1/coverage** - State/county/metro enrichment coverage
    - **GET /api/v1/health** - Health check

    ## Usage Example

    ```python
    import requests

    response = requests.get(
        'http://localhost:8000/api/v1/zips',
        params={'state': 'TX', 'sort': 'median_home_value', 'order': 'desc', 'limit': 10}
    )
    zips = response.json()['results']
    ```
    """,
    version=API_VERSION,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv('CORS_ORIGINS', 'http://localhost:3000').split(','),
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(housing.router)
app.include_router(geography.router)


# ============================================
# Root Endpoints
# ============================================

@app.get("/health", tags=["health"])
async def root_health():
    """Liveness probe for load balancers (no database access)"""
    return {"status": "ok"}


@app.get("/", tags=["health"])
async def root():
    """API information"""
    return {
        "name": "Housing Stats API",
        "version": API_VERSION,
        "docs": "/docs",
        "health": "/api/v1/health",
        "endpoints": {
            "summary": "GET /api/v1/summary",
            "zips": "GET /api/v1/zips",
            "search": "GET /api/v1/zips/search?q=",
            "zip": "GET /api/v1/zips/{zip_code}",
            "states": "GET /api/v1/states",
            "counties": "GET /api/v1/states/{state}/counties",
            "metros": "GET /api/v1/metros",
            "coverage": "GET /api/v1/coverage"
        }
    }


# ============================================
# Run with: uvicorn api.main:app --port 8000
# ============================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
