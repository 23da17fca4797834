"""
Pydantic models for API responses.

These models define the structure of data sent from the API.
"""

from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime, timezone


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# ZIP MODELS
# ============================================================================

class ZipStats(BaseModel):
    """Housing statistics for one ZIP code"""

    zip_code: str = Field(..., description="5-digit ZIP code")
    city: Optional[str] = Field(None, description="Primary city")
    state_abbr: Optional[str] = Field(None, description="Two-letter state code")
    county_name: Optional[str] = Field(None, description="County name (e.g., Harris County)")
    metro_area: Optional[str] = Field(None, description="CBSA metro area title")
    population: Optional[int] = None
    median_home_value: Optional[int] = Field(None, description="Median home value (USD)")
    median_rent: Optional[int] = Field(None, description="Median gross rent (USD/month)")
    median_household_income: Optional[int] = Field(None, description="Median household income (USD)")
    housing_units: Optional[int] = None
    owner_occupied_rate: Optional[float] = Field(None, description="Owner-occupied share (percent)")
    vacancy_rate: Optional[float] = Field(None, description="Vacant share of units (percent)")
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    updated_at: Optional[datetime] = None

    class Config:
        json_schema_extra = {
            "example": {
                "zip_code": "77002",
                "city": "Houston",
                "state_abbr": "TX",
                "county_name": "Harris County",
                "metro_area": "Houston-The Woodlands-Sugar Land, TX",
                "population": 17231,
                "median_home_value": 312400,
                "median_rent": 1410,
                "median_household_income": 71250,
                "housing_units": 11290,
                "owner_occupied_rate": 18.4,
                "vacancy_rate": 14.2
            }
        }


class ZipSearchResult(BaseModel):
    """Compact ZIP row returned by search"""

    zip_code: str
    city: Optional[str] = None
    state_abbr: Optional[str] = None
    county_name: Optional[str] = None
    metro_area: Optional[str] = None
    population: Optional[int] = None
    median_home_value: Optional[int] = None


class ZipListResponse(BaseModel):
    """Paginated ZIP list"""

    total: int = Field(..., description="Rows matching the filters before pagination")
    limit: int
    offset: int
    results: List[ZipStats]


class ZipSearchResponse(BaseModel):
    """ZIP/city prefix search results"""

    query: str
    count: int
    results: List[ZipSearchResult]


# ============================================================================
# AGGREGATE MODELS
# ============================================================================

class AggregateStats(BaseModel):
    """Aggregates shared by every grouped view"""

    zip_count: int = Field(..., description="Number of ZIP codes in the group")
    population: Optional[int] = Field(None, description="Summed population")
    housing_units: Optional[int] = Field(None, description="Summed housing units")
    avg_median_home_value: Optional[int] = None
    avg_median_rent: Optional[int] = None
    avg_median_household_income: Optional[int] = None


class SummaryResponse(AggregateStats):
    """National summary"""

    state_count: int = 0
    metro_count: int = 0


class StateStats(AggregateStats):
    state_abbr: str
    county_count: int = 0
    metro_count: int = 0


class StatesResponse(BaseModel):
    count: int
    states: List[StateStats]


class CountyStats(AggregateStats):
    county_name: str
    metro_area: Optional[str] = None


class CountiesResponse(BaseModel):
    state_abbr: str
    count: int
    counties: List[CountyStats]


class MetroStats(AggregateStats):
    metro_area: str
    state_count: int = 0


class MetrosResponse(BaseModel):
    count: int
    metros: List[MetroStats]


class CoverageResponse(BaseModel):
    """Geographic enrichment coverage"""

    total: int
    missing_state: int
    missing_county: int
    missing_metro: int
    state_coverage_pct: float
    county_coverage_pct: float
    metro_coverage_pct: float

    class Config:
        json_schema_extra = {
            "example": {
                "total": 66000,
                "missing_state": 12,
                "missing_county": 340,
                "missing_metro": 21450,
                "state_coverage_pct": 99.98,
                "county_coverage_pct": 99.48,
                "metro_coverage_pct": 67.5
            }
        }


# ============================================================================
# HEALTH MODELS
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response"""

    status: str = Field(..., description="Health status: healthy or unhealthy")
    version: str = Field(..., description="API version")
    database: str = Field(..., description="Database connection status")
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="Check timestamp (UTC)"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "version": "1.0.0",
                "database": "connected",
                "timestamp": "2026-02-17T12:00:00Z"
            }
        }


class ErrorResponse(BaseModel):
    """Error response model"""

    detail: str = Field(..., description="Error message")
