"""
Housing Stats Enrichment Package

Database access for the housing_stats table and the batch jobs that fill
state, county and metro area from external reference datasets.
"""

from .database import HousingStatsStore, get_store, clear_store_cache, housing_stats
from .models import (
    GeoRecord,
    GeoUpdate,
    MetroUpdate,
    GapReport,
    EnrichmentStats,
    EnrichmentResult,
)
from .matching import (
    STATE_FIPS,
    STATE_NAMES,
    USPS_STATES,
    normalize_zip,
    normalize_state,
    normalize_county,
    county_display_name,
    county_key,
    short_county_key,
)
from .pipeline import GeoEnricher, MetroEnricher

__version__ = "1.0.0"

__all__ = [
    # Jobs
    'GeoEnricher',
    'MetroEnricher',

    # Database
    'HousingStatsStore',
    'get_store',
    'clear_store_cache',
    'housing_stats',

    # Data models
    'GeoRecord',
    'GeoUpdate',
    'MetroUpdate',
    'GapReport',
    'EnrichmentStats',
    'EnrichmentResult',

    # Key normalization
    'STATE_FIPS',
    'STATE_NAMES',
    'USPS_STATES',
    'normalize_zip',
    'normalize_state',
    'normalize_county',
    'county_display_name',
    'county_key',
    'short_county_key',
]
