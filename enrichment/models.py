"""
Data models for geographic enrichment.

Plain dataclasses passed between the source parsers, the database store
and the enrichment jobs.
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Union


@dataclass
class GeoRecord:
    """State/county for one ZIP as reported by a reference dataset"""
    state_abbr: str = ''
    county_name: str = ''


@dataclass
class GeoUpdate:
    """
    Pending update for one housing_stats row.

    None means "leave the column alone"; the UPDATE uses COALESCE so a
    None never overwrites an existing value.
    """
    zip_code: str
    state_abbr: Optional[str] = None
    county_name: Optional[str] = None
    metro_area: Optional[str] = None

    def has_changes(self) -> bool:
        return any(v is not None for v in (self.state_abbr, self.county_name, self.metro_area))

    def to_params(self) -> Dict[str, Optional[str]]:
        return {
            'zip_code': self.zip_code,
            'new_state': self.state_abbr,
            'new_county': self.county_name,
            'new_metro': self.metro_area,
        }

    def describe(self) -> str:
        return (
            f"{self.zip_code} → state={self.state_abbr or '—'}, "
            f"county={self.county_name or '—'}, metro={self.metro_area or '—'}"
        )


@dataclass
class MetroUpdate:
    """Metro area assignment for one ZIP"""
    zip_code: str
    metro_area: str

    def to_params(self) -> Dict[str, str]:
        return {'zip_code': self.zip_code, 'new_metro': self.metro_area}

    def describe(self) -> str:
        return f"{self.zip_code} → {self.metro_area}"


@dataclass
class GapReport:
    """Counts of rows missing each geographic field (NULL or empty)"""
    total: int = 0
    missing_state: int = 0
    missing_county: int = 0
    missing_metro: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class EnrichmentStats:
    """Fill counters reported at the end of a run"""
    state: int = 0
    county: int = 0
    metro: int = 0
    no_match: int = 0
    fallback_fills: int = 0
    matched: int = 0
    unmatched: int = 0


@dataclass
class EnrichmentResult:
    """Outcome of a GeoEnricher or MetroEnricher run"""
    dry_run: bool
    stats: EnrichmentStats = field(default_factory=EnrichmentStats)
    updates: List[Union[GeoUpdate, MetroUpdate]] = field(default_factory=list)
    rows_updated: int = 0
    gaps_before: Optional[GapReport] = None
    gaps_after: Optional[GapReport] = None
    aborted: bool = False
