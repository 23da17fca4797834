"""
Geographic enrichment jobs for housing_stats.

GeoEnricher fills state_abbr, county_name and metro_area per ZIP:
1. ZIP → state/county dataset
2. zipcodes package fallback for ZIPs the dataset misses
3. ZIP → CBSA crosswalk for metro names

MetroEnricher fills the remaining metro_area gaps through the county:
    state + county name → county FIPS → CBSA title

Both jobs only fill missing fields, never overwrite, and support a dry
run that reports planned updates without writing.
"""

import logging
from typing import Callable, Dict, List, Optional

import pandas as pd
import requests

from .database import HousingStatsStore, DEFAULT_BATCH_SIZE
from .matching import STATE_FIPS, normalize_state, county_key, short_county_key
from .models import (
    GapReport,
    GeoRecord,
    GeoUpdate,
    MetroUpdate,
    EnrichmentStats,
    EnrichmentResult,
)
from .sources import (
    ZIP_COUNTY_URL,
    ZIP_CBSA_URL,
    CBSA_NAMES_URL,
    NBER_CBSA_URL,
    COUNTY_FIPS_URL,
    download_text,
    parse_csv,
    build_zip_geo_map,
    build_zip_metro_map,
    build_county_metro_map,
    build_county_fips_map,
    lookup_zip_fallback,
)

logger = logging.getLogger(__name__)

Fetcher = Callable[[str], str]
FallbackLookup = Callable[[str], Optional[GeoRecord]]

SAMPLE_SIZE = 15


def _is_missing(value) -> bool:
    return value is None or str(value).strip() == ''


class _Enricher:
    """Shared plumbing: fetching reference files and reporting"""

    def __init__(
        self,
        store: HousingStatsStore,
        fetch: Optional[Fetcher] = None,
        batch_size: int = DEFAULT_BATCH_SIZE
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.store = store
        self.fetch = fetch or download_text
        self.batch_size = batch_size

    def _fetch_table(self, url: str) -> pd.DataFrame:
        return parse_csv(self.fetch(url))

    @staticmethod
    def _log_samples(updates: list):
        logger.info("DRY RUN — no database changes made.")
        logger.info(f"Sample updates (first {SAMPLE_SIZE}):")
        for update in updates[:SAMPLE_SIZE]:
            logger.info(f"  {update.describe()}")

    @staticmethod
    def _log_gaps(label: str, gaps: GapReport):
        logger.info(
            f"{label}: {gaps.missing_state}/{gaps.total} missing state, "
            f"{gaps.missing_county}/{gaps.total} missing county, "
            f"{gaps.missing_metro}/{gaps.total} missing metro"
        )


class GeoEnricher(_Enricher):
    """
    Fill state, county and metro per ZIP from ZIP-keyed reference data.

    Args:
        store: Database store
        fetch: url → text downloader (default: sources.download_text)
        fallback_lookup: zip → GeoRecord for ZIPs missing from the dataset
        batch_size: Rows per UPDATE batch
    """

    def __init__(
        self,
        store: HousingStatsStore,
        fetch: Optional[Fetcher] = None,
        fallback_lookup: Optional[FallbackLookup] = lookup_zip_fallback,
        batch_size: int = DEFAULT_BATCH_SIZE,
        zip_county_url: str = ZIP_COUNTY_URL,
        zip_cbsa_url: str = ZIP_CBSA_URL,
        cbsa_names_url: str = CBSA_NAMES_URL,
    ):
        super().__init__(store, fetch, batch_size)
        self.fallback_lookup = fallback_lookup
        self.zip_county_url = zip_county_url
        self.zip_cbsa_url = zip_cbsa_url
        self.cbsa_names_url = cbsa_names_url

    def run(self, dry_run: bool = False) -> EnrichmentResult:
        logger.info("=== Geographic Enrichment for Housing Stats ===")
        logger.info(f"Mode: {'DRY RUN' if dry_run else 'LIVE'} | Batch size: {self.batch_size}")

        result = EnrichmentResult(dry_run=dry_run)
        result.gaps_before = self.store.count_gaps()
        self._log_gaps("Current gaps", result.gaps_before)

        logger.info("\n[1/3] Downloading ZIP-to-county dataset...")
        zip_geo = self.load_zip_geo()

        logger.info("\n[2/3] Supplementing with zipcodes package...")
        zip_codes = self.store.list_zip_codes()
        result.stats.fallback_fills = self.apply_fallback(zip_geo, zip_codes)
        logger.info(f"  Filled {result.stats.fallback_fills} additional ZIPs from zipcodes package")
        logger.info(f"  Total ZIP coverage: {sum(1 for z in zip_codes if z in zip_geo)}/{len(zip_codes)}")

        logger.info("\n[3/3] Building metro area mapping...")
        zip_metro = self.load_zip_metro()

        logger.info("\nBuilding updates...")
        result.updates = self.plan_updates(
            self.store.rows_missing_geo(), zip_geo, zip_metro, result.stats
        )

        stats = result.stats
        logger.info("\nEnrichment summary:")
        logger.info(f"  State fills:   {stats.state}")
        logger.info(f"  County fills:  {stats.county}")
        logger.info(f"  Metro fills:   {stats.metro}")
        logger.info(f"  No match:      {stats.no_match}")
        logger.info(f"  Total updates: {len(result.updates)}")

        if dry_run:
            self._log_samples(result.updates)
            return result

        logger.info(f"\nUpdating database in batches of {self.batch_size}...")
        result.rows_updated = self.store.apply_geo_updates(result.updates, self.batch_size)

        result.gaps_after = self.store.count_gaps()
        before, after = result.gaps_before, result.gaps_after
        logger.info("\n=== Results ===")
        logger.info(f"Total records: {after.total}")
        logger.info(f"State:  {before.missing_state} → {after.missing_state} missing "
                    f"(filled {before.missing_state - after.missing_state})")
        logger.info(f"County: {before.missing_county} → {after.missing_county} missing "
                    f"(filled {before.missing_county - after.missing_county})")
        logger.info(f"Metro:  {before.missing_metro} → {after.missing_metro} missing "
                    f"(filled {before.missing_metro - after.missing_metro})")
        logger.info(f"\n✓ Done. {result.rows_updated} rows updated.")

        return result

    def load_zip_geo(self) -> Dict[str, GeoRecord]:
        """ZIP → state/county; empty on download or parse failure"""
        try:
            df = self._fetch_table(self.zip_county_url)
            logger.info(f"  Downloaded {len(df)} ZIP-county mappings")
            zip_geo = build_zip_geo_map(df)
        except (requests.RequestException, ValueError) as e:
            logger.error(f"  Download failed: {e}")
            return {}

        logger.info(f"  Built ZIP→county map: {len(zip_geo)} entries")
        return zip_geo

    def apply_fallback(self, zip_geo: Dict[str, GeoRecord], zip_codes: List[str]) -> int:
        """
        Fill ZIPs absent from zip_geo, or present without a state, from the
        fallback lookup. Mutates zip_geo; returns the number of fills.
        """
        if self.fallback_lookup is None:
            return 0

        fills = 0
        for zip_code in zip_codes:
            record = zip_geo.get(zip_code)
            if record is None:
                fallback = self.fallback_lookup(zip_code)
                if fallback and (fallback.state_abbr or fallback.county_name):
                    zip_geo[zip_code] = fallback
                    fills += 1
            elif not record.state_abbr:
                fallback = self.fallback_lookup(zip_code)
                if fallback and fallback.state_abbr:
                    record.state_abbr = fallback.state_abbr
                    fills += 1
        return fills

    def load_zip_metro(self) -> Dict[str, str]:
        """ZIP → metro name; empty on download or parse failure"""
        try:
            df = self._fetch_table(self.zip_cbsa_url)
            logger.info(f"  Downloaded {len(df)} ZIP-CBSA mappings (columns: {', '.join(df.columns)})")
            zip_metro = build_zip_metro_map(
                df, fetch_names=lambda: self._fetch_table(self.cbsa_names_url)
            )
        except (requests.RequestException, ValueError) as e:
            logger.error(f"  CBSA download failed: {e}")
            logger.info("  Metro area enrichment will be limited.")
            return {}

        logger.info(f"  Metro coverage: {len(zip_metro)} ZIPs")
        return zip_metro

    @staticmethod
    def plan_updates(
        rows: List[dict],
        zip_geo: Dict[str, GeoRecord],
        zip_metro: Dict[str, str],
        stats: EnrichmentStats
    ) -> List[GeoUpdate]:
        """
        Build updates that fill only the fields a row is missing.

        Rows with no geo record and no metro are counted as no_match.
        """
        updates = []
        for row in rows:
            zip_code = row['zip_code']
            geo = zip_geo.get(zip_code)
            metro = zip_metro.get(zip_code)

            if geo is None and not metro:
                stats.no_match += 1
                continue

            update = GeoUpdate(zip_code=zip_code)

            if _is_missing(row.get('state_abbr')) and geo and geo.state_abbr:
                update.state_abbr = geo.state_abbr
                stats.state += 1
            if _is_missing(row.get('county_name')) and geo and geo.county_name:
                update.county_name = geo.county_name
                stats.county += 1
            if _is_missing(row.get('metro_area')) and metro:
                update.metro_area = metro
                stats.metro += 1

            if update.has_changes():
                updates.append(update)

        return updates


class MetroEnricher(_Enricher):
    """
    Fill metro_area via county FIPS for rows that already have state/county.

    Args:
        store: Database store
        fetch: url → text downloader (default: sources.download_text)
        batch_size: Rows per UPDATE batch
    """

    def __init__(
        self,
        store: HousingStatsStore,
        fetch: Optional[Fetcher] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        crosswalk_url: str = NBER_CBSA_URL,
        county_fips_url: str = COUNTY_FIPS_URL,
    ):
        super().__init__(store, fetch, batch_size)
        self.crosswalk_url = crosswalk_url
        self.county_fips_url = county_fips_url

    def run(self, dry_run: bool = False) -> EnrichmentResult:
        logger.info("=== Metro Area Enrichment ===")
        logger.info(f"Mode: {'DRY RUN' if dry_run else 'LIVE'}")

        result = EnrichmentResult(dry_run=dry_run)
        result.gaps_before = self.store.count_gaps()
        logger.info(f"Counties needing metro: {self.store.count_counties_missing_metro()}")

        logger.info("\n[1/3] Downloading CBSA delineation data...")
        county_metro = self.load_county_metro()

        if not county_metro:
            logger.warning("No CBSA data available. Aborting metro enrichment.")
            result.aborted = True
            return result

        logger.info("\n[2/3] Downloading county FIPS codes...")
        county_fips = self.load_county_fips()

        logger.info("\n[3/3] Matching counties to metro areas...")
        result.updates = self.match_rows(
            self.store.rows_missing_metro(), county_fips, county_metro, result.stats
        )
        logger.info(f"  Matched: {result.stats.matched} ZIPs to metro areas")
        logger.info(f"  Unmatched: {result.stats.unmatched} (rural or name mismatch)")
        logger.info(f"  Total updates: {len(result.updates)}")

        if dry_run:
            self._log_samples(result.updates)
            return result

        logger.info(f"\nUpdating {len(result.updates)} rows...")
        result.rows_updated = self.store.apply_metro_updates(result.updates, self.batch_size)

        result.gaps_after = self.store.count_gaps()
        logger.info(f"\n✓ Metro enrichment complete. {result.rows_updated} rows updated.")
        logger.info(f"  Remaining without metro: {result.gaps_after.missing_metro} "
                    f"(expected — rural areas aren't in metro areas)")

        return result

    def load_county_metro(self) -> Dict[str, str]:
        """County FIPS → CBSA title; empty on failure"""
        try:
            df = self._fetch_table(self.crosswalk_url)
            logger.info(f"  NBER crosswalk: {len(df)} rows")
            county_metro = build_county_metro_map(df)
        except (requests.RequestException, ValueError) as e:
            logger.error(f"  NBER download failed: {e}")
            return {}

        logger.info(f"  Built county FIPS → metro map: {len(county_metro)} entries")
        return county_metro

    def load_county_fips(self) -> Dict[str, str]:
        """County key → FIPS; empty on failure"""
        try:
            df = self._fetch_table(self.county_fips_url)
            logger.info(f"  County FIPS: {len(df)} rows")
            county_fips = build_county_fips_map(df)
        except (requests.RequestException, ValueError) as e:
            logger.error(f"  County FIPS download failed: {e}")
            return {}

        logger.info(f"  Built county name → FIPS map: {len(county_fips)} entries")
        return county_fips

    @staticmethod
    def match_rows(
        rows: List[dict],
        county_fips: Dict[str, str],
        county_metro: Dict[str, str],
        stats: EnrichmentStats
    ) -> List[MetroUpdate]:
        """
        Resolve each row's county to a metro: full-name key first, then the
        suffix-stripped key. Counties outside any CBSA count as unmatched.
        """
        updates = []
        for row in rows:
            state = normalize_state(row.get('state_abbr'))
            county = row.get('county_name') or ''

            if state not in STATE_FIPS or not county.strip():
                continue

            fips = county_fips.get(county_key(state, county))
            if fips is None:
                short = short_county_key(state, county)
                fips = county_fips.get(short) if short else None

            metro = county_metro.get(fips) if fips else None
            if metro:
                updates.append(MetroUpdate(zip_code=row['zip_code'], metro_area=metro))
                stats.matched += 1
                stats.metro += 1
            else:
                stats.unmatched += 1

        return updates
