#!/usr/bin/env python3
"""
Metro Area Enrichment for Housing Stats

Populates metro_area from the county each ZIP already has:
    county_name + state_abbr → county FIPS → CBSA title

Uses two data sources:
  1. kjhealy/fips-codes county list (state + county name → FIPS)
  2. NBER CBSA/FIPS crosswalk (county FIPS → metro area name)

Run geo_enrich.py first; rows without a state and county are skipped.

Usage (after `pip install -e .` from the repository root, so `enrichment` is importable):
    python scripts/geo_enrich_metro.py --dry-run
    python scripts/geo_enrich_metro.py --connection-string "postgresql://..."
"""

import argparse
import os
import sys
import logging
from functools import partial
from pathlib import Path

from enrichment.database import HousingStatsStore, DEFAULT_BATCH_SIZE
from enrichment.pipeline import MetroEnricher
from enrichment.sources import download_text

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Fill metro_area in housing_stats via county FIPS → CBSA'
    )
    parser.add_argument('--dry-run', action='store_true',
                        help='Report planned updates without writing to the database')
    parser.add_argument('--batch-size', type=int, default=DEFAULT_BATCH_SIZE,
                        help=f'Rows per UPDATE batch (default: {DEFAULT_BATCH_SIZE})')
    parser.add_argument('--connection-string', type=str,
                        help='PostgreSQL connection string (or use DATABASE_URL env var)')
    parser.add_argument('--cache-dir', type=Path,
                        help='Directory to cache downloaded reference files')
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    if args.batch_size < 1:
        logger.error("--batch-size must be a positive integer")
        sys.exit(1)

    conn_string = args.connection_string or os.getenv('DATABASE_URL')
    if not conn_string:
        logger.error("Requires --connection-string or DATABASE_URL environment variable")
        sys.exit(1)

    try:
        store = HousingStatsStore(conn_string)
        enricher = MetroEnricher(
            store,
            fetch=partial(download_text, cache_dir=args.cache_dir),
            batch_size=args.batch_size,
        )
        enricher.run(dry_run=args.dry_run)
        store.dispose()

    except Exception as e:
        logger.error(f"\n✗ Metro enrichment failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
