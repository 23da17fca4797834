#!/usr/bin/env python3
"""
Housing Stats Loader

Creates the housing_stats table and bulk-loads a CSV extract into it.
ZIP codes are kept as zero-padded strings; columns not in the table are
ignored.

Usage (after `pip install -e .` from the repository root, so `enrichment` is importable):
    python scripts/load_housing_stats.py --csv housing_stats.csv
    python scripts/load_housing_stats.py --csv housing_stats.csv --replace --connection-string $DATABASE_URL
"""

import argparse
import os
import sys
import logging
from pathlib import Path

import pandas as pd

from enrichment.database import HousingStatsStore

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def read_housing_csv(path: Path) -> pd.DataFrame:
    """
    Read the extract with zip_code as text so leading zeros survive.

    Headers are matched case-insensitively ("ZIP_CODE" works too).
    """
    header = pd.read_csv(path, nrows=0).columns
    text_columns = {c: str for c in header if c.strip().lower() == 'zip_code'}
    df = pd.read_csv(path, dtype=text_columns)
    df.columns = [c.strip().lower() for c in df.columns]
    logger.info(f"  → Read {len(df):,} rows from {path.name}")
    return df


def main(argv=None):
    parser = argparse.ArgumentParser(description='Load a housing stats CSV into the database')
    parser.add_argument('--csv', type=Path, required=True,
                        help='CSV file with a zip_code column')
    parser.add_argument('--replace', action='store_true',
                        help='Delete existing rows before loading')
    parser.add_argument('--connection-string', type=str,
                        help='PostgreSQL connection string (or use DATABASE_URL env var)')
    args = parser.parse_args(argv)

    conn_string = args.connection_string or os.getenv('DATABASE_URL')
    if not conn_string:
        logger.error("Requires --connection-string or DATABASE_URL environment variable")
        sys.exit(1)

    if not args.csv.exists():
        logger.error(f"CSV not found: {args.csv}")
        sys.exit(1)

    logger.info("=" * 60)
    logger.info(f"HOUSING STATS LOAD: {args.csv.name}")
    logger.info("=" * 60)

    try:
        store = HousingStatsStore(conn_string)

        logger.info("\n[1/3] Creating schema...")
        store.create_schema()

        logger.info("\n[2/3] Reading CSV...")
        df = read_housing_csv(args.csv)

        logger.info("\n[3/3] Loading rows...")
        loaded = store.load_frame(df, replace=args.replace)
        store.dispose()

        logger.info(f"\n✓ LOAD COMPLETE: {loaded:,} rows")

    except Exception as e:
        logger.error(f"\n✗ Load failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
