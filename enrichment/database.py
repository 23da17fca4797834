"""
Database access for the housing_stats table.

One store serves both sides of the project:
- read-only queries behind the REST API
- gap reports and batched UPDATEs for the enrichment jobs

Queries are plain SQL through SQLAlchemy text() and run unchanged on
PostgreSQL (production) and SQLite (tests). A geographic field counts as
missing when it is NULL or the empty string.
"""

import os
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd
from sqlalchemy import (
    Column, DateTime, Float, Integer, MetaData, String, Table,
    create_engine, func, make_url, text,
)

from .matching import normalize_zip
from .models import GapReport, GeoUpdate, MetroUpdate

logger = logging.getLogger(__name__)


TABLE_NAME = 'housing_stats'

metadata = MetaData()

housing_stats = Table(
    TABLE_NAME, metadata,
    Column('zip_code', String(5), primary_key=True),
    Column('city', String(100)),
    Column('state_abbr', String(2)),
    Column('county_name', String(100)),
    Column('metro_area', String(200)),
    Column('population', Integer),
    Column('median_home_value', Integer),
    Column('median_rent', Integer),
    Column('median_household_income', Integer),
    Column('housing_units', Integer),
    Column('owner_occupied_rate', Float),
    Column('vacancy_rate', Float),
    Column('latitude', Float),
    Column('longitude', Float),
    Column('updated_at', DateTime, server_default=func.now()),
)

ZIP_COLUMNS = [c.name for c in housing_stats.columns]

SORTABLE_COLUMNS = {
    'zip_code', 'city', 'state_abbr', 'county_name', 'metro_area',
    'population', 'median_home_value', 'median_rent',
    'median_household_income', 'housing_units',
    'owner_occupied_rate', 'vacancy_rate',
}

# Columns averaged in every aggregate view
AVERAGED_COLUMNS = ['median_home_value', 'median_rent', 'median_household_income']

DEFAULT_BATCH_SIZE = 500


def _missing(column: str) -> str:
    return f"({column} IS NULL OR {column} = '')"


def _present(column: str) -> str:
    return f"({column} IS NOT NULL AND {column} != '')"


def _aggregate_select() -> str:
    averages = ",\n               ".join(
        f"AVG({col}) AS avg_{col}" for col in AVERAGED_COLUMNS
    )
    return f"""COUNT(*) AS zip_count,
               SUM(population) AS population,
               SUM(housing_units) AS housing_units,
               {averages}"""


def _to_int(value) -> Optional[int]:
    if value is None:
        return None
    return int(round(float(value)))


def _clean_aggregate(row: Dict[str, Any]) -> Dict[str, Any]:
    """Round AVG() output and coerce Decimal/bigint sums to int"""
    cleaned = dict(row)
    for key in ('zip_count', 'population', 'housing_units', 'county_count',
                'metro_count', 'state_count'):
        if key in cleaned:
            cleaned[key] = _to_int(cleaned[key])
    for col in AVERAGED_COLUMNS:
        key = f"avg_{col}"
        if key in cleaned:
            cleaned[key] = _to_int(cleaned[key])
    return cleaned


def _normalize_url(connection_string: str) -> str:
    # Managed Postgres providers still hand out postgres:// URLs
    if connection_string.startswith('postgres://'):
        return 'postgresql://' + connection_string[len('postgres://'):]
    return connection_string


class HousingStatsStore:
    """
    Query and update access to housing_stats.

    Args:
        connection_string: SQLAlchemy URL. If None, uses the DATABASE_URL
                           environment variable.
        pool_size: Maximum pooled connections (PostgreSQL only)
    """

    def __init__(self, connection_string: Optional[str] = None, pool_size: int = 5):
        if not connection_string:
            connection_string = os.getenv('DATABASE_URL')
            if not connection_string:
                raise ValueError(
                    "No database connection string provided. "
                    "Set DATABASE_URL environment variable or pass connection_string."
                )

        self.connection_string = _normalize_url(connection_string)

        engine_kwargs: Dict[str, Any] = {}
        if make_url(self.connection_string).get_backend_name() == 'postgresql':
            engine_kwargs.update(pool_size=pool_size, max_overflow=0, pool_pre_ping=True)

        self.engine = create_engine(self.connection_string, **engine_kwargs)
        self._verify_connection()
        logger.info("Database connection established")

    def _verify_connection(self):
        """Verify database connection works"""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            raise RuntimeError(f"Failed to connect to database: {e}")

    def dispose(self):
        self.engine.dispose()

    # =========================================================================
    # SCHEMA & LOADING
    # =========================================================================

    def create_schema(self):
        """Create housing_stats if it does not exist"""
        metadata.create_all(self.engine, checkfirst=True)
        logger.info(f"Schema ready: {TABLE_NAME}")

    def load_frame(self, df: pd.DataFrame, replace: bool = False) -> int:
        """
        Append rows from a DataFrame.

        Unknown columns are dropped and ZIP codes are zero padded; rows
        without a valid 5-digit ZIP are skipped.

        Returns:
            Number of rows written
        """
        columns = [c for c in df.columns if c in ZIP_COLUMNS and c != 'updated_at']
        if 'zip_code' not in columns:
            raise ValueError("DataFrame has no zip_code column")

        frame = df[columns].copy()
        frame['zip_code'] = frame['zip_code'].map(normalize_zip)
        skipped = int((frame['zip_code'] == '').sum())
        frame = frame[frame['zip_code'] != ''].drop_duplicates(subset='zip_code')
        frame = frame.astype(object).where(pd.notna(frame), None)

        if skipped:
            logger.warning(f"Skipped {skipped} rows without a valid ZIP code")

        with self.engine.begin() as conn:
            if replace:
                conn.execute(text(f"DELETE FROM {TABLE_NAME}"))
            frame.to_sql(TABLE_NAME, conn, if_exists='append', index=False, chunksize=1000)

        logger.info(f"Loaded {len(frame):,} rows into {TABLE_NAME}")
        return len(frame)

    # =========================================================================
    # QUERY HELPERS
    # =========================================================================

    def _fetch_all(self, sql: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        with self.engine.connect() as conn:
            result = conn.execute(text(sql), params or {})
            return [dict(row) for row in result.mappings()]

    def _fetch_one(self, sql: str, params: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        rows = self._fetch_all(sql, params)
        return rows[0] if rows else None

    def _scalar(self, sql: str, params: Optional[Dict[str, Any]] = None) -> Any:
        with self.engine.connect() as conn:
            return conn.execute(text(sql), params or {}).scalar()

    # =========================================================================
    # API QUERIES
    # =========================================================================

    def get_summary(self) -> Dict[str, Any]:
        """National totals and averages across all ZIP codes"""
        row = self._fetch_one(f"""
            SELECT {_aggregate_select()},
                   COUNT(DISTINCT NULLIF(state_abbr, '')) AS state_count,
                   COUNT(DISTINCT NULLIF(metro_area, '')) AS metro_count
            FROM {TABLE_NAME}
        """)
        return _clean_aggregate(row or {})

    def get_zip(self, zip_code: str) -> Optional[Dict[str, Any]]:
        return self._fetch_one(
            f"SELECT {', '.join(ZIP_COLUMNS)} FROM {TABLE_NAME} WHERE zip_code = :zip_code",
            {'zip_code': zip_code}
        )

    def list_zips(
        self,
        state: Optional[str] = None,
        county: Optional[str] = None,
        metro: Optional[str] = None,
        min_home_value: Optional[int] = None,
        max_home_value: Optional[int] = None,
        min_rent: Optional[int] = None,
        max_rent: Optional[int] = None,
        min_population: Optional[int] = None,
        sort: str = 'zip_code',
        order: str = 'asc',
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[int, List[Dict[str, Any]]]:
        """
        Filtered, sorted page of ZIP rows.

        Returns:
            (total matching rows before pagination, page of rows)
        """
        where = ["1 = 1"]
        params: Dict[str, Any] = {'limit': limit, 'offset': offset}

        if state:
            where.append("state_abbr = :state")
            params['state'] = state.upper()
        if county:
            where.append("LOWER(county_name) = :county")
            params['county'] = county.lower()
        if metro:
            where.append("LOWER(metro_area) = :metro")
            params['metro'] = metro.lower()
        if min_home_value is not None:
            where.append("median_home_value >= :min_home_value")
            params['min_home_value'] = min_home_value
        if max_home_value is not None:
            where.append("median_home_value <= :max_home_value")
            params['max_home_value'] = max_home_value
        if min_rent is not None:
            where.append("median_rent >= :min_rent")
            params['min_rent'] = min_rent
        if max_rent is not None:
            where.append("median_rent <= :max_rent")
            params['max_rent'] = max_rent
        if min_population is not None:
            where.append("population >= :min_population")
            params['min_population'] = min_population

        if sort not in SORTABLE_COLUMNS:
            sort = 'zip_code'
        direction = "DESC" if order.lower() == 'desc' else "ASC"
        where_sql = " AND ".join(where)

        filter_params = {k: v for k, v in params.items() if k not in ('limit', 'offset')}
        total = self._scalar(f"SELECT COUNT(*) FROM {TABLE_NAME} WHERE {where_sql}", filter_params)

        # NULLs always last regardless of direction
        rows = self._fetch_all(f"""
            SELECT {', '.join(ZIP_COLUMNS)}
            FROM {TABLE_NAME}
            WHERE {where_sql}
            ORDER BY ({sort} IS NULL), {sort} {direction}, zip_code
            LIMIT :limit OFFSET :offset
        """, params)

        return int(total or 0), rows

    def search_zips(self, query: str, limit: int = 20) -> List[Dict[str, Any]]:
        """
        Prefix search: ZIP code prefix for digits, city name otherwise.
        """
        term = query.strip().replace('%', '').replace('_', '')
        if not term:
            return []

        columns = "zip_code, city, state_abbr, county_name, metro_area, population, median_home_value"
        if term.isdigit():
            return self._fetch_all(f"""
                SELECT {columns} FROM {TABLE_NAME}
                WHERE zip_code LIKE :prefix
                ORDER BY zip_code
                LIMIT :limit
            """, {'prefix': f"{term}%", 'limit': limit})

        return self._fetch_all(f"""
            SELECT {columns} FROM {TABLE_NAME}
            WHERE LOWER(city) LIKE :prefix
            ORDER BY (population IS NULL), population DESC, zip_code
            LIMIT :limit
        """, {'prefix': f"{term.lower()}%", 'limit': limit})

    def list_states(self) -> List[Dict[str, Any]]:
        """Per-state aggregates; rows without a state are excluded"""
        rows = self._fetch_all(f"""
            SELECT state_abbr,
                   {_aggregate_select()},
                   COUNT(DISTINCT NULLIF(county_name, '')) AS county_count,
                   COUNT(DISTINCT NULLIF(metro_area, '')) AS metro_count
            FROM {TABLE_NAME}
            WHERE {_present('state_abbr')}
            GROUP BY state_abbr
            ORDER BY state_abbr
        """)
        return [_clean_aggregate(r) for r in rows]

    def list_counties(self, state: str) -> List[Dict[str, Any]]:
        """Per-county aggregates within one state"""
        rows = self._fetch_all(f"""
            SELECT county_name,
                   MAX(NULLIF(metro_area, '')) AS metro_area,
                   {_aggregate_select()}
            FROM {TABLE_NAME}
            WHERE state_abbr = :state AND {_present('county_name')}
            GROUP BY county_name
            ORDER BY county_name
        """, {'state': state.upper()})
        return [_clean_aggregate(r) for r in rows]

    def list_metros(
        self,
        state: Optional[str] = None,
        min_zips: int = 1,
        limit: int = 100
    ) -> List[Dict[str, Any]]:
        """Per-metro aggregates, most populous first"""
        where = [_present('metro_area')]
        params: Dict[str, Any] = {'min_zips': min_zips, 'limit': limit}
        if state:
            where.append("state_abbr = :state")
            params['state'] = state.upper()

        rows = self._fetch_all(f"""
            SELECT metro_area,
                   {_aggregate_select()},
                   COUNT(DISTINCT NULLIF(state_abbr, '')) AS state_count
            FROM {TABLE_NAME}
            WHERE {' AND '.join(where)}
            GROUP BY metro_area
            HAVING COUNT(*) >= :min_zips
            ORDER BY COALESCE(SUM(population), 0) DESC, metro_area
            LIMIT :limit
        """, params)
        return [_clean_aggregate(r) for r in rows]

    def count_gaps(self) -> GapReport:
        """Count rows missing state, county and metro"""
        row = self._fetch_one(f"""
            SELECT COUNT(*) AS total,
                   SUM(CASE WHEN {_missing('state_abbr')} THEN 1 ELSE 0 END) AS missing_state,
                   SUM(CASE WHEN {_missing('county_name')} THEN 1 ELSE 0 END) AS missing_county,
                   SUM(CASE WHEN {_missing('metro_area')} THEN 1 ELSE 0 END) AS missing_metro
            FROM {TABLE_NAME}
        """) or {}
        return GapReport(**{k: _to_int(row.get(k)) or 0 for k in
                            ('total', 'missing_state', 'missing_county', 'missing_metro')})

    # =========================================================================
    # ENRICHMENT QUERIES
    # =========================================================================

    def list_zip_codes(self) -> List[str]:
        with self.engine.connect() as conn:
            result = conn.execute(text(f"SELECT DISTINCT zip_code FROM {TABLE_NAME} ORDER BY zip_code"))
            return [row[0] for row in result]

    def rows_missing_geo(self) -> List[Dict[str, Any]]:
        """Rows missing any of state, county or metro"""
        return self._fetch_all(f"""
            SELECT zip_code, state_abbr, county_name, metro_area
            FROM {TABLE_NAME}
            WHERE {_missing('state_abbr')}
               OR {_missing('county_name')}
               OR {_missing('metro_area')}
            ORDER BY zip_code
        """)

    def rows_missing_metro(self) -> List[Dict[str, Any]]:
        """Rows with a state but no metro area"""
        return self._fetch_all(f"""
            SELECT zip_code, state_abbr, county_name
            FROM {TABLE_NAME}
            WHERE {_present('state_abbr')}
              AND {_missing('metro_area')}
            ORDER BY zip_code
        """)

    def count_counties_missing_metro(self) -> int:
        """Distinct (state, county) pairs that still need a metro area"""
        return _to_int(self._scalar(f"""
            SELECT COUNT(*) FROM (
                SELECT DISTINCT state_abbr, county_name
                FROM {TABLE_NAME}
                WHERE {_present('state_abbr')}
                  AND {_present('county_name')}
                  AND {_missing('metro_area')}
            ) AS pending
        """)) or 0

    def apply_geo_updates(
        self,
        updates: Sequence[GeoUpdate],
        batch_size: int = DEFAULT_BATCH_SIZE
    ) -> int:
        """
        Write state/county/metro fills in batches.

        A None field keeps the current value (COALESCE). Each batch is
        committed on its own.

        Returns:
            Total rows updated
        """
        sql = f"""
            UPDATE {TABLE_NAME} SET
                state_abbr = COALESCE(:new_state, state_abbr),
                county_name = COALESCE(:new_county, county_name),
                metro_area = COALESCE(:new_metro, metro_area),
                updated_at = CURRENT_TIMESTAMP
            WHERE zip_code = :zip_code
        """
        return self._execute_batches(sql, updates, batch_size)

    def apply_metro_updates(
        self,
        updates: Sequence[MetroUpdate],
        batch_size: int = DEFAULT_BATCH_SIZE
    ) -> int:
        """Write metro_area assignments in batches; returns rows updated"""
        sql = f"""
            UPDATE {TABLE_NAME} SET
                metro_area = :new_metro,
                updated_at = CURRENT_TIMESTAMP
            WHERE zip_code = :zip_code
        """
        return self._execute_batches(sql, updates, batch_size)

    def _execute_batches(
        self,
        sql: str,
        updates: Sequence[Union[GeoUpdate, MetroUpdate]],
        batch_size: int
    ) -> int:
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")

        statement = text(sql)
        total_updated = 0

        for start in range(0, len(updates), batch_size):
            batch = updates[start:start + batch_size]
            with self.engine.begin() as conn:
                result = conn.execute(statement, [u.to_params() for u in batch])
            # rowcount is -1 when the driver cannot report executemany totals
            total_updated += result.rowcount if result.rowcount >= 0 else len(batch)

            done = start + len(batch)
            pct = round(done / len(updates) * 100)
            logger.info(f"  Progress: {done}/{len(updates)} ({pct}%) — {total_updated} rows updated")

        return total_updated


# Global cached store instances
_store_cache: Dict[str, HousingStatsStore] = {}


def get_store(connection_string: Optional[str] = None, pool_size: int = 5) -> HousingStatsStore:
    """
    Get a cached HousingStatsStore instance.

    Args:
        connection_string: Database connection string
        pool_size: Pool cap used when the store is first created

    Returns:
        Cached HousingStatsStore instance
    """
    cache_key = connection_string or os.getenv('DATABASE_URL', 'default')

    if cache_key not in _store_cache:
        _store_cache[cache_key] = HousingStatsStore(connection_string, pool_size=pool_size)

    return _store_cache[cache_key]


def clear_store_cache():
    """Dispose and forget every cached store"""
    for store in _store_cache.values():
        store.dispose()
    _store_cache.clear()
