"""
External reference datasets used by the enrichment jobs.

Data sources:
- scpike/us-state-county-zip      ZIP → state, county
- mwkracht/zip_to_cbsa            ZIP → CBSA code / metro name
- NBER CBSA-CSA-FIPS crosswalk    county FIPS → CBSA title
- kjhealy/fips-codes              state + county name → county FIPS
- zipcodes package                offline ZIP → state/county fallback

Header names differ between releases of these files, so columns are
located with regex patterns rather than fixed names.
"""

import hashlib
import logging
import re
from io import StringIO
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional
from urllib.parse import urlparse

import pandas as pd
import requests
import zipcodes

from .matching import (
    normalize_zip,
    normalize_state,
    county_display_name,
    county_key,
    short_county_key,
)
from .models import GeoRecord

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

ZIP_COUNTY_URL = "https://raw.githubusercontent.com/scpike/us-state-county-zip/master/geo-data.csv"
ZIP_CBSA_URL = "https://raw.githubusercontent.com/mwkracht/zip_to_cbsa/master/zip_to_cbsa/data/zip_cbsa.csv"
CBSA_NAMES_URL = "https://raw.githubusercontent.com/mwkracht/zip_to_cbsa/master/zip_to_cbsa/data/cbsa.csv"
NBER_CBSA_URL = "https://data.nber.org/cbsa-csa-fips-county-crosswalk/cbsa2fipsxw.csv"
COUNTY_FIPS_URL = "https://raw.githubusercontent.com/kjhealy/fips-codes/master/county_fips_master.csv"

USER_AGENT = "housing-stats-enrichment/1.0"
MAX_REDIRECTS = 5
DOWNLOAD_TIMEOUT = 120


# =============================================================================
# DOWNLOAD
# =============================================================================

def download_text(url: str, cache_dir: Optional[Path] = None, timeout: int = DOWNLOAD_TIMEOUT) -> str:
    """
    Download a text file, following at most MAX_REDIRECTS redirects.

    Raises requests.RequestException on network errors, redirect loops
    and any non-200 response. When cache_dir is given the body is saved
    there and reused on the next run.
    """
    cached_path = None
    if cache_dir is not None:
        cache_dir = Path(cache_dir)
        cache_dir.mkdir(parents=True, exist_ok=True)
        cached_path = cache_dir / _cache_filename(url)
        if cached_path.exists():
            logger.info(f"  Using cached file: {cached_path}")
            return cached_path.read_text(encoding='utf-8')

    with requests.Session() as session:
        session.max_redirects = MAX_REDIRECTS
        response = session.get(url, headers={'User-Agent': USER_AGENT}, timeout=timeout)

    if response.status_code != 200:
        raise requests.HTTPError(f"HTTP {response.status_code}", response=response)

    text = _decode(response.content)

    if cached_path is not None:
        cached_path.write_text(text, encoding='utf-8')

    return text


def _decode(content: bytes) -> str:
    try:
        return content.decode('utf-8-sig')
    except UnicodeDecodeError:
        # NBER files are occasionally latin-1
        return content.decode('latin-1')


def _cache_filename(url: str) -> str:
    name = Path(urlparse(url).path).name or 'download.csv'
    digest = hashlib.md5(url.encode('utf-8')).hexdigest()[:8]
    return f"{digest}_{name}"


# =============================================================================
# CSV PARSING
# =============================================================================

def parse_csv(text: str) -> pd.DataFrame:
    """
    Parse CSV text with every column kept as a trimmed string.

    Empty cells stay empty strings (no NaN coercion) so ZIP and FIPS
    codes keep their leading zeros.
    """
    df = pd.read_csv(StringIO(text), dtype=str, keep_default_na=False, skipinitialspace=True)
    df.columns = [str(c).strip().strip('"') for c in df.columns]
    return df.apply(lambda col: col.str.strip())


def find_column(columns: Iterable[str], patterns: List[str]) -> Optional[str]:
    """
    Locate a header by case-insensitive regex.

    Patterns are tried in priority order; the first header matching the
    earliest pattern wins.
    """
    columns = list(columns)
    for pattern in patterns:
        regex = re.compile(pattern, re.IGNORECASE)
        for column in columns:
            if regex.search(column):
                return column
    return None


def _column_or_blank(df: pd.DataFrame, column: Optional[str]) -> pd.Series:
    if column is None:
        return pd.Series([''] * len(df), index=df.index, dtype=str)
    return df[column]


# =============================================================================
# ZIP → STATE / COUNTY
# =============================================================================

def build_zip_geo_map(df: pd.DataFrame) -> Dict[str, GeoRecord]:
    """
    Build ZIP → GeoRecord from the ZIP/county dataset.

    A ZIP spanning several counties keeps its first listed county.
    """
    zip_col = find_column(df.columns, [r'^zip_?code$', r'^zip$', r'zip'])
    state_col = find_column(df.columns, [r'^state_abbr$', r'state_?abbr', r'^state$'])
    county_col = find_column(df.columns, [r'^county$', r'county_?name', r'county'])

    if zip_col is None:
        raise ValueError(f"No ZIP column found in {list(df.columns)}")

    zip_geo: Dict[str, GeoRecord] = {}
    states = _column_or_blank(df, state_col)
    counties = _column_or_blank(df, county_col)

    for raw_zip, state, county in zip(df[zip_col], states, counties):
        zip_code = normalize_zip(raw_zip)
        if not zip_code or zip_code in zip_geo:
            continue
        zip_geo[zip_code] = GeoRecord(
            state_abbr=normalize_state(state),
            county_name=county_display_name(county),
        )

    return zip_geo


def lookup_zip_fallback(zip_code: str) -> Optional[GeoRecord]:
    """Offline ZIP lookup via the zipcodes package; None when unknown."""
    try:
        matches = zipcodes.matching(zip_code)
    except (TypeError, ValueError):
        return None

    if not matches:
        return None

    match = matches[0]
    return GeoRecord(
        state_abbr=normalize_state(match.get('state')),
        county_name=county_display_name(match.get('county')),
    )


# =============================================================================
# ZIP → METRO
# =============================================================================

def build_zip_metro_map(
    df: pd.DataFrame,
    fetch_names: Optional[Callable[[], pd.DataFrame]] = None
) -> Dict[str, str]:
    """
    Build ZIP → metro name from the ZIP/CBSA crosswalk.

    If the crosswalk only carries CBSA codes, names are resolved from a
    second file returned by fetch_names(). A failure there is logged and
    leaves the map empty.
    """
    zip_col = find_column(df.columns, [r'^zip', r'zip'])
    metro_col = find_column(df.columns, [r'metro.*name', r'cbsa.*title', r'name'])
    cbsa_col = find_column(df.columns, [r'^cbsa$', r'cbsa.*code', r'cbsa'])

    if zip_col is None:
        raise ValueError(f"No ZIP column found in {list(df.columns)}")

    zip_metro: Dict[str, str] = {}

    if metro_col is not None:
        for raw_zip, metro in zip(df[zip_col], df[metro_col]):
            zip_code = normalize_zip(raw_zip)
            if zip_code and metro:
                zip_metro[zip_code] = metro
        return zip_metro

    if cbsa_col is None:
        raise ValueError(f"No CBSA or metro name column found in {list(df.columns)}")

    logger.info("  ZIP-CBSA has codes but no names, downloading CBSA names...")
    cbsa_codes: Dict[str, str] = {}
    for raw_zip, cbsa in zip(df[zip_col], df[cbsa_col]):
        zip_code = normalize_zip(raw_zip)
        if zip_code and cbsa:
            cbsa_codes[zip_code] = cbsa

    if fetch_names is None:
        logger.warning("  No CBSA names source configured")
        return zip_metro

    try:
        names = fetch_names()
    except (requests.RequestException, ValueError) as e:
        logger.info(f"  CBSA names download failed: {e}")
        return zip_metro

    code_col = find_column(names.columns, [r'cbsa.*code', r'^cbsa$', r'code'])
    title_col = find_column(names.columns, [r'title', r'name'])
    if code_col is None or title_col is None:
        logger.warning(f"  CBSA names file has unexpected columns: {list(names.columns)}")
        return zip_metro

    name_map = {
        code: title
        for code, title in zip(names[code_col], names[title_col])
        if code and title
    }
    logger.info(f"  Loaded {len(name_map)} CBSA names")

    for zip_code, cbsa in cbsa_codes.items():
        name = name_map.get(cbsa)
        if name:
            zip_metro[zip_code] = name

    return zip_metro


# =============================================================================
# COUNTY FIPS → METRO, COUNTY NAME → FIPS
# =============================================================================

def build_county_metro_map(df: pd.DataFrame) -> Dict[str, str]:
    """Build 5-digit county FIPS → CBSA title from the NBER crosswalk."""
    state_col = find_column(df.columns, [r'fipsstate', r'statecode', r'state_?fips'])
    county_col = find_column(df.columns, [r'fipscounty', r'county_?fips', r'countycode'])
    name_col = find_column(df.columns, [r'cbsatitle', r'cbsa_?title', r'metroname', r'cbsa.*name'])

    missing = [label for label, col in
               (('state fips', state_col), ('county fips', county_col), ('cbsa title', name_col))
               if col is None]
    if missing:
        raise ValueError(f"Crosswalk missing {', '.join(missing)} column(s): {list(df.columns)}")

    logger.info(f"  Using columns: state={state_col}, county={county_col}, name={name_col}")

    county_metro: Dict[str, str] = {}
    for state_fips, county_fips, name in zip(df[state_col], df[county_col], df[name_col]):
        if not name or not state_fips or not county_fips:
            continue
        fips = state_fips.zfill(2) + county_fips.zfill(3)
        if len(fips) == 5 and fips.isdigit():
            county_metro[fips] = name

    return county_metro


def build_county_fips_map(df: pd.DataFrame) -> Dict[str, str]:
    """
    Build county_key → 5-digit FIPS from the county FIPS master list.

    Both "TX|harris county" and "TX|harris" are stored. Suffix-stripped keys
    never replace a full-name key, so Baltimore County and Baltimore city
    stay distinct.
    """
    fips_col = find_column(df.columns, [r'^fips$', r'fips'])
    name_col = find_column(df.columns, [r'^county_name$', r'county_?name', r'^name$', r'name'])
    state_col = find_column(df.columns, [r'^state_abbr$', r'state_?abbr', r'^state$'])

    if fips_col is None or name_col is None or state_col is None:
        raise ValueError(f"County FIPS file has unexpected columns: {list(df.columns)}")

    rows = []
    for raw_fips, name, state in zip(df[fips_col], df[name_col], df[state_col]):
        fips = str(raw_fips).zfill(5)
        if len(fips) == 5 and fips.isdigit() and name and state:
            rows.append((fips, name, state))

    county_fips: Dict[str, str] = {}
    for fips, name, state in rows:
        key = county_key(state, name)
        if key:
            county_fips[key] = fips

    for fips, name, state in rows:
        short = short_county_key(state, name)
        if short and short not in county_fips:
            county_fips[short] = fips

    return county_fips
