"""
Key normalization for geographic joins.

The reference datasets disagree on spelling ("St. Louis" vs "Saint Louis"),
on designators ("Orleans" vs "Orleans Parish") and on ZIP formatting
(501 vs 00501). Every join key goes through these helpers first.
"""

import re
import unicodedata
from typing import Optional

# State abbreviation -> 2-digit FIPS
STATE_FIPS = {
    'AL': '01', 'AK': '02', 'AZ': '04', 'AR': '05', 'CA': '06', 'CO': '08',
    'CT': '09', 'DE': '10', 'DC': '11', 'FL': '12', 'GA': '13', 'HI': '15',
    'ID': '16', 'IL': '17', 'IN': '18', 'IA': '19', 'KS': '20', 'KY': '21',
    'LA': '22', 'ME': '23', 'MD': '24', 'MA': '25', 'MI': '26', 'MN': '27',
    'MS': '28', 'MO': '29', 'MT': '30', 'NE': '31', 'NV': '32', 'NH': '33',
    'NJ': '34', 'NM': '35', 'NY': '36', 'NC': '37', 'ND': '38', 'OH': '39',
    'OK': '40', 'OR': '41', 'PA': '42', 'RI': '44', 'SC': '45', 'SD': '46',
    'TN': '47', 'TX': '48', 'UT': '49', 'VT': '50', 'VA': '51', 'WA': '53',
    'WV': '54', 'WI': '55', 'WY': '56', 'AS': '60', 'GU': '66', 'MP': '69',
    'PR': '72', 'VI': '78',
}

STATE_NAMES = {
    'AK': 'Alaska', 'AL': 'Alabama', 'AR': 'Arkansas', 'AZ': 'Arizona',
    'CA': 'California', 'CO': 'Colorado', 'CT': 'Connecticut',
    'DC': 'District of Columbia', 'DE': 'Delaware', 'FL': 'Florida',
    'GA': 'Georgia', 'HI': 'Hawaii', 'IA': 'Iowa', 'ID': 'Idaho',
    'IL': 'Illinois', 'IN': 'Indiana', 'KS': 'Kansas', 'KY': 'Kentucky',
    'LA': 'Louisiana', 'MA': 'Massachusetts', 'MD': 'Maryland', 'ME': 'Maine',
    'MI': 'Michigan', 'MN': 'Minnesota', 'MO': 'Missouri', 'MS': 'Mississippi',
    'MT': 'Montana', 'NC': 'North Carolina', 'ND': 'North Dakota',
    'NE': 'Nebraska', 'NH': 'New Hampshire', 'NJ': 'New Jersey',
    'NM': 'New Mexico', 'NV': 'Nevada', 'NY': 'New York', 'OH': 'Ohio',
    'OK': 'Oklahoma', 'OR': 'Oregon', 'PA': 'Pennsylvania', 'RI': 'Rhode Island',
    'SC': 'South Carolina', 'SD': 'South Dakota', 'TN': 'Tennessee',
    'TX': 'Texas', 'UT': 'Utah', 'VA': 'Virginia', 'VT': 'Vermont',
    'WA': 'Washington', 'WI': 'Wisconsin', 'WV': 'West Virginia', 'WY': 'Wyoming',
    'AS': 'American Samoa', 'GU': 'Guam', 'MP': 'Northern Mariana Islands',
    'PR': 'Puerto Rico', 'VI': 'Virgin Islands',
}

# USPS codes with no state FIPS: freely associated states and military mail
USPS_EXTRA_CODES = {
    'FM': 'Federated States of Micronesia', 'MH': 'Marshall Islands', 'PW': 'Palau',
    'AA': 'Armed Forces Americas', 'AE': 'Armed Forces Europe',
    'AP': 'Armed Forces Pacific',
}

USPS_STATES = {**STATE_NAMES, **USPS_EXTRA_CODES}

_STATE_BY_NAME = {name.lower(): abbr for abbr, name in USPS_STATES.items()}

# Longest first so "city and borough" is not reduced to "city and"
COUNTY_SUFFIXES = (
    'city and borough',
    'census area',
    'municipality',
    'borough',
    'parish',
    'county',
    'city',
)

_ZIP_RE = re.compile(r'^\d{1,5}$')
_SUFFIX_RE = re.compile(r'\s+(?:' + '|'.join(COUNTY_SUFFIXES) + r')$')


def normalize_zip(value) -> str:
    """
    Left-pad a ZIP to 5 digits.

    Returns an empty string for anything that is not 1-5 digits before
    padding (ZIP+4, blanks, garbage). Whole floats such as 501.0, as
    pandas reads a numeric column with gaps, are accepted.
    """
    if value is None:
        return ''
    if isinstance(value, float):
        if not value.is_integer():
            return ''
        value = int(value)
    zip_code = str(value).strip()
    return zip_code.zfill(5) if _ZIP_RE.match(zip_code) else ''


def normalize_state(value) -> str:
    """
    Return the upper-case USPS code for a code or full state name.

    Accepts every USPS state code, including Palau, the Marshall Islands,
    Micronesia and military mail codes. Only STATE_FIPS entries can be
    joined to county FIPS.
    """
    if not value:
        return ''
    state = str(value).strip()
    if state.upper() in USPS_STATES:
        return state.upper()
    return _STATE_BY_NAME.get(state.lower(), '')


def normalize_county(name) -> str:
    """
    Canonical lower-case form of a county name used in join keys.

    Strips diacritics (Doña Ana -> dona ana), apostrophes and periods
    (Prince George's -> prince georges, St. Louis -> st louis) and maps
    "saint" to "st".
    """
    if not name:
        return ''
    text = unicodedata.normalize('NFKD', str(name))
    text = ''.join(c for c in text if not unicodedata.combining(c))
    text = text.lower().replace("'", '').replace('’', '').replace('.', ' ')
    text = re.sub(r'\bsaint\b', 'st', text)
    return ' '.join(text.split())


def strip_county_suffix(name: str) -> str:
    """Remove one trailing county designator from a normalized county name."""
    return _SUFFIX_RE.sub('', name).strip()


def has_county_suffix(name: str) -> bool:
    return bool(_SUFFIX_RE.search(normalize_county(name)))


def county_display_name(county) -> str:
    """
    Name as stored in housing_stats.county_name.

    Sources that give the bare name ("Harris") get " County" appended;
    names that already carry a designator are kept as-is.
    """
    if not county:
        return ''
    county = ' '.join(str(county).split())
    if has_county_suffix(county):
        return county
    return f"{county} County"


def county_key(state, county) -> Optional[str]:
    """Join key "<STATE>|<normalized county>", or None if either part is missing."""
    state = normalize_state(state)
    county = normalize_county(county)
    if not state or not county:
        return None
    return f"{state}|{county}"


def short_county_key(state, county) -> Optional[str]:
    """Join key with the county designator stripped."""
    key = county_key(state, county)
    if key is None:
        return None
    state, county = key.split('|', 1)
    short = strip_county_suffix(county)
    if not short:
        return None
    return f"{state}|{short}"
