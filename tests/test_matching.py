"""
Tests for join-key normalization.
"""

import pytest

from enrichment.matching import (
    STATE_FIPS,
    normalize_zip,
    normalize_state,
    normalize_county,
    strip_county_suffix,
    county_display_name,
    county_key,
    short_county_key,
)


@pytest.mark.parametrize("raw,expected", [
    ("501", "00501"),
    (" 02138 ", "02138"),
    (2138, "02138"),
    ("77002", "77002"),
    ("77002-1234", ""),
    ("123456", ""),
    ("", ""),
    ("   ", ""),
    (None, ""),
    (501.0, "00501"),
    (float("nan"), ""),
    ("1e3", ""),
])
def test_normalize_zip(raw, expected):
    assert normalize_zip(raw) == expected


def test_normalize_state():
    assert normalize_state("tx") == "TX"
    assert normalize_state(" Texas ") == "TX"
    assert normalize_state("district of columbia") == "DC"
    assert normalize_state("Puerto Rico") == "PR"
    assert normalize_state("XX") == ""
    assert normalize_state("ZZ") == ""
    assert normalize_state(None) == ""


def test_state_fips_covers_states_dc_and_territories():
    assert len(STATE_FIPS) == 56
    assert STATE_FIPS["DC"] == "11"
    assert STATE_FIPS["PR"] == "72"
    assert all(len(code) == 2 for code in STATE_FIPS.values())


def test_normalize_county():
    assert normalize_county("St. Louis County") == "st louis county"
    assert normalize_county("Saint Louis County") == "st louis county"
    assert normalize_county("Prince George's County") == "prince georges county"
    assert normalize_county("Doña Ana County") == "dona ana county"
    assert normalize_county("  De   Kalb ") == "de kalb"


def test_strip_county_suffix():
    assert strip_county_suffix("harris county") == "harris"
    assert strip_county_suffix("orleans parish") == "orleans"
    assert strip_county_suffix("juneau city and borough") == "juneau"
    assert strip_county_suffix("nome census area") == "nome"
    assert strip_county_suffix("baltimore city") == "baltimore"
    # Only one trailing designator is removed
    assert strip_county_suffix("harris") == "harris"


def test_county_display_name():
    assert county_display_name("Harris") == "Harris County"
    assert county_display_name("Harris County") == "Harris County"
    assert county_display_name("Orleans Parish") == "Orleans Parish"
    assert county_display_name("Anchorage Municipality") == "Anchorage Municipality"
    assert county_display_name("") == ""


def test_county_keys():
    assert county_key("tx", "Harris County") == "TX|harris county"
    assert short_county_key("TX", "Harris County") == "TX|harris"
    assert county_key("", "Harris County") is None
    assert county_key("TX", "") is None


def test_normalize_state_accepts_usps_codes_without_fips():
    """Freely associated states and military mail keep their code"""
    for code in ("PW", "FM", "MH", "AA", "AE", "AP"):
        assert normalize_state(code.lower()) == code
        assert code not in STATE_FIPS

    assert normalize_state("Palau") == "PW"
    assert county_key("PW", "Koror") == "PW|koror"
