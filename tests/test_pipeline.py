"""
Tests for the geo and metro enrichment jobs.

Reference files are served by a fake fetcher so no network is needed.
"""

import importlib.util
from pathlib import Path

import pytest
import requests

from enrichment import sources
from enrichment.models import EnrichmentStats, GeoRecord
from enrichment.pipeline import GeoEnricher, MetroEnricher


NY_METRO = "New York-Newark-Jersey City, NY-NJ-PA"
NOLA_METRO = "New Orleans-Metairie, LA"

GEO_FILES = {
    sources.ZIP_COUNTY_URL: (
        "state_abbr,zipcode,county,city\n"
        "NY,00501,Suffolk,Holtsville\n"
        "TX,77002,Fort Bend,Houston\n"
    ),
    sources.ZIP_CBSA_URL: (
        "zip,cbsa,cbsa_title\n"
        f"00501,35620,\"{NY_METRO}\"\n"
        "77002,99999,Some Other Metro\n"
        f"70112,35380,\"{NOLA_METRO}\"\n"
    ),
}

METRO_FILES = {
    sources.NBER_CBSA_URL: (
        "cbsacode,cbsatitle,csatitle,fipsstatecode,fipscountycode\n"
        f"35380,\"{NOLA_METRO}\",,22,071\n"
        "26420,\"Houston-The Woodlands-Sugar Land, TX\",,48,201\n"
    ),
    sources.COUNTY_FIPS_URL: (
        "fips,county_name,state_abbr\n"
        "22071,Orleans,LA\n"
        "48443,Terrell County,TX\n"
        "48201,Harris County,TX\n"
    ),
}

FALLBACK = {
    '99999': GeoRecord(state_abbr='AK', county_name='Nome Census Area'),
    '70112': GeoRecord(state_abbr='LA', county_name='Orleans Parish'),
}


def fake_fetcher(files):
    def fetch(url):
        if url not in files:
            raise requests.ConnectionError(f"unreachable: {url}")
        return files[url]
    return fetch


def offline(url):
    raise requests.ConnectionError("network down")


@pytest.fixture
def geo_enricher(store):
    return GeoEnricher(store, fetch=fake_fetcher(GEO_FILES), fallback_lookup=FALLBACK.get, batch_size=2)


# =============================================================================
# GeoEnricher
# =============================================================================

def test_geo_dry_run_plans_without_writing(store, geo_enricher):
    result = geo_enricher.run(dry_run=True)

    assert result.dry_run
    assert result.rows_updated == 0
    assert result.gaps_after is None

    planned = {u.zip_code: u for u in result.updates}
    assert set(planned) == {'00501', '70112', '99999'}

    assert planned['00501'].state_abbr == 'NY'
    assert planned['00501'].county_name == 'Suffolk County'
    assert planned['00501'].metro_area == NY_METRO

    # Row already has state and county, only metro is filled
    assert planned['70112'].state_abbr is None
    assert planned['70112'].county_name is None
    assert planned['70112'].metro_area == NOLA_METRO

    assert planned['99999'].state_abbr == 'AK'
    assert planned['99999'].metro_area is None

    stats = result.stats
    assert (stats.state, stats.county, stats.metro) == (2, 2, 2)
    assert stats.no_match == 1
    assert stats.fallback_fills == 2

    assert store.count_gaps() == result.gaps_before
    assert store.get_zip('00501')['state_abbr'] is None


def test_geo_live_run_fills_gaps_only(store, geo_enricher):
    result = geo_enricher.run()

    assert result.rows_updated == 3

    before, after = result.gaps_before, result.gaps_after
    assert (before.missing_state, before.missing_county, before.missing_metro) == (2, 2, 4)
    assert (after.missing_state, after.missing_county, after.missing_metro) == (0, 0, 2)

    holtsville = store.get_zip('00501')
    assert holtsville['state_abbr'] == 'NY'
    assert holtsville['county_name'] == 'Suffolk County'
    assert holtsville['metro_area'] == NY_METRO

    # Existing values are never overwritten
    houston = store.get_zip('77002')
    assert houston['county_name'] == 'Harris County'
    assert houston['metro_area'] == 'Houston-The Woodlands-Sugar Land, TX'

    assert store.get_zip('79848')['metro_area'] == ''


def test_geo_download_failure_degrades(store):
    enricher = GeoEnricher(store, fetch=offline, fallback_lookup=lambda z: None)

    result = enricher.run()

    assert result.updates == []
    assert result.rows_updated == 0
    assert result.stats.no_match == 4
    assert result.gaps_after == result.gaps_before


def test_geo_fallback_fills_missing_state():
    enricher = GeoEnricher(store=None, fetch=offline, fallback_lookup=lambda z: GeoRecord('NY', 'Suffolk County'))
    zip_geo = {
        '00501': GeoRecord(state_abbr='', county_name='Suffolk County'),
        '77002': GeoRecord(state_abbr='TX', county_name='Harris County'),
    }

    fills = enricher.apply_fallback(zip_geo, ['00501', '77002', '00544'])

    assert fills == 2
    assert zip_geo['00501'].state_abbr == 'NY'
    assert zip_geo['77002'].state_abbr == 'TX'
    assert zip_geo['00544'] == GeoRecord('NY', 'Suffolk County')


def test_enricher_rejects_bad_batch_size(store):
    with pytest.raises(ValueError):
        GeoEnricher(store, fetch=offline, batch_size=0)
    with pytest.raises(ValueError):
        MetroEnricher(store, fetch=offline, batch_size=-5)


# =============================================================================
# MetroEnricher
# =============================================================================

def test_metro_dry_run(store):
    enricher = MetroEnricher(store, fetch=fake_fetcher(METRO_FILES))

    result = enricher.run(dry_run=True)

    # Orleans Parish resolves through the suffix-stripped key
    assert [(u.zip_code, u.metro_area) for u in result.updates] == [('70112', NOLA_METRO)]
    assert result.stats.matched == 1
    assert result.stats.unmatched == 1
    assert store.get_zip('70112')['metro_area'] is None


def test_metro_live_run(store):
    enricher = MetroEnricher(store, fetch=fake_fetcher(METRO_FILES), batch_size=1)

    result = enricher.run()

    assert result.rows_updated == 1
    assert store.get_zip('70112')['metro_area'] == NOLA_METRO
    assert result.gaps_after.missing_metro == result.gaps_before.missing_metro - 1


def test_metro_aborts_without_crosswalk(store):
    files = {sources.COUNTY_FIPS_URL: METRO_FILES[sources.COUNTY_FIPS_URL]}
    enricher = MetroEnricher(store, fetch=fake_fetcher(files))

    result = enricher.run()

    assert result.aborted
    assert result.updates == []
    assert store.get_zip('70112')['metro_area'] is None


def test_match_rows_skips_unusable_rows():
    rows = [
        {'zip_code': '00001', 'state_abbr': 'ZZ', 'county_name': 'Nowhere County'},
        {'zip_code': '00002', 'state_abbr': 'TX', 'county_name': ''},
        {'zip_code': '77002', 'state_abbr': 'tx', 'county_name': 'Harris County'},
    ]
    county_fips = {'TX|harris county': '48201'}
    county_metro = {'48201': 'Houston-The Woodlands-Sugar Land, TX'}

    stats = EnrichmentStats()
    updates = MetroEnricher.match_rows(rows, county_fips, county_metro, stats)

    assert [u.zip_code for u in updates] == ['77002']
    assert stats.matched == 1
    assert stats.unmatched == 0


# =============================================================================
# Command line
# =============================================================================

def _load_script(name):
    path = Path(__file__).resolve().parent.parent / 'scripts' / f'{name}.py'
    spec = importlib.util.spec_from_file_location(name, path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.mark.parametrize("name", ['geo_enrich', 'geo_enrich_metro'])
def test_script_arguments(name):
    script = _load_script(name)

    args = script.build_parser().parse_args(['--dry-run', '--batch-size', '100'])

    assert args.dry_run
    assert args.batch_size == 100
    assert args.connection_string is None


@pytest.mark.parametrize("name", ['geo_enrich', 'geo_enrich_metro'])
def test_script_requires_connection(name, monkeypatch):
    monkeypatch.delenv('DATABASE_URL', raising=False)
    script = _load_script(name)

    with pytest.raises(SystemExit) as exc:
        script.main(['--dry-run'])
    assert exc.value.code == 1

    with pytest.raises(SystemExit):
        script.main(['--batch-size', '0', '--connection-string', 'sqlite://'])


def test_plan_updates_fills_state_without_fips():
    rows = [{'zip_code': '96939', 'state_abbr': None, 'county_name': None, 'metro_area': None}]
    stats = EnrichmentStats()

    updates = GeoEnricher.plan_updates(rows, {'96939': GeoRecord('PW', '')}, {}, stats)

    assert [(u.zip_code, u.state_abbr, u.county_name) for u in updates] == [('96939', 'PW', None)]
    assert stats.state == 1

    # The metro join still needs a state FIPS
    stats = EnrichmentStats()
    rows = [{'zip_code': '96939', 'state_abbr': 'PW', 'county_name': 'Koror'}]
    assert MetroEnricher.match_rows(rows, {'PW|koror': '99999'}, {'99999': 'Nowhere'}, stats) == []
    assert stats.unmatched == 0
