"""
Pytest fixtures for API and enrichment testing.
"""

import pytest
import pandas as pd
from fastapi.testclient import TestClient

from api.config import Settings
from enrichment.database import HousingStatsStore, clear_store_cache


SAMPLE_ROWS = [
    # Fully enriched
    {'zip_code': '77002', 'city': 'Houston', 'state_abbr': 'TX', 'county_name': 'Harris County',
     'metro_area': 'Houston-The Woodlands-Sugar Land, TX', 'population': 17000,
     'median_home_value': 310000, 'median_rent': 1400, 'median_household_income': 71000,
     'housing_units': 11000, 'owner_occupied_rate': 18.5, 'vacancy_rate': 14.0},
    {'zip_code': '77005', 'city': 'Houston', 'state_abbr': 'TX', 'county_name': 'Harris County',
     'metro_area': 'Houston-The Woodlands-Sugar Land, TX', 'population': 27000,
     'median_home_value': 900000, 'median_rent': 1800, 'median_household_income': 190000,
     'housing_units': 11500, 'owner_occupied_rate': 64.0, 'vacancy_rate': 6.0},
    {'zip_code': '78701', 'city': 'Austin', 'state_abbr': 'TX', 'county_name': 'Travis County',
     'metro_area': 'Austin-Round Rock-Georgetown, TX', 'population': 12000,
     'median_home_value': 600000, 'median_rent': 2000, 'median_household_income': 110000,
     'housing_units': 9000, 'owner_occupied_rate': 30.0, 'vacancy_rate': 12.0},
    # Rural county, no metro
    {'zip_code': '79848', 'city': 'Sanderson', 'state_abbr': 'TX', 'county_name': 'Terrell County',
     'metro_area': '', 'population': 800,
     'median_home_value': 60000, 'median_rent': 500, 'median_household_income': 40000,
     'housing_units': 600, 'owner_occupied_rate': 70.0, 'vacancy_rate': 30.0},
    {'zip_code': '02138', 'city': 'Cambridge', 'state_abbr': 'MA', 'county_name': 'Middlesex County',
     'metro_area': 'Boston-Cambridge-Newton, MA-NH', 'population': 36000,
     'median_home_value': 1100000, 'median_rent': 2600, 'median_household_income': 120000,
     'housing_units': 14000, 'owner_occupied_rate': 38.0, 'vacancy_rate': 5.0},
    # Missing metro only
    {'zip_code': '70112', 'city': 'New Orleans', 'state_abbr': 'LA', 'county_name': 'Orleans Parish',
     'metro_area': None, 'population': 5000,
     'median_home_value': 250000, 'median_rent': 900, 'median_household_income': 30000,
     'housing_units': 3000, 'owner_occupied_rate': 20.0, 'vacancy_rate': 25.0},
    # Missing everything geographic
    {'zip_code': '00501', 'city': 'Holtsville', 'state_abbr': None, 'county_name': None,
     'metro_area': None, 'population': None,
     'median_home_value': None, 'median_rent': None, 'median_household_income': None,
     'housing_units': None, 'owner_occupied_rate': None, 'vacancy_rate': None},
    {'zip_code': '99999', 'city': None, 'state_abbr': '', 'county_name': '',
     'metro_area': '', 'population': None,
     'median_home_value': None, 'median_rent': None, 'median_household_income': None,
     'housing_units': None, 'owner_occupied_rate': None, 'vacancy_rate': None},
]


@pytest.fixture
def database_url(tmp_path):
    """SQLite database file seeded with SAMPLE_ROWS"""
    url = f"sqlite:///{tmp_path / 'housing.db'}"
    store = HousingStatsStore(url)
    store.create_schema()
    store.load_frame(pd.DataFrame(SAMPLE_ROWS))
    store.dispose()
    yield url
    clear_store_cache()


@pytest.fixture
def store(database_url):
    """Fresh store on the seeded database"""
    store = HousingStatsStore(database_url)
    yield store
    store.dispose()


@pytest.fixture
def client(database_url):
    """
    FastAPI test client pointed at the seeded database.
    """
    from api.main import app
    from api.dependencies import get_settings

    def get_settings_override():
        return Settings(
            database_url=database_url,
            default_page_size=3,
            max_page_size=5,
            search_limit=2,
            max_metros=10
        )

    app.dependency_overrides[get_settings] = get_settings_override

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
