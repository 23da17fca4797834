"""
Tests for ZIP-level housing endpoints.
"""

from fastapi.testclient import TestClient


def test_summary(client: TestClient):
    response = client.get("/api/v1/summary")

    assert response.status_code == 200
    data = response.json()

    assert data["zip_count"] == 8
    assert data["population"] == 97800
    assert data["housing_units"] == 49100
    assert data["avg_median_home_value"] == 536667
    assert data["state_count"] == 3
    assert data["metro_count"] == 3


def test_list_zips_default_page(client: TestClient):
    """Default page size comes from settings, ordered by ZIP"""
    response = client.get("/api/v1/zips")

    assert response.status_code == 200
    data = response.json()

    assert data["total"] == 8
    assert data["limit"] == 3
    assert data["offset"] == 0
    assert [r["zip_code"] for r in data["results"]] == ["00501", "02138", "70112"]


def test_list_zips_filter_and_sort(client: TestClient):
    response = client.get("/api/v1/zips", params={
        "state": "tx",
        "sort": "median_home_value",
        "order": "desc",
        "limit": 5
    })

    assert response.status_code == 200
    data = response.json()

    assert data["total"] == 4
    assert [r["zip_code"] for r in data["results"]] == ["77005", "78701", "77002", "79848"]


def test_list_zips_nulls_sort_last(client: TestClient):
    response = client.get("/api/v1/zips", params={
        "sort": "median_home_value",
        "order": "asc",
        "limit": 3,
        "offset": 5
    })

    data = response.json()
    assert [r["zip_code"] for r in data["results"]] == ["02138", "00501", "99999"]
    assert data["results"][1]["median_home_value"] is None


def test_list_zips_unknown_sort_falls_back(client: TestClient):
    response = client.get("/api/v1/zips", params={"sort": "1; DROP TABLE housing_stats"})

    assert response.status_code == 200
    assert response.json()["results"][0]["zip_code"] == "00501"


def test_list_zips_county_and_metro_filters(client: TestClient):
    response = client.get("/api/v1/zips", params={"county": "harris county"})
    assert response.json()["total"] == 2

    response = client.get("/api/v1/zips", params={"metro": "Austin-Round Rock-Georgetown, TX"})
    assert [r["zip_code"] for r in response.json()["results"]] == ["78701"]


def test_list_zips_range_filters(client: TestClient):
    response = client.get("/api/v1/zips", params={"min_home_value": 500000, "max_rent": 2000})

    data = response.json()
    assert data["total"] == 2
    assert {r["zip_code"] for r in data["results"]} == {"77005", "78701"}


def test_list_zips_validation(client: TestClient):
    # Over the configured maximum
    response = client.get("/api/v1/zips", params={"limit": 6})
    assert response.status_code == 400
    assert "detail" in response.json()

    response = client.get("/api/v1/zips", params={"limit": 0})
    assert response.status_code == 422

    response = client.get("/api/v1/zips", params={"order": "sideways"})
    assert response.status_code == 422

    response = client.get("/api/v1/zips", params={"offset": -1})
    assert response.status_code == 422


def test_search_by_zip_prefix(client: TestClient):
    response = client.get("/api/v1/zips/search", params={"q": "77"})

    assert response.status_code == 200
    data = response.json()
    assert data["query"] == "77"
    assert [r["zip_code"] for r in data["results"]] == ["77002", "77005"]


def test_search_by_city_prefix(client: TestClient):
    """City search is case-insensitive and most populous first"""
    response = client.get("/api/v1/zips/search", params={"q": "hOU"})

    data = response.json()
    assert data["count"] == 2
    assert [r["zip_code"] for r in data["results"]] == ["77005", "77002"]


def test_search_requires_two_characters(client: TestClient):
    response = client.get("/api/v1/zips/search", params={"q": "x"})
    assert response.status_code == 422


def test_get_zip(client: TestClient):
    response = client.get("/api/v1/zips/02138")

    assert response.status_code == 200
    data = response.json()

    assert data["zip_code"] == "02138"
    assert data["city"] == "Cambridge"
    assert data["county_name"] == "Middlesex County"
    assert data["median_rent"] == 2600
    assert data["updated_at"] is not None


def test_get_zip_not_found(client: TestClient):
    response = client.get("/api/v1/zips/12345")

    assert response.status_code == 404
    assert "12345" in response.json()["detail"]


def test_get_zip_invalid_format(client: TestClient):
    assert client.get("/api/v1/zips/1234").status_code == 422
    assert client.get("/api/v1/zips/abcde").status_code == 422
