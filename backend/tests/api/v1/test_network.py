"""Tests for the network and geocode endpoints.

The ``api_client`` app loads one March file:
Hub->North 12 (Annual), Hub->East 8 (Casual), North->East 3 (Annual),
East->Hub 2 (Annual) plus two rows that are dropped during cleaning.
"""

from fastapi.testclient import TestClient

from app import main


class TestSelectionEndpoint:
    def test_default_selection(self, api_client):
        response = api_client.get("/api/v1/network/selection")

        assert response.status_code == 200
        data = response.json()
        assert [n["name"] for n in data["nodes"]] == ["Hub", "North", "East"]
        assert data["nodes"][0] == {
            "name": "Hub",
            "start_count": 20,
            "end_count": 2,
            "total": 22,
        }
        assert len(data["edges"]) == 4
        assert data["candidate_count"] == 4
        assert data["threshold_count"] == 2
        assert set(data["labels"]) == {"Hub", "North", "East"}

    def test_filters_and_percentile(self, api_client):
        response = api_client.get(
            "/api/v1/network/selection",
            params={"member": "Annual", "month": "03", "percentile": 100},
        )

        data = response.json()
        assert response.status_code == 200
        assert data["member"] == "Annual"
        assert data["threshold_count"] == 12
        assert data["edges"] == [{"source": "Hub", "target": "North", "weight": 12}]

    def test_detail_station(self, api_client):
        response = api_client.get(
            "/api/v1/network/selection", params={"station": "Hub"}
        )

        data = response.json()
        assert data["detail_station"] == "Hub"
        assert [e["target"] for e in data["edges"]] == ["North", "East"]

    def test_unknown_station_is_404(self, api_client):
        response = api_client.get(
            "/api/v1/network/selection", params={"station": "Atlantis"}
        )

        assert response.status_code == 404
        assert "Atlantis" in response.json()["detail"]

    def test_invalid_parameters_are_422(self, api_client):
        assert (
            api_client.get(
                "/api/v1/network/selection", params={"percentile": 150}
            ).status_code
            == 422
        )
        assert (
            api_client.get(
                "/api/v1/network/selection", params={"member": "Corporate"}
            ).status_code
            == 422
        )
        assert (
            api_client.get("/api/v1/network/selection", params={"month": "13"}).status_code
            == 422
        )

    def test_empty_cell(self, api_client):
        response = api_client.get(
            "/api/v1/network/selection", params={"month": "01"}
        )

        data = response.json()
        assert data["nodes"] == []
        assert data["edges"] == []
        assert data["threshold_count"] == 0


class TestStationEndpoints:
    def test_top_start_stations(self, api_client):
        response = api_client.get("/api/v1/network/stations/top")

        data = response.json()
        assert [s["name"] for s in data["stations"]] == ["Hub", "North", "East"]
        assert data["message"] is None

    def test_top_start_stations_for_casual_members(self, api_client):
        data = api_client.get(
            "/api/v1/network/stations/top", params={"member": "Casual"}
        ).json()
        assert [(s["name"], s["start_count"]) for s in data["stations"]] == [("Hub", 8)]

    def test_top_start_stations_without_data(self, api_client):
        data = api_client.get(
            "/api/v1/network/stations/top", params={"month": "01"}
        ).json()

        assert data["stations"] == []
        assert data["message"] == "No data to display for the current filters."

    def test_station_routes(self, api_client):
        response = api_client.get("/api/v1/network/stations/Hub/routes")

        assert response.status_code == 200
        routes = response.json()["routes"]
        assert [(r["rank"], r["end_station"], r["count"]) for r in routes] == [
            (1, "North", 12),
            (2, "East", 8),
        ]
        assert all(r["distance_label"].endswith("mi)") for r in routes)

    def test_station_routes_unknown(self, api_client):
        response = api_client.get("/api/v1/network/stations/Nowhere/routes")
        assert response.status_code == 404


class TestReports:
    def test_ingest_report(self, api_client):
        data = api_client.get("/api/v1/network/ingest").json()

        assert data["synthetic"] is False
        assert data["total_raw_rows"] == 27
        assert data["total_cleaned_rows"] == 25
        [file_report] = data["files"]
        assert file_report["month_key"] == "2023-03"
        assert file_report["missing"] == []

    def test_histogram(self, api_client):
        data = api_client.get("/api/v1/network/histogram").json()

        assert sum(b["count"] for b in data["bins"]) == 4
        assert data["cutoff"] == 2
        assert data["percentile"] == 0


class TestGeocodeEndpoint:
    def test_any_name_resolves(self, api_client):
        response = api_client.get("/api/v1/geocode", params={"name": "Hub"})

        assert response.status_code == 200
        data = response.json()
        assert data["source"] == "synthetic"
        assert 43.58 <= data["lat"] <= 43.85
        assert -79.65 <= data["lng"] <= -79.12

    def test_name_is_required(self, api_client):
        assert api_client.get("/api/v1/geocode").status_code == 422


def test_state_unavailable_before_startup(monkeypatch, test_settings):
    """Without the lifespan the network state is missing and requests get 503."""
    monkeypatch.setattr(main, "get_settings", lambda: test_settings)
    client = TestClient(main.create_app())

    response = client.get("/api/v1/network/selection")

    assert response.status_code == 503
    assert response.headers["X-Request-Id"]
