from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from app import main  # noqa: E402
from app.core.config import Settings  # noqa: E402
from app.services.aggregation_cache import AggregationCache  # noqa: E402
from app.services.geocode import GeocodeResolver  # noqa: E402
from app.services.network_dto import MemberType, MonthFilter, MonthlyTrips  # noqa: E402
from app.services.network_service import NetworkState  # noqa: E402
from tests.fixtures.network_data import make_trips, write_ridership_csv  # noqa: E402


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")


@pytest.fixture()
def example_months() -> list[MonthlyTrips]:
    """3x A->B Annual, 2x A->C Casual and 1x B->A Annual in March."""
    trips = make_trips(
        [
            ("A", "B", MemberType.ANNUAL, 3),
            ("A", "C", MemberType.CASUAL, 2),
            ("B", "A", MemberType.ANNUAL, 1),
        ]
    )
    return [MonthlyTrips(month_key="2023-03", month=MonthFilter.MAR, trips=trips)]


@pytest.fixture()
def example_cache(example_months: list[MonthlyTrips]) -> AggregationCache:
    return AggregationCache.build(example_months)


@pytest.fixture()
def hub_cache() -> AggregationCache:
    """One busy hub with routes of distinct weights plus a few side routes."""
    trips = make_trips(
        [
            ("Hub", "North", MemberType.ANNUAL, 40),
            ("Hub", "East", MemberType.ANNUAL, 30),
            ("Hub", "South", MemberType.CASUAL, 20),
            ("Hub", "West", MemberType.CASUAL, 15),
            ("Hub", "Lake", MemberType.ANNUAL, 10),
            ("Hub", "Park", MemberType.ANNUAL, 10),
            ("Hub", "Mill", MemberType.OTHER, 2),
            ("North", "East", MemberType.ANNUAL, 6),
            ("East", "Hub", MemberType.CASUAL, 4),
            ("South", "West", MemberType.ANNUAL, 1),
        ]
    )
    return AggregationCache.build(
        [MonthlyTrips(month_key="2023-07", month=MonthFilter.JUL, trips=trips)]
    )


@pytest.fixture()
def test_settings(tmp_path: Path) -> Settings:
    return Settings(
        TRIP_DATA_DIR=str(tmp_path),
        TRIP_FILE_NAMES="Bike share ridership 2023-03.csv",
        GEOCODE_FEEDS_ENABLED=False,
        GEOCODE_OVERRIDES_PATH=None,
        BOUNDARY_GEOJSON_URL=None,
        CORS_ALLOW_ORIGINS="http://localhost:3000",
    )


@pytest.fixture()
def network_state(test_settings: Settings, hub_cache: AggregationCache) -> NetworkState:
    return NetworkState(test_settings, hub_cache, GeocodeResolver())


@pytest.fixture()
def api_client(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, test_settings: Settings
) -> Iterator[TestClient]:
    """Client for an app whose lifespan loads a small March ridership file."""
    rows = (
        [("Hub", "North", "Annual Member")] * 12
        + [("Hub", "East", "Casual Member")] * 8
        + [("North", "East", "Annual Member")] * 3
        + [("East", "Hub", "Annual Member")] * 2
        + [("", "Nowhere", "Annual Member"), ("NULL", "Hub", "Casual Member")]
    )
    write_ridership_csv(tmp_path / "Bike share ridership 2023-03.csv", rows)
    monkeypatch.setattr(main, "get_settings", lambda: test_settings)

    app = main.create_app()
    with TestClient(app) as client:
        yield client
