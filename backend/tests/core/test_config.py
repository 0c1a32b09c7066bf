"""Tests for Settings validation and parsing."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.core.config import DEFAULT_TRIP_FILE_NAMES, Settings


def test_cors_parsing_accepts_comma_separated():
    settings = Settings(
        CORS_ALLOW_ORIGINS="https://app.example.com, http://localhost:9000"
    )

    assert settings.cors_allow_origins == [
        "https://app.example.com",
        "http://localhost:9000",
    ]


def test_cors_parsing_accepts_json_array():
    settings = Settings(
        CORS_ALLOW_ORIGINS='["https://app.example.com", "http://localhost:9000"]'
    )

    assert settings.cors_allow_origins == [
        "https://app.example.com",
        "http://localhost:9000",
    ]


def test_cors_parsing_rejects_wildcard():
    with pytest.raises(ValidationError):
        Settings(CORS_ALLOW_ORIGINS="http://localhost:3000, *")


def test_defaults_cover_twelve_monthly_files():
    settings = Settings()

    assert settings.trip_file_names == DEFAULT_TRIP_FILE_NAMES
    assert settings.trip_file_names[0] == "Bike share ridership 2023-01.csv"
    assert settings.trip_file_names[-1] == "Bike share ridership 2023-12.csv"
    assert settings.node_cap == 60
    assert settings.top_links_per_node == 5
    assert settings.top_start_rows == 25
    assert (settings.viewport_width, settings.viewport_height) == (960, 600)


def test_trip_file_names_read_from_environment(monkeypatch):
    monkeypatch.setenv("TRIP_FILE_NAMES", "a.csv, b.csv")
    monkeypatch.setenv("NODE_CAP", "12")

    settings = Settings()

    assert settings.trip_file_names == ["a.csv", "b.csv"]
    assert settings.node_cap == 12


def test_gbfs_urls_must_be_http():
    with pytest.raises(ValidationError):
        Settings(GBFS_STATION_INFO_URLS="ftp://example.com/station_information.json")


def test_gbfs_urls_accept_comma_separated():
    settings = Settings(
        GBFS_STATION_INFO_URLS="https://a.example/si.json,https://b.example/si.json"
    )

    assert settings.gbfs_station_info_urls == [
        "https://a.example/si.json",
        "https://b.example/si.json",
    ]


def test_selection_bounds_enforced():
    with pytest.raises(ValidationError):
        Settings(NODE_CAP=0)
    with pytest.raises(ValidationError):
        Settings(GEOCODE_FETCH_TIMEOUT_SECONDS=0)


def test_production_requires_absolute_data_dir(tmp_path):
    with pytest.raises(ValidationError):
        Settings(ENVIRONMENT="production", TRIP_DATA_DIR="sample-data")

    settings = Settings(ENVIRONMENT="production", TRIP_DATA_DIR=str(tmp_path))
    assert settings.trip_data_dir == str(tmp_path)
