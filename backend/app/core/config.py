"""Application configuration.

Environment variables are loaded from .env file and can be overridden.
All settings have sensible defaults for local development.
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_TRIP_FILE_NAMES = [
    f"Bike share ridership 2023-{month:02d}.csv" for month in range(1, 13)
]

DEFAULT_GBFS_STATION_INFO_URLS = [
    "https://toronto.publicbikesystem.net/ube/gbfs/v2/en/station_information.json",
    "https://toronto.publicbikesystem.net/ube/gbfs/v1/en/station_information.json",
    "https://gbfs.bikesharetoronto.com/gbfs/en/station_information.json",
]


def _split_csv_list(value: Any) -> list[str]:
    """Accept a JSON array, a comma-separated string, or a sequence."""
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("["):
            return [str(item).strip() for item in json.loads(text) if str(item).strip()]
        return [item.strip() for item in text.split(",") if item.strip()]
    return [str(item) for item in value] if value else []


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ==========================================================================
    # Infrastructure
    # ==========================================================================

    # Environment mode - set to 'production' in production deployments
    environment: str = Field(
        default="development",
        alias="ENVIRONMENT",
        description="Deployment environment: 'development', 'staging', or 'production'.",
    )

    # ==========================================================================
    # Trip data
    # ==========================================================================

    trip_data_dir: str = Field(
        default="sample-data",
        alias="TRIP_DATA_DIR",
        description="Directory holding the monthly ridership CSV files.",
    )
    trip_file_names: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_TRIP_FILE_NAMES),
        alias="TRIP_FILE_NAMES",
    )

    # ==========================================================================
    # Network selection
    # ==========================================================================

    node_cap: int = Field(default=60, alias="NODE_CAP", ge=1)
    top_links_per_node: int = Field(default=5, alias="TOP_LINKS_PER_NODE", ge=1)
    detail_top_routes: int = Field(default=5, alias="DETAIL_TOP_ROUTES", ge=1)
    top_start_rows: int = Field(default=25, alias="TOP_START_ROWS", ge=1)

    # ==========================================================================
    # Geocoding
    # ==========================================================================

    geocode_feeds_enabled: bool = Field(default=True, alias="GEOCODE_FEEDS_ENABLED")
    gbfs_station_info_urls: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_GBFS_STATION_INFO_URLS),
        alias="GBFS_STATION_INFO_URLS",
    )
    geocode_overrides_path: str | None = Field(
        default="stations-geocoded.json",
        alias="GEOCODE_OVERRIDES_PATH",
        description="Optional local JSON list of {name, lat, lng} overrides.",
    )
    boundary_geojson_url: str | None = Field(
        default=(
            "https://raw.githubusercontent.com/codeforgermany/click_that_hood/"
            "main/public/data/toronto.geojson"
        ),
        alias="BOUNDARY_GEOJSON_URL",
    )
    boundary_geojson_path: str | None = Field(
        default=None,
        alias="BOUNDARY_GEOJSON_PATH",
        description="Local boundary polygon; takes precedence over the URL.",
    )
    geocode_fetch_timeout_seconds: float = Field(
        default=10.0, alias="GEOCODE_FETCH_TIMEOUT_SECONDS", gt=0.0
    )

    # ==========================================================================
    # Viewport
    # ==========================================================================

    viewport_width: int = Field(default=960, alias="VIEWPORT_WIDTH", gt=0)
    viewport_height: int = Field(default=600, alias="VIEWPORT_HEIGHT", gt=0)

    # ==========================================================================
    # CORS
    # ==========================================================================

    cors_allow_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: [
            "http://localhost:5173",
            "http://localhost:3000",
            "http://127.0.0.1:5173",
            "http://127.0.0.1:3000",
        ],
        alias="CORS_ALLOW_ORIGINS",
    )
    cors_allow_origin_regex: str | None = Field(
        default=None, alias="CORS_ALLOW_ORIGIN_REGEX"
    )

    # ==========================================================================
    # OpenTelemetry (optional)
    # ==========================================================================

    otel_enabled: bool = Field(default=False, alias="OTEL_ENABLED")
    otel_service_name: str = Field(default="rideflow-backend", alias="OTEL_SERVICE_NAME")
    otel_service_version: str = Field(default="0.1.0", alias="OTEL_SERVICE_VERSION")
    otel_exporter_otlp_endpoint: str = Field(
        default="http://jaeger:4317", alias="OTEL_EXPORTER_OTLP_ENDPOINT"
    )
    otel_exporter_otlp_headers: str | None = Field(
        default=None, alias="OTEL_EXPORTER_OTLP_HEADERS"
    )

    # ==========================================================================
    # Pydantic Settings Config
    # ==========================================================================

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ==========================================================================
    # Validators
    # ==========================================================================

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, value: Any) -> list[str]:
        """Parse comma-separated CORS origins, rejecting wildcard '*'."""
        parsed = _split_csv_list(value)

        if "*" in parsed:
            raise ValueError(
                "Wildcard CORS origin '*' is not allowed. "
                "Specify explicit origins like 'http://localhost:3000'."
            )
        return parsed

    @field_validator("trip_file_names", "gbfs_station_info_urls", mode="before")
    @classmethod
    def parse_comma_separated(cls, value: Any) -> list[str]:
        """Parse comma-separated file names and feed URLs."""
        return _split_csv_list(value)

    @field_validator("gbfs_station_info_urls")
    @classmethod
    def validate_feed_urls(cls, value: list[str]) -> list[str]:
        """Only http(s) feeds can be fetched."""
        for url in value:
            if not url.startswith(("http://", "https://")):
                raise ValueError(f"GBFS feed URL must be http(s): {url}")
        return value

    @model_validator(mode="after")
    def validate_production_paths(self) -> "Settings":
        """Production deployments must point at an absolute data directory."""
        if self.environment.lower() == "production":
            if not Path(self.trip_data_dir).is_absolute():
                raise ValueError(
                    "Relative TRIP_DATA_DIR detected in production. "
                    "Set TRIP_DATA_DIR to an absolute path."
                )
        return self


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
