"""
Station geocoding.

Resolves a station name to a coordinate. Authoritative GBFS positions win,
then locally supplied overrides matched on a normalized name, and finally a
deterministic synthetic position derived from the name hash. Synthetic points
are validated against the city boundary polygon when one is loaded, so every
station always lands somewhere plausible.
"""

from __future__ import annotations

import json
import logging
import math
import re
import unicodedata
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import httpx
from shapely.geometry import Point, shape
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from app.core.config import Settings
from app.core.metrics import record_feed_fetch, record_geocode_resolution
from app.core.telemetry import add_traceparent_header
from app.services.network_dto import LatLng
from app.services.station_hash import fnv1a_32, unit_fraction

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
KM_TO_MILES = 0.621371

# Approximate Toronto bounds used for the first synthetic guess.
DEFAULT_MIN_LAT, DEFAULT_MAX_LAT = 43.58, 43.85
DEFAULT_MIN_LNG, DEFAULT_MAX_LNG = -79.65, -79.12
DEFAULT_CENTROID = LatLng(lat=43.6532, lng=-79.3832)
DEFAULT_JITTER_DEGREES = 0.01  # ~1 km

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


class GeocodeSource(str, Enum):
    """Which step of the resolution chain produced a coordinate."""

    FEED = "feed"
    OVERRIDE = "override"
    SYNTHETIC = "synthetic"
    JITTER = "jitter"
    CENTROID = "centroid"


@dataclass(frozen=True)
class ResolvedStation:
    name: str
    position: LatLng
    source: GeocodeSource


@dataclass(frozen=True)
class BoundingBox:
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    def interpolate(self, u: float, v: float) -> LatLng:
        return LatLng(
            lat=self.min_lat + u * (self.max_lat - self.min_lat),
            lng=self.min_lng + v * (self.max_lng - self.min_lng),
        )


DEFAULT_BBOX = BoundingBox(
    min_lat=DEFAULT_MIN_LAT,
    max_lat=DEFAULT_MAX_LAT,
    min_lng=DEFAULT_MIN_LNG,
    max_lng=DEFAULT_MAX_LNG,
)


def normalize_name(name: str) -> str:
    """Normalize a station name for override matching.

    Lower-cases, strips diacritics, and collapses runs of non-alphanumeric
    characters into single spaces.
    """
    decomposed = unicodedata.normalize("NFKD", str(name).lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NON_ALNUM.sub(" ", stripped).strip()


def haversine_km(a: LatLng, b: LatLng) -> float:
    """Great-circle distance between two coordinates in kilometres."""
    d_lat = math.radians(b.lat - a.lat)
    d_lng = math.radians(b.lng - a.lng)
    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def format_distance(km: float | None) -> str:
    """Format a distance as ``"1.2 km (0.7 mi)"``; empty for unknown values."""
    if km is None or not math.isfinite(km):
        return ""
    return f"{km:.1f} km ({km * KM_TO_MILES:.1f} mi)"


class Boundary:
    """City boundary polygon used to validate synthetic positions."""

    def __init__(self, geometry: BaseGeometry) -> None:
        if geometry.is_empty:
            raise ValueError("Boundary geometry is empty")
        self._geometry = geometry

    @classmethod
    def from_geojson(cls, data: Mapping[str, Any]) -> "Boundary":
        """Build a boundary from a FeatureCollection, Feature or bare geometry."""
        kind = data.get("type")
        if kind == "FeatureCollection":
            geometries = [
                shape(feature["geometry"])
                for feature in data.get("features") or []
                if feature.get("geometry")
            ]
            if not geometries:
                raise ValueError("Boundary FeatureCollection has no geometries")
            return cls(unary_union(geometries))
        if kind == "Feature":
            if not data.get("geometry"):
                raise ValueError("Boundary Feature has no geometry")
            return cls(shape(data["geometry"]))
        return cls(shape(data))

    def contains(self, position: LatLng) -> bool:
        return bool(self._geometry.contains(Point(position.lng, position.lat)))

    @property
    def centroid(self) -> LatLng:
        point = self._geometry.centroid
        return LatLng(lat=point.y, lng=point.x)


def parse_gbfs_stations(payload: Any) -> list[tuple[str, LatLng]]:
    """Extract ``(name, position)`` pairs from a GBFS station_information body."""
    if not isinstance(payload, Mapping):
        return []
    data = payload.get("data")
    stations = (data or {}).get("stations") if isinstance(data, Mapping) else None
    if stations is None:
        stations = payload.get("stations")
    if not isinstance(stations, list):
        return []

    records: list[tuple[str, LatLng]] = []
    for station in stations:
        if not isinstance(station, Mapping):
            continue
        name = str(
            station.get("name")
            or station.get("station_name")
            or station.get("short_name")
            or ""
        ).strip()
        position = _coerce_position(
            station.get("lat"),
            station.get("lon") if station.get("lon") is not None else station.get("lng"),
        )
        if name and position is not None:
            records.append((name, position))
    return records


def parse_override_records(payload: Any) -> list[tuple[str, LatLng]]:
    """Extract ``(name, position)`` pairs from a local override list."""
    if not isinstance(payload, list):
        return []
    records: list[tuple[str, LatLng]] = []
    for record in payload:
        if not isinstance(record, Mapping) or not record.get("name"):
            continue
        position = _coerce_position(record.get("lat"), record.get("lng"))
        if position is not None:
            records.append((str(record["name"]), position))
    return records


def _coerce_position(lat: Any, lng: Any) -> LatLng | None:
    try:
        position = LatLng(lat=float(lat), lng=float(lng))
    except (TypeError, ValueError):
        return None
    return position if position.is_finite else None


class GeocodeResolver:
    """Resolves station names to coordinates with a total fallback chain."""

    def __init__(
        self,
        bbox: BoundingBox = DEFAULT_BBOX,
        fallback_centroid: LatLng = DEFAULT_CENTROID,
        jitter_degrees: float = DEFAULT_JITTER_DEGREES,
    ) -> None:
        self._bbox = bbox
        self._fallback_centroid = fallback_centroid
        self._jitter = jitter_degrees
        self._exact: dict[str, LatLng] = {}
        self._feed_normalized: dict[str, LatLng] = {}
        self._overrides: dict[str, LatLng] = {}
        self._boundary: Boundary | None = None
        self._memo: dict[str, ResolvedStation] = {}

    @property
    def boundary(self) -> Boundary | None:
        return self._boundary

    @property
    def centroid(self) -> LatLng:
        if self._boundary is not None:
            return self._boundary.centroid
        return self._fallback_centroid

    def seed(self, positions: Mapping[str, LatLng]) -> None:
        """Register authoritative positions keyed by exact name."""
        self._exact.update(positions)
        self._memo.clear()

    def apply_feed(self, records: Iterable[tuple[str, LatLng]]) -> int:
        """Register authoritative feed positions (exact and normalized keys)."""
        count = 0
        for name, position in records:
            self._exact[name] = position
            self._feed_normalized[normalize_name(name)] = position
            count += 1
        self._memo.clear()
        return count

    def apply_overrides(self, records: Iterable[tuple[str, LatLng]]) -> int:
        """Register local overrides keyed by normalized name."""
        count = 0
        for name, position in records:
            self._overrides[normalize_name(name)] = position
            count += 1
        self._memo.clear()
        return count

    def set_boundary(self, boundary: Boundary | None) -> None:
        self._boundary = boundary
        self._memo.clear()

    def resolve(self, name: str) -> LatLng:
        """Resolve ``name`` to a finite coordinate."""
        return self.resolve_with_source(name).position

    def resolve_with_source(self, name: str) -> ResolvedStation:
        cached = self._memo.get(name)
        if cached is not None:
            return cached

        key = normalize_name(name)
        if name in self._exact:
            resolved = ResolvedStation(name, self._exact[name], GeocodeSource.FEED)
        elif key in self._overrides:
            resolved = ResolvedStation(
                name, self._overrides[key], GeocodeSource.OVERRIDE
            )
        elif key in self._feed_normalized:
            resolved = ResolvedStation(
                name, self._feed_normalized[key], GeocodeSource.FEED
            )
        else:
            resolved = self._synthetic(name)

        record_geocode_resolution(resolved.source.value)
        self._memo[name] = resolved
        return resolved

    def synthetic_position(self, name: str) -> LatLng:
        """Deterministic fallback position for ``name``."""
        return self._synthetic(name).position

    def _synthetic(self, name: str) -> ResolvedStation:
        h = fnv1a_32(name)
        candidate = self._bbox.interpolate(unit_fraction(h), unit_fraction(h >> 10))
        if self._boundary is None or self._boundary.contains(candidate):
            return ResolvedStation(name, candidate, GeocodeSource.SYNTHETIC)

        centroid = self.centroid
        ju = (unit_fraction(h >> 5) - 0.5) * 2
        jv = (unit_fraction(h >> 11) - 0.5) * 2
        jittered = LatLng(
            lat=centroid.lat + jv * self._jitter,
            lng=centroid.lng + ju * self._jitter,
        )
        if self._boundary.contains(jittered):
            return ResolvedStation(name, jittered, GeocodeSource.JITTER)
        return ResolvedStation(name, centroid, GeocodeSource.CENTROID)


@dataclass
class FeedLoadSummary:
    gbfs_url: str | None = None
    gbfs_stations: int = 0
    overrides: int = 0
    boundary_loaded: bool = False


class GeocodeFeedLoader:
    """Fetches optional geocode feeds and applies them to a resolver.

    Every step is best-effort: failures are logged and skipped so the
    synthetic fallback keeps working.
    """

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport

    async def load_into(self, resolver: GeocodeResolver) -> FeedLoadSummary:
        summary = FeedLoadSummary()
        async with httpx.AsyncClient(
            timeout=self._settings.geocode_fetch_timeout_seconds,
            transport=self._transport,
            follow_redirects=True,
        ) as client:
            url, records = await self._fetch_gbfs(client)
            if records:
                summary.gbfs_url = url
                summary.gbfs_stations = resolver.apply_feed(records)

            overrides = self._read_overrides()
            if overrides:
                summary.overrides = resolver.apply_overrides(overrides)

            boundary = await self._load_boundary(client)
            if boundary is not None:
                resolver.set_boundary(boundary)
                summary.boundary_loaded = True

        logger.info(
            "Geocode feeds loaded: %d GBFS stations, %d overrides, boundary=%s",
            summary.gbfs_stations,
            summary.overrides,
            summary.boundary_loaded,
        )
        return summary

    async def _fetch_json(self, client: httpx.AsyncClient, url: str) -> Any:
        response = await client.get(
            url,
            headers=add_traceparent_header(
                {"Accept": "application/json", "Cache-Control": "no-store"}
            ),
        )
        response.raise_for_status()
        return response.json()

    async def _fetch_gbfs(
        self, client: httpx.AsyncClient
    ) -> tuple[str | None, list[tuple[str, LatLng]]]:
        """Try each GBFS URL in order; the first non-empty station list wins."""
        for url in self._settings.gbfs_station_info_urls:
            try:
                payload = await self._fetch_json(client, url)
            except (httpx.HTTPError, ValueError) as exc:
                record_feed_fetch("gbfs", "error")
                logger.warning("GBFS feed %s unavailable: %s", url, exc)
                continue
            records = parse_gbfs_stations(payload)
            if records:
                record_feed_fetch("gbfs", "success")
                logger.info("Loaded %d stations from GBFS: %s", len(records), url)
                return url, records
            record_feed_fetch("gbfs", "empty")
        return None, []

    def _read_overrides(self) -> list[tuple[str, LatLng]]:
        path_value = self._settings.geocode_overrides_path
        if not path_value:
            return []
        path = Path(path_value)
        if not path.is_file():
            logger.info("No station geocode overrides at %s", path)
            return []
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            record_feed_fetch("overrides", "error")
            logger.warning("Failed to read station geocodes from %s: %s", path, exc)
            return []
        records = parse_override_records(payload)
        record_feed_fetch("overrides", "success")
        logger.info("Loaded %d station geocodes from %s", len(records), path)
        return records

    async def _load_boundary(self, client: httpx.AsyncClient) -> Boundary | None:
        local_path = self._settings.boundary_geojson_path
        url = self._settings.boundary_geojson_url
        try:
            if local_path:
                payload = json.loads(Path(local_path).read_text(encoding="utf-8"))
            elif url:
                payload = await self._fetch_json(client, url)
            else:
                logger.info("No boundary polygon configured; skipping validation")
                return None
            boundary = Boundary.from_geojson(payload)
        except (OSError, ValueError, KeyError, TypeError, httpx.HTTPError) as exc:
            record_feed_fetch("boundary", "error")
            logger.warning("Boundary polygon unavailable: %s", exc)
            return None
        record_feed_fetch("boundary", "success")
        return boundary
