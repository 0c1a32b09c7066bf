from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

DERIVATIONS = Counter(
    "rideflow_derivations_total",
    "Network derivation passes executed by RideFlow.",
    labelnames=("kind",),
)
DERIVATION_LATENCY = Histogram(
    "rideflow_derivation_seconds",
    "Latency of network derivation passes.",
    labelnames=("kind",),
)
GEOCODE_RESOLUTIONS = Counter(
    "rideflow_geocode_resolutions_total",
    "Station coordinates resolved, by resolution source.",
    labelnames=("source",),
)
FEED_FETCHES = Counter(
    "rideflow_feed_fetches_total",
    "Outbound geocode/boundary feed fetches.",
    labelnames=("feed", "result"),
)
TRIPS_LOADED = Counter(
    "rideflow_trips_loaded_total",
    "Validated trip records loaded into the aggregation cache.",
)
VISIBLE_STATIONS = Gauge(
    "rideflow_visible_stations",
    "Stations in the current network view.",
)
VISIBLE_ROUTES = Gauge(
    "rideflow_visible_routes",
    "Routes in the current network view.",
)


def observe_derivation(kind: str, duration_seconds: float) -> None:
    """Record a derivation pass and its latency."""
    DERIVATIONS.labels(kind=kind).inc()
    DERIVATION_LATENCY.labels(kind=kind).observe(duration_seconds)


def record_geocode_resolution(source: str) -> None:
    """Increment the geocode resolution counter for a source."""
    GEOCODE_RESOLUTIONS.labels(source=source).inc()


def record_feed_fetch(feed: str, result: str) -> None:
    """Record the outcome of a feed fetch."""
    FEED_FETCHES.labels(feed=feed, result=result).inc()


def record_trips_loaded(count: int) -> None:
    """Add validated trip records to the loaded counter."""
    if count > 0:
        TRIPS_LOADED.inc(count)


def record_visible_network(stations: int, routes: int) -> None:
    """Publish the size of the current network view."""
    VISIBLE_STATIONS.set(stations)
    VISIBLE_ROUTES.set(routes)
