from contextlib import asynccontextmanager
import asyncio
import logging

from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from app.api.metrics import router as metrics_router
from app.api.routes import api_router
from app.core.config import Settings, get_settings
from app.core.telemetry import (
    configure_opentelemetry,
    instrument_fastapi,
    instrument_httpx,
)
from app.services.aggregation_cache import AggregationCache
from app.services.geocode import GeocodeFeedLoader, GeocodeResolver
from app.services.network_service import NetworkState
from app.services.trip_store import TripStore

logger = logging.getLogger(__name__)
REQUEST_ID_HEADER = "X-Request-Id"


def _install_request_id_middleware(app: FastAPI) -> None:
    """Ensure each response includes a stable X-Request-Id header."""

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER, str(uuid4()))
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def build_network_state(settings: Settings) -> NetworkState:
    """Load the trip files and build the immutable aggregation cache."""
    dataset = TripStore(settings).load()
    cache = AggregationCache.build(dataset.monthly)
    resolver = GeocodeResolver()
    resolver.seed(dataset.seeded_positions)
    state = NetworkState(settings, cache, resolver, ingest_report=dataset.report)
    state.derive()
    return state


async def _load_geocode_feeds(state: NetworkState, settings: Settings) -> None:
    """Fetch geocode feeds and flag the network for re-derivation."""
    try:
        await GeocodeFeedLoader(settings).load_into(state.resolver)
    except Exception:
        logger.exception("Geocode feed loading failed; keeping synthetic positions")
        return
    state.mark_geometry_stale()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan events."""
    settings = get_settings()

    # Configure OpenTelemetry at startup
    configure_opentelemetry(
        service_name=settings.otel_service_name,
        service_version=settings.otel_service_version,
        otlp_endpoint=settings.otel_exporter_otlp_endpoint,
        otlp_headers=settings.otel_exporter_otlp_headers,
        enabled=settings.otel_enabled,
    )

    # Instrument httpx for outbound request tracing
    instrument_httpx(enabled=settings.otel_enabled)

    state = build_network_state(settings)
    app.state.network = state

    feed_task: asyncio.Task | None = None
    if settings.geocode_feeds_enabled:
        feed_task = asyncio.create_task(_load_geocode_feeds(state, settings))

    yield

    if feed_task is not None and not feed_task.done():
        feed_task.cancel()
        try:
            await feed_task
        except asyncio.CancelledError:
            pass


def create_app() -> FastAPI:
    """Application factory for FastAPI."""
    settings = get_settings()
    app = FastAPI(
        title="RideFlow API",
        description="Bike-share trip network aggregation and layout service.",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Instrument FastAPI for tracing if enabled
    instrument_fastapi(app, enabled=settings.otel_enabled)
    _install_request_id_middleware(app)

    allow_origins = settings.cors_allow_origins
    allow_origin_regex = settings.cors_allow_origin_regex
    if allow_origins or allow_origin_regex:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allow_origins,
            allow_origin_regex=allow_origin_regex,
            allow_credentials=bool(allow_origins),
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(metrics_router)
    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()
