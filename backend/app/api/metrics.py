from __future__ import annotations

from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from app.core.metrics import record_visible_network

router = APIRouter()


@router.get("/metrics", include_in_schema=False)
async def metrics(request: Request) -> Response:
    """Expose Prometheus metrics, refreshing the view gauges first."""
    state = getattr(request.app.state, "network", None)
    if state is not None:
        selection = state.selection
        record_visible_network(len(selection.nodes), len(selection.edges))
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
