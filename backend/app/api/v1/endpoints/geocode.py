from typing import Annotated

from fastapi import APIRouter, Depends, Query

from app.api.v1.shared.dependencies import get_network_state
from app.models.network import GeocodeResponse
from app.services.network_service import NetworkState

router = APIRouter()


@router.get("/geocode", response_model=GeocodeResponse)
async def geocode_station(
    name: Annotated[str, Query(min_length=1, description="Station name.")],
    state: NetworkState = Depends(get_network_state),
) -> GeocodeResponse:
    """Resolve a station name to a coordinate; always succeeds."""
    resolved = state.resolver.resolve_with_source(name)
    return GeocodeResponse(
        name=name,
        lat=resolved.position.lat,
        lng=resolved.position.lng,
        source=resolved.source.value,
    )
