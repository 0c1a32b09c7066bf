"""
View endpoints.

Mutate the shared view state through explicit actions and pull one render
frame per display refresh. Handlers are async so every access to the
network state runs on the event loop thread.
"""

import logging
from collections.abc import Callable
from typing import Annotated, TypeVar

from fastapi import APIRouter, Depends, Path, Query, status

from app.api.v1.shared.dependencies import get_network_state
from app.api.v1.shared.errors import (
    derivation_failed,
    invalid_request,
    station_not_found,
)
from app.models.network import (
    DisplayUpdateRequest,
    FilterUpdateRequest,
    NetworkFrame,
    PinRequest,
    RotateRequest,
    SelectStationRequest,
    ViewStateResponse,
    ZoomRequest,
)
from app.services.network_errors import NetworkDerivationError, StationNotFoundError
from app.services.network_service import NetworkState
from app.services.view_state import ZoomAction

logger = logging.getLogger(__name__)

router = APIRouter()

T = TypeVar("T")


def _run_action(action: str, func: Callable[[], T]) -> T:
    """Run a state action, mapping service errors to HTTP responses."""
    try:
        return func()
    except StationNotFoundError as exc:
        raise station_not_found(exc) from exc
    except NetworkDerivationError as exc:
        logger.exception("View action '%s' failed", action)
        raise derivation_failed(action) from exc
    except ValueError as exc:
        raise invalid_request(exc) from exc


@router.get("", response_model=ViewStateResponse, summary="Current view controls")
async def get_view(
    state: NetworkState = Depends(get_network_state),
) -> ViewStateResponse:
    return _run_action("view", state.view_summary)


@router.post("/filters", response_model=ViewStateResponse)
async def update_filters(
    body: FilterUpdateRequest,
    state: NetworkState = Depends(get_network_state),
) -> ViewStateResponse:
    """Change member, month, percentile or hide-isolated controls."""
    _run_action(
        "filters",
        lambda: state.apply_filters(
            member_filter=body.member,
            month_filter=body.month,
            percentile=body.percentile,
            hide_isolated=body.hide_isolated,
        ),
    )
    return state.view_summary()


@router.post("/select", response_model=ViewStateResponse)
async def select_station(
    body: SelectStationRequest,
    state: NetworkState = Depends(get_network_state),
) -> ViewStateResponse:
    """Enter the detail view of a station."""
    _run_action("select", lambda: state.select_station(body.station))
    return state.view_summary()


@router.post("/back", response_model=ViewStateResponse)
async def back_to_overview(
    state: NetworkState = Depends(get_network_state),
) -> ViewStateResponse:
    _run_action("back", state.back)
    return state.view_summary()


@router.post("/display", response_model=ViewStateResponse)
async def update_display(
    body: DisplayUpdateRequest,
    state: NetworkState = Depends(get_network_state),
) -> ViewStateResponse:
    """Toggle 3D perspective or the color-blind palette."""
    _run_action(
        "display",
        lambda: state.set_display(mode_3d=body.mode_3d, color_blind=body.color_blind),
    )
    return state.view_summary()


@router.post("/rotate", response_model=ViewStateResponse)
async def rotate_camera(
    body: RotateRequest,
    state: NetworkState = Depends(get_network_state),
) -> ViewStateResponse:
    state.rotate(body.dx, body.dy)
    return state.view_summary()


@router.post("/zoom", response_model=ViewStateResponse)
async def zoom_view(
    body: ZoomRequest,
    state: NetworkState = Depends(get_network_state),
) -> ViewStateResponse:
    state.zoom(ZoomAction(body.action))
    return state.view_summary()


@router.post("/pins", status_code=status.HTTP_204_NO_CONTENT)
async def pin_station(
    body: PinRequest,
    state: NetworkState = Depends(get_network_state),
) -> None:
    """Fix a station at a layout position until released."""
    _run_action("pin", lambda: state.pin(body.station, body.x, body.y))


@router.delete("/pins/{name}", status_code=status.HTTP_204_NO_CONTENT)
async def release_station(
    name: Annotated[str, Path(min_length=1)],
    state: NetworkState = Depends(get_network_state),
) -> None:
    _run_action("release", lambda: state.release(name))


@router.get("/frame", response_model=NetworkFrame, summary="Render one frame")
async def get_frame(
    frame: Annotated[
        int, Query(ge=0, description="Display frame number; repeats do not step.")
    ] = 0,
    state: NetworkState = Depends(get_network_state),
) -> NetworkFrame:
    return _run_action("frame", lambda: state.frame(frame))
