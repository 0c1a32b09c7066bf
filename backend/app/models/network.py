"""
Trip network models.

Provides Pydantic models for the network, geocode and view API endpoints.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from app.services.network_dto import MemberFilter, MonthFilter

Palette = Literal["YlOrRd", "viridis"]
NodeEmphasis = Literal["normal", "highlight", "connected", "dimmed"]


class StationActivity(BaseModel):
    """Start/end counts of one station within the selected filters."""

    name: str = Field(..., description="Station name.")
    start_count: int = Field(..., ge=0, description="Trips starting here.")
    end_count: int = Field(..., ge=0, description="Trips ending here.")
    total: int = Field(..., ge=0, description="start_count + end_count.")


class RouteEdge(BaseModel):
    source: str = Field(..., description="Start station name.")
    target: str = Field(..., description="End station name.")
    weight: int = Field(..., ge=1, description="Trips on this route.")


class SelectionResponse(BaseModel):
    """Visible network for one filter combination."""

    member: MemberFilter
    month: MonthFilter
    percentile: float = Field(..., ge=0, le=100)
    threshold_count: int = Field(
        ..., ge=0, description="Minimum route weight kept by the percentile."
    )
    candidate_count: int = Field(
        ..., ge=0, description="Routes considered before the threshold."
    )
    detail_station: str | None = None
    nodes: list[StationActivity] = Field(default_factory=list)
    edges: list[RouteEdge] = Field(default_factory=list)
    labels: list[str] = Field(
        default_factory=list, description="Station names that get a text label."
    )


class TopStationsResponse(BaseModel):
    member: MemberFilter
    month: MonthFilter
    stations: list[StationActivity] = Field(default_factory=list)
    message: str | None = None


class RouteDestination(BaseModel):
    rank: int = Field(..., ge=1)
    end_station: str
    count: int = Field(..., ge=1)
    distance_km: float | None = Field(
        None, ge=0, description="Great-circle distance between the stations."
    )
    distance_label: str = Field("", description="Distance as 'x.x km (y.y mi)'.")


class StationRoutesResponse(BaseModel):
    """Drill-down of a station's most frequent destinations."""

    station: str
    member: MemberFilter
    month: MonthFilter
    routes: list[RouteDestination] = Field(default_factory=list)


class IngestFileSummary(BaseModel):
    file: str
    month_key: str
    raw_rows: int = Field(..., ge=0)
    cleaned_rows: int = Field(..., ge=0)
    columns: list[str] = Field(default_factory=list)
    expected_present: int = Field(..., ge=0)
    expected_total: int = Field(..., ge=0)
    missing: list[str] = Field(default_factory=list)


class IngestReportResponse(BaseModel):
    files: list[IngestFileSummary] = Field(default_factory=list)
    total_raw_rows: int = Field(..., ge=0)
    total_cleaned_rows: int = Field(..., ge=0)
    synthetic: bool = Field(
        ..., description="True when the demonstration dataset was injected."
    )


class HistogramBucket(BaseModel):
    lower: float
    upper: float
    count: int = Field(..., ge=0)
    active: bool = Field(..., description="Bin reaches the current threshold.")


class HistogramResponse(BaseModel):
    """Distribution of candidate route weights for the current view."""

    percentile: float = Field(..., ge=0, le=100)
    cutoff: int = Field(..., ge=0)
    p50: float | None = None
    bins: list[HistogramBucket] = Field(default_factory=list)


class GeocodeResponse(BaseModel):
    name: str
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    source: Literal["feed", "override", "synthetic", "jitter", "centroid"]


class ZoomState(BaseModel):
    k: float = Field(1.0, gt=0, description="Zoom scale factor.")
    x: float = 0.0
    y: float = 0.0


class ViewStateResponse(BaseModel):
    """Current user-controlled view values."""

    mode: Literal["overview", "detail"]
    selected_station: str | None = None
    member: MemberFilter
    month: MonthFilter
    month_label: str
    percentile: float = Field(..., ge=0, le=100)
    threshold_count: int = Field(..., ge=0)
    threshold_label: str
    hide_isolated: bool
    mode_3d: bool
    color_blind: bool
    yaw: float
    pitch: float
    zoom: ZoomState


class FrameNode(BaseModel):
    id: str
    x: float
    y: float
    radius: float = Field(..., ge=0)
    color_value: float = Field(..., ge=0, le=1)
    scale: float = Field(..., gt=0, description="Perspective scale (1 in 2D).")
    start_count: int = Field(..., ge=0)
    end_count: int = Field(..., ge=0)
    total: int = Field(..., ge=0)
    emphasis: NodeEmphasis = "normal"
    pinned: bool = False


class FrameEdge(BaseModel):
    source: str
    target: str
    x1: float
    y1: float
    x2: float
    y2: float
    width: float = Field(..., ge=0)
    value: int = Field(..., ge=1)
    distance_km: float | None = None
    dimmed: bool = False


class FrameLabel(BaseModel):
    id: str
    x: float
    y: float
    opacity: float = Field(..., ge=0, le=1)


class FrameLegend(BaseModel):
    palette: Palette
    min_total: int = Field(..., ge=0)
    max_total: int = Field(..., ge=0)


class NetworkFrame(BaseModel):
    """Everything a renderer needs to draw one display frame."""

    frame: int
    mode: Literal["overview", "detail"]
    selected_station: str | None = None
    mode_3d: bool
    threshold_count: int = Field(..., ge=0)
    threshold_label: str
    route_info: str | None = None
    legend: FrameLegend
    zoom: ZoomState
    settled: bool = Field(..., description="Layout has cooled down.")
    message: str | None = None
    nodes: list[FrameNode] = Field(default_factory=list)
    edges: list[FrameEdge] = Field(default_factory=list)
    labels: list[FrameLabel] = Field(default_factory=list)


class FilterUpdateRequest(BaseModel):
    member: MemberFilter | None = None
    month: MonthFilter | None = None
    percentile: float | None = Field(None, ge=0, le=100)
    hide_isolated: bool | None = None


class SelectStationRequest(BaseModel):
    station: str = Field(..., min_length=1)


class DisplayUpdateRequest(BaseModel):
    mode_3d: bool | None = None
    color_blind: bool | None = None


class RotateRequest(BaseModel):
    dx: float = Field(..., description="Horizontal drag delta in pixels.")
    dy: float = Field(..., description="Vertical drag delta in pixels.")


class ZoomRequest(BaseModel):
    action: Literal["in", "out", "reset"]


class PinRequest(BaseModel):
    station: str = Field(..., min_length=1)
    x: float = Field(..., allow_inf_nan=False, description="Layout x coordinate.")
    y: float = Field(..., allow_inf_nan=False, description="Layout y coordinate.")
