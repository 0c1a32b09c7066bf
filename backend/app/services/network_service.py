"""
Network service.

Owns the application state of the trip network view: the aggregation cache,
the geocode resolver, the view controls, the current selection snapshot and
the force layout. Filter actions re-derive the selection and reseed the
layout; ``frame()`` advances the layout one step and projects the result
into a render-ready payload.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass

from app.core.config import Settings
from app.core.metrics import observe_derivation
from app.core.telemetry import derivation_span
from app.models.network import (
    FrameEdge,
    FrameLabel,
    FrameLegend,
    FrameNode,
    NetworkFrame,
    RouteDestination,
    StationRoutesResponse,
    ViewStateResponse,
    ZoomState,
)
from app.services.aggregation_cache import AggregationCache
from app.services.geocode import GeocodeResolver, format_distance, haversine_km
from app.services.layout import ForceLayout, LayoutLink, LayoutNode
from app.services.network_dto import IngestReport, MemberFilter, MonthFilter
from app.services.network_errors import NetworkDerivationError, StationNotFoundError
from app.services.projection import (
    GeoProjection,
    ProjectedPoint,
    Viewport,
    back_to_front,
    depth_for,
    edge_depth,
    edge_scale,
    project,
)
from app.services.route_ranking import (
    RouteHistogram,
    Selection,
    route_histogram,
    select,
    select_labels,
    station_routes,
)
from app.services.view_state import ViewState, ZoomAction

logger = logging.getLogger(__name__)

NO_DATA_MESSAGE = "No data to display for the current filters."

RADIUS_RANGE = (4.0, 18.0)
MIN_RADIUS = 3.0
DETAIL_DIMMED_RADIUS = 2.0
LINK_WIDTH_RANGE = (0.6, 6.0)
MIN_LINK_WIDTH = 0.4
LABEL_OFFSET = (8.0, -8.0)

PALETTE_DEFAULT = "YlOrRd"
PALETTE_COLOR_BLIND = "viridis"


def sqrt_scale(
    value: float, domain: tuple[float, float], out: tuple[float, float]
) -> float:
    """Square-root scale; a degenerate domain maps to the range midpoint."""
    lo, hi = math.sqrt(max(0.0, domain[0])), math.sqrt(max(0.0, domain[1]))
    if hi == lo:
        t = 0.5
    else:
        t = (math.sqrt(max(0.0, value)) - lo) / (hi - lo)
    return out[0] + t * (out[1] - out[0])


def normalized(value: float, domain: tuple[float, float]) -> float:
    """Position of ``value`` within ``domain`` clamped to [0, 1]."""
    lo, hi = domain
    if hi == lo:
        return 0.5
    return min(1.0, max(0.0, (value - lo) / (hi - lo)))


def threshold_label(count: int, percentile: float) -> str:
    noun = "trip" if count == 1 else "trips"
    return f"≥ {count} {noun} (P{percentile:g})"


def route_destinations(
    cache: AggregationCache,
    resolver: GeocodeResolver,
    member_filter: MemberFilter,
    month_filter: MonthFilter,
    station: str,
    limit: int,
) -> StationRoutesResponse:
    """Drill-down of ``station`` with great-circle distances."""
    routes = station_routes(cache, member_filter, month_filter, station, limit)
    origin = resolver.resolve(station)
    destinations = []
    for route in routes:
        km = haversine_km(origin, resolver.resolve(route.end_station))
        destinations.append(
            RouteDestination(
                rank=route.rank,
                end_station=route.end_station,
                count=route.count,
                distance_km=round(km, 3),
                distance_label=format_distance(km),
            )
        )
    return StationRoutesResponse(
        station=station,
        member=member_filter,
        month=month_filter,
        routes=destinations,
    )


@dataclass(frozen=True)
class _Extents:
    totals: tuple[float, float]
    weights: tuple[float, float]


class NetworkState:
    """Process-wide state of the network view."""

    def __init__(
        self,
        settings: Settings,
        cache: AggregationCache,
        resolver: GeocodeResolver,
        ingest_report: IngestReport | None = None,
        layout_seed: int = 0,
    ) -> None:
        self.settings = settings
        self.cache = cache
        self.resolver = resolver
        self.ingest_report = ingest_report or IngestReport()
        self.view = ViewState()
        self.viewport = Viewport(
            width=float(settings.viewport_width),
            height=float(settings.viewport_height),
        )
        self.layout = ForceLayout(
            self.viewport.width, self.viewport.height, seed=layout_seed
        )
        self._selection: Selection | None = None
        self._labels: tuple[str, ...] = ()
        self._extents = _Extents(totals=(0.0, 1.0), weights=(1.0, 1.0))
        self._geometry_stale = False

    @property
    def selection(self) -> Selection:
        if self._selection is None or self._geometry_stale:
            return self.derive()
        return self._selection

    def derive(self) -> Selection:
        """Recompute the visible network and reseed the layout."""
        self._geometry_stale = False
        view = self.view
        started = time.perf_counter()
        with derivation_span(
            "select",
            member=view.member_filter.value,
            month=view.month_filter.value,
            percentile=view.percentile,
            detail_station=view.selected_station,
        ):
            selection = select(
                self.cache,
                view.member_filter,
                view.month_filter,
                cap=self.settings.node_cap,
                top_k_per_node=self.settings.top_links_per_node,
                percentile=view.percentile,
                hide_isolated=view.hide_isolated,
                detail_station=view.selected_station,
            )
            self._selection = selection
            self._labels = select_labels(selection)
            self._extents = self._compute_extents(selection)
            self._reseed(selection)
        observe_derivation("select", time.perf_counter() - started)
        logger.debug(
            "Derived %s view: %d nodes, %d edges",
            view.mode.value,
            len(selection.nodes),
            len(selection.edges),
        )
        return selection

    @property
    def geometry_stale(self) -> bool:
        return self._geometry_stale

    def mark_geometry_stale(self) -> None:
        """Flag resolved positions as changed; the next read re-derives.

        Background tasks call this instead of touching the layout.
        """
        self._geometry_stale = True

    @staticmethod
    def _compute_extents(selection: Selection) -> _Extents:
        totals = [node.total for node in selection.nodes]
        weights = [edge.weight for edge in selection.edges]
        return _Extents(
            totals=(min(totals), max(totals)) if totals else (0.0, 1.0),
            weights=(min(weights), max(weights)) if weights else (1.0, 1.0),
        )

    def _base_radius(self, total: int) -> float:
        return max(MIN_RADIUS, sqrt_scale(total, self._extents.totals, RADIUS_RANGE))

    def _reseed(self, selection: Selection) -> None:
        positions = {node.name: self.resolver.resolve(node.name) for node in selection.nodes}
        geo = GeoProjection(positions, self.viewport)
        self.layout.reseed(
            [
                LayoutNode(
                    name=node.name,
                    radius=self._base_radius(node.total),
                    seed=geo.project(positions[node.name]),
                )
                for node in selection.nodes
            ],
            [
                LayoutLink(source=edge.source, target=edge.target, weight=edge.weight)
                for edge in selection.edges
            ],
        )

    # Actions

    def apply_filters(
        self,
        member_filter: MemberFilter | None = None,
        month_filter: MonthFilter | None = None,
        percentile: float | None = None,
        hide_isolated: bool | None = None,
    ) -> Selection:
        if self.view.apply_filters(member_filter, month_filter, percentile, hide_isolated):
            return self.derive()
        return self.selection

    def select_station(self, station: str) -> Selection:
        known = self.cache.stations(self.view.member_filter, self.view.month_filter)
        self.view.select(station, known)
        logger.info("Selected station %s", station)
        return self.derive()

    def back(self) -> Selection:
        if self.view.back():
            return self.derive()
        return self.selection

    def set_display(
        self, mode_3d: bool | None = None, color_blind: bool | None = None
    ) -> Selection:
        if self.view.set_display(mode_3d=mode_3d, color_blind=color_blind):
            return self.derive()
        return self.selection

    def rotate(self, dx: float, dy: float) -> bool:
        return self.view.rotate(dx, dy)

    def zoom(self, action: ZoomAction) -> None:
        self.view.apply_zoom(action, self.viewport.center)

    def pin(self, station: str, x: float, y: float) -> None:
        self._require_visible(station)
        self.layout.pin(station, x, y)

    def release(self, station: str) -> None:
        self._require_visible(station)
        self.layout.release(station)

    def _require_visible(self, station: str) -> None:
        if all(node.name != station for node in self.selection.nodes):
            raise StationNotFoundError(station)

    # Read models

    def histogram(self) -> RouteHistogram:
        selection = self.selection
        return route_histogram(selection.candidate_weights, selection.threshold_count)

    def station_routes(self, station: str) -> StationRoutesResponse:
        return route_destinations(
            self.cache,
            self.resolver,
            self.view.member_filter,
            self.view.month_filter,
            station,
            self.settings.detail_top_routes,
        )

    def view_summary(self) -> ViewStateResponse:
        view = self.view
        selection = self.selection
        return ViewStateResponse(
            mode=view.mode.value,
            selected_station=view.selected_station,
            member=view.member_filter,
            month=view.month_filter,
            month_label=view.month_filter.label,
            percentile=view.percentile,
            threshold_count=selection.threshold_count,
            threshold_label=threshold_label(selection.threshold_count, view.percentile),
            hide_isolated=view.hide_isolated,
            mode_3d=view.mode_3d,
            color_blind=view.color_blind,
            yaw=view.camera.yaw,
            pitch=view.camera.pitch,
            zoom=ZoomState(k=view.zoom.k, x=view.zoom.x, y=view.zoom.y),
        )

    def frame(self, frame_no: int) -> NetworkFrame:
        """Advance the layout for ``frame_no`` and project the visible network."""
        selection = self.selection
        self.layout.tick(frame_no)
        started = time.perf_counter()
        with derivation_span("frame", frame=frame_no, mode_3d=self.view.mode_3d):
            projected = self._project_nodes(selection)
            nodes = self._frame_nodes(selection, projected)
            edges = self._frame_edges(selection, projected)
            labels = self._frame_labels(projected)
        observe_derivation("frame", time.perf_counter() - started)

        view = self.view
        palette = PALETTE_COLOR_BLIND if view.color_blind else PALETTE_DEFAULT
        route_info = None
        if selection.detail_station is not None:
            route_info = (
                "Showing top 5 end stations starting from "
                f"{selection.detail_station}"
            )
        lo, hi = self._extents.totals
        return NetworkFrame(
            frame=frame_no,
            mode=view.mode.value,
            selected_station=selection.detail_station,
            mode_3d=view.mode_3d,
            threshold_count=selection.threshold_count,
            threshold_label=threshold_label(selection.threshold_count, view.percentile),
            route_info=route_info,
            legend=FrameLegend(
                palette=palette,
                min_total=int(lo) if nodes else 0,
                max_total=int(hi) if nodes else 0,
            ),
            zoom=ZoomState(k=view.zoom.k, x=view.zoom.x, y=view.zoom.y),
            settled=self.layout.is_settled,
            message=NO_DATA_MESSAGE if selection.is_empty else None,
            nodes=nodes,
            edges=edges,
            labels=labels,
        )

    def _project_nodes(self, selection: Selection) -> dict[str, ProjectedPoint]:
        positions = self.layout.positions()
        projected: dict[str, ProjectedPoint] = {}
        for node in selection.nodes:
            if node.name not in positions:
                raise NetworkDerivationError(
                    f"Station {node.name!r} has no layout position"
                )
            x, y = positions[node.name]
            projected[node.name] = project(
                x,
                y,
                depth_for(node.name, self.viewport),
                self.view.camera,
                self.viewport,
                self.view.mode_3d,
            )
        return projected

    def _frame_nodes(
        self, selection: Selection, projected: dict[str, ProjectedPoint]
    ) -> list[FrameNode]:
        detail = selection.detail_station
        connected = {edge.target for edge in selection.edges}
        mode_3d = self.view.mode_3d

        nodes: list[FrameNode] = []
        for node in selection.nodes:
            point = projected[node.name]
            radius = self._base_radius(node.total)
            emphasis = "normal"
            if detail is not None:
                if node.name == detail:
                    emphasis = "highlight"
                elif node.name in connected:
                    emphasis = "connected"
                else:
                    emphasis = "dimmed"
                if emphasis == "dimmed":
                    radius = DETAIL_DIMMED_RADIUS
                else:
                    radius = max(
                        MIN_RADIUS,
                        sqrt_scale(node.total, self._extents.totals, RADIUS_RANGE) * 2,
                    )
            if mode_3d:
                radius *= point.scale
            nodes.append(
                FrameNode(
                    id=node.name,
                    x=point.screen_x,
                    y=point.screen_y,
                    radius=radius,
                    color_value=normalized(node.total, self._extents.totals),
                    scale=point.scale,
                    start_count=node.start_count,
                    end_count=node.end_count,
                    total=node.total,
                    emphasis=emphasis,
                    pinned=self.layout.is_pinned(node.name),
                )
            )
        if mode_3d:
            nodes = back_to_front(nodes, lambda n: projected[n.id].camera_depth)
        return nodes

    def _frame_edges(
        self, selection: Selection, projected: dict[str, ProjectedPoint]
    ) -> list[FrameEdge]:
        mode_3d = self.view.mode_3d
        detail = selection.detail_station
        depths: dict[int, float] = {}
        edges: list[FrameEdge] = []
        for edge in selection.edges:
            source = projected.get(edge.source)
            target = projected.get(edge.target)
            if source is None or target is None:
                raise NetworkDerivationError(
                    f"Route {edge.source!r} -> {edge.target!r} has an endpoint "
                    "outside the visible set"
                )
            width = sqrt_scale(edge.weight, self._extents.weights, LINK_WIDTH_RANGE)
            if mode_3d:
                width *= edge_scale(source, target)
            km = haversine_km(
                self.resolver.resolve(edge.source), self.resolver.resolve(edge.target)
            )
            frame_edge = FrameEdge(
                source=edge.source,
                target=edge.target,
                x1=source.screen_x,
                y1=source.screen_y,
                x2=target.screen_x,
                y2=target.screen_y,
                width=max(MIN_LINK_WIDTH, width),
                value=edge.weight,
                distance_km=round(km, 3),
                dimmed=detail is not None and edge.source != detail,
            )
            depths[id(frame_edge)] = edge_depth(source, target)
            edges.append(frame_edge)
        if mode_3d:
            edges = back_to_front(edges, lambda e: depths[id(e)])
        return edges

    def _frame_labels(self, projected: dict[str, ProjectedPoint]) -> list[FrameLabel]:
        dx, dy = LABEL_OFFSET
        labels = []
        for name in self._labels:
            point = projected.get(name)
            if point is None:
                continue
            opacity = 1.0
            if self.view.mode_3d:
                opacity = max(0.35, min(1.0, 0.6 + 0.4 * point.scale))
            labels.append(
                FrameLabel(
                    id=name,
                    x=point.screen_x + dx,
                    y=point.screen_y + dy,
                    opacity=opacity,
                )
            )
        return labels
