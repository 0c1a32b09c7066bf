"""
Route ranking and filtering.

Turns one aggregation cache cell into the visible node and edge sets. Nodes
are the most active stations; edges are each node's strongest outbound
routes, thinned by a percentile threshold in overview mode or reduced to the
selected station's top routes in detail mode.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import numpy as np

from app.services.aggregation_cache import AggregationCache
from app.services.network_dto import MemberFilter, MonthFilter, StationStat
from app.services.network_errors import StationNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_NODE_CAP = 60
DEFAULT_TOP_K_PER_NODE = 5
DETAIL_TOP_ROUTES = 5
DEFAULT_TOP_START_ROWS = 25

MIN_LABELS = 8
MAX_LABELS = 20
LABEL_FRACTION = 0.2

HISTOGRAM_BINS = 20


@dataclass(frozen=True)
class VisibleNode:
    name: str
    start_count: int
    end_count: int

    @property
    def total(self) -> int:
        return self.start_count + self.end_count


@dataclass(frozen=True)
class VisibleEdge:
    source: str
    target: str
    weight: int


@dataclass(frozen=True)
class Selection:
    """Visible network for one set of filter values."""

    nodes: tuple[VisibleNode, ...]
    edges: tuple[VisibleEdge, ...]
    threshold_count: int
    percentile: float
    candidate_weights: tuple[int, ...]
    detail_station: str | None = None

    @property
    def is_detail(self) -> bool:
        return self.detail_station is not None

    @property
    def is_empty(self) -> bool:
        return not self.nodes


@dataclass(frozen=True)
class RankedRoute:
    rank: int
    start_station: str
    end_station: str
    count: int


@dataclass(frozen=True)
class HistogramBin:
    lower: float
    upper: float
    count: int
    active: bool


@dataclass(frozen=True)
class RouteHistogram:
    bins: tuple[HistogramBin, ...]
    cutoff: int
    p50: float | None


def rank_stations(stations: Iterable[StationStat]) -> list[StationStat]:
    """Sort stations by total activity descending, ties by name ascending."""
    return sorted(stations, key=lambda stat: (-stat.total, stat.name))


def percentile_threshold(sorted_weights: Sequence[int], percentile: float) -> int:
    """Minimum edge weight kept at ``percentile`` (0..100) of the candidates.

    Linear interpolation between closest ranks, floored. Zero when there are
    no candidate weights.
    """
    if not sorted_weights:
        return 0
    p = min(100.0, max(0.0, float(percentile)))
    value = np.quantile(
        np.asarray(sorted_weights, dtype=float), p / 100.0, method="linear"
    )
    return int(math.floor(value))


def select(
    cache: AggregationCache,
    member_filter: MemberFilter,
    month_filter: MonthFilter,
    cap: int = DEFAULT_NODE_CAP,
    top_k_per_node: int = DEFAULT_TOP_K_PER_NODE,
    percentile: float = 0,
    hide_isolated: bool = False,
    detail_station: str | None = None,
) -> Selection:
    """Derive the visible nodes and edges for one filter combination.

    Raises:
        StationNotFoundError: ``detail_station`` has no activity in the cell.
    """
    stations = cache.stations(member_filter, month_filter)
    if detail_station is not None and detail_station not in stations:
        raise StationNotFoundError(detail_station)

    ranked = rank_stations(stations.values())[: max(0, cap)]
    if detail_station is not None and all(s.name != detail_station for s in ranked):
        ranked.append(stations[detail_station])
    kept = {stat.name for stat in ranked}

    candidates: list[VisibleEdge] = []
    detail_routes: list[VisibleEdge] = []
    for stat in ranked:
        routes = cache.routes_from(member_filter, month_filter, stat.name)
        if stat.name == detail_station:
            detail_routes = [
                VisibleEdge(route.start_station, route.end_station, route.count)
                for route in routes
                if route.end_station in kept
            ]
            candidates.extend(detail_routes)
            continue
        candidates.extend(
            VisibleEdge(route.start_station, route.end_station, route.count)
            for route in routes[:top_k_per_node]
            if route.end_station in kept
        )

    weights = tuple(sorted(edge.weight for edge in candidates))
    threshold = percentile_threshold(weights, percentile)
    nodes = [VisibleNode(s.name, s.start_count, s.end_count) for s in ranked]

    if detail_station is not None:
        edges = sorted(detail_routes, key=lambda e: (-e.weight, e.target))
        edges = edges[:DETAIL_TOP_ROUTES]
    else:
        edges = [edge for edge in candidates if edge.weight >= threshold]
        if hide_isolated:
            touched = {e.source for e in edges} | {e.target for e in edges}
            nodes = [node for node in nodes if node.name in touched]
            surviving = {node.name for node in nodes}
            edges = [
                e for e in edges if e.source in surviving and e.target in surviving
            ]

    logger.debug(
        "Selected %d nodes and %d edges for %s/%s (threshold %d)",
        len(nodes),
        len(edges),
        member_filter.value,
        month_filter.value,
        threshold,
    )
    return Selection(
        nodes=tuple(nodes),
        edges=tuple(edges),
        threshold_count=threshold,
        percentile=float(percentile),
        candidate_weights=weights,
        detail_station=detail_station,
    )


def select_labels(
    selection: Selection,
    min_labels: int = MIN_LABELS,
    max_labels: int = MAX_LABELS,
) -> tuple[str, ...]:
    """Names of the nodes that receive a text label.

    Detail mode labels the selected station and its destinations. Overview
    labels the most active nodes, including every node tied with the last
    one; small networks are labelled completely.
    """
    if selection.detail_station is not None:
        names = [selection.detail_station]
        names.extend(
            edge.target for edge in selection.edges if edge.target not in names
        )
        return tuple(names)

    nodes = selection.nodes
    if not nodes:
        return ()
    count = min(max_labels, max(min_labels, round(LABEL_FRACTION * len(nodes))))
    if len(nodes) <= count:
        return tuple(node.name for node in nodes)

    by_activity = sorted(nodes, key=lambda node: -node.total)
    cutoff = by_activity[count - 1].total
    return tuple(node.name for node in by_activity if node.total >= cutoff)


def top_start_stations(
    cache: AggregationCache,
    member_filter: MemberFilter,
    month_filter: MonthFilter,
    limit: int = DEFAULT_TOP_START_ROWS,
) -> list[StationStat]:
    """Stations with departures, by start count descending then name."""
    stations = [
        stat
        for stat in cache.stations(member_filter, month_filter).values()
        if stat.start_count > 0
    ]
    stations.sort(key=lambda stat: (-stat.start_count, stat.name))
    return stations[: max(0, limit)]


def station_routes(
    cache: AggregationCache,
    member_filter: MemberFilter,
    month_filter: MonthFilter,
    station: str,
    limit: int = DETAIL_TOP_ROUTES,
) -> list[RankedRoute]:
    """Top destinations of ``station`` for the drill-down table."""
    if cache.station(member_filter, month_filter, station) is None:
        raise StationNotFoundError(station)
    routes = sorted(
        cache.routes_from(member_filter, month_filter, station),
        key=lambda route: (-route.count, route.end_station),
    )
    return [
        RankedRoute(
            rank=index,
            start_station=route.start_station,
            end_station=route.end_station,
            count=route.count,
        )
        for index, route in enumerate(routes[: max(0, limit)], start=1)
    ]


def route_histogram(
    weights: Sequence[int], cutoff: int, bins: int = HISTOGRAM_BINS
) -> RouteHistogram:
    """Bin candidate route weights and flag the bins at or above ``cutoff``."""
    if not weights:
        return RouteHistogram(bins=(), cutoff=cutoff, p50=None)

    values = np.asarray(weights, dtype=float)
    counts, edges = np.histogram(values, bins=bins)
    result = tuple(
        HistogramBin(
            lower=float(edges[i]),
            upper=float(edges[i + 1]),
            count=int(counts[i]),
            active=bool(edges[i + 1] >= cutoff),
        )
        for i in range(len(counts))
    )
    p50 = float(np.quantile(np.sort(values), 0.5, method="linear"))
    return RouteHistogram(bins=result, cutoff=cutoff, p50=p50)
