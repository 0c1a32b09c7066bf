"""
Aggregation cache for station activity and route counts.

Precomputes, for every (member filter x month filter) cell, how many trips
start and end at each station and how often each start station feeds each
end station. The cache is built in a single pass and never mutated
afterwards: filter changes pick a different cell instead of recomputing.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from app.core.metrics import observe_derivation
from app.services.network_dto import (
    MEMBER_FANOUT,
    MemberFilter,
    MonthFilter,
    MonthlyTrips,
    RouteCount,
    StationStat,
)

logger = logging.getLogger(__name__)

CellKey = tuple[MemberFilter, MonthFilter]

CELL_KEYS: tuple[CellKey, ...] = tuple(
    (member, month) for member in MemberFilter for month in MonthFilter
)


@dataclass(frozen=True)
class CacheCell:
    """Frozen aggregates of one (member, month) combination."""

    stations: Mapping[str, StationStat]
    routes: Mapping[str, tuple[RouteCount, ...]]

    @property
    def trip_count(self) -> int:
        return sum(stat.start_count for stat in self.stations.values())


class _CellBuilder:
    """Mutable accumulator used only while the cache is being built."""

    __slots__ = ("counts", "routes")

    def __init__(self) -> None:
        # name -> [start_count, end_count]; insertion order is encounter order
        self.counts: dict[str, list[int]] = {}
        self.routes: dict[str, dict[str, int]] = {}

    def add_trip(self, start: str, end: str) -> None:
        self.counts.setdefault(start, [0, 0])[0] += 1
        self.counts.setdefault(end, [0, 0])[1] += 1
        destinations = self.routes.setdefault(start, {})
        destinations[end] = destinations.get(end, 0) + 1

    def freeze(self) -> CacheCell:
        stations = {
            name: StationStat(name=name, start_count=start, end_count=end)
            for name, (start, end) in self.counts.items()
        }
        routes = {
            start: tuple(
                RouteCount(start_station=start, end_station=end, count=count)
                # sorted() is stable: equal counts keep encounter order
                for end, count in sorted(
                    destinations.items(), key=lambda item: -item[1]
                )
            )
            for start, destinations in self.routes.items()
        }
        return CacheCell(
            stations=MappingProxyType(stations), routes=MappingProxyType(routes)
        )


class AggregationCache:
    """Enum-keyed table of frozen cache cells covering all 3 x 13 filters."""

    def __init__(self, cells: Mapping[CellKey, CacheCell]) -> None:
        missing = [key for key in CELL_KEYS if key not in cells]
        if missing:
            raise ValueError(f"Aggregation cache is missing cells: {missing}")
        self._cells: Mapping[CellKey, CacheCell] = MappingProxyType(dict(cells))

    @classmethod
    def build(cls, trips_by_month: Iterable[MonthlyTrips]) -> "AggregationCache":
        """Aggregate every trip into the cells selected by the fan-out rule.

        A trip of known member type lands in the ``All`` bucket and its own
        type; an ``Other`` trip only in ``All``. Every trip lands in the
        ``All`` month and its own month, so up to four cells per trip.
        """
        started = time.perf_counter()
        builders = {key: _CellBuilder() for key in CELL_KEYS}
        trip_count = 0

        for bucket in trips_by_month:
            for trip in bucket.trips:
                trip_count += 1
                for member in MEMBER_FANOUT[trip.member_type]:
                    for month in (MonthFilter.ALL, bucket.month):
                        builders[(member, month)].add_trip(
                            trip.start_station, trip.end_station
                        )

        cache = cls({key: builder.freeze() for key, builder in builders.items()})
        observe_derivation("cache_build", time.perf_counter() - started)
        logger.info(
            "Built aggregation cache from %d trips (%d stations overall)",
            trip_count,
            len(cache.stations(MemberFilter.ALL, MonthFilter.ALL)),
        )
        return cache

    def cell(self, member: MemberFilter, month: MonthFilter) -> CacheCell:
        return self._cells[(member, month)]

    def stations(
        self, member: MemberFilter, month: MonthFilter
    ) -> Mapping[str, StationStat]:
        """Station statistics of one cell, in encounter order."""
        return self.cell(member, month).stations

    def station(
        self, member: MemberFilter, month: MonthFilter, name: str
    ) -> StationStat | None:
        return self.cell(member, month).stations.get(name)

    def routes_from(
        self, member: MemberFilter, month: MonthFilter, start_station: str
    ) -> tuple[RouteCount, ...]:
        """Ranked routes leaving ``start_station`` (descending count, stable)."""
        return self.cell(member, month).routes.get(start_station, ())

    def total_trips(self) -> int:
        """Number of trips aggregated, read from the (All, All) cell."""
        return self.cell(MemberFilter.ALL, MonthFilter.ALL).trip_count

    @property
    def is_empty(self) -> bool:
        return self.total_trips() == 0
