"""Tests for selection, thresholds, labels and drill-down tables."""

from __future__ import annotations

import pytest

from app.services.aggregation_cache import AggregationCache
from app.services.network_dto import MemberFilter, MemberType, MonthFilter, MonthlyTrips
from app.services.network_errors import StationNotFoundError
from app.services.route_ranking import (
    percentile_threshold,
    route_histogram,
    select,
    select_labels,
    station_routes,
    top_start_stations,
)
from tests.fixtures.network_data import make_trips

ALL = MemberFilter.ALL
JUL = MonthFilter.JUL


def _grid_cache(stations: int) -> AggregationCache:
    """A ring of stations with distinct activity levels."""
    routes = []
    for i in range(stations):
        routes.append((f"S{i:03d}", f"S{(i + 1) % stations:03d}", MemberType.ANNUAL, i + 1))
        routes.append((f"S{i:03d}", f"S{(i + 2) % stations:03d}", MemberType.CASUAL, 1))
    return AggregationCache.build(
        [MonthlyTrips("2023-07", MonthFilter.JUL, make_trips(routes))]
    )


class TestPercentileThreshold:
    def test_no_candidates(self):
        assert percentile_threshold([], 50) == 0

    def test_linear_interpolation_is_floored(self):
        weights = [1, 2, 3, 4]
        assert percentile_threshold(weights, 0) == 1
        assert percentile_threshold(weights, 50) == 2  # 2.5 floored
        assert percentile_threshold(weights, 100) == 4

    def test_out_of_range_percentiles_clamp(self):
        assert percentile_threshold([3, 9], -10) == 3
        assert percentile_threshold([3, 9], 250) == 9


class TestOverviewSelection:
    def test_nodes_sorted_by_total_then_name_and_capped(self):
        cache = _grid_cache(80)
        selection = select(cache, ALL, MonthFilter.ALL, cap=60)

        assert len(selection.nodes) == 60
        keys = [(-n.total, n.name) for n in selection.nodes]
        assert keys == sorted(keys)

    def test_edges_limited_to_top_k_within_kept_set(self, hub_cache):
        selection = select(hub_cache, ALL, JUL, cap=60, top_k_per_node=5)

        hub_targets = [e.target for e in selection.edges if e.source == "Hub"]
        # Park ties Lake at 10 but was encountered later; Mill is outside the top 5
        assert hub_targets == ["North", "East", "South", "West", "Lake"]
        kept = {n.name for n in selection.nodes}
        assert all(e.source in kept and e.target in kept for e in selection.edges)

    def test_top_k_sliced_before_cap_filter(self, hub_cache):
        selection = select(hub_cache, ALL, JUL, cap=3, top_k_per_node=2)

        kept = [n.name for n in selection.nodes]
        assert kept == ["Hub", "North", "East"]
        # Hub's top 2 are North and East; both kept
        assert [(e.source, e.target) for e in selection.edges if e.source == "Hub"] == [
            ("Hub", "North"),
            ("Hub", "East"),
        ]

    def test_percentile_drops_weaker_edges(self, hub_cache):
        base = select(hub_cache, ALL, JUL)
        strict = select(hub_cache, ALL, JUL, percentile=50)

        assert strict.threshold_count == percentile_threshold(base.candidate_weights, 50)
        assert all(e.weight >= strict.threshold_count for e in strict.edges)
        assert len(strict.edges) < len(base.edges)

    def test_percentile_is_monotonic(self, hub_cache):
        previous = None
        for p in range(0, 101, 10):
            edges = {(e.source, e.target) for e in select(hub_cache, ALL, JUL, percentile=p).edges}
            if previous is not None:
                assert edges <= previous
            previous = edges

    def test_hide_isolated_prunes_nodes(self, hub_cache):
        selection = select(hub_cache, ALL, JUL, percentile=100, hide_isolated=True)

        names = {n.name for n in selection.nodes}
        touched = {e.source for e in selection.edges} | {e.target for e in selection.edges}
        assert names == touched
        assert names == {"Hub", "North"}

    def test_selection_is_deterministic(self, hub_cache):
        first = select(hub_cache, ALL, JUL, percentile=30)
        second = select(hub_cache, ALL, JUL, percentile=30)
        assert first == second

    def test_empty_cell(self, hub_cache):
        selection = select(hub_cache, MemberFilter.CASUAL, MonthFilter.JAN)

        assert selection.is_empty
        assert selection.edges == ()
        assert selection.threshold_count == 0


class TestDetailSelection:
    def test_detail_returns_top_five_sorted(self, hub_cache):
        selection = select(hub_cache, ALL, JUL, detail_station="Hub")

        assert selection.is_detail
        assert [(e.target, e.weight) for e in selection.edges] == [
            ("North", 40),
            ("East", 30),
            ("South", 20),
            ("West", 15),
            ("Lake", 10),
        ]

    def test_detail_ignores_percentile_and_hide_isolated(self, hub_cache):
        relaxed = select(hub_cache, ALL, JUL, detail_station="Hub")
        strict = select(
            hub_cache, ALL, JUL, detail_station="Hub", percentile=100, hide_isolated=True
        )

        assert strict.edges == relaxed.edges
        assert strict.nodes == relaxed.nodes
        assert strict.threshold_count >= relaxed.threshold_count

    def test_detail_ties_broken_by_destination_name(self):
        cache = AggregationCache.build(
            [
                MonthlyTrips(
                    "2023-07",
                    MonthFilter.JUL,
                    make_trips(
                        [
                            ("A", "Zed", MemberType.ANNUAL, 2),
                            ("A", "Bee", MemberType.ANNUAL, 2),
                            ("A", "Cee", MemberType.ANNUAL, 2),
                        ]
                    ),
                )
            ]
        )

        selection = select(cache, ALL, JUL, detail_station="A")
        assert [e.target for e in selection.edges] == ["Bee", "Cee", "Zed"]

    def test_station_outside_cap_is_appended(self, hub_cache):
        selection = select(hub_cache, ALL, JUL, cap=2, detail_station="Mill")

        assert selection.nodes[-1].name == "Mill"
        assert selection.edges == ()

    def test_unknown_station_raises(self, hub_cache):
        with pytest.raises(StationNotFoundError) as excinfo:
            select(hub_cache, ALL, JUL, detail_station="Atlantis")
        assert excinfo.value.station == "Atlantis"


class TestLabels:
    def test_small_networks_label_every_node(self, hub_cache):
        selection = select(hub_cache, ALL, JUL)
        assert set(select_labels(selection)) == {n.name for n in selection.nodes}

    def test_large_networks_label_most_active(self):
        selection = select(_grid_cache(60), ALL, MonthFilter.ALL)

        labels = select_labels(selection)
        assert len(labels) == 12  # round(0.2 * 60)
        most_active = sorted(selection.nodes, key=lambda n: -n.total)[:12]
        assert set(labels) == {n.name for n in most_active}

    def test_label_count_is_capped_at_twenty(self):
        selection = select(_grid_cache(200), ALL, MonthFilter.ALL, cap=150)
        assert len(select_labels(selection)) == 20

    def test_detail_labels_selected_and_destinations(self, hub_cache):
        selection = select(hub_cache, ALL, JUL, detail_station="Hub")
        assert select_labels(selection) == ("Hub", "North", "East", "South", "West", "Lake")


class TestTables:
    def test_top_start_stations(self, hub_cache):
        rows = top_start_stations(hub_cache, ALL, JUL)

        assert [r.name for r in rows] == ["Hub", "North", "East", "South"]
        assert rows[0].start_count == 127
        assert all(r.start_count > 0 for r in rows)

    def test_top_start_stations_limit(self, hub_cache):
        assert len(top_start_stations(hub_cache, ALL, JUL, limit=2)) == 2

    def test_station_routes_ranked(self, hub_cache):
        routes = station_routes(hub_cache, ALL, JUL, "Hub", limit=6)

        assert [r.rank for r in routes] == [1, 2, 3, 4, 5, 6]
        assert [r.end_station for r in routes][-2:] == ["Lake", "Park"]

    def test_station_routes_unknown_station(self, hub_cache):
        with pytest.raises(StationNotFoundError):
            station_routes(hub_cache, ALL, JUL, "Nowhere")


class TestHistogram:
    def test_empty(self):
        histogram = route_histogram([], 0)
        assert histogram.bins == ()
        assert histogram.p50 is None

    def test_bins_and_active_flags(self):
        weights = list(range(1, 21))
        histogram = route_histogram(weights, cutoff=10, bins=4)

        assert [b.count for b in histogram.bins] == [5, 5, 5, 5]
        assert [b.active for b in histogram.bins] == [False, True, True, True]
        assert histogram.p50 == pytest.approx(10.5)
