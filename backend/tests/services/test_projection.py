"""Tests for 2D/3D projection, geographic fitting and zoom."""

from __future__ import annotations

import math

import pytest

from app.services.network_dto import LatLng
from app.services.projection import (
    PITCH_LIMIT,
    ZOOM_MAX,
    ZOOM_MIN,
    Camera,
    GeoProjection,
    ProjectedPoint,
    Viewport,
    ZoomTransform,
    back_to_front,
    depth_for,
    edge_scale,
    project,
)

VIEWPORT = Viewport(width=960, height=600)


class TestDepth:
    @pytest.mark.parametrize("name", ["Hub", "North", "Union Station", "", "é"])
    def test_depth_within_sixty_percent_of_short_side(self, name):
        depth = depth_for(name, VIEWPORT)
        assert abs(depth) <= 0.3 * VIEWPORT.min_side + 1e-9

    def test_depth_is_stable(self):
        assert depth_for("Hub", VIEWPORT) == depth_for("Hub", Viewport(960, 600))


class TestProject:
    def test_two_dimensional_projection_is_identity(self):
        camera = Camera(yaw=1.0, pitch=0.5)
        point = project(120.0, 45.0, 99.0, camera, VIEWPORT, mode_3d=False)
        assert point == ProjectedPoint(120.0, 45.0, 1.0, 0.0)

    def test_center_point_without_depth_is_unchanged(self):
        point = project(480.0, 300.0, 0.0, Camera(), VIEWPORT, mode_3d=True)

        assert point.screen_x == pytest.approx(480.0)
        assert point.screen_y == pytest.approx(300.0)
        assert point.scale == pytest.approx(1.0)

    def test_nearer_points_are_larger(self):
        near = project(600.0, 300.0, -100.0, Camera(), VIEWPORT, mode_3d=True)
        far = project(600.0, 300.0, 100.0, Camera(), VIEWPORT, mode_3d=True)

        focal = 0.9 * VIEWPORT.min_side
        assert near.scale == pytest.approx(focal / (focal - 100.0))
        assert far.scale == pytest.approx(focal / (focal + 100.0))
        assert near.scale > 1.0 > far.scale
        assert far.camera_depth > near.camera_depth

    def test_denominator_is_clamped_behind_the_eye(self):
        point = project(480.0, 300.0, -5000.0, Camera(), VIEWPORT, mode_3d=True)

        assert point.scale == pytest.approx(10.0)
        assert math.isfinite(point.screen_x) and math.isfinite(point.screen_y)

    def test_yaw_of_half_turn_mirrors_horizontally(self):
        point = project(
            580.0, 300.0, 0.0, Camera(yaw=math.pi), VIEWPORT, mode_3d=True
        )
        assert point.screen_x == pytest.approx(380.0)

    def test_edge_scale_is_mean_of_endpoints(self):
        a = ProjectedPoint(0, 0, 1.0, 0)
        b = ProjectedPoint(0, 0, 0.5, 0)
        assert edge_scale(a, b) == pytest.approx(0.75)


class TestCamera:
    def test_drag_changes_yaw_and_pitch(self):
        camera = Camera()
        camera.rotate(dx=100, dy=-40)

        assert camera.yaw == pytest.approx(-0.5)
        assert camera.pitch == pytest.approx(-0.2)

    def test_pitch_is_clamped(self):
        camera = Camera()
        camera.rotate(dx=0, dy=10_000)
        assert camera.pitch == pytest.approx(PITCH_LIMIT)

        camera.rotate(dx=0, dy=-50_000)
        assert camera.pitch == pytest.approx(-PITCH_LIMIT)
        assert Camera(pitch=5.0).pitch == pytest.approx(PITCH_LIMIT)

    def test_reset(self):
        camera = Camera(yaw=2.0, pitch=0.4)
        camera.reset()
        assert (camera.yaw, camera.pitch) == (0.0, 0.0)


class TestBackToFront:
    def test_farthest_first_and_stable(self):
        items = [("a", 1.0), ("b", 5.0), ("c", 1.0), ("d", -2.0)]
        ordered = back_to_front(items, depth=lambda item: item[1])
        assert [name for name, _ in ordered] == ["b", "a", "c", "d"]


class TestGeoProjection:
    def test_points_fill_padded_viewport(self):
        positions = {
            "West": LatLng(43.65, -79.45),
            "East": LatLng(43.65, -79.30),
            "North": LatLng(43.70, -79.38),
        }
        geo = GeoProjection(positions, VIEWPORT, padding=40)

        projected = {name: geo.project(p) for name, p in positions.items()}
        for x, y in projected.values():
            assert 40 - 1e-6 <= x <= 920 + 1e-6
            assert 40 - 1e-6 <= y <= 560 + 1e-6
        # longitude span is the wider one and fills the usable width
        assert projected["East"][0] - projected["West"][0] == pytest.approx(880)

    def test_north_is_up(self):
        positions = {"South": LatLng(43.60, -79.4), "North": LatLng(43.75, -79.4)}
        geo = GeoProjection(positions, VIEWPORT)

        assert geo.project(positions["North"])[1] < geo.project(positions["South"])[1]

    def test_single_point_maps_to_center(self):
        geo = GeoProjection({"Only": LatLng(43.65, -79.38)}, VIEWPORT)
        assert geo.project(LatLng(43.65, -79.38)) == pytest.approx(VIEWPORT.center)

    def test_empty_positions(self):
        geo = GeoProjection({}, VIEWPORT)
        assert geo.project(LatLng(43.65, -79.38)) == pytest.approx(VIEWPORT.center)


class TestZoomTransform:
    def test_zoom_in_keeps_center_fixed(self):
        center = VIEWPORT.center
        zoomed = ZoomTransform.identity().zoom_in(center)

        assert zoomed.k == pytest.approx(1.25)
        assert zoomed.apply(*center) == pytest.approx(center)

    def test_zoom_out_then_in_round_trips(self):
        center = VIEWPORT.center
        zoomed = ZoomTransform.identity().zoom_out(center).zoom_in(center)
        assert zoomed.k == pytest.approx(1.0)
        assert (zoomed.x, zoomed.y) == pytest.approx((0.0, 0.0))

    def test_scale_is_clamped(self):
        transform = ZoomTransform.identity()
        for _ in range(100):
            transform = transform.zoom_in((0, 0))
        assert transform.k == pytest.approx(ZOOM_MAX)

        for _ in range(200):
            transform = transform.zoom_out((0, 0))
        assert transform.k == pytest.approx(ZOOM_MIN)
