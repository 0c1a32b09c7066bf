"""
Projection pipeline.

Maps layout coordinates to screen coordinates. In 2D the mapping is the
identity; in 3D every station gets a stable depth from its name hash and the
scene is rotated by the camera's yaw and pitch before a perspective divide.
Also hosts the Web Mercator fit used to seed layout positions from geography
and the zoom transform handed to the renderer.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import TypeVar

from pyproj import Transformer

from app.services.network_dto import LatLng
from app.services.station_hash import fnv1a_32, unit_fraction

DEPTH_FRACTION = 0.6
FOCAL_FRACTION = 0.9
MIN_DENOMINATOR_FRACTION = 0.1
PITCH_LIMIT = 0.88 * math.pi / 2
ROTATION_SENSITIVITY = 0.005

ZOOM_MIN = 0.05
ZOOM_MAX = 32.0
ZOOM_IN_FACTOR = 1.25
ZOOM_OUT_FACTOR = 0.8

GEO_FIT_PADDING = 40.0

T = TypeVar("T")


@dataclass(frozen=True)
class Viewport:
    width: float
    height: float

    @property
    def center(self) -> tuple[float, float]:
        return self.width / 2, self.height / 2

    @property
    def min_side(self) -> float:
        return min(self.width, self.height)


@dataclass(frozen=True)
class ProjectedPoint:
    screen_x: float
    screen_y: float
    scale: float
    camera_depth: float


def depth_for(name: str, viewport: Viewport) -> float:
    """Stable 3D depth of a station, spread over 60% of the shorter side."""
    u = unit_fraction(fnv1a_32(name))
    return (u * 2 - 1) * (DEPTH_FRACTION * viewport.min_side) / 2


class Camera:
    """Yaw/pitch orbit camera for the 3D view."""

    def __init__(self, yaw: float = 0.0, pitch: float = 0.0) -> None:
        self.yaw = yaw
        self.pitch = self._clamp_pitch(pitch)

    @staticmethod
    def _clamp_pitch(pitch: float) -> float:
        return max(-PITCH_LIMIT, min(PITCH_LIMIT, pitch))

    def rotate(self, dx: float, dy: float) -> None:
        """Apply a pointer drag delta in pixels."""
        self.yaw -= dx * ROTATION_SENSITIVITY
        self.pitch = self._clamp_pitch(self.pitch + dy * ROTATION_SENSITIVITY)

    def reset(self) -> None:
        self.yaw = 0.0
        self.pitch = 0.0


def project(
    x: float,
    y: float,
    depth: float,
    camera: Camera,
    viewport: Viewport,
    mode_3d: bool,
) -> ProjectedPoint:
    """Project a layout point to the screen."""
    if not mode_3d:
        return ProjectedPoint(screen_x=x, screen_y=y, scale=1.0, camera_depth=0.0)

    cx, cy = viewport.center
    dx = x - cx
    dy = y - cy

    cos_yaw, sin_yaw = math.cos(camera.yaw), math.sin(camera.yaw)
    x1 = dx * cos_yaw + depth * sin_yaw
    z1 = -dx * sin_yaw + depth * cos_yaw

    cos_pitch, sin_pitch = math.cos(camera.pitch), math.sin(camera.pitch)
    y2 = dy * cos_pitch - z1 * sin_pitch
    z2 = dy * sin_pitch + z1 * cos_pitch

    focal = FOCAL_FRACTION * viewport.min_side
    # keeps points behind the eye from flipping or dividing by zero
    denominator = max(focal + z2, MIN_DENOMINATOR_FRACTION * focal)
    scale = focal / denominator
    return ProjectedPoint(
        screen_x=cx + x1 * scale,
        screen_y=cy + y2 * scale,
        scale=scale,
        camera_depth=z2,
    )


def edge_scale(source: ProjectedPoint, target: ProjectedPoint) -> float:
    """Stroke scale of an edge: the mean of its endpoint scales."""
    return (source.scale + target.scale) / 2


def edge_depth(source: ProjectedPoint, target: ProjectedPoint) -> float:
    return (source.camera_depth + target.camera_depth) / 2


def back_to_front(items: Iterable[T], depth: Callable[[T], float]) -> list[T]:
    """Order items farthest first (larger camera depth first), stably."""
    return sorted(items, key=lambda item: -depth(item))


class GeoProjection:
    """Web Mercator projection fitted to a viewport.

    Station coordinates are projected with pyproj into EPSG:3857 metres and
    scaled uniformly so their bounding box fills the padded viewport.
    """

    _transformer = Transformer.from_crs("EPSG:4326", "EPSG:3857", always_xy=True)

    def __init__(
        self,
        positions: Mapping[str, LatLng],
        viewport: Viewport,
        padding: float = GEO_FIT_PADDING,
    ) -> None:
        self._viewport = viewport
        self._padding = padding
        projected = [self._mercator(p) for p in positions.values()]
        if projected:
            xs = [p[0] for p in projected]
            ys = [p[1] for p in projected]
            self._min_x, self._max_x = min(xs), max(xs)
            self._min_y, self._max_y = min(ys), max(ys)
        else:
            self._min_x = self._max_x = self._min_y = self._max_y = 0.0

        span_x = self._max_x - self._min_x
        span_y = self._max_y - self._min_y
        usable_w = max(1.0, viewport.width - 2 * padding)
        usable_h = max(1.0, viewport.height - 2 * padding)
        candidates = [
            usable / span
            for usable, span in ((usable_w, span_x), (usable_h, span_y))
            if span > 0
        ]
        self._scale = min(candidates) if candidates else 0.0

    @classmethod
    def _mercator(cls, position: LatLng) -> tuple[float, float]:
        x, y = cls._transformer.transform(position.lng, position.lat)
        return float(x), float(y)

    def project(self, position: LatLng) -> tuple[float, float]:
        """Screen position of a coordinate; north is up."""
        x, y = self._mercator(position)
        cx, cy = self._viewport.center
        mid_x = (self._min_x + self._max_x) / 2
        mid_y = (self._min_y + self._max_y) / 2
        return (
            cx + (x - mid_x) * self._scale,
            cy - (y - mid_y) * self._scale,
        )


@dataclass(frozen=True)
class ZoomTransform:
    """Pan/zoom transform ``screen = k * point + (x, y)``."""

    k: float = 1.0
    x: float = 0.0
    y: float = 0.0

    @classmethod
    def identity(cls) -> "ZoomTransform":
        return cls()

    def scale_by(self, factor: float, center: Sequence[float]) -> "ZoomTransform":
        """Zoom by ``factor`` about ``center``, keeping ``k`` within bounds."""
        k = max(ZOOM_MIN, min(ZOOM_MAX, self.k * factor))
        ratio = k / self.k
        cx, cy = center
        return ZoomTransform(
            k=k,
            x=cx - (cx - self.x) * ratio,
            y=cy - (cy - self.y) * ratio,
        )

    def zoom_in(self, center: Sequence[float]) -> "ZoomTransform":
        return self.scale_by(ZOOM_IN_FACTOR, center)

    def zoom_out(self, center: Sequence[float]) -> "ZoomTransform":
        return self.scale_by(ZOOM_OUT_FACTOR, center)

    def apply(self, x: float, y: float) -> tuple[float, float]:
        return x * self.k + self.x, y * self.k + self.y
