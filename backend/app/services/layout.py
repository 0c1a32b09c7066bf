"""
Force-directed layout controller.

A small numpy implementation of the d3-force velocity Verlet simulation:
many-body repulsion, weighted link springs, collision and centering. The
visible set can change at any time; known nodes keep their state, new nodes
are seeded from their geographic position, and the simulation is reheated.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

import numpy as np

from app.services.network_errors import NetworkDerivationError

logger = logging.getLogger(__name__)

ALPHA_MIN = 0.001
ALPHA_DECAY = 1 - ALPHA_MIN ** (1 / 300)
VELOCITY_DECAY = 0.4
RESEED_ALPHA = 0.8
RELEASE_ALPHA = 0.5

CHARGE_STRENGTH = -120.0
CHARGE_DISTANCE_MIN_SQ = 1.0
LINK_STRENGTH = 0.5
LINK_BASE_DISTANCE = 200.0
LINK_MAX_SHORTENING = 140.0
LINK_WEIGHT_FACTOR = 30.0
COLLIDE_PADDING = 4.0

_PHYLLOTAXIS_RADIUS = 10.0
_PHYLLOTAXIS_ANGLE = math.pi * (3 - math.sqrt(5))


def link_distance(weight: float) -> float:
    """Rest length of a route spring; heavier routes are shorter."""
    return LINK_BASE_DISTANCE - min(
        LINK_MAX_SHORTENING, LINK_WEIGHT_FACTOR * math.log1p(max(0.0, weight))
    )


@dataclass(frozen=True)
class LayoutNode:
    name: str
    radius: float
    seed: tuple[float, float] | None = None


@dataclass(frozen=True)
class LayoutLink:
    source: str
    target: str
    weight: float


class ForceLayout:
    """Incremental force simulation over the currently visible network."""

    def __init__(self, width: float, height: float, seed: int = 0) -> None:
        self._center = np.array([width / 2, height / 2], dtype=float)
        self._rng = np.random.default_rng(seed)
        self._names: list[str] = []
        self._index: dict[str, int] = {}
        self._pos = np.zeros((0, 2), dtype=float)
        self._vel = np.zeros((0, 2), dtype=float)
        self._fixed = np.full((0, 2), np.nan)
        self._radius = np.zeros(0, dtype=float)
        self._links: list[tuple[int, int, float, float, float]] = []
        self.alpha = 1.0
        self.alpha_target = 0.0
        self._version = 0
        self._last_tick: tuple[int, int] | None = None

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._names)

    @property
    def is_settled(self) -> bool:
        return self.alpha < ALPHA_MIN

    def reseed(self, nodes: Sequence[LayoutNode], links: Sequence[LayoutLink]) -> None:
        """Replace the simulated set, keeping the state of surviving nodes."""
        old_index = self._index
        old_pos, old_vel, old_fixed = self._pos, self._vel, self._fixed

        count = len(nodes)
        pos = np.zeros((count, 2), dtype=float)
        vel = np.zeros((count, 2), dtype=float)
        fixed = np.full((count, 2), np.nan)
        radius = np.zeros(count, dtype=float)
        names: list[str] = []
        index: dict[str, int] = {}

        for i, node in enumerate(nodes):
            names.append(node.name)
            index[node.name] = i
            radius[i] = node.radius
            previous = old_index.get(node.name)
            if previous is not None:
                pos[i] = old_pos[previous]
                vel[i] = old_vel[previous]
                fixed[i] = old_fixed[previous]
            elif node.seed is not None and all(map(math.isfinite, node.seed)):
                pos[i] = node.seed
            else:
                r = _PHYLLOTAXIS_RADIUS * math.sqrt(0.5 + i)
                angle = i * _PHYLLOTAXIS_ANGLE
                pos[i] = self._center + (r * math.cos(angle), r * math.sin(angle))

        degree = np.zeros(count, dtype=float)
        resolved: list[tuple[int, int, float]] = []
        for link in links:
            if link.source not in index or link.target not in index:
                raise NetworkDerivationError(
                    f"Route {link.source!r} -> {link.target!r} references a "
                    "station outside the visible set"
                )
            s, t = index[link.source], index[link.target]
            degree[s] += 1
            degree[t] += 1
            resolved.append((s, t, link_distance(link.weight)))

        self._links = [
            (s, t, distance, degree[s] / (degree[s] + degree[t]), LINK_STRENGTH)
            for s, t, distance in resolved
        ]
        self._names, self._index = names, index
        self._pos, self._vel, self._fixed, self._radius = pos, vel, fixed, radius
        self.alpha = RESEED_ALPHA
        self._version += 1
        logger.debug("Layout reseeded with %d nodes and %d links", count, len(links))

    def pin(self, name: str, x: float, y: float) -> None:
        """Fix a node at ``(x, y)`` until released.

        Raises:
            ValueError: ``x`` or ``y`` is NaN or infinite.
        """
        if not (math.isfinite(x) and math.isfinite(y)):
            raise ValueError(f"Pin position for {name!r} must be finite, got ({x}, {y})")
        i = self._require(name)
        self._fixed[i] = (x, y)
        self._pos[i] = (x, y)
        self._vel[i] = 0.0
        self._version += 1

    def release(self, name: str) -> None:
        i = self._require(name)
        self._fixed[i] = np.nan
        self.alpha = RELEASE_ALPHA
        self._version += 1

    def is_pinned(self, name: str) -> bool:
        i = self._index.get(name)
        return i is not None and not bool(np.isnan(self._fixed[i, 0]))

    def tick(self, frame: int) -> bool:
        """Advance one step for ``frame``; repeated calls are no-ops.

        Returns ``True`` when the simulation actually moved.
        """
        key = (frame, self._version)
        if self._last_tick == key:
            return False
        self._last_tick = key
        if self.is_settled or not self._names:
            return False
        self.step()
        return True

    def step(self) -> None:
        self.alpha += (self.alpha_target - self.alpha) * ALPHA_DECAY
        self._apply_links()
        self._apply_charge()
        self._apply_collide()
        self._apply_center()

        free = np.isnan(self._fixed[:, 0])
        self._vel[free] *= 1 - VELOCITY_DECAY
        self._pos[free] += self._vel[free]
        self._pos[~free] = self._fixed[~free]
        self._vel[~free] = 0.0

    def positions(self) -> dict[str, tuple[float, float]]:
        return {
            name: (float(self._pos[i, 0]), float(self._pos[i, 1]))
            for i, name in enumerate(self._names)
        }

    def position(self, name: str) -> tuple[float, float]:
        i = self._require(name)
        return float(self._pos[i, 0]), float(self._pos[i, 1])

    def set_positions(self, positions: Mapping[str, tuple[float, float]]) -> None:
        for name, (x, y) in positions.items():
            i = self._index.get(name)
            if i is not None:
                self._pos[i] = (x, y)

    def _require(self, name: str) -> int:
        i = self._index.get(name)
        if i is None:
            raise KeyError(name)
        return i

    def _jiggle(self) -> float:
        return (float(self._rng.random()) - 0.5) * 1e-6

    def _apply_links(self) -> None:
        pos, vel = self._pos, self._vel
        for s, t, distance, bias, strength in self._links:
            dx = pos[t, 0] + vel[t, 0] - pos[s, 0] - vel[s, 0] or self._jiggle()
            dy = pos[t, 1] + vel[t, 1] - pos[s, 1] - vel[s, 1] or self._jiggle()
            length = math.hypot(dx, dy)
            factor = (length - distance) / length * self.alpha * strength
            dx *= factor
            dy *= factor
            vel[t, 0] -= dx * bias
            vel[t, 1] -= dy * bias
            vel[s, 0] += dx * (1 - bias)
            vel[s, 1] += dy * (1 - bias)

    def _pairwise(self, points: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Offsets ``points[j] - points[i]`` with coincident pairs jiggled."""
        delta = points[None, :, :] - points[:, None, :]
        count = len(points)
        coincident = (delta[:, :, 0] == 0) & (delta[:, :, 1] == 0)
        coincident[np.arange(count), np.arange(count)] = False
        for i, j in zip(*np.nonzero(coincident)):
            delta[i, j] = (self._jiggle(), self._jiggle())
        dist_sq = (delta**2).sum(axis=2)
        return delta, dist_sq

    def _apply_charge(self) -> None:
        count = len(self._names)
        if count < 2:
            return
        delta, dist_sq = self._pairwise(self._pos)
        weight = np.where(
            dist_sq < CHARGE_DISTANCE_MIN_SQ,
            np.sqrt(CHARGE_DISTANCE_MIN_SQ * dist_sq),
            dist_sq,
        )
        np.fill_diagonal(weight, np.inf)
        push = CHARGE_STRENGTH * self.alpha / weight
        self._vel += (delta * push[:, :, None]).sum(axis=1)

    def _apply_collide(self) -> None:
        count = len(self._names)
        if count < 2:
            return
        radii = self._radius + COLLIDE_PADDING
        predicted = self._pos + self._vel
        delta, dist_sq = self._pairwise(predicted)
        reach = radii[:, None] + radii[None, :]
        overlap = dist_sq < reach**2
        np.fill_diagonal(overlap, False)
        if not overlap.any():
            return
        distance = np.sqrt(np.where(overlap, dist_sq, 1.0))
        factor = np.where(overlap, (reach - distance) / distance, 0.0)
        r_sq = radii**2
        share = r_sq[None, :] / (r_sq[:, None] + r_sq[None, :])
        # each node moves away from its neighbour, the smaller one more
        self._vel -= (delta * (factor * share)[:, :, None]).sum(axis=1)

    def _apply_center(self) -> None:
        if not self._names:
            return
        shift = self._pos.mean(axis=0) - self._center
        self._pos -= shift
