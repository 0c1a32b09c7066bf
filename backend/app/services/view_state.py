"""
View state machine.

Holds every user-controlled value of the network view and the two-state
Overview/Detail machine. Each action reports whether the visible set must be
re-derived so the caller can reseed the layout only when needed.
"""

from __future__ import annotations

import logging
from collections.abc import Container
from dataclasses import dataclass, field
from enum import Enum

from app.services.network_dto import MemberFilter, MonthFilter
from app.services.network_errors import StationNotFoundError
from app.services.projection import Camera, ZoomTransform

logger = logging.getLogger(__name__)


class ViewMode(str, Enum):
    OVERVIEW = "overview"
    DETAIL = "detail"


class ZoomAction(str, Enum):
    IN = "in"
    OUT = "out"
    RESET = "reset"


@dataclass
class ViewState:
    """All mutable view controls. Starts in Overview."""

    mode: ViewMode = ViewMode.OVERVIEW
    selected_station: str | None = None
    member_filter: MemberFilter = MemberFilter.ALL
    month_filter: MonthFilter = MonthFilter.ALL
    percentile: float = 0.0
    hide_isolated: bool = False
    mode_3d: bool = False
    color_blind: bool = False
    camera: Camera = field(default_factory=Camera)
    zoom: ZoomTransform = field(default_factory=ZoomTransform.identity)

    @property
    def is_detail(self) -> bool:
        return self.mode is ViewMode.DETAIL

    def _exit_detail(self) -> None:
        if self.is_detail:
            logger.debug("Leaving detail view for %s", self.selected_station)
        self.mode = ViewMode.OVERVIEW
        self.selected_station = None

    def apply_filters(
        self,
        member_filter: MemberFilter | None = None,
        month_filter: MonthFilter | None = None,
        percentile: float | None = None,
        hide_isolated: bool | None = None,
    ) -> bool:
        """Update filter controls; returns ``True`` when anything changed.

        Member, month and hide-isolated changes return to Overview. A
        percentile change keeps the current mode.
        """
        changed = False
        leaves_detail = False
        if member_filter is not None and member_filter != self.member_filter:
            self.member_filter = member_filter
            changed = leaves_detail = True
        if month_filter is not None and month_filter != self.month_filter:
            self.month_filter = month_filter
            changed = leaves_detail = True
        if hide_isolated is not None and hide_isolated != self.hide_isolated:
            self.hide_isolated = hide_isolated
            changed = leaves_detail = True
        if percentile is not None:
            value = min(100.0, max(0.0, float(percentile)))
            if value != self.percentile:
                self.percentile = value
                changed = True
        if leaves_detail:
            self._exit_detail()
        return changed

    def set_display(
        self, mode_3d: bool | None = None, color_blind: bool | None = None
    ) -> bool:
        """Toggle 3D or the color-blind palette; returns ``True`` on a 3D change.

        Switching 3D resets the camera and zoom and returns to Overview.
        """
        if color_blind is not None:
            self.color_blind = color_blind
        if mode_3d is None or mode_3d == self.mode_3d:
            return False
        self.mode_3d = mode_3d
        self.camera.reset()
        self.zoom = ZoomTransform.identity()
        self._exit_detail()
        return True

    def select(self, station: str, known_stations: Container[str]) -> None:
        if station not in known_stations:
            raise StationNotFoundError(station)
        self.mode = ViewMode.DETAIL
        self.selected_station = station

    def back(self) -> bool:
        was_detail = self.is_detail
        self._exit_detail()
        return was_detail

    def rotate(self, dx: float, dy: float) -> bool:
        """Orbit the 3D camera; ignored in 2D."""
        if not self.mode_3d:
            return False
        self.camera.rotate(dx, dy)
        return True

    def apply_zoom(self, action: ZoomAction, center: tuple[float, float]) -> None:
        if action is ZoomAction.IN:
            self.zoom = self.zoom.zoom_in(center)
        elif action is ZoomAction.OUT:
            self.zoom = self.zoom.zoom_out(center)
        else:
            self.zoom = ZoomTransform.identity()
