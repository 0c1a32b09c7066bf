"""Trip network exception definitions."""

from __future__ import annotations


class StationNotFoundError(Exception):
    """Raised when a station is not present in the selected cache cell."""

    def __init__(self, station: str) -> None:
        super().__init__(f"Station '{station}' not found for the current filters.")
        self.station = station


class NetworkDerivationError(Exception):
    """Raised when a derivation pass meets inconsistent internal state."""


__all__ = [
    "StationNotFoundError",
    "NetworkDerivationError",
]
