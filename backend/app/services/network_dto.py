"""Data transfer objects shared by the trip network services."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum


class MemberType(str, Enum):
    """Membership type of a cleaned trip."""

    ANNUAL = "Annual"
    CASUAL = "Casual"
    OTHER = "Other"

    @classmethod
    def from_raw(cls, value: str) -> "MemberType":
        """Collapse a cleaned ``User Type`` value to Annual, Casual or Other."""
        if value == cls.ANNUAL.value:
            return cls.ANNUAL
        if value == cls.CASUAL.value:
            return cls.CASUAL
        return cls.OTHER


class MemberFilter(str, Enum):
    """View-level membership restriction."""

    ALL = "All"
    ANNUAL = "Annual"
    CASUAL = "Casual"


class MonthFilter(str, Enum):
    """View-level month restriction: all months or one calendar month."""

    ALL = "All"
    JAN = "01"
    FEB = "02"
    MAR = "03"
    APR = "04"
    MAY = "05"
    JUN = "06"
    JUL = "07"
    AUG = "08"
    SEP = "09"
    OCT = "10"
    NOV = "11"
    DEC = "12"

    @classmethod
    def from_number(cls, month: int) -> "MonthFilter":
        """Map 1..12 to the matching month filter."""
        if not 1 <= month <= 12:
            raise ValueError(f"Month must be between 1 and 12, got {month}")
        return cls(f"{month:02d}")

    @property
    def label(self) -> str:
        """Human-readable month name used for the month slider label."""
        if self is MonthFilter.ALL:
            return "All months"
        return MONTH_NAMES[int(self.value) - 1]


MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)

# Member buckets a trip of each type accumulates into.
MEMBER_FANOUT: dict[MemberType, tuple[MemberFilter, ...]] = {
    MemberType.ANNUAL: (MemberFilter.ALL, MemberFilter.ANNUAL),
    MemberType.CASUAL: (MemberFilter.ALL, MemberFilter.CASUAL),
    MemberType.OTHER: (MemberFilter.ALL,),
}


@dataclass(frozen=True)
class TripRecord:
    """One validated rental from a start station to an end station."""

    start_station: str
    end_station: str
    member_type: MemberType


@dataclass(frozen=True)
class MonthlyTrips:
    """Validated trips of one calendar month."""

    month_key: str
    month: MonthFilter
    trips: tuple[TripRecord, ...] = ()

    def __post_init__(self) -> None:
        if self.month is MonthFilter.ALL:
            raise ValueError("A monthly bucket needs a specific month")


@dataclass(frozen=True)
class StationStat:
    """Start/end activity of one station within one cache cell."""

    name: str
    start_count: int = 0
    end_count: int = 0

    @property
    def total(self) -> int:
        return self.start_count + self.end_count


@dataclass(frozen=True)
class RouteCount:
    """Trip count of an ordered (start, end) station pair within one cell."""

    start_station: str
    end_station: str
    count: int


@dataclass(frozen=True)
class LatLng:
    """Geographic coordinate in degrees."""

    lat: float
    lng: float

    @property
    def is_finite(self) -> bool:
        return math.isfinite(self.lat) and math.isfinite(self.lng)


@dataclass(frozen=True)
class IngestFileReport:
    """Per-file outcome of loading and cleaning one monthly CSV."""

    file: str
    month_key: str
    raw_rows: int
    cleaned_rows: int
    columns: tuple[str, ...]
    missing: tuple[str, ...]
    expected_total: int

    @property
    def expected_present(self) -> int:
        return self.expected_total - len(self.missing)


@dataclass
class IngestReport:
    """Ingest outcome for a full dataset load."""

    files: list[IngestFileReport] = field(default_factory=list)
    synthetic: bool = False

    @property
    def total_raw_rows(self) -> int:
        return sum(item.raw_rows for item in self.files)

    @property
    def total_cleaned_rows(self) -> int:
        return sum(item.cleaned_rows for item in self.files)
