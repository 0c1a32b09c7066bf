"""
Trip store for monthly bike-share ridership files.

Loads the monthly CSV exports with pandas, drops rows that miss the fields
the network needs, and reports per-file cleaning results. When nothing
validates, a small synthetic dataset stands in so the rest of the pipeline
always has deterministic input.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

import pandas as pd
from pandas import DataFrame

from app.core.config import Settings
from app.core.metrics import record_trips_loaded
from app.services.network_dto import (
    IngestFileReport,
    IngestReport,
    LatLng,
    MemberType,
    MonthFilter,
    MonthlyTrips,
    TripRecord,
)

logger = logging.getLogger(__name__)

START_STATION_COLUMN = "Start Station Name"
END_STATION_COLUMN = "End Station Name"
USER_TYPE_COLUMN = "User Type"
EXPECTED_COLUMNS: tuple[str, ...] = (
    START_STATION_COLUMN,
    END_STATION_COLUMN,
    "Start Station Id",
    "End Station Id",
    USER_TYPE_COLUMN,
)

_MONTH_KEY_PATTERN = re.compile(r"(\d{4})-(\d{2})")
_MEMBER_SUFFIX_PATTERN = r"\s*Member$"
UNKNOWN_MONTH_KEY = "unknown"

# Synthetic demonstration dataset: one hub and five destinations.
SYNTHETIC_MONTH_KEY = "2023-09"
SYNTHETIC_MONTH = MonthFilter.SEP
SYNTHETIC_HUB = "Demo Station (Synthetic)"
SYNTHETIC_HUB_POSITION = LatLng(lat=43.6532, lng=-79.3832)
SYNTHETIC_DESTINATIONS: tuple[tuple[str, LatLng, int], ...] = (
    ("Union Station (Synthetic)", LatLng(lat=43.6450, lng=-79.3800), 40),
    ("Harbourfront (Synthetic)", LatLng(lat=43.6390, lng=-79.3800), 30),
    ("Chinatown (Synthetic)", LatLng(lat=43.6520, lng=-79.3980), 20),
    ("Distillery District (Synthetic)", LatLng(lat=43.6500, lng=-79.3590), 15),
    ("Kensington Market (Synthetic)", LatLng(lat=43.6550, lng=-79.4050), 10),
)


@dataclass
class TripDataset:
    """Everything a dataset load produces."""

    monthly: list[MonthlyTrips]
    report: IngestReport
    seeded_positions: dict[str, LatLng] = field(default_factory=dict)

    @property
    def total_trips(self) -> int:
        return sum(len(bucket.trips) for bucket in self.monthly)


def month_from_filename(path: str | Path) -> tuple[str, MonthFilter]:
    """Extract the ``YYYY-MM`` month key and month filter from a file name.

    Files without a recognizable month map to ``unknown`` and January.
    """
    match = _MONTH_KEY_PATTERN.search(Path(path).name)
    if not match:
        return UNKNOWN_MONTH_KEY, MonthFilter.JAN
    year, month = match.groups()
    try:
        return f"{year}-{month}", MonthFilter(month)
    except ValueError:
        return UNKNOWN_MONTH_KEY, MonthFilter.JAN


def clean_rows(frame: DataFrame) -> list[TripRecord]:
    """Turn raw ridership rows into validated trip records.

    Rows are dropped when the start name, end name or user type is empty, or
    when a station name is the literal ``NULL``. The user type loses its
    trailing ``Member`` suffix and collapses to Annual, Casual or Other.
    """
    if frame.empty:
        return []

    columns = frame.reindex(
        columns=[START_STATION_COLUMN, END_STATION_COLUMN, USER_TYPE_COLUMN]
    ).fillna("")
    start = columns[START_STATION_COLUMN].astype(str).str.strip()
    end = columns[END_STATION_COLUMN].astype(str).str.strip()
    member = (
        columns[USER_TYPE_COLUMN]
        .astype(str)
        .str.strip()
        .str.replace(_MEMBER_SUFFIX_PATTERN, "", regex=True, case=False)
    )

    valid = (
        (start != "")
        & (end != "")
        & (member != "")
        & (start.str.upper() != "NULL")
        & (end.str.upper() != "NULL")
    )

    return [
        TripRecord(
            start_station=start_name,
            end_station=end_name,
            member_type=MemberType.from_raw(member_raw),
        )
        for start_name, end_name, member_raw in zip(
            start[valid], end[valid], member[valid]
        )
    ]


def build_synthetic_month() -> MonthlyTrips:
    """Build the synthetic hub-and-spoke month used when no trips validate."""
    trips: list[TripRecord] = []
    for destination, _, count in SYNTHETIC_DESTINATIONS:
        for index in range(count):
            trips.append(
                TripRecord(
                    start_station=SYNTHETIC_HUB,
                    end_station=destination,
                    member_type=(
                        MemberType.ANNUAL if index % 2 == 0 else MemberType.CASUAL
                    ),
                )
            )
    return MonthlyTrips(
        month_key=SYNTHETIC_MONTH_KEY, month=SYNTHETIC_MONTH, trips=tuple(trips)
    )


def synthetic_positions() -> dict[str, LatLng]:
    """Authoritative coordinates of the synthetic stations."""
    positions = {SYNTHETIC_HUB: SYNTHETIC_HUB_POSITION}
    for destination, position, _ in SYNTHETIC_DESTINATIONS:
        positions[destination] = position
    return positions


def inject_synthetic_if_needed(dataset: TripDataset) -> bool:
    """Append the synthetic month when the dataset holds zero valid trips.

    Never blends with real data: any validated trip disables the fallback.
    """
    if dataset.total_trips > 0:
        return False

    dataset.monthly.append(build_synthetic_month())
    dataset.seeded_positions.update(synthetic_positions())
    dataset.report.synthetic = True
    logger.info(
        "Injected synthetic bike-share demo data (no valid CSV rows detected)."
    )
    return True


class TripStore:
    """Loads and cleans the monthly ridership files."""

    def __init__(self, settings: Settings) -> None:
        self._data_dir = Path(settings.trip_data_dir)
        self._file_names = list(settings.trip_file_names)

    def load(self) -> TripDataset:
        """Load every configured month and apply the synthetic fallback."""
        dataset = TripDataset(monthly=[], report=IngestReport())
        for file_name in self._file_names:
            bucket, file_report = self._load_month(self._data_dir / file_name)
            dataset.monthly.append(bucket)
            dataset.report.files.append(file_report)

        logger.info(
            "Loaded %d monthly files: %d raw rows, %d valid trips",
            len(dataset.report.files),
            dataset.report.total_raw_rows,
            dataset.report.total_cleaned_rows,
        )
        record_trips_loaded(dataset.total_trips)
        inject_synthetic_if_needed(dataset)
        return dataset

    def _load_month(self, path: Path) -> tuple[MonthlyTrips, IngestFileReport]:
        month_key, month = month_from_filename(path)
        frame = self._read_csv(path)
        trips = clean_rows(frame)
        columns = tuple(str(column) for column in frame.columns)
        missing = tuple(col for col in EXPECTED_COLUMNS if col not in columns)

        logger.debug(
            "Cleaned %s: %d -> %d rows", path.name, len(frame.index), len(trips)
        )
        report = IngestFileReport(
            file=path.name,
            month_key=month_key,
            raw_rows=len(frame.index),
            cleaned_rows=len(trips),
            columns=columns,
            missing=missing,
            expected_total=len(EXPECTED_COLUMNS),
        )
        return MonthlyTrips(month_key=month_key, month=month, trips=tuple(trips)), report

    @staticmethod
    def _read_csv(path: Path) -> DataFrame:
        """Read a ridership CSV as strings; unreadable files become empty frames."""
        try:
            return pd.read_csv(
                path, dtype=str, keep_default_na=False, encoding="utf-8"
            )
        except FileNotFoundError:
            logger.warning("Ridership file not found, skipping: %s", path)
        except (
            OSError,
            UnicodeDecodeError,
            pd.errors.EmptyDataError,
            pd.errors.ParserError,
        ) as exc:
            logger.warning("Failed to read ridership file %s: %s", path, exc)
        return DataFrame()
