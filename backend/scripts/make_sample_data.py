#!/usr/bin/env python3
"""
Create downsampled copies of the monthly ridership CSVs.

Each file in the input directory is copied to the output directory with the
same name, keeping the header row and a random fraction of the data rows.

Usage:
    python scripts/make_sample_data.py --rate 0.05
    python scripts/make_sample_data.py --rate 0.02 --seed 123
"""

from __future__ import annotations

import argparse
import logging
import random
import sys
from collections.abc import Callable, Sequence
from pathlib import Path

from app.core.config import DEFAULT_TRIP_FILE_NAMES

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

LCG_MULTIPLIER = 1664525
LCG_INCREMENT = 1013904223
LCG_MODULUS = 2**32
DEFAULT_SEED = 123456789


class LcgRandom:
    """Numerical Recipes linear congruential generator in [0, 1)."""

    def __init__(self, seed: int) -> None:
        self._state = (seed or DEFAULT_SEED) % LCG_MODULUS

    def __call__(self) -> float:
        self._state = (LCG_MULTIPLIER * self._state + LCG_INCREMENT) % LCG_MODULUS
        return self._state / LCG_MODULUS


def sample_file(
    source: Path, destination: Path, rate: float, rand: Callable[[], float]
) -> tuple[int, int]:
    """Copy the header and a ``rate`` fraction of rows; returns (total, kept)."""
    if not source.is_file():
        logger.warning("[skip] Source file not found: %s", source)
        return 0, 0

    total = kept = 0
    with source.open("r", encoding="utf-8", newline="") as src, destination.open(
        "w", encoding="utf-8", newline=""
    ) as dst:
        for index, line in enumerate(src):
            total += 1
            if index == 0 or rand() < rate:
                dst.write(line if line.endswith("\n") else line + "\n")
                kept += 1
    return total, kept


def _rate(value: str) -> float:
    try:
        rate = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid --rate value: {value}") from exc
    if not 0 < rate < 1:
        raise argparse.ArgumentTypeError(
            f"Invalid --rate value: {value}. Use a decimal between 0 and 1 (e.g., 0.05)."
        )
    return rate


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Downsample monthly ridership CSVs")
    parser.add_argument("--rate", type=_rate, default=0.05, help="Fraction kept (0-1)")
    parser.add_argument("--seed", type=int, default=None, help="Optional LCG seed")
    parser.add_argument("--input-dir", type=Path, default=Path("data"))
    parser.add_argument("--output-dir", type=Path, default=Path("sample-data"))
    parser.add_argument(
        "--files",
        nargs="*",
        default=list(DEFAULT_TRIP_FILE_NAMES),
        help="File names to sample (default: the twelve monthly files)",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    rand: Callable[[], float] = (
        LcgRandom(args.seed) if args.seed is not None else random.random
    )
    args.output_dir.mkdir(parents=True, exist_ok=True)
    logger.info(
        "Creating downsampled CSVs at rate=%s into %s", args.rate, args.output_dir
    )

    grand_total = grand_kept = 0
    for name in args.files:
        try:
            total, kept = sample_file(
                args.input_dir / name, args.output_dir / name, args.rate, rand
            )
        except OSError as exc:
            logger.error("[error] %s: %s", name, exc)
            continue
        grand_total += total
        grand_kept += kept
        if total:
            logger.info("[ok] %s: rows=%d -> kept=%d", name, total, kept)

    share = (grand_kept / grand_total * 100) if grand_total else 0.0
    logger.info(
        "Done. Total rows: %d -> kept: %d (~%.2f%%).", grand_total, grand_kept, share
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
