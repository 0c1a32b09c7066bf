"""Portable station-name hashing.

Synthetic coordinates and 3D depths are derived from a 32-bit FNV-1a hash of
the UTF-8 encoded station name so they are stable across reloads, processes
and implementations.
"""

from __future__ import annotations

FNV_OFFSET_BASIS_32 = 0x811C9DC5
FNV_PRIME_32 = 0x01000193
_MASK_32 = 0xFFFFFFFF


def fnv1a_32(text: str) -> int:
    """Return the 32-bit FNV-1a hash of ``text`` encoded as UTF-8."""
    value = FNV_OFFSET_BASIS_32
    for byte in text.encode("utf-8"):
        value ^= byte
        value = (value * FNV_PRIME_32) & _MASK_32
    return value


def unit_fraction(value: int) -> float:
    """Map a non-negative integer onto [0, 1] in 1000 evenly spaced steps."""
    return (value % 1000) / 999
