"""Parsers for the /proc files that feed the system resource readings."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Optional

U64_MAX = 2**64 - 1
_UINT_RE = re.compile(r"\+?[0-9]+")


class ProcfsError(ValueError):
    """Raised when a /proc file lacks what is needed or holds bad numbers."""


@dataclass(frozen=True)
class MemorySample:
    """Memory in use and in total, in GiB, and the share in use in percent."""

    used_gb: float
    total_gb: float
    usage_percent: float


def _parse_u64(token: str) -> Optional[int]:
    if not _UINT_RE.fullmatch(token):
        return None
    value = int(token)
    return value if value <= U64_MAX else None


def _lines(text: str) -> list[str]:
    parts = text.split("\n")
    if parts and parts[-1] == "":
        parts.pop()
    return [part[:-1] if part.endswith("\r") else part for part in parts]


def kb_to_gb(kb: int) -> float:
    """Convert KiB to GiB."""
    return kb / 1024.0 / 1024.0


def parse_cpu_counters(stat_text: str) -> tuple[int, int]:
    """Return (total, idle) jiffies from the aggregate line of /proc/stat.

    Idle counts both the idle and iowait fields; total sums the first
    eight fields.
    """
    lines = _lines(stat_text)
    if not lines:
        raise ProcfsError("missing aggregate CPU line")
    values = []
    for part in lines[0].split()[1:9]:
        value = _parse_u64(part)
        if value is None:
            raise ProcfsError(f"parse CPU field: {part!r}")
        values.append(value)
    padded = values + [0] * (5 - len(values))
    idle = padded[3] + padded[4]
    return sum(values), idle


def _meminfo_kb(line: str) -> Optional[int]:
    fields = line.split()
    return _parse_u64(fields[1]) if len(fields) > 1 else None


def parse_meminfo(text: str) -> MemorySample:
    """Compute memory use from the MemTotal and MemAvailable lines of /proc/meminfo."""
    total_kb: Optional[int] = None
    available_kb: Optional[int] = None
    for line in _lines(text):
        if line.startswith("MemTotal:"):
            total_kb = _meminfo_kb(line)
        elif line.startswith("MemAvailable:"):
            available_kb = _meminfo_kb(line)
    if total_kb is None:
        raise ProcfsError("missing MemTotal")
    if available_kb is None:
        raise ProcfsError("missing MemAvailable")
    used_kb = max(total_kb - available_kb, 0)
    usage = used_kb / total_kb * 100.0 if total_kb else math.nan
    return MemorySample(
        used_gb=kb_to_gb(used_kb),
        total_gb=kb_to_gb(total_kb),
        usage_percent=usage,
    )


def parse_net_dev(text: str) -> tuple[int, int]:
    """Return (rx_bytes, tx_bytes) summed over all non-loopback interfaces of /proc/net/dev."""
    rx_bytes = 0
    tx_bytes = 0
    for line in _lines(text)[2:]:
        iface, sep, stats = line.partition(":")
        if not sep or iface.strip() == "lo":
            continue
        fields = stats.split()
        if len(fields) < 16:
            continue
        rx_bytes = min(rx_bytes + (_parse_u64(fields[0]) or 0), U64_MAX)
        tx_bytes = min(tx_bytes + (_parse_u64(fields[8]) or 0), U64_MAX)
    return rx_bytes, tx_bytes