"""Geometry and labelling for the scrolling resource charts."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, NamedTuple

HISTORY_WINDOW_SECS = 60.0
HISTORY_RETENTION_SECS = 65.0
LEFT_PADDING = 8.0
RIGHT_AXIS_WIDTH = 48.0
TOP_PADDING = 8.0
BOTTOM_PADDING = 22.0

KIB = 1024.0
MIB = 1024.0 * 1024.0


@dataclass(frozen=True)
class Rect:
    """An axis-aligned rectangle in screen coordinates (y grows downwards)."""

    left: float
    top: float
    right: float
    bottom: float

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top


class TimedSample(NamedTuple):
    """A value observed at a time, in seconds since the start of sampling."""

    time_secs: float
    value: float


def graph_inner_rect(rect: Rect) -> Rect:
    """The plotting area inside a chart, leaving room for the axis labels."""
    return Rect(
        left=rect.left + LEFT_PADDING,
        top=rect.top + TOP_PADDING,
        right=rect.right - RIGHT_AXIS_WIDTH,
        bottom=rect.bottom - BOTTOM_PADDING,
    )


def build_series_points(
    rect: Rect, now_secs: float, samples: Iterable[tuple[float, float]], y_max: float
) -> list[tuple[float, float]]:
    """Screen points for a time series with the newest sample at the right edge.

    The last sample off the left edge is kept so the line crosses the edge,
    and the last value is extended one second past the right edge.
    """
    samples = [TimedSample(*s) for s in samples]
    if not samples:
        return []

    gr = graph_inner_rect(rect)
    window = HISTORY_WINDOW_SECS
    one_step = gr.width / window

    def age_to_x(time_secs: float) -> float:
        age = max(now_secs - time_secs, 0.0)
        return gr.right - gr.width * (age / window)

    def val_to_y(value: float) -> float:
        norm = min(max(value, 0.0), y_max) / y_max if y_max > 0.0 else 0.0
        return gr.bottom - gr.height * norm

    start = 0
    for index in range(len(samples) - 1, -1, -1):
        if age_to_x(samples[index].time_secs) < gr.left:
            start = index
            break

    points = [(age_to_x(s.time_secs), val_to_y(s.value)) for s in samples[start:]]
    points.append((gr.right + one_step, val_to_y(samples[-1].value)))
    return points


def nice_linear_max(value: float) -> float:
    """Round up to 1, 2 or 5 times a power of ten."""
    if value <= 0.0:
        return 1.0
    if not math.isfinite(value):
        return value
    magnitude = 10.0 ** math.floor(math.log10(value))
    normalized = value / magnitude
    if normalized <= 1.0:
        nice = 1.0
    elif normalized <= 2.0:
        nice = 2.0
    elif normalized <= 5.0:
        nice = 5.0
    else:
        nice = 10.0
    return nice * magnitude


def nice_network_max_mib(peak_mib: float) -> float:
    """Axis maximum in MiB/s for a peak rate, with 10% headroom."""
    return nice_linear_max(max(peak_mib * 1.1, 1.0 / 1024.0))


def network_axis_unit(y_max_mib: float) -> tuple[float, str, float]:
    """Return (axis maximum in the unit, unit label, bytes-to-unit scale)."""
    if y_max_mib < 1.0:
        return y_max_mib * KIB, "KiB/s", 1.0 / KIB
    return y_max_mib, "MiB/s", 1.0 / MIB


def format_rate(value_bytes_per_sec: float) -> str:
    """Human readable transfer rate in KiB/s or MiB/s."""
    if value_bytes_per_sec < MIB:
        return f"{value_bytes_per_sec / KIB:.1f} KiB/s"
    return f"{value_bytes_per_sec / MIB:.1f} MiB/s"


def axis_labels(y_max: float, unit: str) -> list[str]:
    """The six y-axis labels from the top (y_max) down to zero."""
    labels = []
    for step in range(6):
        value = y_max * (5 - step) / 5.0
        if unit == "%":
            labels.append(f"{value:.0f}%")
        else:
            labels.append(f"{value:.1f} {unit}")
    return labels