"""Zoom and pan of the laid-out ROS graph, and mapping between graph and screen."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from ros2probe.charts import Rect
from ros2probe.dot import LayoutedGraph

DPI = 72.0
GRAPH_PADDING = 16.0
MIN_ZOOM = 0.1
MAX_ZOOM = 10.0
SCROLL_SENSITIVITY = 0.002

Point = tuple[float, float]


def _center(rect: Rect) -> Point:
    return ((rect.left + rect.right) * 0.5, (rect.top + rect.bottom) * 0.5)


def _contains(rect: Rect, pos: Point) -> bool:
    x, y = pos
    return rect.left <= x <= rect.right and rect.top <= y <= rect.bottom


@dataclass
class ViewState:
    """User zoom factor and pan offset (in screen pixels) of a graph view."""

    zoom: float = 1.0
    pan_x: float = 0.0
    pan_y: float = 0.0

    def drag(self, dx: float, dy: float) -> None:
        """Move the view by a drag delta."""
        self.pan_x += dx
        self.pan_y += dy

    def reset(self, fit_zoom: float) -> None:
        """Return to the fitted zoom with no pan."""
        self.zoom = fit_zoom
        self.pan_x = 0.0
        self.pan_y = 0.0

    def scroll(self, delta: float, cursor: Optional[Point], rect: Rect) -> None:
        """Zoom around the cursor; ignored when the cursor is outside `rect`."""
        if delta == 0.0:
            return
        if cursor is None:
            cursor = _center(rect)
        if not _contains(rect, cursor):
            return
        factor = math.exp(delta * SCROLL_SENSITIVITY)
        cx, cy = _center(rect)
        self.pan_x = (cursor[0] - cx) * (1.0 - factor) + self.pan_x * factor
        self.pan_y = (cursor[1] - cy) * (1.0 - factor) + self.pan_y * factor
        self.zoom = min(max(self.zoom * factor, MIN_ZOOM), MAX_ZOOM)


def compute_fit_zoom(layout: LayoutedGraph, rect: Rect) -> float:
    """Zoom level that fits the whole graph inside `rect` with padding."""
    avail_w = max(rect.width - GRAPH_PADDING * 2.0, 1.0)
    avail_h = max(rect.height - GRAPH_PADDING * 2.0, 1.0)
    w = layout.width_in * DPI
    h = layout.height_in * DPI
    if w > 0.0 and h > 0.0:
        return min(avail_w / w, avail_h / h)
    return 1.0


def to_screen(
    x: float, y: float, rect: Rect, layout: LayoutedGraph, view: ViewState
) -> Point:
    """Map a graphviz position (inches, y up) to a screen position."""
    cx, cy = _center(rect)
    base_left = cx - layout.width_in * DPI * 0.5
    base_bottom = cy + layout.height_in * DPI * 0.5
    base_x = base_left + x * DPI
    base_y = base_bottom - y * DPI
    return (
        cx + (base_x - cx) * view.zoom + view.pan_x,
        cy + (base_y - cy) * view.zoom + view.pan_y,
    )


def find_topic_at(
    layout: LayoutedGraph, rect: Rect, view: ViewState, pos: Point
) -> Optional[str]:
    """Name of the topic node drawn under `pos`, or None."""
    for node in layout.nodes:
        if not node.is_topic:
            continue
        cx, cy = to_screen(node.x, node.y, rect, layout, view)
        hw = node.w * DPI * view.zoom * 0.5
        hh = node.h * DPI * view.zoom * 0.5
        node_rect = Rect(left=cx - hw, top=cy - hh, right=cx + hw, bottom=cy + hh)
        if _contains(node_rect, pos):
            return node.name
    return None