"""Graphviz DOT generation for the ROS graph and parsing of `dot -Tplain` output."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

TOPIC_PREFIX = "topic::"
NS_MIN_TOPICS = 2

_ASCII_WHITESPACE = frozenset(" \t\n\r\x0c")
_UINT_RE = re.compile(r"\+?[0-9]+")


@dataclass
class LayoutNode:
    """A node placed by graphviz, in inches; topics have `is_topic` set."""

    name: str
    x: float
    y: float
    w: float
    h: float
    is_topic: bool
    local_only: bool = False


@dataclass
class LayoutEdge:
    """An edge placed by graphviz: its spline control points and end names."""

    points: list[tuple[float, float]]
    tail: str
    head: str
    local_only: bool = False


@dataclass
class LayoutNamespaceBox:
    """Bounding box of a namespace group, in graphviz coordinates (inches)."""

    label: str
    cx: float
    cy: float
    w: float
    h: float


@dataclass
class LayoutedGraph:
    """A laid-out graph: overall size in inches plus nodes, edges and boxes."""

    width_in: float = 0.0
    height_in: float = 0.0
    nodes: list[LayoutNode] = field(default_factory=list)
    edges: list[LayoutEdge] = field(default_factory=list)
    namespace_boxes: list[LayoutNamespaceBox] = field(default_factory=list)


def topic_namespace(topic: str) -> Optional[str]:
    """Top-level namespace of a topic, or None for a root-level topic."""
    stripped = topic.lstrip("/")
    head, sep, _ = stripped.partition("/")
    return f"/{head}" if sep else None


def group_topics_by_namespace(topic_names: Iterable[str]) -> dict[str, list[str]]:
    """Group topics by top-level namespace, keeping groups of at least two topics."""
    groups: dict[str, list[str]] = {}
    for topic in sorted(set(topic_names)):
        namespace = topic_namespace(topic)
        if namespace is not None:
            groups.setdefault(namespace, []).append(topic)
    return {
        namespace: topics
        for namespace, topics in sorted(groups.items())
        if len(topics) >= NS_MIN_TOPICS
    }


def cluster_dot_id(namespace: str) -> str:
    """DOT subgraph identifier for a namespace cluster."""
    return "cluster_" + re.sub(r"[/\-.]", "_", namespace)


def _quote(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


def dot_id(name: str) -> str:
    """Quoted DOT identifier for a ROS node name."""
    return _quote(name)


def topic_dot_id(name: str) -> str:
    """Quoted DOT identifier for a topic, prefixed to keep it apart from node names."""
    return _quote(TOPIC_PREFIX + name)


def build_dot_source(
    ros_nodes: Iterable[str],
    topic_names: Iterable[str],
    pub_edges: Iterable[tuple[str, str]],
    sub_edges: Iterable[tuple[str, str]],
    ns_groups: Mapping[str, list[str]],
) -> str:
    """Render the ROS graph as a left-to-right DOT digraph."""
    lines = [
        "digraph ros {",
        "  rankdir=LR;",
        "  edge [arrowsize=0.7];",
        '  node [shape=ellipse, fontname="sans-serif", fontsize=11];',
    ]
    lines.extend(f"  {dot_id(node)};" for node in sorted(set(ros_nodes)))

    clustered = {topic for topics in ns_groups.values() for topic in topics}

    for namespace in sorted(ns_groups):
        lines.extend(
            [
                f"  subgraph {cluster_dot_id(namespace)} {{",
                f"    label={dot_id(namespace)};",
                "    style=filled;",
                '    fillcolor="#eaf4ea";',
                '    color="#6aaa6a";',
                '    node [shape=box, fontname="sans-serif", fontsize=10];',
            ]
        )
        lines.extend(f"    {topic_dot_id(topic)};" for topic in ns_groups[namespace])
        lines.append("  }")

    root_topics = [t for t in sorted(set(topic_names)) if t not in clustered]
    if root_topics:
        lines.append('  node [shape=box, fontname="sans-serif", fontsize=10];')
        lines.extend(f"  {topic_dot_id(topic)};" for topic in root_topics)

    lines.extend(
        f"  {dot_id(node)} -> {topic_dot_id(topic)};" for node, topic in sorted(set(pub_edges))
    )
    lines.extend(
        f"  {topic_dot_id(topic)} -> {dot_id(node)};" for topic, node in sorted(set(sub_edges))
    )
    lines.append("}")
    return "\n".join(lines) + "\n"


def tokenize(line: str) -> list[str]:
    """Split one line of plain output into tokens, honouring double quotes and escapes."""
    tokens: list[str] = []
    pos = 0
    length = len(line)
    while pos < length:
        char = line[pos]
        if char in _ASCII_WHITESPACE:
            pos += 1
            continue
        if char == '"':
            pos += 1
            chunk: list[str] = []
            escaped = False
            while pos < length:
                char = line[pos]
                pos += 1
                if char == "\\" and not escaped:
                    escaped = True
                    continue
                if char == '"' and not escaped:
                    break
                escaped = False
                chunk.append(char)
            tokens.append("".join(chunk))
        else:
            start = pos
            while pos < length and line[pos] not in _ASCII_WHITESPACE:
                pos += 1
            tokens.append(line[start:pos])
    return tokens


def _parse_float(token: str, default: float) -> float:
    if "_" in token:
        return default
    try:
        return float(token)
    except ValueError:
        return default


def _parse_count(token: str) -> int:
    return int(token) if _UINT_RE.fullmatch(token) else 0


def _lines(text: str) -> list[str]:
    parts = text.split("\n")
    if parts and parts[-1] == "":
        parts.pop()
    return [part[:-1] if part.endswith("\r") else part for part in parts]


def parse_plain_output(plain: str) -> LayoutedGraph:
    """Parse the `graph`, `node` and `edge` lines of `dot -Tplain` output."""
    layouted = LayoutedGraph()
    for line in _lines(plain):
        tok = tokenize(line)
        if not tok:
            continue
        kind = tok[0]
        if kind == "graph" and len(tok) >= 4:
            layouted.width_in = _parse_float(tok[2], 1.0)
            layouted.height_in = _parse_float(tok[3], 1.0)
        elif kind == "node" and len(tok) >= 6:
            raw = tok[1]
            is_topic = raw.startswith(TOPIC_PREFIX)
            name = raw[len(TOPIC_PREFIX):] if is_topic else raw
            layouted.nodes.append(
                LayoutNode(
                    name=name,
                    x=_parse_float(tok[2], 0.0),
                    y=_parse_float(tok[3], 0.0),
                    w=_parse_float(tok[4], 1.0),
                    h=_parse_float(tok[5], 0.5),
                    is_topic=is_topic,
                )
            )
        elif kind == "edge" and len(tok) >= 4:
            count = _parse_count(tok[3])
            if len(tok) < 4 + count * 2:
                continue
            coords = tok[4:4 + count * 2]
            points = [
                (_parse_float(x, 0.0), _parse_float(y, 0.0))
                for x, y in zip(coords[0::2], coords[1::2])
            ]
            layouted.edges.append(LayoutEdge(points=points, tail=tok[1], head=tok[2]))
    return layouted