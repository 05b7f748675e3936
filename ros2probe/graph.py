"""Filtering of ROS graph snapshots and topic classification."""

from __future__ import annotations

from dataclasses import dataclass

from ros2probe.snapshot import GraphSnapshot


@dataclass
class GraphFilter:
    """Which kinds of topics to hide from the graph view."""

    hide_tf: bool = True
    hide_params: bool = True
    hide_debug: bool = True
    hide_leaf_topics: bool = True


def _is_tf_topic(name: str) -> bool:
    return name in ("/tf", "/tf_static")


def _is_param_topic(name: str) -> bool:
    return name == "/rosout" or name.endswith("/parameter_events")


def is_debug_topic(name: str) -> bool:
    """True if any path segment of the topic name starts with an underscore."""
    return any(segment.startswith("_") for segment in name.split("/") if segment)


def is_recordable_topic(name: str, graph: GraphSnapshot) -> bool:
    """True if the topic is seen on the network, has subscribers and is not internal."""
    topic = next((t for t in graph.topics if t.name == name), None)
    if topic is None or topic.local_only:
        return False
    if _is_tf_topic(name) or _is_param_topic(name) or is_debug_topic(name):
        return False
    return bool(topic.subscribers)


def apply_filter(snapshot: GraphSnapshot, graph_filter: GraphFilter) -> GraphSnapshot:
    """Return a new snapshot with hidden topics removed.

    Nodes that lose all their topics are moved to the isolated nodes.
    """
    topics = list(snapshot.topics)
    if graph_filter.hide_tf:
        topics = [t for t in topics if not _is_tf_topic(t.name)]
    if graph_filter.hide_params:
        topics = [t for t in topics if not _is_param_topic(t.name)]
    if graph_filter.hide_debug:
        topics = [t for t in topics if not is_debug_topic(t.name)]
    if graph_filter.hide_leaf_topics:
        topics = [t for t in topics if t.subscribers]

    filtered = GraphSnapshot(topics=topics)
    connected = filtered.connected_nodes()
    isolated = [n for n in snapshot.isolated_nodes if n not in connected]

    originally_connected = dict.fromkeys(
        node for topic in snapshot.topics for node in topic.nodes()
    )
    for node in originally_connected:
        if node not in connected and node not in isolated:
            isolated.append(node)

    filtered.isolated_nodes = isolated
    return filtered