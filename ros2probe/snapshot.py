"""ROS graph snapshots built from topic and node details reported by the runtime."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional


@dataclass(frozen=True)
class Endpoint:
    """One publisher or subscription endpoint of a topic."""

    gid: str
    node_name: Optional[str] = None
    node_namespace: Optional[str] = None
    reliability: Optional[str] = None
    durability: Optional[str] = None
    lifespan: Optional[str] = None
    deadline: Optional[str] = None
    liveliness: Optional[str] = None
    liveliness_lease_duration: Optional[str] = None

    @property
    def full_node_name(self) -> Optional[str]:
        """The fully qualified node name, or None when the node is unknown."""
        if self.node_name is None:
            return None
        return full_node_name(self.node_namespace or "/", self.node_name)


@dataclass
class TopicDetails:
    """Details of one topic: types, endpoints and whether it stays on the host."""

    name: str
    type_names: list[str] = field(default_factory=list)
    publisher_count: int = 0
    subscription_count: int = 0
    publishers: list[Endpoint] = field(default_factory=list)
    subscriptions: list[Endpoint] = field(default_factory=list)
    local_only: bool = False


@dataclass(frozen=True)
class NodeDetails:
    """A ROS node known to the runtime."""

    name: str
    namespace: str = "/"


@dataclass
class GraphTopic:
    """A topic in the graph with the nodes that publish and subscribe to it."""

    name: str
    publishers: list[str] = field(default_factory=list)
    subscribers: list[str] = field(default_factory=list)
    local_only: bool = False

    def nodes(self) -> Iterable[str]:
        """All publisher and subscriber node names, publishers first."""
        yield from self.publishers
        yield from self.subscribers


@dataclass
class GraphSnapshot:
    """Topics with their connected nodes, plus nodes with no topic connections."""

    topics: list[GraphTopic] = field(default_factory=list)
    isolated_nodes: list[str] = field(default_factory=list)

    def connected_nodes(self) -> set[str]:
        """Names of every node that publishes or subscribes to some topic."""
        return {node for topic in self.topics for node in topic.nodes()}


def full_node_name(namespace: str, name: str) -> str:
    """Join a namespace and a node name into a fully qualified name."""
    if not namespace or namespace == "/":
        return f"/{name}"
    return f"{namespace.rstrip('/')}/{name}"


def _endpoint_nodes(endpoints: Iterable[Endpoint]) -> list[str]:
    return sorted({n for n in (ep.full_node_name for ep in endpoints) if n is not None})


def build_graph_snapshot(
    topics: Iterable[TopicDetails], nodes: Iterable[NodeDetails]
) -> GraphSnapshot:
    """Build a graph from topic details; nodes on no topic become isolated."""
    graph_topics = [
        GraphTopic(
            name=details.name,
            publishers=_endpoint_nodes(details.publishers),
            subscribers=_endpoint_nodes(details.subscriptions),
            local_only=details.local_only,
        )
        for details in topics
        if details.publisher_count > 0 or details.subscription_count > 0
    ]
    snapshot = GraphSnapshot(topics=graph_topics)
    connected = snapshot.connected_nodes()
    snapshot.isolated_nodes = [
        full
        for full in (full_node_name(node.namespace, node.name) for node in nodes)
        if full not in connected
    ]
    return snapshot