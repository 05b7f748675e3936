"""Graph layout through graphviz `dot`, run in place or on a background thread."""

from __future__ import annotations

import queue
import subprocess
import threading
from typing import Mapping, Optional, Sequence, Union

from ros2probe.dot import (
    TOPIC_PREFIX,
    LayoutedGraph,
    LayoutNamespaceBox,
    LayoutNode,
    build_dot_source,
    group_topics_by_namespace,
    parse_plain_output,
)
from ros2probe.snapshot import GraphSnapshot

DEFAULT_DOT_COMMAND = "/usr/bin/dot"
# Padding (in graphviz inches) around topic nodes inside a namespace box.
NS_PAD = 0.18

DotCommand = Union[str, Sequence[str]]


def compute_namespace_boxes(
    nodes: Sequence[LayoutNode], ns_groups: Mapping[str, Sequence[str]]
) -> list[LayoutNamespaceBox]:
    """Bounding boxes around the laid-out topic nodes of each namespace group."""
    boxes = []
    for namespace, topics in ns_groups.items():
        members = [n for n in nodes if n.is_topic and n.name in topics]
        if not members:
            continue
        min_x = min(n.x - n.w * 0.5 for n in members)
        max_x = max(n.x + n.w * 0.5 for n in members)
        min_y = min(n.y - n.h * 0.5 for n in members)
        max_y = max(n.y + n.h * 0.5 for n in members)
        boxes.append(
            LayoutNamespaceBox(
                label=namespace,
                cx=(min_x + max_x) * 0.5,
                cy=(min_y + max_y) * 0.5,
                w=(max_x - min_x) + NS_PAD * 2.0,
                h=(max_y - min_y) + NS_PAD * 2.0,
            )
        )
    return boxes


def _command_line(dot_command: DotCommand) -> list[str]:
    if isinstance(dot_command, str):
        return [dot_command, "-Tplain"]
    return [*dot_command, "-Tplain"]


def compute_graph_layout(
    graph: GraphSnapshot, dot_command: DotCommand = DEFAULT_DOT_COMMAND
) -> Optional[LayoutedGraph]:
    """Lay the graph out with `dot`; None if the graph is empty or `dot` fails."""
    if not graph.topics and not graph.isolated_nodes:
        return None

    ros_nodes: set[str] = set()
    topic_names: set[str] = set()
    pub_edges: set[tuple[str, str]] = set()
    sub_edges: set[tuple[str, str]] = set()
    for topic in graph.topics:
        topic_names.add(topic.name)
        for node in topic.publishers:
            ros_nodes.add(node)
            pub_edges.add((node, topic.name))
        for node in topic.subscribers:
            ros_nodes.add(node)
            sub_edges.add((topic.name, node))
    ros_nodes.update(graph.isolated_nodes)

    if not topic_names and not ros_nodes:
        return None

    ns_groups = group_topics_by_namespace(topic_names)
    dot_src = build_dot_source(ros_nodes, topic_names, pub_edges, sub_edges, ns_groups)

    try:
        result = subprocess.run(
            _command_line(dot_command),
            input=dot_src.encode("utf-8"),
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            check=False,
        )
    except OSError:
        return None
    if result.returncode != 0:
        return None
    try:
        plain = result.stdout.decode("utf-8")
    except UnicodeDecodeError:
        return None

    layouted = parse_plain_output(plain)
    layouted.namespace_boxes = compute_namespace_boxes(layouted.nodes, ns_groups)

    topic_map = {t.name: t for t in graph.topics}
    for node in layouted.nodes:
        if node.is_topic:
            topic = topic_map.get(node.name)
            node.local_only = topic.local_only if topic is not None else False
    for edge in layouted.edges:
        for end in (edge.head, edge.tail):
            if end.startswith(TOPIC_PREFIX):
                topic = topic_map.get(end[len(TOPIC_PREFIX):])
                if topic is not None:
                    edge.local_only = topic.local_only
                    break

    return layouted


_STOP = object()


class LayoutWorker:
    """Runs `compute_graph_layout` on a background thread.

    Only the most recent pending graph is laid out; older submissions are
    dropped. `poll` returns `LayoutWorker.PENDING` until a result is ready.
    """

    PENDING = object()

    def __init__(self, dot_command: DotCommand = DEFAULT_DOT_COMMAND) -> None:
        self._dot_command = dot_command
        self._inbox: queue.Queue = queue.Queue()
        self._outbox: queue.Queue = queue.Queue()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while True:
            item = self._inbox.get()
            stop = item is _STOP
            while not stop:
                try:
                    newer = self._inbox.get_nowait()
                except queue.Empty:
                    break
                if newer is _STOP:
                    stop = True
                else:
                    item = newer
            if stop:
                return
            self._outbox.put(compute_graph_layout(item, self._dot_command))

    def submit(self, graph: GraphSnapshot) -> None:
        """Queue a graph for layout without blocking."""
        self._inbox.put(graph)

    def poll(self):
        """Return a finished layout (possibly None), or `PENDING` if none is ready."""
        try:
            return self._outbox.get_nowait()
        except queue.Empty:
            return self.PENDING

    def close(self) -> None:
        """Stop the background thread."""
        self._inbox.put(_STOP)
        self._thread.join(timeout=5.0)

    def __enter__(self) -> "LayoutWorker":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()