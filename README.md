# ros2probe

Building blocks for watching a ROS 2 system from the outside:

- a parser for RTPS traffic (the DDS wire protocol) that reassembles `DATA_FRAG` samples,
- tools to build, filter and lay out a ROS topic graph with Graphviz,
- viewport maths for zooming and panning a laid-out graph,
- a sampler for CPU, memory and network use read from `/proc`, with chart helpers.

It depends on nothing outside the standard library.

## Installation

```
pip install .
```

With the test dependencies:

```
pip install ".[test]"
```

Graph layout runs the Graphviz `dot` program; install Graphviz if you need layouts.

## What this package does not do

It is a library only: it has no command, no window and no server.

- It does not capture packets. You build a `CapturedUdpPacket` from a UDP payload you obtained yourself.
- It does not ask a running ROS system for its topics and nodes. You supply `TopicDetails` and `NodeDetails` objects.
- It does not draw anything. It computes layouts, screen positions, chart points and labels for a user interface to draw.

## Modules

### `ros2probe.rtps`: RTPS parsing

`RtpsProcessor(capacity)` parses packets. `process_packet(packet)` takes a `CapturedUdpPacket` and returns a list of events found in its UDP payload:

- an `RtpsMessage` for traffic from built-in discovery writers (`kind` is a `DiscoveryKind`),
- an `RtpsDataMessage` for user data.

Payloads that are not RTPS give an empty list. `DATA` submessages are parsed directly; a `DATA` carrying a disposed or unregistered status in its inline QoS is reported with `disposed=True`. `DATA_FRAG` fragments are held until the whole sample has arrived. At most `capacity` incomplete samples are kept; when the limit is reached the oldest is dropped. A fragment that reports a different sample size than earlier fragments of the same sample discards that sample. Submessages too short to read raise `RtpsError` (a `ValueError`).

Helpers:

- `gid_from_parts(guid_prefix, entity_id)` joins a 12-byte prefix and a 4-byte entity id into a 16-byte GUID; wrong lengths raise `ValueError`.
- `classify_writer(writer_entity_id)` returns a `DiscoveryKind`, or `None` for user data.
- `insert_range(ranges, start, end)` inserts a half-open range into a sorted list and merges overlapping or touching ranges in place.

### `ros2probe.snapshot` and `ros2probe.graph`: the topic graph

`build_graph_snapshot(topics, nodes)` turns `TopicDetails` and `NodeDetails` into a `GraphSnapshot`. Topics with no publishers and no subscriptions are left out. Every other topic becomes a `GraphTopic` with sorted, de-duplicated lists of fully qualified publisher and subscriber node names (see `full_node_name`). Nodes attached to no topic are listed in `isolated_nodes`.

`apply_filter(snapshot, graph_filter)` returns a new snapshot with topics hidden according to a `GraphFilter`:

- `hide_tf`: `/tf` and `/tf_static`,
- `hide_params`: `/rosout` and topics ending in `/parameter_events`,
- `hide_debug`: topics with a path segment starting with `_` (see `is_debug_topic`),
- `hide_leaf_topics`: topics without subscribers.

All four are on by default. Nodes left without any topic are added to the isolated nodes.

`is_recordable_topic(name, graph)` is true for a topic in the graph that is not local-only, not a tf, parameter or debug topic, and has subscribers.

### `ros2probe.dot` and `ros2probe.layout`: Graphviz layout

`build_dot_source` writes a left-to-right digraph: nodes as ellipses, topics as boxes, topics grouped into one cluster per top-level namespace holding at least two topics (`group_topics_by_namespace`). `parse_plain_output` reads the output of `dot -Tplain` into a `LayoutedGraph` of `LayoutNode` and `LayoutEdge` items.

`compute_graph_layout(graph, dot_command="/usr/bin/dot")` runs `dot`, parses its output, adds a `LayoutNamespaceBox` per namespace group (`compute_namespace_boxes`) and marks local-only topics and their edges. `dot_command` is a program path or a sequence of arguments. It returns `None` if the graph is empty or `dot` cannot be run or fails.

`LayoutWorker` runs layouts on a background thread; of the graphs waiting, only the most recent is laid out. `poll()` returns a finished result (which may be `None`) or `LayoutWorker.PENDING` if nothing is ready. It can be used as a context manager, or stopped with `close()`.

```python
from ros2probe.layout import LayoutWorker

with LayoutWorker() as worker:
    worker.submit(filtered_graph)
    result = worker.poll()  # LayoutWorker.PENDING until a layout is ready
```

### `ros2probe.view`: viewport maths

`ViewState` holds the zoom and pan of a graph view:

- `scroll(delta, cursor, rect)` zooms around the cursor (the centre of `rect` if `cursor` is `None`), keeping the zoom between 0.1 and 10; nothing happens if the cursor is outside `rect`,
- `drag(dx, dy)` pans the view,
- `reset(fit_zoom)` sets the zoom and clears the pan.

`compute_fit_zoom(layout, rect)` gives the zoom at which the whole graph fits `rect`. `to_screen` maps layout coordinates (inches, y up) to screen coordinates, and `find_topic_at` returns the name of the topic node under a point.

### `ros2probe.procfs`, `ros2probe.resources` and `ros2probe.charts`: system resources

`ros2probe.procfs` parses `/proc` text:

- `parse_cpu_counters` returns `(total, idle)` jiffies from `/proc/stat`,
- `parse_meminfo` returns a `MemorySample` from `/proc/meminfo`,
- `parse_net_dev` returns `(rx_bytes, tx_bytes)` summed over non-loopback interfaces of `/proc/net/dev`.

A missing CPU line, a bad CPU field or a missing `MemTotal`/`MemAvailable` raises `ProcfsError`.

`SystemSampler(start_time=None, clock=time.monotonic, proc_root="/proc")` keeps CPU and network counters over a rolling one-second window. Call `refresh_counters()` several times a second and `snapshot()` once a second; the `ResourceSnapshot` holds formatted readings and up to 65 seconds of history.

```python
from ros2probe.resources import SystemSampler

sampler = SystemSampler()
sampler.refresh_counters()
# ... a little later
sampler.refresh_counters()
snap = sampler.snapshot()
print(snap.cpu_value, snap.memory_value, snap.network_rx, snap.network_tx)
```

`ros2probe.charts` holds the chart geometry:

- `Rect`, `TimedSample` and `graph_inner_rect`,
- `build_series_points` maps samples onto a chart of the last 60 seconds,
- `nice_linear_max` and `nice_network_max_mib` round an axis maximum up to 1, 2 or 5 times a power of ten,
- `network_axis_unit` chooses KiB/s or MiB/s,
- `format_rate` formats a transfer rate,
- `axis_labels` gives the six y-axis labels.