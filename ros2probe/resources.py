"""Sampling of CPU, memory and network use from /proc with rolling rate windows."""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, NamedTuple, Optional, Union

from ros2probe.charts import HISTORY_RETENTION_SECS, TimedSample, format_rate
from ros2probe.procfs import MemorySample, parse_cpu_counters, parse_meminfo, parse_net_dev

# Rates are averaged over about one second regardless of how often counters are read.
RATE_WINDOW = 1.0


class NetworkSample(NamedTuple):
    """Receive and transmit rates in bytes per second."""

    rx_bytes_per_sec: float
    tx_bytes_per_sec: float


class TimedNetworkSample(NamedTuple):
    """Network rates observed at a time, in seconds since sampling started."""

    time_secs: float
    rx_bytes_per_sec: float
    tx_bytes_per_sec: float


@dataclass
class ResourceSnapshot:
    """Formatted current readings plus the chart histories."""

    cpu_value: str = ""
    memory_value: str = ""
    network_rx: str = ""
    network_tx: str = ""
    cpu_history: list[TimedSample] = field(default_factory=list)
    memory_history: list[TimedSample] = field(default_factory=list)
    network_history: list[TimedNetworkSample] = field(default_factory=list)


def prune_counter_window(history: deque, now: float, window: float) -> None:
    """Drop counter samples older than `now - window`, always keeping at least one."""
    while len(history) > 1 and now - history[0][0] > window:
        history.popleft()


def trim_history(history: deque, min_time_secs: float) -> None:
    """Drop samples from the front that are older than `min_time_secs`."""
    while history and history[0].time_secs < min_time_secs:
        history.popleft()


class SystemSampler:
    """Reads /proc counters and turns them into rates and chart histories.

    Call `refresh_counters` often (several times a second) and `snapshot`
    at the display cadence.
    """

    def __init__(
        self,
        start_time: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        proc_root: Union[str, Path] = "/proc",
    ) -> None:
        self._clock = clock
        self.start_time = clock() if start_time is None else start_time
        self.proc_root = Path(proc_root)
        self.cpu_counter_history: deque[tuple[float, int, int]] = deque()
        self.net_counter_history: deque[tuple[float, int, int]] = deque()
        self.cpu_history: deque[TimedSample] = deque()
        self.memory_history: deque[TimedSample] = deque()
        self.network_history: deque[TimedNetworkSample] = deque()

    def _read(self, relative: str) -> str:
        return (self.proc_root / relative).read_text()

    def refresh_counters(self) -> None:
        """Read the CPU and network counters into the rolling windows."""
        total, idle = parse_cpu_counters(self._read("stat"))
        now = self._clock()
        self.cpu_counter_history.append((now, total, idle))
        prune_counter_window(self.cpu_counter_history, now, RATE_WINDOW)

        now = self._clock()
        rx_bytes, tx_bytes = parse_net_dev(self._read("net/dev"))
        self.net_counter_history.append((now, rx_bytes, tx_bytes))
        prune_counter_window(self.net_counter_history, now, RATE_WINDOW)

    def current_cpu_rate(self) -> Optional[float]:
        """CPU use in percent over the rate window, or None without enough data."""
        if len(self.cpu_counter_history) < 2:
            return None
        _, oldest_total, oldest_idle = self.cpu_counter_history[0]
        _, newest_total, newest_idle = self.cpu_counter_history[-1]
        total_delta = max(newest_total - oldest_total, 0)
        idle_delta = max(newest_idle - oldest_idle, 0)
        if total_delta == 0:
            return None
        usage = max(total_delta - idle_delta, 0) / total_delta * 100.0
        return min(max(usage, 0.0), 100.0)

    def current_network_rate(self) -> Optional[NetworkSample]:
        """Network rates over the rate window, or None without enough data."""
        if len(self.net_counter_history) < 2:
            return None
        oldest_time, oldest_rx, oldest_tx = self.net_counter_history[0]
        newest_time, newest_rx, newest_tx = self.net_counter_history[-1]
        elapsed = max(newest_time - oldest_time, 0.0)
        if elapsed <= 0.0:
            return None
        return NetworkSample(
            rx_bytes_per_sec=max(max(newest_rx - oldest_rx, 0) / elapsed, 0.0),
            tx_bytes_per_sec=max(max(newest_tx - oldest_tx, 0) / elapsed, 0.0),
        )

    def sample_memory_usage(self) -> MemorySample:
        """Current memory use from /proc/meminfo."""
        return parse_meminfo(self._read("meminfo"))

    def snapshot(self) -> ResourceSnapshot:
        """Append one point to each history and return the readings to show."""
        cpu_usage = self.current_cpu_rate()
        memory = self.sample_memory_usage()
        network = self.current_network_rate()
        now_secs = self._clock() - self.start_time

        if cpu_usage is not None:
            self.cpu_history.append(TimedSample(now_secs, cpu_usage))
        self.memory_history.append(TimedSample(now_secs, memory.usage_percent))
        if network is not None:
            self.network_history.append(
                TimedNetworkSample(now_secs, network.rx_bytes_per_sec, network.tx_bytes_per_sec)
            )

        min_time = now_secs - HISTORY_RETENTION_SECS
        trim_history(self.cpu_history, min_time)
        trim_history(self.memory_history, min_time)
        trim_history(self.network_history, min_time)

        rx = network.rx_bytes_per_sec if network is not None else 0.0
        tx = network.tx_bytes_per_sec if network is not None else 0.0
        return ResourceSnapshot(
            cpu_value=f"{cpu_usage or 0.0:.0f}%",
            memory_value=(
                f"{memory.usage_percent:.0f}% "
                f"({memory.used_gb:.1f} / {memory.total_gb:.1f} GB)"
            ),
            network_rx=format_rate(rx),
            network_tx=format_rate(tx),
            cpu_history=list(self.cpu_history),
            memory_history=list(self.memory_history),
            network_history=list(self.network_history),
        )