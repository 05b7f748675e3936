import math

import pytest

from ros2probe.procfs import (
    ProcfsError,
    kb_to_gb,
    parse_cpu_counters,
    parse_meminfo,
    parse_net_dev,
)

NET_HEADER = (
    "Inter-|   Receive                                                |  Transmit\n"
    " face |bytes    packets errs drop fifo frame compressed multicast|bytes    packets errs drop fifo colls carrier compressed\n"
)


def _iface(name, rx, tx):
    fields = [rx, 1, 0, 0, 0, 0, 0, 0, tx, 1, 0, 0, 0, 0, 0, 0]
    return f"{name:>6}: " + " ".join(str(f) for f in fields) + "\n"


def test_cpu_only_idle_nonzero():
    total, idle = parse_cpu_counters("cpu  0 0 0 7 0 0 0 0\ncpu0 0 0 0 7 0 0 0 0\n")
    assert total == idle == 7


def test_cpu_iowait_counts_as_idle():
    total, idle = parse_cpu_counters("cpu 0 0 0 0 9 0 0 0\n")
    assert total == idle == 9


def test_cpu_takes_only_first_eight_fields():
    base = parse_cpu_counters("cpu 1 2 3 4 5 6 7 8\n")
    extended = parse_cpu_counters("cpu 1 2 3 4 5 6 7 8 900 1000\n")
    assert base == extended


def test_cpu_idle_never_exceeds_total():
    total, idle = parse_cpu_counters("cpu 13 2 40 400 11 0 3 0\n")
    assert 0 <= idle <= total


def test_cpu_errors():
    with pytest.raises(ProcfsError):
        parse_cpu_counters("")
    with pytest.raises(ProcfsError):
        parse_cpu_counters("cpu 1 x 3\n")
    with pytest.raises(ProcfsError):
        parse_cpu_counters("cpu 1 -2 3\n")


def test_kb_to_gb():
    assert kb_to_gb(1024 * 1024) == 1.0
    assert kb_to_gb(0) == 0.0


def test_meminfo_invariants():
    text = "MemTotal:       2048000 kB\nMemFree:  100 kB\nMemAvailable:   512000 kB\n"
    sample = parse_meminfo(text)
    assert sample.total_gb == kb_to_gb(2048000)
    assert sample.used_gb + kb_to_gb(512000) == pytest.approx(sample.total_gb)
    assert sample.usage_percent == pytest.approx(sample.used_gb / sample.total_gb * 100.0)


def test_meminfo_available_above_total_gives_zero_use():
    sample = parse_meminfo("MemTotal: 100 kB\nMemAvailable: 200 kB\n")
    assert sample.used_gb == 0.0
    assert sample.usage_percent == 0.0


def test_meminfo_zero_total_gives_nan():
    sample = parse_meminfo("MemTotal: 0 kB\nMemAvailable: 0 kB\n")
    assert sample.total_gb == 0.0
    assert sample.used_gb == 0.0
    assert math.isnan(sample.usage_percent) is True


def test_meminfo_missing_fields():
    with pytest.raises(ProcfsError, match="missing MemTotal"):
        parse_meminfo("MemAvailable: 10 kB\n")
    with pytest.raises(ProcfsError, match="missing MemAvailable"):
        parse_meminfo("MemTotal: 10 kB\n")
    with pytest.raises(ProcfsError, match="missing MemTotal"):
        parse_meminfo("MemTotal: lots kB\nMemAvailable: 10 kB\n")


def test_net_dev_single_interface():
    text = NET_HEADER + _iface("eth0", 12345, 678)
    assert parse_net_dev(text) == (12345, 678)


def test_net_dev_skips_loopback():
    text = NET_HEADER + _iface("lo", 999, 999)
    assert parse_net_dev(text) == (0, 0)


def test_net_dev_sums_interfaces():
    single = parse_net_dev(NET_HEADER + _iface("eth0", 300, 40))
    double = parse_net_dev(NET_HEADER + _iface("eth0", 300, 40) + _iface("wlan0", 300, 40))
    assert double == (single[0] * 2, single[1] * 2)


def test_net_dev_skips_short_lines_and_header():
    text = NET_HEADER + "  eth1: 1 2 3\n" + _iface("eth0", 5, 6)
    assert parse_net_dev(text) == (5, 6)
    assert parse_net_dev(NET_HEADER) == (0, 0)