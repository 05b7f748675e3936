import struct

import pytest

from ros2probe.rtps import (
    RTPS_WRITER_ENTITY_ID_SEDP_PUBLICATIONS,
    RTPS_WRITER_ENTITY_ID_SEDP_SUBSCRIPTIONS,
    RTPS_WRITER_ENTITY_ID_SPDP_PARTICIPANT,
    CapturedUdpPacket,
    DiscoveryKind,
    RtpsDataMessage,
    RtpsError,
    RtpsMessage,
    RtpsProcessor,
    classify_writer,
    gid_from_parts,
    insert_range,
)

PREFIX = bytes(range(1, 13))
HEADER = b"RTPS" + b"\x02\x03\x01\x0f" + PREFIX
USER_WRITER = bytes([0x00, 0x00, 0x12, 0x03])
READER = bytes([0x00, 0x00, 0x12, 0x04])


def data_sub(writer, payload, *, seq=1, flags=0x05, inline_qos=b""):
    e = "<" if flags & 1 else ">"
    body = (
        struct.pack(e + "HH", 0, 16)
        + READER
        + writer
        + struct.pack(e + "iI", 0, seq)
        + inline_qos
        + payload
    )
    return bytes([0x15, flags]) + struct.pack(e + "H", len(body)) + body


def frag_sub(writer, chunk, start_num, frag_size, sample_size, *, seq=7, frags=1):
    body = (
        struct.pack("<HH", 0, 28)
        + READER
        + writer
        + struct.pack("<iI", 0, seq)
        + struct.pack("<IHHI", start_num, frags, frag_size, sample_size)
        + chunk
    )
    return bytes([0x16, 0x01]) + struct.pack("<H", len(body)) + body


def packet(*subs, ts=1.0, ip_frags=1):
    return CapturedUdpPacket(
        payload=HEADER + b"".join(subs),
        socket_timestamp=ts,
        frame_len=100,
        src_ip="10.0.0.1",
        dst_ip="10.0.0.2",
        ip_fragment_count=ip_frags,
    )


def test_non_rtps_packet_yields_nothing():
    proc = RtpsProcessor(4)
    assert proc.process_packet(CapturedUdpPacket(payload=b"XXXX" + bytes(40))) == []
    assert proc.process_packet(CapturedUdpPacket(payload=b"RTPS")) == []


def test_user_data_message():
    proc = RtpsProcessor(4)
    pkt = packet(data_sub(USER_WRITER, b"hello", seq=3))
    events = proc.process_packet(pkt)
    assert len(events) == 1
    msg = events[0]
    assert isinstance(msg, RtpsDataMessage)
    assert msg.payload == b"hello"
    assert msg.writer_gid == PREFIX + USER_WRITER
    assert msg.reader_gid == PREFIX + READER
    assert msg.sequence_number == struct.pack("<iI", 0, 3)
    assert msg.udp_payload_len == len(pkt.payload)
    assert msg.src_ip == "10.0.0.1"


def test_big_endian_data_message():
    proc = RtpsProcessor(4)
    events = proc.process_packet(packet(data_sub(USER_WRITER, b"abc", seq=9, flags=0x04)))
    assert [e.payload for e in events] == [b"abc"]
    assert events[0].sequence_number == struct.pack(">iI", 0, 9)


def test_discovery_message_kind():
    proc = RtpsProcessor(4)
    events = proc.process_packet(packet(data_sub(RTPS_WRITER_ENTITY_ID_SPDP_PARTICIPANT, b"p")))
    assert len(events) == 1
    assert isinstance(events[0], RtpsMessage)
    assert events[0].kind is DiscoveryKind.PARTICIPANT
    assert events[0].is_discovery
    assert events[0].writer_entity_id == RTPS_WRITER_ENTITY_ID_SPDP_PARTICIPANT


def test_multiple_submessages():
    proc = RtpsProcessor(4)
    events = proc.process_packet(
        packet(data_sub(USER_WRITER, b"one", seq=1), data_sub(USER_WRITER, b"two", seq=2))
    )
    assert [e.payload for e in events] == [b"one", b"two"]


def test_data_without_payload_is_skipped():
    proc = RtpsProcessor(4)
    assert proc.process_packet(packet(data_sub(USER_WRITER, b"", flags=0x01))) == []


def test_disposal_via_inline_qos():
    qos = struct.pack("<HHI", 0x0071, 4, 1) + struct.pack("<HH", 0x0001, 0)
    sub = data_sub(RTPS_WRITER_ENTITY_ID_SEDP_PUBLICATIONS, b"", flags=0x03, inline_qos=qos)
    events = RtpsProcessor(4).process_packet(packet(sub))
    assert len(events) == 1
    assert events[0].disposed is True
    assert events[0].payload == b""
    assert events[0].kind is DiscoveryKind.PUBLICATION


def test_inline_qos_without_disposal_skips_to_payload():
    qos = struct.pack("<HHI", 0x0070, 4, 0) + struct.pack("<HH", 0x0001, 0)
    sub = data_sub(USER_WRITER, b"body", flags=0x07, inline_qos=qos)
    events = RtpsProcessor(4).process_packet(packet(sub))
    assert [e.payload for e in events] == [b"body"]


def test_truncated_data_submessage_raises():
    sub = bytes([0x15, 0x05]) + struct.pack("<H", 4) + bytes(4)
    with pytest.raises(RtpsError):
        RtpsProcessor(4).process_packet(packet(sub))


def test_fragment_reassembly_out_of_order():
    proc = RtpsProcessor(4)
    sample = b"abcdefghij"
    first = proc.process_packet(packet(frag_sub(USER_WRITER, sample[4:8], 2, 4, 10), ts=5.0))
    assert first == []
    assert len(proc) == 1
    second = proc.process_packet(packet(frag_sub(USER_WRITER, sample[8:], 3, 4, 10), ts=4.0))
    assert second == []
    events = proc.process_packet(
        packet(frag_sub(USER_WRITER, sample[:4], 1, 4, 10), ts=3.0, ip_frags=2)
    )
    assert len(events) == 1
    msg = events[0]
    assert isinstance(msg, RtpsDataMessage)
    assert msg.payload == sample
    assert msg.captured_at == 3.0
    assert msg.ip_fragment_count == 2
    assert len(proc) == 0


def test_fragment_sample_size_change_discards_flow():
    proc = RtpsProcessor(4)
    proc.process_packet(packet(frag_sub(USER_WRITER, b"abcd", 1, 4, 8)))
    assert proc.process_packet(packet(frag_sub(USER_WRITER, b"efgh", 2, 4, 12))) == []
    assert len(proc) == 0


def test_fragment_capacity_evicts_oldest():
    proc = RtpsProcessor(1)
    proc.process_packet(packet(frag_sub(USER_WRITER, b"abcd", 1, 4, 8, seq=1)))
    proc.process_packet(packet(frag_sub(USER_WRITER, b"wxyz", 1, 4, 8, seq=2)))
    assert len(proc) == 1
    # The first flow was evicted, so its second half alone cannot complete it.
    assert proc.process_packet(packet(frag_sub(USER_WRITER, b"efgh", 2, 4, 8, seq=1))) == []
    done = proc.process_packet(packet(frag_sub(USER_WRITER, b"efgh", 1, 4, 8, seq=1)))
    assert [e.payload for e in done] == [b"efghefgh"]


def test_fragment_starting_num_zero_raises():
    with pytest.raises(RtpsError):
        RtpsProcessor(4).process_packet(packet(frag_sub(USER_WRITER, b"abcd", 0, 4, 8)))


def test_classify_writer():
    assert classify_writer(RTPS_WRITER_ENTITY_ID_SPDP_PARTICIPANT) is DiscoveryKind.PARTICIPANT
    assert classify_writer(RTPS_WRITER_ENTITY_ID_SEDP_PUBLICATIONS) is DiscoveryKind.PUBLICATION
    assert classify_writer(RTPS_WRITER_ENTITY_ID_SEDP_SUBSCRIPTIONS) is DiscoveryKind.SUBSCRIPTION
    assert classify_writer(bytes([0, 2, 0, 0xC7])) is DiscoveryKind.UNKNOWN_BUILTIN
    assert classify_writer(USER_WRITER) is None


def test_gid_from_parts():
    assert gid_from_parts(PREFIX, USER_WRITER) == PREFIX + USER_WRITER
    with pytest.raises(ValueError):
        gid_from_parts(PREFIX[:5], USER_WRITER)
    with pytest.raises(ValueError):
        gid_from_parts(PREFIX, b"\x00")


def test_insert_range_merges():
    ranges = []
    insert_range(ranges, 4, 8)
    insert_range(ranges, 0, 2)
    assert ranges == [(0, 2), (4, 8)]
    insert_range(ranges, 2, 4)
    assert ranges == [(0, 8)]
    insert_range(ranges, 10, 12)
    insert_range(ranges, 5, 5)
    assert ranges == [(0, 8), (10, 12)]
    insert_range(ranges, 7, 11)
    assert ranges == [(0, 12)]