"""RTPS packet parsing: DATA submessages, DATA_FRAG reassembly and writer classification."""

from __future__ import annotations

import enum
from bisect import bisect_right
from collections import deque
from dataclasses import dataclass, field
from operator import itemgetter
from typing import Optional, Union

RTPS_SIGNATURE = b"RTPS"
RTPS_HEADER_LEN = 20
RTPS_GUID_PREFIX_OFFSET = 8
RTPS_GUID_PREFIX_LEN = 12
ENTITY_ID_LEN = 4

RTPS_WRITER_ENTITY_ID_SPDP_PARTICIPANT = bytes([0x00, 0x01, 0x00, 0xC2])
RTPS_WRITER_ENTITY_ID_SEDP_PUBLICATIONS = bytes([0x00, 0x00, 0x03, 0xC2])
RTPS_WRITER_ENTITY_ID_SEDP_SUBSCRIPTIONS = bytes([0x00, 0x00, 0x04, 0xC2])

PID_SENTINEL = 0x0001
PID_STATUS_INFO = 0x0071
RTPS_DATA_FLAG_INLINE_QOS = 0x02
RTPS_DATA_FLAG_DATA = 0x04
STATUS_INFO_DISPOSED_OR_UNREGISTERED = 0x0000_0003
RTPS_DATA_SUBMESSAGE_ID = 0x15
RTPS_DATA_FRAG_SUBMESSAGE_ID = 0x16
RTPS_SUBMESSAGE_HEADER_LEN = 4
RTPS_SUBMESSAGE_PREFIX_LEN = RTPS_SUBMESSAGE_HEADER_LEN + 4
RTPS_SUBMESSAGE_READER_ID_OFFSET = 8
RTPS_SUBMESSAGE_WRITER_ID_OFFSET = 12
RTPS_SUBMESSAGE_SEQUENCE_NUMBER_OFFSET = 16
RTPS_DATA_FRAG_STARTING_NUM_OFFSET = 24
RTPS_DATA_FRAG_FRAGS_IN_SUBMESSAGE_OFFSET = 28
RTPS_DATA_FRAG_FRAGMENT_SIZE_OFFSET = 30
RTPS_DATA_FRAG_SAMPLE_SIZE_OFFSET = 32


class RtpsError(ValueError):
    """Raised when an RTPS packet is malformed."""


class DiscoveryKind(enum.Enum):
    """Kind of built-in discovery writer a message came from."""

    PARTICIPANT = "participant"
    PUBLICATION = "publication"
    SUBSCRIPTION = "subscription"
    UNKNOWN_BUILTIN = "unknown_builtin"


@dataclass(frozen=True)
class CapturedUdpPacket:
    """A captured UDP datagram carrying a possible RTPS message."""

    payload: bytes
    socket_timestamp: float = 0.0
    frame_len: int = 0
    direction: Optional[str] = None
    src_ip: str = ""
    dst_ip: str = ""
    ip_fragment_count: int = 1


@dataclass
class RtpsMessage:
    """A DATA sample; `kind` is None for user data, otherwise a discovery kind."""

    captured_at: float
    socket_timestamp: float
    frame_len: int
    direction: Optional[str]
    src_ip: str
    dst_ip: str
    udp_payload_len: int
    ip_fragment_count: int
    reader_gid: bytes
    writer_gid: bytes
    sequence_number: bytes
    writer_entity_id: bytes
    payload: bytes
    kind: Optional[DiscoveryKind]
    disposed: bool = False

    @property
    def is_discovery(self) -> bool:
        return self.kind is not None


@dataclass
class RtpsDataMessage:
    """A user-data sample."""

    captured_at: float
    socket_timestamp: float
    frame_len: int
    direction: Optional[str]
    src_ip: str
    dst_ip: str
    udp_payload_len: int
    ip_fragment_count: int
    reader_gid: bytes
    writer_gid: bytes
    sequence_number: bytes
    payload: bytes


RtpsEvent = Union[RtpsMessage, RtpsDataMessage]


@dataclass
class _FragState:
    captured_at: float
    socket_timestamp: float
    ip_fragment_count: int
    sample_size: int
    ranges: list = field(default_factory=list)
    reassembled: bytearray = field(default_factory=bytearray)

    @property
    def complete(self) -> bool:
        if len(self.ranges) != 1:
            return False
        start, end = self.ranges[0]
        return start == 0 and end >= self.sample_size


def gid_from_parts(guid_prefix: bytes, entity_id: bytes) -> bytes:
    """Join a 12-byte GUID prefix and a 4-byte entity id into a 16-byte GUID."""
    if len(guid_prefix) != RTPS_GUID_PREFIX_LEN:
        raise ValueError(f"GUID prefix must be {RTPS_GUID_PREFIX_LEN} bytes")
    if len(entity_id) != ENTITY_ID_LEN:
        raise ValueError(f"entity id must be {ENTITY_ID_LEN} bytes")
    return bytes(guid_prefix) + bytes(entity_id)


def classify_writer(writer_entity_id: bytes) -> Optional[DiscoveryKind]:
    """Return the discovery kind of a writer entity id, or None for user data."""
    writer_entity_id = bytes(writer_entity_id)
    if writer_entity_id == RTPS_WRITER_ENTITY_ID_SPDP_PARTICIPANT:
        return DiscoveryKind.PARTICIPANT
    if writer_entity_id == RTPS_WRITER_ENTITY_ID_SEDP_PUBLICATIONS:
        return DiscoveryKind.PUBLICATION
    if writer_entity_id == RTPS_WRITER_ENTITY_ID_SEDP_SUBSCRIPTIONS:
        return DiscoveryKind.SUBSCRIPTION
    if len(writer_entity_id) == ENTITY_ID_LEN and writer_entity_id[3] & 0xC0 == 0xC0:
        return DiscoveryKind.UNKNOWN_BUILTIN
    return None


def insert_range(ranges: list, start: int, end: int) -> None:
    """Insert [start, end) into a sorted list of disjoint ranges, merging overlaps in place."""
    if start >= end:
        return
    i = bisect_right(ranges, start, key=itemgetter(0))
    ranges.insert(i, (start, end))
    if i > 0 and ranges[i - 1][1] >= ranges[i][0]:
        ranges[i - 1] = (ranges[i - 1][0], max(ranges[i - 1][1], ranges[i][1]))
        del ranges[i]
        i -= 1
    while i + 1 < len(ranges) and ranges[i][1] >= ranges[i + 1][0]:
        ranges[i] = (ranges[i][0], max(ranges[i][1], ranges[i + 1][1]))
        del ranges[i + 1]


def _read(data: bytes, offset: int, size: int, what: str) -> bytes:
    chunk = data[offset:offset + size]
    if offset < 0 or len(chunk) != size:
        raise RtpsError(f"{what} out of bounds")
    return bytes(chunk)


def _read_u16(data: bytes, offset: int, flags: int) -> int:
    order = "little" if flags & 0x01 else "big"
    return int.from_bytes(_read(data, offset, 2, "u16 read"), order)


def _read_u32(data: bytes, offset: int, flags: int) -> int:
    order = "little" if flags & 0x01 else "big"
    return int.from_bytes(_read(data, offset, 4, "u32 read"), order)


def _skip_parameter_list(data: bytes, offset: int, flags: int) -> int:
    while True:
        header = _read(data, offset, 4, "inline QoS parameter header")
        pid = _read_u16(header, 0, flags)
        length = _read_u16(header, 2, flags)
        offset += 4
        if pid == PID_SENTINEL:
            return offset
        offset += length


def _data_payload_start(submessage: bytes, flags: int) -> int:
    inline_qos_offset = RTPS_SUBMESSAGE_PREFIX_LEN + _read_u16(submessage, 6, flags)
    if flags & RTPS_DATA_FLAG_INLINE_QOS:
        return _skip_parameter_list(submessage, inline_qos_offset, flags)
    return inline_qos_offset


def _inline_qos_has_disposal(submessage: bytes, offset: int, flags: int) -> bool:
    while offset + 4 <= len(submessage):
        pid = _read_u16(submessage, offset, flags)
        length = _read_u16(submessage, offset + 2, flags)
        offset += 4
        if pid == PID_SENTINEL:
            break
        if pid == PID_STATUS_INFO and length >= 4 and offset + 4 <= len(submessage):
            status_info = _read_u32(submessage, offset, flags)
            return status_info & STATUS_INFO_DISPOSED_OR_UNREGISTERED != 0
        offset += length
    return False


def _flags(submessage: bytes, what: str) -> int:
    if len(submessage) < 2:
        raise RtpsError(f"{what} flags out of bounds")
    return submessage[1]


def _to_event(message: RtpsMessage) -> RtpsEvent:
    if message.kind is not None:
        return message
    return RtpsDataMessage(
        captured_at=message.captured_at,
        socket_timestamp=message.socket_timestamp,
        frame_len=message.frame_len,
        direction=message.direction,
        src_ip=message.src_ip,
        dst_ip=message.dst_ip,
        udp_payload_len=message.udp_payload_len,
        ip_fragment_count=message.ip_fragment_count,
        reader_gid=message.reader_gid,
        writer_gid=message.writer_gid,
        sequence_number=message.sequence_number,
        payload=message.payload,
    )


def _parse_data_submessage(
    submessage: bytes,
    submessage_offset: int,
    submessage_end: int,
    guid_prefix: bytes,
    packet: CapturedUdpPacket,
) -> Optional[RtpsMessage]:
    flags = _flags(submessage, "DATA")
    reader_entity_id = _read(submessage, RTPS_SUBMESSAGE_READER_ID_OFFSET, 4, "reader id")
    writer_entity_id = _read(submessage, RTPS_SUBMESSAGE_WRITER_ID_OFFSET, 4, "writer id")
    sequence_number = _read(
        submessage, RTPS_SUBMESSAGE_SEQUENCE_NUMBER_OFFSET, 8, "sequence number"
    )

    disposed = False
    if flags & RTPS_DATA_FLAG_INLINE_QOS:
        inline_qos_offset = RTPS_SUBMESSAGE_PREFIX_LEN + _read_u16(submessage, 6, flags)
        disposed = _inline_qos_has_disposal(submessage, inline_qos_offset, flags)

    has_data = bool(flags & RTPS_DATA_FLAG_DATA)
    payload_start = _data_payload_start(submessage, flags)

    if payload_start >= len(submessage) and not disposed:
        return None

    if payload_start < len(submessage):
        payload = bytes(packet.payload[submessage_offset + payload_start:submessage_end])
    else:
        payload = b""

    if not has_data and not disposed and not payload:
        return None

    return RtpsMessage(
        captured_at=packet.socket_timestamp,
        socket_timestamp=packet.socket_timestamp,
        frame_len=packet.frame_len,
        direction=packet.direction,
        src_ip=packet.src_ip,
        dst_ip=packet.dst_ip,
        udp_payload_len=len(packet.payload),
        ip_fragment_count=packet.ip_fragment_count,
        reader_gid=gid_from_parts(guid_prefix, reader_entity_id),
        writer_gid=gid_from_parts(guid_prefix, writer_entity_id),
        sequence_number=sequence_number,
        writer_entity_id=writer_entity_id,
        payload=payload,
        kind=classify_writer(writer_entity_id),
        disposed=disposed,
    )


class RtpsProcessor:
    """Parses RTPS packets and reassembles fragmented samples.

    At most `capacity` partial samples are kept; the oldest is dropped
    when a new one would exceed the limit.
    """

    def __init__(self, capacity: int) -> None:
        self.capacity = capacity
        self._flows: dict[tuple[bytes, bytes], _FragState] = {}
        self._order: deque[tuple[bytes, bytes]] = deque()

    def __len__(self) -> int:
        return len(self._flows)

    def process_packet(self, packet: CapturedUdpPacket) -> list[RtpsEvent]:
        """Return the complete samples carried by one UDP packet."""
        data = bytes(packet.payload)
        if len(data) < RTPS_HEADER_LEN or not data.startswith(RTPS_SIGNATURE):
            return []

        guid_prefix = _read(
            data, RTPS_GUID_PREFIX_OFFSET, RTPS_GUID_PREFIX_LEN, "RTPS guid prefix"
        )
        events: list[RtpsEvent] = []
        offset = RTPS_HEADER_LEN
        while offset + RTPS_SUBMESSAGE_HEADER_LEN <= len(data):
            submessage_id = data[offset]
            flags = data[offset + 1]
            octets_to_next_header = _read_u16(data, offset + 2, flags)
            if octets_to_next_header == 0:
                end = len(data)
            else:
                end = min(offset + RTPS_SUBMESSAGE_HEADER_LEN + octets_to_next_header, len(data))
            if end <= offset:
                break

            submessage = data[offset:end]
            message = None
            if submessage_id == RTPS_DATA_SUBMESSAGE_ID:
                message = _parse_data_submessage(submessage, offset, end, guid_prefix, packet)
            elif submessage_id == RTPS_DATA_FRAG_SUBMESSAGE_ID:
                message = self._accept_data_frag(submessage, guid_prefix, packet)
            if message is not None:
                events.append(_to_event(message))

            offset = end

        return events

    def _accept_data_frag(
        self, submessage: bytes, guid_prefix: bytes, packet: CapturedUdpPacket
    ) -> Optional[RtpsMessage]:
        flags = _flags(submessage, "DATA_FRAG")
        writer_entity_id = _read(submessage, RTPS_SUBMESSAGE_WRITER_ID_OFFSET, 4, "writer id")
        reader_entity_id = _read(submessage, RTPS_SUBMESSAGE_READER_ID_OFFSET, 4, "reader id")
        sequence_number = _read(
            submessage, RTPS_SUBMESSAGE_SEQUENCE_NUMBER_OFFSET, 8, "sequence number"
        )
        writer_gid = gid_from_parts(guid_prefix, writer_entity_id)
        key = (writer_gid, sequence_number)

        starting_num = _read_u32(submessage, RTPS_DATA_FRAG_STARTING_NUM_OFFSET, flags)
        fragments_in_submessage = _read_u16(
            submessage, RTPS_DATA_FRAG_FRAGS_IN_SUBMESSAGE_OFFSET, flags
        )
        fragment_size = _read_u16(submessage, RTPS_DATA_FRAG_FRAGMENT_SIZE_OFFSET, flags)
        sample_size = _read_u32(submessage, RTPS_DATA_FRAG_SAMPLE_SIZE_OFFSET, flags)
        payload_start = _data_payload_start(submessage, flags)
        if payload_start >= len(submessage):
            return None

        payload = submessage[payload_start:]
        if starting_num == 0:
            raise RtpsError("DATA_FRAG fragment offset overflow")
        offset = (starting_num - 1) * fragment_size

        state = self._flows.get(key)
        if state is not None:
            # The sample size may not change mid-sequence; drop the flow.
            if state.sample_size != sample_size:
                del self._flows[key]
                return None
        else:
            if len(self._flows) == self.capacity:
                while self._order:
                    oldest = self._order.popleft()
                    if self._flows.pop(oldest, None) is not None:
                        break
            self._order.append(key)
            state = _FragState(
                captured_at=packet.socket_timestamp,
                socket_timestamp=packet.socket_timestamp,
                ip_fragment_count=packet.ip_fragment_count,
                sample_size=sample_size,
                reassembled=bytearray(sample_size),
            )
            self._flows[key] = state

        state.captured_at = min(state.captured_at, packet.socket_timestamp)
        state.socket_timestamp = min(state.socket_timestamp, packet.socket_timestamp)
        state.ip_fragment_count = max(state.ip_fragment_count, packet.ip_fragment_count)

        payload_len = min(len(payload), fragments_in_submessage * fragment_size)
        end = min(offset + payload_len, state.sample_size)
        if end <= offset:
            return None

        insert_range(state.ranges, offset, end)
        state.reassembled[offset:end] = payload[:end - offset]

        if not state.complete:
            return None
        flow = self._flows.pop(key)

        return RtpsMessage(
            captured_at=flow.captured_at,
            socket_timestamp=flow.socket_timestamp,
            frame_len=packet.frame_len,
            direction=packet.direction,
            src_ip=packet.src_ip,
            dst_ip=packet.dst_ip,
            udp_payload_len=len(packet.payload),
            ip_fragment_count=flow.ip_fragment_count,
            reader_gid=gid_from_parts(guid_prefix, reader_entity_id),
            writer_gid=writer_gid,
            sequence_number=sequence_number,
            writer_entity_id=writer_entity_id,
            payload=bytes(flow.reassembled),
            kind=classify_writer(writer_entity_id),
            disposed=False,
        )