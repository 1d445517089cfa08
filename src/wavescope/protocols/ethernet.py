"""Ethernet frame model and the byte-to-frame slicer shared by all PHY decoders.

A PHY decoder recovers one frame at a time as a list of bytes with per-byte
start and end times (fs), and hands it to ``bytes_to_frames``. The slicer
appends ``EthernetFrameSegment`` samples to the decoder's protocol waveform and
returns an ``EthernetPacket`` record summarising the frame.
"""

from __future__ import annotations

import zlib
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional, Sequence

import numpy as np
from loguru import logger

from wavescope.types.waveform import SparseProtocolWaveform

PREAMBLE_BYTE = 0x55
SFD_BYTE = 0xD5
ETHERTYPE_VLAN = 0x8100


class SegmentType(Enum):
    PREAMBLE = auto()
    DST_MAC = auto()
    SRC_MAC = auto()
    VLAN_TAG = auto()
    ETHERTYPE = auto()
    PAYLOAD = auto()
    FCS_GOOD = auto()
    FCS_BAD = auto()
    INBAND_STATUS = auto()
    ERROR = auto()


@dataclass
class EthernetFrameSegment:
    stype: SegmentType
    data: bytes = b""

    def __repr__(self):
        return f"EthernetFrameSegment({self.stype.name}, {self.data.hex()})"

    def __str__(self):
        match self.stype:
            case SegmentType.DST_MAC | SegmentType.SRC_MAC:
                return ":".join(f"{b:02x}" for b in self.data)
            case SegmentType.ETHERTYPE:
                return f"0x{int.from_bytes(self.data, 'big'):04x}"
            case SegmentType.FCS_GOOD | SegmentType.FCS_BAD:
                return f"{self.data.hex()} ({'good' if self.stype == SegmentType.FCS_GOOD else 'bad'})"
            case _:
                return self.data.hex()


@dataclass(frozen=True)
class InbandStatus:
    """RGMII in-band link status, sent while RX_CTL is deasserted."""

    link_up: bool
    speed_mbps: int
    full_duplex: bool

    @classmethod
    def from_nibble(cls, nibble: int) -> InbandStatus:
        speed = {0: 10, 1: 100, 2: 1000}.get((nibble >> 1) & 0x3, 0)
        return cls(bool(nibble & 0x1), speed, bool(nibble & 0x8))

    def to_bytes(self) -> bytes:
        code = {10: 0, 100: 1, 1000: 2}.get(self.speed_mbps, 3)
        return bytes([int(self.link_up) | (code << 1) | (int(self.full_duplex) << 3)])


@dataclass
class EthernetPacket:
    start: int
    end: int
    dst: bytes = b""
    src: bytes = b""
    ethertype: Optional[int] = None
    vlan_tci: Optional[int] = None
    payload: bytes = b""
    fcs: bytes = b""
    fcs_ok: bool = False
    error: bool = False
    segments: list[EthernetFrameSegment] = field(default_factory=list)

    @property
    def length(self) -> int:
        return len(self.payload)


def ethernet_fcs(data: bytes) -> bytes:
    """CRC-32 frame check sequence, in wire order."""
    return zlib.crc32(data).to_bytes(4, "little")


def bytes_to_frames(
    data: Sequence[int],
    starts: Sequence[int],
    ends: Sequence[int],
    cap: SparseProtocolWaveform,
) -> Optional[EthernetPacket]:
    """Slice one frame's bytes into segments appended to ``cap`` (timescale 1 fs).

    Bytes before the first 0x55 are skipped. The preamble segment runs through
    the 0xD5 start-of-frame delimiter. After the addresses and ethertype
    everything except the last four bytes is payload; the last four are the
    FCS, checked against a CRC-32 of the frame from the destination address on.
    Returns None if no start-of-frame delimiter was found.
    """
    if isinstance(data, (bytes, bytearray)):
        data = bytes(data)
    else:
        data = np.asarray(data, dtype=np.uint8).tobytes()
    n = len(data)
    i = 0
    while i < n and data[i] != PREAMBLE_BYTE:
        logger.debug("Skipping unknown byte {:02x} before preamble", data[i])
        i += 1
    if i >= n:
        return None
    pre_start = i
    while i < n and data[i] == PREAMBLE_BYTE:
        i += 1
    if i >= n or data[i] != SFD_BYTE:
        logger.debug("Preamble without start-of-frame delimiter")
        return None
    i += 1

    packet = EthernetPacket(start=int(starts[pre_start]), end=int(ends[n - 1]))

    def emit(stype: SegmentType, lo: int, hi: int) -> EthernetFrameSegment:
        seg = EthernetFrameSegment(stype, data[lo:hi])
        t0 = int(starts[lo])
        cap.append(t0, int(ends[hi - 1]) - t0, seg)
        packet.segments.append(seg)
        return seg

    emit(SegmentType.PREAMBLE, pre_start, i)
    body_start = i

    fields = [(SegmentType.DST_MAC, 6), (SegmentType.SRC_MAC, 6), (SegmentType.ETHERTYPE, 2)]
    while fields:
        stype, size = fields.pop(0)
        if i + size > n:
            logger.debug("Frame truncated in {}", stype.name)
            packet.error = True
            return packet
        seg = emit(stype, i, i + size)
        i += size
        match stype:
            case SegmentType.DST_MAC:
                packet.dst = seg.data
            case SegmentType.SRC_MAC:
                packet.src = seg.data
            case SegmentType.ETHERTYPE:
                value = int.from_bytes(seg.data, "big")
                if value == ETHERTYPE_VLAN and packet.vlan_tci is None:
                    # the tag control word sits where the ethertype was expected
                    if i + 2 > n:
                        packet.error = True
                        return packet
                    seg.stype = SegmentType.VLAN_TAG
                    seg.data = data[i - 2 : i + 2]
                    cap.durations[-1] = int(ends[i + 1]) - int(cap.offsets[-1])
                    packet.vlan_tci = int.from_bytes(data[i : i + 2], "big")
                    i += 2
                    fields.append((SegmentType.ETHERTYPE, 2))
                else:
                    packet.ethertype = value

    fcs_start = max(n - 4, i)
    if fcs_start > i:
        packet.payload = emit(SegmentType.PAYLOAD, i, fcs_start).data
    if n - fcs_start < 4:
        logger.debug("Frame too short for an FCS")
        packet.error = True
        return packet

    packet.fcs = data[fcs_start:]
    packet.fcs_ok = ethernet_fcs(data[body_start:fcs_start]) == packet.fcs
    emit(SegmentType.FCS_GOOD if packet.fcs_ok else SegmentType.FCS_BAD, fcs_start, n)
    return packet


def build_frame(dst: bytes, src: bytes, ethertype: int, payload: bytes, preamble: int = 7) -> bytes:
    """Wire bytes of a complete frame: preamble, SFD, header, payload and FCS."""
    body = bytes(dst) + bytes(src) + ethertype.to_bytes(2, "big") + bytes(payload)
    return bytes([PREAMBLE_BYTE] * preamble + [SFD_BYTE]) + body + ethernet_fcs(body)


def init_decoder_state(state):
    state.packets = []
