"""Protocol decoders: Ethernet PHY variants and SDRAM command analysis."""

from wavescope.protocols import base1000x, dram, ethernet, gmii  # noqa: F401
from wavescope.protocols.base1000x import Symbol8b10b
from wavescope.protocols.dram import DramCommand, SDRAMSymbol
from wavescope.protocols.ethernet import (
    EthernetFrameSegment,
    EthernetPacket,
    InbandStatus,
    SegmentType,
    build_frame,
    bytes_to_frames,
    ethernet_fcs,
)

__all__ = [
    "Symbol8b10b",
    "DramCommand",
    "SDRAMSymbol",
    "EthernetFrameSegment",
    "EthernetPacket",
    "InbandStatus",
    "SegmentType",
    "build_frame",
    "bytes_to_frames",
    "ethernet_fcs",
]
