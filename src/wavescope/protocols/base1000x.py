"""1000BASE-X: Ethernet over an 8b/10b symbol stream."""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from wavescope.filters.filter import InputSpec, OutputSpec, filter_kind
from wavescope.protocols.ethernet import (
    PREAMBLE_BYTE,
    EthernetFrameSegment,
    SegmentType,
    bytes_to_frames,
    init_decoder_state,
)
from wavescope.types.units import StreamType, Unit
from wavescope.types.waveform import SparseProtocolWaveform

K27_7 = 0xFB  # start of packet
K29_7 = 0xFD  # end of packet
K28_5 = 0xBC  # comma, used by idles and ordered sets


@dataclass(frozen=True)
class Symbol8b10b:
    control: bool
    data: int
    disparity_error: bool = False
    error: bool = False

    def __str__(self):
        if self.error:
            return "ERROR"
        x = self.data & 0x1F
        y = self.data >> 5
        return f"{'K' if self.control else 'D'}{x}.{y}"

    @property
    def valid(self) -> bool:
        return not (self.error or self.disparity_error)


@filter_kind(
    "Ethernet1000BaseX",
    category="Serial",
    inputs=[InputSpec("din", (StreamType.PROTOCOL,))],
    outputs=[OutputSpec("data", Unit.BYTES, StreamType.PROTOCOL)],
    init_state=init_decoder_state,
)
def refresh_1000basex(f):
    """Frames between start-of-packet (K27.7) and end-of-packet (K29.7) symbols.

    The start symbol stands in for the first preamble byte. Any other control
    symbol, or a symbol with a coding or disparity error, aborts the frame;
    the bytes received so far are decoded and an error segment marks the abort.
    """
    din = f.require_input(0)
    cap = f.setup_empty_output(0, din, SparseProtocolWaveform)
    cap.timescale = 1
    cap.trigger_phase = 0
    f.state.packets = []

    frame: list[int] | None = None
    starts: list[int] = []
    ends: list[int] = []

    def flush():
        packet = bytes_to_frames(frame, starts, ends, cap)
        if packet is not None:
            f.state.packets.append(packet)
        return packet

    offsets = din.offsets_fs()
    durations = din.durations_fs()
    for i, sym in enumerate(din.samples):
        t0 = int(offsets[i])
        t1 = t0 + int(durations[i])

        if frame is None:
            if sym.valid and sym.control and sym.data == K27_7:
                frame, starts, ends = [PREAMBLE_BYTE], [t0], [t1]
            continue

        if sym.valid and not sym.control:
            frame.append(sym.data)
            starts.append(t0)
            ends.append(t1)
            continue

        if sym.valid and sym.data == K29_7:
            flush()
        else:
            logger.debug("Frame aborted by {} at {} fs", sym, t0)
            packet = flush()
            if packet is not None:
                packet.error = True
            cap.append(t0, t1 - t0, EthernetFrameSegment(SegmentType.ERROR, bytes([sym.data & 0xFF])))
        frame = None
