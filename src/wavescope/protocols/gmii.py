"""GMII and RGMII decoders.

Both take their data bus as individual digital lanes (LSB first), a clock and a
control line, and feed recovered frames to ``bytes_to_frames``.

GMII is sampled on rising clock edges, one byte per edge, while TX_EN/RX_DV is
high. RX_ER marks the packet as errored.

RGMII carries a nibble per clock edge. At 1000 Mb/s (clock period at most
10 ns) the low nibble arrives on the rising edge and the high nibble on the
following falling edge; at 10/100 Mb/s it is single data rate and a byte spans
two rising edges, low nibble first. While RX_CTL is low the bus carries in-band
status (link, speed, duplex); consecutive identical status words are merged.
"""

import numpy as np

from wavescope.filters.filter import InputSpec, OutputSpec, filter_kind
from wavescope.filters.helpers import (
    find_edges_with_direction,
    sample_on_any_edges,
    sample_on_rising_edges,
)
from wavescope.protocols.ethernet import (
    EthernetFrameSegment,
    InbandStatus,
    SegmentType,
    bytes_to_frames,
    init_decoder_state,
)
from wavescope.types.units import StreamType, Unit
from wavescope.types.waveform import SparseProtocolWaveform

RGMII_DDR_MAX_PERIOD_FS = 10_000_000

_DIGITAL = (StreamType.DIGITAL,)


def sample_bus(lanes, clock, sampler=sample_on_rising_edges):
    """Sample every lane on the clock and pack the lanes into integers.

    Returns offsets (fs), durations (fs) and the bus values.
    """
    sampled = [sampler(lane, clock) for lane in lanes]
    n = min(len(s) for s in sampled)
    value = np.zeros(n, dtype=np.int64)
    for bit, s in enumerate(sampled):
        value |= np.asarray(s.samples[:n], dtype=np.int64) << bit
    return sampled[0].offsets[:n].copy(), sampled[0].durations[:n].copy(), value


def sample_line(line, clock, n, sampler=sample_on_rising_edges) -> np.ndarray:
    s = np.asarray(sampler(line, clock).samples, dtype=bool)
    out = np.zeros(n, dtype=bool)
    out[: min(n, len(s))] = s[:n]
    return out


def runs(mask: np.ndarray) -> list[tuple[int, int]]:
    """(start, stop) index pairs of every run of True in ``mask``."""
    padded = np.concatenate(([False], mask, [False]))
    d = np.diff(padded.astype(np.int8))
    return list(zip(np.nonzero(d == 1)[0], np.nonzero(d == -1)[0]))


def _protocol_output(f, like):
    cap = f.setup_empty_output(0, like, SparseProtocolWaveform)
    cap.timescale = 1
    cap.trigger_phase = 0
    f.state.packets = []
    return cap


def _decode_runs(f, cap, active, offsets, durations, values, errors=None):
    for lo, hi in runs(active):
        packet = bytes_to_frames(
            values[lo:hi] & 0xFF, offsets[lo:hi], offsets[lo:hi] + durations[lo:hi], cap
        )
        if packet is None:
            continue
        if errors is not None and errors[lo:hi].any():
            packet.error = True
        f.state.packets.append(packet)


@filter_kind(
    "GMII",
    category="Bus",
    inputs=[InputSpec(f"D{i}", _DIGITAL) for i in range(8)]
    + [
        InputSpec("CLK", _DIGITAL),
        InputSpec("EN", _DIGITAL),
        InputSpec("ER", _DIGITAL, optional=True),
    ],
    outputs=[OutputSpec("data", Unit.BYTES, StreamType.PROTOCOL)],
    init_state=init_decoder_state,
)
def refresh_gmii(f):
    """Gigabit media-independent interface frames."""
    lanes = [f.require_input(i) for i in range(8)]
    clk = f.require_input("CLK")
    offsets, durations, values = sample_bus(lanes, clk)
    en = sample_line(f.require_input("EN"), clk, len(values))
    er = f.get_input_waveform("ER")
    errors = sample_line(er, clk, len(values)) if er is not None else None

    cap = _protocol_output(f, clk)
    _decode_runs(f, cap, en, offsets, durations, values, errors)


def _rising_at(clock, offsets) -> np.ndarray:
    """True for each sample taken on a rising clock edge."""
    edges, rising = find_edges_with_direction(clock)
    times = np.round(edges).astype(np.int64)
    if len(times) == 0:
        return np.zeros(len(offsets), dtype=bool)
    pos = np.clip(np.searchsorted(times, offsets), 0, len(times) - 1)
    return rising[pos] & (times[pos] == offsets)


def _pair_nibbles(offsets, durations, nibbles, rising):
    """Pack one CTL-asserted run of nibbles into bytes, low nibble first.

    Pairing starts at the first rising edge of the run, so it does not depend on
    how many idle nibbles preceded the frame. A trailing odd nibble is dropped.
    """
    first = int(np.argmax(rising)) if rising.any() else len(rising)
    offsets, durations, nibbles = offsets[first:], durations[first:], nibbles[first:]
    n = len(nibbles) // 2 * 2
    starts = offsets[0:n:2]
    ends = offsets[1:n:2] + durations[1:n:2]
    return starts, ends, nibbles[0:n:2] | (nibbles[1:n:2] << 4)


@filter_kind(
    "RGMII",
    category="Bus",
    inputs=[InputSpec(f"D{i}", _DIGITAL) for i in range(4)]
    + [
        InputSpec("CLK", _DIGITAL),
        InputSpec("CTL", _DIGITAL),
    ],
    outputs=[OutputSpec("data", Unit.BYTES, StreamType.PROTOCOL)],
    init_state=init_decoder_state,
)
def refresh_rgmii(f):
    """Reduced gigabit media-independent interface frames and in-band status."""
    lanes = [f.require_input(i) for i in range(4)]
    clk = f.require_input("CLK")
    ctl_line = f.require_input("CTL")

    edges, rising = find_edges_with_direction(clk)
    periods = np.diff(edges[rising])
    ddr = len(periods) > 0 and float(np.median(periods)) <= RGMII_DDR_MAX_PERIOD_FS
    sampler = sample_on_any_edges if ddr else sample_on_rising_edges
    offsets, durations, nibbles = sample_bus(lanes, clk, sampler)
    ctl = sample_line(ctl_line, clk, len(nibbles), sampler)
    on_rising = _rising_at(clk, offsets) if ddr else np.ones(len(nibbles), dtype=bool)

    cap = _protocol_output(f, clk)

    # frames and status words interleave in time, so walk all runs in order
    events = sorted(
        [(lo, hi, True) for lo, hi in runs(ctl)]
        + [(lo, hi, False) for lo, hi in runs(~ctl)]
    )
    for lo, hi, is_frame in events:
        sl = slice(lo, hi)
        if not is_frame:
            # both DDR edges repeat the status nibble; read it on the rising one
            keep = on_rising[sl]
            _emit_status(cap, nibbles[sl][keep], offsets[sl][keep], durations[sl][keep])
            continue
        starts, ends, values = _pair_nibbles(offsets[sl], durations[sl], nibbles[sl], on_rising[sl])
        packet = bytes_to_frames(values & 0xFF, starts, ends, cap)
        if packet is not None:
            f.state.packets.append(packet)


def _emit_status(cap, nibbles, starts, lengths):
    """Merge runs of identical in-band status words into single segments."""
    if len(nibbles) == 0:
        return
    change = np.nonzero(np.diff(nibbles))[0] + 1
    bounds = np.concatenate(([0], change, [len(nibbles)]))
    for a, b in zip(bounds[:-1], bounds[1:]):
        status = InbandStatus.from_nibble(int(nibbles[a]))
        t0 = int(starts[a])
        t1 = int(starts[b - 1] + lengths[b - 1])
        cap.append(t0, t1 - t0, EthernetFrameSegment(SegmentType.INBAND_STATUS, status.to_bytes()))
