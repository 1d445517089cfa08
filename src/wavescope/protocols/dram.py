"""SDRAM command stream filters: read/write clock recovery and row-to-column latency."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto

import numpy as np

from wavescope.filters.filter import (
    InputSpec,
    OutputSpec,
    ParameterSpec,
    ParameterType,
    filter_kind,
)
from wavescope.filters.helpers import durations_to_next, emit_sparse, find_edges
from wavescope.types.units import StreamType, Unit
from wavescope.types.waveform import SparseDigitalWaveform

# 1 fs idle samples appended after the last clock pulse
TAIL_PADDING = 5
MAX_BANKS = 8


class DramCommand(Enum):
    MRS = auto()
    REF = auto()
    PRE = auto()
    PREA = auto()
    ACT = auto()
    WR = auto()
    WRA = auto()
    RD = auto()
    RDA = auto()
    NOP = auto()
    ERROR = auto()


READS = (DramCommand.RD, DramCommand.RDA)
WRITES = (DramCommand.WR, DramCommand.WRA)


@dataclass(frozen=True)
class SDRAMSymbol:
    command: DramCommand
    bank: int = 0

    def __str__(self):
        return f"{self.command.name} {self.bank}"


def _burst(pulses_t, pulses_v, edges, idx, burst_length):
    """Append one burst of alternating pulses starting at DQS edge ``idx``.

    Returns the index of the first unused edge. Pulses that would not come
    after the previous pulse are dropped.
    """
    for j in range(burst_length):
        if idx >= len(edges):
            break
        t = int(edges[idx])
        if not pulses_t or t > pulses_t[-1]:
            pulses_t.append(t)
            pulses_v.append(j % 2 == 0)
        idx += 1
    return idx


def _emit_clock(f, i, like, pulses_t, pulses_v, tend):
    """Initial idle sample, the pulses stretched edge to edge, then the tail padding."""
    offsets = [0] + pulses_t
    values = [False] + pulses_v
    last_end = max(tend, offsets[-1] + 1)
    offsets.extend(last_end + k for k in range(TAIL_PADDING))
    values.extend([False] * TAIL_PADDING)
    offsets = np.asarray(offsets, dtype=np.int64)
    durations = durations_to_next(offsets, last=1)
    emit_sparse(f, i, like, offsets, durations, values, cls=SparseDigitalWaveform)


@filter_kind(
    "DramClock",
    category="Memory",
    inputs=[
        InputSpec("CMD", (StreamType.PROTOCOL,)),
        InputSpec("CLK", (StreamType.DIGITAL,)),
        InputSpec("DQS", (StreamType.ANALOG,)),
    ],
    outputs=[
        OutputSpec("RD", Unit.COUNTS, StreamType.DIGITAL),
        OutputSpec("WR", Unit.COUNTS, StreamType.DIGITAL),
    ],
    parameters=[
        ParameterSpec("Burst Length", ParameterType.ENUM, "8", choices=("2", "4", "8")),
        ParameterSpec("CAS Latency", ParameterType.FLOAT, 2.0),
        ParameterSpec("DQS Threshold", ParameterType.FLOAT, 1.6, unit=Unit.VOLTS),
    ],
)
def refresh_dram_clock(f):
    """Read and write data clocks recovered from commands and the DQS strobe.

    A write burst starts at the first DQS edge after the command. A read burst
    starts at the first DQS edge after the command clock edge that lies CAS
    latency (in half cycles) after the command.
    """
    cmd = f.require_input(0)
    clk = f.require_input(1)
    dqs = f.require_input(2)

    dqs_edges = find_edges(dqs, f.param("DQS Threshold"))
    clk_edges = find_edges(clk)
    burst_length = int(f.param("Burst Length"))
    cas_halfcycles = int(round(f.param("CAS Latency") * 2))

    rd_t: list[int] = []
    rd_v: list[bool] = []
    wr_t: list[int] = []
    wr_v: list[bool] = []
    idqs = 0

    times = cmd.offsets_fs()
    for tnow, sym in zip(times, cmd.samples):
        if sym.command in WRITES:
            idqs = max(idqs, int(np.searchsorted(dqs_edges, tnow, side="right")))
            idqs = _burst(wr_t, wr_v, dqs_edges, idqs, burst_length)
        elif sym.command in READS:
            iclk = int(np.searchsorted(clk_edges, tnow, side="left")) + cas_halfcycles
            if iclk >= len(clk_edges):
                break
            idqs = max(idqs, int(np.searchsorted(dqs_edges, clk_edges[iclk], side="right")))
            if idqs >= len(dqs_edges):
                break
            idqs = _burst(rd_t, rd_v, dqs_edges, idqs, burst_length)

    tend = int(dqs.offsets_fs()[-1] + dqs.durations_fs()[-1]) if len(dqs) else 0
    _emit_clock(f, 0, dqs, rd_t, rd_v, tend)
    _emit_clock(f, 1, dqs, wr_t, wr_v, tend)


@filter_kind(
    "DramRowColumnLatency",
    category="Memory",
    inputs=[InputSpec("CMD", (StreamType.PROTOCOL,))],
    outputs=[OutputSpec("data", Unit.FS, StreamType.ANALOG)],
)
def refresh_row_column_latency(f):
    """Time from a bank's activate to the next read or write on that bank.

    Each activate is counted once. Accesses to a bank with no activate seen
    since the start of the capture (or since its last access) are skipped.
    """
    cmd = f.require_input(0)
    last_act: dict[int, int] = {}
    offsets = []
    values = []
    for tnow, sym in zip(cmd.offsets_fs(), cmd.samples):
        if not 0 <= sym.bank < MAX_BANKS:
            continue
        if sym.command == DramCommand.ACT:
            last_act[sym.bank] = int(tnow)
        elif sym.command in READS + WRITES:
            tact = last_act.pop(sym.bank, None)
            if tact is None:
                continue
            offsets.append(int(tnow))
            values.append(int(tnow) - tact)
    offsets = np.asarray(offsets, dtype=np.int64)
    emit_sparse(f, 0, cmd, offsets, durations_to_next(offsets), values, dtype=np.float64)
