"""Jitter decomposition: data-dependent jitter, duty-cycle distortion, Rj + BUj.

The DDJ filter bins TIE samples by the bit pattern leading up to each UI. The
pattern is an 8-bit window over the sampled data with the current bit in the
LSB and older bits shifted towards the MSB. The resulting table is exported on
its own stream so that DCD and RjBUj can consume it.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from wavescope.filters.filter import InputSpec, OutputSpec, filter_kind
from wavescope.filters.helpers import durations_to_next, emit_sparse, sample_on_any_edges
from wavescope.types.units import StreamType, Unit

WINDOW_BITS = 8
TABLE_SIZE = 1 << WINDOW_BITS
CURRENT_BIT = 0x01


@dataclass
class DDJTable:
    """Mean TIE per 8-bit history pattern."""

    sums: np.ndarray = field(default_factory=lambda: np.zeros(TABLE_SIZE))
    counts: np.ndarray = field(default_factory=lambda: np.zeros(TABLE_SIZE, dtype=np.int64))

    @property
    def populated(self) -> np.ndarray:
        return self.counts > 0

    @property
    def means(self) -> np.ndarray:
        """Mean TIE per pattern, NaN where no UI had that pattern."""
        out = np.full(TABLE_SIZE, np.nan)
        ok = self.populated
        out[ok] = self.sums[ok] / self.counts[ok]
        return out

    def peak_to_peak(self) -> float:
        m = self.means[self.populated]
        return float(np.max(m) - np.min(m)) if len(m) else 0.0

    def lookup(self, windows: np.ndarray) -> np.ndarray:
        return np.nan_to_num(self.means[windows], nan=0.0)

    @classmethod
    def from_samples(cls, windows: np.ndarray, tie: np.ndarray) -> DDJTable:
        return cls(
            sums=np.bincount(windows, weights=tie, minlength=TABLE_SIZE).astype(np.float64),
            counts=np.bincount(windows, minlength=TABLE_SIZE).astype(np.int64),
        )


def bit_windows(bits: np.ndarray) -> np.ndarray:
    """History window for every UI that has ``WINDOW_BITS`` earlier UIs.

    Element ``k`` belongs to UI ``k + WINDOW_BITS``; bit ``j`` of it is the data
    bit ``j`` UIs before that one.
    """
    bits = np.asarray(bits, dtype=np.int64)
    n = len(bits) - WINDOW_BITS
    if n <= 0:
        return np.empty(0, dtype=np.int64)
    w = np.zeros(n, dtype=np.int64)
    for j in range(WINDOW_BITS):
        w |= bits[WINDOW_BITS - j : len(bits) - j] << j
    return w


def match_tie_to_uis(sampled, tie) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Pair UIs having full history with the first TIE sample inside them.

    Returns the window of each matched UI, the matched TIE values and the
    matched TIE sample indices.
    """
    windows = bit_windows(sampled.samples)
    if len(windows) == 0 or len(tie) == 0:
        empty = np.empty(0, dtype=np.int64)
        return empty, np.empty(0), empty
    starts = sampled.offsets_fs()[WINDOW_BITS:]
    ends = starts + sampled.durations_fs()[WINDOW_BITS:]
    tie_times = tie.offsets_fs()
    idx = np.searchsorted(tie_times, starts, side="left")
    ok = (idx < len(tie_times)) & (starts >= tie_times[0])
    idx = np.where(ok, idx, 0)
    ok &= tie_times[idx] <= ends
    return windows[ok], np.asarray(tie.samples, dtype=np.float64)[idx[ok]], idx[ok]


def _sampled_data(f, data_input: int, clock_input: int):
    data = f.require_input(data_input)
    clk = f.require_input(clock_input)
    f.state.sampled = sample_on_any_edges(data, clk, f.state.sampled)
    return f.state.sampled


def _init_sampler(state):
    state.sampled = None


@filter_kind(
    "DDJ",
    category="Clocking",
    inputs=[
        InputSpec("TIE", (StreamType.ANALOG,), units=(Unit.FS,)),
        InputSpec("Threshold", (StreamType.DIGITAL,)),
        InputSpec("Clock", (StreamType.DIGITAL,)),
    ],
    outputs=[
        OutputSpec("DDJ", Unit.FS, StreamType.ANALOG_SCALAR),
        OutputSpec("Table", Unit.FS, StreamType.DDJ_TABLE),
    ],
    init_state=_init_sampler,
)
def refresh_ddj(f):
    """Peak-to-peak spread of the mean TIE over all bit patterns."""
    tie = f.require_input(0)
    sampled = _sampled_data(f, 1, 2)
    windows, values, _ = match_tie_to_uis(sampled, tie)
    table = DDJTable.from_samples(windows, values)
    f.set_scalar(0, table.peak_to_peak())
    f.set_output(1, table)


@filter_kind(
    "DCD",
    category="Clocking",
    inputs=[InputSpec("DDJ", (StreamType.DDJ_TABLE,))],
    outputs=[OutputSpec("DCD", Unit.FS, StreamType.ANALOG_SCALAR)],
)
def refresh_dcd(f):
    """Difference between the mean TIE of UIs whose own bit is high and low."""
    table = f.require_input(0)
    means = table.means
    current = (np.arange(TABLE_SIZE) & CURRENT_BIT) != 0
    high = means[current]
    low = means[~current]
    high = high[~np.isnan(high)]
    low = low[~np.isnan(low)]
    if len(high) == 0 or len(low) == 0:
        f.set_scalar(0, 0.0)
        return
    f.set_scalar(0, abs(float(np.mean(high)) - float(np.mean(low))))


@filter_kind(
    "RjBUj",
    category="Clocking",
    inputs=[
        InputSpec("TIE", (StreamType.ANALOG,), units=(Unit.FS,)),
        InputSpec("DDJ", (StreamType.DDJ_TABLE,)),
        InputSpec("Threshold", (StreamType.DIGITAL,)),
        InputSpec("Clock", (StreamType.DIGITAL,)),
    ],
    outputs=[OutputSpec("data", Unit.FS, StreamType.ANALOG)],
    init_state=_init_sampler,
)
def refresh_rj_buj(f):
    """TIE with the data-dependent part removed: random plus bounded uncorrelated jitter."""
    tie = f.require_input(0)
    table = f.require_input(1)
    sampled = _sampled_data(f, 2, 3)
    windows, values, idx = match_tie_to_uis(sampled, tie)
    offsets = tie.offsets_fs()[idx]
    # several UIs can claim the same TIE sample when edges are sparse
    offsets, keep = np.unique(offsets, return_index=True)
    residue = (values - table.lookup(windows))[keep]
    emit_sparse(f, 0, tie, offsets, durations_to_next(offsets), residue, dtype=np.float64)
