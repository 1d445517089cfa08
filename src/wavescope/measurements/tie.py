"""Time interval error of a clock against a recovered (golden) clock."""

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


def golden_edges(golden) -> np.ndarray:
    """Edge times of a recovered clock.

    A sparse clock from a CDR has one sample per edge, so every sample start is
    an edge. Uniform clocks are scanned for transitions.
    """
    if golden.is_sparse:
        return golden.offsets_fs().astype(np.float64)
    return find_edges(golden, 0.5)


def interval_error(edges: np.ndarray, golden: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """TIE of every edge strictly bracketed by two golden edges.

    The nominal edge position is the middle of the bracketing golden cycle,
    since a recovered clock samples mid-eye (90 degrees from the data edges).
    Returns the kept edge times and their errors.
    """
    if len(golden) < 2 or len(edges) == 0:
        return np.empty(0), np.empty(0)
    idx = np.searchsorted(golden, edges, side="right")
    ok = (idx > 0) & (idx < len(golden))
    idx = np.where(ok, idx, 1)
    prev = golden[idx - 1]
    nxt = golden[idx]
    ok &= (prev < edges) & (nxt > edges)
    center = prev + np.floor((nxt - prev) / 2)
    return edges[ok], (edges - center)[ok]


@filter_kind(
    "TIE",
    category="Clocking",
    inputs=[
        InputSpec("Clock", (StreamType.ANALOG, StreamType.DIGITAL)),
        InputSpec("Golden", (StreamType.DIGITAL,)),
    ],
    outputs=[OutputSpec("data", Unit.FS, StreamType.ANALOG)],
    parameters=[ParameterSpec("Threshold", ParameterType.FLOAT, 0.0, unit=Unit.VOLTS)],
)
def refresh_tie(f):
    """Offset of each clock edge from the centre of its golden clock cycle.

    Analog clocks are sliced at ``Threshold``; digital clocks use their transitions.
    """
    clk = f.require_input(0)
    golden = f.require_input(1)
    edges = find_edges(clk, f.param("Threshold"))
    times, tie = interval_error(edges, golden_edges(golden))
    offsets = np.round(times).astype(np.int64)
    emit_sparse(f, 0, clk, offsets, durations_to_next(offsets), tie, dtype=np.float64)
