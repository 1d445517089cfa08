import numpy as np

from wavescope.filters.filter import (
    InputSpec,
    OutputSpec,
    ParameterSpec,
    ParameterType,
    filter_kind,
)
from wavescope.filters.helpers import emit_sparse, find_edges
from wavescope.types.units import StreamType, Unit


def find_bursts(edges: np.ndarray, idle_time: int) -> tuple[np.ndarray, np.ndarray]:
    """Start and end time of each group of edges; a gap longer than ``idle_time`` ends a burst."""
    if len(edges) < 2:
        return np.empty(0), np.empty(0)
    gaps = np.diff(edges)
    breaks = np.nonzero(gaps > idle_time)[0]
    starts = np.concatenate(([edges[0]], edges[breaks + 1]))
    ends = np.concatenate((edges[breaks], [edges[-1]]))
    return starts, ends


@filter_kind(
    "BurstWidth",
    category="Measurement",
    inputs=[InputSpec("din", (StreamType.ANALOG, StreamType.DIGITAL))],
    outputs=[OutputSpec("data", Unit.FS, StreamType.ANALOG)],
    parameters=[ParameterSpec("Idle Time", ParameterType.INT, 1_000_000_000, unit=Unit.FS)],
)
def refresh_burst_width(f):
    """Width of each burst of edges, from its first edge to its last."""
    din = f.require_input(0)
    edges = find_edges(din)
    starts, ends = find_bursts(edges, f.param("Idle Time"))
    offsets = np.round(starts).astype(np.int64)
    widths = np.round(ends).astype(np.int64) - offsets
    emit_sparse(f, 0, din, offsets, widths, widths, dtype=np.float64)
