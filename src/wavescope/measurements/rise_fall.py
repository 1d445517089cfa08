"""Rise and fall times between two fractions of the base-to-top swing."""

import numpy as np

from wavescope.filters.filter import (
    InputSpec,
    OutputSpec,
    ParameterSpec,
    ParameterType,
    filter_kind,
)
from wavescope.filters.helpers import (
    emit_sparse,
    find_edges_with_direction,
    get_base_voltage,
    get_top_voltage,
)
from wavescope.types.units import StreamType, Unit

OUTPUTS = [
    OutputSpec("data", Unit.FS, StreamType.ANALOG),
    OutputSpec("avg", Unit.FS, StreamType.ANALOG_SCALAR),
]


def pair_transitions(starts: np.ndarray, ends: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Match each start crossing with the first end crossing after it.

    Once an edge has been matched the search resumes after its end, so extra
    start crossings inside one edge (noise) are ignored.
    """
    out_start = []
    out_end = []
    t = -np.inf
    while True:
        i = np.searchsorted(starts, t, side="right")
        if i >= len(starts):
            break
        j = np.searchsorted(ends, starts[i], side="right")
        if j >= len(ends):
            break
        out_start.append(starts[i])
        out_end.append(ends[j])
        t = ends[j]
    return np.asarray(out_start, dtype=np.float64), np.asarray(out_end, dtype=np.float64)


def _refresh_transition(f, rising: bool):
    din = f.require_input(0)
    base = get_base_voltage(din)
    top = get_top_voltage(din)
    delta = top - base
    vstart = base + f.param("Start Fraction") * delta
    vend = base + f.param("End Fraction") * delta

    t0, r0 = find_edges_with_direction(din, vstart)
    t1, r1 = find_edges_with_direction(din, vend)
    if not rising:
        r0, r1 = ~r0, ~r1
    tstart, tend = pair_transitions(t0[r0], t1[r1])

    offsets = np.round(tstart).astype(np.int64)
    durations = np.round(tend).astype(np.int64) - offsets
    emit_sparse(f, 0, din, offsets, durations, tend - tstart, dtype=np.float64)
    f.set_scalar(1, float(np.mean(tend - tstart)) if len(tstart) else None)


@filter_kind(
    "RiseTime",
    category="Measurement",
    inputs=[InputSpec("din", (StreamType.ANALOG,))],
    outputs=OUTPUTS,
    parameters=[
        ParameterSpec("Start Fraction", ParameterType.FLOAT, 0.2),
        ParameterSpec("End Fraction", ParameterType.FLOAT, 0.8),
    ],
)
def refresh_rise_time(f):
    """Time for each rising edge to go from the start to the end level."""
    _refresh_transition(f, rising=True)


@filter_kind(
    "FallTime",
    category="Measurement",
    inputs=[InputSpec("din", (StreamType.ANALOG,))],
    outputs=OUTPUTS,
    parameters=[
        ParameterSpec("Start Fraction", ParameterType.FLOAT, 0.8),
        ParameterSpec("End Fraction", ParameterType.FLOAT, 0.2),
    ],
)
def refresh_fall_time(f):
    """Time for each falling edge to go from the start to the end level."""
    _refresh_transition(f, rising=False)
