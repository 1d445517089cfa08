"""Area under the curve, in volt-seconds."""

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
    kahan_cumsum,
    kahan_sum,
)
from wavescope.types.units import StreamType, Unit
from wavescope.util.defaults import FS_PER_SECOND

AVERAGE_AREA = "Average area"
CYCLE_AREA = "Per cycle"


@filter_kind(
    "Area",
    category="Measurement",
    inputs=[InputSpec("din", (StreamType.ANALOG,))],
    outputs=[
        OutputSpec("data", Unit.VOLT_SEC, StreamType.ANALOG),
        OutputSpec("total", Unit.VOLT_SEC, StreamType.ANALOG_SCALAR),
    ],
    parameters=[
        ParameterSpec(
            "Measurement Type",
            ParameterType.ENUM,
            AVERAGE_AREA,
            choices=(AVERAGE_AREA, CYCLE_AREA),
        )
    ],
)
def refresh_area(f):
    """Absolute area, either as a running total or per cycle.

    In "Average area" mode the output has one sample per input sample holding
    the compensated running sum of ``|v| * duration``. In "Per cycle" mode the
    sum restarts at every second crossing of the average voltage and one
    sample is emitted per complete cycle.
    """
    din = f.require_input(0)
    weights = np.abs(np.asarray(din.samples, dtype=np.float64)) * din.durations_fs()
    offsets = din.offsets_fs()
    durations = din.durations_fs()

    if f.param("Measurement Type") == AVERAGE_AREA:
        running = kahan_cumsum(weights) / FS_PER_SECOND
        emit_sparse(f, 0, din, offsets, durations, running, dtype=np.float64)
        f.set_scalar(1, float(running[-1]) if len(running) else None)
        return

    edges, _ = find_edges_with_direction(din)
    # a crossing between samples k and k+1 opens a cycle at sample k+1
    first = np.searchsorted(offsets, edges, side="right")
    areas = []
    starts = []
    ends = []
    for i in range(0, len(edges) - 2, 2):
        areas.append(kahan_sum(weights[first[i] : first[i + 2]]) / FS_PER_SECOND)
        starts.append(round(edges[i]))
        ends.append(round(edges[i + 2]))
    starts = np.asarray(starts, dtype=np.int64)
    emit_sparse(f, 0, din, starts, np.asarray(ends, dtype=np.int64) - starts, areas, dtype=np.float64)
    f.set_scalar(1, float(np.sum(areas)) if areas else None)
