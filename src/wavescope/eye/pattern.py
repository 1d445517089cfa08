import numpy as np
from loguru import logger

from wavescope.filters.filter import (
    InputSpec,
    OutputSpec,
    ParameterSpec,
    ParameterType,
    filter_kind,
)
from wavescope.filters.helpers import find_edges
from wavescope.types.eye import EyeWaveform
from wavescope.types.units import StreamType, Unit


def _init_eye(state):
    state.eye = None


@filter_kind(
    "EyePattern",
    category="Eye",
    inputs=[
        InputSpec("din", (StreamType.ANALOG,)),
        InputSpec("clk", (StreamType.DIGITAL,)),
    ],
    outputs=[OutputSpec("data", Unit.COUNTS, StreamType.EYE)],
    parameters=[
        ParameterSpec("Width", ParameterType.INT, 500),
        ParameterSpec("Height", ParameterType.INT, 256),
        ParameterSpec("Center Voltage", ParameterType.FLOAT, 0.0, unit=Unit.VOLTS),
        ParameterSpec("Voltage Range", ParameterType.FLOAT, 1.0, unit=Unit.VOLTS),
    ],
    init_state=_init_eye,
)
def refresh_eye_pattern(f):
    """Persistent eye: each data sample is binned by its phase after the last clock edge.

    Hits accumulate over successive acquisitions until the geometry or the unit
    interval changes.
    """
    din = f.require_input(0)
    clk = f.require_input(1)
    edges = find_edges(clk)
    if len(edges) < 2:
        return
    ui = int(round(float(np.median(np.diff(edges)))))

    eye = f.state.eye
    geometry = (
        f.param("Width"),
        f.param("Height"),
        f.param("Center Voltage"),
        f.param("Voltage Range"),
        ui,
    )
    if eye is None or (eye.width, eye.height, eye.center_voltage, eye.voltage_range, eye.ui_width) != geometry:
        logger.debug("{}: new eye {}", f.name, geometry)
        eye = EyeWaveform(*geometry)
        f.state.eye = eye
    eye.start_timestamp = din.start_timestamp
    eye.start_femtoseconds = din.start_femtoseconds

    t = din.offsets_fs()
    prev = np.searchsorted(edges, t, side="right") - 1
    ok = (prev >= 0) & (prev < len(edges) - 1)
    eye.accumulate(np.asarray(din.samples)[ok], t[ok] - edges[prev[ok]])
    f.set_output(0, eye)
