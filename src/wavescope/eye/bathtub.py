"""Bathtub curves cut from an eye pattern.

A bathtub curve integrates eye hits outward from the eye centre along one
scanline, separately on each side (the centre bin is counted on both). Both
sides are normalised by the larger of the two totals and shown as log10, so
the outermost bin of the busier side reads 0 and bins with no accumulated hits
are floored at ``BATHTUB_FLOOR``.
"""

import numpy as np

from wavescope.filters.filter import (
    InputSpec,
    OutputSpec,
    ParameterSpec,
    ParameterType,
    filter_kind,
)
from wavescope.types.units import StreamType, Unit
from wavescope.types.waveform import SparseAnalogWaveform
from wavescope.util.defaults import BATHTUB_FLOOR

# normalised values below this are treated as no hits
_MIN_BER = 1e-12


def integrate_from_center(line: np.ndarray) -> np.ndarray:
    """log10 of the cumulative hits from the middle bin outward, normalised."""
    line = np.asarray(line, dtype=np.float64)
    n = len(line)
    if n == 0:
        return np.empty(0)
    mid = n // 2
    out = np.empty(n)
    out[: mid + 1] = np.cumsum(line[mid::-1])[::-1]
    out[mid:] = np.cumsum(line[mid:])
    nmax = max(out[0], out[-1])
    if nmax <= 0:
        return np.full(n, BATHTUB_FLOOR)
    out /= nmax
    return np.where(out < _MIN_BER, BATHTUB_FLOOR, np.log10(np.maximum(out, _MIN_BER)))


def _emit(f, eye, offsets, step, values):
    out = f.setup_empty_output(0, None, SparseAnalogWaveform, dtype=np.float64)
    out.timescale = 1
    out.trigger_phase = 0
    out.start_timestamp = eye.start_timestamp
    out.start_femtoseconds = eye.start_femtoseconds
    durations = np.full(len(offsets), step, dtype=np.int64)
    out.set_arrays(offsets, durations, values)


@filter_kind(
    "HorizontalBathtub",
    category="Eye",
    inputs=[InputSpec("din", (StreamType.EYE,))],
    outputs=[OutputSpec("data", Unit.LOG_BER, StreamType.ANALOG)],
    parameters=[ParameterSpec("Voltage", ParameterType.FLOAT, 0.0, unit=Unit.VOLTS)],
)
def refresh_horizontal_bathtub(f):
    """BER against sampling time at a fixed decision threshold."""
    eye = f.require_input(0)
    row = eye.voltage_to_row(f.param("Voltage"))
    if not 0 <= row < eye.height:
        return
    step = eye.fs_per_pixel
    offsets = np.floor(np.arange(eye.width) * step - eye.ui_width).astype(np.int64)
    line = eye.accumulator_2d()[row, :]
    _emit(f, eye, offsets, int(step), integrate_from_center(line))


@filter_kind(
    "VerticalBathtub",
    category="Eye",
    inputs=[InputSpec("din", (StreamType.EYE,))],
    outputs=[OutputSpec("data", Unit.LOG_BER, StreamType.ANALOG, x_unit=Unit.MICROVOLTS)],
    parameters=[ParameterSpec("Time", ParameterType.INT, 0, unit=Unit.FS)],
)
def refresh_vertical_bathtub(f):
    """BER against decision threshold at a fixed sampling time.

    X offsets are voltages in microvolts.
    """
    eye = f.require_input(0)
    col = eye.time_to_column(f.param("Time"))
    if not 0 <= col < eye.width:
        return
    uv_per_pixel = eye.volts_per_pixel * 1e6
    rows = np.arange(eye.height)
    offsets = np.floor((eye.row_to_voltage(0) * 1e6) + rows * uv_per_pixel).astype(np.int64)
    line = eye.accumulator_2d()[:, col]
    _emit(f, eye, offsets, int(np.floor(uv_per_pixel)), integrate_from_center(line))
