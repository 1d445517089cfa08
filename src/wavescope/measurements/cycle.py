"""Per-cycle amplitude measurements: peak-to-peak, overshoot and undershoot.

Cycles are delimited by rising crossings of the midpoint between the top and
base levels. Samples before the first rising crossing belong to a cycle whose
start was not captured and are discarded, as is the trailing partial cycle.
"""

import numpy as np

from wavescope.filters.filter import InputSpec, OutputSpec, filter_kind
from wavescope.filters.helpers import emit_sparse, get_base_voltage, get_top_voltage
from wavescope.types.units import StreamType, Unit


def split_cycles(din):
    """Sample index boundaries of each complete cycle, and the top and base levels."""
    top = get_top_voltage(din)
    base = get_base_voltage(din)
    mid = (top + base) / 2
    s = np.asarray(din.samples, dtype=np.float64)
    above = s > mid
    bounds = np.nonzero(above[1:] & ~above[:-1])[0] + 1
    return bounds, top, base


def _per_cycle(f, op):
    din = f.require_input(0)
    bounds, top, base = split_cycles(din)
    s = np.asarray(din.samples, dtype=np.float64)
    t = din.offsets_fs()
    if len(bounds) < 2:
        emit_sparse(f, 0, din, [], [], [])
        return
    lo = bounds[:-1]
    hi = bounds[1:]
    values, where = op(s, lo, hi, top, base)
    # event times land inside their own cycle, so samples stay ordered
    offsets = t[where]
    ends = np.append(offsets[1:], t[hi[-1]])
    emit_sparse(f, 0, din, offsets, ends - offsets, values)


def _pkpk(s, lo, hi, top, base):
    s = s[: hi[-1]]
    vmax = np.maximum.reduceat(s, lo)
    vmin = np.minimum.reduceat(s, lo)
    return vmax - vmin, lo


def _argext(s, lo, hi, fn):
    return np.array([a + fn(s[a:b]) for a, b in zip(lo, hi)], dtype=np.int64)


def _overshoot(s, lo, hi, top, base):
    where = _argext(s, lo, hi, np.argmax)
    return s[where] - top, where


def _undershoot(s, lo, hi, top, base):
    where = _argext(s, lo, hi, np.argmin)
    return base - s[where], where


@filter_kind(
    "PeakToPeak",
    category="Measurement",
    inputs=[InputSpec("din", (StreamType.ANALOG,))],
    outputs=[OutputSpec("data", Unit.VOLTS, StreamType.ANALOG)],
)
def refresh_peak_to_peak(f):
    """Maximum minus minimum of each complete cycle."""
    _per_cycle(f, _pkpk)


@filter_kind(
    "Overshoot",
    category="Measurement",
    inputs=[InputSpec("din", (StreamType.ANALOG,))],
    outputs=[OutputSpec("data", Unit.VOLTS, StreamType.ANALOG)],
)
def refresh_overshoot(f):
    """How far each cycle's peak rises above the top level."""
    _per_cycle(f, _overshoot)


@filter_kind(
    "Undershoot",
    category="Measurement",
    inputs=[InputSpec("din", (StreamType.ANALOG,))],
    outputs=[OutputSpec("data", Unit.VOLTS, StreamType.ANALOG)],
)
def refresh_undershoot(f):
    """How far each cycle's trough falls below the base level."""
    _per_cycle(f, _undershoot)
