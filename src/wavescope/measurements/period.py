"""Period, frequency and duty cycle.

The signal is sliced at its average voltage (digital inputs use their own
transitions). One output sample is produced per full cycle, i.e. per pair of
crossings, positioned at the crossing that starts the cycle. The last
incomplete cycle produces nothing, so a square wave with 10 cycles yields 9
samples.
"""

import numpy as np

from wavescope.filters.filter import InputSpec, OutputSpec, filter_kind
from wavescope.filters.helpers import emit_sparse, find_edges_with_direction
from wavescope.types.units import StreamType, Unit

SIGNAL_INPUT = [InputSpec("din", (StreamType.ANALOG, StreamType.DIGITAL))]


def full_cycles(edges: np.ndarray):
    """Indices of cycle-opening crossings, plus integer fs start and duration of each cycle."""
    i = np.arange(0, max(len(edges) - 2, 0), 2)
    starts = np.round(edges[i]).astype(np.int64)
    ends = np.round(edges[i + 2]).astype(np.int64)
    return i, starts, ends - starts


@filter_kind(
    "Period",
    category="Measurement",
    inputs=SIGNAL_INPUT,
    outputs=[OutputSpec("data", Unit.FS, StreamType.ANALOG)],
)
def refresh_period(f):
    """Time between every second crossing of the average voltage."""
    din = f.require_input(0)
    edges, _ = find_edges_with_direction(din)
    i, starts, durations = full_cycles(edges)
    emit_sparse(f, 0, din, starts, durations, edges[i + 2] - edges[i], dtype=np.float64)


@filter_kind(
    "Frequency",
    category="Measurement",
    inputs=SIGNAL_INPUT,
    outputs=[OutputSpec("data", Unit.HZ, StreamType.ANALOG)],
)
def refresh_frequency(f):
    """Reciprocal of each full-cycle period."""
    din = f.require_input(0)
    edges, _ = find_edges_with_direction(din)
    i, starts, durations = full_cycles(edges)
    emit_sparse(f, 0, din, starts, durations, 1e15 / (edges[i + 2] - edges[i]), dtype=np.float64)


@filter_kind(
    "DutyCycle",
    category="Measurement",
    inputs=SIGNAL_INPUT,
    outputs=[
        OutputSpec("data", Unit.DIMENSIONLESS, StreamType.ANALOG),
        OutputSpec("avg", Unit.DIMENSIONLESS, StreamType.ANALOG_SCALAR),
    ],
)
def refresh_duty_cycle(f):
    """Fraction of each cycle spent above the slicing level."""
    din = f.require_input(0)
    edges, rising = find_edges_with_direction(din)
    i, starts, durations = full_cycles(edges)
    periods = edges[i + 2] - edges[i]
    # a cycle opened by a rising crossing is high first, otherwise low first
    high = np.where(rising[i], edges[i + 1] - edges[i], edges[i + 2] - edges[i + 1])
    duty = high / periods if len(periods) else np.empty(0)
    emit_sparse(f, 0, din, starts, durations, duty)
    f.set_scalar(1, float(np.mean(duty)) if len(duty) else None)
