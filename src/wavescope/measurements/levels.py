from wavescope.filters.filter import InputSpec, OutputSpec, filter_kind
from wavescope.filters.helpers import get_avg_voltage, get_base_voltage, get_top_voltage
from wavescope.types.units import StreamType, Unit

_INPUT = [InputSpec("din", (StreamType.ANALOG,))]


@filter_kind(
    "Top",
    category="Measurement",
    inputs=_INPUT,
    outputs=[OutputSpec("Top", Unit.VOLTS, StreamType.ANALOG_SCALAR)],
)
def refresh_top(f):
    """Most common high level."""
    f.set_scalar(0, get_top_voltage(f.require_input(0)))


@filter_kind(
    "Base",
    category="Measurement",
    inputs=_INPUT,
    outputs=[OutputSpec("Base", Unit.VOLTS, StreamType.ANALOG_SCALAR)],
)
def refresh_base(f):
    """Most common low level."""
    f.set_scalar(0, get_base_voltage(f.require_input(0)))


@filter_kind(
    "Average",
    category="Measurement",
    inputs=_INPUT,
    outputs=[OutputSpec("Average", Unit.VOLTS, StreamType.ANALOG_SCALAR)],
)
def refresh_average(f):
    """Mean voltage over the whole capture."""
    f.set_scalar(0, get_avg_voltage(f.require_input(0)))
