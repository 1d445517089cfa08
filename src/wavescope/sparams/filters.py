"""S-parameter filters.

A network travels through the graph as eight sparse analog streams, magnitude
(dB) then angle (degrees) for each of S11, S12, S21 and S22, with offsets in Hz.
"""

from pathlib import Path

import numpy as np
from loguru import logger

from wavescope.filters.filter import (
    InputSpec,
    OutputSpec,
    ParameterSpec,
    ParameterType,
    filter_kind,
)
from wavescope.sparams.algebra import Side, cascade, deembed
from wavescope.types.sparams import SPARAM_NAMES, SParameters, SParameterVector
from wavescope.types.units import StreamType, Unit
from wavescope.types.waveform import SparseAnalogWaveform


def network_inputs(prefix: str) -> list[InputSpec]:
    specs = []
    for name in SPARAM_NAMES:
        specs.append(InputSpec(f"{prefix}{name}_mag", (StreamType.ANALOG,), units=(Unit.DB,)))
        specs.append(InputSpec(f"{prefix}{name}_ang", (StreamType.ANALOG,), units=(Unit.DEGREES,)))
    return specs


def network_outputs() -> list[OutputSpec]:
    specs = []
    for name in SPARAM_NAMES:
        specs.append(OutputSpec(f"{name}_mag", Unit.DB, StreamType.ANALOG, x_unit=Unit.HZ))
        specs.append(OutputSpec(f"{name}_ang", Unit.DEGREES, StreamType.ANALOG, x_unit=Unit.HZ))
    return specs


def read_network(f, base: int) -> SParameters:
    """Rebuild a network from eight consecutive inputs starting at ``base``."""
    params = {}
    for k, name in enumerate(SPARAM_NAMES):
        mag = f.require_input(base + 2 * k)
        ang = f.require_input(base + 2 * k + 1)
        params[name] = SParameterVector.from_waveforms(mag, ang)
    return SParameters(params)


def write_network(f, net: SParameters):
    for k, name in enumerate(SPARAM_NAMES):
        mag = f.setup_empty_output(2 * k, None, SparseAnalogWaveform, dtype=np.float64)
        ang = f.setup_empty_output(2 * k + 1, None, SparseAnalogWaveform, dtype=np.float64)
        net[name].to_waveforms(mag, ang)


@filter_kind(
    "SParameterCascade",
    category="RF",
    inputs=network_inputs("A_") + network_inputs("B_"),
    outputs=network_outputs(),
)
def refresh_cascade(f):
    """Network A followed by network B, on A's frequency grid."""
    write_network(f, cascade(read_network(f, 0), read_network(f, 8)))


@filter_kind(
    "SParameterDeEmbed",
    category="RF",
    inputs=network_inputs("Combined_") + network_inputs("Known_"),
    outputs=network_outputs(),
    parameters=[
        ParameterSpec(
            "Known Network Side",
            ParameterType.ENUM,
            Side.RIGHT.value,
            choices=tuple(s.value for s in Side),
        )
    ],
)
def refresh_deembed(f):
    """The unknown half of a cascade, given the combined network and the known half."""
    side = Side(f.param("Known Network Side"))
    write_network(f, deembed(read_network(f, 0), read_network(f, 8), side))


def _init_source(state):
    state.path = None
    state.network = None


@filter_kind(
    "SParameterSource",
    category="RF",
    inputs=[],
    outputs=network_outputs(),
    parameters=[ParameterSpec("File Name", ParameterType.STRING, "")],
    init_state=_init_source,
)
def refresh_source(f):
    """A network loaded from a Touchstone file, reloaded when the file name changes."""
    path = f.param("File Name")
    if not path:
        return
    if path != f.state.path:
        logger.info("Loading S-parameters from {}", path)
        f.state.network = SParameters.load_touchstone(Path(path).expanduser())
        f.state.path = path
    write_network(f, f.state.network)
