"""
Data model shared across wavescope.

The wavescope.types package provides:

1. Waveforms
    - Uniform and sparse containers for analog, digital and protocol samples
    - Integer-femtosecond timing with split second/sub-second start time
    - Eye pattern histograms

2. Acquisition records
    - SequenceSet: every channel captured against one trigger
    - PendingWaveforms: the FIFO between acquisition and consumers

3. Instrument-facing records
    - Trigger sum type (edge, pulse width, window, runt, dropout, slew rate,
      nth-edge burst, UART, glitch)
    - Session and channel configuration

4. Frequency-domain data
    - S-parameter vectors and two-port networks

Examples
--------
```python
from wavescope.types import UniformAnalogWaveform
w = UniformAnalogWaveform(timescale=1_000_000)
w.samples = [0.0, 0.5, 1.0]
```

See Also
--------
wavescope.filters : Filters consuming and producing these types
wavescope.device : Sessions producing SequenceSets
"""

from .config import ChannelConfig, SessionConfig
from .errors import (
    CapacityError,
    ConfigurationError,
    FilterValidationError,
    ProtocolError,
    TransportError,
    WaveformInvariantError,
    WavescopeError,
)
from .eye import EyeWaveform
from .sequence import PendingWaveforms, SequenceSet
from .sparams import SPARAM_NAMES, SParameterPoint, SParameters, SParameterVector
from .trigger import (
    Condition,
    DropoutTrigger,
    EdgeTrigger,
    EdgeType,
    GlitchTrigger,
    NthEdgeBurstTrigger,
    PulseWidthTrigger,
    RuntTrigger,
    SlewRateTrigger,
    Trigger,
    UartIdlePolarity,
    UartMatchType,
    UartParity,
    UartStopBits,
    UartTrigger,
    WindowCrossing,
    WindowTrigger,
)
from .units import Stream, StreamType, Unit
from .waveform import (
    SparseAnalogWaveform,
    SparseDigitalWaveform,
    SparseProtocolWaveform,
    SparseWaveform,
    UniformAnalogWaveform,
    UniformDigitalWaveform,
    UniformWaveform,
    Waveform,
    get_duration,
    get_duration_scaled,
    get_offset,
    get_offset_scaled,
    waveform_end_fs,
)

__all__ = [
    "CapacityError",
    "ChannelConfig",
    "Condition",
    "ConfigurationError",
    "DropoutTrigger",
    "EdgeTrigger",
    "EdgeType",
    "EyeWaveform",
    "FilterValidationError",
    "GlitchTrigger",
    "NthEdgeBurstTrigger",
    "PendingWaveforms",
    "ProtocolError",
    "PulseWidthTrigger",
    "RuntTrigger",
    "SPARAM_NAMES",
    "SParameterPoint",
    "SParameterVector",
    "SParameters",
    "SequenceSet",
    "SessionConfig",
    "SlewRateTrigger",
    "SparseAnalogWaveform",
    "SparseDigitalWaveform",
    "SparseProtocolWaveform",
    "SparseWaveform",
    "Stream",
    "StreamType",
    "TransportError",
    "Trigger",
    "UartIdlePolarity",
    "UartMatchType",
    "UartParity",
    "UartStopBits",
    "UartTrigger",
    "Unit",
    "UniformAnalogWaveform",
    "UniformDigitalWaveform",
    "UniformWaveform",
    "WaveformInvariantError",
    "Waveform",
    "WavescopeError",
    "WindowCrossing",
    "WindowTrigger",
    "get_duration",
    "get_duration_scaled",
    "get_offset",
    "get_offset_scaled",
    "waveform_end_fs",
]
