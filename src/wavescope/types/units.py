"""Axis units and stream types."""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional


class Unit(Enum):
    FS = "fs"
    HZ = "Hz"
    VOLTS = "V"
    MICROVOLTS = "µV"
    AMPS = "A"
    WATTS = "W"
    OHMS = "Ω"
    DB = "dB"
    DEGREES = "°"
    COUNTS = "counts"
    LOG_BER = "log BER"
    UI = "UI"
    PERCENT = "%"
    BYTES = "B"
    VOLT_SEC = "V·s"
    DIMENSIONLESS = ""

    def __str__(self):
        return self.value


class StreamType(Enum):
    ANALOG = auto()
    DIGITAL = auto()
    EYE = auto()
    ANALOG_SCALAR = auto()
    PROTOCOL = auto()
    DDJ_TABLE = auto()


@dataclass
class Stream:
    """One output of a channel: its axes, its type, and a scalar value slot.

    Waveform-carrying streams keep their data in the waveform arena; scalar
    streams carry a single float in ``value``.
    """

    name: str
    y_unit: Unit
    stream_type: StreamType
    x_unit: Unit = Unit.FS
    value: Optional[float] = None

    def is_scalar(self) -> bool:
        return self.stream_type == StreamType.ANALOG_SCALAR
