"""Trigger records.

Triggers form a sum type: one dataclass per trigger kind, all deriving from
``Trigger``. mashumaro's discriminator on ``trigger_type`` lets a plain dict
(e.g. loaded from a saved session) be turned back into the right subclass:

```python
t = Trigger.from_dict({"trigger_type": "edge", "source": 0, "level": 0.2})
assert isinstance(t, EdgeTrigger)
```

Times are integer femtoseconds, levels volts. Sources are channel indices.
"""

from dataclasses import dataclass
from enum import Enum

from mashumaro import DataClassDictMixin
from mashumaro.config import BaseConfig
from mashumaro.types import Discriminator


class EdgeType(Enum):
    RISING = "rising"
    FALLING = "falling"
    ANY = "any"
    ALTERNATING = "alternating"


class Condition(Enum):
    LESS = "less"
    GREATER = "greater"
    BETWEEN = "between"
    NOT_BETWEEN = "not_between"
    EQUAL = "equal"
    NOT_EQUAL = "not_equal"
    ANY = "any"


class WindowCrossing(Enum):
    ENTER = "enter"
    EXIT = "exit"
    INSIDE = "inside"
    OUTSIDE = "outside"


class UartMatchType(Enum):
    START = "start"
    DATA = "data"
    PARITY_ERROR = "parity_error"
    FRAMING_ERROR = "framing_error"


class UartParity(Enum):
    NONE = "none"
    ODD = "odd"
    EVEN = "even"
    MARK = "mark"
    SPACE = "space"


class UartStopBits(Enum):
    ONE = "1"
    ONE_AND_HALF = "1.5"
    TWO = "2"


class UartIdlePolarity(Enum):
    HIGH = "high"
    LOW = "low"


@dataclass(kw_only=True)
class Trigger(DataClassDictMixin):
    """Common fields of every trigger kind."""

    class Config(BaseConfig):
        discriminator = Discriminator(
            field="trigger_type",
            include_subtypes=True,
        )

    trigger_type: str
    source: int = 0
    level: float = 0.0
    hysteresis: float = 0.0


@dataclass(kw_only=True)
class EdgeTrigger(Trigger):
    trigger_type: str = "edge"
    edge: EdgeType = EdgeType.RISING


@dataclass(kw_only=True)
class PulseWidthTrigger(Trigger):
    trigger_type: str = "pulse_width"
    edge: EdgeType = EdgeType.RISING
    condition: Condition = Condition.GREATER
    lower_bound: int = 0
    upper_bound: int = 0


@dataclass(kw_only=True)
class GlitchTrigger(Trigger):
    trigger_type: str = "glitch"
    edge: EdgeType = EdgeType.RISING
    condition: Condition = Condition.LESS
    lower_bound: int = 0
    upper_bound: int = 0


@dataclass(kw_only=True)
class WindowTrigger(Trigger):
    trigger_type: str = "window"
    upper_level: float = 0.0
    crossing: WindowCrossing = WindowCrossing.ENTER


@dataclass(kw_only=True)
class RuntTrigger(Trigger):
    trigger_type: str = "runt"
    upper_level: float = 0.0
    edge: EdgeType = EdgeType.RISING
    condition: Condition = Condition.ANY
    lower_bound: int = 0
    upper_bound: int = 0


@dataclass(kw_only=True)
class DropoutTrigger(Trigger):
    trigger_type: str = "dropout"
    edge: EdgeType = EdgeType.RISING
    timeout: int = 0


@dataclass(kw_only=True)
class SlewRateTrigger(Trigger):
    trigger_type: str = "slew_rate"
    upper_level: float = 0.0
    edge: EdgeType = EdgeType.RISING
    condition: Condition = Condition.LESS
    lower_bound: int = 0
    upper_bound: int = 0


@dataclass(kw_only=True)
class NthEdgeBurstTrigger(Trigger):
    trigger_type: str = "nth_edge_burst"
    edge: EdgeType = EdgeType.RISING
    idle_time: int = 0
    edge_count: int = 1


@dataclass(kw_only=True)
class UartTrigger(Trigger):
    """Match on a decoded UART stream.

    ``pattern1``/``pattern2`` are binary strings, MSB first, with ``x`` for
    don't-care bits (e.g. ``"0101xxxx"``). ``pattern2`` is only used by
    instruments that support range matches.
    """

    trigger_type: str = "uart"
    baud_rate: int = 115200
    data_bits: int = 8
    parity: UartParity = UartParity.NONE
    stop_bits: UartStopBits = UartStopBits.ONE
    idle_polarity: UartIdlePolarity = UartIdlePolarity.HIGH
    match_type: UartMatchType = UartMatchType.DATA
    pattern1: str = ""
    pattern2: str = ""
    ninth_bit: bool = False
