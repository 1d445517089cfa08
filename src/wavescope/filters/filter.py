"""Filters: transform nodes of the filter graph.

There is a single ``Filter`` class. What a filter does is described by data,
a ``FilterKind``:

- the inputs it accepts (``InputSpec``: stream types, units),
- the outputs it produces (``OutputSpec``: name, unit, stream type),
- its parameters (``ParameterSpec``),
- a free function ``refresh(f)`` that reads ``f``'s inputs and fills its outputs,
- optionally ``init_state(state)`` to set up per-instance working state.

Kinds are registered with the ``filter_kind`` decorator and instantiated by
name:

```python
@filter_kind(
    "Average",
    category="Measurement",
    inputs=[InputSpec("din", (StreamType.ANALOG,))],
    outputs=[OutputSpec("Average", Unit.VOLTS, StreamType.ANALOG_SCALAR)],
)
def refresh_average(f):
    f.set_scalar(0, get_avg_voltage(f.get_input_waveform(0)))

avg = Filter("Average")
avg.set_input(0, scope_channel.stream())
```

Output buffers are reused between refreshes: ``setup_empty_output`` hands back
the waveform the filter produced last time (timestamps cloned from the given
input, length zero) when its class matches. After ``refresh`` the outputs the
kind touched are published to the arena, which invalidates handles held by
consumers; outputs left untouched are cleared.
"""

from __future__ import annotations

import types
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, Optional

import numpy as np
from loguru import logger

from wavescope.filters.channel import Channel, StreamDescriptor
from wavescope.types.errors import ConfigurationError, FilterValidationError
from wavescope.types.units import Stream, StreamType, Unit
from wavescope.types.waveform import SparseAnalogWaveform, Waveform

# ======================================================================================
# kind declarations
# ======================================================================================


@dataclass(frozen=True)
class InputSpec:
    name: str
    types: tuple[StreamType, ...]
    units: Optional[tuple[Unit, ...]] = None  # None accepts any unit
    sparse: bool = True
    uniform: bool = True
    optional: bool = False


@dataclass(frozen=True)
class OutputSpec:
    name: str
    y_unit: Unit
    stream_type: StreamType
    x_unit: Unit = Unit.FS


class ParameterType(Enum):
    FLOAT = auto()
    INT = auto()
    BOOL = auto()
    STRING = auto()
    ENUM = auto()


@dataclass(frozen=True)
class ParameterSpec:
    name: str
    ptype: ParameterType
    default: Any
    unit: Unit = Unit.DIMENSIONLESS
    choices: Optional[tuple[str, ...]] = None  # ENUM only


@dataclass
class FilterKind:
    name: str
    category: str
    inputs: list[InputSpec]
    outputs: list[OutputSpec]
    parameters: list[ParameterSpec]
    refresh: Callable[[Filter], None]
    init_state: Optional[Callable[[types.SimpleNamespace], None]] = None
    description: str = ""


_FILTER_KINDS: dict[str, FilterKind] = {}


def filter_kind(
    name: str,
    category: str,
    inputs: list[InputSpec],
    outputs: list[OutputSpec],
    parameters: list[ParameterSpec] | None = None,
    init_state: Optional[Callable[[types.SimpleNamespace], None]] = None,
):
    """Decorator registering ``refresh`` as the body of a filter kind."""

    def wrapper(refresh):
        if name in _FILTER_KINDS:
            logger.warning("Filter kind '{}' registered twice, replacing", name)
        _FILTER_KINDS[name] = FilterKind(
            name=name,
            category=category,
            inputs=list(inputs),
            outputs=list(outputs),
            parameters=list(parameters or []),
            refresh=refresh,
            init_state=init_state,
            description=(refresh.__doc__ or "").strip(),
        )
        return refresh

    return wrapper


def get_filter_kind(name: str) -> FilterKind:
    try:
        return _FILTER_KINDS[name]
    except KeyError:
        raise KeyError(f"Unknown filter kind '{name}'") from None


def enum_filter_kinds(category: Optional[str] = None) -> list[str]:
    return sorted(
        n for n, k in _FILTER_KINDS.items() if category is None or k.category == category
    )


def load_builtin_filters():
    """Import the built-in filter modules so their kinds register."""
    import wavescope.eye  # noqa: F401
    import wavescope.measurements  # noqa: F401
    import wavescope.protocols  # noqa: F401
    import wavescope.sparams  # noqa: F401

    logger.debug("{} filter kinds available", len(_FILTER_KINDS))


# ======================================================================================
# parameters
# ======================================================================================


class FilterParameter:
    def __init__(self, spec: ParameterSpec):
        self.spec = spec
        self._value = None
        self.set(spec.default)

    def __repr__(self):
        return f"FilterParameter({self.spec.name}={self._value!r})"

    @property
    def value(self):
        return self._value

    def set(self, value):
        match self.spec.ptype:
            case ParameterType.FLOAT:
                self._value = float(value)
            case ParameterType.INT:
                self._value = int(round(float(value)))
            case ParameterType.BOOL:
                if isinstance(value, str):
                    self._value = value.strip().lower() in ("1", "true", "yes", "on")
                else:
                    self._value = bool(value)
            case ParameterType.STRING:
                self._value = str(value)
            case ParameterType.ENUM:
                if value not in self.spec.choices:
                    raise ConfigurationError(
                        f"Parameter '{self.spec.name}' must be one of "
                        f"{self.spec.choices}, got {value!r}"
                    )
                self._value = value

    def to_string(self) -> str:
        return str(self._value)


# ======================================================================================
# filter
# ======================================================================================


class Filter(Channel):
    """One node of the filter graph, behaving as described by its ``FilterKind``."""

    def __init__(self, kind: str | FilterKind, name: Optional[str] = None):
        if isinstance(kind, str):
            kind = get_filter_kind(kind)
        self.kind = kind
        streams = [Stream(o.name, o.y_unit, o.stream_type, o.x_unit) for o in kind.outputs]
        super().__init__(name or kind.name, streams)
        if name is None:
            self.name = f"{kind.name}_{self.id}"

        self.inputs: list[Optional[StreamDescriptor]] = [None] * len(kind.inputs)
        self.parameters = {p.name: FilterParameter(p) for p in kind.parameters}
        self.state = types.SimpleNamespace()
        if kind.init_state is not None:
            kind.init_state(self.state)
        self.refresh_count = 0
        self._touched: set[int] = set()

    # ------------------------------------------------------------------ params

    def param(self, name: str):
        return self.parameters[name].value

    def set_param(self, name: str, value):
        if name not in self.parameters:
            raise ConfigurationError(f"{self.kind.name} has no parameter '{name}'")
        self.parameters[name].set(value)

    # ------------------------------------------------------------------ inputs

    def _input_index(self, i: int | str) -> int:
        if isinstance(i, str):
            for k, spec in enumerate(self.kind.inputs):
                if spec.name == i:
                    return k
            raise KeyError(f"{self.kind.name} has no input '{i}'")
        return i

    def validate_channel(self, i: int, stream: Optional[StreamDescriptor]) -> bool:
        """True if ``stream`` may be wired to input ``i``."""
        if stream is None:
            return False
        spec = self.kind.inputs[i]
        if stream.stream_type not in spec.types:
            return False
        if spec.units is not None and stream.y_unit not in spec.units:
            return False
        return True

    def _would_cycle(self, stream: StreamDescriptor) -> bool:
        seen = set()
        todo = [stream.channel]
        while todo:
            ch = todo.pop()
            if ch is self:
                return True
            if ch.id in seen:
                continue
            seen.add(ch.id)
            todo.extend(ch.upstream())
        return False

    def set_input(self, i: int | str, stream: Optional[StreamDescriptor]) -> bool:
        """Wire input ``i``. Invalid or cycle-forming wiring leaves the input empty.

        Returns True if the stream was connected.
        """
        i = self._input_index(i)
        if stream is None:
            self.inputs[i] = None
            return True
        if self._would_cycle(stream):
            logger.error(
                "Refusing to connect {} to {}.{}: would create a cycle",
                stream, self.name, self.kind.inputs[i].name,
            )
            self.inputs[i] = None
            return False
        if not self.validate_channel(i, stream):
            logger.error(
                "Invalid input {} for {}.{} ({})",
                stream, self.name, self.kind.inputs[i].name, stream.stream_type.name,
            )
            self.inputs[i] = None
            return False
        self.inputs[i] = stream
        return True

    def get_input(self, i: int | str) -> Optional[StreamDescriptor]:
        return self.inputs[self._input_index(i)]

    def get_input_waveform(self, i: int | str) -> Any:
        stream = self.get_input(i)
        return None if stream is None else stream.get_data()

    def get_input_scalar(self, i: int | str) -> Optional[float]:
        stream = self.get_input(i)
        return None if stream is None else stream.get_scalar()

    def upstream(self) -> list[Channel]:
        return [s.channel for s in self.inputs if s is not None]

    def inputs_ready(self) -> bool:
        """All required inputs wired, valid and carrying data."""
        for i, spec in enumerate(self.kind.inputs):
            stream = self.inputs[i]
            if stream is None:
                if spec.optional:
                    continue
                return False
            if not self.validate_channel(i, stream) or not stream.has_data():
                return False
            data = stream.get_data()
            if isinstance(data, Waveform):
                if data.is_sparse and not spec.sparse:
                    return False
                if not data.is_sparse and not spec.uniform:
                    return False
        return True

    # ----------------------------------------------------------------- outputs

    def setup_empty_output(
        self,
        i: int = 0,
        like: Optional[Waveform] = None,
        cls: type[Waveform] = SparseAnalogWaveform,
        **kwargs,
    ) -> Waveform:
        """Return an empty output waveform for stream ``i``, reusing last refresh's.

        Timing metadata (timescale, start time, trigger phase) is cloned from
        ``like`` when given.
        """
        prev = self.arena.peek((self.id, i))
        dtype = kwargs.pop("dtype", None)
        if type(prev) is cls and (dtype is None or prev.dtype == dtype):
            w = prev
            for k, v in kwargs.items():
                setattr(w, k, v)
        else:
            w = cls(dtype=dtype, **kwargs) if dtype is not None else cls(**kwargs)
        if like is not None:
            w.timescale = like.timescale
            w.start_timestamp = like.start_timestamp
            w.start_femtoseconds = like.start_femtoseconds
            w.trigger_phase = like.trigger_phase
        w.resize(0)
        w.mark_modified_from_cpu()
        self.arena.publish((self.id, i), w)
        self.arena.invalidate((self.id, i))
        self._touched.add(i)
        return w

    def set_output(self, i: int, data: Any):
        """Attach a non-waveform object (e.g. a table) to output ``i``."""
        self.arena.publish((self.id, i), data)
        self.arena.invalidate((self.id, i))
        self._touched.add(i)

    def set_scalar(self, i: int, value: Optional[float]):
        super().set_scalar(i, value)
        self._touched.add(i)

    def clear_outputs(self):
        for i in range(len(self.streams)):
            self.clear_data(i)

    def refresh(self):
        """Run the kind's refresh and publish whatever it produced."""
        self._touched = set()
        self.kind.refresh(self)
        self.refresh_count += 1
        for i, stream in enumerate(self.streams):
            if i not in self._touched:
                self.clear_data(i)
            elif stream.stream_type != StreamType.ANALOG_SCALAR:
                self.arena.publish((self.id, i), self.arena.peek((self.id, i)))

    # ----------------------------------------------------------- persistence

    def serialize(self) -> dict:
        return {
            "kind": self.kind.name,
            "name": self.name,
            "parameters": {n: p.value for n, p in self.parameters.items()},
            "inputs": [
                None if s is None else {"channel": s.channel.name, "stream": s.stream}
                for s in self.inputs
            ],
        }

    def load_parameters(self, params: dict):
        for name, value in params.items():
            if name in self.parameters:
                self.parameters[name].set(value)
            else:
                logger.warning("{}: ignoring unknown parameter '{}'", self.name, name)

    def require_input(self, i: int | str) -> Any:
        """Input data or FilterValidationError (used inside refresh functions)."""
        data = self.get_input_waveform(i)
        if data is None:
            raise FilterValidationError(f"{self.name}: input {i} has no data")
        return data


def as_float64(w: Waveform) -> np.ndarray:
    return np.asarray(w.samples, dtype=np.float64)
