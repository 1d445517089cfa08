"""Channels, and the stream descriptors used to wire them together."""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from wavescope.filters.arena import WaveformArena, WaveformHandle
from wavescope.types.units import Stream, StreamType, Unit

if TYPE_CHECKING:
    from wavescope.device.oscilloscope import Oscilloscope

_channel_ids = itertools.count(1)


class Channel:
    """Something that exposes streams: an instrument input or a filter.

    Stream data lives in a ``WaveformArena``. A channel starts with a private
    arena and moves its slots into the graph's arena when added to a graph.
    """

    def __init__(self, name: str, streams: list[Stream], arena: WaveformArena | None = None):
        self.id = next(_channel_ids)
        self.name = name
        self.streams = streams
        self.arena = arena if arena is not None else WaveformArena()

    def __repr__(self):
        return f"{self.__class__.__name__}({self.name!r})"

    def attach_arena(self, arena: WaveformArena):
        if arena is self.arena:
            return
        arena.adopt(self.arena.take(self.id))
        self.arena = arena

    def stream(self, i: int = 0) -> StreamDescriptor:
        return StreamDescriptor(self, i)

    def get_data(self, i: int = 0) -> Any:
        return self.arena.get((self.id, i))

    def get_handle(self, i: int = 0) -> Optional[WaveformHandle]:
        return self.arena.handle((self.id, i))

    def set_data(self, i: int, data: Any) -> WaveformHandle:
        return self.arena.publish((self.id, i), data)

    def clear_data(self, i: int):
        self.arena.invalidate((self.id, i))
        self.streams[i].value = None

    def get_scalar(self, i: int = 0) -> Optional[float]:
        return self.streams[i].value

    def set_scalar(self, i: int, value: Optional[float]):
        self.streams[i].value = None if value is None else float(value)

    def upstream(self) -> list[Channel]:
        return []


class InstrumentChannel(Channel):
    """A hardware input of an oscilloscope session (analog channel or digital lane)."""

    def __init__(self, scope: Oscilloscope, index: int, hwname: str, digital: bool = False):
        stream = (
            Stream("data", Unit.COUNTS, StreamType.DIGITAL)
            if digital
            else Stream("data", Unit.VOLTS, StreamType.ANALOG)
        )
        super().__init__(hwname, [stream])
        self.scope = scope
        self.index = index
        self.hwname = hwname
        self.digital = digital


@dataclass(frozen=True)
class StreamDescriptor:
    """A (channel, stream index) pair: the unit of filter graph wiring."""

    channel: Channel
    stream: int = 0

    def __repr__(self):
        return f"{self.channel.name}.{self.stream}"

    @property
    def name(self) -> str:
        s = self.channel.streams[self.stream].name
        return f"{self.channel.name}.{s}"

    @property
    def stream_type(self) -> StreamType:
        return self.channel.streams[self.stream].stream_type

    @property
    def y_unit(self) -> Unit:
        return self.channel.streams[self.stream].y_unit

    def get_data(self) -> Any:
        return self.channel.get_data(self.stream)

    def get_scalar(self) -> Optional[float]:
        return self.channel.get_scalar(self.stream)

    def get_handle(self) -> Optional[WaveformHandle]:
        return self.channel.get_handle(self.stream)

    def resolve(self, handle: WaveformHandle) -> Any:
        return self.channel.arena.resolve(handle)

    def has_data(self) -> bool:
        if self.stream_type == StreamType.ANALOG_SCALAR:
            return self.get_scalar() is not None
        return self.get_data() is not None
