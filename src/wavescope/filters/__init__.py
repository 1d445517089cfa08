"""Filter graph: channels, the waveform arena, filter kinds and the scheduler."""

from wavescope.filters.arena import WaveformArena, WaveformHandle
from wavescope.filters.channel import Channel, InstrumentChannel, StreamDescriptor
from wavescope.filters.filter import (
    Filter,
    FilterKind,
    FilterParameter,
    InputSpec,
    OutputSpec,
    ParameterSpec,
    ParameterType,
    enum_filter_kinds,
    filter_kind,
    get_filter_kind,
    load_builtin_filters,
)
from wavescope.filters.graph import FilterGraph, FilterGraphRunner

__all__ = [
    "WaveformArena",
    "WaveformHandle",
    "Channel",
    "InstrumentChannel",
    "StreamDescriptor",
    "Filter",
    "FilterKind",
    "FilterParameter",
    "InputSpec",
    "OutputSpec",
    "ParameterSpec",
    "ParameterType",
    "enum_filter_kinds",
    "filter_kind",
    "get_filter_kind",
    "load_builtin_filters",
    "FilterGraph",
    "FilterGraphRunner",
]
