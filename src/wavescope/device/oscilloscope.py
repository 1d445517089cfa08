"""Oscilloscope session: configuration cache, trigger state machine and acquisition.

An ``Oscilloscope`` owns one transport. It knows nothing about a vendor's SCPI
dialect; drivers (``ScpiOscilloscope``, ``RSOscilloscope``) implement the
``_query_*``/``_write_*``/``_send_*``/``_read_*`` hooks and the session does
everything else:

- caching channel and timebase settings, lazily, under ``_cache_mutex``
- the STOPPED / ARMED / TRIGGERED state machine
- fetching, scaling and timestamping one capture per enabled channel
- handing the results to consumers through ``pending`` (a FIFO of SequenceSets)

Three locks are in play and are never taken in the opposite order: the
transport ``mutex`` (held across a whole acquisition), the config
``_cache_mutex`` (short map lookups only) and the pending-queue lock.

Examples
--------
```python
from wavescope.device import create_oscilloscope, scope_protocol_static_init
scope_protocol_static_init()
scope = create_oscilloscope("scpi", create_transport("visa", "TCPIP0::10.0.0.5::INSTR"))
scope.start_single_trigger()
while scope.poll_trigger() != TriggerMode.TRIGGERED:
    time.sleep(0.01)
scope.acquire_data()
seq = scope.pending.pop()
```
"""

from __future__ import annotations

import asyncio
import threading
import time
import types
from dataclasses import dataclass
from enum import Enum, IntEnum
from functools import partial
from typing import Any, Callable, Optional

import numpy as np
from loguru import logger

from wavescope.device.device import Device
from wavescope.filters.channel import InstrumentChannel
from wavescope.transport.transport import SCPITransport
from wavescope.types.config import ChannelConfig, SessionConfig
from wavescope.types.errors import ConfigurationError, ProtocolError, TransportError
from wavescope.types.sequence import PendingWaveforms, SequenceSet
from wavescope.types.trigger import Trigger
from wavescope.types.waveform import (
    SparseDigitalWaveform,
    UniformAnalogWaveform,
    Waveform,
)
from wavescope.util.defaults import FS_PER_SECOND, RLE_TAIL_GUARD

# ----------------
# Available States
# ----------------

SCOPE_STATE = types.SimpleNamespace()
SCOPE_STATE.STOPPED = "STOPPED"
SCOPE_STATE.ARMED = "ARMED"
SCOPE_STATE.TRIGGERED = "TRIGGERED"


class TriggerMode(Enum):
    """What ``poll_trigger`` reports."""

    RUN = "run"
    TRIGGERED = "triggered"
    STOP = "stop"


class WaveFormat(IntEnum):
    """Sample encodings of a raw waveform block."""

    BYTE = 0
    WORD = 1
    ASCII = 2
    FLOAT = 3


# channel settings held in the cache, with the value reported when the
# instrument cannot be asked
CHANNEL_DEFAULTS: dict[str, Any] = {
    "enabled": False,
    "voltage_range": 1.0,
    "offset": 0.0,
    "coupling": "DC",
    "attenuation": 1.0,
    "bandwidth_limit": 0,
    "probe_type": "",
    "digital_threshold": 0.0,
    "deskew": 0,
}
# settings the instrument stores exactly as written; the others may be rounded
EXACT_CHANNEL_ATTRS = {"enabled", "coupling"}

SCALAR_DEFAULTS: dict[str, Any] = {
    "sample_rate": 0.0,
    "memory_depth": 0,
    "timebase_range": 0.0,
    "trigger_offset": 0,
}
# changing one of these lets the instrument re-derive the others
_LINKED_SCALARS = ("sample_rate", "memory_depth", "timebase_range", "trigger_offset")

_POOL_DEPTH = 4


# =============================================================================
# Reply parsing
# =============================================================================


def parse_bool(reply: str) -> bool:
    token = reply.strip().strip('"').upper()
    if token in ("1", "ON", "TRUE"):
        return True
    if token in ("0", "OFF", "FALSE"):
        return False
    raise ProtocolError("Expected a boolean", reply)


def parse_float(reply: str) -> float:
    try:
        return float(reply.strip().strip('"'))
    except ValueError as e:
        raise ProtocolError("Expected a number", reply) from e


def parse_int(reply: str) -> int:
    return int(round(parse_float(reply)))


def format_float(value: float) -> str:
    return repr(float(value))


def parse_fs(reply: str) -> int:
    """A time in seconds on the wire, as integer fs."""
    return int(round(parse_float(reply) * FS_PER_SECOND))


def format_fs(fs: int) -> str:
    return format_float(fs / FS_PER_SECOND)


def parse_token(reply: str) -> str:
    return reply.strip().strip('"').upper()


# =============================================================================
# Wire formats
# =============================================================================


@dataclass
class Preamble:
    """Metadata preceding a raw waveform block.

    Voltage of raw code ``c`` is ``y_increment*c - (y_increment*y_reference -
    y_origin)``; float blocks carry volts directly. ``x_origin`` is the time of
    the first sample relative to the trigger, in seconds.
    """

    format: WaveFormat
    points: int
    samples_per_interval: int
    x_increment: float
    x_origin: float = 0.0
    x_reference: float = 0.0
    y_increment: float = 1.0
    y_origin: float = 0.0
    y_reference: float = 0.0
    acquisition_type: int = 0

    @property
    def timescale(self) -> int:
        return int(round(self.x_increment * 1e15))

    @property
    def trigger_phase(self) -> int:
        return int(round(self.x_origin * 1e15)) % self.timescale


_FORMAT_DTYPES = {
    WaveFormat.BYTE: np.dtype(np.uint8),
    WaveFormat.WORD: np.dtype("<u2"),
    WaveFormat.FLOAT: np.dtype("<f4"),
}


def decode_samples(raw: bytes, pre: Preamble, out: UniformAnalogWaveform):
    """Scale ``raw`` into ``out.samples`` (resized to the number of whole samples)."""
    if pre.format not in _FORMAT_DTYPES:
        raise ProtocolError(f"Unsupported waveform format {pre.format!r}")
    dtype = _FORMAT_DTYPES[pre.format]
    n = len(raw) // dtype.itemsize
    codes = np.frombuffer(raw, dtype=dtype, count=n)
    out.resize(n)
    if pre.format == WaveFormat.FLOAT:
        out.samples[:] = codes
    else:
        gain = pre.y_increment
        offset = gain * pre.y_reference - pre.y_origin
        np.multiply(codes, gain, out=out.samples, casting="unsafe")
        out.samples[:] -= offset
    out.mark_samples_modified_from_cpu()


def run_length_encode(values: np.ndarray, tail_guard: int = RLE_TAIL_GUARD):
    """Compress a sample stream into (starts, durations, values) runs.

    A sample extends the previous run iff it has the same value and is not
    among the final ``tail_guard`` samples, so a constant input yields at most
    ``tail_guard + 1`` runs.
    """
    values = np.asarray(values)
    n = len(values)
    if n == 0:
        empty = np.empty(0, dtype=np.int64)
        return empty, empty.copy(), values[:0]
    new_run = np.empty(n, dtype=bool)
    new_run[0] = True
    new_run[1:] = values[1:] != values[:-1]
    # TODO: drop the tail guard once nothing depends on the last samples being unmerged
    if tail_guard:
        new_run[max(n - tail_guard, 0) :] = True
    starts = np.flatnonzero(new_run).astype(np.int64)
    durations = np.diff(np.append(starts, n)).astype(np.int64)
    return starts, durations, values[starts]


def split_timestamp(now: float) -> tuple[int, int]:
    """Whole epoch seconds and the sub-second remainder in fs."""
    seconds = int(np.floor(now))
    femtoseconds = int(round((now - seconds) * FS_PER_SECOND))
    # rounding can reach a whole second
    carry, femtoseconds = divmod(femtoseconds, FS_PER_SECOND)
    return seconds + carry, femtoseconds


# =============================================================================
# Session
# =============================================================================


class Oscilloscope(Device):
    """One long-lived connection to an oscilloscope.

    Parameters
    ----------
    transport : SCPITransport
        Open transport to the instrument.
    config : SessionConfig, optional
        Poll interval, force-trigger timeout and queue depth. Defaults apply if
        not given.
    clock : callable, optional
        Returns the current epoch time in seconds; stamps each capture.

    Attributes
    ----------
    channels : list[InstrumentChannel]
        Analog channels first, then one channel per digital lane.
    pending : PendingWaveforms
        SequenceSets waiting for a consumer, oldest first.
    """

    driver_name = "base"

    # supported sample rates / depths; None means "ask the instrument"
    SAMPLE_RATES: Optional[list[float]] = None
    SAMPLE_DEPTHS: Optional[list[int]] = None

    def __init__(
        self,
        transport: SCPITransport,
        config: Optional[SessionConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(config)
        self.transport = transport
        self.clock = clock

        self.vendor = ""
        self.model = ""
        self.serial = ""
        self.firmware = ""
        self.options: list[str] = []

        self.channels: list[InstrumentChannel] = []
        self.analog_channel_count = 0
        self.digital_pod_count = 0
        self.lanes_per_pod = 8
        self._pod_names: list[str] = []

        self.pending = PendingWaveforms(self.config.max_pending)

        self._cache_mutex = threading.RLock()
        self._channel_cache: dict[int, dict[str, Any]] = {}
        self._scalar_cache: dict[str, Any] = {}
        self._trigger_cache: Optional[Trigger] = None

        self._armed = False
        self._one_shot = False
        self._triggered_latch = False
        self._force_pending = False
        self._force_time = 0.0
        self._stop_event = threading.Event()
        self._close_event = threading.Event()

        self._pool_lock = threading.Lock()
        self._pool: dict[tuple[int, type], list[Waveform]] = {}

        self._connected = False

    def __repr__(self):
        return f"{self.__class__.__name__}({self.model or '?'} via {self.transport!r})"

    # ------------------------------------------------------------------ driver

    def _query_channel_attr(self, index: int, attr: str) -> Any:
        raise NotImplementedError()

    def _write_channel_attr(self, index: int, attr: str, value: Any):
        raise NotImplementedError()

    def _query_scalar(self, name: str) -> Any:
        raise NotImplementedError()

    def _write_scalar(self, name: str, value: Any):
        raise NotImplementedError()

    def _send_arm(self):
        raise NotImplementedError()

    def _send_stop(self):
        raise NotImplementedError()

    def _send_force(self):
        raise NotImplementedError()

    def _query_trigger_status(self) -> TriggerMode:
        raise NotImplementedError()

    def _detect_channels(self) -> tuple[list[str], list[str]]:
        """Hardware names of the analog channels and of the digital pods."""
        raise NotImplementedError()

    def _read_preamble(self, source: str) -> Preamble:
        raise NotImplementedError()

    def _read_block(self, source: str, pre: Preamble, progress=None) -> bytes:
        raise NotImplementedError()

    # -------------------------------------------------------------- connection

    def open(self) -> tuple[bool, str]:
        try:
            with self.transport.mutex:
                self.identify()
                self.options = self.get_options()
                analog, pods = self._detect_channels()
        except (TransportError, ProtocolError) as e:
            logger.error("Failed to open {}: {}", self.transport, e)
            return False, str(e)
        self._build_channels(analog, pods)
        self._connected = True
        msg = (
            f"Connected to {self.vendor} {self.model}: {self.analog_channel_count} analog "
            f"channels, {self.digital_pod_count} digital pods"
        )
        logger.info(msg)
        return True, msg

    def close(self):
        self._close_event.set()
        self.stop()
        self.transport.close()
        self._connected = False

    def is_connected(self) -> bool:
        return self._connected and self.transport.is_connected()

    def _build_channels(self, analog: list[str], pods: list[str]):
        self.analog_channel_count = len(analog)
        self.digital_pod_count = len(pods)
        self._pod_names = list(pods)
        self.channels = [InstrumentChannel(self, i, name) for i, name in enumerate(analog)]
        for p, pod in enumerate(pods):
            for bit in range(self.lanes_per_pod):
                index = len(self.channels)
                self.channels.append(
                    InstrumentChannel(self, index, f"{pod}.D{bit}", digital=True)
                )

    def identify(self) -> str:
        """Ask ``*IDN?`` and split it into vendor, model, serial and firmware."""
        idn = self.transport.send_command_queued_with_reply("*IDN?")
        fields = [f.strip() for f in idn.split(",")]
        if len(fields) < 2:
            raise ProtocolError("Malformed *IDN? reply", idn)
        fields += [""] * (4 - len(fields))
        self.vendor, self.model, self.serial, self.firmware = fields[:4]
        return idn

    def get_options(self) -> list[str]:
        """Installed options from ``*OPT?``; an empty reply or ``0`` means none."""
        reply = self.transport.send_command_queued_with_reply("*OPT?")
        opts = [o.strip().strip('"') for o in reply.split(",")]
        return [o for o in opts if o and o != "0"]

    # ------------------------------------------------------------- channel map

    def get_channel(self, index: int) -> InstrumentChannel:
        return self.channels[index]

    def get_channel_by_hwname(self, hwname: str) -> InstrumentChannel:
        for chan in self.channels:
            if chan.hwname.upper() == hwname.upper():
                return chan
        raise KeyError(hwname)

    def is_digital(self, index: int) -> bool:
        return index >= self.analog_channel_count

    def pod_of(self, index: int) -> int:
        return (index - self.analog_channel_count) // self.lanes_per_pod

    def pod_name(self, pod: int) -> str:
        return self._pod_names[pod]

    def _cache_index(self, index: int) -> int:
        # digital lanes share their pod's settings, cached on its first lane
        if not self.is_digital(index):
            return index
        return self.analog_channel_count + self.pod_of(index) * self.lanes_per_pod

    # ------------------------------------------------------------ config cache

    def flush_config_cache(self):
        """Forget every cached setting; the next getter asks the instrument."""
        with self._cache_mutex:
            self._channel_cache.clear()
            self._scalar_cache.clear()
            self._trigger_cache = None
        logger.debug("Config cache flushed")

    def _get_channel_attr(self, index: int, attr: str) -> Any:
        key = self._cache_index(index)
        with self._cache_mutex:
            cached = self._channel_cache.get(key, {})
            if attr in cached:
                return cached[attr]
        try:
            with self.transport.mutex:
                value = self._query_channel_attr(key, attr)
        except ProtocolError as e:
            logger.warning("Bad {} reply for channel {}: {}", attr, self.channels[key].hwname, e)
            return CHANNEL_DEFAULTS[attr]
        except TransportError as e:
            logger.error("Could not read {} of channel {}: {}", attr, self.channels[key].hwname, e)
            return CHANNEL_DEFAULTS[attr]
        with self._cache_mutex:
            self._channel_cache.setdefault(key, {})[attr] = value
        return value

    def _set_channel_attr(self, index: int, attr: str, value: Any):
        key = self._cache_index(index)
        try:
            with self.transport.mutex:
                self._write_channel_attr(key, attr, value)
        except (TransportError, ConfigurationError) as e:
            logger.error("Could not set {} of channel {}: {}", attr, self.channels[key].hwname, e)
            self._invalidate_channel_attr(key, attr)
            return
        with self._cache_mutex:
            if attr in EXACT_CHANNEL_ATTRS:
                self._channel_cache.setdefault(key, {})[attr] = value
            else:
                self._channel_cache.get(key, {}).pop(attr, None)

    def _invalidate_channel_attr(self, index: int, attr: str):
        with self._cache_mutex:
            self._channel_cache.get(index, {}).pop(attr, None)

    def is_channel_enabled(self, index: int) -> bool:
        return self._get_channel_attr(index, "enabled")

    def enable_channel(self, index: int):
        self._set_channel_attr(index, "enabled", True)

    def disable_channel(self, index: int):
        self._set_channel_attr(index, "enabled", False)

    def get_channel_voltage_range(self, index: int) -> float:
        return self._get_channel_attr(index, "voltage_range")

    def set_channel_voltage_range(self, index: int, volts: float):
        self._set_channel_attr(index, "voltage_range", volts)

    def get_channel_offset(self, index: int) -> float:
        return self._get_channel_attr(index, "offset")

    def set_channel_offset(self, index: int, volts: float):
        self._set_channel_attr(index, "offset", volts)

    def get_channel_coupling(self, index: int) -> str:
        return self._get_channel_attr(index, "coupling")

    def set_channel_coupling(self, index: int, coupling: str):
        self._set_channel_attr(index, "coupling", coupling.upper())

    def get_channel_attenuation(self, index: int) -> float:
        return self._get_channel_attr(index, "attenuation")

    def set_channel_attenuation(self, index: int, atten: float):
        self._set_channel_attr(index, "attenuation", atten)

    def get_channel_bandwidth_limit(self, index: int) -> int:
        """Bandwidth limit in Hz, 0 for full bandwidth."""
        return self._get_channel_attr(index, "bandwidth_limit")

    def set_channel_bandwidth_limit(self, index: int, hz: int):
        self._set_channel_attr(index, "bandwidth_limit", int(hz))

    def get_probe_type(self, index: int) -> str:
        return self._get_channel_attr(index, "probe_type")

    def get_digital_threshold(self, index: int) -> float:
        return self._get_channel_attr(index, "digital_threshold")

    def set_digital_threshold(self, index: int, volts: float):
        self._set_channel_attr(index, "digital_threshold", volts)

    def get_deskew(self, index: int) -> int:
        """Channel deskew in fs."""
        return self._get_channel_attr(index, "deskew")

    def set_deskew(self, index: int, fs: int):
        self._set_channel_attr(index, "deskew", int(fs))

    def get_channel_config(self, index: int) -> ChannelConfig:
        """Snapshot of the channel's settings, querying any that are not cached."""
        chan = self.channels[index]
        values = {attr: self._get_channel_attr(index, attr) for attr in CHANNEL_DEFAULTS}
        return ChannelConfig(index=index, hwname=chan.hwname, **values)

    # --------------------------------------------------------- scalar settings

    def _get_scalar(self, name: str) -> Any:
        with self._cache_mutex:
            if name in self._scalar_cache:
                return self._scalar_cache[name]
        try:
            with self.transport.mutex:
                value = self._query_scalar(name)
        except ProtocolError as e:
            logger.warning("Bad {} reply: {}", name, e)
            return SCALAR_DEFAULTS[name]
        except TransportError as e:
            logger.error("Could not read {}: {}", name, e)
            return SCALAR_DEFAULTS[name]
        with self._cache_mutex:
            self._scalar_cache[name] = value
        return value

    def _set_scalar(self, name: str, value: Any):
        try:
            with self.transport.mutex:
                self._write_scalar(name, value)
        except (TransportError, ConfigurationError) as e:
            logger.error("Could not set {}: {}", name, e)
        with self._cache_mutex:
            if name in _LINKED_SCALARS:
                for linked in _LINKED_SCALARS:
                    self._scalar_cache.pop(linked, None)
            else:
                self._scalar_cache.pop(name, None)

    def get_sample_rate(self) -> float:
        return self._get_scalar("sample_rate")

    def set_sample_rate(self, rate: float):
        if self.SAMPLE_RATES:
            allowed = min(self.SAMPLE_RATES, key=lambda r: abs(r - rate))
            if allowed != rate:
                logger.warning("Sample rate {} not supported, using {}", rate, allowed)
            rate = allowed
        self._set_scalar("sample_rate", rate)

    def get_sample_rates(self) -> list[float]:
        """Sample rates the instrument accepts.

        Drivers that do not know their instrument's interleaving rules report
        only the rate currently in use.
        """
        if self.SAMPLE_RATES:
            return list(self.SAMPLE_RATES)
        rate = self.get_sample_rate()
        return [rate] if rate else []

    def get_memory_depth(self) -> int:
        return self._get_scalar("memory_depth")

    def set_memory_depth(self, depth: int):
        self._set_scalar("memory_depth", int(depth))

    def get_sample_depths(self) -> list[int]:
        if self.SAMPLE_DEPTHS:
            return list(self.SAMPLE_DEPTHS)
        depth = self.get_memory_depth()
        return [depth] if depth else []

    def get_timebase_range(self) -> float:
        """Visible capture window in seconds."""
        return self._get_scalar("timebase_range")

    def set_timebase_range(self, seconds: float):
        self._set_scalar("timebase_range", seconds)

    def get_trigger_offset(self) -> int:
        """Time from the start of the capture to the trigger, in fs."""
        return self._get_scalar("trigger_offset")

    def set_trigger_offset(self, fs: int):
        self._set_scalar("trigger_offset", int(fs))

    def get_trigger(self) -> Optional[Trigger]:
        from wavescope.device.triggers import pull_trigger

        with self._cache_mutex:
            if self._trigger_cache is not None:
                return self._trigger_cache
        try:
            with self.transport.mutex:
                trig = pull_trigger(self)
        except (TransportError, ProtocolError) as e:
            logger.error("Could not read trigger: {}", e)
            return None
        with self._cache_mutex:
            self._trigger_cache = trig
        return trig

    def set_trigger(self, trigger: Trigger):
        from wavescope.device.triggers import push_trigger

        with self._cache_mutex:
            self._trigger_cache = None
        try:
            with self.transport.mutex:
                push_trigger(self, trigger)
        except (TransportError, ConfigurationError) as e:
            logger.error("Could not set trigger: {}", e)

    # ---------------------------------------------------------- state machine

    @property
    def state(self) -> str:
        if self._triggered_latch:
            return SCOPE_STATE.TRIGGERED
        if self._armed:
            return SCOPE_STATE.ARMED
        return SCOPE_STATE.STOPPED

    def is_armed(self) -> bool:
        return self._armed

    def is_one_shot(self) -> bool:
        return self._one_shot

    def start(self):
        """Arm for continuous capture."""
        self._arm(one_shot=False)

    def start_single_trigger(self):
        """Arm for one capture."""
        self._arm(one_shot=True)

    def _arm(self, one_shot: bool):
        self._stop_event.clear()
        self._triggered_latch = False
        self._force_pending = False
        self._one_shot = one_shot
        try:
            with self.transport.mutex:
                self._send_arm()
        except TransportError as e:
            logger.error("Failed to arm trigger: {}", e)
            self._armed = False
            return
        self._armed = True
        logger.debug("Armed ({})", "single" if one_shot else "continuous")

    def stop(self):
        """Stop capturing. A pending acquisition aborts before its next channel."""
        if not self._armed and not self._triggered_latch:
            logger.trace("Stop ignored, not armed")
            return
        self._stop_event.set()
        self._armed = False
        self._triggered_latch = False
        self._force_pending = False
        try:
            with self.transport.mutex:
                self._send_stop()
        except TransportError as e:
            logger.error("Failed to send stop: {}", e)
        logger.debug("Stopped")

    def force_trigger(self):
        """Trigger now; ignored while a forced capture is still pending."""
        if not self._armed:
            logger.debug("Force trigger ignored, not armed")
            return
        if self._force_pending:
            logger.debug("Force trigger ignored, one already pending")
            return
        try:
            self._send_force()
        except TransportError as e:
            logger.error("Failed to force trigger: {}", e)
            return
        self._force_pending = True
        self._force_time = time.monotonic()

    def _latch_trigger(self):
        self._triggered_latch = True
        self._force_pending = False
        if self._one_shot:
            self._armed = False

    def poll_trigger(self) -> TriggerMode:
        """Report whether a capture is waiting to be fetched.

        While armed this repeatedly returns RUN until the capture completes,
        then TRIGGERED until ``acquire_data`` consumes it.
        """
        if self._triggered_latch:
            return TriggerMode.TRIGGERED
        if not self._armed:
            return TriggerMode.STOP
        if (
            self._force_pending
            and time.monotonic() - self._force_time >= self.config.force_trigger_timeout
        ):
            logger.debug("Forced trigger timed out, treating capture as complete")
            self._latch_trigger()
            return TriggerMode.TRIGGERED
        try:
            with self.transport.mutex:
                status = self._query_trigger_status()
        except ProtocolError as e:
            logger.warning("Bad trigger status: {}", e)
            return TriggerMode.RUN
        except TransportError as e:
            logger.error("Trigger poll failed: {}", e)
            self._armed = False
            return TriggerMode.STOP
        if status == TriggerMode.RUN:
            return TriggerMode.RUN
        # the instrument reports a finished single capture as stopped
        self._latch_trigger()
        return TriggerMode.TRIGGERED

    # ------------------------------------------------------------- acquisition

    def _take_waveform(self, index: int, cls: type) -> Waveform:
        with self._pool_lock:
            pool = self._pool.get((index, cls))
            if pool:
                return pool.pop()
        return cls()

    def recycle(self, seq: SequenceSet):
        """Give a consumed SequenceSet's waveforms back for reuse by later captures."""
        with self._pool_lock:
            for index, w in seq.items():
                pool = self._pool.setdefault((index, type(w)), [])
                if len(pool) < _POOL_DEPTH:
                    pool.append(w)

    def _progress_for(self, progress, name):
        if progress is None:
            return None
        return partial(progress, name)

    def acquire_data(self, progress: Optional[Callable[[str, float], None]] = None) -> bool:
        """Fetch the triggered capture of every enabled channel.

        Parameters
        ----------
        progress : callable, optional
            Called as ``progress(hwname, fraction)`` while raw blocks download.

        Returns
        -------
        bool
            True if a SequenceSet was queued. False if the acquisition was
            stopped or the transport failed; in the latter case the trigger is
            left disarmed.
        """
        with self.transport.mutex:
            analog = [i for i in range(self.analog_channel_count) if self.is_channel_enabled(i)]
            pods = [
                p
                for p in range(self.digital_pod_count)
                if self.is_channel_enabled(self.analog_channel_count + p * self.lanes_per_pod)
            ]
            now = self.clock()
            seq = SequenceSet()
            try:
                for i in analog:
                    if self._stop_event.is_set():
                        logger.info("Acquisition stopped before {}", self.channels[i].hwname)
                        return False
                    w = self._acquire_analog(i, now, progress)
                    if w is not None:
                        seq[i] = w
                for p in pods:
                    if self._stop_event.is_set():
                        logger.info("Acquisition stopped before {}", self.pod_name(p))
                        return False
                    seq.update(self._acquire_pod(p, now, progress))
            except TransportError as e:
                logger.error("Acquisition failed, dropping partial capture: {}", e)
                self.transport.flush_rx_buffer()
                self._armed = False
                self._triggered_latch = False
                return False

            self.pending.push(seq)
            self._triggered_latch = False
            logger.debug("Queued {}", seq)

            if not self._one_shot and self._armed:
                try:
                    self._send_arm()
                except TransportError as e:
                    logger.error("Failed to re-arm: {}", e)
                    self._armed = False
            return True

    def _acquire_analog(self, index: int, now: float, progress) -> Optional[UniformAnalogWaveform]:
        name = self.channels[index].hwname
        try:
            pre = self._read_preamble(name)
            if pre.samples_per_interval != 1:
                raise ProtocolError(
                    f"{pre.samples_per_interval} samples per interval not supported"
                )
            if pre.timescale <= 0:
                raise ProtocolError(f"Bad x increment {pre.x_increment}")
        except ProtocolError as e:
            logger.warning("Skipping {}: {}", name, e)
            return None
        raw = self._read_block(name, pre, self._progress_for(progress, name))

        w = self._take_waveform(index, UniformAnalogWaveform)
        try:
            decode_samples(raw, pre, w)
        except ProtocolError as e:
            logger.warning("Skipping {}: {}", name, e)
            return None
        w.timescale = pre.timescale
        w.trigger_phase = pre.trigger_phase
        w.start_timestamp, w.start_femtoseconds = split_timestamp(now)
        w.mark_timestamps_modified_from_cpu()
        return w

    def _acquire_pod(self, pod: int, now: float, progress) -> dict[int, SparseDigitalWaveform]:
        name = self.pod_name(pod)
        try:
            pre = self._read_preamble(name)
            if pre.timescale <= 0:
                raise ProtocolError(f"Bad x increment {pre.x_increment}")
        except ProtocolError as e:
            logger.warning("Skipping {}: {}", name, e)
            return {}
        raw = np.frombuffer(
            self._read_block(name, pre, self._progress_for(progress, name)), dtype=np.uint8
        )
        start_timestamp, start_fs = split_timestamp(now)
        out = {}
        first = self.analog_channel_count + pod * self.lanes_per_pod
        for bit in range(self.lanes_per_pod):
            index = first + bit
            starts, durations, values = run_length_encode((raw >> bit) & 1)
            w = self._take_waveform(index, SparseDigitalWaveform)
            w.set_arrays(starts, durations, values.astype(bool))
            w.timescale = pre.timescale
            w.trigger_phase = pre.trigger_phase
            w.start_timestamp = start_timestamp
            w.start_femtoseconds = start_fs
            out[index] = w
        return out

    # ------------------------------------------------------- acquisition loop

    async def state_machine(self):
        """Poll and acquire until the session is closed.

        Transport work runs in a worker thread so the event loop stays free.
        Cancelling the task stops the instrument.
        """
        try:
            while not self._close_event.is_set():
                await self._router(self.state)
        except asyncio.CancelledError:
            logger.info("Acquisition loop cancelled, stopping {}", self.model or "scope")
            await asyncio.to_thread(self.stop)
            raise
        return "ok"

    async def _router(self, state: str):
        match state:
            case SCOPE_STATE.STOPPED:
                await asyncio.sleep(self.config.poll_interval)
            case SCOPE_STATE.ARMED:
                mode = await asyncio.to_thread(self.poll_trigger)
                if mode != TriggerMode.TRIGGERED:
                    await asyncio.sleep(self.config.poll_interval)
            case SCOPE_STATE.TRIGGERED:
                await asyncio.to_thread(self.acquire_data)
            case _:
                raise ValueError(f"Unknown scope state {state}")

    acquisition_loop = state_machine
