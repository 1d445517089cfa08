from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Optional

import numpy as np
from loguru import logger

from wavescope.device.oscilloscope import WaveFormat
from wavescope.transport.transport import SCPITransport, register_transport
from wavescope.types.errors import TransportError

_DTYPES = {
    WaveFormat.BYTE: np.dtype(np.uint8),
    WaveFormat.WORD: np.dtype("<u2"),
    WaveFormat.FLOAT: np.dtype("<f4"),
}


@dataclass
class MockWaveform:
    """Raw codes and preamble of one simulated source."""

    codes: np.ndarray
    format: WaveFormat = WaveFormat.BYTE
    x_increment: float = 1e-9
    x_origin: float = 0.0
    y_increment: float = 0.001
    y_origin: float = 0.0
    y_reference: float = 128.0
    samples_per_interval: int = 1

    def preamble(self) -> str:
        fields = [
            int(self.format),
            0,
            len(self.codes),
            self.samples_per_interval,
            self.x_increment,
            self.x_origin,
            0,
            self.y_increment,
            self.y_origin,
            self.y_reference,
        ]
        return ",".join(str(f) for f in fields)

    def payload(self) -> bytes:
        return np.asarray(self.codes).astype(_DTYPES[self.format]).tobytes()


def _normalize(header: str) -> str:
    return header.strip().upper()


class MockScpiInstrument:
    """A simulated oscilloscope answering the generic SCPI dialect.

    Settings are stored as written and echoed back on query. A single capture
    completes ``trigger_after`` status polls after arming, or immediately on
    ``:TFORce`` or ``fire_trigger()``.

    Attributes
    ----------
    query_counts : Counter
        Number of times each (normalised) query header was received.
    commands : list[str]
        Every line received, in order.
    truncate_next_block : int, optional
        If set, the next ``:WAVeform:DATA?`` reply is cut after this many
        payload bytes (the block header still announces the full length).
    bad_preamble : set[str]
        Sources whose preamble reply is garbage.
    """

    def __init__(
        self,
        channels: int = 4,
        digital: bool = False,
        trigger_after: int = 3,
        points: int = 1000,
        idn: str = "Wavescope,MOCK-4,0001,1.0",
    ):
        self.channels = channels
        self.digital = digital
        self.trigger_after = trigger_after
        self.idn = idn

        self.settings: dict[str, str] = {}
        self.waveforms: dict[str, MockWaveform] = {}
        self.query_counts: Counter = Counter()
        self.block_reads: Counter = Counter()
        self.commands: list[str] = []
        self.truncate_next_block: Optional[int] = None
        self.bad_preamble: set[str] = set()

        self.armed = False
        self.captured = False
        self.polls = 0
        self.source = "CHAN1"
        self.reset(points)

    def reset(self, points: int = 1000):
        self.settings.clear()
        k = np.arange(points)
        for i in range(1, self.channels + 1):
            self.set(f":CHAN{i}:STATe", "1" if i == 1 else "0")
            self.set(f":CHAN{i}:RANGe", "8.0")
            self.set(f":CHAN{i}:OFFSet", "0.0")
            self.set(f":CHAN{i}:COUPling", "DC")
            self.set(f":CHAN{i}:PROBe", "1.0")
            self.set(f":CHAN{i}:PROBe:ID", '"NONE"')
            self.set(f":CHAN{i}:BWLimit", "0")
            self.set(f":CHAN{i}:SKEW", "0.0")
            codes = 128 + 100 * np.sin(2 * np.pi * k / 100 + i)
            self.waveforms[f"CHAN{i}"] = MockWaveform(np.round(codes))
        for p in (1, 2):
            self.set(f":POD{p}:STATe", "0")
            self.set(f":POD{p}:THReshold", "1.4")
            self.waveforms[f"POD{p}"] = MockWaveform(k % 256, y_increment=1.0, y_reference=0.0)
        self.set(":ACQuire:SRATe", "1000000000.0")
        self.set(":ACQuire:POINts", str(points))
        self.set(":TIMebase:RANGe", "1e-06")
        self.set(":TIMebase:POSition", "0.0")
        self.set(":TRIGger:TYPE", "EDGE")
        self.set(":TRIGger:SOURce", "CHAN1")
        self.set(":TRIGger:LEVel", "0.0")
        self.set(":TRIGger:HYSTeresis", "0.0")
        self.set(":TRIGger:EDGE:SLOPe", "POS")

    def set(self, header: str, value: str):
        self.settings[_normalize(header)] = value

    def get(self, header: str) -> Optional[str]:
        return self.settings.get(_normalize(header))

    def set_waveform(self, source: str, codes, **kwargs):
        self.waveforms[source.upper()] = MockWaveform(np.asarray(codes), **kwargs)

    def fire_trigger(self):
        if self.armed:
            self.captured = True

    # ------------------------------------------------------------------ wire

    def handle(self, line: str) -> Optional[bytes]:
        """Process one command line; return the reply bytes, if any."""
        line = line.strip()
        if not line:
            return None
        self.commands.append(line)
        header, _, arg = line.partition(" ")
        key = _normalize(header)
        if key.endswith("?"):
            self.query_counts[key] += 1

        match key:
            case "*IDN?":
                return self._reply(self.idn)
            case "*OPT?":
                return self._reply("MSO" if self.digital else "0")
            case "*OPC?":
                return self._reply("1")
            case "*RST":
                self.reset()
            case ":SINGLE" | ":SING":
                self.armed = True
                self.captured = False
                self.polls = 0
            case ":STOP":
                self.armed = False
            case ":TFORCE" | ":TFOR":
                self.fire_trigger()
            case ":TRIGGER:STATUS?" | ":TRIG:STAT?":
                return self._reply(self._status())
            case ":WAVEFORM:SOURCE" | ":WAV:SOUR":
                self.source = arg.strip().upper()
            case ":WAVEFORM:PREAMBLE?" | ":WAV:PRE?":
                if self.source in self.bad_preamble:
                    return self._reply("garbage")
                return self._reply(self.waveforms[self.source].preamble())
            case ":WAVEFORM:DATA?" | ":WAV:DATA?":
                return self._block(self.waveforms[self.source].payload())
            case _ if key.endswith("?"):
                value = self.settings.get(key[:-1])
                if value is None:
                    logger.trace("Mock: no value for {}", key)
                    value = "0"
                return self._reply(value)
            case _:
                self.settings[key] = arg.strip()
        return None

    def _status(self) -> str:
        if self.captured:
            return "TD"
        if not self.armed:
            return "STOP"
        self.polls += 1
        if self.polls >= self.trigger_after:
            self.captured = True
            return "TD"
        return "WAIT"

    def _reply(self, text: str) -> bytes:
        return (text + "\n").encode()

    def _block(self, payload: bytes) -> bytes:
        self.block_reads[self.source] += 1
        length = str(len(payload))
        header = f"#{len(length)}{length}".encode()
        if self.truncate_next_block is not None:
            payload, self.truncate_next_block = payload[: self.truncate_next_block], None
            return header + payload
        return header + payload + b"\n"


@register_transport("mock")
class MockTransport(SCPITransport):
    """In-memory loopback to a ``MockScpiInstrument``.

    ``args`` containing ``mso`` gives the instrument digital pods. Reading with
    nothing pending raises TransportError, as a real timeout would.
    """

    def __init__(self, args: str = "", instrument: Optional[MockScpiInstrument] = None, **kwargs):
        super().__init__(args, **kwargs)
        if instrument is None:
            instrument = MockScpiInstrument(digital="mso" in args.lower())
        self.instrument = instrument
        self._tx = bytearray()
        self._rx = bytearray()
        self._open = True

    def _write(self, data: bytes):
        if not self._open:
            raise TransportError(f"{self!r} is closed")
        self._tx += data
        while b"\n" in self._tx:
            line, _, rest = bytes(self._tx).partition(b"\n")
            self._tx = bytearray(rest)
            reply = self.instrument.handle(line.decode())
            if reply is not None:
                self._rx += reply

    def _read(self, n: int) -> bytes:
        if not self._open:
            raise TransportError(f"{self!r} is closed")
        if not self._rx:
            raise TransportError(f"Timed out reading from {self!r}")
        out = bytes(self._rx[:n])
        del self._rx[:n]
        return out

    def flush_rx_buffer(self):
        super().flush_rx_buffer()
        self._rx.clear()

    def is_connected(self) -> bool:
        return self._open

    def close(self):
        self._open = False
