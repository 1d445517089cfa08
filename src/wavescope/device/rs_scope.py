"""Rohde & Schwarz RTx-series driver.

Differences from the generic dialect:

- headers carry no leading colon and use ``CHANnel<n>``/``PBUS<n>`` names
- the preamble is ``<src>:DATA:HEADer?`` -> ``xstart,xstop,length,samples_per_interval``
- analog data is transferred as float32 (``FORMat:DATA REAL,32``), digital
  buses as one byte per sample (``FORMat:DATA UINT,8``), in chunks of
  ``<src>:DATA? <offset>,<length>``
- trigger status is the number of acquisitions since arming,
  ``ACQuire:CURRent?``; 0 means still waiting
- a positive channel offset moves the trace down
- option ``B1`` (mixed signal) adds two 8-bit digital buses
"""

from __future__ import annotations

from wavescope.device.oscilloscope import (
    Preamble,
    TriggerMode,
    WaveFormat,
    format_float,
    format_fs,
    parse_bool,
    parse_float,
    parse_fs,
    parse_int,
    parse_token,
)
from wavescope.device.scpi_scope import ScpiOscilloscope, _format_bool
from wavescope.types.errors import ProtocolError


class RSOscilloscope(ScpiOscilloscope):
    """Rohde & Schwarz RTO/RTP oscilloscope."""

    driver_name = "rs"

    DIGITAL_OPTION = "B1"
    TRANSFER_FORMAT = WaveFormat.FLOAT
    OFFSET_SIGN = -1.0

    TRIGGER_ROOT = "TRIGger1"

    CHANNEL_COMMANDS = {
        "enabled": ("STATe", parse_bool, _format_bool),
        "voltage_range": ("RANGe", parse_float, format_float),
        "offset": ("OFFSet", parse_float, format_float),
        "coupling": ("COUPling", parse_token, str),
        "attenuation": ("PROBe1:SETup:ATTenuation:MANual", parse_float, format_float),
        "bandwidth_limit": ("BANDwidth", parse_int, str),
        "probe_type": ("PROBe1:SETup:NAME", lambda r: r.strip().strip('"'), None),
        "deskew": ("SKEW:TIME", parse_fs, format_fs),
    }
    POD_COMMANDS = {
        "enabled": ("STATe", parse_bool, _format_bool),
        "digital_threshold": ("THReshold1", parse_float, format_float),
    }
    SCALAR_COMMANDS = {
        "sample_rate": ("ACQuire:SRATe", parse_float, format_float),
        "memory_depth": ("ACQuire:POINts", parse_int, str),
        "timebase_range": ("TIMebase:RANGe", parse_float, format_float),
    }
    TRIGGER_POSITION = "TIMebase:HORizontal:POSition"

    ARM_COMMAND = "SINGle"
    STOP_COMMAND = "STOP"
    FORCE_COMMAND = "TRIGger1:FORCe"

    def _header(self, hwname: str, suffix: str) -> str:
        return f"{hwname}:{suffix}"

    def _detect_channels(self) -> tuple[list[str], list[str]]:
        count = self.analog_channels
        analog = [f"CHANnel{i + 1}" for i in range(count)]
        pods = []
        if any(opt.upper() == self.DIGITAL_OPTION for opt in self.options):
            pods = [self._pod_hwname(p) for p in range(self.DIGITAL_PODS)]
        return analog, pods

    def _pod_hwname(self, pod: int) -> str:
        return f"PBUS{pod + 1}"

    def _query_trigger_status(self) -> TriggerMode:
        count = parse_int(self.query("ACQuire:CURRent?"))
        if count < 0:
            raise ProtocolError("Negative acquisition count", str(count))
        return TriggerMode.RUN if count == 0 else TriggerMode.TRIGGERED

    def _read_preamble(self, source: str) -> Preamble:
        digital = source in self._pod_names
        self.write("FORMat:DATA UINT,8" if digital else "FORMat:DATA REAL,32")
        reply = self.query(f"{source}:DATA:HEADer?")
        fields = reply.strip().split(",")
        if len(fields) != 4:
            raise ProtocolError(f"Expected 4 header fields, got {len(fields)}", reply)
        try:
            xstart, xstop = float(fields[0]), float(fields[1])
            length, spi = int(float(fields[2])), int(float(fields[3]))
        except ValueError as e:
            raise ProtocolError("Unparseable waveform header", reply) from e
        if length <= 0:
            raise ProtocolError("Empty waveform header", reply)
        return Preamble(
            format=WaveFormat.BYTE if digital else WaveFormat.FLOAT,
            points=length,
            samples_per_interval=spi,
            x_increment=(xstop - xstart) / length,
            x_origin=xstart,
        )

    def _read_block(self, source: str, pre: Preamble, progress=None) -> bytes:
        itemsize = 1 if pre.format == WaveFormat.BYTE else 4
        per_chunk = max(1, self.transport.chunk_size // itemsize)
        self.transport.flush_command_queue()
        out = bytearray()
        for start in range(0, pre.points, per_chunk):
            n = int(min(per_chunk, pre.points - start))
            done = len(out)
            total = pre.points * itemsize

            def chunk_progress(frac, done=done, size=n * itemsize):
                if progress is not None:
                    progress((done + frac * size) / total)

            out += self.transport.send_command_immediate_with_raw_block_reply(
                f"{source}:DATA? {start},{n}", chunk_progress
            )
        return bytes(out)
