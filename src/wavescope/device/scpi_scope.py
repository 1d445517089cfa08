"""Generic SCPI oscilloscope driver.

Speaks the common subset of SCPI that most bench scopes (and the mock
instrument) understand:

| Concern | Commands |
|---|---|
| channel | ``:CHANn:STATe``, ``:COUPling``, ``:RANGe``, ``:OFFSet``, ``:PROBe``, ``:PROBe:ID?``, ``:BWLimit``, ``:SKEW`` |
| digital pods | ``:PODn:STATe``, ``:PODn:THReshold`` |
| acquisition | ``:ACQuire:SRATe``, ``:ACQuire:POINts`` |
| timebase | ``:TIMebase:RANGe``, ``:TIMebase:POSition`` (trigger relative to mid-screen) |
| run control | ``:SINGle``, ``:STOP``, ``:TFORce``, ``:TRIGger:STATus?`` |
| waveform | ``:WAVeform:SOURce``, ``:WAVeform:FORMat``, ``:WAVeform:PREamble?``, ``:WAVeform:DATA?`` |

The preamble is ten comma-separated numbers: format, acquisition type, points,
samples per interval, x increment, x origin, x reference, y increment,
y origin, y reference.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from loguru import logger

from wavescope.device.oscilloscope import (
    CHANNEL_DEFAULTS,
    Oscilloscope,
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
from wavescope.types.errors import ConfigurationError, ProtocolError
from wavescope.util.defaults import FS_PER_SECOND


def _format_bool(value: bool) -> str:
    return "ON" if value else "OFF"


def _parse_text(reply: str) -> str:
    return reply.strip().strip('"')


# (header suffix, reply parser, value formatter); a None formatter means read-only
Command = tuple[str, Callable[[str], Any], Optional[Callable[[Any], str]]]


class ScpiOscilloscope(Oscilloscope):
    """Oscilloscope speaking the generic SCPI dialect.

    Parameters
    ----------
    transport : SCPITransport
        Open transport to the instrument.
    analog_channels : int, optional
        Number of analog inputs, if the model has other than four.
    """

    driver_name = "scpi"

    ANALOG_CHANNELS = 4
    DIGITAL_OPTION = "MSO"
    DIGITAL_PODS = 2
    TRANSFER_FORMAT = WaveFormat.BYTE
    # +1 if a positive offset raises the trace on screen, -1 if it lowers it
    OFFSET_SIGN = 1.0

    TRIGGER_ROOT = ":TRIGger"
    UNSUPPORTED_TRIGGER_FIELDS: frozenset[str] = frozenset({"ninth_bit"})

    CHANNEL_COMMANDS: dict[str, Command] = {
        "enabled": ("STATe", parse_bool, _format_bool),
        "voltage_range": ("RANGe", parse_float, format_float),
        "offset": ("OFFSet", parse_float, format_float),
        "coupling": ("COUPling", parse_token, str),
        "attenuation": ("PROBe", parse_float, format_float),
        "bandwidth_limit": ("BWLimit", parse_int, str),
        "probe_type": ("PROBe:ID", _parse_text, None),
        "deskew": ("SKEW", parse_fs, format_fs),
    }
    POD_COMMANDS: dict[str, Command] = {
        "enabled": ("STATe", parse_bool, _format_bool),
        "digital_threshold": ("THReshold", parse_float, format_float),
    }
    SCALAR_COMMANDS: dict[str, Command] = {
        "sample_rate": (":ACQuire:SRATe", parse_float, format_float),
        "memory_depth": (":ACQuire:POINts", parse_int, str),
        "timebase_range": (":TIMebase:RANGe", parse_float, format_float),
    }
    TRIGGER_POSITION = ":TIMebase:POSition"

    ARM_COMMAND = ":SINGle"
    STOP_COMMAND = ":STOP"
    FORCE_COMMAND = ":TFORce"
    STATUS_QUERY = ":TRIGger:STATus?"
    STATUS_TOKENS = {
        "RUN": TriggerMode.RUN,
        "WAIT": TriggerMode.RUN,
        "ARM": TriggerMode.RUN,
        "AUTO": TriggerMode.RUN,
        "TD": TriggerMode.TRIGGERED,
        "TRIG": TriggerMode.TRIGGERED,
        "STOP": TriggerMode.STOP,
    }

    DEDUPLICATED_FAMILIES = ("OFFS", "RANG", "SCAL", "LEV", "POS", "SKEW", "THR")

    def __init__(self, transport, config=None, analog_channels=None, **kwargs):
        super().__init__(transport, config, **kwargs)
        self.analog_channels = analog_channels or self.ANALOG_CHANNELS
        for family in self.DEDUPLICATED_FAMILIES:
            self.transport.deduplicate_command(family)

    # ----------------------------------------------------------------- helpers

    def _header(self, hwname: str, suffix: str) -> str:
        return f":{hwname}:{suffix}"

    def query(self, cmd: str) -> str:
        return self.transport.send_command_queued_with_reply(cmd)

    def write(self, cmd: str):
        self.transport.send_command_queued(cmd)

    def _detect_channels(self) -> tuple[list[str], list[str]]:
        count = self.analog_channels
        analog = [f"CHAN{i + 1}" for i in range(count)]
        pods = []
        if any(opt.upper().startswith(self.DIGITAL_OPTION) for opt in self.options):
            pods = [self._pod_hwname(p) for p in range(self.DIGITAL_PODS)]
        return analog, pods

    def _pod_hwname(self, pod: int) -> str:
        return f"POD{pod + 1}"

    def _command_for(self, index: int, attr: str) -> tuple[str, Optional[Command]]:
        if self.is_digital(index):
            return self.pod_name(self.pod_of(index)), self.POD_COMMANDS.get(attr)
        if attr == "digital_threshold":
            return self.channels[index].hwname, None
        return self.channels[index].hwname, self.CHANNEL_COMMANDS.get(attr)

    # ---------------------------------------------------------- channel hooks

    def _query_channel_attr(self, index: int, attr: str) -> Any:
        hwname, cmd = self._command_for(index, attr)
        if cmd is None:
            return CHANNEL_DEFAULTS[attr]
        suffix, parse, _ = cmd
        value = parse(self.query(self._header(hwname, suffix) + "?"))
        if attr == "offset":
            value *= self.OFFSET_SIGN
        return value

    def _write_channel_attr(self, index: int, attr: str, value: Any):
        hwname, cmd = self._command_for(index, attr)
        if cmd is None or cmd[2] is None:
            raise ConfigurationError(f"{attr} cannot be set on {hwname}")
        suffix, _, fmt = cmd
        if attr == "offset":
            value *= self.OFFSET_SIGN
        self.write(f"{self._header(hwname, suffix)} {fmt(value)}")

    # ----------------------------------------------------------- scalar hooks

    def _query_scalar(self, name: str) -> Any:
        if name == "trigger_offset":
            pos = parse_float(self.query(self.TRIGGER_POSITION + "?"))
            window = self.get_timebase_range()
            return int(round((pos + window / 2) * FS_PER_SECOND))
        header, parse, _ = self.SCALAR_COMMANDS[name]
        return parse(self.query(header + "?"))

    def _write_scalar(self, name: str, value: Any):
        if name == "trigger_offset":
            window = self.get_timebase_range()
            pos = value / FS_PER_SECOND - window / 2
            self.write(f"{self.TRIGGER_POSITION} {format_float(pos)}")
            return
        header, _, fmt = self.SCALAR_COMMANDS[name]
        self.write(f"{header} {fmt(value)}")

    # ------------------------------------------------------------ run control

    def _send_arm(self):
        self.transport.flush_command_queue()
        self.transport.send_command_immediate(self.ARM_COMMAND)

    def _send_stop(self):
        self.transport.send_command_immediate(self.STOP_COMMAND)

    def _send_force(self):
        self.transport.send_command_immediate(self.FORCE_COMMAND)

    def _query_trigger_status(self) -> TriggerMode:
        reply = self.query(self.STATUS_QUERY)
        token = parse_token(reply)
        if token not in self.STATUS_TOKENS:
            raise ProtocolError("Unknown trigger status", reply)
        return self.STATUS_TOKENS[token]

    # --------------------------------------------------------------- waveform

    def _read_preamble(self, source: str) -> Preamble:
        fmt = WaveFormat.BYTE if source in self._pod_names else self.TRANSFER_FORMAT
        self.write(f":WAVeform:SOURce {source}")
        self.write(f":WAVeform:FORMat {fmt.name}")
        reply = self.query(":WAVeform:PREamble?")
        return parse_preamble(reply)

    def _read_block(self, source: str, pre: Preamble, progress=None) -> bytes:
        self.transport.flush_command_queue()
        data = self.transport.send_command_immediate_with_raw_block_reply(
            ":WAVeform:DATA?", progress
        )
        logger.trace("{}: {} bytes for {} points", source, len(data), pre.points)
        return data


def parse_preamble(reply: str) -> Preamble:
    """Parse the ten-field ``:WAVeform:PREamble?`` reply."""
    fields = reply.strip().split(",")
    if len(fields) != 10:
        raise ProtocolError(f"Expected 10 preamble fields, got {len(fields)}", reply)
    try:
        values = [float(f) for f in fields]
        fmt = WaveFormat(int(values[0]))
    except ValueError as e:
        raise ProtocolError("Unparseable preamble", reply) from e
    return Preamble(
        format=fmt,
        acquisition_type=int(values[1]),
        points=int(values[2]),
        samples_per_interval=int(values[3]),
        x_increment=values[4],
        x_origin=values[5],
        x_reference=values[6],
        y_increment=values[7],
        y_origin=values[8],
        y_reference=values[9],
    )
