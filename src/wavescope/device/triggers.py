"""Translation between trigger records and SCPI.

Each trigger kind maps to a ``TriggerTranslation``: the instrument's type token
and the list of fields it carries. A field names the trigger attribute, its
header under ``<TRIGGER_ROOT>:<TOKEN>:`` and a codec. The same table drives
both directions:

- ``push_trigger`` writes ``<ROOT>:TYPE <token>``, then the common source,
  level and hysteresis, then every kind-specific field
- ``pull_trigger`` reads ``<ROOT>:TYPE?``, picks the translation by token and
  queries the same fields back into a fresh record

Fields a driver lists in ``UNSUPPORTED_TRIGGER_FIELDS`` are skipped on push
and keep their default value on pull.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

from loguru import logger

from wavescope.device.oscilloscope import (
    format_float,
    format_fs,
    parse_bool,
    parse_float,
    parse_fs,
    parse_int,
    parse_token,
)
from wavescope.types.errors import ConfigurationError, ProtocolError
from wavescope.types.trigger import (
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

if TYPE_CHECKING:
    from wavescope.device.scpi_scope import ScpiOscilloscope


@dataclass(frozen=True)
class Codec:
    to_scpi: Callable[[Any], str]
    from_scpi: Callable[[str], Any]


def enum_codec(tokens: dict[Enum, str]) -> Codec:
    """Codec for an enum whose members map to SCPI short-form tokens.

    Replies are matched by prefix, longest token first, so both the short and
    the long form of a mnemonic parse.
    """
    by_length = sorted(tokens.items(), key=lambda kv: len(kv[1]), reverse=True)

    def parse(reply: str):
        token = parse_token(reply)
        for member, short in by_length:
            if token.startswith(short):
                return member
        raise ProtocolError("Unknown enumeration value", reply)

    return Codec(lambda member: tokens[member], parse)


def _quote(s: str) -> str:
    return f'"{s}"'


def _unquote(reply: str) -> str:
    return reply.strip().strip('"')


FLOAT = Codec(format_float, parse_float)
INT = Codec(str, parse_int)
TIME = Codec(format_fs, parse_fs)
BOOL = Codec(lambda v: "ON" if v else "OFF", parse_bool)
PATTERN = Codec(_quote, _unquote)

EDGE = enum_codec(
    {
        EdgeType.RISING: "POS",
        EdgeType.FALLING: "NEG",
        EdgeType.ANY: "EITH",
        EdgeType.ALTERNATING: "ALT",
    }
)
CONDITION = enum_codec(
    {
        Condition.LESS: "LESS",
        Condition.GREATER: "GRE",
        Condition.BETWEEN: "BETW",
        Condition.NOT_BETWEEN: "NOTB",
        Condition.EQUAL: "EQU",
        Condition.NOT_EQUAL: "NEQ",
        Condition.ANY: "ANY",
    }
)
CROSSING = enum_codec(
    {
        WindowCrossing.ENTER: "ENT",
        WindowCrossing.EXIT: "EXIT",
        WindowCrossing.INSIDE: "INS",
        WindowCrossing.OUTSIDE: "OUTS",
    }
)
PARITY = enum_codec(
    {
        UartParity.NONE: "NONE",
        UartParity.ODD: "ODD",
        UartParity.EVEN: "EVEN",
        UartParity.MARK: "MARK",
        UartParity.SPACE: "SPAC",
    }
)
STOP_BITS = enum_codec(
    {UartStopBits.ONE: "1", UartStopBits.ONE_AND_HALF: "1.5", UartStopBits.TWO: "2"}
)
IDLE = enum_codec({UartIdlePolarity.HIGH: "HIGH", UartIdlePolarity.LOW: "LOW"})
MATCH = enum_codec(
    {
        UartMatchType.START: "STAR",
        UartMatchType.DATA: "DATA",
        UartMatchType.PARITY_ERROR: "PERR",
        UartMatchType.FRAMING_ERROR: "FERR",
    }
)


@dataclass(frozen=True)
class Field:
    attr: str
    header: str
    codec: Codec


@dataclass(frozen=True)
class TriggerTranslation:
    token: str
    cls: type[Trigger]
    fields: tuple[Field, ...]


_BOUNDS = (
    Field("condition", "CONDition", CONDITION),
    Field("lower_bound", "LOWer", TIME),
    Field("upper_bound", "UPPer", TIME),
)

TRIGGER_TABLE: dict[str, TriggerTranslation] = {
    t.cls.trigger_type: t
    for t in (
        TriggerTranslation("EDGE", EdgeTrigger, (Field("edge", "SLOPe", EDGE),)),
        TriggerTranslation(
            "PULSe", PulseWidthTrigger, (Field("edge", "SLOPe", EDGE),) + _BOUNDS
        ),
        TriggerTranslation("GLITch", GlitchTrigger, (Field("edge", "SLOPe", EDGE),) + _BOUNDS),
        TriggerTranslation(
            "WINDow",
            WindowTrigger,
            (Field("upper_level", "ULEVel", FLOAT), Field("crossing", "CROSsing", CROSSING)),
        ),
        TriggerTranslation(
            "RUNT",
            RuntTrigger,
            (Field("upper_level", "ULEVel", FLOAT), Field("edge", "SLOPe", EDGE)) + _BOUNDS,
        ),
        TriggerTranslation(
            "TIMeout",
            DropoutTrigger,
            (Field("edge", "SLOPe", EDGE), Field("timeout", "TIME", TIME)),
        ),
        TriggerTranslation(
            "TRANsition",
            SlewRateTrigger,
            (Field("upper_level", "ULEVel", FLOAT), Field("edge", "SLOPe", EDGE)) + _BOUNDS,
        ),
        TriggerTranslation(
            "NEDGe",
            NthEdgeBurstTrigger,
            (
                Field("edge", "SLOPe", EDGE),
                Field("idle_time", "IDLE", TIME),
                Field("edge_count", "COUNt", INT),
            ),
        ),
        TriggerTranslation(
            "UART",
            UartTrigger,
            (
                Field("baud_rate", "BAUDrate", INT),
                Field("data_bits", "BITS", INT),
                Field("parity", "PARity", PARITY),
                Field("stop_bits", "STOP", STOP_BITS),
                Field("idle_polarity", "POLarity", IDLE),
                Field("match_type", "CONDition", MATCH),
                Field("pattern1", "PATTern1", PATTERN),
                Field("pattern2", "PATTern2", PATTERN),
                Field("ninth_bit", "NINTh", BOOL),
            ),
        ),
    )
}


def _token_key(token: str) -> str:
    # short form of a mnemonic: its upper-case letters
    return "".join(c for c in token if not c.islower()).upper()


def translation_for_token(reply: str) -> TriggerTranslation:
    token = parse_token(reply)
    for t in TRIGGER_TABLE.values():
        if token in (t.token.upper(), _token_key(t.token)):
            return t
    raise ProtocolError("Unknown trigger type", reply)


def push_trigger(session: ScpiOscilloscope, trigger: Trigger):
    """Write ``trigger`` to the instrument."""
    if trigger.trigger_type not in TRIGGER_TABLE:
        raise ConfigurationError(f"Trigger type {trigger.trigger_type} not supported")
    t = TRIGGER_TABLE[trigger.trigger_type]
    root = session.TRIGGER_ROOT
    if not 0 <= trigger.source < len(session.channels):
        raise ConfigurationError(f"Trigger source {trigger.source} out of range")
    session.write(f"{root}:TYPE {t.token}")
    session.write(f"{root}:SOURce {session.channels[trigger.source].hwname}")
    session.write(f"{root}:LEVel {format_float(trigger.level)}")
    session.write(f"{root}:HYSTeresis {format_float(trigger.hysteresis)}")
    for field in t.fields:
        if field.attr in session.UNSUPPORTED_TRIGGER_FIELDS:
            logger.trace("Ignoring unsupported trigger field {}", field.attr)
            continue
        value = getattr(trigger, field.attr)
        session.write(f"{root}:{t.token}:{field.header} {field.codec.to_scpi(value)}")
    session.transport.flush_command_queue()
    logger.debug("Pushed {}", trigger)


def pull_trigger(session: ScpiOscilloscope) -> Trigger:
    """Read the instrument's trigger back into a record."""
    root = session.TRIGGER_ROOT
    t = translation_for_token(session.query(f"{root}:TYPE?"))
    values: dict[str, Any] = {}

    source = _unquote(session.query(f"{root}:SOURce?"))
    try:
        values["source"] = session.get_channel_by_hwname(source).index
    except KeyError:
        logger.warning("Unknown trigger source {!r}, using channel 0", source)
    values["level"] = parse_float(session.query(f"{root}:LEVel?"))
    values["hysteresis"] = parse_float(session.query(f"{root}:HYSTeresis?"))

    for field in t.fields:
        if field.attr in session.UNSUPPORTED_TRIGGER_FIELDS:
            continue
        reply = session.query(f"{root}:{t.token}:{field.header}?")
        try:
            values[field.attr] = field.codec.from_scpi(reply)
        except ProtocolError as e:
            logger.warning("Trigger field {}: {}", field.attr, e)
    trig = t.cls(**values)
    logger.debug("Pulled {}", trig)
    return trig
