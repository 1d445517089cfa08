"""SCPI transport multiplexer.

The transport is a byte pipe with a command queue in front of it. Instrument
sessions use it in three ways:

- **Queued** writes (``send_command_queued``) are buffered and sent, in
  insertion order, the next time the queue is flushed. Families registered with
  ``deduplicate_command`` collapse: a newer write of the same header (same
  channel, same setting) replaces an older one still waiting in the queue.
- **Queued queries** (``send_command_queued_with_reply``) flush the queue first,
  so their reply always reflects every earlier write.
- **Immediate** commands bypass the queue. They are used for flow-critical
  tokens (``SINGle``, ``STOP``) that must not wait behind bulk traffic.

Two locks are involved. ``_net_mutex`` makes each write/read pair atomic on the
wire. ``mutex`` is for callers: hold it across a multi-step interaction (select
source, read preamble, read data) so that another thread cannot interleave its
own ``DATA?``. Both are re-entrant.

Backends implement ``_write``, ``_read`` and optionally ``_read_line``,
``flush_rx_buffer``, ``close`` and ``is_connected``.
"""

from __future__ import annotations

import threading
from typing import Callable, Optional

from loguru import logger

from wavescope.types.errors import TransportError
from wavescope.util.defaults import DEFAULT_CHUNK_SIZE, DEFAULT_TIMEOUT

ProgressCallback = Callable[[float], None]

_TRANSPORTS: dict[str, type[SCPITransport]] = {}


def register_transport(name: str):
    """Class decorator adding a transport backend to the registry."""

    def wrapper(cls):
        cls.transport_name = name
        _TRANSPORTS[name] = cls
        return cls

    return wrapper


def create_transport(name: str, args: str = "", **kwargs) -> SCPITransport:
    if name not in _TRANSPORTS:
        raise KeyError(
            f"Unknown transport '{name}', available: {', '.join(enum_transports())}"
        )
    logger.debug("Creating {} transport to '{}'", name, args)
    return _TRANSPORTS[name](args, **kwargs)


def enum_transports() -> list[str]:
    return sorted(_TRANSPORTS)


class SCPITransport:
    transport_name = "base"

    def __init__(
        self,
        args: str = "",
        timeout: float = DEFAULT_TIMEOUT,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.args = args
        self.timeout = timeout
        self.chunk_size = chunk_size

        # instruments without RX buffering need a *OPC? after every write
        self.opc_required = False
        # consume the newline some instruments send after a binary block
        self.consume_block_terminator = True

        self.mutex = threading.RLock()
        self._net_mutex = threading.RLock()
        self._queue_mutex = threading.Lock()
        self._tx_queue: list[str] = []
        self._dedup_families: set[str] = set()
        self._rx_pushback = b""

        self.bytes_sent = 0
        self.bytes_received = 0

    def __repr__(self):
        return f"{self.__class__.__name__}({self.args!r})"

    # ------------------------------------------------------------------ backend

    def _write(self, data: bytes):
        raise NotImplementedError()

    def _read(self, n: int) -> bytes:
        """Read up to ``n`` bytes. Must raise TransportError on timeout."""
        raise NotImplementedError()

    def _read_line(self) -> bytes:
        line = bytearray()
        while True:
            c = self._read_exact_raw(1)
            if c == b"\n":
                return bytes(line)
            line += c

    def is_connected(self) -> bool:
        raise NotImplementedError()

    def close(self):
        raise NotImplementedError()

    def flush_rx_buffer(self):
        """Discard anything sitting in the receive path."""
        self._rx_pushback = b""

    # ------------------------------------------------------------------ helpers

    def _read_exact_raw(self, n: int) -> bytes:
        out = b""
        if self._rx_pushback:
            out, self._rx_pushback = self._rx_pushback[:n], self._rx_pushback[n:]
        while len(out) < n:
            data = self._read(n - len(out))
            if not data:
                raise TransportError(
                    f"Short read on {self!r}: got {len(out)} of {n} bytes"
                )
            out += data
        self.bytes_received += len(out)
        return out

    def get_mutex(self) -> threading.RLock:
        return self.mutex

    # ---------------------------------------------------------------- unqueued

    def send_command(self, cmd: str):
        """Write one command line. Callers normally use the queued/immediate forms."""
        with self._net_mutex:
            logger.trace("Send: {}", cmd)
            data = (cmd + "\n").encode()
            self._write(data)
            self.bytes_sent += len(data)

    def read_reply(self, trim: bool = True) -> str:
        with self._net_mutex:
            reply = self._read_line().decode(errors="replace")
            logger.trace("Recv: {}", reply)
            return reply.strip() if trim else reply

    def read_raw_data(
        self,
        length: int,
        progress: Optional[ProgressCallback] = None,
    ) -> bytes:
        """Read exactly ``length`` bytes in chunks, reporting progress as a fraction.

        Raises TransportError on a short read or timeout.
        """
        with self._net_mutex:
            buf = bytearray()
            while len(buf) < length:
                chunk = self._read_exact_raw(min(self.chunk_size, length - len(buf)))
                buf += chunk
                if progress is not None:
                    progress(len(buf) / length)
            if progress is not None and length == 0:
                progress(1.0)
            return bytes(buf)

    # ------------------------------------------------------------------ queued

    def deduplicate_command(self, family: str):
        """Let newer queued writes of ``family`` replace older ones.

        ``family`` is a header token such as ``"OFFSET"`` or ``"SCAL"``; it matches
        the last colon-separated element of a command header in either short or
        long SCPI form.
        """
        self._dedup_families.add(family.upper())

    def _dedup_key(self, cmd: str) -> Optional[str]:
        header = cmd.split(" ", 1)[0].upper()
        if "?" in header or not self._dedup_families:
            return None
        last = header.rsplit(":", 1)[-1]
        for fam in self._dedup_families:
            if last.startswith(fam) or fam.startswith(last):
                return header
        return None

    def send_command_queued(self, cmd: str):
        with self._queue_mutex:
            key = self._dedup_key(cmd)
            if key is not None:
                before = len(self._tx_queue)
                self._tx_queue = [c for c in self._tx_queue if self._dedup_key(c) != key]
                if len(self._tx_queue) != before:
                    logger.trace("Deduplicated queued '{}'", key)
            self._tx_queue.append(cmd)

    def queue_depth(self) -> int:
        with self._queue_mutex:
            return len(self._tx_queue)

    def flush_command_queue(self) -> bool:
        """Send every queued command, in order, and return once they are out."""
        with self._queue_mutex:
            pending, self._tx_queue = self._tx_queue, []
        with self._net_mutex:
            for cmd in pending:
                self.send_command(cmd)
                if self.opc_required:
                    self.opc_ping()
        return True

    def send_command_queued_with_reply(self, cmd: str, trim: bool = True) -> str:
        self.flush_command_queue()
        return self.send_command_immediate_with_reply(cmd, trim)

    # --------------------------------------------------------------- immediate

    def send_command_immediate(self, cmd: str):
        with self._net_mutex:
            self.send_command(cmd)
            if self.opc_required:
                self.opc_ping()

    def send_command_immediate_with_reply(self, cmd: str, trim: bool = True) -> str:
        with self._net_mutex:
            self.send_command(cmd)
            return self.read_reply(trim)

    def send_command_immediate_with_raw_block_reply(
        self,
        cmd: str,
        progress: Optional[ProgressCallback] = None,
    ) -> bytes:
        """Send ``cmd`` and return the payload of its IEEE-488.2 block reply.

        The reply is ``#<n><n length digits><payload>``. One spurious newline
        before the ``#`` is tolerated, and the newline following the payload is
        consumed when ``consume_block_terminator`` is set.
        """
        with self._net_mutex:
            self.send_command(cmd)
            return self.read_raw_block(progress)

    def read_raw_block(self, progress: Optional[ProgressCallback] = None) -> bytes:
        with self._net_mutex:
            c = self._read_exact_raw(1)
            if c == b"\n":
                c = self._read_exact_raw(1)
            if c != b"#":
                raise TransportError(f"Malformed block header: expected '#', got {c!r}")
            ndigits_raw = self._read_exact_raw(1)
            if not ndigits_raw.isdigit() or ndigits_raw == b"0":
                raise TransportError(
                    f"Malformed block header: bad digit count {ndigits_raw!r}"
                )
            digits = self._read_exact_raw(int(ndigits_raw))
            if not digits.isdigit():
                raise TransportError(f"Malformed block header: bad length {digits!r}")
            length = int(digits)
            logger.trace("Block reply of {} bytes", length)
            payload = self.read_raw_data(length, progress)
            if self.consume_block_terminator:
                tail = self._read_exact_raw(1)
                if tail != b"\n":
                    self._rx_pushback = tail + self._rx_pushback
            return payload

    def opc_ping(self) -> bool:
        """Block until the instrument has finished pending operations."""
        with self._net_mutex:
            self.send_command("*OPC?")
            try:
                reply = self._read_exact_raw(2)
            except TransportError:
                logger.warning("Response to *OPC? timed out")
                return False
            if reply != b"1\n":
                logger.warning("Got garbage instead of '1\\n' in response to *OPC?: {!r}", reply)
                return False
            return True
