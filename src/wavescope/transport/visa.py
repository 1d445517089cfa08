"""pyvisa backend for the SCPI transport."""

from typing import Optional

import pyvisa
from loguru import logger

from wavescope.transport.transport import SCPITransport, register_transport
from wavescope.types.errors import TransportError


@register_transport("visa")
class VisaTransport(SCPITransport):
    """SCPI transport over any VISA resource (TCPIP, USB-TMC, GPIB, HiSLIP).

    Parameters
    ----------
    args : str
        VISA resource string, e.g. ``"TCPIP0::192.168.1.20::hislip0::INSTR"``.
    resource_manager : pyvisa.ResourceManager, optional
        Shared resource manager. One is created (and owned) if not given.
    """

    def __init__(
        self,
        args: str,
        resource_manager: Optional[pyvisa.ResourceManager] = None,
        **kwargs,
    ):
        super().__init__(args, **kwargs)
        self._owns_rm = resource_manager is None
        self.rm = resource_manager if resource_manager is not None else pyvisa.ResourceManager()
        self.inst = None
        try:
            self.inst = self.rm.open_resource(args)
            self.inst.timeout = int(self.timeout * 1000)
            self.inst.read_termination = "\n"
            self.inst.write_termination = ""
        except pyvisa.errors.VisaIOError as e:
            logger.error("Failed to open VISA resource {}: {}", args, e)
            raise TransportError(f"Failed to open VISA resource {args}: {e}") from e
        logger.info("Connected to {}", args)

    def _write(self, data: bytes):
        if self.inst is None:
            raise TransportError("VISA resource not open")
        try:
            self.inst.write_raw(data)
        except pyvisa.errors.VisaIOError as e:
            raise TransportError(f"Write to {self.args} failed: {e}") from e

    def _read(self, n: int) -> bytes:
        if self.inst is None:
            raise TransportError("VISA resource not open")
        try:
            return self.inst.read_bytes(n, break_on_termchar=False)
        except pyvisa.errors.VisaIOError as e:
            raise TransportError(f"Read from {self.args} failed: {e}") from e

    def _read_line(self) -> bytes:
        if self._rx_pushback:
            return super()._read_line()
        try:
            reply = self.inst.read()
        except pyvisa.errors.VisaIOError as e:
            raise TransportError(f"Read from {self.args} failed: {e}") from e
        self.bytes_received += len(reply) + 1
        return reply.encode()

    def flush_rx_buffer(self):
        super().flush_rx_buffer()
        if self.inst is None:
            return
        try:
            self.inst.flush(pyvisa.constants.BufferOperation.discard_read_buffer)
        except (pyvisa.errors.VisaIOError, NotImplementedError, AttributeError):
            # not every interface supports a buffer discard; clear() does
            self.inst.clear()

    def is_connected(self) -> bool:
        return self.inst is not None

    def close(self):
        if self.inst is not None:
            try:
                self.inst.close()
            except pyvisa.errors.VisaIOError as e:
                logger.warning("Error closing {}: {}", self.args, e)
            self.inst = None
        if self._owns_rm:
            self.rm.close()
