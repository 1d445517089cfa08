"""Process-wide driver registry.

The registry is empty until ``scope_protocol_static_init()`` is called, and is
emptied again by ``scope_protocol_static_teardown()``. Importing a driver
module does not register it.
"""

from __future__ import annotations

import threading
from typing import Optional

from loguru import logger

from wavescope.device.oscilloscope import Oscilloscope
from wavescope.transport.transport import SCPITransport, create_transport
from wavescope.types.config import SessionConfig
from wavescope.types.errors import ConfigurationError
from wavescope.util.device_cache import remember_session, resolve_session

_DRIVERS: dict[str, type[Oscilloscope]] = {}
_LOCK = threading.Lock()
_INITIALISED = False


def scope_protocol_static_init():
    """Register the built-in drivers (and the mock transport). Idempotent."""
    global _INITIALISED
    # imported here so that registration happens only on request
    from wavescope.device import mock  # noqa: F401
    from wavescope.device.rs_scope import RSOscilloscope
    from wavescope.device.scpi_scope import ScpiOscilloscope

    with _LOCK:
        if _INITIALISED:
            return
        for cls in (ScpiOscilloscope, RSOscilloscope):
            _DRIVERS[cls.driver_name] = cls
        _INITIALISED = True
    logger.debug("Registered drivers: {}", ", ".join(sorted(_DRIVERS)))


def scope_protocol_static_teardown():
    global _INITIALISED
    with _LOCK:
        _DRIVERS.clear()
        _INITIALISED = False


def register_driver(name: str, cls: type[Oscilloscope]):
    with _LOCK:
        if not _INITIALISED:
            raise ConfigurationError("Driver registry not initialised")
        _DRIVERS[name] = cls


def enum_drivers() -> list[str]:
    with _LOCK:
        return sorted(_DRIVERS)


def create_oscilloscope(
    driver: str,
    transport: SCPITransport,
    config: Optional[SessionConfig] = None,
    **kwargs,
) -> Oscilloscope:
    """Instantiate ``driver`` on an open transport. The session is not opened."""
    with _LOCK:
        if not _INITIALISED:
            raise ConfigurationError(
                "Driver registry not initialised, call scope_protocol_static_init()"
            )
        if driver not in _DRIVERS:
            raise ConfigurationError(
                f"Unknown driver '{driver}', available: {', '.join(sorted(_DRIVERS))}"
            )
        cls = _DRIVERS[driver]
    return cls(transport, config, **kwargs)


def connect(config: SessionConfig, **kwargs) -> Oscilloscope:
    """Open a transport and session as described by ``config``.

    An empty address falls back to the last one used with the driver over the
    same transport.
    """
    config = resolve_session(config)
    address = config.address
    transport = create_transport(
        config.transport, address, timeout=config.timeout, chunk_size=config.chunk_size
    )
    scope = create_oscilloscope(config.driver, transport, config, **kwargs)
    ok, msg = scope.open()
    if not ok:
        transport.close()
        raise ConfigurationError(f"Could not open {config.driver} at '{address}': {msg}")
    if config.transport != "mock":
        remember_session(config)
    return scope
