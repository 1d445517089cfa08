# -*- coding: utf-8 -*-
"""
Instrument sessions and drivers.

This package provides:

- Oscilloscope: the session (config cache, trigger state machine, acquisition)
- ScpiOscilloscope and RSOscilloscope: vendor dialects
- push_trigger / pull_trigger: trigger records to and from SCPI
- The driver registry (explicit init and teardown)
- A simulated instrument and transport for tests and demos

Examples
--------
```python
from wavescope.device import connect, scope_protocol_static_init
from wavescope.types import SessionConfig

scope_protocol_static_init()
scope = connect(SessionConfig(driver="scpi", transport="mock"))
scope.start_single_trigger()
```

See Also
--------
wavescope.transport : SCPI transports
wavescope.types.sequence : The queue acquisitions are delivered through
"""

from .device import Device
from .oscilloscope import (
    SCOPE_STATE,
    Oscilloscope,
    Preamble,
    TriggerMode,
    WaveFormat,
    run_length_encode,
)
from .registry import (
    connect,
    create_oscilloscope,
    enum_drivers,
    register_driver,
    scope_protocol_static_init,
    scope_protocol_static_teardown,
)
from .rs_scope import RSOscilloscope
from .scpi_scope import ScpiOscilloscope
from .triggers import pull_trigger, push_trigger

__all__ = [
    "Device",
    "Oscilloscope",
    "Preamble",
    "RSOscilloscope",
    "SCOPE_STATE",
    "ScpiOscilloscope",
    "TriggerMode",
    "WaveFormat",
    "connect",
    "create_oscilloscope",
    "enum_drivers",
    "pull_trigger",
    "push_trigger",
    "register_driver",
    "run_length_encode",
    "scope_protocol_static_init",
    "scope_protocol_static_teardown",
]
