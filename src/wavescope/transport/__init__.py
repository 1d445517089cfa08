"""
SCPI transports.

A transport moves SCPI text and IEEE-488.2 binary blocks between an instrument
session and the wire, with a deduplicating command queue and a caller-visible
mutex for multi-step interactions.

Backends register themselves by name:

- ``visa``: any pyvisa resource
- ``mock``: in-memory loopback to a simulated instrument (wavescope.device.mock)

Examples
--------
```python
from wavescope.transport import create_transport
t = create_transport("visa", "TCPIP0::192.168.1.20::INSTR")
print(t.send_command_queued_with_reply("*IDN?"))
```
"""

from .transport import (
    SCPITransport,
    create_transport,
    enum_transports,
    register_transport,
)
from .visa import VisaTransport

__all__ = [
    "SCPITransport",
    "VisaTransport",
    "create_transport",
    "enum_transports",
    "register_transport",
]
