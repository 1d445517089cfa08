# -*- coding: utf-8 -*-
"""# wavescope Documentation

`Oscilloscope acquisition and signal analysis engine`

A (python) library for driving SCPI bench oscilloscopes and analysing what they capture.

The package is organised in layers:

- [types](wavescope/types/index.html): Waveforms, eye histograms, S-parameters, triggers and configuration records.
- [transport](wavescope/transport/index.html): SCPI transports (VISA and a simulated instrument) with command queueing.
- [device](wavescope/device/index.html): Oscilloscope sessions, vendor drivers and the driver registry.
- [filters](wavescope/filters/index.html): The filter graph and its scheduler.
- [measurements](wavescope/measurements/index.html), [protocols](wavescope/protocols/index.html),
  [eye](wavescope/eye/index.html) and [sparams](wavescope/sparams/index.html): Built-in filter kinds.
- [cli](wavescope/cli/index.html): The `wavescope` command.

## Quick start

```python
from wavescope.device import connect, scope_protocol_static_init
from wavescope.types import SessionConfig

scope_protocol_static_init()
scope = connect(SessionConfig(driver="scpi", transport="mock"))
scope.start_single_trigger()
```
"""

from ._version import __version__
