# -*- coding: utf-8 -*-
"""
Utility functions and constants for wavescope.

This module provides:

- Logging configuration (loguru sinks for file and console)
- Package-wide defaults (timeouts, chunk sizes, log levels)
- VISA instrument discovery
- A small cache of the last address used per driver

Examples
--------
Start a console log at debug level:
```python
from wavescope.util import start_client_log
start_client_log(log_to_file=False, log_to_stdout=True, log_level="DEBUG")
```

See Also
--------
wavescope.util.logging : Logging configuration
wavescope.util.defaults : Package constants
"""

from .defaults import (
    BATHTUB_FLOOR,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_LOGLEVEL,
    DEFAULT_TIMEOUT,
    FORCE_TRIGGER_TIMEOUT,
    FS_PER_SECOND,
    POLL_INTERVAL,
    RLE_TAIL_GUARD,
    SINGLE_LINE_ERR_LOG,
    TEST_LOGLEVEL,
)
from .logging import (
    clear_log,
    format_error_response,
    get_log_filename,
    log_default_path_client,
    shutdown_client_log,
    start_client_log,
)

__all__ = [
    "BATHTUB_FLOOR",
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_LOGLEVEL",
    "DEFAULT_TIMEOUT",
    "FORCE_TRIGGER_TIMEOUT",
    "FS_PER_SECOND",
    "POLL_INTERVAL",
    "RLE_TAIL_GUARD",
    "SINGLE_LINE_ERR_LOG",
    "TEST_LOGLEVEL",
    "clear_log",
    "format_error_response",
    "get_log_filename",
    "log_default_path_client",
    "shutdown_client_log",
    "start_client_log",
]
