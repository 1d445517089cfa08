"""Device base class.

Every instrument session derives from ``Device``. A driver lists the
``SessionConfig`` fields it relies on in ``required_config``; the base class
checks them when the session is built and defines the connection methods a
driver overrides.

Examples
--------
```python
class MyScope(Device):
    driver_name = "mine"
    required_config = {**Device.required_config, "address": str}

    def open(self):
        ...
        return True, "Connected"
```
"""

from __future__ import annotations

from typing import Optional, Type, Union

from loguru import logger

from wavescope.types.config import SessionConfig
from wavescope.types.errors import ConfigurationError


class Device:
    """Base class for all instrument sessions.

    Attributes
    ----------
    driver_name : str
        Name the driver is registered under.
    required_config : dict[str, Type]
        ``SessionConfig`` fields the driver reads, and their accepted types.
    config : SessionConfig
        The validated session configuration.
    """

    driver_name = "base"
    required_config: dict[str, Union[Type, tuple[Type, ...]]] = {
        "driver": str,
        "timeout": (int, float),
        "poll_interval": (int, float),
        "force_trigger_timeout": (int, float),
        "max_pending": int,
    }

    def __init__(self, config: Optional[SessionConfig] = None):
        if config is None:
            config = SessionConfig(driver=self.driver_name)
        name = self.__class__.__name__
        for key, kind in self.required_config.items():
            if not hasattr(config, key):
                logger.error("Device {} missing required config key: {}", name, key)
                raise ConfigurationError(f"Device {name} missing required config key: {key}")
            value = getattr(config, key)
            # bool is an int subclass but never a valid count or duration
            if isinstance(value, bool) or not isinstance(value, kind):
                logger.error(
                    "Device {} config key {} has wrong type: {}", name, key, type(value)
                )
                raise ConfigurationError(
                    f"Device {name} config key {key} has wrong type: {type(value).__name__}"
                )
        self.config = config

    def open(self) -> tuple[bool, str]:
        raise NotImplementedError()

    def close(self):
        raise NotImplementedError()

    def is_connected(self) -> bool:
        raise NotImplementedError()
