"""Remember the last session configuration that opened each driver.

One JSON file per driver under ``CACHE_DIR`` holds the ``SessionConfig``
serialised with mashumaro. ``resolve_session`` fills an empty address from it,
so ``wavescope acquire -t visa`` reconnects to the instrument used last time.
"""

import json
from dataclasses import replace
from pathlib import Path
from typing import Optional

from loguru import logger
from mashumaro.exceptions import InvalidFieldValue, MissingField

from wavescope.types.config import SessionConfig
from wavescope.types.errors import ConfigurationError

CACHE_DIR = Path.home() / ".wavescope" / "device_cache"


def _cache_file(driver: str) -> Path:
    return CACHE_DIR / f"{driver}.json"


def load_session(driver: str) -> Optional[SessionConfig]:
    """The configuration last remembered for ``driver``, or None."""
    path = _cache_file(driver)
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text())
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")
        config = SessionConfig.from_dict(data)
    except (OSError, ValueError, MissingField, InvalidFieldValue, ConfigurationError) as e:
        logger.warning("Ignoring unreadable device cache {}: {}", path, e)
        return None
    if config.driver != driver:
        logger.warning("Device cache {} names driver {}, ignoring", path, config.driver)
        return None
    return config


def remember_session(config: SessionConfig) -> None:
    """Store ``config`` as the one to reuse for its driver."""
    try:
        CACHE_DIR.mkdir(parents=True, exist_ok=True)
        _cache_file(config.driver).write_text(json.dumps(config.to_dict()))
    except OSError as e:
        logger.debug("Error updating cache for {}: {}", config.driver, e)


def resolve_session(config: SessionConfig) -> SessionConfig:
    """Fill an empty address from the cache when the transport matches."""
    if config.address:
        return config
    cached = load_session(config.driver)
    if cached is None or cached.transport != config.transport or not cached.address:
        return config
    logger.debug("Using cached address {} for {}", cached.address, config.driver)
    return replace(config, address=cached.address)
