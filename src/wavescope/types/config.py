"""Configuration types for instrument sessions."""

from dataclasses import dataclass, field
from typing import Optional

from loguru import logger
from mashumaro import DataClassDictMixin

from wavescope.types.errors import ConfigurationError
from wavescope.util.defaults import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_TIMEOUT,
    FORCE_TRIGGER_TIMEOUT,
    POLL_INTERVAL,
)


@dataclass(kw_only=True)
class SessionConfig(DataClassDictMixin):
    """How to reach an instrument and how to drive its acquisition loop.

    Attributes
    ----------
    driver : str
        Registered driver name, see ``wavescope.device.registry``.
    transport : str
        Registered transport name ("visa" or "mock").
    address : str
        Transport-specific address, e.g. a VISA resource string.
    timeout : float
        Transport read timeout in seconds.
    poll_interval : float
        Seconds between trigger status polls in the acquisition loop.
    chunk_size : int
        Maximum bytes requested per raw-block transfer.
    force_trigger_timeout : float
        Seconds after a force-trigger before the capture counts as triggered.
    max_pending : int
        Maximum queued SequenceSets before the oldest is dropped (0 = unbounded).
    """

    driver: str
    transport: str = "visa"
    address: str = ""
    timeout: float = DEFAULT_TIMEOUT
    poll_interval: float = POLL_INTERVAL
    chunk_size: int = DEFAULT_CHUNK_SIZE
    force_trigger_timeout: float = FORCE_TRIGGER_TIMEOUT
    max_pending: int = 0

    def validate(self):
        if self.timeout <= 0:
            raise ConfigurationError(f"Timeout must be positive, got {self.timeout}")
        if self.poll_interval < 0:
            raise ConfigurationError("Poll interval cannot be negative")
        if self.chunk_size <= 0:
            raise ConfigurationError(f"Chunk size must be positive, got {self.chunk_size}")
        if self.max_pending < 0:
            raise ConfigurationError("max_pending cannot be negative")

    def __post_init__(self):
        self.validate()
        logger.trace("Session config: {}", self)


@dataclass(kw_only=True)
class ChannelConfig(DataClassDictMixin):
    """Snapshot of one channel's cached settings (unknown values are None)."""

    index: int
    hwname: str
    enabled: Optional[bool] = None
    voltage_range: Optional[float] = None
    offset: Optional[float] = None
    coupling: Optional[str] = None
    attenuation: Optional[float] = None
    bandwidth_limit: Optional[int] = None
    probe_type: Optional[str] = None
    digital_threshold: Optional[float] = None
    deskew: Optional[int] = None
    extra: dict[str, str] = field(default_factory=dict)
