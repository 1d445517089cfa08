"""Exception hierarchy shared by the transport, session and filter layers.

The kinds do not overlap:

- ``TransportError``: connection lost, timeout, malformed block header.
- ``ProtocolError``: a reply that does not parse as the expected format.
- ``FilterValidationError``: a filter input that fails its declared constraints.
- ``ConfigurationError``: an unsupported setting combination.
- ``CapacityError``: more channels enabled than interleaving permits.
- ``WaveformInvariantError``: a sparse waveform with overlapping samples.

Transport and configuration errors are caught at the session boundary and turned
into a logged diagnostic plus a fallback value; they are raised here so the
lower layers can signal them precisely.
"""


class WavescopeError(Exception):
    """Base class for all wavescope errors."""


class TransportError(WavescopeError):
    pass


class ProtocolError(WavescopeError):
    def __init__(self, message: str, reply: str = ""):
        super().__init__(f"{message} (reply: {reply!r})" if reply else message)
        self.reply = reply


class FilterValidationError(WavescopeError):
    pass


class ConfigurationError(WavescopeError):
    pass


class CapacityError(WavescopeError):
    pass


class WaveformInvariantError(WavescopeError):
    pass
