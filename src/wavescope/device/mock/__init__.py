from .mock_scope import MockScpiInstrument, MockTransport, MockWaveform

__all__ = ["MockScpiInstrument", "MockTransport", "MockWaveform"]
