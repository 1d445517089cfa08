"""Tests for the Rohde & Schwarz dialect, against a scripted transport."""

import numpy as np
import pytest

from wavescope.device import RSOscilloscope, TriggerMode
from wavescope.transport.transport import SCPITransport
from wavescope.types import EdgeTrigger, TransportError


class ScriptedTransport(SCPITransport):
    """Answers queries from a table and ``<src>:DATA? start,n`` from arrays."""

    def __init__(self, replies, blocks=None, **kwargs):
        super().__init__("scripted", **kwargs)
        self.replies = dict(replies)
        self.blocks = blocks or {}
        self.sent: list[str] = []
        self._rx = bytearray()

    def _write(self, data: bytes):
        for line in data.decode().splitlines():
            self.sent.append(line)
            header, _, arg = line.partition(" ")
            if header.endswith(":DATA?") and arg:
                source = header.split(":")[0]
                start, n = (int(x) for x in arg.split(","))
                payload = self.blocks[source][start : start + n].tobytes()
                length = str(len(payload))
                self._rx += f"#{len(length)}{length}".encode() + payload + b"\n"
            elif header.endswith("?"):
                self._rx += (self.replies.get(header, "0") + "\n").encode()
            elif arg:
                self.replies[header + "?"] = arg

    def _read(self, n: int) -> bytes:
        if not self._rx:
            raise TransportError("timeout")
        out = bytes(self._rx[:n])
        del self._rx[:n]
        return out

    def is_connected(self) -> bool:
        return True

    def close(self):
        pass


WAVE = np.linspace(-0.5, 0.5, 10).astype("<f4")


@pytest.fixture
def transport():
    return ScriptedTransport(
        {
            "*IDN?": "Rohde&Schwarz,RTO2044,1329.7002k44/100938,4.70.1.0",
            "*OPT?": "B1,K31",
            "CHANnel1:STATe?": "1",
            "CHANnel1:OFFSet?": "0.25",
            "CHANnel1:SKEW:TIME?": "1e-12",
            "CHANnel1:DATA:HEADer?": "-5e-09,5e-09,10,1",
            "PBUS1:STATe?": "0",
            "PBUS2:STATe?": "0",
            "TIMebase:RANGe?": "1e-08",
            "TIMebase:HORizontal:POSition?": "0",
            "ACQuire:CURRent?": "0",
        },
        blocks={"CHANnel1": WAVE},
        chunk_size=16,
    )


@pytest.fixture
def rs(transport):
    scope = RSOscilloscope(transport, clock=lambda: 2.5)
    ok, msg = scope.open()
    assert ok, msg
    return scope


class TestRSDialect:
    def test_channels(self, rs):
        assert rs.vendor == "Rohde&Schwarz"
        assert rs.options == ["B1", "K31"]
        assert rs.channels[0].hwname == "CHANnel1"
        assert rs.digital_pod_count == 2
        assert rs.channels[4].hwname == "PBUS1.D0"

    def test_mixed_signal_option_must_match_exactly(self):
        t = ScriptedTransport({"*IDN?": "Rohde&Schwarz,RTO2044,1,1", "*OPT?": "B10"})
        scope = RSOscilloscope(t)
        scope.open()
        assert scope.digital_pod_count == 0

    def test_offset_sign_inverted(self, rs, transport):
        assert rs.get_channel_offset(0) == -0.25
        rs.set_channel_offset(1, 0.1)
        transport.flush_command_queue()
        assert "CHANnel2:OFFSet -0.1" in transport.sent

    def test_deskew_header(self, rs, transport):
        assert rs.get_deskew(0) == 1000
        rs.set_deskew(0, 2000)
        transport.flush_command_queue()
        assert "CHANnel1:SKEW:TIME 2e-12" in transport.sent

    def test_trigger_position(self, rs, transport):
        # a horizontal position of 0 puts the trigger mid-screen
        assert rs.get_trigger_offset() == 5_000_000

    def test_status_is_acquisition_count(self, rs, transport):
        rs.start_single_trigger()
        assert "SINGle" in transport.sent
        assert rs.poll_trigger() == TriggerMode.RUN
        transport.replies["ACQuire:CURRent?"] = "1"
        assert rs.poll_trigger() == TriggerMode.TRIGGERED

    def test_force_command(self, rs, transport):
        rs.start_single_trigger()
        rs.force_trigger()
        assert "TRIGger1:FORCe" in transport.sent

    def test_chunked_float_capture(self, rs, transport):
        rs.start_single_trigger()
        transport.replies["ACQuire:CURRent?"] = "1"
        assert rs.poll_trigger() == TriggerMode.TRIGGERED

        progress = []
        assert rs.acquire_data(lambda name, frac: progress.append(frac))
        seq = rs.pending.pop()
        w = seq[0]
        np.testing.assert_array_equal(w.samples, WAVE)
        assert w.timescale == 1_000_000
        assert w.start_timestamp == 2
        assert "FORMat:DATA REAL,32" in transport.sent
        assert [c for c in transport.sent if c.startswith("CHANnel1:DATA? ")] == [
            "CHANnel1:DATA? 0,4",
            "CHANnel1:DATA? 4,4",
            "CHANnel1:DATA? 8,2",
        ]
        assert progress[-1] == pytest.approx(1.0)
        assert progress == sorted(progress)

    def test_trigger_root(self, rs, transport):
        rs.set_trigger(EdgeTrigger(source=0, level=0.1))
        assert "TRIGger1:TYPE EDGE" in transport.sent
        assert "TRIGger1:SOURce CHANnel1" in transport.sent
        assert "TRIGger1:EDGE:SLOPe POS" in transport.sent
