"""Tests for the SCPI transport: command queue, block replies and discovery."""

import pytest

from wavescope.transport import create_transport, enum_transports
from wavescope.transport.transport import SCPITransport
from wavescope.types import TransportError
from wavescope.util.check_hw import list_visa_devices


class BufferTransport(SCPITransport):
    """Records writes; reads come from a preloaded byte buffer."""

    def __init__(self, rx: bytes = b"", **kwargs):
        super().__init__("buffer", **kwargs)
        self.rx = bytearray(rx)
        self.sent: list[str] = []

    def _write(self, data: bytes):
        self.sent.extend(data.decode().splitlines())

    def _read(self, n: int) -> bytes:
        if not self.rx:
            raise TransportError("timeout")
        out = bytes(self.rx[:n])
        del self.rx[:n]
        return out

    def flush_rx_buffer(self):
        super().flush_rx_buffer()
        self.rx.clear()

    def is_connected(self) -> bool:
        return True

    def close(self):
        pass


class TestCommandQueue:
    def test_queued_writes_wait_for_flush(self):
        t = BufferTransport()
        t.send_command_queued(":CHAN1:STAT ON")
        t.send_command_queued(":CHAN2:STAT ON")
        assert t.sent == []
        assert t.queue_depth() == 2
        t.flush_command_queue()
        assert t.sent == [":CHAN1:STAT ON", ":CHAN2:STAT ON"]
        assert t.queue_depth() == 0

    def test_deduplicated_family_keeps_newest(self):
        t = BufferTransport()
        t.deduplicate_command("OFFS")
        t.send_command_queued(":CHAN1:OFFSet 0.1")
        t.send_command_queued(":CHAN2:OFFSet 0.5")
        t.send_command_queued(":CHAN1:OFFSet 0.2")
        t.flush_command_queue()
        assert t.sent == [":CHAN2:OFFSet 0.5", ":CHAN1:OFFSet 0.2"]

    def test_other_headers_not_deduplicated(self):
        t = BufferTransport()
        t.deduplicate_command("OFFS")
        t.send_command_queued(":CHAN1:RANGe 1")
        t.send_command_queued(":CHAN1:RANGe 2")
        t.flush_command_queue()
        assert len(t.sent) == 2

    def test_queued_query_flushes_first(self):
        t = BufferTransport(b"2.0\n")
        t.send_command_queued(":CHAN1:RANGe 2.0")
        reply = t.send_command_queued_with_reply(":CHAN1:RANGe?")
        assert reply == "2.0"
        assert t.sent == [":CHAN1:RANGe 2.0", ":CHAN1:RANGe?"]

    def test_immediate_bypasses_queue(self):
        t = BufferTransport()
        t.send_command_queued(":CHAN1:RANGe 2.0")
        t.send_command_immediate(":STOP")
        assert t.sent == [":STOP"]
        assert t.queue_depth() == 1

    def test_opc_after_each_write(self):
        t = BufferTransport(b"1\n1\n")
        t.opc_required = True
        t.send_command_queued(":A 1")
        t.send_command_queued(":B 2")
        t.flush_command_queue()
        assert t.sent == [":A 1", "*OPC?", ":B 2", "*OPC?"]

    def test_opc_garbage(self):
        t = BufferTransport(b"0\n")
        assert not t.opc_ping()


class TestBlockReplies:
    def test_block(self):
        t = BufferTransport(b"#15hello\n")
        assert t.send_command_immediate_with_raw_block_reply(":WAV:DATA?") == b"hello"
        assert t.rx == b""

    def test_leading_newline_tolerated(self):
        t = BufferTransport(b"\n#13abc\n")
        assert t.read_raw_block() == b"abc"

    def test_missing_terminator_is_pushed_back(self):
        t = BufferTransport(b"#13abcOK\n")
        assert t.read_raw_block() == b"abc"
        assert t.read_reply() == "OK"

    def test_chunked_progress(self):
        payload = bytes(range(100))
        t = BufferTransport(b"#3100" + payload + b"\n", chunk_size=30)
        seen = []
        assert t.read_raw_block(seen.append) == payload
        assert seen == pytest.approx([0.3, 0.6, 0.9, 1.0])

    def test_short_read_raises(self):
        t = BufferTransport(b"#210abc")
        with pytest.raises(TransportError):
            t.read_raw_block()

    @pytest.mark.parametrize("reply", [b"x12ab", b"#0", b"#2ab"])
    def test_malformed_header(self, reply):
        t = BufferTransport(reply + b"\n")
        with pytest.raises(TransportError, match="Malformed"):
            t.read_raw_block()

    def test_byte_counters(self):
        t = BufferTransport(b"1\n")
        t.send_command_immediate_with_reply("*OPC?")
        assert t.bytes_sent == len("*OPC?\n")
        assert t.bytes_received == 2


class TestRegistry:
    def test_builtin_transports(self, registry):
        names = enum_transports()
        assert "visa" in names
        assert "mock" in names

    def test_unknown_transport(self):
        with pytest.raises(KeyError, match="Unknown transport"):
            create_transport("carrier-pigeon")

    def test_mock_transport_round_trip(self, registry):
        t = create_transport("mock", "mso")
        assert t.send_command_queued_with_reply("*OPT?") == "MSO"
        t.close()
        assert not t.is_connected()
        with pytest.raises(TransportError):
            t.send_command_immediate("*IDN?")


class FakeResource:
    def __init__(self, idn):
        self.idn = idn
        self.closed = False

    def query(self, cmd):
        if isinstance(self.idn, Exception):
            raise self.idn
        return self.idn + "\n"

    def close(self):
        self.closed = True


class FakeResourceManager:
    def __init__(self, resources):
        self.resources = resources
        self.opened = []

    def list_resources(self):
        return tuple(self.resources)

    def open_resource(self, name):
        r = FakeResource(self.resources[name])
        self.opened.append(r)
        return r

    def close(self):
        pass


class TestVisaDiscovery:
    def test_lists_and_identifies(self):
        rm = FakeResourceManager(
            {
                "TCPIP0::10.0.0.5::INSTR": "Rohde&Schwarz,RTO2044,1329,4.70",
                "USB0::0x0957::0x1796::MY123::INSTR": "KEYSIGHT,DSOX3034T,MY123,7.50",
                "ASRL1::INSTR": "never opened",
            }
        )
        progress = []
        devices = list_visa_devices(
            resource_manager=rm, progress_callback=lambda c, t, m: progress.append((c, t))
        )
        assert set(devices) == {"TCPIP0::10.0.0.5::INSTR", "USB0::0x0957::0x1796::MY123::INSTR"}
        info = devices["TCPIP0::10.0.0.5::INSTR"]
        assert info["status"] == "connected"
        assert info["vendor"] == "Rohde&Schwarz"
        assert info["model"] == "RTO2044"
        assert progress[-1] == (2, 2)
        assert all(r.closed for r in rm.opened)

    def test_filters(self):
        rm = FakeResourceManager(
            {
                "TCPIP0::10.0.0.5::INSTR": "Rohde&Schwarz,RTO2044,1329,4.70",
                "TCPIP0::10.0.0.6::INSTR": "KEYSIGHT,DSOX3034T,MY123,7.50",
                "USB0::1::INSTR": "Rohde&Schwarz,RTB2004,1,1",
            }
        )
        devices = list_visa_devices(
            filter_string="TCPIP", vendor_filter="Rohde", detailed=False, resource_manager=rm
        )
        assert devices == {"TCPIP0::10.0.0.5::INSTR": "Rohde&Schwarz,RTO2044,1329,4.70"}

    def test_error_reported(self):
        rm = FakeResourceManager({"TCPIP0::10.0.0.9::INSTR": OSError("unreachable")})
        devices = list_visa_devices(resource_manager=rm)
        assert devices["TCPIP0::10.0.0.9::INSTR"]["status"] == "error"
        assert "unreachable" in devices["TCPIP0::10.0.0.9::INSTR"]["error"]
