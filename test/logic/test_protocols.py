"""Tests for the Ethernet PHY decoders and the SDRAM command filters."""

import numpy as np
import pytest

from wavescope.filters import Channel, Filter, FilterGraph
from wavescope.protocols import (
    DramCommand,
    InbandStatus,
    SDRAMSymbol,
    SegmentType,
    Symbol8b10b,
    build_frame,
    bytes_to_frames,
    ethernet_fcs,
)
from wavescope.protocols.base1000x import K27_7, K28_5, K29_7
from wavescope.types import SparseProtocolWaveform, UniformAnalogWaveform, UniformDigitalWaveform
from wavescope.types.units import Stream, StreamType, Unit

NS = 1_000_000  # fs

DST = bytes.fromhex("ffffffffffff")
SRC = bytes.fromhex("001122334455")
PAYLOAD = bytes(range(46))

FRAME_SEGMENTS = [
    SegmentType.PREAMBLE,
    SegmentType.DST_MAC,
    SegmentType.SRC_MAC,
    SegmentType.ETHERTYPE,
    SegmentType.PAYLOAD,
    SegmentType.FCS_GOOD,
]


def digital(samples, name):
    w = UniformDigitalWaveform(timescale=NS)
    w.samples = np.asarray(samples, dtype=bool)
    ch = Channel(name, [Stream("data", Unit.COUNTS, StreamType.DIGITAL)])
    ch.set_data(0, w)
    return ch


def protocol(events, name="cmd"):
    """Channel carrying a 1 fs protocol waveform built from (offset, duration, symbol)."""
    w = SparseProtocolWaveform(timescale=1)
    for offset, duration, sym in events:
        w.append(offset, duration, sym)
    ch = Channel(name, [Stream("data", Unit.BYTES, StreamType.PROTOCOL)])
    ch.set_data(0, w)
    return ch


def segment_types(cap):
    return [seg.stype for _, _, seg in cap]


def decode(kind, wiring):
    f = Filter(kind)
    for name, ch in wiring.items():
        assert f.set_input(name, ch.stream()), name
    graph = FilterGraph()
    graph.add(f)
    graph.propagate()
    return f


class TestFrameSlicer:
    @staticmethod
    def slice_frame(data):
        cap = SparseProtocolWaveform(timescale=1)
        starts = np.arange(len(data)) * 8000
        packet = bytes_to_frames(data, starts, starts + 8000, cap)
        return packet, cap

    def test_segments(self):
        frame = build_frame(DST, SRC, 0x0800, PAYLOAD)
        packet, cap = self.slice_frame(frame)
        assert segment_types(cap) == FRAME_SEGMENTS
        assert packet.fcs_ok
        assert packet.dst == DST
        assert packet.src == SRC
        assert packet.ethertype == 0x0800
        assert packet.payload == PAYLOAD
        assert packet.length == 46
        # the preamble segment runs through the start-of-frame delimiter
        assert cap.offsets[0] == 0
        assert cap.durations[0] == 8 * 8000
        assert str(packet.segments[1]) == "ff:ff:ff:ff:ff:ff"
        assert str(packet.segments[3]) == "0x0800"
        cap.check_invariants()

    def test_bad_fcs(self):
        frame = bytearray(build_frame(DST, SRC, 0x0800, PAYLOAD))
        frame[30] ^= 0xFF
        packet, cap = self.slice_frame(bytes(frame))
        assert not packet.fcs_ok
        assert segment_types(cap)[-1] == SegmentType.FCS_BAD

    def test_vlan_tag(self):
        frame = build_frame(DST, SRC, 0x8100, bytes.fromhex("a0050800") + PAYLOAD)
        packet, cap = self.slice_frame(frame)
        assert segment_types(cap) == [
            SegmentType.PREAMBLE,
            SegmentType.DST_MAC,
            SegmentType.SRC_MAC,
            SegmentType.VLAN_TAG,
            SegmentType.ETHERTYPE,
            SegmentType.PAYLOAD,
            SegmentType.FCS_GOOD,
        ]
        assert packet.vlan_tci == 0xA005
        assert packet.ethertype == 0x0800
        assert packet.fcs_ok
        # the tag segment covers the TPID and the TCI
        assert cap.durations[3] == 4 * 8000
        cap.check_invariants()

    def test_junk_before_preamble_skipped(self):
        frame = bytes([0x00, 0x13]) + build_frame(DST, SRC, 0x0800, PAYLOAD)
        packet, cap = self.slice_frame(frame)
        assert packet.fcs_ok
        assert cap.offsets[0] == 2 * 8000

    def test_no_delimiter(self):
        packet, cap = self.slice_frame(bytes([0x55] * 8 + [0x00]))
        assert packet is None
        assert len(cap) == 0

    def test_truncated_header(self):
        packet, cap = self.slice_frame(bytes([0x55] * 7 + [0xD5]) + DST[:3])
        assert packet.error
        assert segment_types(cap) == [SegmentType.PREAMBLE]

    def test_fcs_is_little_endian_crc32(self):
        assert ethernet_fcs(b"123456789") == bytes.fromhex("2639f4cb")


def gmii_bus(data, en, er=None):
    """GMII lanes for one byte per 8 ns clock cycle, sampled mid-byte on the rising edge."""
    data = np.repeat(np.asarray(data, dtype=np.int64), 8)
    k = np.arange(len(data))
    wiring = {f"D{i}": digital((data >> i) & 1, f"D{i}") for i in range(8)}
    wiring["CLK"] = digital(k % 8 >= 4, "CLK")
    wiring["EN"] = digital(np.repeat(en, 8), "EN")
    if er is not None:
        wiring["ER"] = digital(np.repeat(er, 8), "ER")
    return wiring


@pytest.mark.usefixtures("builtin_filters")
class TestGMII:
    @staticmethod
    def framed(frame, idle=2):
        data = [0] * idle + list(frame) + [0] * idle
        en = [False] * idle + [True] * len(frame) + [False] * idle
        return data, en

    def test_single_frame(self):
        frame = build_frame(DST, SRC, 0x0800, PAYLOAD)
        f = decode("GMII", gmii_bus(*self.framed(frame)))
        cap = f.get_data()
        assert segment_types(cap) == FRAME_SEGMENTS
        # first rising edge at 4 ns, two idle bytes ahead of the preamble
        assert cap.offsets[0] == 20 * NS
        assert cap.durations[0] == 8 * 8 * NS
        assert len(f.state.packets) == 1
        assert f.state.packets[0].fcs_ok
        cap.check_invariants()

    def test_two_frames(self):
        a = build_frame(DST, SRC, 0x0800, PAYLOAD)
        b = build_frame(SRC, DST, 0x86DD, PAYLOAD[::-1])
        da, ea = self.framed(a)
        db, eb = self.framed(b)
        f = decode("GMII", gmii_bus(da + db, ea + eb))
        assert segment_types(f.get_data()) == FRAME_SEGMENTS * 2
        assert [p.ethertype for p in f.state.packets] == [0x0800, 0x86DD]

    def test_receive_error_marks_packet(self):
        frame = build_frame(DST, SRC, 0x0800, PAYLOAD)
        data, en = self.framed(frame)
        er = [False] * len(data)
        er[40] = True
        f = decode("GMII", gmii_bus(data, en, er))
        packet = f.state.packets[0]
        assert packet.error
        assert packet.fcs_ok


def rgmii_bus(byte_values, ctl, ddr=True, lead=()):
    """RGMII lanes; each byte is sent low nibble first.

    DDR uses an 8 ns clock with a nibble on each edge, SDR a 16 ns clock with a
    nibble per rising edge. ``lead`` nibbles of idle status go out first; in DDR
    an odd count starts the capture on a falling edge, so the frame bytes still
    begin on rising edges.
    """
    byte_values = np.asarray(byte_values, dtype=np.int64)
    split = np.empty(2 * len(byte_values), dtype=np.int64)
    split[0::2] = byte_values & 0x0F
    split[1::2] = byte_values >> 4
    nibbles = np.concatenate((np.asarray(lead, dtype=np.int64), split))
    ctl_nibbles = np.concatenate(
        (np.zeros(len(lead), dtype=bool), np.repeat(np.asarray(ctl, dtype=bool), 2))
    )

    period = 8 if ddr else 16
    step = period // 2 if ddr else period
    first = period // 2
    shift = step if ddr and len(lead) % 2 else 0
    k = np.arange(first + step * len(nibbles))
    idx = np.clip((k - (first - step // 2)) // step, 0, len(nibbles) - 1)
    wiring = {f"D{i}": digital((nibbles[idx] >> i) & 1, f"D{i}") for i in range(4)}
    wiring["CLK"] = digital((k + shift) % period >= period // 2, "CLK")
    wiring["CTL"] = digital(ctl_nibbles[idx], "CTL")
    return wiring


@pytest.mark.usefixtures("builtin_filters")
class TestRGMII:
    LINK_UP_1G = 0xDD  # link up, 1000 Mb/s, full duplex, in both nibbles

    def stream(self, frame):
        data = [self.LINK_UP_1G] * 3 + list(frame) + [self.LINK_UP_1G] * 2
        ctl = [False] * 3 + [True] * len(frame) + [False] * 2
        return data, ctl

    def test_ddr_frame_with_inband_status(self):
        frame = build_frame(DST, SRC, 0x0800, PAYLOAD)
        f = decode("RGMII", rgmii_bus(*self.stream(frame)))
        cap = f.get_data()
        types = segment_types(cap)
        assert types == [SegmentType.INBAND_STATUS] + FRAME_SEGMENTS + [SegmentType.INBAND_STATUS]
        status = list(cap)[0][2]
        assert InbandStatus.from_nibble(status.data[0]) == InbandStatus(True, 1000, True)
        assert f.state.packets[0].fcs_ok
        cap.check_invariants()

    def test_sdr_frame(self):
        frame = build_frame(DST, SRC, 0x0800, PAYLOAD)
        f = decode("RGMII", rgmii_bus(*self.stream(frame), ddr=False))
        assert SegmentType.FCS_GOOD in segment_types(f.get_data())
        assert f.state.packets[0].payload == PAYLOAD

    @pytest.mark.parametrize("lead", [0, 1, 3])
    def test_sdr_frame_after_odd_idle_nibbles(self, lead):
        frame = build_frame(DST, SRC, 0x0800, PAYLOAD)
        f = decode("RGMII", rgmii_bus(*self.stream(frame), ddr=False, lead=[0xD] * lead))
        cap = f.get_data()
        assert segment_types(cap) == (
            [SegmentType.INBAND_STATUS] + FRAME_SEGMENTS + [SegmentType.INBAND_STATUS]
        )
        assert f.state.packets[0].fcs_ok
        assert f.state.packets[0].payload == PAYLOAD
        cap.check_invariants()

    def test_ddr_capture_starting_on_falling_edge(self):
        frame = build_frame(DST, SRC, 0x0800, PAYLOAD)
        f = decode("RGMII", rgmii_bus(*self.stream(frame), lead=[0xD]))
        cap = f.get_data()
        assert segment_types(cap) == (
            [SegmentType.INBAND_STATUS] + FRAME_SEGMENTS + [SegmentType.INBAND_STATUS]
        )
        assert f.state.packets[0].fcs_ok
        cap.check_invariants()

    def test_status_changes_split(self):
        down = InbandStatus(False, 100, False).to_bytes()[0]
        data = [self.LINK_UP_1G] * 2 + [down * 0x11] * 2
        f = decode("RGMII", rgmii_bus(data, [False] * 4))
        statuses = [InbandStatus.from_nibble(seg.data[0]) for _, _, seg in f.get_data()]
        assert statuses == [InbandStatus(True, 1000, True), InbandStatus(False, 100, False)]


def symbols(frame, end=K29_7):
    """1000BASE-X symbol stream: idles, start, the frame after its first byte, end, idles."""
    syms = [Symbol8b10b(True, K28_5), Symbol8b10b(False, 0x50), Symbol8b10b(True, K27_7)]
    syms += [Symbol8b10b(False, b) for b in frame[1:]]
    syms += [Symbol8b10b(True, end), Symbol8b10b(True, K28_5)]
    return [(i * 8000, 8000, s) for i, s in enumerate(syms)]


@pytest.mark.usefixtures("builtin_filters")
class TestBase1000X:
    def test_symbol_names(self):
        assert str(Symbol8b10b(True, K28_5)) == "K28.5"
        assert str(Symbol8b10b(False, 0x4A)) == "D10.2"
        assert str(Symbol8b10b(False, 0, error=True)) == "ERROR"

    def test_frame(self):
        frame = build_frame(DST, SRC, 0x0800, PAYLOAD)
        f = decode("Ethernet1000BaseX", {"din": protocol(symbols(frame), "pcs")})
        cap = f.get_data()
        assert segment_types(cap) == FRAME_SEGMENTS
        # the start-of-packet symbol opens the preamble
        assert cap.offsets[0] == 2 * 8000
        assert f.state.packets[0].fcs_ok

    def test_abort(self):
        frame = build_frame(DST, SRC, 0x0800, PAYLOAD)
        f = decode("Ethernet1000BaseX", {"din": protocol(symbols(frame, end=K28_5), "pcs")})
        types = segment_types(f.get_data())
        assert types[-1] == SegmentType.ERROR
        assert f.state.packets[0].error

    def test_disparity_error_aborts(self):
        frame = build_frame(DST, SRC, 0x0800, PAYLOAD)
        events = symbols(frame)
        t, d, sym = events[30]
        events[30] = (t, d, Symbol8b10b(False, sym.data, disparity_error=True))
        f = decode("Ethernet1000BaseX", {"din": protocol(events, "pcs")})
        assert SegmentType.ERROR in segment_types(f.get_data())
        assert f.state.packets[0].error


@pytest.mark.usefixtures("builtin_filters")
class TestDram:
    def test_row_column_latency(self):
        cmd = protocol(
            [
                (0, 10, SDRAMSymbol(DramCommand.ACT, 0)),
                (10, 10, SDRAMSymbol(DramCommand.ACT, 1)),
                (50, 10, SDRAMSymbol(DramCommand.RD, 0)),
                (70, 10, SDRAMSymbol(DramCommand.WRA, 1)),
                (90, 10, SDRAMSymbol(DramCommand.RD, 0)),
                (110, 10, SDRAMSymbol(DramCommand.NOP, 0)),
            ]
        )
        f = decode("DramRowColumnLatency", {"CMD": cmd})
        latency = f.get_data()
        assert latency.offsets.tolist() == [50, 70]
        assert latency.samples.tolist() == [50.0, 60.0]

    @staticmethod
    def bus(command):
        """A command at 100 fs, a clock toggling every 20 fs and one 8-edge DQS burst."""
        k = np.arange(400)
        dqs = UniformAnalogWaveform(timescale=1)
        burst = (k >= 200) & (k < 280) & ((k - 200) // 10 % 2 == 0)
        dqs.samples = np.where(burst, 3.2, 0.0)
        dqs_ch = Channel("DQS", [Stream("data", Unit.VOLTS, StreamType.ANALOG)])
        dqs_ch.set_data(0, dqs)
        clk = UniformDigitalWaveform(timescale=1)
        clk.samples = (k // 20) % 2 == 1
        clk_ch = Channel("CLK", [Stream("data", Unit.COUNTS, StreamType.DIGITAL)])
        clk_ch.set_data(0, clk)
        return {
            "CMD": protocol([(100, 10, SDRAMSymbol(command, 0))]),
            "CLK": clk_ch,
            "DQS": dqs_ch,
        }

    def test_write_clock(self):
        f = decode("DramClock", self.bus(DramCommand.WR))
        wr = f.get_data(1)
        pulses = [199, 209, 219, 229, 239, 249, 259, 269]
        # idle sample, the burst, then five 1 fs idle samples after the capture
        assert wr.offsets.tolist() == [0] + pulses + [400, 401, 402, 403, 404]
        assert wr.samples.tolist() == [False] + [True, False] * 4 + [False] * 5
        assert wr.durations.tolist()[-1] == 1
        rd = f.get_data(0)
        assert rd.offsets.tolist() == [0, 400, 401, 402, 403, 404]
        assert not rd.samples.any()

    def test_read_clock_after_cas_latency(self):
        f = decode("DramClock", self.bus(DramCommand.RDA))
        rd = f.get_data(0)
        assert rd.offsets.tolist()[1:9] == [199, 209, 219, 229, 239, 249, 259, 269]
        assert not f.get_data(1).samples.any()

    def test_short_burst(self):
        wiring = self.bus(DramCommand.WR)
        f = Filter("DramClock")
        f.set_param("Burst Length", "4")
        for name, ch in wiring.items():
            f.set_input(name, ch.stream())
        graph = FilterGraph()
        graph.add(f)
        graph.propagate()
        assert f.get_data(1).offsets.tolist()[1:5] == [199, 209, 219, 229]
        assert f.get_data(1).offsets.tolist()[5] == 400
