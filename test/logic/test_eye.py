"""Tests for eye accumulation and bathtub curves."""

import numpy as np
import pytest

from wavescope.eye import integrate_from_center
from wavescope.filters import Channel, Filter, FilterGraph
from wavescope.types import UniformAnalogWaveform, UniformDigitalWaveform
from wavescope.types.eye import EyeWaveform
from wavescope.types.units import Stream, StreamType, Unit
from wavescope.util.defaults import BATHTUB_FLOOR

NS = 1_000_000  # fs


def eye_channel(eye):
    ch = Channel("eye", [Stream("data", Unit.COUNTS, StreamType.EYE)])
    ch.set_data(0, eye)
    return ch


def small_eye(line, row=4):
    """10x8 eye over a 1000 fs UI with ``line`` written into one row."""
    eye = EyeWaveform(10, 8, 0.0, 1.0, 1000)
    eye.accumulator_2d()[row, :] = line
    return eye


class TestEyeWaveform:
    def test_geometry(self):
        eye = EyeWaveform(10, 8, 0.0, 1.0, 1000)
        assert len(eye.accumulator) == 80
        assert eye.fs_per_pixel == 200
        assert eye.volts_per_pixel == 0.125
        assert eye.voltage_to_row(0.0) == 4
        assert eye.row_to_voltage(4) == 0.0
        assert eye.time_to_column(0) == 5

    def test_accumulate_plots_both_halves(self):
        eye = EyeWaveform(10, 8, 0.0, 1.0, 1000)
        eye.accumulate([0.0, 5.0], [500, 500])
        acc = eye.accumulator_2d()
        assert acc[4, 2] == 1
        assert acc[4, 7] == 1
        # the 5 V sample is off the top of the histogram
        assert acc.sum() == 2
        assert eye.total_uis == 1

    def test_phase_wraps_modulo_ui(self):
        eye = EyeWaveform(10, 8, 0.0, 1.0, 1000)
        eye.accumulate([0.0], [1500])
        assert eye.accumulator_2d()[4, 2] == 1

    def test_normalize_saturates(self):
        eye = small_eye([0, 0, 1, 0, 0, 0, 0, 4, 0, 0])
        norm = eye.normalize()
        assert norm.max() == 1.0
        assert norm.reshape(8, 10)[4, 2] == pytest.approx(0.5)

    def test_ber_at_point(self):
        eye = small_eye([0, 0, 0, 0, 0, 0, 0, 0, 3, 1])
        assert eye.get_ber_at_point(5, 4) == 0.0
        # walking right from the centre: none of the hits lie inside column 7
        assert eye.get_ber_at_point(7, 4) == 0.0
        assert eye.get_ber_at_point(9, 4) == pytest.approx(0.75)


class TestIntegrateFromCenter:
    def test_symmetric(self):
        out = integrate_from_center([4, 2, 1, 0, 0, 0, 0, 1, 2, 4])
        assert out[0] == 0.0
        assert out[-1] == 0.0
        assert out[1] == pytest.approx(np.log10(3 / 7))
        np.testing.assert_array_equal(out[3:7], BATHTUB_FLOOR)
        # BER never decreases moving outward from the centre
        assert np.all(np.diff(out[:6]) <= 0)
        assert np.all(np.diff(out[5:]) >= 0)

    def test_normalized_by_busier_side(self):
        out = integrate_from_center([1, 0, 0, 0, 0, 0, 0, 0, 0, 4])
        assert out[-1] == 0.0
        assert out[0] == pytest.approx(np.log10(0.25))

    def test_empty_line_is_floor(self):
        np.testing.assert_array_equal(integrate_from_center(np.zeros(6)), BATHTUB_FLOOR)
        assert len(integrate_from_center([])) == 0


@pytest.mark.usefixtures("builtin_filters")
class TestEyeFilters:
    @staticmethod
    def nrz():
        """1000 samples of +-0.25 V NRZ with a clock toggling every 50 samples."""
        k = np.arange(1000)
        data = UniformAnalogWaveform(timescale=NS)
        data.samples = np.where((k // 50) % 2 == 0, 0.25, -0.25)
        clk = UniformDigitalWaveform(timescale=NS)
        clk.samples = (k // 50) % 2 == 1
        din = Channel("din", [Stream("data", Unit.VOLTS, StreamType.ANALOG)])
        din.set_data(0, data)
        ck = Channel("clk", [Stream("data", Unit.COUNTS, StreamType.DIGITAL)])
        ck.set_data(0, clk)
        return din, ck

    def test_eye_accumulates(self):
        din, ck = self.nrz()
        graph = FilterGraph()
        eye = graph.add(Filter("EyePattern"))
        eye.set_input("din", din.stream())
        eye.set_input("clk", ck.stream())

        graph.propagate()
        pattern = eye.get_data()
        assert isinstance(pattern, EyeWaveform)
        assert pattern.ui_width == 50 * NS
        # samples between the first and last of 19 clock edges, each drawn twice
        assert pattern.total_uis == 900
        assert pattern.accumulator.sum() == 1800
        rows = np.nonzero(pattern.accumulator_2d().sum(axis=1))[0].tolist()
        assert rows == [pattern.voltage_to_row(-0.25), pattern.voltage_to_row(0.25)]

        graph.propagate()
        assert eye.get_data() is pattern
        assert pattern.accumulator.sum() == 3600

    def test_geometry_change_restarts(self):
        din, ck = self.nrz()
        graph = FilterGraph()
        eye = graph.add(Filter("EyePattern"))
        eye.set_input("din", din.stream())
        eye.set_input("clk", ck.stream())
        graph.propagate()
        eye.set_param("Width", 100)
        graph.propagate()
        pattern = eye.get_data()
        assert pattern.width == 100
        assert pattern.accumulator.sum() == 1800

    def test_horizontal_bathtub(self):
        src = eye_channel(small_eye([4, 2, 1, 0, 0, 0, 0, 1, 2, 4]))
        graph = FilterGraph()
        tub = graph.add(Filter("HorizontalBathtub"))
        tub.set_input(0, src.stream())
        graph.propagate()
        curve = tub.get_data()
        assert len(curve) == 10
        assert curve.offsets.tolist() == list(range(-1000, 1000, 200))
        assert curve.durations.tolist() == [200] * 10
        assert curve.samples[0] == 0.0
        assert curve.samples[5] == BATHTUB_FLOOR

    def test_horizontal_bathtub_outside_eye(self):
        src = eye_channel(small_eye([1] * 10))
        graph = FilterGraph()
        tub = graph.add(Filter("HorizontalBathtub"))
        tub.set_input(0, src.stream())
        tub.set_param("Voltage", 3.0)
        graph.propagate()
        assert tub.get_data() is None

    def test_vertical_bathtub_in_microvolts(self):
        eye = EyeWaveform(10, 8, 0.0, 1.0, 1000)
        eye.accumulator_2d()[:, 5] = [3, 1, 0, 0, 0, 0, 1, 3]
        src = eye_channel(eye)
        graph = FilterGraph()
        tub = graph.add(Filter("VerticalBathtub"))
        tub.set_input(0, src.stream())
        graph.propagate()
        curve = tub.get_data()
        assert tub.streams[0].x_unit == Unit.MICROVOLTS
        assert curve.offsets.tolist() == [-500_000 + 125_000 * r for r in range(8)]
        assert curve.samples[0] == 0.0
        assert curve.samples[4] == BATHTUB_FLOOR
