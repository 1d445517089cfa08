"""Tests for S-parameter vectors, Touchstone files, cascading and de-embedding."""

import numpy as np
import pytest

from wavescope.filters import Filter, FilterGraph
from wavescope.sparams import Side, cascade, deembed
from wavescope.types import ProtocolError
from wavescope.types.sparams import SPARAM_NAMES, SParameters, SParameterVector

FREQS = np.array([1e9, 2e9, 3e9, 4e9])


def network(scale=1.0):
    """A lossy, slightly reflective two-port whose values vary with frequency."""
    n = np.arange(len(FREQS))
    return SParameters.from_complex(
        FREQS,
        scale * 0.1 * np.exp(1j * (0.3 + 0.1 * n)),
        0.9 * np.exp(-1j * (0.5 + 0.4 * n)),
        0.9 * np.exp(-1j * (0.5 + 0.4 * n)),
        scale * 0.2 * np.exp(1j * (0.1 - 0.2 * n)),
    )


def assert_same_network(a, b):
    np.testing.assert_allclose(a.frequencies, b.frequencies)
    for x, y in zip(a.to_complex(), b.to_complex(a.frequencies)):
        np.testing.assert_allclose(x, y, atol=1e-9)


class TestVector:
    def test_interpolation(self):
        v = SParameterVector([1.0, 3.0], [1.0, 3.0], [0.0, 1.0])
        p = v.interpolate_point(2.0)
        assert p.amplitude == pytest.approx(2.0)
        assert p.phase == pytest.approx(0.5)
        assert v.interpolate_point(3.0).amplitude == 3.0

    def test_out_of_range(self):
        v = SParameterVector([1.0, 3.0], [0.5, 3.0], [0.2, 1.0])
        below = v.interpolate_point(0.5)
        assert (below.amplitude, below.phase) == (0.5, 0.0)
        above = v.interpolate_point(4.0)
        assert (above.amplitude, above.phase) == (0.0, 0.0)

    def test_phase_takes_short_way_round(self):
        v = SParameterVector([0.0, 2.0], [1.0, 1.0], [3.0, -3.1])
        # halfway across the +-pi seam, not through zero
        assert v.interpolate_point(1.0).phase == pytest.approx(3.0 + (2 * np.pi - 6.1) / 2)

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            SParameterVector([1.0, 2.0], [1.0], [0.0, 0.0])

    def test_waveforms(self):
        v = SParameterVector(FREQS, [1.0, 0.1, 0.01, 0.5], np.radians([0, 90, -90, 45]))
        mag, ang = v.to_waveforms()
        assert mag.offsets.tolist() == [1_000_000_000, 2_000_000_000, 3_000_000_000, 4_000_000_000]
        np.testing.assert_allclose(mag.samples[:3], [0.0, -20.0, -40.0])
        np.testing.assert_allclose(ang.samples, [0, 90, -90, 45])
        back = SParameterVector.from_waveforms(mag, ang)
        np.testing.assert_allclose(back.amplitudes, v.amplitudes)
        np.testing.assert_allclose(back.phases, v.phases)


class TestAlgebra:
    def test_cascade_with_identity(self):
        net = network()
        assert_same_network(cascade(net, SParameters.identity(FREQS)), net)
        assert_same_network(cascade(SParameters.identity(FREQS), net), net)

    def test_cascade_of_matched_lines_multiplies_transmission(self):
        a = network(scale=0.0)
        out = cascade(a, a)
        s21 = out["S21"].to_complex()
        np.testing.assert_allclose(s21, a["S21"].to_complex() ** 2)

    def test_deembed_right(self):
        a, b = network(), network(scale=0.5)
        assert_same_network(deembed(cascade(a, b), b, Side.RIGHT), a)

    def test_deembed_left(self):
        a, b = network(), network(scale=0.5)
        assert_same_network(deembed(cascade(a, b), a, "Left"), b)

    def test_cascade_resamples_second_network(self):
        a = network()
        b = SParameters.identity([0.0, 5e9])
        assert_same_network(cascade(a, b), a)


class TestTouchstone:
    def test_round_trip(self, tmp_path):
        net = network()
        path = tmp_path / "dut.s2p"
        net.save_touchstone(path)
        assert path.read_text().startswith("# HZ S MA R 50")
        loaded = SParameters.load_touchstone(path)
        np.testing.assert_array_equal(loaded.frequencies, FREQS)
        for name in SPARAM_NAMES:
            np.testing.assert_allclose(loaded[name].amplitudes, net[name].amplitudes, rtol=1e-8)
            np.testing.assert_allclose(loaded[name].phases, net[name].phases, atol=1e-8)

    def test_column_order_and_formats(self, tmp_path):
        path = tmp_path / "db.s2p"
        path.write_text(
            "! two frequency points\n"
            "# GHz S DB R 50\n"
            "1 -20 0   -1 90   -2 180   -40 0 ! S11 S21 S12 S22\n"
            "\n"
            "2 -20 0   -1 90   -2 180   -40 0\n"
        )
        net = SParameters.load_touchstone(path)
        np.testing.assert_allclose(net.frequencies, [1e9, 2e9])
        np.testing.assert_allclose(net["S11"].amplitudes, 0.1)
        np.testing.assert_allclose(net["S21"].phases, np.pi / 2)
        np.testing.assert_allclose(net["S12"].amplitudes, 10 ** (-2 / 20))
        np.testing.assert_allclose(net["S22"].amplitudes, 0.01)

    def test_real_imaginary(self, tmp_path):
        path = tmp_path / "ri.s2p"
        path.write_text("# MHZ S RI R 50\n100 0 0.5 1 0 1 0 0.5 0\n")
        net = SParameters.load_touchstone(path)
        assert net.frequencies.tolist() == [1e8]
        assert net["S11"][0].amplitude == pytest.approx(0.5)
        assert net["S11"][0].phase == pytest.approx(np.pi / 2)

    def test_garbage(self, tmp_path):
        path = tmp_path / "bad.s2p"
        path.write_text("# HZ S MA R 50\n1 two 3\n")
        with pytest.raises(ProtocolError, match="line 2"):
            SParameters.load_touchstone(path)

    def test_no_two_port_rows(self, tmp_path):
        path = tmp_path / "s1p.s2p"
        path.write_text("# HZ S MA R 50\n1e9 0.5 0\n")
        with pytest.raises(ProtocolError):
            SParameters.load_touchstone(path)


def source(path):
    f = Filter("SParameterSource")
    f.set_param("File Name", str(path))
    return f


def wire(f, base, src):
    for k in range(8):
        assert f.set_input(base + k, src.stream(k))


def output_network(f):
    return SParameters(
        {
            name: SParameterVector.from_waveforms(f.get_data(2 * k), f.get_data(2 * k + 1))
            for k, name in enumerate(SPARAM_NAMES)
        }
    )


@pytest.mark.usefixtures("builtin_filters")
class TestFilters:
    def test_source_without_file_is_empty(self):
        graph = FilterGraph()
        f = graph.add(Filter("SParameterSource"))
        graph.propagate()
        assert f.get_data(0) is None

    def test_cascade_filter(self, tmp_path):
        network().save_touchstone(tmp_path / "a.s2p")
        SParameters.identity(FREQS).save_touchstone(tmp_path / "thru.s2p")
        graph = FilterGraph()
        a = graph.add(source(tmp_path / "a.s2p"))
        thru = graph.add(source(tmp_path / "thru.s2p"))
        casc = graph.add(Filter("SParameterCascade"))
        wire(casc, 0, a)
        wire(casc, 8, thru)
        graph.propagate()
        assert casc.streams[0].x_unit.value == "Hz"
        assert_same_network(output_network(casc), network())

    def test_deembed_filter(self, tmp_path):
        a, b = network(), network(scale=0.5)
        cascade(a, b).save_touchstone(tmp_path / "combined.s2p")
        a.save_touchstone(tmp_path / "fixture.s2p")
        graph = FilterGraph()
        combined = graph.add(source(tmp_path / "combined.s2p"))
        fixture = graph.add(source(tmp_path / "fixture.s2p"))
        de = graph.add(Filter("SParameterDeEmbed"))
        de.set_param("Known Network Side", "Left")
        wire(de, 0, combined)
        wire(de, 8, fixture)
        graph.propagate()
        out = output_network(de)
        for x, y in zip(out.to_complex(), b.to_complex()):
            np.testing.assert_allclose(x, y, atol=1e-6)

    def test_source_reloads_on_new_path(self, tmp_path):
        network().save_touchstone(tmp_path / "a.s2p")
        network(scale=0.5).save_touchstone(tmp_path / "b.s2p")
        graph = FilterGraph()
        f = graph.add(source(tmp_path / "a.s2p"))
        graph.propagate()
        first = output_network(f)["S11"].amplitudes.copy()
        f.set_param("File Name", str(tmp_path / "b.s2p"))
        graph.propagate()
        np.testing.assert_allclose(output_network(f)["S11"].amplitudes, first / 2, rtol=1e-6)
