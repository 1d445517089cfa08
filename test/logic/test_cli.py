import click.testing
import numpy as np
import pytest

from wavescope.cli import cli
from wavescope.types import SParameters
from wavescope.util import device_cache


@pytest.fixture
def cli_runner():
    return click.testing.CliRunner()


@pytest.fixture(autouse=True)
def quiet(monkeypatch, tmp_path):
    # the console sink would otherwise bind to the runner's captured stream
    monkeypatch.setattr("wavescope.cli.base.setup_logging", lambda *a, **kw: None)
    monkeypatch.setattr(device_cache, "CACHE_DIR", tmp_path / "device_cache")


@pytest.fixture
def networks(tmp_path):
    freqs = [1e9, 2e9, 3e9]
    line = SParameters.from_complex(
        freqs,
        np.zeros(3),
        0.8 * np.exp(-1j * np.array([0.5, 1.0, 1.5])),
        0.8 * np.exp(-1j * np.array([0.5, 1.0, 1.5])),
        np.zeros(3),
    )
    line.save_touchstone(tmp_path / "line.s2p")
    SParameters.identity(freqs).save_touchstone(tmp_path / "thru.s2p")
    return tmp_path, line


class TestListing:
    def test_tree(self, cli_runner):
        result = cli_runner.invoke(cli, ["--tree"])
        assert result.exit_code == 0
        for name in ("acquire", "cascade", "deembed", "drivers", "filters", "visa-list"):
            assert f"└── {name}" in result.output

    def test_drivers(self, cli_runner, registry):
        result = cli_runner.invoke(cli, ["drivers"])
        assert result.exit_code == 0
        assert "Available drivers:" in result.output
        assert "  - rs" in result.output
        assert "  - scpi" in result.output

    def test_transports(self, cli_runner, registry):
        result = cli_runner.invoke(cli, ["transports"])
        assert result.exit_code == 0
        assert "  - mock" in result.output
        assert "  - visa" in result.output

    def test_filters_by_category(self, cli_runner):
        result = cli_runner.invoke(cli, ["filters", "-c", "Eye"])
        assert result.exit_code == 0
        assert "EyePattern" in result.output
        assert "GMII" not in result.output


class TestVisaList:
    def test_no_devices(self, cli_runner, monkeypatch):
        monkeypatch.setattr(
            "wavescope.cli.base.list_visa_devices", lambda **kwargs: {}
        )
        result = cli_runner.invoke(cli, ["visa-list"])
        assert result.exit_code == 0
        assert "No VISA devices found" in result.output

    def test_devices(self, cli_runner, monkeypatch):
        seen = {}

        def fake_list(filter_string=None, vendor_filter=None, progress_callback=None):
            seen.update(filter=filter_string, vendor=vendor_filter)
            progress_callback(1, 1, "done")
            return {
                "TCPIP0::10.0.0.5::INSTR": {
                    "status": "connected",
                    "idn": "Wavescope,MOCK-4,0001,1.0",
                    "error": None,
                },
                "USB0::1::2::3::INSTR": {
                    "status": "error",
                    "idn": None,
                    "error": "timeout",
                },
            }

        monkeypatch.setattr("wavescope.cli.base.list_visa_devices", fake_list)
        result = cli_runner.invoke(cli, ["visa-list", "-f", "TCPIP", "-v", "Wavescope"])
        assert result.exit_code == 0
        assert seen == {"filter": "TCPIP", "vendor": "Wavescope"}
        assert "Address: TCPIP0::10.0.0.5::INSTR" in result.output
        assert "Device: Wavescope,MOCK-4,0001,1.0" in result.output
        assert "Error: timeout" in result.output


class TestAcquire:
    def test_mock_capture(self, cli_runner, registry):
        result = cli_runner.invoke(cli, ["acquire", "-t", "mock", "-w", "5"])
        assert result.exit_code == 0, result.output
        assert "CHAN1" in result.output
        assert "1000" in result.output

    def test_measure(self, cli_runner, registry):
        result = cli_runner.invoke(cli, ["acquire", "-t", "mock", "-f", "-m", "Frequency"])
        assert result.exit_code == 0, result.output
        assert "Measurements" in result.output
        # ten 100 sample cycles give nine periods
        assert "9 samples" in result.output

    def test_unknown_measurement(self, cli_runner, registry):
        result = cli_runner.invoke(cli, ["acquire", "-t", "mock", "-m", "Flux"])
        assert result.exit_code != 0

    def test_unknown_transport(self, cli_runner, registry):
        result = cli_runner.invoke(cli, ["acquire", "-t", "carrier-pigeon"])
        assert result.exit_code == 1
        assert "Unknown transport" in result.output


class TestNetworks:
    def test_cascade(self, cli_runner, networks):
        path, line = networks
        out = path / "out.s2p"
        result = cli_runner.invoke(
            cli, ["cascade", str(path / "line.s2p"), str(path / "thru.s2p"), "-o", str(out)]
        )
        assert result.exit_code == 0, result.output
        assert f"Wrote 3 points to {out}" in result.output
        loaded = SParameters.load_touchstone(out)
        np.testing.assert_allclose(loaded["S21"].amplitudes, line["S21"].amplitudes, rtol=1e-8)

    def test_deembed(self, cli_runner, networks):
        path, line = networks
        both = path / "both.s2p"
        out = path / "out.s2p"
        result = cli_runner.invoke(
            cli, ["cascade", str(path / "line.s2p"), str(path / "line.s2p"), "-o", str(both)]
        )
        assert result.exit_code == 0, result.output
        result = cli_runner.invoke(
            cli,
            ["deembed", str(both), str(path / "line.s2p"), "-o", str(out), "--side", "left"],
        )
        assert result.exit_code == 0, result.output
        loaded = SParameters.load_touchstone(out)
        np.testing.assert_allclose(loaded["S21"].amplitudes, 0.8, rtol=1e-6)

    def test_unreadable_network(self, cli_runner, networks):
        path, _ = networks
        bad = path / "bad.s2p"
        bad.write_text("# HZ S MA R 50\n1 two 3\n")
        result = cli_runner.invoke(
            cli, ["cascade", str(bad), str(path / "thru.s2p"), "-o", str(path / "out.s2p")]
        )
        assert result.exit_code == 1
        assert "Could not read" in result.output
