import pytest

from wavescope.device import (
    ScpiOscilloscope,
    connect,
    create_oscilloscope,
    enum_drivers,
    register_driver,
    scope_protocol_static_init,
    scope_protocol_static_teardown,
)
from wavescope.device.mock import MockTransport
from wavescope.types import ConfigurationError, SessionConfig
from wavescope.util import device_cache


@pytest.fixture(autouse=True)
def isolated_cache(tmp_path, monkeypatch):
    monkeypatch.setattr(device_cache, "CACHE_DIR", tmp_path / "device_cache")


class TestRegistry:
    def test_init_is_idempotent(self, registry):
        scope_protocol_static_init()
        assert enum_drivers() == ["rs", "scpi"]

    def test_teardown_empties_registry(self):
        scope_protocol_static_init()
        scope_protocol_static_teardown()
        assert enum_drivers() == []
        with pytest.raises(ConfigurationError, match="not initialised"):
            create_oscilloscope("scpi", MockTransport())

    def test_register_requires_init(self):
        scope_protocol_static_teardown()
        with pytest.raises(ConfigurationError):
            register_driver("custom", ScpiOscilloscope)

    def test_register_custom_driver(self, registry):
        register_driver("custom", ScpiOscilloscope)
        assert "custom" in enum_drivers()
        scope = create_oscilloscope("custom", MockTransport())
        assert isinstance(scope, ScpiOscilloscope)

    def test_unknown_driver(self, registry):
        with pytest.raises(ConfigurationError, match="Unknown driver"):
            create_oscilloscope("tek", MockTransport())


class TestConnect:
    def test_mock(self, registry):
        scope = connect(SessionConfig(driver="scpi", transport="mock"))
        try:
            assert scope.is_connected()
            assert scope.vendor == "Wavescope"
            assert scope.analog_channel_count == 4
            assert scope.digital_pod_count == 0
        finally:
            scope.close()
        assert not scope.is_connected()
        # simulated sessions are not remembered
        assert device_cache.load_session("scpi") is None

    def test_mock_with_pods(self, registry):
        scope = connect(SessionConfig(driver="scpi", transport="mock", address="mso"))
        try:
            assert scope.digital_pod_count == 2
            assert scope.channels[4].hwname == "POD1.D0"
        finally:
            scope.close()

    def test_unknown_transport(self, registry):
        with pytest.raises(KeyError, match="Unknown transport"):
            connect(SessionConfig(driver="scpi", transport="carrier-pigeon"))

    def test_cached_address_used_when_empty(self, registry):
        device_cache.remember_session(SessionConfig(driver="scpi", transport="mock", address="mso"))
        scope = connect(SessionConfig(driver="scpi", transport="mock"))
        try:
            assert scope.config.address == "mso"
            assert scope.digital_pod_count == 2
        finally:
            scope.close()


class TestDeviceCache:
    def test_session_round_trip(self):
        config = SessionConfig(
            driver="rs", address="TCPIP0::10.0.0.5::INSTR", timeout=5.0, max_pending=3
        )
        device_cache.remember_session(config)
        assert device_cache.load_session("rs") == config
        assert device_cache.load_session("scpi") is None

    def test_resolve_fills_empty_address(self):
        device_cache.remember_session(SessionConfig(driver="rs", address="TCPIP0::a::INSTR"))
        resolved = device_cache.resolve_session(SessionConfig(driver="rs", timeout=9.0))
        assert resolved.address == "TCPIP0::a::INSTR"
        assert resolved.timeout == 9.0

    def test_resolve_keeps_explicit_address(self):
        device_cache.remember_session(SessionConfig(driver="rs", address="TCPIP0::a::INSTR"))
        config = SessionConfig(driver="rs", address="TCPIP0::b::INSTR")
        assert device_cache.resolve_session(config) is config

    def test_resolve_ignores_other_transport(self):
        device_cache.remember_session(SessionConfig(driver="rs", address="TCPIP0::a::INSTR"))
        config = SessionConfig(driver="rs", transport="mock")
        assert device_cache.resolve_session(config).address == ""

    @pytest.mark.parametrize(
        "text", ["not json", "[1, 2]", '{"timeout": 1.0}', '{"driver": "rs", "timeout": -1}']
    )
    def test_unreadable_cache_ignored(self, text):
        device_cache.CACHE_DIR.mkdir(parents=True)
        (device_cache.CACHE_DIR / "rs.json").write_text(text)
        assert device_cache.load_session("rs") is None

    def test_cache_for_other_driver_ignored(self):
        device_cache.CACHE_DIR.mkdir(parents=True)
        (device_cache.CACHE_DIR / "rs.json").write_text('{"driver": "scpi"}')
        assert device_cache.load_session("rs") is None
