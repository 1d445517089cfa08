import pytest

from wavescope.device import (
    create_oscilloscope,
    scope_protocol_static_init,
    scope_protocol_static_teardown,
)
from wavescope.device.mock import MockScpiInstrument, MockTransport
from wavescope.filters import load_builtin_filters
from wavescope.types import SessionConfig
from wavescope.util import TEST_LOGLEVEL, shutdown_client_log, start_client_log


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "slow: marks test as slow running test")
    config.addinivalue_line(
        "markers", "hardware: marks test that require physical hardware"
    )


@pytest.fixture(scope="session")
def client_log():
    start_client_log(log_to_file=False, log_to_stdout=True, log_level=TEST_LOGLEVEL)
    yield
    shutdown_client_log()


@pytest.fixture
def registry():
    scope_protocol_static_init()
    yield
    scope_protocol_static_teardown()


@pytest.fixture(scope="session")
def builtin_filters():
    load_builtin_filters()


@pytest.fixture
def instrument():
    return MockScpiInstrument()


@pytest.fixture
def mock_scope(registry, instrument):
    """An opened generic SCPI session on a simulated four channel instrument."""
    transport = MockTransport(instrument=instrument)
    scope = create_oscilloscope(
        "scpi",
        transport,
        SessionConfig(driver="scpi", transport="mock", poll_interval=0.0),
        clock=lambda: 0.5,
    )
    ok, msg = scope.open()
    assert ok, msg
    yield scope
    scope.close()
