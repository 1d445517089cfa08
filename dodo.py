# -*- coding: utf-8 -*-
# pydoit task file
# see https://pydoit.org/
# run from this dir with `doit`, or `doit list`, `doit help` etc. (pip install doit 1st)

from doit.action import CmdAction

_HELP_PARAM = {
    "name": "help",
    "long": "help",
    "default": False,
    "type": bool,
}

_SPEED_MARKERS = {
    "slow": "slow",
    "fast": "not slow",
    "not slow": "not slow",
    "all": None,
}


def _build_pytest_command(
    target,
    keyword="",
    speed="",
    retry=False,
    print_logs=False,
    full_trace=False,
    show_time=False,
):
    """Assemble the pytest command line for a test task."""
    cmd = ["pytest", "--color=yes", "-vv", "-x"]

    if print_logs:
        cmd.append("--capture=no")
    if full_trace:
        cmd.append("--full-trace")
    if show_time:
        cmd.append("--durations=0")
    if retry:
        cmd.append("--lf")
    if keyword:
        cmd.extend(["-k", f'"{keyword}"'])
    if speed:
        if speed not in _SPEED_MARKERS:
            raise ValueError(
                f"Invalid speed filter: {speed}. Use one of {', '.join(_SPEED_MARKERS)}"
            )
        marker = _SPEED_MARKERS[speed]
        if marker:
            cmd.extend(["-m", f'"{marker}"'])

    cmd.append(target)
    return " ".join(cmd)


_TEST_PARAMS = [
    _HELP_PARAM,
    {"name": "keyword", "short": "k", "default": ""},
    {"name": "speed", "short": "s", "default": ""},
    {"name": "retry", "short": "r", "default": False, "type": bool},
    {"name": "print_logs", "short": "p", "default": False, "type": bool},
    {"name": "full_trace", "short": "f", "default": False, "type": bool},
    {"name": "show_time", "short": "t", "default": False, "type": bool},
]


def task_install():
    """Install wavescope (with test extras) in editable mode"""
    return {
        "actions": ['pip install -e ".[test]"'],
        "verbosity": 2,
    }


def task_test_logic():
    """Run the logic test suite (test/logic/)."""

    def router(keyword, speed, retry, print_logs, full_trace, show_time, help=False):
        if help:
            return """echo '
Test Logic Runner Help
======================

Filter Options:
  -k, --keyword TEXT    Only run tests matching the keyword expression
                        Example: -k "rgmii and not status"
  -s, --speed TEXT      "slow", "fast" (= "not slow") or "all"
  -r, --retry           Only run previously failed tests

Output Options:
  -p, --print-logs      Print logs to the console instead of capturing
  -f, --full-trace      Show full traceback on errors
  -t, --show-time       Display duration of all tests

Examples:
  doit test_logic                     # everything in test/logic
  doit test_logic -k session          # tests with "session" in the name
  doit test_logic -s fast -p          # fast tests, TRACE wire log on screen
  '"""
        try:
            return _build_pytest_command(
                "test/logic/",
                keyword=keyword,
                speed=speed,
                retry=retry,
                print_logs=print_logs,
                full_trace=full_trace,
                show_time=show_time,
            )
        except ValueError as e:
            return f"echo 'Error: {e}' && exit 1"

    return {
        "actions": [CmdAction(router)],
        "params": _TEST_PARAMS,
        "verbosity": 2,
    }


def task_test_module():
    """Run one test module by short name, e.g. `doit test_module -n protocols`."""

    def router(name, keyword, speed, retry, print_logs, full_trace, show_time, help=False):
        if help or not name:
            return """echo '
Runs test/logic/test_<name>.py. Accepts the same options as test_logic.

Names: waveform, transport, session, rs_driver, registry, graph, measurements,
       protocols, eye, sparams, logging, cli
  '"""
        return _build_pytest_command(
            f"test/logic/test_{name}.py",
            keyword=keyword,
            speed=speed,
            retry=retry,
            print_logs=print_logs,
            full_trace=full_trace,
            show_time=show_time,
        )

    return {
        "actions": [CmdAction(router)],
        "params": [{"name": "name", "short": "n", "default": ""}, *_TEST_PARAMS],
        "verbosity": 2,
    }


def task_demo():
    """Capture from the simulated instrument and measure its frequency."""
    return {
        "actions": ["wavescope acquire -t mock -f -m Frequency -m PeakToPeak"],
        "verbosity": 2,
    }


def task_visa_list():
    """List VISA instruments visible from this machine."""
    return {
        "actions": ["wavescope visa-list"],
        "verbosity": 2,
    }


def task_format():
    """Sort imports and format with ruff."""
    paths = ["src/wavescope", "test", "dodo.py"]
    return {
        "actions": [f"ruff check --select I --fix {p}" for p in paths]
        + [f"ruff format {p}" for p in paths],
        "verbosity": 2,
    }
