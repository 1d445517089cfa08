import time
from typing import Optional

import click
import numpy as np
from click_option_group import optgroup
from loguru import logger
from rich.console import Console
from rich.table import Table
from tqdm import tqdm

from wavescope.util import DEFAULT_LOGLEVEL, format_error_response, start_client_log
from wavescope.util.check_hw import list_visa_devices


def print_tree(cmd, prefix="", parent_ctx=None):
    """Print command tree starting from given command."""
    ctx = click.Context(cmd, info_name=cmd.name, parent=parent_ctx)

    if not parent_ctx:
        click.echo(cmd.name)

    for sub in sorted(cmd.list_commands(ctx)):
        sub_cmd = cmd.get_command(ctx, sub)
        click.echo(f"{prefix}└── {sub}")
        if isinstance(sub_cmd, click.Group):
            print_tree(sub_cmd, prefix + "    ", ctx)


def tree_option(f):
    """Add --tree option to command."""

    def callback(ctx, param, value):
        if not value or ctx.resilient_parsing:
            return
        print_tree(ctx.command)
        ctx.exit()

    return click.option(
        "--tree",
        is_flag=True,
        help="Show command tree from this point",
        expose_value=False,
        is_eager=True,
        callback=callback,
    )(f)


def setup_logging(log_level: str = DEFAULT_LOGLEVEL, log_to_file: bool = False):
    start_client_log(log_to_file=log_to_file, log_to_stdout=True, log_level=log_level)


@click.group(name="wavescope")
@tree_option
def cli():
    """wavescope - oscilloscope acquisition and waveform analysis.

    - Connect to bench oscilloscopes over VISA (or a simulated instrument)

    - Capture waveforms and run measurement, protocol and eye filters on them

    - Cascade and de-embed S-parameter networks
    """
    pass


@cli.command()
def drivers():
    """List the registered oscilloscope drivers."""
    from wavescope.device import enum_drivers, scope_protocol_static_init

    scope_protocol_static_init()
    click.echo("\nAvailable drivers:")
    click.echo("------------------")
    for name in enum_drivers():
        click.echo(f"  - {name}")
    click.echo("")


@cli.command()
def transports():
    """List the registered SCPI transports."""
    from wavescope.device import scope_protocol_static_init
    from wavescope.transport import enum_transports

    scope_protocol_static_init()
    click.echo("\nAvailable transports:")
    click.echo("---------------------")
    for name in enum_transports():
        click.echo(f"  - {name}")
    click.echo("")


@cli.command()
@click.option("--category", "-c", default=None, help="Only list filters in this category")
def filters(category: Optional[str]):
    """List the available filter kinds."""
    from wavescope.filters import enum_filter_kinds, get_filter_kind, load_builtin_filters

    load_builtin_filters()
    table = Table(title="Filters")
    table.add_column("Name", style="cyan")
    table.add_column("Category")
    table.add_column("Inputs")
    table.add_column("Outputs")
    for name in enum_filter_kinds(category):
        kind = get_filter_kind(name)
        table.add_row(
            name,
            kind.category,
            ", ".join(i.name for i in kind.inputs) or "-",
            ", ".join(o.name for o in kind.outputs),
        )
    Console().print(table)


@cli.command(name="visa-list")
@click.option(
    "--filter", "-f", help='Filter devices by resource string (e.g. "USB" or "TCPIP")'
)
@click.option("--vendor", "-v", help="Filter devices by IDN vendor string")
def visa_list(filter: Optional[str], vendor: Optional[str]):
    """List all available VISA instruments.

    Displays the resource address, identification string and connection
    status of each instrument that answers ``*IDN?``.
    """
    with click.progressbar(length=100, label="Scanning devices") as bar:

        def progress_callback(current, total, msg):
            if total:
                bar.update(int(100 * current / total) - bar.pos)

        devices = list_visa_devices(
            filter_string=filter,
            vendor_filter=vendor,
            progress_callback=progress_callback,
        )

    click.echo("\nAvailable VISA devices:")
    click.echo("----------------------")

    if not devices:
        click.echo("No VISA devices found")
        click.echo("")
        return

    for addr, info in devices.items():
        click.echo(f"\nAddress: {addr}")
        click.echo(f"Status: {info['status']}")
        if info["status"] == "connected":
            click.echo(f"Device: {info['idn']}")
        elif info["error"]:
            click.echo(f"Error: {info['error']}")
    click.echo("")


def _channel_table(scope, seq) -> Table:
    table = Table(title=f"{scope.vendor} {scope.model}")
    table.add_column("Channel", style="cyan")
    table.add_column("Samples", justify="right")
    table.add_column("Timescale (fs)", justify="right")
    table.add_column("Min", justify="right")
    table.add_column("Max", justify="right")
    table.add_column("Mean", justify="right")
    for index, w in sorted(seq.items()):
        s = np.asarray(w.samples, dtype=np.float64)
        if len(s) == 0:
            stats = ("-", "-", "-")
        else:
            stats = (f"{s.min():.4g}", f"{s.max():.4g}", f"{s.mean():.4g}")
        table.add_row(scope.channels[index].hwname, str(len(w)), str(w.timescale), *stats)
    return table


def _measure(scope, seq, kinds: tuple[str, ...], source: int) -> Table:
    from wavescope.filters import Filter, FilterGraph, load_builtin_filters

    load_builtin_filters()
    graph = FilterGraph()
    graph.add_instrument(scope)
    added = []
    for kind in kinds:
        try:
            f = graph.add(Filter(kind))
        except KeyError as e:
            raise click.BadParameter(str(e), param_hint="--measure") from e
        if not f.set_input(0, scope.channels[source].stream()):
            raise click.BadParameter(f"{kind} cannot take {scope.channels[source].hwname}")
        added.append(f)
    graph.apply_sequence_set(scope, seq)

    table = Table(title="Measurements")
    table.add_column("Filter", style="cyan")
    table.add_column("Output")
    table.add_column("Value", justify="right")
    for f in added:
        for i, stream in enumerate(f.streams):
            if stream.is_scalar():
                value = f.get_scalar(i)
                text = "-" if value is None else f"{value:.6g} {stream.y_unit}"
            else:
                data = f.get_data(i)
                text = "-" if data is None else f"{len(data)} samples"
            table.add_row(f.name, stream.name, text)
    return table


@cli.command()
@optgroup.group("Connection")
@optgroup.option("--driver", "-d", default="scpi", help="Driver name (see `wavescope drivers`)")
@optgroup.option(
    "--transport", "-t", default="mock", help="Transport name (see `wavescope transports`)"
)
@optgroup.option("--address", "-a", default="", help="Transport address, e.g. a VISA resource")
@optgroup.option("--timeout", type=float, default=30.0, help="Transport timeout in seconds")
@optgroup.group("Acquisition")
@optgroup.option(
    "--channel", "-c", "channels", type=int, multiple=True, help="Enable this channel index"
)
@optgroup.option("--force/--no-force", "-f/", default=False, help="Force the trigger")
@optgroup.option(
    "--wait", "-w", type=float, default=10.0, help="Seconds to wait for a trigger"
)
@optgroup.option(
    "--measure", "-m", multiple=True, help="Filter kind to run on the first channel"
)
@optgroup.group("Logging")
@optgroup.option("--log-level", "-ll", default="WARNING", help="Console log level")
def acquire(
    driver: str,
    transport: str,
    address: str,
    timeout: float,
    channels: tuple[int, ...],
    force: bool,
    wait: float,
    measure: tuple[str, ...],
    log_level: str,
):
    """Capture one triggered acquisition and summarise it.

    Connects, arms a single trigger, downloads every enabled channel and
    prints a table of sample counts and voltage statistics. With --measure the
    named filters are run on the first captured channel.

    Usage
    `wavescope acquire -t visa -a TCPIP0::10.0.0.5::INSTR -c 0 -c 1 -m Frequency`
    """
    from wavescope.device import TriggerMode, connect, scope_protocol_static_init
    from wavescope.types import SessionConfig, WavescopeError

    setup_logging(log_level)
    scope_protocol_static_init()
    try:
        scope = connect(
            SessionConfig(driver=driver, transport=transport, address=address, timeout=timeout)
        )
    except (WavescopeError, KeyError) as e:
        logger.debug(format_error_response())
        raise click.ClickException(str(e)) from e

    try:
        for index in channels:
            scope.enable_channel(index)
        scope.start_single_trigger()
        if force:
            scope.force_trigger()
        deadline = time.monotonic() + wait
        while scope.poll_trigger() != TriggerMode.TRIGGERED:
            if time.monotonic() > deadline:
                raise click.ClickException(f"No trigger within {wait} s")
            time.sleep(scope.config.poll_interval)

        bars: dict[str, tqdm] = {}

        def progress(name: str, fraction: float):
            bar = bars.get(name)
            if bar is None:
                bar = bars[name] = tqdm(total=100, desc=name, unit="%", leave=False)
            bar.update(int(round(fraction * 100)) - bar.n)

        ok = scope.acquire_data(progress)
        for bar in bars.values():
            bar.close()
        seq = scope.pending.pop()
        if not ok or seq is None:
            raise click.ClickException("Acquisition failed, see log")

        console = Console()
        console.print(_channel_table(scope, seq))
        if measure and seq:
            console.print(_measure(scope, seq, measure, min(seq)))
    finally:
        scope.close()


def _load_network(path: str):
    from wavescope.types import SParameters, WavescopeError

    try:
        return SParameters.load_touchstone(path)
    except (OSError, WavescopeError) as e:
        raise click.ClickException(f"Could not read {path}: {e}") from e


@cli.command()
@click.argument("first", type=click.Path(exists=True, dir_okay=False))
@click.argument("second", type=click.Path(exists=True, dir_okay=False))
@click.option("--output", "-o", required=True, type=click.Path(dir_okay=False))
def cascade(first: str, second: str, output: str):
    """Cascade two Touchstone networks: FIRST followed by SECOND."""
    from wavescope.sparams import cascade as cascade_networks

    result = cascade_networks(_load_network(first), _load_network(second))
    result.save_touchstone(output)
    click.echo(f"Wrote {len(result.frequencies)} points to {output}")


@cli.command()
@click.argument("combined", type=click.Path(exists=True, dir_okay=False))
@click.argument("known", type=click.Path(exists=True, dir_okay=False))
@click.option("--output", "-o", required=True, type=click.Path(dir_okay=False))
@click.option(
    "--side",
    "-s",
    type=click.Choice(["left", "right"], case_sensitive=False),
    default="right",
    help="Which end of the chain the KNOWN network sits at (default: right)",
)
def deembed(combined: str, known: str, output: str, side: str):
    """Remove the KNOWN network from COMBINED, leaving the unknown half."""
    from wavescope.sparams import Side
    from wavescope.sparams import deembed as deembed_networks

    result = deembed_networks(
        _load_network(combined), _load_network(known), Side(side.capitalize())
    )
    result.save_touchstone(output)
    click.echo(f"Wrote {len(result.frequencies)} points to {output}")
