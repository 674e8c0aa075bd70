"""CLI entry points for the WSTK extcap bridge."""

import click
from rich.console import Console
from rich.table import Table

from pti_extcap import __version__
from pti_extcap.discovery import BROADCAST_ADDRESS, DEFAULT_TIMEOUT, run_discovery
from pti_extcap.extcap import run as run_extcap

console = Console()

# Extcap flags must reach the protocol untouched, --help included
EXTCAP_CONTEXT = {
    "ignore_unknown_options": True,
    "allow_extra_args": True,
    "help_option_names": [],
}


@click.group()
@click.version_option(version=__version__)
def cli():
    """Silicon Labs WSTK debug channel bridge for Wireshark."""
    pass


@cli.command(context_settings=EXTCAP_CONTEXT)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def extcap(ctx, args):
    """Run one Wireshark extcap request (--extcap-interfaces, --capture, ...)."""
    ctx.exit(run_extcap(list(args)))


@cli.command()
@click.option(
    "--timeout",
    type=float,
    default=DEFAULT_TIMEOUT,
    show_default=True,
    help="Seconds to wait for replies",
)
@click.option(
    "--broadcast",
    default=BROADCAST_ADDRESS,
    show_default=True,
    help="Broadcast address for the discovery request",
)
def discover(timeout, broadcast):
    """Broadcast a discovery request and list the adapters that answer."""
    console.print(f"🔍 Discovering adapters ({timeout:g}s)...")
    try:
        records = run_discovery(lambda record: None, timeout=timeout, broadcast_address=broadcast)
    except OSError as e:
        console.print(f"[red]✗ Discovery failed: {e}[/red]")
        raise SystemExit(1)

    if not records:
        console.print("[yellow]⚠️  No adapters found[/yellow]")
        return

    table = Table(title=f"{len(records)} adapter(s)")
    table.add_column("Address")
    table.add_column("Interface")
    table.add_column("Name")
    table.add_column("Attributes")
    for record in records:
        table.add_row(
            record.address,
            record.interface_value,
            record.display_name,
            ", ".join(f"{k}={v}" for k, v in record.attributes.items()),
        )
    console.print(table)


@click.command(context_settings=EXTCAP_CONTEXT)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def extcap_command(ctx, args):
    """Extcap executable as Wireshark invokes it."""
    ctx.exit(run_extcap(list(args)))


def main():
    """Entry point."""
    cli()


def extcap_main():
    """Entry point for the executable installed in Wireshark's extcap folder."""
    extcap_command()


if __name__ == "__main__":
    main()
