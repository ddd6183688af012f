"""
cade sources - List upstream message sources.

Usage:
    cade sources
    cade sources --format json
"""

import click
from rich.table import Table

from ..adapters.registry import get_source, list_sources
from ..utils.output import console, print_json


@click.command("sources")
@click.option("--format", "output_format", type=click.Choice(["table", "json"]),
              default="table", help="Output format")
def sources(output_format: str):
    """List available upstream sources and their models."""
    infos = [get_source(name).get_info() for name in list_sources()]

    if output_format == "json":
        print_json(infos)
        return

    table = Table(title="Sources")
    table.add_column("Name", style="cyan")
    table.add_column("Models")
    for info in infos:
        table.add_row(info["name"], ", ".join(info.get("models") or []) or "-")
    console.print(table)
