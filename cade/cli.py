#!/usr/bin/env python3
"""
cade - Conversational Agent aDapter

Command-line tooling around the conversation audit trail.

Usage:
    cade audit show .cade/audit/cade-20250101T120000Z-4242.jsonl
    cade audit stats LOG
    cade sources

For more information: cade --help
"""

import click

from . import __version__
from .commands.audit import audit
from .commands.sources import sources
from .core.logging import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="cade")
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v, -vv, -vvv)")
@click.option("-q", "--quiet", is_flag=True, help="Suppress output except errors")
@click.option("--json-errors", is_flag=True, help="Output errors as JSON for CI integration")
@click.pass_context
def cli(ctx: click.Context, verbose: int, quiet: bool, json_errors: bool) -> None:
    """cade - Conversational Agent aDapter

    Inspect the audit logs written by conversation sessions.

    \b
    Verbosity:
      -v       INFO level (turns, tools, costs)
      -vv      DEBUG level (hook dispatch, aggregation)
      -vvv     TRACE level (raw upstream messages)
      -q       Quiet mode (errors only)

    \b
    Examples:
      cade audit show LOG --event tool_use
      cade audit history LOG
      cade --json-errors audit stats LOG 2>&1 | jq .error
    """
    ctx.ensure_object(dict)
    ctx.obj["verbosity"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["json_errors"] = json_errors
    setup_logging(verbose, quiet)


cli.add_command(audit)
cli.add_command(sources)


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
