"""
cade audit - Inspect conversation audit logs.

Usage:
    cade audit show LOG
    cade audit show LOG --event tool_use --limit 20
    cade audit show LOG --format json
    cade audit stats LOG
    cade audit history LOG
"""

import json
from pathlib import Path
from typing import Any, Optional

import click
from rich.markup import escape
from rich.table import Table

from ..core.exceptions import AuditLogError
from ..core.replay import read_audit_log, rebuild_history, summarize
from ..utils.output import console, handle_error, print_json


def _preview(data: Any, width: int = 60) -> str:
    """One-line preview of a record payload."""
    if data is None:
        return ""
    text = data if isinstance(data, str) else json.dumps(data, default=str)
    text = text.replace("\n", " ")
    if len(text) > width:
        return text[: width - 3] + "..."
    return text


def _load(ctx: click.Context, log_path: Path, strict: bool = True) -> list:
    try:
        return list(read_audit_log(log_path, strict=strict))
    except AuditLogError as e:
        json_errors = bool(ctx.obj and ctx.obj.get("json_errors"))
        ctx.exit(handle_error(e, json_errors=json_errors, context={"log": str(log_path)}))


@click.group("audit")
def audit():
    """Inspect conversation audit logs.

    \b
    Commands:
      show     List records in write order
      stats    Summarize turns, tools and cost
      history  Rebuild the conversation history

    \b
    Examples:
      cade audit show .cade/audit/cade-20250101T120000Z-4242.jsonl
      cade audit show LOG --event tool_use
      cade audit stats LOG --format json
    """
    pass


@audit.command("show")
@click.argument("log_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--event", "event_types", multiple=True, help="Only show these event types")
@click.option("--limit", "-n", type=int, default=None, help="Show at most N records")
@click.option("--format", "output_format", type=click.Choice(["table", "json"]),
              default="table", help="Output format")
@click.option("--lenient", is_flag=True, help="Skip malformed lines instead of failing")
@click.pass_context
def show(
    ctx: click.Context,
    log_path: Path,
    event_types: tuple[str, ...],
    limit: Optional[int],
    output_format: str,
    lenient: bool,
):
    """List audit records in write order."""
    records = _load(ctx, log_path, strict=not lenient)
    if event_types:
        records = [r for r in records if r.event_type in event_types]
    if limit is not None:
        records = records[:limit]

    if output_format == "json":
        print_json([r.to_dict() for r in records])
        return

    table = Table(title=f"{log_path.name} ({len(records)} records)")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Time", style="dim")
    table.add_column("Session")
    table.add_column("Event", style="cyan")
    table.add_column("Message")
    table.add_column("Data")

    for index, record in enumerate(records, 1):
        table.add_row(
            str(index),
            record.timestamp[11:19],
            (record.session_id or "-")[:8],
            record.event_type,
            record.message_type,
            escape(_preview(record.data)),
        )
    console.print(table)


@audit.command("stats")
@click.argument("log_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--format", "output_format", type=click.Choice(["table", "json"]),
              default="table", help="Output format")
@click.pass_context
def stats(ctx: click.Context, log_path: Path, output_format: str):
    """Summarize turns, tool usage and cost."""
    summary = summarize(_load(ctx, log_path))

    if output_format == "json":
        print_json({
            "records": summary.records,
            "raw_messages": summary.raw_messages,
            "turns": summary.turns,
            "errors": summary.errors,
            "total_cost_usd": summary.total_cost_usd,
            "session_ids": summary.session_ids,
            "events": summary.event_counts,
            "tools": summary.tool_counts,
            "first_timestamp": summary.first_timestamp,
            "last_timestamp": summary.last_timestamp,
        })
        return

    console.print(f"[bold]{log_path.name}[/bold]")
    console.print(f"  Records:      {summary.records} ({summary.raw_messages} raw messages)")
    console.print(f"  Turns:        {summary.turns} ({summary.errors} with errors)")
    console.print(f"  Cost:         ${summary.total_cost_usd:.4f}")
    console.print(f"  Sessions:     {', '.join(summary.session_ids) or '-'}")
    if summary.first_timestamp:
        console.print(f"  Span:         {summary.first_timestamp} → {summary.last_timestamp}")

    if summary.tool_counts:
        table = Table(title="Tools")
        table.add_column("Tool", style="cyan")
        table.add_column("Calls", justify="right")
        for name, count in sorted(summary.tool_counts.items(), key=lambda item: -item[1]):
            table.add_row(name, str(count))
        console.print(table)


@audit.command("history")
@click.argument("log_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--format", "output_format", type=click.Choice(["text", "json"]),
              default="text", help="Output format")
@click.pass_context
def history(ctx: click.Context, log_path: Path, output_format: str):
    """Rebuild the conversation history recorded in the log."""
    turns = rebuild_history(_load(ctx, log_path))

    if output_format == "json":
        print_json([turn.to_dict() for turn in turns])
        return

    if not turns:
        console.print("[dim]No conversation turns recorded[/dim]")
        return

    for turn in turns:
        style = "blue" if turn.role.value == "user" else "green"
        console.print(f"[bold {style}]{turn.role.value}:[/bold {style}] {escape(turn.text)}")
        for call in turn.tool_calls:
            status = "✗" if call.is_error else "✓"
            console.print(f"    {status} {call.name} {escape(_preview(call.input, 50))}")
