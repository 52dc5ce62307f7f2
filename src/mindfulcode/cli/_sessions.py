"""mindfulcode sessions / stats / prune — read and maintain the session history."""

from __future__ import annotations

import json
import sys
from datetime import UTC, datetime, timedelta

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from mindfulcode.core.constants import DEFAULT_HISTORY_DAYS, DEFAULT_RETENTION_DAYS, DEFAULT_STATS_DAYS

console = Console()


@click.group("sessions", invoke_without_command=True)
@click.pass_context
def sessions_group(ctx: click.Context) -> None:
    """Session history commands."""
    if ctx.invoked_subcommand is None:
        ctx.invoke(sessions_list)


@sessions_group.command("list")
@click.option("--days", default=DEFAULT_HISTORY_DAYS, show_default=True, help="Look-back window")
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON")
def sessions_list(days: int = DEFAULT_HISTORY_DAYS, as_json: bool = False) -> None:
    """List sessions started in the last N days."""
    cmd_sessions_list(days=days, as_json=as_json, console=console)


@sessions_group.command("show")
@click.argument("session_id")
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON")
def sessions_show(session_id: str, as_json: bool = False) -> None:
    """Show details and summary for one session (full or short ID)."""
    cmd_sessions_show(session_id=session_id, as_json=as_json, console=console)


@click.command("stats")
@click.option("--days", default=DEFAULT_STATS_DAYS, show_default=True, help="Period length in days")
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON")
def stats_cmd(days: int, as_json: bool) -> None:
    """Aggregate statistics for completed sessions, with trend vs the previous period."""
    cmd_stats(days=days, as_json=as_json, console=console)


@click.command("prune")
@click.option(
    "--days", default=DEFAULT_RETENTION_DAYS, show_default=True, help="Keep sessions newer than this"
)
def prune_cmd(days: int) -> None:
    """Delete sessions older than N days."""
    cmd_prune(days=days, console=console)


def _open_db():
    """Open the session database, or return None when it does not exist yet."""
    from mindfulcode.core.config import load_config_or_default
    from mindfulcode.core.exceptions import ConfigError

    try:
        config = load_config_or_default()
    except ConfigError as exc:
        console.print(f"[red]Config error:[/red] {escape(str(exc))}")
        sys.exit(1)

    db_path = config.db_path
    if not db_path.exists():
        return None
    from mindfulcode.core.store.database import Database

    db = Database(db_path)
    db.connect()
    return db


# ------------------------------------------------------------------
# sessions list
# ------------------------------------------------------------------


def _state_label(snapshot) -> str:
    if snapshot.end_time is not None:
        return "[dim]ended[/dim]"
    if snapshot.is_paused:
        return "[yellow]paused[/yellow]"
    return "[green]active[/green]"


def cmd_sessions_list(*, days: int, as_json: bool, console: Console) -> None:
    from mindfulcode.core.summary import format_duration

    db = _open_db()
    if db is None:
        if as_json:
            print("[]")
        else:
            console.print("[dim]No sessions recorded yet.[/dim]")
            console.print("\nRun [cyan]mindfulcode track[/cyan] to start a session.")
        return

    try:
        snapshots = db.list_recent_sessions(days)

        if as_json:
            print(json.dumps([s.to_dict() for s in snapshots], indent=2))
            return

        if not snapshots:
            console.print(f"[dim]No sessions in the last {days} days.[/dim]")
            return

        table = Table(title="Sessions", show_lines=False)
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Started", style="dim")
        table.add_column("State")
        table.add_column("Duration", justify="right")
        table.add_column("Keystrokes", justify="right")
        table.add_column("Files", justify="right")
        table.add_column("Flow", justify="right")

        for s in snapshots:
            table.add_row(
                s.short_id(),
                s.start_time.strftime("%Y-%m-%d %H:%M"),
                _state_label(s),
                format_duration(s.duration),
                str(s.keystrokes),
                str(len(s.files_worked_on)),
                format_duration(s.flow_state_duration),
            )

        console.print(table)
    finally:
        db.close()


# ------------------------------------------------------------------
# sessions show
# ------------------------------------------------------------------


def cmd_sessions_show(*, session_id: str, as_json: bool, console: Console) -> None:
    from mindfulcode.core.summary import format_duration, summarize
    from mindfulcode.ui.notifications import summary_lines

    db = _open_db()
    if db is None:
        console.print("[red]No database found.[/red]")
        sys.exit(1)

    try:
        snapshot = db.get_session(session_id)
        if snapshot is None:
            matches = db.find_sessions(session_id)
            if len(matches) == 1:
                snapshot = matches[0]
            elif len(matches) > 1:
                console.print(
                    f"[yellow]Ambiguous ID '{session_id}' matches "
                    f"{len(matches)} sessions. Use more characters.[/yellow]"
                )
                sys.exit(1)

        if snapshot is None:
            console.print(f"[red]Session not found: {session_id}[/red]")
            sys.exit(1)

        summary = summarize(snapshot)
        if as_json:
            data = snapshot.to_dict()
            data["focus_score"] = summary.focus_score
            data["productivity"] = summary.productivity
            data["recommendations"] = [str(r) for r in summary.recommendations]
            print(json.dumps(data, indent=2))
            return

        console.print(f"[bold]Session[/bold] [cyan]{snapshot.id}[/cyan]")
        console.print(f"  Started:       {snapshot.start_time.isoformat()}")
        ended = snapshot.end_time.isoformat() if snapshot.end_time else "-"
        console.print(f"  Ended:         {ended}")
        console.print(f"  Paused:        {format_duration(snapshot.paused_duration)}")
        console.print(f"  Interruptions: {snapshot.interruptions}")
        console.print()
        for line in summary_lines(summary):
            console.print(line)
        if snapshot.files_worked_on:
            console.print("\n[bold]Files[/bold]")
            for path in snapshot.files_worked_on:
                console.print(f"  {escape(path)}")
    finally:
        db.close()


# ------------------------------------------------------------------
# stats
# ------------------------------------------------------------------

_TREND_STYLE = {"up": "green", "down": "red", "stable": "dim"}


def cmd_stats(*, days: int, as_json: bool, console: Console) -> None:
    from mindfulcode.core.summary import format_duration, productivity_trend

    db = _open_db()
    if db is None:
        if as_json:
            print("{}")
        else:
            console.print("[dim]No sessions recorded yet.[/dim]")
        return

    try:
        now = datetime.now(UTC)
        current = db.session_stats(days, now=now)
        previous = db.session_stats(days, now=now - timedelta(days=days))
    finally:
        db.close()

    trend = productivity_trend(current.total_coding_time, previous.total_coding_time)

    if as_json:
        data = {
            "days": days,
            "total_sessions": current.total_sessions,
            "total_coding_time": current.total_coding_time,
            "total_flow_time": current.total_flow_time,
            "average_session_length": current.average_session_length,
            "total_keystrokes": current.total_keystrokes,
            "unique_files_worked": current.unique_files_worked,
            "trend": trend,
        }
        print(json.dumps(data, indent=2))
        return

    flow_pct = (
        round(current.total_flow_time / current.total_coding_time * 100)
        if current.total_coding_time
        else 0
    )
    style = _TREND_STYLE[trend]

    table = Table(title=f"Last {days} days", show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Sessions", str(current.total_sessions))
    table.add_row("Coding time", format_duration(current.total_coding_time))
    table.add_row("Flow time", f"{format_duration(current.total_flow_time)} ({flow_pct}%)")
    table.add_row("Average session", format_duration(int(current.average_session_length)))
    table.add_row("Keystrokes", str(current.total_keystrokes))
    table.add_row("Files", str(current.unique_files_worked))
    table.add_row("Trend", f"[{style}]{trend}[/{style}]")
    console.print(table)


# ------------------------------------------------------------------
# prune
# ------------------------------------------------------------------


def cmd_prune(*, days: int, console: Console) -> None:
    db = _open_db()
    if db is None:
        console.print("[dim]Nothing to prune.[/dim]")
        return
    try:
        deleted = db.delete_old_sessions(days)
    finally:
        db.close()
    console.print(f"Deleted {deleted} session(s) older than {days} days.")
