"""
Mindful Code CLI entry point.

Commands:
  mindfulcode track              — track a coding session from a stdin activity feed
  mindfulcode sessions list      — list recent sessions
  mindfulcode sessions show ID   — show one session with its summary
  mindfulcode stats              — aggregate statistics and trend
  mindfulcode prune              — delete old sessions
"""

from __future__ import annotations

import click
from rich.console import Console

from mindfulcode import __version__

console = Console()
err_console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, "--version", "-V", message="mindfulcode %(version)s")
@click.option(
    "--log-level", default=None, help="Log level for structured logging (default: from config)."
)
@click.option("--log-json", is_flag=True, default=False, help="Emit JSON log lines.")
def cli(log_level: str | None, log_json: bool) -> None:
    """Mindful Code — coding session tracking with flow detection."""
    from mindfulcode.core.logging import configure_logging

    if log_level is None:
        log_level, log_json = _configured_logging(log_json)
    configure_logging(level=log_level, json_output=log_json)


def _configured_logging(log_json: bool) -> tuple[str, bool]:
    from mindfulcode.core.config import load_config_or_default
    from mindfulcode.core.exceptions import ConfigError

    try:
        logging_cfg = load_config_or_default().logging
    except ConfigError:
        # Reported by the subcommand that needs the config.
        return "WARNING", log_json
    return logging_cfg.level, log_json or logging_cfg.format == "json"


# ---------------------------------------------------------------------------
# track
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--workspace",
    "-w",
    "workspaces",
    multiple=True,
    type=click.Path(file_okay=False),
    help="Workspace root; files outside it are tracked without a file name. Repeatable.",
)
@click.option("--no-flow", is_flag=True, default=False, help="Disable flow state detection.")
def track(workspaces: tuple[str, ...], no_flow: bool) -> None:
    """
    Track a coding session from stdin.

    Each line is one activity event: a file path, or an empty line for
    activity without a file.  Commands: :start :pause :resume :end :status :flow.
    EOF or Ctrl-C ends the session.
    """
    from mindfulcode.cli._track import cmd_track

    raise SystemExit(
        cmd_track(
            workspaces=list(workspaces),
            flow_enabled=not no_flow,
            stream=click.get_text_stream("stdin"),
            console=console,
        )
    )


# ---------------------------------------------------------------------------
# sessions / stats / prune
# ---------------------------------------------------------------------------


from mindfulcode.cli._sessions import prune_cmd, sessions_group, stats_cmd  # noqa: E402

cli.add_command(sessions_group)
cli.add_command(stats_cmd)
cli.add_command(prune_cmd)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
