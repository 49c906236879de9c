"""CLI entrypoint for delegate."""

from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import rich_click as click

from delegate import __version__
from delegate.registry import DelegateError
from delegate.registry.controllers import (
    DelegateCliController,
    GcCommand,
    KillCommand,
    ListCommand,
    ResetCommand,
    RestartCommand,
    StartCommand,
)

click.rich_click.USE_MARKDOWN = True
CONTROLLER = DelegateCliController()

CommandT = TypeVar("CommandT")


@click.group()
@click.version_option(version=__version__, prog_name="delegate")
def delegate() -> None:
    """Run shell commands detached in the background and manage them later."""


@delegate.command(
    "start",
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False},
)
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "-g",
    "--group",
    type=click.IntRange(min=0),
    default=None,
    help="Associate the delegate with a group number.",
)
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
def start(db_path: Path | None, group: int | None, command: tuple[str, ...]) -> None:
    """Start COMMAND detached, with its output redirected to temp files."""

    _emit_lines(
        _run(
            CONTROLLER.start,
            StartCommand(
                db_path=db_path,
                command=command,
                group=group,
            ),
        ),
    )


@delegate.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "-g",
    "--group",
    type=click.IntRange(min=0),
    default=None,
    help="Only show delegates of this group.",
)
@click.option(
    "--all/--live",
    "include_dead",
    default=False,
    show_default=True,
    help="Include killed and restarted delegates.",
)
def list_delegates(db_path: Path | None, group: int | None, include_dead: bool) -> None:
    """List ongoing delegates."""

    _emit_lines(
        _run(
            CONTROLLER.list_delegates,
            ListCommand(
                db_path=db_path,
                group=group,
                include_dead=include_dead,
            ),
        ),
    )


@delegate.command("kill")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("token")
def kill(db_path: Path | None, token: str) -> None:
    """Kill delegates by TOKEN.

    A number is tried as a pid first, then as a group number.
    Anything else is a command name prefix.
    """

    _emit_lines(_run(CONTROLLER.kill, KillCommand(db_path=db_path, token=token)))


@delegate.command("reset")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def reset(db_path: Path | None) -> None:
    """Kill every ongoing delegate and delete the registry."""

    _emit_lines(_run(CONTROLLER.reset, ResetCommand(db_path=db_path)))


@delegate.command("restart")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "-g",
    "--group",
    type=click.IntRange(min=0),
    default=None,
    help="Restart only this group; all ongoing delegates when omitted.",
)
def restart(db_path: Path | None, group: int | None) -> None:
    """Kill and start again ongoing delegates with the same command and group."""

    _emit_lines(_run(CONTROLLER.restart, RestartCommand(db_path=db_path, group=group)))


@delegate.command("gc")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--dry-run/--no-dry-run",
    default=False,
    show_default=True,
    help="Show what would be deleted without touching files.",
)
def gc(db_path: Path | None, dry_run: bool) -> None:
    """Delete stream files of delegates that are no longer ongoing."""

    _emit_lines(_run(CONTROLLER.gc, GcCommand(db_path=db_path, dry_run=dry_run)))


def _run(handler: Callable[[CommandT], list[str]], command: CommandT) -> list[str]:
    try:
        return handler(command)
    except (DelegateError, ValueError) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    delegate()
