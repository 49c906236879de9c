"""Controllers for delegate CLI commands."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from delegate.config import Settings
from delegate.registry.models import DelegateRecord, SignalFailure
from delegate.registry.process import ProcessSpawner, ProcessTerminator, is_running
from delegate.registry.repository import DelegateRepository
from delegate.registry.services import DelegateService


@dataclass(slots=True)
class StartCommand:
    """CLI input for delegating a new command."""

    db_path: Path | None
    command: tuple[str, ...]
    group: int | None


@dataclass(slots=True)
class ListCommand:
    """CLI input for listing delegates."""

    db_path: Path | None
    group: int | None
    include_dead: bool


@dataclass(slots=True)
class KillCommand:
    """CLI input for kill by pid, group, or name prefix."""

    db_path: Path | None
    token: str


@dataclass(slots=True)
class ResetCommand:
    db_path: Path | None


@dataclass(slots=True)
class RestartCommand:
    """CLI input for restarting a group or every live delegate."""

    db_path: Path | None
    group: int | None


@dataclass(slots=True)
class GcCommand:
    """CLI input for stream file cleanup."""

    db_path: Path | None
    dry_run: bool


class DelegateCliController:
    """Coordinates registry operations and renders their outcome as lines."""

    def start(self, command: StartCommand) -> list[str]:
        command_line = " ".join(command.command).strip()
        if not command_line:
            raise ValueError("No command to delegate.")
        settings = _settings(command.db_path)
        with _service(settings) as service:
            record = service.start(command_line, command.group)
        return [
            "Started delegate: "
            f"pid={record.pid} group={_group_label(record.group)} command={record.command!r}",
            f"  stdout={record.stdout_path}",
            f"  stderr={record.stderr_path}",
        ]

    def list_delegates(self, command: ListCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _service(settings) as service:
            records = service.list_records(group=command.group, include_dead=command.include_dead)

        lines = [f"Delegates: {len(records)}"]
        for record in records:
            lines.append(_render_record(record, show_state=command.include_dead))
        return lines

    def kill(self, command: KillCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _service(settings) as service:
            report = service.kill(command.token)

        lines = [
            f"Kill by {report.matched_by} {report.token!r}: "
            f"killed={len(report.killed)} failed={len(report.failures)}",
        ]
        lines.extend(f"  killed pid={record.pid} {record.command!r}" for record in report.killed)
        lines.extend(_render_failures(report.failures))
        return lines

    def reset(self, command: ResetCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _service(settings) as service:
            report = service.reset()

        lines = [
            f"Killed delegates: {len(report.killed)}",
            *_render_failures(report.failures),
            f"Erased delegate registry: {settings.db_path}",
        ]
        return lines

    def restart(self, command: RestartCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _service(settings) as service:
            report = service.restart(command.group)

        scope = f"group {report.group}" if report.group is not None else "all delegates"
        if not report.restarted:
            return [f"Nothing to restart in {scope}."]
        lines = [f"Restarted {len(report.restarted)} delegate(s) in {scope}"]
        lines.extend(
            f"  pid {item.previous.pid} -> {item.current.pid} {item.current.command!r}"
            for item in report.restarted
        )
        lines.extend(_render_failures(report.failures))
        return lines

    def gc(self, command: GcCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _service(settings) as service:
            report = service.gc(dry_run=command.dry_run)

        return [
            f"Stream file GC completed: dry_run={'yes' if report.dry_run else 'no'}",
            f"Records scanned: {report.records_scanned}",
            f"Stream files deleted: {len(report.files_deleted)}",
            f"Stream files already missing: {report.files_missing}",
            f"Stream files not deletable: {len(report.files_failed)}",
        ]


def _settings(db_path: Path | None) -> Settings:
    settings = Settings.from_env(db_path=db_path)
    settings.validate()
    return settings


def _render_record(record: DelegateRecord, *, show_state: bool) -> str:
    pid, command, stdout_path, stdin_path, stderr_path, group = record.to_display_row()
    line = (
        f"  pid={pid} group={_group_label(group)} "
        f"alive={'yes' if record.ongoing and is_running(pid) else 'no'} "
    )
    if show_state:
        line += f"ongoing={1 if record.ongoing else 0} "
    return (
        line + f"command={command!r} stdout={stdout_path} stdin={stdin_path} stderr={stderr_path}"
    )


def _render_failures(failures: list[SignalFailure]) -> list[str]:
    return [
        f"  failed pid={failure.record.pid} {failure.record.command!r}: {failure.error}"
        for failure in failures
    ]


def _group_label(group: int | None) -> str:
    return "NULL" if group is None else str(group)


@contextmanager
def _service(settings: Settings) -> Iterator[DelegateService]:
    repository = DelegateRepository(
        settings.db_path,
        sqlite_busy_timeout_ms=settings.sqlite_busy_timeout_ms,
    )
    try:
        repository.init_schema()
        yield DelegateService(
            repository=repository,
            spawner=ProcessSpawner(
                shell=settings.process.shell,
                stream_dir=settings.process.stream_dir,
            ),
            terminator=ProcessTerminator(signal_name=settings.process.kill_signal),
        )
    finally:
        repository.close()
