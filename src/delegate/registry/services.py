"""Lifecycle use cases: start, list, kill, reset, restart, gc."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Protocol

from delegate.registry.models import (
    DelegateRecord,
    GcReport,
    KillReport,
    RecordNotFoundError,
    ResetReport,
    RestartedRecord,
    RestartReport,
    SignalDeliveryError,
    SignalFailure,
)
from delegate.registry.repository import DelegateRepository

logger = logging.getLogger(__name__)

_SQLITE_MAX_INTEGER = 2**63 - 1


class Spawner(Protocol):
    def spawn(self, command: str, group: int | None = None) -> DelegateRecord: ...


class Terminator(Protocol):
    def terminate(self, pid: int, *, started_at: datetime | None = None) -> None: ...


class DelegateService:
    """Coordinates process launch and signal delivery with the registry."""

    def __init__(
        self,
        *,
        repository: DelegateRepository,
        spawner: Spawner,
        terminator: Terminator,
    ) -> None:
        self.repository = repository
        self.spawner = spawner
        self.terminator = terminator

    def start(self, command: str, group: int | None = None) -> DelegateRecord:
        """Spawn ``command`` detached and register it as live."""

        record = self.spawner.spawn(command, group)
        # The OS just handed out this pid, so any live row still holding it is stale.
        stale = self.repository.mark_dead(record)
        if stale:
            logger.warning("Marked %d stale record(s) for reused pid %d dead", stale, record.pid)
        return self.repository.insert(record)

    def list_records(
        self,
        *,
        group: int | None = None,
        include_dead: bool = False,
    ) -> list[DelegateRecord]:
        if group is not None:
            return self.repository.list_by_group(group, live_only=not include_dead)
        if include_dead:
            return self.repository.list_all()
        return self.repository.list_live()

    def kill(self, token: str) -> KillReport:
        """Kill by pid, falling back to group number, or by command name prefix."""

        # Surrounding whitespace only matters for name prefixes, which match literally.
        stripped = token.strip()
        if not stripped:
            raise ValueError("Kill token must not be empty.")

        digits = stripped.removeprefix("+")
        if digits.isascii() and digits.isdigit():
            number = int(digits)
            if number > _SQLITE_MAX_INTEGER:
                raise RecordNotFoundError(f"No ongoing delegate with pid or group {token}")
            try:
                targets = [self.repository.get_live_by_pid(number)]
                matched_by = "pid"
            except RecordNotFoundError:
                targets = self.repository.list_by_group(number, live_only=True)
                matched_by = "group"
                if not targets:
                    raise RecordNotFoundError(
                        f"No ongoing delegate with pid {number} or in group {number}",
                    ) from None
        else:
            targets = self.repository.list_live_by_name_prefix(token)
            matched_by = "name"
            if not targets:
                raise RecordNotFoundError(
                    f"No ongoing delegate whose command starts with {token!r}",
                )

        report = KillReport(token=token, matched_by=matched_by)
        for record in targets:
            try:
                self._signal(record)
            except SignalDeliveryError as error:
                logger.warning("Could not kill pid %d: %s", record.pid, error)
                report.failures.append(SignalFailure(record=record, error=str(error)))
                continue
            self.repository.mark_dead(record)
            report.killed.append(record)
        return report

    def reset(self) -> ResetReport:
        """Kill every live record best-effort, then destroy the registry."""

        report = ResetReport()
        for record in self.repository.list_live():
            try:
                self._signal(record)
            except SignalDeliveryError as error:
                logger.warning("Could not kill pid %d during reset: %s", record.pid, error)
                report.failures.append(SignalFailure(record=record, error=str(error)))
                continue
            report.killed.append(record)
        self.repository.reset()
        return report

    def restart(self, group: int | None = None) -> RestartReport:
        """Kill and re-spawn live records of ``group``, or every live record."""

        if group is not None:
            targets = self.repository.list_by_group(group, live_only=True)
        else:
            targets = self.repository.list_live()

        report = RestartReport(group=group)
        for record in targets:
            try:
                self._signal(record)
            except SignalDeliveryError as error:
                # The old process may already be gone; restart proceeds regardless.
                logger.warning("Could not kill pid %d before restart: %s", record.pid, error)
                report.failures.append(SignalFailure(record=record, error=str(error)))
            self.repository.mark_dead(record)
            current = self.start(record.command, record.group)
            report.restarted.append(RestartedRecord(previous=record, current=current))
        return report

    def gc(self, *, dry_run: bool = False) -> GcReport:
        """Remove stream files that only dead records reference."""

        records = self.repository.list_all()
        live_paths = {path for record in records if record.ongoing for path in record.stream_paths}
        report = GcReport(dry_run=dry_run, records_scanned=len(records))
        seen: set[str] = set()
        for record in records:
            if record.ongoing:
                continue
            for raw_path in record.stream_paths:
                if raw_path in live_paths or raw_path in seen:
                    continue
                seen.add(raw_path)
                path = Path(raw_path)
                if not path.exists():
                    report.files_missing += 1
                    continue
                if not dry_run:
                    try:
                        path.unlink(missing_ok=True)
                    except OSError as error:
                        logger.warning("Could not delete stream file %s: %s", raw_path, error)
                        report.files_failed.append(raw_path)
                        continue
                logger.debug("Stream file %s of pid %d collected", raw_path, record.pid)
                report.files_deleted.append(raw_path)
        return report

    def _signal(self, record: DelegateRecord) -> None:
        self.terminator.terminate(record.pid, started_at=record.created_at)
