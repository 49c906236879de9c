"""Persistent registry of delegated commands."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from alembic.util import CommandError
from sqlalchemy import func
from sqlalchemy import update as sa_update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from delegate.registry.models import (
    AmbiguousRecordError,
    DelegateRecord,
    RecordNotFoundError,
    StorageError,
)
from delegate.storage.alembic_runner import upgrade_head
from delegate.storage.common import (
    build_sqlite_engine,
    sqlite_sidecar_paths,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from delegate.storage.sqlmodel_models import DelegateCommandRow

logger = logging.getLogger(__name__)


class DelegateRepository:
    """Registry persistence facade backed by SQLModel + SQLite."""

    def __init__(self, db_path: Path, *, sqlite_busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        self._destroyed = False
        with _storage_errors("open"):
            db_path.parent.mkdir(parents=True, exist_ok=True)
            self.engine = build_sqlite_engine(
                db_path=db_path,
                busy_timeout_ms=sqlite_busy_timeout_ms,
            )

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Create or migrate the registry table."""

        self._ensure_usable()
        with _storage_errors("schema migration"):
            upgrade_head(self.db_path)

    def insert(self, record: DelegateRecord) -> DelegateRecord:
        """Append a new live row and return it with its storage id."""

        self._ensure_usable()
        with _storage_errors("insert"), Session(self.engine) as session:
            row = DelegateCommandRow(
                pid=record.pid,
                command=record.command,
                stdout_path=record.stdout_path,
                stdin_path=record.stdin_path,
                stderr_path=record.stderr_path,
                ongoing=1 if record.ongoing else 0,
                group_num=record.group,
                created_at=to_db_datetime(record.created_at or utc_now()),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_record(row)

    def list_live(self) -> list[DelegateRecord]:
        """All rows still considered running."""

        return self._select(col(DelegateCommandRow.ongoing) == 1)

    def list_all(self) -> list[DelegateRecord]:
        """Every row ever recorded, live or dead."""

        return self._select()

    def list_by_group(self, group: int, *, live_only: bool = False) -> list[DelegateRecord]:
        """Rows tagged with ``group``; dead rows are included unless ``live_only``."""

        conditions = [col(DelegateCommandRow.group_num) == group]
        if live_only:
            conditions.append(col(DelegateCommandRow.ongoing) == 1)
        return self._select(*conditions)

    def list_live_by_name_prefix(self, prefix: str) -> list[DelegateRecord]:
        """Live rows whose command starts with ``prefix``, compared literally."""

        return self._select(
            col(DelegateCommandRow.ongoing) == 1,
            func.substr(DelegateCommandRow.command, 1, len(prefix)) == prefix,
        )

    def get_live_by_pid(self, pid: int) -> DelegateRecord:
        records = self._select(
            col(DelegateCommandRow.ongoing) == 1,
            col(DelegateCommandRow.pid) == pid,
        )
        if len(records) > 1:
            raise AmbiguousRecordError(f"More than one ongoing delegate for pid {pid}")
        if not records:
            raise RecordNotFoundError(f"No ongoing delegate with pid {pid}")
        return records[0]

    def mark_dead(self, record: DelegateRecord) -> int:
        """Flip every live row sharing the record's pid to dead.

        Returns the number of rows changed; zero when already dead.
        """

        self._ensure_usable()
        with _storage_errors("mark dead"), Session(self.engine) as session:
            result = session.exec(
                sa_update(DelegateCommandRow)
                .where(
                    col(DelegateCommandRow.pid) == record.pid,
                    col(DelegateCommandRow.ongoing) == 1,
                )
                .values(ongoing=0),
            )
            session.commit()
            return result.rowcount or 0

    def reset(self) -> None:
        """Destroy the whole registry file; the handle is unusable afterwards."""

        self._ensure_usable()
        self.engine.dispose()
        self._destroyed = True
        with _storage_errors("reset"):
            for path in sqlite_sidecar_paths(self.db_path):
                path.unlink(missing_ok=True)
        logger.info("Registry database removed: %s", self.db_path)

    def _select(self, *conditions) -> list[DelegateRecord]:
        self._ensure_usable()
        statement = select(DelegateCommandRow)
        if conditions:
            statement = statement.where(*conditions)
        statement = statement.order_by(col(DelegateCommandRow.id).asc())
        with _storage_errors("query"), Session(self.engine) as session:
            return [_to_record(row) for row in session.exec(statement).all()]

    def _ensure_usable(self) -> None:
        if self._destroyed:
            raise StorageError(f"Registry {self.db_path} was reset; reopen it to continue.")


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    try:
        yield
    except (SQLAlchemyError, sqlite3.Error, CommandError, OSError) as error:
        raise StorageError(f"Registry {action} failed: {error}") from error


def _to_record(row: DelegateCommandRow) -> DelegateRecord:
    data = row.model_dump()
    created_at = data.get("created_at")
    if created_at is not None:
        data["created_at"] = to_utc_aware_datetime(created_at)
    return DelegateRecord.from_mapping(data)
