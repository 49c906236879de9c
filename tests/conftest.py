"""Shared test fixtures."""

from __future__ import annotations

import os
import signal
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import psutil
import pytest

from delegate.registry.models import DelegateRecord, SignalDeliveryError
from delegate.registry.repository import DelegateRepository
from delegate.storage.common import utc_now


@dataclass
class FakeSpawner:
    """Hands out increasing pids without starting anything."""

    next_pid: int = 40_000
    stream_dir: Path = Path("/tmp")
    spawned: list[DelegateRecord] = field(default_factory=list)

    def spawn(self, command: str, group: int | None = None) -> DelegateRecord:
        pid = self.next_pid
        self.next_pid += 1
        record = DelegateRecord(
            pid=pid,
            command=command,
            stdout_path=str(self.stream_dir / f"{pid}.stdout"),
            stdin_path=str(self.stream_dir / f"{pid}.stdin"),
            stderr_path=str(self.stream_dir / f"{pid}.stderr"),
            group=group,
            created_at=utc_now(),
        )
        self.spawned.append(record)
        return record


@dataclass
class FakeTerminator:
    """Records signalled pids; pids in ``gone`` fail like exited processes."""

    gone: set[int] = field(default_factory=set)
    signalled: list[int] = field(default_factory=list)

    def terminate(self, pid: int, *, started_at: datetime | None = None) -> None:
        if pid in self.gone:
            raise SignalDeliveryError(f"Process {pid} not found", pid=pid)
        self.signalled.append(pid)
        self.gone.add(pid)


@pytest.fixture()
def repository(tmp_path: Path):
    repo = DelegateRepository(tmp_path / "registry.db")
    repo.init_schema()
    try:
        yield repo
    finally:
        repo.close()


@pytest.fixture()
def fake_spawner(tmp_path: Path) -> FakeSpawner:
    return FakeSpawner(stream_dir=tmp_path)


@pytest.fixture()
def fake_terminator() -> FakeTerminator:
    return FakeTerminator()


@pytest.fixture()
def reap_pids():
    """Collect real pids started by a test and make sure they are gone afterwards."""

    pids: list[int] = []
    yield pids
    for pid in pids:
        try:
            os.killpg(pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            pass
        try:
            psutil.Process(pid).wait(timeout=5)
        except (psutil.NoSuchProcess, psutil.TimeoutExpired, ChildProcessError):
            pass


@pytest.fixture()
def delegate_env(tmp_path: Path, monkeypatch) -> Path:
    """Point the CLI at a throwaway registry and stream directory."""

    db_path = tmp_path / "delegatedb"
    monkeypatch.setenv("DELEGATE_DB_PATH", str(db_path))
    monkeypatch.setenv("DELEGATE_STREAM_DIR", str(tmp_path / "streams"))
    monkeypatch.delenv("DELEGATE_KILL_SIGNAL", raising=False)
    monkeypatch.setenv("DELEGATE_SHELL", "sh")
    return db_path
