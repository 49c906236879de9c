"""Detached process launch and signal delivery."""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
from datetime import datetime
from pathlib import Path

import psutil

from delegate.config import resolve_signal
from delegate.registry.models import DelegateRecord, SignalDeliveryError, SpawnError
from delegate.storage.common import utc_now

logger = logging.getLogger(__name__)

# psutil create_time is derived from boot time and clock ticks and can drift
# slightly from wall clock.
PID_REUSE_TOLERANCE_SECONDS = 2.0

_STREAM_SUFFIXES = (".stdout", ".stdin", ".stderr")


class ProcessSpawner:
    """Launch a shell command in its own session with stdio redirected to temp files."""

    def __init__(self, *, shell: str = "bash", stream_dir: Path | None = None) -> None:
        self.shell = shell
        self.stream_dir = stream_dir

    def spawn(self, command: str, group: int | None = None) -> DelegateRecord:
        if not command.strip():
            raise SpawnError("Nothing to delegate: command is empty.")

        try:
            if self.stream_dir is not None:
                self.stream_dir.mkdir(parents=True, exist_ok=True)
            stdout_path, stdin_path, stderr_path = (
                self._create_stream_file(suffix) for suffix in _STREAM_SUFFIXES
            )
        except OSError as error:
            raise SpawnError(f"Could not create stream files: {error}") from error

        try:
            with (
                stdin_path.open("rb") as stdin_handle,
                stdout_path.open("wb") as stdout_handle,
                stderr_path.open("wb") as stderr_handle,
            ):
                process = subprocess.Popen(  # noqa: S603
                    [self.shell, "-c", command],
                    stdin=stdin_handle,
                    stdout=stdout_handle,
                    stderr=stderr_handle,
                    close_fds=True,
                    start_new_session=True,
                )
        except OSError as error:
            raise SpawnError(f"Could not start {command!r} with {self.shell}: {error}") from error

        logger.info("Spawned pid %d: %s", process.pid, command)
        return DelegateRecord(
            pid=process.pid,
            command=command,
            stdout_path=str(stdout_path),
            stdin_path=str(stdin_path),
            stderr_path=str(stderr_path),
            group=group,
            ongoing=True,
            created_at=utc_now(),
        )

    def _create_stream_file(self, suffix: str) -> Path:
        handle = tempfile.NamedTemporaryFile(  # noqa: SIM115
            prefix="delegate-",
            suffix=suffix,
            dir=self.stream_dir,
            delete=False,
        )
        handle.close()
        return Path(handle.name)


class ProcessTerminator:
    """Deliver a termination signal to a pid looked up fresh from the OS."""

    def __init__(self, *, signal_name: str = "SIGTERM") -> None:
        self.signal = resolve_signal(signal_name)

    def terminate(self, pid: int, *, started_at: datetime | None = None) -> None:
        try:
            process = psutil.Process(pid)
            if process.status() == psutil.STATUS_ZOMBIE:
                raise SignalDeliveryError(f"Process {pid} has already exited", pid=pid)
            if started_at is not None:
                _ensure_same_process(process, started_at=started_at)
            if _leads_own_group(pid):
                os.killpg(pid, self.signal)
            else:
                process.send_signal(self.signal)
        except psutil.NoSuchProcess as error:
            raise SignalDeliveryError(f"Process {pid} not found", pid=pid) from error
        except psutil.AccessDenied as error:
            raise SignalDeliveryError(f"Not allowed to signal process {pid}", pid=pid) from error
        except ProcessLookupError as error:
            raise SignalDeliveryError(f"Process {pid} not found", pid=pid) from error
        except PermissionError as error:
            raise SignalDeliveryError(f"Not allowed to signal process {pid}", pid=pid) from error
        logger.info("Sent %s to pid %d", self.signal.name, pid)


def is_running(pid: int) -> bool:
    """Whether ``pid`` currently names a live (non-zombie) process."""

    try:
        return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        return True


def _ensure_same_process(process: psutil.Process, *, started_at: datetime) -> None:
    created = process.create_time()
    if created > started_at.timestamp() + PID_REUSE_TOLERANCE_SECONDS:
        raise SignalDeliveryError(
            f"Process {process.pid} was started after the delegate was recorded "
            "(pid reused by another program)",
            pid=process.pid,
        )


def _leads_own_group(pid: int) -> bool:
    if not hasattr(os, "killpg"):
        return False
    try:
        return os.getpgid(pid) == pid
    except ProcessLookupError:
        return False
