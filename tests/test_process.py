from __future__ import annotations

import os
from datetime import timedelta
from pathlib import Path

import allure
import psutil
import pytest

from delegate.registry.models import SignalDeliveryError, SpawnError
from delegate.registry.process import ProcessSpawner, ProcessTerminator, is_running
from delegate.storage.common import utc_now

pytestmark = [
    allure.epic("Delegate Registry"),
    allure.feature("Detached Processes"),
]


def test_spawn_redirects_streams_to_kept_temp_files(tmp_path: Path, reap_pids) -> None:
    spawner = ProcessSpawner(shell="sh", stream_dir=tmp_path / "streams")

    record = spawner.spawn("echo out; echo err >&2; cat", group=4)
    reap_pids.append(record.pid)
    psutil.Process(record.pid).wait(timeout=10)

    assert record.ongoing is True
    assert record.group == 4
    assert record.command == "echo out; echo err >&2; cat"
    assert record.created_at is not None
    assert Path(record.stdout_path).read_text("utf-8") == "out\n"
    assert Path(record.stderr_path).read_text("utf-8") == "err\n"
    assert Path(record.stdin_path).exists()
    assert record.stdout_path.endswith(".stdout")
    assert record.stdin_path.endswith(".stdin")
    assert record.stderr_path.endswith(".stderr")
    assert all(Path(path).parent == tmp_path / "streams" for path in record.stream_paths)


def test_spawned_process_runs_in_its_own_session(tmp_path: Path, reap_pids) -> None:
    record = ProcessSpawner(shell="sh", stream_dir=tmp_path).spawn("sleep 30")
    reap_pids.append(record.pid)

    assert os.getsid(record.pid) == record.pid
    assert os.getsid(record.pid) != os.getsid(0)
    assert is_running(record.pid)


def test_spawn_rejects_empty_command(tmp_path: Path) -> None:
    with pytest.raises(SpawnError, match="empty"):
        ProcessSpawner(stream_dir=tmp_path).spawn("   ")


def test_spawn_wraps_missing_shell_as_spawn_error(tmp_path: Path) -> None:
    spawner = ProcessSpawner(shell=str(tmp_path / "no-such-shell"), stream_dir=tmp_path)

    with pytest.raises(SpawnError, match="Could not start"):
        spawner.spawn("true")


def test_terminate_stops_running_process(tmp_path: Path, reap_pids) -> None:
    record = ProcessSpawner(shell="sh", stream_dir=tmp_path).spawn("sleep 30")
    reap_pids.append(record.pid)

    ProcessTerminator(signal_name="SIGTERM").terminate(record.pid, started_at=record.created_at)

    psutil.Process(record.pid).wait(timeout=10)
    assert not is_running(record.pid)


def test_terminate_reports_missing_process(tmp_path: Path, reap_pids) -> None:
    record = ProcessSpawner(shell="sh", stream_dir=tmp_path).spawn("true")
    reap_pids.append(record.pid)
    psutil.Process(record.pid).wait(timeout=10)

    with pytest.raises(SignalDeliveryError) as error_info:
        ProcessTerminator().terminate(record.pid)
    assert error_info.value.pid == record.pid


def test_terminate_refuses_process_started_after_record(tmp_path: Path, reap_pids) -> None:
    record = ProcessSpawner(shell="sh", stream_dir=tmp_path).spawn("sleep 30")
    reap_pids.append(record.pid)

    with pytest.raises(SignalDeliveryError, match="pid reused"):
        ProcessTerminator().terminate(
            record.pid,
            started_at=utc_now() - timedelta(hours=1),
        )
    assert is_running(record.pid)
