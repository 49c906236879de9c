"""Runtime configuration for the delegate registry and process launcher."""

from __future__ import annotations

import os
import signal
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_DB_FILENAME = ".delegatedb"


@dataclass(slots=True)
class ProcessSettings:
    """How delegated commands are launched and stopped."""

    shell: str = "bash"
    stream_dir: Path | None = None
    kill_signal: str = "SIGTERM"


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = field(default_factory=lambda: default_db_path())
    sqlite_busy_timeout_ms: int = 5_000
    process: ProcessSettings = field(default_factory=ProcessSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment, falling back to the home-directory database."""

        env_db_path = os.getenv("DELEGATE_DB_PATH", "").strip()
        stream_dir = os.getenv("DELEGATE_STREAM_DIR", "").strip()
        if db_path is None:
            db_path = Path(env_db_path).expanduser() if env_db_path else default_db_path()
        return cls(
            db_path=db_path,
            sqlite_busy_timeout_ms=int(os.getenv("DELEGATE_SQLITE_BUSY_TIMEOUT_MS", "5000")),
            process=ProcessSettings(
                shell=os.getenv("DELEGATE_SHELL", "bash").strip(),
                stream_dir=Path(stream_dir).expanduser() if stream_dir else None,
                kill_signal=os.getenv("DELEGATE_KILL_SIGNAL", "SIGTERM").strip().upper(),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for values the registry cannot work with."""

        if self.sqlite_busy_timeout_ms <= 0:
            raise ValueError("DELEGATE_SQLITE_BUSY_TIMEOUT_MS must be > 0.")
        if not self.process.shell:
            raise ValueError("DELEGATE_SHELL must not be empty.")
        resolve_signal(self.process.kill_signal)


def default_db_path() -> Path:
    """Hidden registry file in the invoking user's home directory."""

    return Path.home() / DEFAULT_DB_FILENAME


def resolve_signal(name: str) -> signal.Signals:
    normalized = name.strip().upper()
    if not normalized.startswith("SIG"):
        normalized = f"SIG{normalized}"
    try:
        return signal.Signals[normalized]
    except KeyError as error:
        raise ValueError(
            f"Invalid DELEGATE_KILL_SIGNAL value: {name!r}. Expected a signal name like SIGTERM.",
        ) from error
