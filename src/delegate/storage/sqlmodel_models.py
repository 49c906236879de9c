"""SQLModel ORM table for delegated commands."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, Text, text
from sqlmodel import Field, SQLModel


class DelegateCommandRow(SQLModel, table=True):
    __tablename__ = "delegate_command"  # type: ignore[bad-override]

    id: int | None = Field(default=None, primary_key=True)
    pid: int = Field(index=True)
    command: str = Field(sa_column=Column(Text, nullable=False))
    stdout_path: str = Field(sa_column=Column(Text, nullable=False))
    stdin_path: str = Field(sa_column=Column(Text, nullable=False))
    stderr_path: str = Field(sa_column=Column(Text, nullable=False))
    ongoing: int = Field(
        default=1,
        sa_column=Column(Integer, nullable=False, server_default=text("1"), index=True),
    )
    group_num: int | None = Field(default=None, index=True)
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
