from __future__ import annotations

import enum
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    text,
    true,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from punchclock.db import Base
from punchclock.errors import ScanError


class UserStateKind(str, enum.Enum):
    IN = "I"
    OUT = "O"


class AuditActorType(str, enum.Enum):
    ADMIN = "ADMIN"
    SYSTEM = "SYSTEM"


class UserState(Base):
    __tablename__ = "user_states"
    __table_args__ = (
        CheckConstraint("state IN ('I', 'O')", name="ck_user_states_state"),
        Index("ix_user_states_state", "state"),
    )

    uid: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    # Stored as the raw 'I'/'O' code; use ``kind`` to read it.
    state: Mapped[str] = mapped_column(String(1), nullable=False, default=UserStateKind.OUT.value)
    since_unix_s: Mapped[int] = mapped_column(BigInteger, nullable=False)

    @property
    def kind(self) -> UserStateKind:
        try:
            return UserStateKind(self.state)
        except ValueError as exc:
            raise ScanError(
                f"user_states row has unknown state {self.state!r}",
                step="scan_user_state",
                uid=self.uid,
            ) from exc


class Entry(Base):
    __tablename__ = "entries"
    __table_args__ = (
        Index("ix_entries_uid_from", "uid", "from_unix_s"),
    )

    eid: Mapped[int] = mapped_column(Integer, primary_key=True)
    uid: Mapped[int] = mapped_column(
        ForeignKey("user_states.uid", ondelete="CASCADE"),
        nullable=False,
    )
    from_unix_s: Mapped[int] = mapped_column(BigInteger, nullable=False)
    to_unix_s: Mapped[int] = mapped_column(BigInteger, nullable=False)
    valid: Mapped[bool] = mapped_column(
        Boolean(create_constraint=True, name="ck_entries_valid"),
        nullable=False,
        default=True,
        server_default=true(),
    )

    @property
    def duration_s(self) -> int:
        return self.to_unix_s - self.from_unix_s


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ts_utc: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        index=True,
    )
    actor_type: Mapped[AuditActorType] = mapped_column(
        Enum(AuditActorType, name="audit_actor_type"),
        nullable=False,
    )
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    action: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ip: Mapped[str | None] = mapped_column(String(128), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    details: Mapped[dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=dict,
    )
