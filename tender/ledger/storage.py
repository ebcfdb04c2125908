"""Persistence models for the dispatch ledger."""

from __future__ import annotations

import datetime as dt
import typing as typ

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from tender.common.time import utcnow
from tender.events.models import CanonicalEvent, EventKind
from tender.ledger.errors import NaiveDatetimeError
from tender.ledger.states import DispatchState

if typ.TYPE_CHECKING:
    from sqlalchemy.engine import Dialect
    from sqlalchemy.ext.asyncio import AsyncEngine


class Base(DeclarativeBase):
    """Declarative base for ledger tables."""


class UTCDateTime(TypeDecorator[dt.datetime]):
    """DateTime column that keeps UTC tzinfo on every backend, SQLite included."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Reject naive values and bind everything else as UTC."""
        if value is None:
            return None
        if value.tzinfo is None:
            raise NaiveDatetimeError
        return value.astimezone(dt.UTC)

    def process_result_value(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Return aware UTC datetimes regardless of driver behaviour."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=dt.UTC)
        return value.astimezone(dt.UTC)


class DispatchEvent(Base):
    """Canonical event accepted by the ledger; never mutated."""

    __tablename__ = "dispatch_events"
    __table_args__ = (
        Index("ix_dispatch_events_account_resource", "source_account", "resource_id"),
    )

    event_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    source_account: Mapped[str] = mapped_column(String(64))
    resource_id: Mapped[str] = mapped_column(String(1024))
    event_kind: Mapped[str] = mapped_column(String(16))
    sequence_token: Mapped[str] = mapped_column(String(255))
    occurred_at: Mapped[dt.datetime] = mapped_column(UTCDateTime())
    received_at: Mapped[dt.datetime] = mapped_column(UTCDateTime())

    def to_canonical(self) -> CanonicalEvent:
        """Return the stored event as a :class:`CanonicalEvent`."""
        return CanonicalEvent(
            event_id=self.event_id,
            source_account=self.source_account,
            resource_id=self.resource_id,
            event_kind=EventKind(self.event_kind),
            sequence_token=self.sequence_token,
            occurred_at=self.occurred_at,
            received_at=self.received_at,
        )


class DispatchRecord(Base):
    """Lifecycle of one canonical event through execution."""

    __tablename__ = "dispatch_records"
    __table_args__ = (
        Index("ix_dispatch_records_state", "state"),
        Index("ix_dispatch_records_task_handle", "task_handle"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(
        ForeignKey("dispatch_events.event_id", ondelete="CASCADE"), unique=True
    )
    state: Mapped[int] = mapped_column(Integer, default=DispatchState.PENDING.value)
    attempt_count: Mapped[int] = mapped_column(Integer, default=0)
    last_attempt_at: Mapped[dt.datetime | None] = mapped_column(
        UTCDateTime(), default=None
    )
    task_handle: Mapped[str | None] = mapped_column(String(512), default=None)
    template_name: Mapped[str | None] = mapped_column(String(255), default=None)
    failure_reason: Mapped[str | None] = mapped_column(Text(), default=None)
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow
    )

    event: Mapped[DispatchEvent] = relationship(lazy="joined")

    @property
    def dispatch_state(self) -> DispatchState:
        """Return ``state`` as a :class:`DispatchState`."""
        return DispatchState(self.state)


async def init_ledger_storage(engine: AsyncEngine) -> None:
    """Create ledger tables if they are absent."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
