"""Wire and canonical event structures."""

from __future__ import annotations

import datetime as dt  # noqa: TC003 - msgspec resolves annotations at runtime
import enum

import msgspec


class EventKind(enum.StrEnum):
    """Storage change kinds the dispatcher understands."""

    CREATED = "created"
    REMOVED = "removed"


class RawEvent(msgspec.Struct, kw_only=True, frozen=True):
    """Notification received from the source account's object store.

    Attributes
    ----------
    source_account : str
        Account identifier that owns the object store.
    resource_id : str
        ``bucket/key`` style identifier of the changed object.
    event_type : EventKind
        Kind of change.
    sequence_token : str | None
        Ordering token issued by the store; required for deduplication.
    timestamp : datetime.datetime
        When the change occurred, timezone aware.
    assertion : str, optional
        Identity assertion (``sha256=<hex>`` HMAC) accompanying the event.

    """

    source_account: str
    resource_id: str
    event_type: EventKind
    sequence_token: str | None
    timestamp: dt.datetime
    assertion: str | None = None


class CanonicalEvent(msgspec.Struct, kw_only=True, frozen=True):
    """Normalised event owned by the dispatch ledger once admitted."""

    event_id: str
    source_account: str
    resource_id: str
    event_kind: EventKind
    sequence_token: str
    occurred_at: dt.datetime
    received_at: dt.datetime


class NotificationBucket(msgspec.Struct, kw_only=True, frozen=True):
    """Bucket section of a storage notification."""

    name: str


class NotificationObject(msgspec.Struct, kw_only=True, frozen=True):
    """Object section of a storage notification."""

    key: str
    sequencer: str | None = None
    size: int | None = None
    etag: str | None = None


class NotificationDetail(msgspec.Struct, kw_only=True, frozen=True):
    """``detail`` body of a storage notification."""

    bucket: NotificationBucket
    object: NotificationObject
    reason: str | None = None


class StorageNotification(msgspec.Struct, kw_only=True, frozen=True):
    """Object-store change notification as routed by the event bus."""

    account: str
    time: dt.datetime
    detail_type: str = msgspec.field(name="detail-type")
    detail: NotificationDetail
    id: str | None = None
    source: str | None = None
    region: str | None = None
    assertion: str | None = None
