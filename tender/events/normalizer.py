"""Convert inbound notifications into canonical, deduplicable events."""

from __future__ import annotations

import hashlib
import json
import typing as typ

import msgspec

from tender.common.time import ensure_aware, utcnow
from tender.events.errors import MalformedEventError
from tender.events.models import (
    CanonicalEvent,
    EventKind,
    RawEvent,
    StorageNotification,
)

if typ.TYPE_CHECKING:
    import datetime as dt

_NOTIFICATION_KINDS: dict[str, EventKind] = {
    "Object Created": EventKind.CREATED,
    "Object Deleted": EventKind.REMOVED,
}

_REQUIRED_FIELDS = ("source_account", "resource_id", "sequence_token")


def make_event_id(source_account: str, resource_id: str, sequence_token: str) -> str:
    """Return the deterministic event id for a storage change.

    Redelivery of the same notification always yields the same id, which is
    what the ledger deduplicates on.
    """
    material = json.dumps(
        [source_account, resource_id, sequence_token],
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def _require_aware(value: dt.datetime, field: str) -> None:
    if not ensure_aware(value):
        raise MalformedEventError.naive_timestamp(field)


def _convert[T](payload: object, target: type[T]) -> T:
    try:
        return msgspec.convert(payload, type=target)
    except msgspec.ValidationError as exc:
        raise MalformedEventError.undecodable(str(exc)) from exc


def raw_event_from_notification(notification: StorageNotification) -> RawEvent:
    """Map a storage notification onto the inbound ``RawEvent`` shape."""
    kind = _NOTIFICATION_KINDS.get(notification.detail_type)
    if kind is None:
        raise MalformedEventError.unsupported_notification(notification.detail_type)
    _require_aware(notification.time, "time")

    detail = notification.detail
    return RawEvent(
        source_account=notification.account,
        resource_id=f"{detail.bucket.name}/{detail.object.key}",
        event_type=kind,
        sequence_token=detail.object.sequencer,
        timestamp=notification.time,
        assertion=notification.assertion,
    )


def decode_raw_event(payload: bytes | str) -> RawEvent:
    """Decode an inbound event body.

    Accepts either the flat ``RawEvent`` JSON shape or a storage
    notification (detected by its ``detail-type`` key).

    Raises
    ------
    MalformedEventError
        If the body is not JSON, misses required fields or carries a naive
        timestamp.

    """
    try:
        document = msgspec.json.decode(payload)
    except msgspec.DecodeError as exc:
        raise MalformedEventError.undecodable(str(exc)) from exc

    if not isinstance(document, dict):
        raise MalformedEventError.undecodable("expected a JSON object")

    if "detail-type" in document:
        notification = _convert(document, StorageNotification)
        return raw_event_from_notification(notification)

    raw = _convert(document, RawEvent)
    _require_aware(raw.timestamp, "timestamp")
    return raw


class EventNormalizer:
    """Build exactly one ``CanonicalEvent`` per ``RawEvent``."""

    def __init__(self, clock: typ.Callable[[], dt.datetime] = utcnow) -> None:
        """Use ``clock`` to stamp ``received_at``."""
        self._clock = clock

    def normalize(
        self,
        raw: RawEvent,
        *,
        received_at: dt.datetime | None = None,
    ) -> CanonicalEvent:
        """Return the canonical form of ``raw``.

        Raises
        ------
        MalformedEventError
            If a required field is absent or blank (notably a missing
            sequence token) or a timestamp is naive.

        """
        for field in _REQUIRED_FIELDS:
            value = getattr(raw, field)
            if value is None:
                raise MalformedEventError.missing_field(field)
            if not value.strip():
                raise MalformedEventError.blank_field(field)
        _require_aware(raw.timestamp, "timestamp")

        stamp = received_at or self._clock()
        _require_aware(stamp, "received_at")

        sequence_token = typ.cast("str", raw.sequence_token)
        return CanonicalEvent(
            event_id=make_event_id(raw.source_account, raw.resource_id, sequence_token),
            source_account=raw.source_account,
            resource_id=raw.resource_id,
            event_kind=EventKind(raw.event_type),
            sequence_token=sequence_token,
            occurred_at=raw.timestamp,
            received_at=stamp,
        )
