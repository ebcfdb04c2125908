"""Inbound event decoding and normalisation."""

from __future__ import annotations

from .errors import MalformedEventError
from .models import CanonicalEvent, EventKind, RawEvent, StorageNotification
from .normalizer import (
    EventNormalizer,
    decode_raw_event,
    make_event_id,
    raw_event_from_notification,
)

__all__ = [
    "CanonicalEvent",
    "EventKind",
    "EventNormalizer",
    "MalformedEventError",
    "RawEvent",
    "StorageNotification",
    "decode_raw_event",
    "make_event_id",
    "raw_event_from_notification",
]
