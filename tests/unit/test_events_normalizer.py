"""Unit tests for inbound event decoding and normalisation."""

from __future__ import annotations

import datetime as dt

import msgspec
import pytest

from tender.events import (
    EventKind,
    EventNormalizer,
    MalformedEventError,
    decode_raw_event,
    make_event_id,
)
from tests.helpers.event_builders import (
    ACCOUNT,
    OCCURRED_AT,
    RECEIVED_AT,
    RESOURCE_ID,
    notification_json,
    raw_event,
    raw_event_json,
)


class TestMakeEventId:
    """Tests for the deterministic event id."""

    def test_same_triple_yields_same_id(self) -> None:
        """Redelivered notifications collapse onto one id."""
        first = make_event_id(ACCOUNT, RESOURCE_ID, "0001")
        second = make_event_id(ACCOUNT, RESOURCE_ID, "0001")
        assert first == second
        assert len(first) == 64

    def test_sequence_token_distinguishes_events(self) -> None:
        """A new sequence token is a new event."""
        assert make_event_id(ACCOUNT, RESOURCE_ID, "0001") != make_event_id(
            ACCOUNT, RESOURCE_ID, "0002"
        )

    def test_separator_in_fields_does_not_collide(self) -> None:
        """Fields containing separators cannot forge another triple."""
        assert make_event_id("a|b", "c", "d") != make_event_id("a", "b|c", "d")


class TestDecodeRawEvent:
    """Tests for decode_raw_event."""

    def test_decodes_flat_event(self) -> None:
        """The flat RawEvent JSON shape decodes directly."""
        raw = decode_raw_event(raw_event_json())
        assert raw.source_account == ACCOUNT
        assert raw.event_type is EventKind.CREATED
        assert raw.timestamp == OCCURRED_AT

    def test_decodes_storage_notification(self) -> None:
        """Notifications map bucket/key and sequencer onto the raw event."""
        raw = decode_raw_event(notification_json(sequencer="00A1"))
        assert raw.resource_id == "drop/incoming/orders.csv"
        assert raw.sequence_token == "00A1"
        assert raw.event_type is EventKind.CREATED

    def test_deleted_notification_is_removed_kind(self) -> None:
        """Object Deleted notifications become REMOVED events."""
        raw = decode_raw_event(notification_json(detail_type="Object Deleted"))
        assert raw.event_type is EventKind.REMOVED

    def test_unsupported_notification_type_is_malformed(self) -> None:
        """Notification types we do not dispatch are rejected."""
        with pytest.raises(MalformedEventError) as excinfo:
            decode_raw_event(notification_json(detail_type="Object Restored"))
        assert excinfo.value.field == "detail-type"

    @pytest.mark.parametrize(
        "payload",
        [
            b"not json",
            b"[1, 2, 3]",
            b'{"source_account": "111122223333"}',
            b'{"source_account": "1", "resource_id": "r", "event_type": "moved",'
            b' "sequence_token": "1", "timestamp": "2025-01-01T00:00:00Z"}',
        ],
        ids=["invalid-json", "not-object", "missing-fields", "unknown-kind"],
    )
    def test_rejects_undecodable_payloads(self, payload: bytes) -> None:
        """Structurally broken bodies raise MalformedEventError."""
        with pytest.raises(MalformedEventError):
            decode_raw_event(payload)

    def test_rejects_naive_timestamp(self) -> None:
        """A timestamp without an offset is malformed."""
        body = msgspec.json.encode(
            {
                "source_account": ACCOUNT,
                "resource_id": RESOURCE_ID,
                "event_type": "created",
                "sequence_token": "0001",
                "timestamp": "2025-03-04T09:30:00",
            }
        )
        with pytest.raises(MalformedEventError) as excinfo:
            decode_raw_event(body)
        assert excinfo.value.field == "timestamp"


class TestEventNormalizer:
    """Tests for EventNormalizer.normalize."""

    def test_produces_canonical_event(self) -> None:
        """All canonical fields are populated from the raw event."""
        event = EventNormalizer().normalize(raw_event(), received_at=RECEIVED_AT)

        assert event.event_id == make_event_id(ACCOUNT, RESOURCE_ID, "0001")
        assert event.source_account == ACCOUNT
        assert event.resource_id == RESOURCE_ID
        assert event.event_kind is EventKind.CREATED
        assert event.sequence_token == "0001"
        assert event.occurred_at == OCCURRED_AT
        assert event.received_at == RECEIVED_AT

    def test_uses_clock_for_received_at(self) -> None:
        """The injected clock stamps received_at when none is given."""
        stamp = dt.datetime(2030, 1, 1, tzinfo=dt.UTC)
        event = EventNormalizer(clock=lambda: stamp).normalize(raw_event())
        assert event.received_at == stamp

    def test_missing_sequence_token_is_malformed(self) -> None:
        """Events without a sequence token cannot be deduplicated."""
        with pytest.raises(MalformedEventError) as excinfo:
            EventNormalizer().normalize(raw_event(sequence_token=None))
        assert excinfo.value.field == "sequence_token"

    @pytest.mark.parametrize("field", ["source_account", "resource_id"])
    def test_blank_required_field_is_malformed(self, field: str) -> None:
        """Whitespace-only identifiers are rejected."""
        overrides = {"account" if field == "source_account" else field: "  "}
        with pytest.raises(MalformedEventError) as excinfo:
            EventNormalizer().normalize(raw_event(**overrides))
        assert excinfo.value.field == field

    def test_naive_received_at_is_rejected(self) -> None:
        """A naive receive stamp is refused."""
        with pytest.raises(MalformedEventError):
            EventNormalizer().normalize(
                raw_event(), received_at=dt.datetime(2025, 1, 1)  # noqa: DTZ001 - intentional naive value
            )
