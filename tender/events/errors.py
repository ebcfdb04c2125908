"""Errors raised while decoding and normalising inbound events."""

from __future__ import annotations


class MalformedEventError(ValueError):
    """Raised when an inbound event is unparsable or incomplete.

    Malformed events are dropped with an audit entry and never retried.

    Attributes
    ----------
    field
        Name of the offending field, when one can be identified.

    """

    def __init__(self, message: str, *, field: str | None = None) -> None:
        """Store the offending field for audit logging."""
        super().__init__(message)
        self.field = field

    @classmethod
    def missing_field(cls, field: str) -> MalformedEventError:
        """Return an error for a required field that is absent or null."""
        return cls(f"required field {field!r} is missing", field=field)

    @classmethod
    def blank_field(cls, field: str) -> MalformedEventError:
        """Return an error for a required field that is empty."""
        return cls(f"required field {field!r} is blank", field=field)

    @classmethod
    def naive_timestamp(cls, field: str = "timestamp") -> MalformedEventError:
        """Return an error for timestamps lacking timezone information."""
        return cls(f"{field} must be timezone aware", field=field)

    @classmethod
    def undecodable(cls, detail: str) -> MalformedEventError:
        """Return an error for payloads that fail schema decoding."""
        return cls(f"event payload could not be decoded: {detail}")

    @classmethod
    def unsupported_notification(cls, detail_type: str) -> MalformedEventError:
        """Return an error for storage notifications we do not dispatch."""
        return cls(
            f"unsupported storage notification type {detail_type!r}",
            field="detail-type",
        )
