"""Exceptions raised by the correlation engine."""


class CorrelationError(Exception):
    """Base class for correlation engine failures."""


class CorrelationValidationError(CorrelationError):
    """Raised when a request is missing or has malformed identifiers."""


class InvalidTimeRangeError(CorrelationValidationError):
    """Raised when a time range ends at or before its start."""

    def __init__(self, start: int, end: int):
        self.start = start
        self.end = end
        super().__init__(f"Invalid time range: end ({end}) must be after start ({start})")


class EventDecodeError(CorrelationError):
    """Raised when a stored event payload cannot be decoded."""

    def __init__(self, kind: str, event_id: str, reason: str):
        self.kind = kind
        self.event_id = event_id
        super().__init__(f"Corrupt {kind} event {event_id}: {reason}")
