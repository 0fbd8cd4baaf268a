"""Exception hierarchy for the avatar relay core."""

from __future__ import annotations


class RelayError(Exception):
    """Base class for every error raised by the relay core."""


class MalformedMessageError(RelayError):
    """An inbound frame could not be decoded into a known message kind."""

    def __init__(self, message: str, raw: str | bytes | None = None) -> None:
        super().__init__(message)
        self.raw = raw


class QueueIndexError(RelayError, IndexError):
    """A queue index supplied by an operator is outside the current queue."""

    def __init__(self, index: int, length: int) -> None:
        super().__init__(f"queue index {index} out of range for queue of length {length}")
        self.index = index
        self.length = length


class DuplicateEntryError(RelayError):
    """A connection would appear twice across the holder slot and the queue."""


class TransportBackpressureError(RelayError):
    """A connection's outbox is full; the frame was not queued."""


class TargetMismatchError(RelayError):
    """An operator command names a holder that is not the current holder."""
