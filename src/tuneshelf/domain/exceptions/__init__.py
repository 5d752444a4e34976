"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, message is stored as an attribute so callers can inspect it without
    # parsing str(exception). Never raise this directly - pick a subclass so callers can
    # catch precisely.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class EntityNotFoundException(DomainException):
    """Raised when an entity is not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ValidationException(DomainException):
    """Raised when entity validation fails.

    Used to signal that an entity's invariants have been violated
    (e.g., a negative bitrate on a media format).
    """

    pass


class ConfigurationError(DomainException):
    """Application misconfiguration.

    Example:
        raise ConfigurationError("Unknown sort type: LOUDNESS")
    """

    pass


class ProbeUnavailableError(DomainException):
    """The audio probing tool itself is missing or cannot be started.

    Process-wide: every later probe fails the same way. Callers switch to another
    scanner (e.g. the mutagen tag reader); nothing retries.
    """

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class ProbeFailedError(DomainException):
    """The probe ran but failed for one file.

    Covers a non-zero ffprobe exit (corrupt or unsupported file), unreadable output
    and a probe that exceeded its timeout. The tool stays usable for other files.
    """

    def __init__(self, message: str, path: str) -> None:
        super().__init__(message)
        self.path = path


class MalformedFieldError(DomainException):
    """A numeric field in a probe report failed to parse.

    The reconciler never substitutes the prior value for a malformed field.
    Callers may catch it and keep their prior record.

    Example:
        raise MalformedFieldError("bitrate", "abc")
    """

    def __init__(self, field: str, raw_value: str) -> None:
        super().__init__(f"Malformed value for field '{field}': {raw_value!r}")
        self.field = field
        self.raw_value = raw_value


# Hey future me - the catalogue signals "item no longer exists remotely" by putting
# NOT_FOUND into the failure message. Album refresh deletes the local record on that,
# every other failure is only logged.
NOT_FOUND_MARKER = "NOT_FOUND"


class RemoteFetchError(DomainException):
    """Remote catalogue request failed (network error or error payload)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_not_found(self) -> bool:
        """Check whether the failure means the item is gone remotely."""
        return NOT_FOUND_MARKER in self.message


class StoreError(DomainException):
    """A persistence write failed."""

    pass


__all__ = [
    "NOT_FOUND_MARKER",
    "ConfigurationError",
    "DomainException",
    "EntityNotFoundException",
    "MalformedFieldError",
    "ProbeFailedError",
    "ProbeUnavailableError",
    "RemoteFetchError",
    "StoreError",
    "ValidationException",
]
