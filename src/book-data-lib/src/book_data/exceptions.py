"""
book_data.exceptions — Error taxonomy shared by the store, the services and dispatch.

Every class carries the stable, caller-facing ``code`` that the resolver
dispatch returns.  Forbidden deliberately shares NotFound's code and message
so a lookup of another owner's id is indistinguishable from a missing id.
"""


class LibraryError(Exception):
    """Base class for all typed library errors."""

    code = "INTERNAL_ERROR"
    retryable = False


class NotFound(LibraryError):
    """Record absent, or owned by someone else (see Forbidden)."""

    code = "NOT_FOUND"

    def __init__(self, entity_name: str = "Record") -> None:
        self.entity_name = entity_name
        super().__init__(f"{entity_name} not found")


class Forbidden(NotFound):
    """
    Raised by the access guard when caller and record owner differ.

    Surfaces exactly like NotFound.  The two owner ids are kept on the
    exception for internal logging only and never reach the caller.

    Attributes:
        caller_id: Identity that attempted the access.
        owner_id:  Owner of the record (or scope) that was protected.
    """

    def __init__(self, *, caller_id: str, owner_id: str, entity_name: str = "Record") -> None:
        self.caller_id = caller_id
        self.owner_id = owner_id
        super().__init__(entity_name)


class Conflict(LibraryError):
    """Attempted creation of an id that already exists."""

    code = "CONFLICT"


class ValidationError(LibraryError, ValueError):
    """Malformed or out-of-range input."""

    code = "VALIDATION_ERROR"


class MissingIdentity(ValidationError):
    """No verified caller identity was supplied.  No anonymous operations exist."""

    def __init__(self) -> None:
        super().__init__("Caller identity is required")


class StorageUnavailable(LibraryError):
    """Transient backend failure (throttling, timeout, 5xx).  Retry with backoff."""

    code = "STORAGE_UNAVAILABLE"
    retryable = True


class InternalError(LibraryError):
    """Unexpected fault.  Callers receive an opaque message."""

    code = "INTERNAL_ERROR"


class CascadeIncomplete(InternalError):
    """
    A dependent-record cleanup step failed after its retries.

    Already-completed steps are not rolled back; the primary record is left
    in place so the delete can be retried.

    Attributes:
        entity_name: Parent entity being deleted (e.g. "Book").
        entity_id:   Id of the parent.
        step:        Name of the step that failed.
    """

    def __init__(self, *, entity_name: str, entity_id: str, step: str) -> None:
        self.entity_name = entity_name
        self.entity_id = entity_id
        self.step = step
        super().__init__(f"Cascade delete of {entity_name} {entity_id!r} stopped at step {step!r}")
