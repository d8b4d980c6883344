"""Domain-specific exceptions — framework-independent."""

from typing import Any


class EntityNotFoundError(Exception):
    """Raised when a requested entity does not exist."""

    def __init__(self, entity_type: str, entity_id: int | str, field: str = "id"):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.field = field
        super().__init__(f"{entity_type} with {field} '{entity_id}' not found")


class DuplicateEntityError(Exception):
    """Raised when attempting to create a duplicate entity."""

    def __init__(self, entity_type: str, field: str, value: str):
        self.entity_type = entity_type
        self.field = field
        self.value = value
        super().__init__(f"{entity_type} with {field}='{value}' already exists")


class DecodeError(Exception):
    """Raised when a stored document cannot be mapped onto its record type.

    Signals data corruption or schema drift — retrying will not help.
    """

    def __init__(self, entity_type: str, field: str, value: Any, reason: str = ""):
        self.entity_type = entity_type
        self.field = field
        self.value = value
        self.reason = reason
        message = f"Cannot decode {entity_type}.{field} from {value!r}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class StoreUnavailableError(Exception):
    """Raised when the backing document store cannot be reached in time.

    Transient — callers may retry with backoff.
    """

    retryable = True

    def __init__(self, operation: str, collection: str, cause: BaseException | None = None):
        self.operation = operation
        self.collection = collection
        self.cause = cause
        detail = f"{type(cause).__name__}: {cause}" if cause else "unavailable"
        super().__init__(f"Document store {operation} on '{collection}' failed — {detail}")


class RecognitionUnavailableError(Exception):
    """Raised when the remote recognition service is unreachable or errors.

    Provider-agnostic — the pipeline turns this into a Failed outcome.
    """

    def __init__(self, reason: str, status_code: int | None = None):
        self.reason = reason
        self.status_code = status_code
        prefix = f"[{status_code}] " if status_code is not None else ""
        super().__init__(f"Recognition unavailable: {prefix}{reason}")
