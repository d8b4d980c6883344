"""Domain entity — base shape shared by every document-backed record."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

# Zero value for timestamps that were never stored.
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Record attributes owned by the store/codec rather than by the record type.
RECORD_METADATA_FIELDS = frozenset({"id", "created_at", "updated_at", "extra"})


@dataclass(kw_only=True)
class Record:
    """A named, versioned document with a store-assigned id.

    Subclasses declare their fields as dataclass fields with defaults.
    ``extra`` holds stored keys the subclass does not declare, so a
    read-modify-write cycle never drops data written by someone else.
    """

    id: str | None = None
    created_at: datetime = EPOCH
    updated_at: datetime = EPOCH
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_persisted(self) -> bool:
        return self.id is not None
