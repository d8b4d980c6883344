"""Record codec — maps typed record dataclasses to/from schema-less field mappings.

Stored documents are heterogeneous: numbers arrive as ints, floats or
numeric strings, timestamps as ISO-8601 strings or epoch seconds, and
fields written by older code may be missing altogether. Each record type
gets a pydantic validation model derived from its dataclass fields; lax
validation gives every decoded record the same in-memory shape:

    str       ← str, int, float (integral floats drop ".0"), bool
    int/float ← numbers, numeric strings
    bool      ← bool, 0/1, "true"/"false"/"yes"/"no"
    datetime  ← ISO-8601 string or epoch seconds, normalized to UTC

Absent or null fields take the dataclass default, which for record types
is the zero value of the field's type. Keys the record type does not
declare are kept in ``Record.extra`` and written back on encode.
"""

import dataclasses
import types
from collections.abc import Mapping
from datetime import datetime, timezone
from enum import Enum
from functools import lru_cache
from typing import Annotated, Any, Generic, TypeVar, Union, get_args, get_origin, get_type_hints

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    ValidationError,
    create_model,
)

from app.domain.entities import Record
from app.domain.exceptions import DecodeError

RecordT = TypeVar("RecordT", bound=Record)

# Attributes of Record handled by the store rather than encoded as fields.
_UNENCODED_RECORD_FIELDS = frozenset({"id", "extra"})


class TimestampStyle(str, Enum):
    """Canonical form timestamps are written in."""

    ISO8601 = "iso8601"
    EPOCH_SECONDS = "epoch_seconds"


def _number_to_text(value: Any) -> Any:
    """Codes and barcodes written as JSON numbers are read back as text."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float)):
        return str(value)
    return value


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


_Text = Annotated[str, BeforeValidator(_number_to_text)]
_UtcDatetime = Annotated[datetime, AfterValidator(_to_utc)]


def _lenient(tp: Any) -> Any:
    """Swap in the codec's text and timestamp validators, including inside optionals."""
    if tp is str:
        return _Text
    if tp is datetime:
        return _UtcDatetime
    if get_origin(tp) in (Union, types.UnionType):
        return Union[tuple(_lenient(arg) for arg in get_args(tp))]
    return tp


@dataclasses.dataclass(frozen=True)
class _FieldSpec:
    """One declared field: attribute name, stored key, resolved type and dataclass field."""

    name: str
    key: str
    type_: Any
    field: dataclasses.Field

    def default(self) -> Any:
        if self.field.default is not dataclasses.MISSING:
            return self.field.default
        if self.field.default_factory is not dataclasses.MISSING:
            return self.field.default_factory()
        raise TypeError(f"Field '{self.name}' has no default to decode a missing value into")


class _DocumentFields(BaseModel):
    """Base of the per-record-type validation models."""

    model_config = ConfigDict(extra="ignore", arbitrary_types_allowed=True)


@lru_cache(maxsize=None)
def _field_specs(cls: type) -> tuple[_FieldSpec, ...]:
    """Declared fields of a dataclass, in definition order."""
    hints = get_type_hints(cls)
    skip = _UNENCODED_RECORD_FIELDS if issubclass(cls, Record) else frozenset()
    return tuple(
        _FieldSpec(
            name=f.name,
            key=f.metadata.get("key", f.name),
            type_=hints.get(f.name, Any),
            field=f,
        )
        for f in dataclasses.fields(cls)
        if f.name not in skip
    )


@lru_cache(maxsize=None)
def _validation_model(record_type: type) -> type[BaseModel]:
    """Pydantic model with one optional field per declared record field.

    Only fields present in the input are validated; the record dataclass
    fills in defaults for the rest.
    """
    fields: dict[str, Any] = {
        spec.name: (_lenient(spec.type_), None) for spec in _field_specs(record_type)
    }
    return create_model(f"{record_type.__name__}Document", __base__=_DocumentFields, **fields)


def _error_path(loc: tuple) -> str:
    """("size", "width") → "size.width", ("tags", 1) → "tags[1]"."""
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path


class RecordCodec(Generic[RecordT]):
    """Translates one record type to and from the store's field mapping."""

    def __init__(
        self,
        record_type: type[RecordT],
        timestamp_style: TimestampStyle | str = TimestampStyle.ISO8601,
    ):
        if not (dataclasses.is_dataclass(record_type) and issubclass(record_type, Record)):
            raise TypeError(f"{record_type!r} is not a Record dataclass")
        self._record_type = record_type
        self._timestamp_style = TimestampStyle(timestamp_style)
        self._specs = _field_specs(record_type)
        self._model = _validation_model(record_type)
        self._by_name = {s.name: s for s in self._specs}
        self._by_key = {s.key: s for s in self._specs}
        self._consumed = {s.key for s in self._specs} | {s.name for s in self._specs} | {"id"}

    @property
    def record_type(self) -> type[RecordT]:
        return self._record_type

    @property
    def entity_type(self) -> str:
        return self._record_type.__name__

    @property
    def timestamp_style(self) -> TimestampStyle:
        return self._timestamp_style

    def storage_key(self, name: str) -> str:
        """Stored key for a field name; undeclared names are stored as-is."""
        spec = self._by_name.get(name)
        return spec.key if spec else name

    def declared_type(self, name: str) -> Any | None:
        """Declared type of a field, or None for undeclared (extra) fields."""
        spec = self._spec(name)
        return spec.type_ if spec else None

    # ── Encode ───────────────────────────────────────────────────────

    def encode(self, record: RecordT) -> dict[str, Any]:
        """Typed record → field mapping. ``None`` values are omitted, ``id`` is never written."""
        if not isinstance(record, self._record_type):
            raise TypeError(
                f"Expected {self.entity_type}, got {type(record).__name__}"
            )
        return self._encode_dataclass(record)

    def encode_fields(self, changes: Mapping[str, Any]) -> dict[str, Any]:
        """Partial encode for field-level updates.

        Declared fields are validated against their type first; an explicit
        ``None`` is written as a null so callers can clear a field.
        """
        declared = {}
        encoded: dict[str, Any] = {}
        for name, value in changes.items():
            spec = self._spec(name)
            if spec is None:
                encoded[name] = self.encode_value(value)
            elif value is None:
                encoded[spec.key] = None
            else:
                declared[spec.name] = value

        try:
            validated = self._validate(declared)
        except ValidationError as exc:
            error = exc.errors()[0]
            raise ValueError(
                f"Invalid value for {self.entity_type}.{_error_path(error['loc'])}: {error['msg']}"
            ) from exc
        for name, value in validated.items():
            encoded[self._by_name[name].key] = self.encode_value(value)
        return encoded

    def encode_value(self, value: Any) -> Any:
        """Encode a single value into its stored representation."""
        if value is None or isinstance(value, (str, bool, int, float)):
            return value
        if isinstance(value, datetime):
            return self.encode_timestamp(value)
        if dataclasses.is_dataclass(value) and not isinstance(value, type):
            return self._encode_dataclass(value)
        if isinstance(value, Mapping):
            return {str(k): self.encode_value(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self.encode_value(v) for v in value]
        return value

    def encode_timestamp(self, value: datetime) -> Any:
        value = _to_utc(value)
        if self._timestamp_style is TimestampStyle.EPOCH_SECONDS:
            return value.timestamp()
        return value.isoformat()

    def _encode_dataclass(self, instance: Any) -> dict[str, Any]:
        specs = _field_specs(type(instance))
        data: dict[str, Any] = {}
        if isinstance(instance, Record):
            declared = {s.key for s in specs} | {s.name for s in specs}
            data.update(
                (k, v) for k, v in instance.extra.items() if k not in declared
            )
        for spec in specs:
            value = getattr(instance, spec.name)
            if value is None:
                continue
            data[spec.key] = self.encode_value(value)
        return data

    # ── Decode ───────────────────────────────────────────────────────

    def decode(self, data: Mapping[str, Any], record_id: str | None = None) -> RecordT:
        """Field mapping → typed record with every declared field populated."""
        if not isinstance(data, Mapping):
            raise DecodeError(self.entity_type, "<document>", data, "expected a mapping")

        present = {}
        for spec in self._specs:
            raw = self._raw(spec, data)
            if raw is not None:
                present[spec.name] = raw
        try:
            values = self._validate(present)
        except ValidationError as exc:
            raise self._decode_error(exc) from exc

        extra = {k: v for k, v in data.items() if k not in self._consumed}
        return self._record_type(**values, id=record_id, extra=extra)

    def decode_value(self, name: str, raw: Any) -> Any:
        """Coerce a loose value into the declared type of ``name``.

        Undeclared names and ``None`` pass through unchanged.
        """
        spec = self._spec(name)
        if spec is None or raw is None:
            return raw
        try:
            return self._validate({spec.name: raw})[spec.name]
        except ValidationError as exc:
            raise self._decode_error(exc) from exc

    def decode_field(self, data: Mapping[str, Any], name: str) -> Any:
        """Decoded value of a single field of a stored document.

        Only that field is validated, so a malformed sibling field does not
        affect the result. Missing declared fields give their default.
        """
        spec = self._spec(name)
        if spec is None:
            return data.get(name)
        raw = self._raw(spec, data)
        if raw is None:
            return spec.default()
        return self.decode_value(spec.name, raw)

    # ── Helpers ──────────────────────────────────────────────────────

    def _spec(self, name: str) -> _FieldSpec | None:
        return self._by_name.get(name) or self._by_key.get(name)

    @staticmethod
    def _raw(spec: _FieldSpec, data: Mapping[str, Any]) -> Any:
        raw = data.get(spec.key)
        if raw is None and spec.key != spec.name:
            raw = data.get(spec.name)
        return raw

    def _validate(self, values: Mapping[str, Any]) -> dict[str, Any]:
        validated = self._model.model_validate(values)
        return {name: getattr(validated, name) for name in validated.model_fields_set}

    def _decode_error(self, exc: ValidationError) -> DecodeError:
        error = exc.errors()[0]
        return DecodeError(
            self.entity_type, _error_path(error["loc"]), error.get("input"), error["msg"]
        )
