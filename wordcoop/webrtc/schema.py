"""
Message schemas for the peer protocol.

A schema is built once from a sample value when a message is registered.
Verification compares the kind of a value and, for objects and arrays, the
exact key set and the kind of every field. Nested values are checked by
kind only. Kinds are stricter than a JavaScript typeof check: null, arrays
and objects never match one another.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class FieldKind(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    NULL = "null"
    OBJECT = "object"
    ARRAY = "array"


def kind_of(value: Any) -> FieldKind:
    """Classify a decoded JSON value."""
    # bool is a subclass of int, test it first
    if isinstance(value, bool):
        return FieldKind.BOOLEAN
    if isinstance(value, (int, float)):
        return FieldKind.NUMBER
    if isinstance(value, str):
        return FieldKind.STRING
    if value is None:
        return FieldKind.NULL
    if isinstance(value, dict):
        return FieldKind.OBJECT
    if isinstance(value, (list, tuple)):
        return FieldKind.ARRAY
    raise TypeError(f"Unsupported message value type: {type(value).__name__}")


def _fields_of(value: Any) -> Dict[str, FieldKind]:
    if isinstance(value, dict):
        return {str(key): kind_of(item) for key, item in value.items()}
    return {str(index): kind_of(item) for index, item in enumerate(value)}


@dataclass(frozen=True)
class MessageSchema:
    kind: FieldKind
    fields: Optional[Dict[str, FieldKind]] = None

    @classmethod
    def from_sample(cls, sample: Any) -> "MessageSchema":
        kind = kind_of(sample)
        if kind == FieldKind.NULL:
            raise ValueError("A message sample cannot be null")
        if kind in (FieldKind.OBJECT, FieldKind.ARRAY):
            return cls(kind, _fields_of(sample))
        return cls(kind)

    def matches(self, value: Any) -> bool:
        try:
            kind = kind_of(value)
        except TypeError:
            return False
        if kind != self.kind:
            return False
        if self.fields is None:
            return True
        return _fields_of(value) == self.fields

    def describe(self) -> Dict[str, Any]:
        if self.fields is None:
            return {"kind": self.kind.value}
        return {"kind": self.kind.value, "fields": {k: v.value for k, v in self.fields.items()}}
