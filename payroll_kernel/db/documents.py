"""
Module: payroll_kernel.db.documents
Responsibility: Convert frozen dataclass DTOs to JSON-safe documents and back,
    for the JSON columns that hold line items, tax breakdowns and audit logs.
Architecture position: Kernel > DB.  Used by ORM ``to_dto()``/``from_dto()``.

Invariants enforced:
    - Decimal is stored as its exact string form, never as a float.
    - Decoding is driven by the dataclass type hints, so a round trip yields
      the same Python types (Decimal, date, datetime, UUID, Enum, tuples).

Failure modes:
    - TypeError if a document field cannot be coerced to its annotated type.
"""

from __future__ import annotations

import types
import typing
from dataclasses import fields, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from typing import Any, TypeVar
from uuid import UUID

T = TypeVar("T")


def to_document(value: Any) -> Any:
    """Recursively convert a DTO into JSON-serializable primitives."""
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_document(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, dict):
        return {str(k): to_document(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_document(v) for v in value]
    raise TypeError(f"Cannot store {type(value).__name__} in a document column")


@lru_cache(maxsize=None)
def _hints(cls: type) -> dict[str, Any]:
    return typing.get_type_hints(cls)


def _decode(tp: Any, raw: Any) -> Any:
    if raw is None:
        return None
    origin = typing.get_origin(tp)

    if origin in (typing.Union, types.UnionType):
        members = [a for a in typing.get_args(tp) if a is not type(None)]
        return _decode(members[0], raw) if len(members) == 1 else raw
    if origin is tuple:
        args = typing.get_args(tp)
        item_type = args[0] if args else Any
        return tuple(_decode(item_type, v) for v in raw)
    if origin is list:
        (item_type,) = typing.get_args(tp) or (Any,)
        return [_decode(item_type, v) for v in raw]
    if origin is dict:
        key_type, value_type = typing.get_args(tp) or (Any, Any)
        return {_decode(key_type, k): _decode(value_type, v) for k, v in raw.items()}
    if tp is Any:
        return raw
    if isinstance(tp, type):
        if is_dataclass(tp):
            return from_document(tp, raw)
        if issubclass(tp, Enum):
            return tp(raw)
        if tp is Decimal:
            return Decimal(str(raw))
        if tp is datetime:
            return datetime.fromisoformat(raw)
        if tp is date:
            return date.fromisoformat(raw)
        if tp is UUID:
            return UUID(str(raw))
        if tp in (int, str, bool):
            return tp(raw)
    return raw


def from_document(cls: type[T], data: dict[str, Any]) -> T:
    """Rebuild a dataclass from a document produced by ``to_document``."""
    hints = _hints(cls)
    kwargs = {
        f.name: _decode(hints[f.name], data[f.name])
        for f in fields(cls)
        if f.name in data
    }
    return cls(**kwargs)
