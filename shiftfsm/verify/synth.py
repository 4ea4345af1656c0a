"""
Request Synthesis
=================

Builds request instances filled with random values, one generator per
FieldKind. Request classes must be dataclasses whose fields are declared
with shift_field(); the identifier field of update requests receives the
real row identifier.
"""

import dataclasses
import random
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from ..errors import InvalidTypeError
from ..requests import FieldKind, Identifier, InsertRequest, UpdateRequest, field_kind


Generator = Callable[[random.Random], Any]

FIELD_GENERATORS: dict[FieldKind, Generator] = {}


def generator(kind: FieldKind) -> Callable[[Generator], Generator]:
    """Register the value generator for a field kind"""
    def register(fn: Generator) -> Generator:
        FIELD_GENERATORS[kind] = fn
        return fn
    return register


@generator(FieldKind.INTEGER)
def random_integer(rng: random.Random) -> int:
    return rng.randrange(1000)


@generator(FieldKind.FLOAT)
def random_float(rng: random.Random) -> float:
    return rng.random() * 1000


@generator(FieldKind.TEXT)
def random_text(rng: random.Random) -> str:
    return rng.randbytes(rng.randrange(10)).hex()


@generator(FieldKind.BOOLEAN)
def random_boolean(rng: random.Random) -> bool:
    return rng.random() < 0.5


@generator(FieldKind.BYTES)
def random_bytes(rng: random.Random) -> bytes:
    return rng.randbytes(rng.randrange(64))


@generator(FieldKind.TIMESTAMP)
def random_timestamp(rng: random.Random) -> datetime:
    return datetime.now(timezone.utc) - timedelta(hours=rng.randrange(1000))


@generator(FieldKind.NULLABLE_TEXT)
def random_nullable_text(rng: random.Random) -> Optional[str]:
    if rng.random() < 0.5:
        return None
    return random_text(rng)


@generator(FieldKind.NULLABLE_TIMESTAMP)
def random_nullable_timestamp(rng: random.Random) -> Optional[datetime]:
    if rng.random() < 0.5:
        return None
    return datetime.now(timezone.utc)


def random_insert(request_type: type, rng: random.Random) -> InsertRequest:
    """Instantiate an insert request with random field values"""
    values = {}
    for field in _request_fields(request_type):
        kind = field_kind(field)
        if kind is FieldKind.IDENTIFIER:
            raise InvalidTypeError(
                "insert request must not carry an identifier field",
                request=request_type.__name__,
                field=field.name,
            )
        if kind is not None:
            values[field.name] = FIELD_GENERATORS[kind](rng)
    return request_type(**values)


def random_update(request_type: type, identifier: Identifier, rng: random.Random) -> UpdateRequest:
    """Instantiate an update request with random values and the given identifier"""
    values = {}
    has_identifier = False
    for field in _request_fields(request_type):
        kind = field_kind(field)
        if kind is FieldKind.IDENTIFIER:
            values[field.name] = identifier
            has_identifier = True
        elif kind is not None:
            values[field.name] = FIELD_GENERATORS[kind](rng)
    if not has_identifier:
        raise InvalidTypeError("update request without identifier field", request=request_type.__name__)
    return request_type(**values)


def _request_fields(request_type: type) -> list[dataclasses.Field]:
    if not dataclasses.is_dataclass(request_type):
        raise InvalidTypeError("request type must be a dataclass", request=getattr(request_type, "__name__", request_type))

    fields = []
    for field in dataclasses.fields(request_type):
        if not field.init:
            continue
        no_default = field.default is dataclasses.MISSING and field.default_factory is dataclasses.MISSING
        if field_kind(field) is None and no_default:
            raise InvalidTypeError(
                "field has neither a kind nor a default",
                request=request_type.__name__,
                field=field.name,
            )
        fields.append(field)
    return fields
