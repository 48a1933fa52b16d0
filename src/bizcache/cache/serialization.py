"""Encode/decode contracts for cached values.

Every value is stored as bytes in both backends, so a payload that cannot be
decoded is detected the same way whichever backend answered.
"""

from __future__ import annotations

from typing import Any, Generic, Protocol, TypeVar

import orjson

from bizcache.errors import SerializationError

T = TypeVar("T")


class Codec(Protocol[T]):
    """Encode/decode pair for one kind of cached value."""

    def encode(self, value: T) -> bytes: ...

    def decode(self, data: bytes) -> T: ...


class JsonCodec:
    """Generic JSON codec for report and dashboard payloads."""

    def encode(self, value: Any) -> bytes:
        try:
            return orjson.dumps(value, option=orjson.OPT_NON_STR_KEYS)
        except TypeError as e:
            raise SerializationError(f"Cannot encode {type(value).__name__}: {e}") from e

    def decode(self, data: bytes) -> Any:
        try:
            return orjson.loads(data)
        except orjson.JSONDecodeError as e:
            raise SerializationError(f"Cannot decode cached payload: {e}") from e


class DictCodec(Generic[T]):
    """Codec for types exposing ``to_dict()`` / ``from_dict()``."""

    def __init__(self, cls: Any):
        self.cls = cls

    def encode(self, value: T) -> bytes:
        if not isinstance(value, self.cls):
            raise SerializationError(
                f"Expected {self.cls.__name__}, got {type(value).__name__}"
            )
        return JSON.encode(value.to_dict())  # type: ignore[attr-defined]

    def decode(self, data: bytes) -> T:
        payload = JSON.decode(data)
        if not isinstance(payload, dict):
            raise SerializationError(
                f"Expected a {self.cls.__name__} object, got {type(payload).__name__}"
            )
        try:
            return self.cls.from_dict(payload)  # type: ignore[no-any-return]
        except (KeyError, TypeError, ValueError) as e:
            raise SerializationError(f"Malformed {self.cls.__name__} payload: {e}") from e


JSON = JsonCodec()
