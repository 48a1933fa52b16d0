"""Tests for cache value codecs."""

from dataclasses import dataclass
from typing import Any

import pytest

from bizcache.cache.serialization import JSON, DictCodec
from bizcache.errors import SerializationError


@dataclass
class Point:
    x: int
    y: int

    def to_dict(self) -> dict[str, Any]:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Point":
        return cls(x=data["x"], y=data["y"])


class TestJsonCodec:
    """Tests for JsonCodec."""

    def test_encodes_nested_structures(self) -> None:
        """Dicts and lists decode to equal values."""
        value = {"total": 10.5, "items": [1, 2, 3], "empty": None}
        assert JSON.decode(JSON.encode(value)) == value

    def test_non_string_keys(self) -> None:
        """Integer keys are accepted and come back as strings."""
        assert JSON.decode(JSON.encode({1: "a"})) == {"1": "a"}

    def test_unencodable_value(self) -> None:
        """Arbitrary objects raise SerializationError."""
        with pytest.raises(SerializationError):
            JSON.encode(object())

    def test_corrupt_payload(self) -> None:
        """Invalid JSON raises SerializationError."""
        with pytest.raises(SerializationError):
            JSON.decode(b"{not json")


class TestDictCodec:
    """Tests for DictCodec."""

    codec: DictCodec[Point] = DictCodec(Point)

    def test_decode_builds_instance(self) -> None:
        """Payload decodes into the target type."""
        assert self.codec.decode(self.codec.encode(Point(1, 2))) == Point(1, 2)

    def test_wrong_type_rejected(self) -> None:
        """Encoding a different type fails."""
        with pytest.raises(SerializationError):
            self.codec.encode({"x": 1, "y": 2})  # type: ignore[arg-type]

    def test_non_object_payload(self) -> None:
        """A JSON list is not a valid record."""
        with pytest.raises(SerializationError):
            self.codec.decode(b"[1, 2]")

    def test_missing_field(self) -> None:
        """A payload missing a field fails to decode."""
        with pytest.raises(SerializationError):
            self.codec.decode(b'{"x": 1}')
