"""Value codecs — user value <-> opaque bytes stored on the server.

Set members are compared by their encoded bytes, so every codec here is
deterministic: equal inputs always produce equal byte sequences.

Available codecs
----------------
* :class:`JsonCodec` (default) — canonical JSON (sorted keys, compact).
* :class:`StringCodec` — UTF-8 text.
* :class:`IntegerCodec` — ASCII decimal, readable from ``redis-cli``.
* :class:`BytesCodec` — passthrough.
* :class:`PickleCodec` — compact binary for value objects (dataclasses).
"""

from __future__ import annotations

import json
import pickle
from typing import Any


class CodecError(Exception):
    """Raised when a value cannot be converted to or from bytes."""


class CodecEncodeError(CodecError):
    pass


class CodecDecodeError(CodecError):
    pass


class Codec:
    """Base class: subclasses implement :meth:`encode` and :meth:`decode`."""

    name = "abstract"

    def encode(self, value: Any) -> bytes:
        raise NotImplementedError

    def decode(self, data: bytes) -> Any:
        raise NotImplementedError

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other)

    def __hash__(self) -> int:
        return hash(type(self))

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class JsonCodec(Codec):
    """Canonical JSON.

    Dict keys are sorted and separators are fixed so two equal dicts encode
    to the same bytes regardless of insertion order.
    """

    name = "json"

    def encode(self, value: Any) -> bytes:
        try:
            text = json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise CodecEncodeError(f"cannot encode {type(value).__name__} as JSON: {exc}") from exc
        return text.encode("utf-8")

    def decode(self, data: bytes) -> Any:
        try:
            return json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise CodecDecodeError(f"invalid JSON payload: {exc}") from exc


class StringCodec(Codec):
    name = "string"

    def encode(self, value: Any) -> bytes:
        if not isinstance(value, str):
            raise CodecEncodeError(f"StringCodec expects str, got {type(value).__name__}")
        return value.encode("utf-8")

    def decode(self, data: bytes) -> str:
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CodecDecodeError(f"invalid UTF-8 payload: {exc}") from exc


class IntegerCodec(Codec):
    name = "integer"

    def encode(self, value: Any) -> bytes:
        # bool is an int subclass but "True" != "1" on the wire
        if isinstance(value, bool) or not isinstance(value, int):
            raise CodecEncodeError(f"IntegerCodec expects int, got {type(value).__name__}")
        return str(value).encode("ascii")

    def decode(self, data: bytes) -> int:
        try:
            return int(data.decode("ascii"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise CodecDecodeError(f"invalid integer payload {data!r}") from exc


class BytesCodec(Codec):
    name = "bytes"

    def encode(self, value: Any) -> bytes:
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value)
        raise CodecEncodeError(f"BytesCodec expects bytes, got {type(value).__name__}")

    def decode(self, data: bytes) -> bytes:
        return bytes(data)


class PickleCodec(Codec):
    """Compact binary encoding for arbitrary picklable value objects.

    The protocol is pinned so the same value encodes identically on every
    client.  Values whose pickle depends on dict insertion order must not be
    stored in a set through this codec.
    """

    name = "pickle"
    protocol = 4

    def encode(self, value: Any) -> bytes:
        try:
            return pickle.dumps(value, protocol=self.protocol)
        except (pickle.PicklingError, TypeError, AttributeError) as exc:
            raise CodecEncodeError(f"cannot pickle {type(value).__name__}: {exc}") from exc

    def decode(self, data: bytes) -> Any:
        try:
            return pickle.loads(data)
        except Exception as exc:
            raise CodecDecodeError(f"invalid pickle payload: {exc}") from exc


DEFAULT_CODEC: Codec = JsonCodec()

_CODECS: dict[str, type[Codec]] = {
    cls.name: cls for cls in (JsonCodec, StringCodec, IntegerCodec, BytesCodec, PickleCodec)
}


def codec_by_name(name: str) -> Codec:
    """Resolve a configured codec name (``"json"``, ``"pickle"``...) to an instance."""
    key = (name or "").strip().lower()
    try:
        return _CODECS[key]()
    except KeyError:
        raise ValueError(f"unknown codec {name!r}; expected one of {sorted(_CODECS)}") from None
