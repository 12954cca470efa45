"""Pluggable value encodings and the codec registry."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any


class NotAPointerError(TypeError):
    """Raised when a decode target cannot be filled in place."""


class Codec(ABC):
    """A named encoding that turns values into bytes and back."""

    @abstractmethod
    def marshal(self, value: Any) -> bytes:
        """Return the wire form of ``value``."""

    @abstractmethod
    def unmarshal(self, data: bytes, target: Any) -> Any:
        """Decode ``data`` into ``target``."""

    @abstractmethod
    def name(self) -> str:
        """Return the static name of this codec."""


class Encoding(ABC):
    """Turns cached values into bytes and back."""

    @abstractmethod
    def marshal(self, value: Any) -> bytes:
        """Return the encoded form of ``value``."""

    @abstractmethod
    def unmarshal(self, data: bytes, target: Any) -> Any:
        """Decode ``data`` into ``target`` in place and return it."""


def _json_default(obj: Any) -> Any:
    if hasattr(obj, "__dict__"):
        return vars(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _fill(target: Any, decoded: Any) -> None:
    if isinstance(target, dict):
        if not isinstance(decoded, dict):
            raise TypeError(f"cannot decode {type(decoded).__name__} into a dict")
        target.clear()
        target.update(decoded)
    elif isinstance(target, list):
        if not isinstance(decoded, list):
            raise TypeError(f"cannot decode {type(decoded).__name__} into a list")
        target[:] = decoded
    elif isinstance(decoded, dict):
        for field, item in decoded.items():
            try:
                setattr(target, field, item)
            except AttributeError as exc:
                raise TypeError(
                    f"cannot set field {field!r} on {type(target).__name__}"
                ) from exc
    else:
        raise TypeError(
            f"cannot decode {type(decoded).__name__} into {type(target).__name__}"
        )


class JSONEncoding(Encoding):
    """JSON encoding; objects are written from and read into their attributes."""

    def marshal(self, value: Any) -> bytes:
        text = json.dumps(
            value, default=_json_default, ensure_ascii=False, separators=(",", ":")
        )
        return text.encode("utf-8")

    def unmarshal(self, data: bytes, target: Any) -> Any:
        decoded = json.loads(data)
        _fill(target, decoded)
        return target


_registered_codecs: dict[str, Codec] = {}


def register_codec(codec: Codec) -> None:
    """Register ``codec`` under the lower-cased result of its ``name()``."""
    if codec is None:
        raise ValueError("cannot register a None codec")
    name = codec.name()
    if not name:
        raise ValueError("cannot register a codec with an empty name")
    _registered_codecs[name.lower()] = codec


def get_codec(content_subtype: str) -> Codec | None:
    """Return the codec registered for ``content_subtype``, or None."""
    return _registered_codecs.get(content_subtype)


_IMMUTABLE = (type(None), bool, int, float, complex, str, bytes, tuple, frozenset, range)


def _is_fillable(target: Any) -> bool:
    return not isinstance(target, _IMMUTABLE)


def marshal(encoding: Encoding | None, value: Any) -> bytes:
    """Encode ``value``, falling back to its ``marshal_binary()`` method."""
    binary = getattr(value, "marshal_binary", None)
    if not callable(binary):
        binary = None
    if encoding is None:
        if binary is None:
            raise TypeError("no encoding given and value has no marshal_binary()")
        return bytes(binary())
    try:
        return encoding.marshal(value)
    except (TypeError, ValueError):
        if binary is None:
            raise
        return bytes(binary())


def unmarshal(encoding: Encoding | None, data: bytes, target: Any) -> Any:
    """Decode ``data`` into ``target``, falling back to ``unmarshal_binary()``."""
    if not _is_fillable(target):
        raise NotAPointerError("target must be a mutable object")
    binary = getattr(target, "unmarshal_binary", None)
    if not callable(binary):
        binary = None
    if encoding is None:
        if binary is None:
            raise TypeError("no encoding given and target has no unmarshal_binary()")
        binary(data)
        return target
    try:
        encoding.unmarshal(data, target)
    except (TypeError, ValueError):
        if binary is None:
            raise
        binary(data)
    return target