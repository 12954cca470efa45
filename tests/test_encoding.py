from dataclasses import dataclass

import pytest

from unicache.encoding import (
    Codec,
    JSONEncoding,
    NotAPointerError,
    get_codec,
    marshal,
    register_codec,
    unmarshal,
)


class Blob:
    prefix = b"blob:"

    def __init__(self, payload=b""):
        self.payload = payload

    def marshal_binary(self):
        return self.prefix + self.payload

    def unmarshal_binary(self, data):
        self.payload = data[len(self.prefix):]


@dataclass
class User:
    name: str = ""
    age: int = 0


class UpperCodec(Codec):
    def marshal(self, value):
        return str(value).upper().encode()

    def unmarshal(self, data, target):
        target.append(data.decode())
        return target

    def name(self):
        return "UpperText"


class NamelessCodec(UpperCodec):
    def name(self):
        return ""


def test_json_round_trip_dict():
    enc = JSONEncoding()
    data = marshal(enc, {"a": 1, "b": [1, 2]})
    target = {"stale": True}
    result = unmarshal(enc, data, target)
    assert result is target
    assert target == {"a": 1, "b": [1, 2]}


def test_json_round_trip_list():
    enc = JSONEncoding()
    target = [9]
    unmarshal(enc, marshal(enc, [1, "x", None]), target)
    assert target == [1, "x", None]


def test_json_round_trip_object():
    enc = JSONEncoding()
    data = marshal(enc, User("ann", 30))
    restored = unmarshal(enc, data, User())
    assert restored == User("ann", 30)


def test_json_marshal_is_compact():
    assert JSONEncoding().marshal({"a": 1}) == b'{"a":1}'


@pytest.mark.parametrize("target", [None, "text", 5, b"raw", (1,)])
def test_unmarshal_rejects_immutable_target(target):
    with pytest.raises(NotAPointerError):
        unmarshal(JSONEncoding(), b"{}", target)


def test_unmarshal_type_mismatch_raises():
    with pytest.raises(TypeError):
        unmarshal(JSONEncoding(), b"[1, 2]", {})


def test_unmarshal_invalid_json_without_fallback():
    with pytest.raises(ValueError):
        unmarshal(JSONEncoding(), b"{not json", {})


def test_binary_used_without_encoding():
    blob = Blob(b"abc")
    data = marshal(None, blob)
    assert data == blob.marshal_binary()
    restored = unmarshal(None, data, Blob())
    assert restored.payload == b"abc"


def test_binary_fallback_when_json_fails():
    enc = JSONEncoding()
    blob = Blob(b"xyz")
    data = marshal(enc, blob)
    assert data == blob.marshal_binary()
    restored = unmarshal(enc, data, Blob())
    assert restored.payload == b"xyz"


def test_no_encoding_and_no_binary_raises():
    with pytest.raises(TypeError):
        marshal(None, {"a": 1})
    with pytest.raises(TypeError):
        unmarshal(None, b"{}", {})


def test_marshal_unserializable_without_fallback():
    with pytest.raises(TypeError):
        marshal(JSONEncoding(), {1, 2})


def test_register_codec_stores_lower_case():
    codec = UpperCodec()
    register_codec(codec)
    assert get_codec("uppertext") is codec
    assert get_codec("UpperText") is None
    assert codec.unmarshal(codec.marshal("hi"), []) == ["HI"]


def test_register_codec_rejects_bad_codecs():
    with pytest.raises(ValueError):
        register_codec(None)
    with pytest.raises(ValueError):
        register_codec(NamelessCodec())


def test_get_codec_unknown_is_none():
    assert get_codec("no-such-codec") is None