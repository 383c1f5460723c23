from __future__ import annotations

import json

import pytest

from stateserver.protocol import ProtocolError, build_envelope, decode_envelope, encode_envelope


def test_encode_envelope_wraps_document():
    frame = encode_envelope({"todos": [], "updatedAt": 1})
    assert json.loads(frame) == {"type": "state", "payload": {"todos": [], "updatedAt": 1}}
    assert " " not in frame


def test_encode_keeps_unicode():
    frame = encode_envelope({"bedtime": "22:30", "note": "спать"})
    assert "спать" in frame


def test_encode_rejects_non_json_values():
    with pytest.raises(ProtocolError):
        encode_envelope({"x": float("inf")})
    with pytest.raises(ProtocolError):
        encode_envelope({"x": {1, 2}})


def test_build_envelope_is_fresh_each_time():
    doc = {"a": 1}
    assert build_envelope(doc) is not build_envelope(doc)


def test_decode_envelope_accepts_bytes_and_text():
    assert decode_envelope(b'{"type":"state","payload":{}}')["type"] == "state"
    assert decode_envelope('{"type":"state","payload":{}}')["payload"] == {}


@pytest.mark.parametrize("frame", ["{nope", "[]", '{"payload":{}}', b"\xff\xfe"])
def test_decode_envelope_rejects_bad_frames(frame):
    with pytest.raises(ProtocolError):
        decode_envelope(frame)
