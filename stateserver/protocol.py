"""Envelope 기반 푸시 프로토콜 유틸리티."""

from __future__ import annotations

import json
from typing import Any, Dict


MAX_MESSAGE_BYTES = 1_000_000  # 1MB 제한 (오용 방지)
ENVELOPE_TYPE_STATE = "state"


class ProtocolError(Exception):
    """Envelope 직렬화/파싱 중 발생하는 예외."""


def build_envelope(document: Dict[str, Any]) -> Dict[str, Any]:
    """문서를 푸시용 Envelope로 감싼다."""
    return {"type": ENVELOPE_TYPE_STATE, "payload": document}


def encode_envelope(document: Dict[str, Any]) -> str:
    """문서를 Envelope JSON 텍스트 프레임으로 직렬화."""
    try:
        return json.dumps(
            build_envelope(document),
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        )
    except (TypeError, ValueError) as exc:
        raise ProtocolError(f"cannot encode envelope: {exc}") from exc


def decode_envelope(frame: str | bytes) -> Dict[str, Any]:
    """수신 프레임을 Envelope dict로 파싱."""
    if isinstance(frame, (bytes, bytearray)):
        try:
            frame = frame.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ProtocolError(f"bad utf-8: {exc}") from exc
    try:
        message = json.loads(frame)
    except json.JSONDecodeError as exc:
        raise ProtocolError(f"bad json: {exc}") from exc
    if not isinstance(message, dict) or "type" not in message:
        raise ProtocolError("envelope must be an object with a type")
    return message


__all__ = [
    "ENVELOPE_TYPE_STATE",
    "MAX_MESSAGE_BYTES",
    "ProtocolError",
    "build_envelope",
    "decode_envelope",
    "encode_envelope",
]
