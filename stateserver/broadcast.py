"""라이브 세션 전체로의 상태 브로드캐스트."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from .protocol import ProtocolError, encode_envelope
from .sessions import Delivery, SessionRegistry

LOGGER = logging.getLogger(__name__)


def document_version(document: Dict[str, Any]) -> Optional[int]:
    """updatedAt 스탬프. 정수가 아니면 None."""
    value = document.get("updatedAt")
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


class Broadcaster:
    """문서를 한 번 직렬화하여 모든 라이브 세션에 같은 프레임을 푸시."""

    def __init__(self, registry: SessionRegistry) -> None:
        self.registry = registry

    def broadcast(self, document: Dict[str, Any]) -> None:
        try:
            frame = encode_envelope(document)
        except ProtocolError as exc:
            LOGGER.error("broadcast encode failed: %s", exc)
            return

        version = document_version(document)
        results = self.registry.for_each_live(lambda session: session.deliver(frame, version))
        sent = sum(1 for _, result in results if result is Delivery.SENT)
        LOGGER.debug(
            "broadcast state updatedAt=%s sent=%d pruned=%d",
            document.get("updatedAt"),
            sent,
            len(results) - sent,
        )


__all__ = [
    "Broadcaster",
    "document_version",
]
