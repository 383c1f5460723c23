"""공유 문서 로드/스탬프/저장 로직."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Dict

from .store import DocumentStore, StoreCorruptError

LOGGER = logging.getLogger(__name__)

UPDATED_AT_FIELD = "updatedAt"


class StateSerializationError(Exception):
    """쓰기 경로에서 문서를 JSON으로 직렬화할 수 없을 때 발생."""


def default_state() -> Dict[str, Any]:
    """저장된 문서가 없거나 손상되었을 때 사용하는 기본 문서."""
    return {
        "todos": [],
        "bedtime": None,
        "timers": {},
        UPDATED_AT_FIELD: 0,
    }


def now_millis() -> int:
    return int(time.time() * 1000)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-standard json constant: {name}")


class StateService:
    """단일 공유 문서의 읽기/저장 순서를 담당."""

    def __init__(self, store: DocumentStore, *, clock: Callable[[], int] = now_millis) -> None:
        self.store = store
        self._clock = clock

    def load_state(self) -> Dict[str, Any]:
        try:
            text = self.store.fetch()
        except StoreCorruptError as exc:
            LOGGER.warning("state record corrupt, using default: %s", exc)
            return default_state()
        if text is None:
            return default_state()

        try:
            document = json.loads(text, parse_constant=_reject_constant)
        except (ValueError, RecursionError) as exc:
            LOGGER.warning("stored state is not valid json, using default: %s", exc)
            return default_state()
        if not isinstance(document, dict):
            LOGGER.warning("stored state is not an object, using default")
            return default_state()
        return document

    def save_state(self, candidate: Dict[str, Any]) -> Dict[str, Any]:
        """candidate 전체로 문서를 교체하고 스탬프된 문서를 반환.

        이전 문서와 병합하지 않는다 (문서 단위 last-writer-wins).
        ``updatedAt`` 은 호출자가 보낸 값과 무관하게 항상 현재 시각으로 덮어쓴다.
        """
        document = dict(candidate)
        document[UPDATED_AT_FIELD] = self._clock()
        try:
            text = json.dumps(document, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
        except (TypeError, ValueError) as exc:
            raise StateSerializationError(f"failed to serialize state: {exc}") from exc
        self.store.update(text)
        return document


__all__ = [
    "StateSerializationError",
    "StateService",
    "default_state",
    "now_millis",
]
