"""단일 문서 레코드 영속화 유틸."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Optional

LOGGER = logging.getLogger(__name__)

RECORD_FILENAME = "shared_state.json"


class StoreCorruptError(Exception):
    """레코드 파일 자체를 읽을 수 없을 때 발생."""


class DocumentStore:
    """문서 JSON 텍스트와 마지막 수정 시각을 담은 단일 레코드 저장소.

    레코드는 ``{"state": "<json text>", "updatedAt": <epoch ms>}`` 형태의
    파일 하나이며, 쓰기는 임시 파일 + ``os.replace`` 로 통째로 교체된다.
    """

    def __init__(self, data_dir: Path, *, filename: str = RECORD_FILENAME) -> None:
        self.data_dir = ensure_storage(data_dir)
        self.path = self.data_dir / filename

    def fetch(self) -> Optional[str]:
        """저장된 문서 텍스트를 반환. 레코드가 없으면 None."""
        if not self.path.exists():
            return None
        try:
            with self.path.open("r", encoding="utf-8") as fp:
                record = json.load(fp)
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise StoreCorruptError(f"record unreadable: {exc}") from exc

        if not isinstance(record, dict) or not isinstance(record.get("state"), str):
            raise StoreCorruptError("record has no state text")
        return record["state"]

    def update(self, state_json: str) -> None:
        """문서 텍스트와 수정 시각을 무조건 교체."""
        record = {
            "state": state_json,
            "updatedAt": int(time.time() * 1000),
        }
        self.data_dir.mkdir(parents=True, exist_ok=True)
        tmp_fd, tmp_path = tempfile.mkstemp(dir=self.data_dir, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as fp:
                json.dump(record, fp, ensure_ascii=False)
            os.replace(tmp_path, self.path)
            LOGGER.debug("state record saved: %s (%d bytes)", self.path, len(state_json))
        finally:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)


def ensure_storage(data_dir: Path) -> Path:
    data_dir = Path(data_dir)
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


__all__ = [
    "DocumentStore",
    "StoreCorruptError",
    "ensure_storage",
]
