"""공유 상태 서버 클라이언트 API (HTTP + WebSocket 구독)."""

from __future__ import annotations

import logging
import os
import threading
from typing import Any, Callable, Dict, Optional

import requests
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI
from websockets.sync.client import connect

from stateserver.protocol import ENVELOPE_TYPE_STATE, ProtocolError, decode_envelope

LOGGER = logging.getLogger(__name__)

ENV_API_BASE = "SHARED_STATE_API_BASE"
ENV_WS_URL = "SHARED_STATE_WS_URL"

DEFAULT_API_BASE = "http://localhost:3001"
DEFAULT_WS_URL = "ws://localhost:3002"


class ApiErrorCodes:
    NETWORK = "network_error"
    BAD_RESPONSE = "bad_response"
    INVALID_JSON = "invalid_json"
    UNKNOWN = "unknown_error"


class ApiError(Exception):
    """서버 호출 실패. code는 ApiErrorCodes 중 하나."""

    def __init__(
        self,
        message: str,
        *,
        code: str = ApiErrorCodes.UNKNOWN,
        status: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status = status
        self.cause = cause


def api_base_from_env() -> str:
    return os.environ.get(ENV_API_BASE) or DEFAULT_API_BASE


def ws_url_from_env() -> str:
    return os.environ.get(ENV_WS_URL) or DEFAULT_WS_URL


def load_shared_state(api_base: Optional[str] = None, *, timeout: float = 5.0) -> Dict[str, Any]:
    url = f"{(api_base or api_base_from_env()).rstrip('/')}/state"
    try:
        res = requests.get(url, headers={"Accept": "application/json"}, timeout=timeout)
    except requests.RequestException as exc:
        raise ApiError("loadSharedState failed: network error", code=ApiErrorCodes.NETWORK, cause=exc) from exc

    if not res.ok:
        raise ApiError(
            f"loadSharedState failed: {res.status_code} {res.text}",
            code=ApiErrorCodes.BAD_RESPONSE,
            status=res.status_code,
        )

    try:
        data = res.json()
    except ValueError:
        data = None
    if not isinstance(data, dict):
        raise ApiError("loadSharedState failed: invalid JSON", code=ApiErrorCodes.INVALID_JSON)
    return data


def save_shared_state(state: Dict[str, Any], api_base: Optional[str] = None, *, timeout: float = 5.0) -> bool:
    url = f"{(api_base or api_base_from_env()).rstrip('/')}/state"
    try:
        res = requests.post(url, json=state, headers={"Accept": "application/json"}, timeout=timeout)
    except requests.RequestException as exc:
        raise ApiError("saveSharedState failed: network error", code=ApiErrorCodes.NETWORK, cause=exc) from exc

    if not res.ok:
        raise ApiError(
            f"saveSharedState failed: {res.status_code} {res.text}",
            code=ApiErrorCodes.BAD_RESPONSE,
            status=res.status_code,
        )
    return True


def parse_state_frame(frame: Any) -> Optional[Dict[str, Any]]:
    """state Envelope이면 payload를, 아니면 None을 반환."""
    try:
        message = decode_envelope(frame)
    except ProtocolError:
        return None
    if message.get("type") != ENVELOPE_TYPE_STATE:
        return None
    payload = message.get("payload")
    return payload if isinstance(payload, dict) else None


class Subscription:
    """WebSocket 구독. 수신 스레드에서 on_state 콜백을 호출한다."""

    def __init__(self, ws_url: str, on_state: Callable[[Dict[str, Any]], None]) -> None:
        self.ws_url = ws_url
        self._on_state = on_state
        self._ws = connect(ws_url, open_timeout=5.0)
        self._closed = threading.Event()
        self._reader_thread = threading.Thread(target=self._reader_loop, name="state-subscription", daemon=True)
        self._reader_thread.start()

    def _reader_loop(self) -> None:
        try:
            for frame in self._ws:
                payload = parse_state_frame(frame)
                if payload is None:
                    LOGGER.debug("ignoring non-state frame")
                    continue
                try:
                    self._on_state(payload)
                except Exception:
                    LOGGER.exception("state callback failed")
        except ConnectionClosed:
            pass
        finally:
            self._closed.set()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def wait_closed(self, timeout: Optional[float] = None) -> bool:
        return self._closed.wait(timeout)

    def close(self) -> None:
        try:
            self._ws.close()
        except OSError:
            pass
        self._reader_thread.join(timeout=1.0)


def connect_shared_state(
    on_state: Callable[[Dict[str, Any]], None], ws_url: Optional[str] = None
) -> Subscription:
    url = ws_url or ws_url_from_env()
    try:
        return Subscription(url, on_state)
    except (OSError, TimeoutError, InvalidHandshake, InvalidURI) as exc:
        raise ApiError("connectSharedState failed: network error", code=ApiErrorCodes.NETWORK, cause=exc) from exc


__all__ = [
    "ApiError",
    "ApiErrorCodes",
    "Subscription",
    "connect_shared_state",
    "load_shared_state",
    "parse_state_frame",
    "save_shared_state",
]
