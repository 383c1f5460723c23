"""WebSocket 연결 수명 주기 처리."""

from __future__ import annotations

import logging
from typing import Any

from websockets.exceptions import ConnectionClosed

from .broadcast import document_version
from .protocol import ProtocolError, encode_envelope
from .sessions import DEFAULT_QUEUE_SIZE, Delivery, Session, SessionRegistry
from .state import StateService

LOGGER = logging.getLogger(__name__)


class ConnectionHandler:
    """연결 시 세션 등록 + 현재 상태 스냅샷 전송, 종료 시 등록 해제."""

    def __init__(
        self,
        registry: SessionRegistry,
        state_service: StateService,
        *,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        stop_timeout: float = 1.0,
    ) -> None:
        self.registry = registry
        self.state_service = state_service
        self.queue_size = queue_size
        self.stop_timeout = stop_timeout

    def __call__(self, connection: Any) -> None:
        session = Session(connection, queue_size=self.queue_size, hold_until_snapshot=True)
        session.start()
        self.registry.register(session)
        try:
            if not self.send_snapshot(session):
                LOGGER.warning("initial snapshot failed, dropping session: %s", session.id)
                session.close()
                return
            try:
                for message in connection:
                    LOGGER.debug("ignoring inbound frame from %s (%d chars)", session.id, len(message))
            except (ConnectionClosed, OSError):
                pass
        finally:
            self.registry.unregister(session)
            session.stop(self.stop_timeout)

    def send_snapshot(self, session: Session) -> bool:
        try:
            document = self.state_service.load_state()
            frame = encode_envelope(document)
        except ProtocolError as exc:
            LOGGER.error("snapshot encode failed: %s", exc)
            return False
        except Exception:
            LOGGER.exception("snapshot load failed: session=%s", session.id)
            return False
        return session.deliver_snapshot(frame, document_version(document)) is Delivery.SENT


__all__ = [
    "ConnectionHandler",
]
