"""푸시 세션 및 스레드 안전 세션 레지스트리."""

from __future__ import annotations

import enum
import logging
import queue
import socket
import threading
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

from websockets.exceptions import ConnectionClosed

LOGGER = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 32

_STOP = object()


class Delivery(enum.Enum):
    """세션 하나에 대한 전달 시도 결과."""

    SENT = "sent"
    CLOSED = "closed"
    OVERFLOW = "overflow"


class Session:
    """WebSocket 푸시 세션.

    전송은 세션 전용 writer 스레드가 담당하며, ``deliver`` 는 큐에 넣기만
    하므로 느리거나 죽은 소켓이 호출자를 막지 않는다.

    ``hold_until_snapshot=True`` 이면 ``deliver_snapshot`` 이 호출될 때까지
    브로드캐스트 프레임을 보류하여, 첫 프레임이 항상 연결 스냅샷이 되도록 한다.
    """

    def __init__(
        self,
        connection: Any,
        *,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        hold_until_snapshot: bool = False,
    ) -> None:
        self.id = f"S-{uuid.uuid4().hex[:8]}"
        self.connection = connection
        self.addr = getattr(connection, "remote_address", None)
        self.alive = True
        self._outbox: "queue.Queue[object]" = queue.Queue(maxsize=max(1, queue_size))
        self._writer_thread: Optional[threading.Thread] = None
        self._gate_lock = threading.Lock()
        self._snapshot_pending = hold_until_snapshot
        self._held: List[Tuple[str, Optional[int]]] = []

    @property
    def key(self) -> int:
        return id(self.connection)

    def start(self) -> None:
        if self._writer_thread is not None:
            return
        self._writer_thread = threading.Thread(
            target=self._writer_loop, name=f"writer-{self.id}", daemon=True
        )
        self._writer_thread.start()

    def deliver(self, frame: str, version: Optional[int] = None) -> Delivery:
        """프레임을 송신 큐에 넣는다. version은 문서의 updatedAt."""
        with self._gate_lock:
            if self._snapshot_pending and self.alive:
                if len(self._held) >= self._outbox.maxsize:
                    return self._overflow()
                self._held.append((frame, version))
                return Delivery.SENT
            return self._enqueue(frame)

    def deliver_snapshot(self, frame: str, version: Optional[int] = None) -> Delivery:
        """스냅샷을 먼저 넣고, 보류된 프레임 중 스냅샷보다 오래되지 않은 것만 뒤이어 넣는다."""
        with self._gate_lock:
            self._snapshot_pending = False
            held, self._held = self._held, []
            result = self._enqueue(frame)
            for held_frame, held_version in held:
                if result is not Delivery.SENT:
                    break
                if version is not None and held_version is not None and held_version < version:
                    continue
                result = self._enqueue(held_frame)
            return result

    def _enqueue(self, frame: str) -> Delivery:
        if not self.alive:
            return Delivery.CLOSED
        try:
            self._outbox.put_nowait(frame)
        except queue.Full:
            return self._overflow()
        return Delivery.SENT

    def _overflow(self) -> Delivery:
        LOGGER.warning("session outbox full, dropping: %s", self.id)
        self.close()
        return Delivery.OVERFLOW

    def send(self, frame: str) -> None:
        if not self.alive:
            raise ConnectionError("session closed")
        try:
            self.connection.send(frame)
        except (ConnectionClosed, OSError) as exc:
            self.alive = False
            raise ConnectionError("send failed") from exc

    def _writer_loop(self) -> None:
        while True:
            frame = self._outbox.get()
            if frame is _STOP or not self.alive:
                break
            try:
                self.send(frame)
            except ConnectionError as exc:
                LOGGER.info("session send failed: %s (%s)", self.id, exc.__cause__ or exc)
                self.close()
                break

    def stop(self, timeout: Optional[float] = None) -> None:
        """writer 스레드를 멈춘다. 전송 소켓은 건드리지 않는다."""
        self.alive = False
        try:
            self._outbox.put_nowait(_STOP)
        except queue.Full:
            pass
        thread = self._writer_thread
        if timeout is not None and thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def close(self) -> None:
        self.stop()
        sock = getattr(self.connection, "socket", None)
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass


class SessionRegistry:
    """핸들 식별자 기반의 라이브 세션 집합."""

    def __init__(self) -> None:
        self._sessions: Dict[int, Session] = {}
        self._lock = threading.Lock()

    def register(self, session: Session) -> None:
        with self._lock:
            self._sessions[session.key] = session
            total = len(self._sessions)
        LOGGER.info("session connected: %s %s (total=%d)", session.id, session.addr, total)

    def unregister(self, session: Session) -> None:
        if self._discard(session):
            LOGGER.info("session closed: %s", session.id)

    def snapshot(self) -> List[Session]:
        with self._lock:
            return list(self._sessions.values())

    def for_each_live(self, fn: Callable[[Session], Delivery]) -> List[Tuple[Session, Delivery]]:
        """스냅샷 위에서 fn을 호출하고, 닫혔거나 전달에 실패한 세션은 제거."""
        results: List[Tuple[Session, Delivery]] = []
        for session in self.snapshot():
            if not session.alive:
                result = Delivery.CLOSED
            else:
                try:
                    result = fn(session)
                except Exception:
                    LOGGER.exception("delivery failed: session=%s", session.id)
                    result = Delivery.CLOSED
            if result is not Delivery.SENT and self._discard(session):
                LOGGER.info("session pruned: %s (%s)", session.id, result.value)
            results.append((session, result))
        return results

    def close_all(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.close()

    def _discard(self, session: Session) -> bool:
        with self._lock:
            if self._sessions.get(session.key) is session:
                del self._sessions[session.key]
                return True
            return False

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session: object) -> bool:
        if not isinstance(session, Session):
            return False
        with self._lock:
            return self._sessions.get(session.key) is session


__all__ = [
    "DEFAULT_QUEUE_SIZE",
    "Delivery",
    "Session",
    "SessionRegistry",
]
