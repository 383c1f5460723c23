from __future__ import annotations

import threading
import time
from typing import Callable, List

from websockets.exceptions import ConnectionClosedError


class FakeSocket:
    def __init__(self, conn: "FakeConnection") -> None:
        self._conn = conn
        self.shutdown_calls = 0

    def shutdown(self, how: int) -> None:
        self.shutdown_calls += 1
        self._conn.drop()


class FakeConnection:
    """Minimal stand-in for a websockets sync ServerConnection."""

    def __init__(self, *, fail_send: bool = False, block_send: threading.Event | None = None, inbound=()) -> None:
        self.sent: List[str] = []
        self.fail_send = fail_send
        self.block_send = block_send
        self.inbound = list(inbound)
        self.remote_address = ("127.0.0.1", 50000)
        self.socket = FakeSocket(self)
        self.closed = threading.Event()
        self._lock = threading.Lock()

    def send(self, frame: str) -> None:
        if self.block_send is not None:
            self.block_send.wait(5.0)
        if self.fail_send or self.closed.is_set():
            raise ConnectionClosedError(None, None)
        with self._lock:
            self.sent.append(frame)

    def drop(self) -> None:
        self.closed.set()

    def __iter__(self):
        for message in self.inbound:
            yield message
        self.closed.wait(5.0)


def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class MemoryStore:
    """In-memory DocumentStore double."""

    def __init__(self, text: str | None = None) -> None:
        self.text = text
        self.writes = 0

    def fetch(self):
        return self.text

    def update(self, state_json: str) -> None:
        self.writes += 1
        self.text = state_json
