from __future__ import annotations

import json
import threading

import pytest
from websockets.sync.client import connect

from stateclient.api import connect_shared_state
from stateserver.broadcast import Broadcaster
from stateserver.lifecycle import ConnectionHandler
from stateserver.main import create_ws_server
from stateserver.sessions import SessionRegistry
from stateserver.state import StateService
from stateserver.store import DocumentStore
from fakes import wait_for


@pytest.fixture
def server(tmp_path):
    registry = SessionRegistry()
    service = StateService(DocumentStore(tmp_path))
    ws_server = create_ws_server(ConnectionHandler(registry, service), "127.0.0.1", 0)
    thread = threading.Thread(target=ws_server.serve_forever, daemon=True)
    thread.start()
    port = ws_server.socket.getsockname()[1]
    try:
        yield f"ws://127.0.0.1:{port}", registry, service
    finally:
        ws_server.shutdown()
        thread.join(timeout=2)
        registry.close_all()


def test_connect_receives_snapshot_then_broadcasts(server):
    url, registry, service = server
    saved = service.save_state({"todos": [], "bedtime": "23:15", "timers": {}})

    with connect(url) as ws:
        first = json.loads(ws.recv(timeout=2))
        assert first == {"type": "state", "payload": saved}
        assert wait_for(lambda: len(registry) == 1)

        updated = service.save_state({"todos": ["walk dog"], "bedtime": None, "timers": {}})
        Broadcaster(registry).broadcast(updated)
        assert json.loads(ws.recv(timeout=2)) == {"type": "state", "payload": updated}

    assert wait_for(lambda: len(registry) == 0)


def test_all_clients_receive_identical_frame(server):
    url, registry, service = server
    clients = [connect(url) for _ in range(3)]
    try:
        for ws in clients:
            ws.recv(timeout=2)
        assert wait_for(lambda: len(registry) == 3)

        Broadcaster(registry).broadcast(service.save_state({"todos": [1]}))
        frames = {ws.recv(timeout=2) for ws in clients}
        assert len(frames) == 1
    finally:
        for ws in clients:
            ws.close()


def test_client_subscription_receives_state(server):
    url, registry, service = server
    received = []
    subscription = connect_shared_state(received.append, url)
    try:
        assert wait_for(lambda: len(received) == 1)
        assert received[0]["updatedAt"] == 0

        doc = service.save_state({"bedtime": "21:00"})
        Broadcaster(registry).broadcast(doc)
        assert wait_for(lambda: len(received) == 2)
        assert received[1] == doc
    finally:
        subscription.close()
    assert subscription.closed


def test_subscription_keeps_reading_after_callback_error(server):
    url, registry, service = server
    received = []

    def on_state(document):
        received.append(document)
        if len(received) == 1:
            raise RuntimeError("ui not ready")

    subscription = connect_shared_state(on_state, url)
    try:
        assert wait_for(lambda: len(received) == 1)
        doc = service.save_state({"todos": ["after error"]})
        Broadcaster(registry).broadcast(doc)
        assert wait_for(lambda: len(received) == 2)
        assert received[1] == doc
        assert not subscription.closed
    finally:
        subscription.close()
