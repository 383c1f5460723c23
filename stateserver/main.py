"""Shared state sync server 진입점."""

from __future__ import annotations

import argparse
import logging
import threading
from pathlib import Path

import uvicorn
from websockets.sync.server import Server, serve

from .api import create_app
from .broadcast import Broadcaster
from .lifecycle import ConnectionHandler
from .protocol import MAX_MESSAGE_BYTES
from .sessions import DEFAULT_QUEUE_SIZE, SessionRegistry
from .state import StateService
from .store import DocumentStore

LOGGER = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    project_root = Path(__file__).resolve().parent.parent
    parser = argparse.ArgumentParser(description="Shared State Sync - Server")
    parser.add_argument("--host", default="0.0.0.0", help="서버 바인드 호스트 (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=3001, help="HTTP API 포트 (default: 3001)")
    parser.add_argument("--ws-port", type=int, default=3002, help="WebSocket 푸시 포트 (default: 3002)")
    parser.add_argument("--data-dir", type=Path, default=project_root / "data", help="상태 레코드 저장 경로")
    parser.add_argument(
        "--queue-size",
        type=int,
        default=DEFAULT_QUEUE_SIZE,
        help="세션별 송신 대기 프레임 수 (초과 시 세션 정리)",
    )
    parser.add_argument("--log-level", default="INFO", help="로그 레벨 (DEBUG/INFO/...)")
    return parser.parse_args(argv)


def create_ws_server(handler: ConnectionHandler, host: str, port: int) -> Server:
    # origins=None: Origin 검사 없음
    return serve(handler, host, port, origins=None, max_size=MAX_MESSAGE_BYTES)


def run_server(args: argparse.Namespace) -> None:
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    registry = SessionRegistry()
    state_service = StateService(DocumentStore(args.data_dir))
    broadcaster = Broadcaster(registry)
    handler = ConnectionHandler(registry, state_service, queue_size=args.queue_size)
    app = create_app(state_service, broadcaster, registry)

    ws_server = create_ws_server(handler, args.host, args.ws_port)
    ws_thread = threading.Thread(target=ws_server.serve_forever, name="ws-server", daemon=True)
    ws_thread.start()
    LOGGER.info("push channel listening on ws://%s:%s", args.host, args.ws_port)

    try:
        uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())
    except KeyboardInterrupt:
        LOGGER.info("KeyboardInterrupt → shutting down")
    finally:
        ws_server.shutdown()
        ws_thread.join(timeout=1.0)
        registry.close_all()


def main() -> None:
    args = parse_args()
    run_server(args)


if __name__ == "__main__":
    main()
