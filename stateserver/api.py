"""공유 상태 HTTP API (FastAPI)."""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import BackgroundTasks, Body, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .broadcast import Broadcaster
from .sessions import SessionRegistry
from .state import StateSerializationError, StateService

LOGGER = logging.getLogger(__name__)

INVALID_STATE_MESSAGE = "state must be an object"


def create_app(
    state_service: StateService,
    broadcaster: Broadcaster,
    registry: SessionRegistry,
) -> FastAPI:
    app = FastAPI(title="Shared State Sync", version="1.0.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def _invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        LOGGER.info("rejected request body: %s %s", request.method, request.url.path)
        return JSONResponse(status_code=400, content={"error": INVALID_STATE_MESSAGE})

    @app.exception_handler(StateSerializationError)
    async def _serialization_failed(request: Request, exc: StateSerializationError) -> JSONResponse:
        LOGGER.error("state save failed: %s", exc)
        return JSONResponse(status_code=500, content={"error": "failed to serialize state"})

    @app.get("/state")
    def get_state() -> Dict[str, Any]:
        return state_service.load_state()

    @app.post("/state")
    def post_state(background_tasks: BackgroundTasks, body: Any = Body(...)):
        if not isinstance(body, dict):
            return JSONResponse(status_code=400, content={"error": INVALID_STATE_MESSAGE})

        LOGGER.info("incoming state payload: %d keys", len(body))
        updated = state_service.save_state(body)
        # 응답 이후에 푸시한다. 브로드캐스트 실패는 쓰기 결과에 영향 없음.
        background_tasks.add_task(broadcaster.broadcast, updated)
        return {"ok": True}

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"status": "ok", "sessions": len(registry)}

    return app


__all__ = [
    "INVALID_STATE_MESSAGE",
    "create_app",
]
