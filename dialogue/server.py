"""
HTTP boundary for the chat engine.

Validates caller input, enforces the optional API key, and delegates each
request to the shared `ChatRuntime` built in the lifespan hook. The lifespan
also loads the knowledge cache and runs the idle-session sweeper.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
import logging
from typing import AsyncIterator, Callable

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from config.settings import Settings, get_settings
from dialogue.context_store import run_sweeper
from dialogue.runtime import ChatRuntime, build_runtime
from knowledge.llm_client import ModelClientError

logger = logging.getLogger(__name__)


class ChatRequest(BaseModel):
    sessionId: str = Field(min_length=8)
    prompt: str = Field(min_length=1)


class ChatResponse(BaseModel):
    text: str


def create_app(
    settings: Settings | None = None,
    runtime_factory: Callable[[Settings], ChatRuntime] | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    factory = runtime_factory or build_runtime

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        runtime = factory(settings)
        app.state.runtime = runtime
        sweeper = asyncio.create_task(
            run_sweeper(runtime.contexts, settings.sweep_interval_seconds),
            name="session-sweeper",
        )
        try:
            yield
        finally:
            sweeper.cancel()
            try:
                await sweeper
            except asyncio.CancelledError:
                pass
            await runtime.aclose()

    app = FastAPI(title="Portfolio chat", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_origin],
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "x-api-key"],
    )

    def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
        if not settings.api_key:
            return
        if x_api_key != settings.api_key:
            raise HTTPException(status_code=401, detail="Unauthorized")

    def get_runtime(request: Request) -> ChatRuntime:
        return request.app.state.runtime

    @app.exception_handler(ModelClientError)
    async def _model_error(_request: Request, exc: ModelClientError) -> JSONResponse:
        logger.error("Upstream model failure: %s", exc)
        return JSONResponse(status_code=502, content={"error": "Upstream model error"})

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/chat", response_model=ChatResponse, dependencies=[Depends(require_api_key)])
    async def chat(body: ChatRequest, runtime: ChatRuntime = Depends(get_runtime)) -> ChatResponse:
        result = await runtime.engine.chat(body.sessionId, body.prompt)
        return ChatResponse(text=result.text)

    @app.post("/sessions/{session_id}/reset", dependencies=[Depends(require_api_key)])
    async def reset(session_id: str, runtime: ChatRuntime = Depends(get_runtime)) -> dict[str, str]:
        runtime.engine.reset(session_id)
        return {"status": "reset"}

    @app.get("/debug/sessions/{session_id}/turns", dependencies=[Depends(require_api_key)])
    async def debug_turns(session_id: str, runtime: ChatRuntime = Depends(get_runtime)) -> dict:
        turns = await asyncio.to_thread(runtime.store.fetch_turns, session_id)
        return {"sessionId": session_id, "turns": turns}

    return app
