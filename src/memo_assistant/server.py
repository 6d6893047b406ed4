"""FastAPI application exposing the assistant as a long-lived service."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from . import __version__
from . import client as client_mod
from . import orchestrator as orchestrator_mod
from .config import load_config
from .errors import CompletionError, StorageUnavailableError
from .memory import MemoryStore
from .memory import create_from_config as create_store
from .orchestrator import Completer

logger = logging.getLogger(__name__)


# -----------------------------
# Pydantic request/response
# -----------------------------
class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)


class ChatResponse(BaseModel):
    reply: str
    state: str
    persisted: bool


class MemoryResponse(BaseModel):
    memory: str


# -----------------------------
# App factory
# -----------------------------
def create_app(
    config_path: Optional[str] = None,
    client: Optional[Completer] = None,
    store: Optional[MemoryStore] = None,
) -> FastAPI:
    cfg = load_config(config_path)

    # CORS
    cors_origins = (cfg.get("server") or {}).get("cors_origins", ["*"])

    # Services: one client and one store for the app lifetime, one
    # orchestrator (and history log) per request.
    owns_client = client is None
    client = client or client_mod.create_from_config(cfg)
    store = store or create_store(cfg)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        if owns_client:
            logger.info("Closing completion client")
            client.close()

    app = FastAPI(title="Memo Assistant", version=__version__, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {
            "ok": True,
            "memory_path": str(store.path),
            "memory_exists": store.exists(),
        }

    @app.get("/memory", response_model=MemoryResponse)
    def get_memory() -> MemoryResponse:
        try:
            return MemoryResponse(memory=store.load())
        except StorageUnavailableError as e:
            raise HTTPException(status_code=503, detail=str(e))

    @app.post("/chat", response_model=ChatResponse)
    def chat(req: ChatRequest) -> ChatResponse:
        msg = (req.message or "").strip()
        if not msg:
            raise HTTPException(status_code=400, detail="Message cannot be empty.")

        orch = orchestrator_mod.create_from_config(cfg, client=client, store=store)
        try:
            result = orch.run(msg)
        except CompletionError as e:
            logger.error("Completion failed: %s", e)
            raise HTTPException(status_code=502, detail=f"Completion provider failed: {e}")
        except StorageUnavailableError as e:
            logger.error("Memory unavailable: %s", e)
            raise HTTPException(status_code=503, detail=str(e))

        return ChatResponse(reply=result.reply, state=result.state.value, persisted=result.persisted)

    return app
