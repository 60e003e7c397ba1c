"""FastAPI server exposing chat, memory management, and backend status."""

from __future__ import annotations

import argparse
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field
import uvicorn

from hue_chat import ChatConfig, ChatService
from hue_chat.errors import BackendUnavailable, ModelUnavailable
from hue_chat.persona import HUE_PERSONA
from hue_chat.utils import setup_logging
from memory_store import StoreError

logger = logging.getLogger(__name__)


# ---------- Request Models ----------
class ChatRequest(BaseModel):
    message: Optional[str] = Field(None, description="User message to send to the model.")
    user_id: Optional[str] = Field(None, alias="userId", description="Caller-supplied user identifier.")
    stream: bool = Field(False, description="Relay the reply incrementally as text/plain.")


class MemoryRequest(BaseModel):
    key: Optional[str] = None
    value: Optional[str] = None


class PullRequest(BaseModel):
    model: Optional[str] = Field(None, description="Model to pull; defaults to the configured model.")


# ---------- FastAPI Factory ----------
def create_app(
    chat_config: Optional[ChatConfig] = None,
    *,
    log_dir: Optional[str] = None,
    service: Optional[ChatService] = None,
) -> FastAPI:
    if log_dir:
        setup_logging(log_dir, logging.INFO)

    chat_service = service or ChatService(chat_config)

    app = FastAPI(title="Hue Agent", description=HUE_PERSONA.description, version="0.1.0")
    app.state.service = chat_service

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info("Rejected malformed request to %s", request.url.path)
        detail = _error("Invalid request body", jsonable_encoder(exc.errors()))
        return JSONResponse(status_code=400, content={"detail": detail})

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        try:
            status = await run_in_threadpool(app.state.service.client.check_status)
            store_ok = await run_in_threadpool(app.state.service.store.ping)
        except Exception as exc:
            logger.exception("Health check failed")
            raise HTTPException(status_code=500, detail=_error("Health check failed", exc)) from exc

        healthy = status.reachable and status.model_available and store_ok
        return {
            "status": "healthy" if healthy else "degraded",
            "timestamp": _now(),
            "services": {"backend": status.reachable, "store": store_ok},
            "model": status.model_available,
            "ollama": status.to_dict(),
        }

    @app.post("/init")
    async def init_db() -> Dict[str, str]:
        try:
            await run_in_threadpool(app.state.service.store.init_db)
        except Exception as exc:
            logger.exception("Database initialisation failed")
            raise HTTPException(status_code=500, detail=_error("Failed to initialize database", exc)) from exc
        return {"message": "Database initialized successfully"}

    @app.post("/chat")
    async def chat(request: ChatRequest):
        logger.info(
            "Chat request for user %s (stream=%s)",
            request.user_id,
            "on" if request.stream else "off",
        )
        try:
            if request.stream:
                stream = await run_in_threadpool(app.state.service.stream_chat, request.user_id, request.message)
            else:
                reply = await run_in_threadpool(app.state.service.complete_chat, request.user_id, request.message)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=_error(str(exc))) from exc
        except BackendUnavailable as exc:
            raise HTTPException(status_code=503, detail=_error("Ollama is not running", exc)) from exc
        except ModelUnavailable as exc:
            raise HTTPException(status_code=503, detail=_error("Model not available", exc)) from exc
        except Exception as exc:
            logger.exception("Chat request failed (user_id=%s)", request.user_id)
            raise HTTPException(status_code=500, detail=_error("Failed to process chat request", exc)) from exc

        if request.stream:
            return StreamingResponse(stream, media_type="text/plain")
        return reply.to_dict()

    # ---------- Memories ----------
    @app.get("/memories/{user_id}")
    async def list_memories(user_id: str) -> Dict[str, Any]:
        try:
            facts = await run_in_threadpool(app.state.service.store.all_facts, user_id)
        except StoreError as exc:
            raise HTTPException(status_code=500, detail=_error("Failed to retrieve memories", exc)) from exc
        return {"memories": [fact.to_dict() for fact in facts]}

    @app.post("/memories/{user_id}")
    async def store_memory(user_id: str, request: MemoryRequest) -> Dict[str, Any]:
        if not request.key or not request.value:
            raise HTTPException(status_code=400, detail=_error("Missing required fields: key and value"))
        try:
            fact = await run_in_threadpool(app.state.service.store.upsert_fact, user_id, request.key, request.value)
        except StoreError as exc:
            raise HTTPException(status_code=500, detail=_error("Failed to store memory", exc)) from exc
        logger.info("Stored memory '%s' for user %s", request.key, user_id)
        return {"memory": fact.to_dict()}

    @app.get("/memories/{user_id}/{key}")
    async def get_memory(user_id: str, key: str) -> Dict[str, Any]:
        try:
            value = await run_in_threadpool(app.state.service.store.get_fact, user_id, key)
        except StoreError as exc:
            raise HTTPException(status_code=500, detail=_error("Failed to retrieve memory", exc)) from exc
        return {"key": key, "value": value}

    @app.delete("/memories/{user_id}/{key}")
    async def delete_memory(user_id: str, key: str) -> Dict[str, bool]:
        try:
            success = await run_in_threadpool(app.state.service.store.delete_fact, user_id, key)
        except StoreError as exc:
            raise HTTPException(status_code=500, detail=_error("Failed to delete memory", exc)) from exc
        return {"success": success}

    # ---------- Conversations ----------
    @app.get("/conversations/{user_id}")
    async def list_conversations(user_id: str, limit: int = 10, search: Optional[str] = None) -> Dict[str, Any]:
        store = app.state.service.store
        try:
            if search:
                records = await run_in_threadpool(store.search_conversations, user_id, search, limit)
            else:
                records = await run_in_threadpool(store.recent_conversations, user_id, limit)
        except StoreError as exc:
            raise HTTPException(status_code=500, detail=_error("Failed to retrieve conversations", exc)) from exc
        return {"conversations": [record.to_dict() for record in records]}

    @app.get("/conversations/{user_id}/stats")
    async def conversation_stats(user_id: str) -> Dict[str, Any]:
        try:
            stats = await run_in_threadpool(app.state.service.store.conversation_stats, user_id)
        except StoreError as exc:
            raise HTTPException(
                status_code=500, detail=_error("Failed to retrieve conversation stats", exc)
            ) from exc
        return {"stats": stats}

    # ---------- Backend ----------
    @app.get("/ollama/status")
    async def ollama_status() -> Dict[str, Any]:
        try:
            status = await run_in_threadpool(app.state.service.client.check_status)
        except Exception as exc:
            logger.exception("Ollama status check failed")
            raise HTTPException(status_code=500, detail=_error("Failed to check Ollama status", exc)) from exc
        return status.to_dict()

    @app.post("/ollama/pull")
    async def ollama_pull(request: Optional[PullRequest] = None) -> Dict[str, bool]:
        model = request.model if request else None
        try:
            success = await run_in_threadpool(app.state.service.client.pull_model, model)
        except Exception as exc:
            logger.exception("Model pull failed")
            raise HTTPException(status_code=500, detail=_error("Failed to pull model", exc)) from exc
        return {"success": success}

    return app


# ---------- CLI ----------
def parse_args(argv: Optional[list[str]] = None, defaults: Optional[ChatConfig] = None) -> argparse.Namespace:
    cfg = defaults or ChatConfig()
    parser = argparse.ArgumentParser(description="Run the Hue chat relay with persistent memory.")
    parser.add_argument("--host", default="0.0.0.0", help="Host interface to bind.")
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "3000")), help="Port to bind.")
    parser.add_argument("--log_dir", default="./logs", help="Directory for application logs.")
    parser.add_argument("--ollama_url", default=cfg.ollama.base_url, help="Ollama base URL.")
    parser.add_argument("--model", default=cfg.ollama.model, help="Model name for completions.")
    parser.add_argument(
        "--request_timeout", type=int, default=cfg.ollama.request_timeout, help="Timeout for Ollama calls (seconds)."
    )
    parser.add_argument("--database_url", default=cfg.database_url, help="SQLAlchemy URL of the memory database.")
    parser.add_argument("--init_db", action="store_true", help="Create the database tables before serving.")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> None:
    chat_cfg = ChatConfig.from_env()
    args = parse_args(argv, chat_cfg)
    chat_cfg.ollama.base_url = args.ollama_url
    chat_cfg.ollama.model = args.model
    chat_cfg.ollama.request_timeout = args.request_timeout
    chat_cfg.database_url = args.database_url

    app = create_app(chat_cfg, log_dir=args.log_dir)
    if args.init_db:
        app.state.service.store.init_db()
    logger.info("Starting Hue agent server on %s:%d", args.host, args.port)
    uvicorn.run(app, host=args.host, port=args.port)


# ---------- Utilities ----------
def _error(message: str, details: Any = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"error": message}
    if details is not None:
        payload["details"] = details if isinstance(details, (list, dict)) else str(details)
    return payload


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


if __name__ == "__main__":
    main()
