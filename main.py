"""
Invoice Assistant API
=====================

FastAPI front end for the conversational invoicing assistant.  It exposes
the following endpoints:

* ``GET /`` – Health check returning a simple confirmation string.
* ``GET /health`` – Model availability, accounting backend and tuning
  values for the service.
* ``POST /chat/message`` – Classify a natural-language message and run the
  matching operation (create invoice, record transaction, balance sheet or
  a conversational reply).
* ``POST /chat/clear`` – Forget a conversation's memory and pending data.
* ``GET /invoices`` – The caller's invoices, optionally filtered by status.
* ``GET /transactions`` – The caller's transactions, optionally filtered by type.
* ``POST /upload/invoice`` – Parse an uploaded invoice, extract its fields
  and either create the invoice (``auto_create``) or hold the result until
  the user confirms it in chat.
* ``POST /upload/extract`` – Parse and extract only.
* ``GET /upload/supported-types`` – Accepted upload types and size limit.

The caller identifies the user with the ``X-User-Id`` header; there is no
authentication layer here.  Chat replies never fail with an HTTP error: the
assistant answers every message, falling back to keyword classification
when the model is unavailable.  Only the upload path maps failures to
HTTP status codes.

Logging is configured via ``logging_setup.init_logging``.  Each request is
assigned a request id that flows through every log line, and slow model
round-trips are flagged with a warning.
"""

from __future__ import annotations

import os
import time
import uuid
import logging
import tempfile
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, File, Form, Header, HTTPException, Query, Request, UploadFile
from pydantic import BaseModel, Field

from logging_setup import init_logging, set_conversation_id, set_request_id
from assistant import config
from assistant.dispatcher import as_record_dict
from assistant.documents import get_supported_types, validate_file
from assistant.errors import DocumentParseError, ExtractionError
from assistant.ollama_llm import check_model_connection
from assistant.pipeline import Assistant, build_assistant
from assistant.xero import XeroBooks

init_logging()
log = logging.getLogger("main")

# ---------------------------------------------------------------------------
# Tuning knobs
# ---------------------------------------------------------------------------
SLOW_LLM_MS = int(os.getenv("SLOW_LLM_MS", "8000"))
PREVIEW_CHARS = int(os.getenv("LOG_PREVIEW_CHARS", "280"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def _preview(s: str | None, lim: int = PREVIEW_CHARS) -> Dict[str, Any]:
    """Length plus a truncated prefix of ``s`` for logging."""
    if not s:
        return {"len": 0, "preview": ""}
    s = s.strip()
    return {
        "len": len(s),
        "preview": s[:lim] + ("…" if len(s) > lim else ""),
    }


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------
class ChatMessageIn(BaseModel):
    message: str = Field(min_length=1)
    conversationId: str = "default"


class ClearConversationIn(BaseModel):
    conversationId: str = "default"


def create_app(assistant: Optional[Assistant] = None, check_model: bool = True) -> FastAPI:
    """Build the API around ``assistant`` (wired from the environment when omitted)."""
    assistant = assistant or build_assistant()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if check_model:
            await check_model_connection(assistant.classifier.llm, assistant.status)
        yield
        if isinstance(assistant.books, XeroBooks):
            await assistant.books.client.aclose()

    app = FastAPI(title="Invoice Assistant API", lifespan=lifespan)
    app.state.assistant = assistant

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        rid = request.headers.get("X-Request-Id") or uuid.uuid4().hex[:12]
        set_request_id(rid)
        set_conversation_id(None)
        response = await call_next(request)
        response.headers["X-Request-Id"] = rid
        return response

    # -----------------------------------------------------------------------
    # Root and health endpoints
    # -----------------------------------------------------------------------
    @app.get("/")
    def root() -> Dict[str, str]:
        """Basic health check for service availability."""
        return {"message": "Invoice Assistant API is running"}

    @app.get("/health")
    def health() -> Dict[str, Any]:
        """Model availability plus configuration values."""
        return {
            "ok": True,
            "model": {"name": config.ASSISTANT_MODEL, **assistant.status.as_dict()},
            "backend": config.ACCOUNTING_BACKEND,
            "memory": {
                "max_entries": assistant.memory.max_entries,
                "context_entries": assistant.memory.context_entries,
            },
            "log_level": LOG_LEVEL,
            "slow_ms": {"llm": SLOW_LLM_MS},
            "preview_chars": PREVIEW_CHARS,
        }

    # -----------------------------------------------------------------------
    # Chat
    # -----------------------------------------------------------------------
    @app.post("/chat/message")
    async def chat_message(
        payload: ChatMessageIn,
        x_user_id: str = Header("anonymous"),
    ) -> Dict[str, Any]:
        set_conversation_id(payload.conversationId)
        log.info(
            "chat_message_begin",
            extra={"kv": {"user_id": x_user_id, "message": _preview(payload.message)["preview"]}},
        )
        t0 = time.perf_counter()
        reply = await assistant.process_message(payload.message, x_user_id, payload.conversationId)
        elapsed_ms = int((time.perf_counter() - t0) * 1000)
        if elapsed_ms > SLOW_LLM_MS:
            log.warning("slow_chat_message", extra={"kv": {"elapsed_ms": elapsed_ms}})
        log.info(
            "chat_message_complete",
            extra={"kv": {
                "intent": reply.intent.value if reply.intent else "-",
                "failure": reply.failure.value if reply.failure else "-",
                "elapsed_ms": elapsed_ms,
            }},
        )
        return {**reply.model_dump(mode="json"), "conversationId": payload.conversationId}

    @app.post("/chat/clear")
    def chat_clear(
        payload: ClearConversationIn,
        x_user_id: str = Header("anonymous"),
    ) -> Dict[str, Any]:
        assistant.clear_conversation(x_user_id, payload.conversationId)
        return {"message": "Conversation cleared", "conversationId": payload.conversationId}

    # -----------------------------------------------------------------------
    # Ledger
    # -----------------------------------------------------------------------
    @app.get("/invoices")
    async def list_invoices(
        status: Optional[str] = Query(None),
        limit: Optional[int] = Query(None, ge=1),
        x_user_id: str = Header("anonymous"),
    ) -> Dict[str, Any]:
        invoices = await assistant.books.list_invoices(x_user_id, status=status, limit=limit)
        return {"invoices": [as_record_dict(inv) for inv in invoices], "count": len(invoices)}

    @app.get("/transactions")
    async def list_transactions(
        txn_type: Optional[str] = Query(None, alias="type"),
        limit: Optional[int] = Query(None, ge=1),
        x_user_id: str = Header("anonymous"),
    ) -> Dict[str, Any]:
        transactions = await assistant.books.list_transactions(x_user_id, type=txn_type, limit=limit)
        return {"transactions": [as_record_dict(txn) for txn in transactions], "count": len(transactions)}

    # -----------------------------------------------------------------------
    # Uploads
    # -----------------------------------------------------------------------
    async def _save_upload(document: UploadFile) -> tuple[str, int]:
        data = await document.read()
        errors = validate_file(document.filename or "", document.content_type, len(data))
        if errors:
            raise HTTPException(status_code=400, detail=", ".join(errors))
        suffix = os.path.splitext(document.filename or "")[1]
        with tempfile.NamedTemporaryFile(prefix="upload-", suffix=suffix, delete=False) as fh:
            fh.write(data)
        return fh.name, len(data)

    def _remove(path: str) -> None:
        try:
            os.unlink(path)
        except OSError as e:
            log.warning("upload_cleanup_failed", extra={"kv": {"path": path, "error": str(e)}})

    @app.post("/upload/invoice")
    async def upload_invoice(
        document: UploadFile = File(...),
        auto_create: bool = Form(False),
        conversationId: str = Form("default"),
        x_user_id: str = Header("anonymous"),
    ) -> Dict[str, Any]:
        set_conversation_id(conversationId)
        path, size = await _save_upload(document)
        log.info(
            "upload_invoice_begin",
            extra={"kv": {"file": document.filename, "size": size, "auto_create": auto_create}},
        )
        t0 = time.perf_counter()
        try:
            result = await assistant.process_document(
                path, document.content_type, x_user_id, conversationId, auto_create=auto_create
            )
        except DocumentParseError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except ExtractionError as e:
            raise HTTPException(status_code=502, detail=str(e))
        finally:
            _remove(path)
        elapsed_ms = int((time.perf_counter() - t0) * 1000)
        if elapsed_ms > SLOW_LLM_MS:
            log.warning("slow_llm_extract", extra={"kv": {"elapsed_ms": elapsed_ms}})
        log.info(
            "upload_invoice_complete",
            extra={"kv": {"auto_created": result.autoCreated, "pending": result.pending, "elapsed_ms": elapsed_ms}},
        )
        return result.model_dump(mode="json")

    @app.post("/upload/extract")
    async def upload_extract(
        document: UploadFile = File(...),
        x_user_id: str = Header("anonymous"),
    ) -> Dict[str, Any]:
        path, size = await _save_upload(document)
        log.info("upload_extract_begin", extra={"kv": {"file": document.filename, "user_id": x_user_id}})
        try:
            result = await assistant.extract_document(path, document.content_type)
        except DocumentParseError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except ExtractionError as e:
            raise HTTPException(status_code=502, detail=str(e))
        finally:
            _remove(path)
        return {**result.model_dump(mode="json"), "fileName": document.filename, "fileSize": size}

    @app.get("/upload/supported-types")
    def supported_types() -> Dict[str, Any]:
        return {
            "supportedTypes": get_supported_types(),
            "maxFileSize": f"{config.UPLOAD_MAX_BYTES // (1024 * 1024)}MB",
            "description": "Supported file types for invoice processing",
        }

    return app


app = create_app()
