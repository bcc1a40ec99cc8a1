import asyncio
import logging
import os
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Optional, Tuple
from urllib.parse import urlparse

import requests
from fastapi import Depends, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import get_settings
from context import build_context
from database.database import get_db, init_db
from doc_ingest import extract_text
from errors import ChatAppError, UpstreamError, ValidationError
from llm import LLMClient
from memory import clear_memory, fetch_memory_rows, get_conversation, load_memory, save_exchange
from schemas import ChatRequest, ChatResponse, ConversationOut, MemoryEntry, UploadResponse
from storage import build_storage

# -----------------------------------------------------
# ENV & LOGGING
# -----------------------------------------------------
settings = get_settings()

logger = logging.getLogger("chatbot")
if not logger.handlers:
    logging.basicConfig(level=settings.log_level)

if settings.llm_provider == "openai" and not settings.openai_api_key:
    logger.error("❌ MISSING OPENAI_API_KEY")
if settings.llm_provider == "gemini" and not settings.gemini_api_key:
    logger.error("❌ MISSING GEMINI_API_KEY")


# -----------------------------------------------------
# SERVICES
# -----------------------------------------------------
@lru_cache(maxsize=1)
def get_llm() -> LLMClient:
    return LLMClient(get_settings())


@lru_cache(maxsize=1)
def get_storage():
    return build_storage(get_settings())


# -----------------------------------------------------
# FASTAPI APP
# -----------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    if settings.storage_backend == "local":
        os.makedirs(settings.upload_dir, exist_ok=True)
    yield


app = FastAPI(title="Chat API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.storage_backend == "local":
    app.mount("/files", StaticFiles(directory=settings.upload_dir, check_dir=False), name="files")


# -----------------------------------------------------
# ERROR HANDLERS
# -----------------------------------------------------
@app.exception_handler(ChatAppError)
async def chat_app_error_handler(request: Request, exc: ChatAppError):
    logger.warning(f"{exc.kind.value} error on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request body"
    if errors:
        loc = ".".join(str(p) for p in errors[0].get("loc", ()) if p != "body")
        message = f"{message}: {loc} {errors[0].get('msg', '')}".strip()
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# -----------------------------------------------------
# HEALTH CHECK
# -----------------------------------------------------
@app.get("/")
@app.get("/health")
def health():
    return {"status": "ok"}


# -----------------------------------------------------
# CHAT ENDPOINT
# -----------------------------------------------------
@app.post("/api/chat", response_model=ChatResponse)
def chat(
    data: ChatRequest,
    db: Session = Depends(get_db),
    llm: LLMClient = Depends(get_llm),
):
    user_id = (data.user_id or "").strip()
    if not user_id:
        raise ValidationError("userId is required in request body")
    if not data.messages:
        raise ValidationError("messages must be a non-empty array")

    cfg = get_settings()

    memory = load_memory(db, user_id, limit=cfg.memory_fetch_limit)
    turns = build_context(memory, data.messages, cfg.max_context_tokens)
    logger.info(
        f"Chat user={user_id} new_turns={len(data.messages)} "
        f"memory_turns={len(memory)} context_turns={len(turns)}"
    )

    reply = llm.generate(turns, cfg.system_prompt)

    save_exchange(
        db,
        user_id,
        data.messages,
        reply.text,
        include_user_turns=cfg.memory_include_user_turns,
        max_rows=cfg.memory_max_rows,
    )

    return ChatResponse(reply=reply.text)


# -----------------------------------------------------
# UPLOAD ENDPOINT
# -----------------------------------------------------
def fetch_remote_file(url: str) -> Tuple[bytes, str, str]:
    """Download a file referenced by URL; returns (data, filename, content_type)."""
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"}:
        raise ValidationError("url must be an http(s) URL")
    try:
        resp = requests.get(url, timeout=get_settings().request_timeout)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise UpstreamError(f"Failed to fetch {url}: {e}") from e
    filename = os.path.basename(parsed.path) or "download"
    content_type = resp.headers.get("content-type", "")
    return resp.content, filename, content_type


async def read_upload(request: Request) -> Tuple[bytes, str, str]:
    content_type = request.headers.get("content-type", "")

    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        file = form.get("file")
        if isinstance(file, UploadFile):
            data = await file.read()
            return data, file.filename or "upload", file.content_type or ""
        url = form.get("url")
        if isinstance(url, str) and url.strip():
            return await run_in_threadpool(fetch_remote_file, url.strip())

    elif content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            raise ValidationError("Invalid JSON body")
        url = body.get("url") if isinstance(body, dict) else None
        if isinstance(url, str) and url.strip():
            return await run_in_threadpool(fetch_remote_file, url.strip())

    raise ValidationError("No file uploaded")


def summarize_safely(llm: LLMClient, text: str) -> Optional[str]:
    cfg = get_settings()
    if not cfg.summary_enabled or len(text.strip()) <= cfg.summary_min_chars:
        return None
    try:
        return llm.summarize(text)
    except Exception as e:
        logger.warning(f"⚠️ AI summary failed: {e}")
        return None


@app.post("/api/upload", response_model=UploadResponse)
async def upload(
    request: Request,
    llm: LLMClient = Depends(get_llm),
    storage=Depends(get_storage),
):
    data, filename, content_type = await read_upload(request)
    logger.info(f"Upload {filename!r} type={content_type!r} size={len(data)}")

    stored, extracted = await asyncio.gather(
        run_in_threadpool(storage.upload, data, filename, content_type),
        run_in_threadpool(extract_text, data, content_type, filename),
    )

    summary = await run_in_threadpool(summarize_safely, llm, extracted)

    return UploadResponse(
        file_name=filename,
        file_type=content_type,
        file_url=stored.url,
        extracted_text=extracted,
        ai_summary=summary,
    )


# -----------------------------------------------------
# CONVERSATION & MEMORY
# -----------------------------------------------------
@app.get("/api/conversations/{user_id}", response_model=ConversationOut)
def read_conversation(user_id: str, db: Session = Depends(get_db)):
    record = get_conversation(db, user_id)
    if record is None:
        raise StarletteHTTPException(status_code=404, detail="Conversation not found")
    return ConversationOut(
        user_id=record.user_id,
        messages=record.turns(),
        created_at=record.created_at.isoformat() if record.created_at else None,
        updated_at=record.updated_at.isoformat() if record.updated_at else None,
    )


@app.get("/api/memory/{user_id}", response_model=list[MemoryEntry])
def read_memory(user_id: str, db: Session = Depends(get_db)):
    rows = fetch_memory_rows(db, user_id, limit=get_settings().memory_fetch_limit)
    return [
        MemoryEntry(
            role=r.role,
            content=r.content,
            created_at=r.created_at.isoformat() if r.created_at else None,
        )
        for r in rows
    ]


@app.delete("/api/memory/{user_id}")
def delete_memory(user_id: str, db: Session = Depends(get_db)):
    deleted = clear_memory(db, user_id)
    return {"deleted": deleted}
