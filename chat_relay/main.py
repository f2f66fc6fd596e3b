"""
chat-relay — FastAPI entrypoint.
"""
from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

# Load .env before anything else
load_dotenv()

from chat_relay.config import get_settings, load_config, load_credentials
from chat_relay.errors import RelayError
from chat_relay.middleware.request_log import request_log_middleware
from chat_relay.routers.chat import router as chat_router
from chat_relay.routers.providers import router as providers_router

VERSION = "0.1.0"

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s", "%Y-%m-%d %H:%M:%S")
    )
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # SDK request logs are noisy at INFO
    for noisy in ("httpx", "httpcore", "openai", "google_genai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level)
    cfg = load_config()
    credentials = load_credentials(cfg)
    logger.info(
        "chat-relay %s starting (environment=%s, providers=%s)",
        VERSION,
        settings.environment,
        ", ".join(f"{name}{'' if key else ' (no key)'}" for name, key in credentials.items()),
    )
    yield


app = FastAPI(
    title="chat-relay",
    description="Streams chat completions from OpenAI or Gemini as server-sent events",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origin_list(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

app.middleware("http")(request_log_middleware)


@app.exception_handler(RelayError)
async def relay_error_handler(request: Request, exc: RelayError):
    logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    message = "Method not allowed" if exc.status_code == 405 else str(exc.detail)
    return JSONResponse({"error": message}, status_code=exc.status_code, headers=exc.headers)


app.include_router(chat_router, prefix="/api")
app.include_router(providers_router, prefix="/api")
# Unprefixed alias for clients that post straight to /chat
app.include_router(chat_router)


@app.get("/api/health")
async def health():
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": get_settings().environment,
        "version": VERSION,
    }


def start():
    import uvicorn
    settings = get_settings()
    uvicorn.run("chat_relay.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    start()
