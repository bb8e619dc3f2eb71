# Module: main
# License: MIT (Listing Studio project)
# Description: FastAPI application: listing and mannequin generation endpoints, shell hosting, logging.
# Platform: Server
# Dependencies: fastapi, uvicorn, openai

"""
===================================
LISTING STUDIO API
File: app/main.py
===================================

Endpoints:
    GET    /api/health            : {ok, hasKey}
    POST   /api/generate-listing  : photos → {title, description, price, mannequin_prompt}
    POST   /api/generate-mannequin: photos → {ok, image_data_url}
    GET    /*                     : client shell (public/), index.html fallback

Every error is returned as {"ok": false, "error": "..."}.
"""

import json
import logging
import os
import sys
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Callable, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Add project root to sys.path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.storage.local import setup_shell
from pipeline.errors import StudioError, UserInputError
from pipeline.generation import GenerationService
from pipeline.payload import GenerationRequest
from pipeline.platform_utils import MIB, Settings, load_settings, setup_logging

logger = logging.getLogger("studio.api")


def body_too_large(limit: int) -> UserInputError:
    if limit >= MIB:
        size = f"{limit // MIB} MB"
    else:
        size = f"{limit} bytes"
    return UserInputError(
        f"Request body exceeds {size}. Send fewer or smaller photos.", status_code=413,
    )


async def read_json_body(request: Request, limit: int) -> Any:
    """
    Read and decode a JSON request body.

    Raises:
        UserInputError: 413 above ``limit`` bytes, 400 for malformed JSON.
    """
    raw = await request.body()
    if len(raw) > limit:
        raise body_too_large(limit)
    if not raw.strip():
        return {}
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise UserInputError("Request body is not valid JSON.")


def create_app(
    settings: Optional[Settings] = None,
    client_factory: Optional[Callable[[str], Any]] = None,
) -> FastAPI:
    """
    Build the API.

    Args:
        settings: Runtime settings. Loaded from YAML + environment when None.
        client_factory: Builds the provider client from the API key.
    """
    settings = settings or load_settings()
    setup_logging(settings.log_level, settings.log_format)

    if client_factory is None:
        service = GenerationService(settings)
    else:
        service = GenerationService(settings, client_factory=client_factory)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Listing Studio API ready. Text model: %s, image model: %s, key configured: %s",
            settings.text_model, settings.image_model, settings.has_key,
        )
        yield
        logger.info("Shutting down Listing Studio API...")

    app = FastAPI(
        title="Listing Studio API",
        description="Marketplace listings and mannequin photos from garment snapshots",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings
    app.state.generation = service

    # ── CORS ────────────────────────────────────────────────────────────

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Middleware ──────────────────────────────────────────────────────

    @app.middleware("http")
    async def limit_body_size(request: Request, call_next):
        length = request.headers.get("content-length")
        if length and length.isdigit() and int(length) > settings.max_body_bytes:
            err = body_too_large(settings.max_body_bytes)
            logger.warning("Rejected %s %s: %s bytes", request.method, request.url.path, length)
            return JSONResponse(err.to_dict(), status_code=err.status_code)
        return await call_next(request)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.time()
        response = await call_next(request)
        latency_ms = int((time.time() - start) * 1000)

        logger.info(
            "%s %s → %d (%dms)",
            request.method, request.url.path,
            response.status_code, latency_ms,
            extra={"latency_ms": latency_ms},
        )
        return response

    # ── Errors ──────────────────────────────────────────────────────────

    @app.exception_handler(StudioError)
    async def studio_error_handler(request: Request, exc: StudioError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        else:
            logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse({"ok": False, "error": str(exc) or "Internal error"}, status_code=500)

    # ═══════════════════════════════════════════════════════════════════
    # API
    # ═══════════════════════════════════════════════════════════════════

    @app.get("/api/health")
    async def health():
        """Readiness probe; hasKey reflects whether the provider key is set."""
        return {"ok": True, "hasKey": settings.has_key}

    @app.post("/api/generate-listing")
    async def generate_listing(request: Request):
        body = await read_json_body(request, settings.max_body_bytes)
        gen_request = GenerationRequest.from_body(body)
        result = await service.generate_listing(gen_request)
        return result.to_dict()

    @app.post("/api/generate-mannequin")
    async def generate_mannequin(request: Request):
        body = await read_json_body(request, settings.max_body_bytes)
        gen_request = GenerationRequest.from_body(body)
        result = await service.generate_mannequin(gen_request)
        return result.to_dict()

    @app.api_route("/api/{rest:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
                   include_in_schema=False)
    async def api_not_found(rest: str):
        raise StudioError(f"Unknown API route: /api/{rest}", status_code=404)

    # ═══════════════════════════════════════════════════════════════════
    # SHELL
    # ═══════════════════════════════════════════════════════════════════

    setup_shell(app, settings.public_dir)

    return app


app = create_app()


# ═══════════════════════════════════════════════════════════════════════
# MAIN
# ═══════════════════════════════════════════════════════════════════════

if __name__ == "__main__":
    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "8000"))

    uvicorn.run(
        "app.main:app",
        host=host,
        port=port,
        reload=False,
        workers=1,
        log_level="info",
    )
