from __future__ import annotations

# File: apps/api/main.py
import logging
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

# --- Local Imports ---
from .settings import settings
from .configurations import router as configurations_router
from .consult import router as consult_router
from .hka import router as hka_router
from .invoices import router as invoices_router

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    extra = [o.strip() for o in (settings.CORS_ORIGINS or "").split(",")]
    return sorted({
        str(settings.FRONTEND_BASE_URL or "").rstrip("/"),
        "http://localhost:9002",
        "http://127.0.0.1:9002",
        *[o.rstrip("/") for o in extra],
    } - {""})


def _error_body(detail: Any) -> Dict[str, Any]:
    if isinstance(detail, dict):
        return detail
    return {"message": str(detail)}


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(_error_body(exc.detail), status_code=exc.status_code, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in exc.errors()]
    fields = [".".join(str(p) for p in e["loc"] if p != "body") for e in errors]
    fields = [f for f in fields if f]
    logger.info("Rejected request to %s: %s", request.url.path, fields)
    message = f"Solicitud inválida: {', '.join(fields)}" if fields else "Solicitud inválida."
    return JSONResponse({"message": message, "errors": errors}, status_code=400)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
    return JSONResponse({"message": "Error interno del servidor.", "error": str(exc)}, status_code=500)


def create_app() -> FastAPI:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    app = FastAPI(title="Fact-UbicSystem API")

    app.add_middleware(
        CORSMiddleware,
        # Explicit origins are required when using credentials (Authorization headers).
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(hka_router)
    app.include_router(invoices_router)
    app.include_router(consult_router)
    app.include_router(configurations_router)

    @app.get("/health")
    async def health():
        return {"ok": True, "transport": settings.HKA_TRANSPORT, "defaultEnv": settings.HKA_DEFAULT_ENV}

    return app


app = create_app()
