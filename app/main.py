"""FastAPI Heartbeat. Challenge engine."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import os
import re
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.Core.config import get_settings
from app.DB.base import list_models
from app.common.errors import EngineError, http_status_for
from app.features.participants.endpoints import router as participation_router
from app.features.participants.endpoints import admin_router as participants_admin_router
from app.features.challenges.endpoints import router as challenges_router
from app.features.challenges.endpoints import admin_router as challenges_admin_router
from app.features.leaderboard.endpoints import router as leaderboard_router
from app.features.certificates.endpoints import public_router as certificates_public_router
from app.features.certificates.endpoints import router as certificates_router
from app.features.certificates.endpoints import admin_router as certificates_admin_router
from app.features.analytics.endpoints import router as analytics_router

_settings = get_settings()
app = FastAPI(title=_settings.app_name)
_START_TIME = datetime.now(timezone.utc)

logger = logging.getLogger("app")


# ------------------------
# CORS Setup
# ------------------------
def _split_env_csv(name: str, default: str = ""):
    raw = os.getenv(name, default)
    return [o.strip().rstrip("/") for o in raw.split(",") if o.strip()]


_FRONTEND_ORIGINS = _split_env_csv(
    "ALLOW_ORIGINS",
    "http://localhost:5173,http://localhost:3000,http://127.0.0.1:5173,http://127.0.0.1:3000",
)

_CORS_ORIGIN_REGEX = re.compile(r"https?://(localhost|127\.0\.0\.1)(:\d+)?", re.I)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_FRONTEND_ORIGINS,
    allow_origin_regex=_CORS_ORIGIN_REGEX.pattern,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ------------------------
# Custom Middlewares
# ------------------------
@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    incoming = request.headers.get("X-Request-Id") or request.headers.get("X-Request-ID")
    req_id = incoming or str(uuid.uuid4())
    request.state.request_id = req_id
    req_logger = logging.getLogger("request")
    req_logger.info("request.start", extra={"request_id": req_id, "path": request.url.path, "method": request.method})
    response = await call_next(request)
    response.headers["X-Request-Id"] = req_id
    req_logger.info("request.end", extra={"request_id": req_id, "path": request.url.path, "status_code": response.status_code})
    return response


@app.middleware("http")
async def timing_middleware(request: Request, call_next):
    t0 = time.perf_counter()
    resp = await call_next(request)
    dt = int((time.perf_counter() - t0) * 1000)
    logging.getLogger("request.timing").info("%s %s %dms %d", request.method, request.url.path, dt, resp.status_code)
    return resp


# ------------------------
# Error mapping
# ------------------------
@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    status_code = http_status_for(exc)
    log = logger.warning if status_code >= 409 else logger.info
    log(
        "engine_error kind=%s code=%s path=%s request_id=%s",
        exc.kind,
        exc.code,
        request.url.path,
        getattr(request.state, "request_id", None),
    )
    return JSONResponse(status_code=status_code, content=exc.to_dict())


# ------------------------
# Routers
# ------------------------
# /challenges/me must be matched before /challenges/{challenge_id}
app.include_router(participation_router)
app.include_router(challenges_router)
app.include_router(leaderboard_router)
app.include_router(certificates_public_router)
app.include_router(certificates_router)
app.include_router(certificates_admin_router)
app.include_router(challenges_admin_router)
app.include_router(participants_admin_router)
app.include_router(analytics_router)


# ------------------------
# Meta endpoints
# ------------------------
@app.get("/", tags=["meta"], summary="API Root")
async def root():
    return {
        "name": _settings.app_name,
        "status": "ok",
        "docs": "/docs",
        "health": "/healthz",
    }


@app.get("/healthz", tags=["meta"], summary="Liveness / readiness probe")
async def healthz() -> Dict[str, Any]:
    from app.DB.session import engine

    now = datetime.now(timezone.utc)
    uptime_seconds = (now - _START_TIME).total_seconds()
    db_status: str = "unknown"
    db_latency_ms: float | None = None

    try:
        start = time.perf_counter()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        db_latency_ms = round((time.perf_counter() - start) * 1000, 2)
        db_status = "ok"
    except SQLAlchemyError as e:
        logger.warning("healthz database check failed: %s", e)
        db_status = f"error:{type(e).__name__}"

    return {
        "status": "ok" if db_status == "ok" else "degraded",
        "time_utc": now.isoformat(),
        "uptime_seconds": round(uptime_seconds, 2),
        "version": os.getenv("APP_VERSION", "dev"),
        "environment": "debug" if _settings.debug else "prod",
        "components": {
            "database": (
                {"status": db_status, "latency_ms": db_latency_ms}
                if db_status == "ok"
                else {"status": db_status}
            ),
        },
        "counts": {"routes": len(app.routes), "models": len(list_models())},
    }
