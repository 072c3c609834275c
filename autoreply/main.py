import os
import time
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from autoreply import models  # noqa: F401  registers tables on Base.metadata
from autoreply.config import settings
from autoreply.database import Base, SessionLocal, engine
from autoreply.logging_config import get_logger, setup_logging
from autoreply.routers import admin, webhook
from autoreply.services.ai_service import get_failover_router

setup_logging(settings.log_level)

logger = get_logger("main")

STARTED_AT = time.monotonic()

app = FastAPI(
    title="AutoReply Webhook",
    description="Answers AutoReply chat messages through an LLM with credential/model failover",
    version="0.1.0",
)

cors_env = os.environ.get("CORS_ALLOW_ORIGINS", "*")
cors_origins = [origin.strip() for origin in cors_env.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhook.router)
app.include_router(admin.router)


def _is_env_enabled(value: str | None, default: bool = True) -> bool:
    if value is None:
        return default
    return value.strip().lower() not in {"0", "false", "no", "off"}


@app.on_event("startup")
def build_router() -> None:
    # Raises EmptyCredentialPoolError and aborts startup when no credential is set.
    router = get_failover_router()
    logger.info("Webhook ready", extra={"context": {"pool_size": router.pool.size()}})


@app.on_event("startup")
def create_tables() -> None:
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return
    if not settings.history_enabled and not settings.products_enabled:
        return
    if not _is_env_enabled(os.environ.get("DB_CREATE_TABLES"), default=True):
        return
    Base.metadata.create_all(bind=engine)


def check_database() -> str:
    if not settings.history_enabled and not settings.products_enabled:
        return "disabled"
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        return "connected"
    except Exception as exc:
        logger.warning(f"Database check failed: {exc}")
        return "disconnected"
    finally:
        db.close()


@app.get("/health")
def health():
    try:
        return {
            "status": "OK",
            "database": check_database(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.monotonic() - STARTED_AT, 3),
        }
    except Exception as exc:
        logger.error(f"Health check failed: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"status": "Error", "message": "Service unhealthy", "error": str(exc)},
        )
