import sys
import os

sys.path.append(os.path.dirname(os.path.abspath(__file__)))

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv

load_dotenv()

from fastapi.responses import JSONResponse
from fastapi.requests import Request
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Routers
from apis.release_api import router as release_router
from apis.metrics_api import router as metrics_router

from database.session import engine
from database.migration_runner import (
    alembic_config,
    alembic_head_revision,
    auto_migrate_enabled,
    current_db_revision,
    missing_release_tables,
    run_migrations_if_needed,
    sanitize_database_url,
)


_startup_logger = logging.getLogger("startup")


# -------------------------------------------------------
# DB STARTUP VALIDATION (NO RUNTIME DDL)
# -------------------------------------------------------
def _schema_state() -> tuple[set[str], str | None, str]:
    with engine.connect() as connection:
        missing = missing_release_tables(connection)
        current = current_db_revision(connection)
    return missing, current, alembic_head_revision(alembic_config())


def _validate_database_schema() -> None:
    missing, current, head = _schema_state()
    out_of_sync = bool(missing) or not current or current != head

    if out_of_sync and auto_migrate_enabled():
        run_migrations_if_needed(engine, alembic_config(), _startup_logger)
        missing, current, head = _schema_state()
        out_of_sync = bool(missing) or not current or current != head

    if out_of_sync:
        db_url = sanitize_database_url(os.getenv("DATABASE_URL"))
        _startup_logger.error(
            "Database schema out of sync. current=%s head=%s db=%s missing_tables=%s",
            current,
            head,
            db_url,
            sorted(missing),
        )
        raise RuntimeError("Database schema out of sync. Run Alembic migrations.")


# -------------------------------------------------------
# FASTAPI INITIALIZATION
# -------------------------------------------------------
@asynccontextmanager
async def _lifespan(app: FastAPI):
    try:
        _validate_database_schema()
    except RuntimeError:
        raise SystemExit(1)
    yield


app = FastAPI(title="Release Readiness Orchestrator", lifespan=_lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# -------------------------------------------------------
# GLOBAL EXCEPTION HANDLER
# -------------------------------------------------------
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    _startup_logger.exception("Unhandled exception on %s %s", request.method, request.url.path)

    headers = {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Credentials": "true",
    }

    return JSONResponse(
        status_code=500,
        content={"detail": str(exc)},
        headers=headers,
    )


# -------------------------------------------------------
# ROUTERS
# -------------------------------------------------------
app.include_router(release_router, prefix="/release", tags=["release"])
app.include_router(metrics_router, prefix="/metrics", tags=["metrics"])


# -------------------------------------------------------
# MAIN SERVER
# -------------------------------------------------------
if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(levelname)s: %(message)s",
    )
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("watchfiles").setLevel(logging.ERROR)

    import uvicorn

    uvicorn.run("main:app", host="127.0.0.1", port=8001, reload=False, log_level="info")
