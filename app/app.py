"""
FastAPI application — HTTP surface of the education directory.

Run as a script (builds the database from data/*.json first if missing):
    python app/app.py

Or run as a module if the database already exists:
    uvicorn app.app:app --reload

Endpoints:
    GET /api/institutions        ?search&type&city&state&country&minRating&page&limit
    GET /api/courses             ?search&level&format&institutionId&minRating&maxTuition&page&limit
        returns: {"success": true, "data": [...], "pagination": {...}}
    GET /api/institutions/{id}
    GET /api/courses/{id}
        returns: {"success": true, "data": {...}}  or 404 {"success": false, "error": ...}

Failures come back as {"success": false, "error": "..."} with status 500.
Logs each request and wall-clock response time to stdout and logs/app.log
(rotating, 5 MB max, 3 backups).
"""

import asyncio
import logging
import logging.handlers
import sys
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

# Ensure project root is on sys.path when running as a script (python app/app.py)
sys.path.insert(0, str(Path(__file__).parent.parent))

from directory.config import DB_PATH, HOST, LOG_DIR, PORT
from directory.detail import NOT_FOUND, DetailAggregator, DetailResult
from directory.models import COURSE, INSTITUTION, camelize
from directory.query import QueryEngine
from directory.repository import EntityRepository
from directory.sqlite_repository import SQLiteRepository

LOG_FILE = LOG_DIR / "app.log"

_logging_ready = False


def _setup_logging() -> None:
    global _logging_ready
    if _logging_ready:
        return
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    fmt = logging.Formatter("%(asctime)s  %(levelname)s  %(name)s  %(message)s")

    stream = logging.StreamHandler(sys.stdout)
    stream.setFormatter(fmt)

    # Rotate at 5 MB, keep 3 backups
    rotating = logging.handlers.RotatingFileHandler(
        LOG_FILE, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
    )
    rotating.setFormatter(fmt)

    root = logging.getLogger()
    root.setLevel(logging.INFO)
    root.addHandler(stream)
    root.addHandler(rotating)
    _logging_ready = True


log = logging.getLogger("api")


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

class PaginationOut(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class ListResponse(BaseModel):
    success: bool
    data: list[dict[str, Any]]
    pagination: PaginationOut


class DetailResponse(BaseModel):
    success: bool
    data: dict[str, Any]


class ErrorResponse(BaseModel):
    success: bool = False
    error: str


ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {500: {"model": ErrorResponse}}


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(repository: EntityRepository | None = None) -> FastAPI:
    """Build the API over repository (SQLite at DB_PATH when omitted)."""
    repo = repository if repository is not None else SQLiteRepository(DB_PATH)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        _setup_logging()
        if isinstance(repo, SQLiteRepository) and not repo.db_path.exists():
            log.warning("Database %s not found — run etl.pipeline first.", repo.db_path)
        log.info("Directory API ready (%s).", type(repo).__name__)
        yield  # server runs here

    app = FastAPI(title="Education Directory", lifespan=lifespan)
    app.state.engine  = QueryEngine(repo)
    app.state.details = DetailAggregator(repo)

    @app.middleware("http")
    async def log_timing(request: Request, call_next):
        t0 = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - t0
        log.info("%s %s  status=%d  %.3fs", request.method, request.url.path,
                 response.status_code, elapsed)
        return response

    # -----------------------------------------------------------------------
    # Endpoints
    # -----------------------------------------------------------------------

    def _search(kind: str, request: Request):
        result = app.state.engine.search(kind, dict(request.query_params))
        if not result.success:
            return _error(500, result.error or "Search failed")
        return ListResponse(
            success=True,
            data=camelize(result.data),
            pagination=PaginationOut(**result.pagination.as_dict()),
        )

    def _detail(result: DetailResult):
        if result.status == NOT_FOUND:
            return _error(404, result.error or "Not found")
        if not result.found:
            return _error(500, result.error or "Lookup failed")
        return DetailResponse(success=True, data=camelize(result.data))

    @app.get("/api/institutions", response_model=ListResponse, responses=ERROR_RESPONSES)
    def list_institutions(request: Request):
        return _search(INSTITUTION, request)

    @app.get("/api/courses", response_model=ListResponse, responses=ERROR_RESPONSES)
    def list_courses(request: Request):
        return _search(COURSE, request)

    @app.get(
        "/api/institutions/{institution_id}",
        response_model=DetailResponse,
        responses={404: {"model": ErrorResponse}, **ERROR_RESPONSES},
    )
    def get_institution(institution_id: str):
        return _detail(app.state.details.get_institution(institution_id))

    @app.get(
        "/api/courses/{course_id}",
        response_model=DetailResponse,
        responses={404: {"model": ErrorResponse}, **ERROR_RESPONSES},
    )
    def get_course(course_id: str):
        return _detail(app.state.details.get_course(course_id))

    return app


app = create_app()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def _ensure_data() -> None:
    """Build the database from data/*.json if it does not exist yet."""
    if DB_PATH.exists():
        log.info("%s exists — skipping ETL.", DB_PATH.name)
        return
    log.info("%s missing — running ETL pipeline…", DB_PATH.name)
    from etl.pipeline import run as run_pipeline
    counts = run_pipeline()
    log.info("  Loaded %s", counts)


def _launch_server() -> None:
    config = uvicorn.Config(app, host=HOST, port=PORT, reload=False)
    server = uvicorn.Server(config)

    try:
        asyncio.get_running_loop()
    except RuntimeError:
        uvicorn.run(app, host=HOST, port=PORT, reload=False)
        return

    log.warning(
        "Detected an existing asyncio event loop; serving with create_task() instead of asyncio.run()."
    )
    asyncio.create_task(server.serve())


if __name__ == "__main__":
    _setup_logging()
    log.info("=== Education Directory — starting up ===")
    _ensure_data()
    log.info("=== Data ready — launching server on http://%s:%d ===", HOST, PORT)
    _launch_server()
