from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.adapters.agent_store import InMemoryAgentStore
from app.adapters.sql_agent_store import SqlAgentStore
from app.routers import agents, health, sync, users
from app.services import scan_config
from app.services.scan_errors import ScanError

app = FastAPI(title="Scheduled Agent Scanner API", version="1.0.0")

# One handler on the package logger; every app.* module logger inherits it.
logger = logging.getLogger("app")
if not logger.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    logger.addHandler(_handler)
logger.propagate = False
logger.setLevel(scan_config.log_level())
request_logger = logging.getLogger("app.api.slow")

app.add_middleware(
    CORSMiddleware,
    allow_origins=scan_config.allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# SQL store when a database URL is configured, in-memory otherwise (dev/tests).
_database_url = scan_config.database_url()
app.state.agent_store = SqlAgentStore(_database_url) if _database_url else InMemoryAgentStore()
# None: scans build a SourceClient from the environment.
app.state.source_client_factory = None
logger.info(
    "api_store_selected backend=%s network=%s",
    "sql" if _database_url else "memory",
    scan_config.flow_network(),
)


@app.exception_handler(ScanError)
async def scan_error_handler(request: Request, exc: ScanError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_failed path=%s error=%s: %s", request.url.path, exc.__class__.__name__, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("request_unhandled_error path=%s", request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.middleware("http")
async def time_requests(request: Request, call_next):
    started = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers["x-scanner-runtime-ms"] = f"{max(0.1, (time.perf_counter() - started) * 1000.0):.4f}"
        return response
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        if status_code >= 500 or elapsed_ms >= scan_config.slow_request_ms() or scan_config.log_all_requests():
            request_logger.warning(
                "slow_api_request method=%s path=%s status=%s elapsed_ms=%.2f request_id=%s",
                request.method,
                request.url.path,
                status_code,
                elapsed_ms,
                request.headers.get("x-request-id", "none"),
            )


@app.get("/", include_in_schema=False)
async def root():
    return {"name": app.title, "version": app.version, "docs": "/docs", "health": "/api/health"}


app.include_router(sync.router, prefix="/api", tags=["sync"])
app.include_router(agents.router, prefix="/api", tags=["agents"])
app.include_router(users.router, prefix="/api", tags=["users"])
app.include_router(health.router, prefix="/api", tags=["health"])
