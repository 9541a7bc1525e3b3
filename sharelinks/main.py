"""FastAPI application entry point for the share-link service.

This module configures and initializes the FastAPI application with middleware,
lifecycle management, error rendering and route registration.

Application Lifecycle Diagram
===========================
::
    ┌─────────────┐
    │  uvicorn    │
    │  startup    │
    └──────┬──────┘
           ▼
    ┌──────────────┐
    │ Create FastAPI│
    │ app instance  │
    └──────┬───────┘
           ▼
    ┌─────────────┐
    │ CORS, error │
    │ handlers,   │
    │ metrics     │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ lifespan()  │
    │ startup:    │
    │ init_db()   │
    │ manager     │
    │ (Redis,     │
    │  Kafka)     │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Serve HTTP  │
    │ requests    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ lifespan()  │
    │ shutdown:   │
    │ cleanup()   │
    │ close_db()  │
    └─────────────┘

How to Use
===========
**Step 1 — Run with uvicorn**::
    uvicorn sharelinks.main:app --host 0.0.0.0 --port 8000 --reload

**Step 2 — Create a short link**::
    curl -X POST http://localhost:8000/share \
         -H "Authorization: Bearer $TOKEN" \
         -H "Content-Type: application/json" \
         -d '{"url": "https://nexora.app/apps/abc", "expiresInDays": 7}'

**Step 3 — Follow it**::
    curl -i http://localhost:8000/s/Ab3_x9Qz

Key Behaviours
===============
- Database tables are created automatically on startup.
- Kafka is optional; without a broker events fall back to a Redis stream.
- Domain errors render as ``{"ok": false, "error": ...}`` with their status.
- Prometheus metrics are exposed at /metrics.
"""

__all__ = ["app"]

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from sharelinks.config import get_settings
from sharelinks.database import close_db, init_db
from sharelinks.dependencies import ServiceManager
from sharelinks.exceptions import ShareLinkError
from sharelinks.routes import admin_router, router
from sharelinks.schemas import ErrorResponse

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    await init_db()
    manager = ServiceManager()
    await manager.initialize()
    app.state.service_manager = manager
    yield
    # Shutdown
    await manager.cleanup()
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Short share links with click analytics for the app portal",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ShareLinkError)
async def share_link_error_handler(request: Request, exc: ShareLinkError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.message).model_dump(),
        headers=headers,
    )


Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=False,
    should_respect_env_var=False,
).instrument(app).expose(app)

app.include_router(router)
app.include_router(admin_router)
