"""
Unified backend entry point.

Architecture:
- One Python process, one asyncio event loop
- Two peer services running concurrently:
  1. FastAPI (HTTP server for the frontend and the cron caller)
  2. Content sync scheduler (APScheduler job pulling the content repo)

We use FastAPI's lifespan to manage startup/shutdown. The content runtime
is initialized idempotently, so re-running startup never adds a second
sync job.

Run with: python main.py [--dev] [--port PORT]
"""

import os
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv

project_root = Path(__file__).parent

# Load .env.local first (if exists), then .env as fallback
# .env.local is gitignored and used for local dev overrides
load_dotenv(project_root / ".env.local")  # Local overrides (gitignored)
load_dotenv()  # Fallback to .env

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import check_required_env_vars, get_allowed_origins, get_api_port
from core.content import (
    RuntimeNotInitializedError,
    get_runtime,
    init_content_runtime,
    shutdown_content_runtime,
)
from web_api.routes.admin import router as admin_router
from web_api.routes.content import router as content_router

if os.environ.get("SENTRY_DSN"):
    sentry_sdk.init(
        dsn=os.environ["SENTRY_DSN"],
        environment=os.environ.get("RAILWAY_ENVIRONMENT", "development"),
        traces_sample_rate=0.0,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    FastAPI lifespan context manager.

    Starts the content sync scheduler. The first sync runs right away in
    the background; reads before it finishes see whatever is on disk.
    """
    ok, warnings = check_required_env_vars()
    for warning in warnings:
        print(warning)
    if not ok:
        raise RuntimeError("Missing required environment variables")

    print("Starting content sync scheduler...")
    init_content_runtime()

    yield  # FastAPI runs here, the sync job runs alongside it

    print("Shutting down peer services...")
    await shutdown_content_runtime()


# Create FastAPI app with lifespan
app = FastAPI(
    title="Content Directory API",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(content_router)
app.include_router(admin_router)


@app.get("/api/status")
async def api_status():
    """API status endpoint."""
    return {"status": "ok"}


@app.get("/health")
async def health():
    """Health check endpoint with sync status."""
    try:
        state = get_runtime().sync_manager.get_status()
    except RuntimeNotInitializedError:
        return {"status": "starting", "sync_generation": None}

    last = state.last_result
    return {
        "status": "healthy",
        "sync_generation": state.generation,
        "sync_in_progress": state.in_progress,
        "last_sync_success": last.success if last else None,
        "last_sync_at": state.last_sync_at.isoformat() if state.last_sync_at else None,
    }


if __name__ == "__main__":
    import argparse
    import uvicorn

    parser = argparse.ArgumentParser(description="Content Directory Server")
    parser.add_argument(
        "--dev",
        action="store_true",
        help="Enable development mode (allows DISABLE_AUTO_SYNC)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=get_api_port(),
        help="Port to run the server on (default: 8000)",
    )
    args = parser.parse_args()

    # Set env var so it persists across uvicorn reloads
    if args.dev:
        os.environ["DEV_MODE"] = "true"

    # Pass app object directly (not string) to avoid module reimport issues
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=args.port,
    )
