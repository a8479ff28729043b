"""Workflow Viewer FastAPI application: app wiring and the uvicorn entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from workflow_viewer import config
from workflow_viewer.routers.live import live_router
from workflow_viewer.routers.sessions import sessions_router
from workflow_viewer.services.live_updates import connection_manager, watch_service
from workflow_viewer.observability import initialize as initialize_observability, shutdown as shutdown_observability

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger("workflow_viewer")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("Workflow Viewer backend starting up")
    logger.info(f"Claude directory: {config.CLAUDE_DIR}")
    initialize_observability(app)

    yield

    logger.info("Workflow Viewer backend shutting down")
    await watch_service.shutdown()
    shutdown_observability(app)


app = FastAPI(
    title="Workflow Viewer API",
    description="Live conversation tree viewer for Claude Code session logs",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS: the Vite dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        config.FRONTEND_ORIGIN,
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(sessions_router)
app.include_router(live_router)


@app.get("/api/health")
def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "watching": watch_service.current_file,
        "clients": len(connection_manager.active_connections),
    }


def run() -> None:
    import uvicorn

    uvicorn.run("workflow_viewer.main:app", host=config.HOST, port=config.PORT, log_level=config.LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
