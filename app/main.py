"""FastAPI Application Entry Point.

Configures the app, lifespan, CORS, and includes all route modules.
The API is stateless: every request carries its own graph snapshot.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from flowgraph.config import CORS_ORIGINS
from flowgraph.logging_config import get_api_logger, get_engine_logger

logger = get_api_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Attach engine log handlers on startup."""
    get_engine_logger()
    logger.info(f"Graph engine API starting (CORS origins: {CORS_ORIGINS})")
    yield
    logger.info("Graph engine API stopped")


app = FastAPI(title="Workflow Graph Engine API", version="2.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
from .routes.graph import router as graph_router  # noqa: E402
from .routes.branch import router as branch_router  # noqa: E402

app.include_router(graph_router)
app.include_router(branch_router)


@app.get("/health")
async def health_check():
    """Health check endpoint for container orchestration."""
    return {"status": "ok"}
