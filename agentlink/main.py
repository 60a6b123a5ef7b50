"""FastAPI entry-point exposing the agent directory and orchestration."""
from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from agentlink.api.orchestrate import router as orchestrate_router
from agentlink.api.routes import router as agents_router
from agentlink.config import config
from agentlink.logging_config import setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for FastAPI application."""
    setup_logging(config.log_level)
    yield


app = FastAPI(title="AgentLink Orchestrator", lifespan=lifespan)
app.include_router(agents_router)
app.include_router(orchestrate_router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
