"""FastAPI application entry point."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from actionflow.config import settings
from actionflow.connectors.http_dispatcher import HttpDispatcher
from actionflow.db.engine import async_session, engine
from actionflow.db.models import Base
from actionflow.services.credential_vault import build_vault, configure_vault
from actionflow.services.execution_service import ExecutionService, configure_execution_service

# Routers
from actionflow.api.actions import router as actions_router
from actionflow.api.credentials import router as credentials_router
from actionflow.api.executions import router as executions_router
from actionflow.api.workflows import router as workflows_router

from actionflow.utils.logger import setup_logger
logger = setup_logger(log_format=settings.LOG_FORMAT, log_level="DEBUG" if settings.DEBUG else "INFO")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Fail fast: without the key no credential can be created or used.
    vault = build_vault(settings.CREDENTIAL_ENCRYPTION_KEY)
    configure_vault(vault)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    dispatcher = HttpDispatcher(timeout=settings.DISPATCH_TIMEOUT_SECONDS)
    service = ExecutionService(
        async_session,
        vault,
        dispatcher,
        max_inflight=settings.MAX_INFLIGHT_NODES,
        run_timeout=settings.RUN_TIMEOUT_SECONDS,
    )
    configure_execution_service(service)
    logger.info(
        "Application startup complete — max_inflight=%d dispatch_timeout=%ss",
        settings.MAX_INFLIGHT_NODES,
        settings.DISPATCH_TIMEOUT_SECONDS,
    )

    try:
        yield
    finally:
        await service.shutdown()
        await dispatcher.aclose()
        configure_execution_service(None)
        configure_vault(None)
        await engine.dispose()
        logger.info("Application shutdown complete")


app = FastAPI(
    title="actionflow",
    description="Workflow execution engine for graphs of HTTP action nodes",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(actions_router, prefix="/api/actions", tags=["actions"])
app.include_router(workflows_router, prefix="/api/workflows", tags=["workflows"])
app.include_router(executions_router, prefix="/api/executions", tags=["executions"])
app.include_router(credentials_router, prefix="/api/credentials", tags=["credentials"])


@app.get("/api/health")
async def health():
    return {"status": "ok"}
