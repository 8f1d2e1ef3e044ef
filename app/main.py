from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import admin, cron, health, session
from .api.dependencies import get_session_store, shutdown_dependencies
from .config import settings
from .logging_config import setup_logging
from .middleware import RequestLoggingMiddleware

setup_logging()
logger = structlog.stdlib.get_logger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    store = get_session_store()
    await store.init()
    logger.info(
        "app_started",
        environment=settings.environment,
        durable_store=settings.has_database,
        executor_configured=settings.has_executor_key,
        sponsored_gas=settings.has_gas_station_key,
    )
    yield
    await shutdown_dependencies()


# Create FastAPI app
app = FastAPI(
    title="MOVE Buyback TWAP",
    description="Delegated TWAP buybacks of MOVE with USDC on Movement",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(session.router)
app.include_router(cron.router)
app.include_router(admin.router)


@app.get("/")
async def root():
    """Root endpoint with basic info"""
    return {
        "name": "MOVE Buyback TWAP",
        "version": "0.1.0",
        "description": "Delegated TWAP buybacks of MOVE with USDC on Movement",
        "docs": "/docs",
        "health": "/healthz",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=not settings.is_production,
        log_level=settings.log_level.lower(),
    )
