"""
Stocksaga — Service app factory

All three services are wired the same way: tables created on startup, CORS,
domain error handlers, /metrics when enabled, /health and /. A service adds
its own startup/shutdown through ``service_lifespan``, which runs inside the
shared one (after tables exist, before Redis and the engine are closed).
"""
from contextlib import asynccontextmanager
from typing import AsyncContextManager, Callable, Iterable

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from stocksaga.core import health
from stocksaga.core.config import get_settings
from stocksaga.core.database import Base, engine
from stocksaga.core.errors import register_exception_handlers
from stocksaga.core.redis_client import close_redis

settings = get_settings()

ServiceLifespan = Callable[[FastAPI], AsyncContextManager[None]]


def create_app(
    title: str,
    description: str,
    routers: Iterable[APIRouter],
    service_lifespan: ServiceLifespan | None = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        if service_lifespan is None:
            yield
        else:
            async with service_lifespan(app):
                yield
        await close_redis()
        await engine.dispose()

    app = FastAPI(
        title=title,
        description=description,
        version=settings.SERVICE_VERSION,
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url=None,
    )

    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_credentials=True,
                       allow_methods=["*"], allow_headers=["*"])
    register_exception_handlers(app)

    if settings.METRICS_ENABLED:
        Instrumentator().instrument(app).expose(app, endpoint="/metrics")

    for router in routers:
        app.include_router(router)
    app.include_router(health.router)

    @app.get("/")
    async def root():
        return {"service": settings.SERVICE_NAME, "version": settings.SERVICE_VERSION}

    return app
