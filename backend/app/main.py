from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.database import Base, async_session, engine
from app.core.logging import configure_logging
from app.modules.analysis.router import companies_router, router as analysis_router
from app.modules.analysis.service import AnalysisService
from app.modules.analysis.sql_store import SqlAlchemyAnalysisStore
from app.modules.pricing.evaluators import get_evaluator
from app.modules.pricing.orchestrator import EnsembleOrchestrator
from app.modules.scraping.coordinator import ScrapeCoordinator
from app.modules.scraping.renderer import PageRenderer

configure_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("app_starting", app=settings.app_name, provider=settings.llm_provider)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    renderer = PageRenderer()
    app.state.analysis_service = AnalysisService(
        scraper=ScrapeCoordinator(renderer),
        orchestrator=EnsembleOrchestrator(get_evaluator()),
        store=SqlAlchemyAnalysisStore(async_session),
    )
    try:
        yield
    finally:
        await renderer.close()
        await engine.dispose()
        logger.info("app_stopped")


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/api/docs",
    openapi_url="/api/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(analysis_router, prefix=settings.api_prefix)
app.include_router(companies_router, prefix=settings.api_prefix)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get(f"{settings.api_prefix}/health")
async def api_health() -> dict[str, str]:
    return {"status": "ok", "service": settings.app_name}
