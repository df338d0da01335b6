"""FastAPI application for the Reddit Radar API."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ..config import Config, get_config
from ..coordinator import RunCoordinator, build_coordinators
from ..db import Database, get_db
from ..pipeline import CancellationToken
from ..sources import RedditCollector
from ..stages import EVALUATION, TRIAGE
from .routes import posts, subreddits, system
from .routes.pipeline import build_stage_router

logger = logging.getLogger(__name__)


def create_app(
    config: Config | None = None,
    store: Database | None = None,
    coordinators: dict[str, RunCoordinator] | None = None,
    collector: RedditCollector | None = None,
    start_services: bool = True,
) -> FastAPI:
    """Build the app.

    With `start_services`, the lifespan runs the scheduled collector and,
    when enabled and configured, background triage.
    """
    if store is None:
        store = get_db()
    if coordinators is None:
        config = config or get_config()
        coordinators = build_coordinators(config, store)
    if collector is None:
        collector = RedditCollector(store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        collector_token = CancellationToken()
        collector_task = None

        if start_services:
            settings = config or get_config()
            collector_task = asyncio.create_task(
                collector.run_forever(settings.collect_interval_minutes, collector_token),
                name="collector",
            )

            triage = coordinators[TRIAGE.name]
            if not settings.background_triage:
                logger.info("[Triage] Background triage disabled by BACKGROUND_TRIAGE")
            elif not triage.is_configured:
                logger.info("[Triage] Background triage disabled - no OPENAI_API_KEY")
            else:
                triage.start_background()

        yield

        for coordinator in coordinators.values():
            await coordinator.shutdown()
        collector_token.cancel()
        if collector_task is not None:
            await collector_task
            await collector.source.aclose()
            await store.aclose()

    app = FastAPI(
        title="Reddit Radar",
        description="Collect subreddit posts and surface business opportunities with LLM triage",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.coordinators = coordinators
    app.state.collector = collector

    # Include routers
    app.include_router(build_stage_router(TRIAGE), prefix="/api/filter", tags=["triage"])
    app.include_router(build_stage_router(EVALUATION), prefix="/api/evaluate", tags=["evaluation"])
    app.include_router(posts.router, prefix="/api/posts", tags=["posts"])
    app.include_router(subreddits.router, prefix="/api/subreddits", tags=["subreddits"])
    app.include_router(system.router, prefix="/api", tags=["system"])

    @app.get("/health")
    async def health_check():
        """Liveness check for the process."""
        return {"status": "healthy", "service": "reddit-radar"}

    return app
