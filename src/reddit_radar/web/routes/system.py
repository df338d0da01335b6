"""Health check and manual collection routes."""

import logging
from datetime import datetime, timezone

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ...db import Database
from ...sources import RedditCollector
from ..deps import get_collector, get_store

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health")
async def health(store: Database = Depends(get_store)):
    """Datastore connectivity and row counts."""
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        await store.ping()
        subreddits = await store.count_rows("subreddits")
        posts = await store.count_posts()
    except httpx.HTTPError as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(status_code=500, content={
            "status": "unhealthy",
            "database": "disconnected",
            "error": str(e),
            "timestamp": timestamp,
        })

    return {
        "status": "healthy",
        "database": "connected",
        "subreddits": subreddits,
        "posts": posts,
        "timestamp": timestamp,
    }


@router.post("/collect")
async def collect(collector: RedditCollector = Depends(get_collector)):
    """Run one collection pass over all enabled subreddits."""
    try:
        result = await collector.collect_all()
    except httpx.HTTPError as e:
        logger.error(f"Manual collection failed: {e}")
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})

    return {
        "success": True,
        "totalFetched": result["total_fetched"],
        "totalNew": result["total_new"],
        "subreddits": {
            name: {"fetched": r.fetched, "newPosts": r.new_posts, "errors": r.errors}
            for name, r in result["subreddits"].items()
        },
    }
