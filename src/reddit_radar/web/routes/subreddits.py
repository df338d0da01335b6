"""API routes for managing the polled subreddits."""

import logging
import re

import httpx
from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, StrictBool

from ...db import Database
from ...errors import NotFoundError
from ..deps import get_store

logger = logging.getLogger(__name__)
router = APIRouter()

SUBREDDIT_NAME = re.compile(r"^[a-zA-Z0-9_]+$")


class SubredditCreate(BaseModel):
    name: str


class SubredditUpdate(BaseModel):
    enabled: StrictBool


def format_subreddit(row: dict) -> dict:
    return {
        "id": row.get("id"),
        "name": row.get("name"),
        "enabled": row.get("enabled", True),
        "createdAt": row.get("created_at"),
        "lastFetchedAt": row.get("last_fetched_at"),
        "postCount": row.get("post_count", 0),
    }


def clean_name(name: str) -> str:
    """Strip an `r/` prefix and surrounding whitespace."""
    return re.sub(r"^r/", "", name.strip()).strip()


@router.get("")
async def list_subreddits(store: Database = Depends(get_store)):
    try:
        rows = await store.list_subreddits()
    except httpx.HTTPError as e:
        logger.error(f"Error fetching subreddits: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch subreddits")
    return [format_subreddit(row) for row in rows]


@router.post("", status_code=201)
async def add_subreddit(request: SubredditCreate, store: Database = Depends(get_store)):
    name = clean_name(request.name)
    if not name or not SUBREDDIT_NAME.match(name):
        raise HTTPException(status_code=400, detail="Invalid subreddit name")

    try:
        if await store.get_subreddit_by_name(name):
            raise HTTPException(status_code=409, detail="Subreddit already exists")
        row = await store.insert_subreddit(name)
    except httpx.HTTPError as e:
        logger.error(f"Error creating subreddit: {e}")
        raise HTTPException(status_code=500, detail="Failed to create subreddit")

    logger.info(f"Added subreddit r/{name}")
    return format_subreddit(row)


@router.patch("/{subreddit_id}")
async def update_subreddit(subreddit_id: str, request: SubredditUpdate, store: Database = Depends(get_store)):
    """Enable or disable polling for a subreddit."""
    try:
        row = await store.update_subreddit(subreddit_id, {"enabled": request.enabled})
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Subreddit not found")
    except httpx.HTTPError as e:
        logger.error(f"Error updating subreddit: {e}")
        raise HTTPException(status_code=500, detail="Failed to update subreddit")
    return format_subreddit(row)


@router.delete("/{subreddit_id}", status_code=204)
async def delete_subreddit(subreddit_id: str, store: Database = Depends(get_store)):
    try:
        await store.delete_subreddit(subreddit_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Subreddit not found")
    except httpx.HTTPError as e:
        logger.error(f"Error deleting subreddit: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete subreddit")
    return Response(status_code=204)
