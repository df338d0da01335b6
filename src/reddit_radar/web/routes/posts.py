"""API routes for browsing and flagging posts."""

import logging
from datetime import datetime

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, StrictBool

from ...db import Database
from ...errors import NotFoundError
from ...models import Post
from ..deps import get_store

logger = logging.getLogger(__name__)
router = APIRouter()

MAX_PAGE_SIZE = 100


class PostUpdate(BaseModel):
    """Request body for flagging a post."""
    isFlagged: StrictBool


def format_post(post: Post) -> dict:
    """API representation of a post."""
    return {
        "id": post.id,
        "redditId": post.reddit_id,
        "subreddit": post.subreddit,
        "title": post.title,
        "body": post.body,
        "author": post.author,
        "url": post.url,
        "score": post.score,
        "numComments": post.num_comments,
        "createdUtc": post.created_utc,
        "fetchedAt": post.fetched_at,
        "isFlagged": post.is_flagged,
        # Triage
        "isTriaged": post.is_triaged,
        "passedTriage": post.passed_triage,
        "triageScore": post.triage_score,
        "triageReason": post.triage_reason,
        "triagedAt": post.triaged_at,
        # Evaluation
        "isEvaluated": post.is_evaluated,
        "isOpportunity": post.is_opportunity,
        "opportunityScore": post.opportunity_score,
        "opportunityReason": post.opportunity_reason,
        "evaluatedAt": post.evaluated_at,
    }


@router.get("")
async def list_posts(
    subreddit: str | None = None,
    search: str | None = None,
    min_score: int | None = Query(None, alias="minScore"),
    flagged: bool = False,
    passed: bool | None = None,
    since: datetime | None = None,
    limit: int = Query(50, ge=1),
    offset: int = Query(0, ge=0),
    store: Database = Depends(get_store),
):
    """List posts, newest first, with optional filters."""
    take = min(limit, MAX_PAGE_SIZE)

    try:
        subreddit_id = None
        if subreddit:
            sub = await store.get_subreddit_by_name(subreddit)
            if not sub:
                return {"posts": [], "total": 0, "limit": take, "offset": offset}
            subreddit_id = sub["id"]

        posts, total = await store.list_posts(
            subreddit_id=subreddit_id,
            search=search,
            min_score=min_score,
            flagged=flagged,
            passed_triage=passed,
            since=since.isoformat() if since else None,
            limit=take,
            offset=offset,
        )
    except httpx.HTTPError as e:
        logger.error(f"Error fetching posts: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch posts")

    return {
        "posts": [format_post(p) for p in posts],
        "total": total,
        "limit": take,
        "offset": offset,
    }


@router.patch("/{post_id}")
async def update_post(post_id: str, request: PostUpdate, store: Database = Depends(get_store)):
    """Flag or unflag a post."""
    try:
        post = await store.update_post_flag(post_id, request.isFlagged)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Post not found")
    except httpx.HTTPError as e:
        logger.error(f"Error updating post: {e}")
        raise HTTPException(status_code=500, detail="Failed to update post")

    return format_post(post)
