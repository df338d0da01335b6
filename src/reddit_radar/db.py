"""Supabase database client."""

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from .config import get_config
from .errors import NotFoundError
from .models import Post

if TYPE_CHECKING:
    from .stages import StageConfig

POST_SELECT = "*,subreddit:subreddits(name)"
AGGREGATE_PAGE_SIZE = 1000


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def _count_from_range(content_range: str | None) -> int:
    """Parse the total out of a PostgREST `Content-Range` header (e.g. `0-24/3573`)."""
    if not content_range or "/" not in content_range:
        return 0
    total = content_range.rsplit("/", 1)[1]
    return int(total) if total.isdigit() else 0


class Database:
    """Async Supabase REST API client."""

    def __init__(self, url: str | None = None, key: str | None = None, transport: httpx.AsyncBaseTransport | None = None):
        if url is None or key is None:
            config = get_config()
            url = url or config.supabase_url
            key = key or config.supabase_key
        self.base_url = f"{url}/rest/v1"
        self.headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }
        self._client = httpx.AsyncClient(headers=self.headers, timeout=30.0, transport=transport)

    async def _request(self, method: str, endpoint: str, **kwargs) -> Any:
        """Make a request to the Supabase REST API."""
        url = f"{self.base_url}/{endpoint}"
        response = await self._client.request(method, url, **kwargs)
        response.raise_for_status()
        if response.text:
            return response.json()
        return None

    async def aclose(self):
        await self._client.aclose()

    async def ping(self) -> bool:
        """Check the REST endpoint answers."""
        await self._request("GET", "subreddits?select=id&limit=1")
        return True

    # --- Aggregates ---

    async def count_rows(self, table: str, filters: dict[str, str] | None = None) -> int:
        """Exact row count for a table matching PostgREST filters."""
        params = {"select": "id", **(filters or {})}
        headers = {"Prefer": "count=exact", "Range-Unit": "items", "Range": "0-0"}
        response = await self._client.get(f"{self.base_url}/{table}", params=params, headers=headers)
        response.raise_for_status()
        return _count_from_range(response.headers.get("content-range"))

    async def count_posts(self, filters: dict[str, str] | None = None) -> int:
        return await self.count_rows("posts", filters)

    async def average_post_field(self, field: str, filters: dict[str, str] | None = None) -> float | None:
        """Mean of a numeric post column over rows matching the filters, ignoring nulls."""
        # Stable order so offset pages neither skip nor repeat rows
        params = {"select": field, **(filters or {}), field: "not.is.null", "order": "id.asc"}
        total = 0.0
        count = 0
        offset = 0
        while True:
            page = await self._request(
                "GET",
                "posts",
                params={**params, "limit": AGGREGATE_PAGE_SIZE, "offset": offset},
            ) or []
            for row in page:
                total += row[field]
                count += 1
            if len(page) < AGGREGATE_PAGE_SIZE:
                break
            offset += AGGREGATE_PAGE_SIZE
        return total / count if count else None

    # --- Classification ---

    async def find_pending_posts(self, stage: "StageConfig", limit: int, offset: int = 0) -> list[Post]:
        """Posts the stage has not classified yet, newest first."""
        params = {
            "select": POST_SELECT,
            **stage.pending_filters(),
            "order": "created_utc.desc",
            "limit": limit,
            "offset": offset,
        }
        rows = await self._request("GET", "posts", params=params) or []
        return [Post.from_row(row) for row in rows]

    async def find_one_pending_post(self, stage: "StageConfig") -> Post | None:
        posts = await self.find_pending_posts(stage, limit=1)
        return posts[0] if posts else None

    async def update_post_classification(self, stage: "StageConfig", post_id: str, fields: dict) -> bool:
        """Write a stage subrecord, only if the post is still pending for that stage.

        Returns False when the post was already classified (no-op).
        Raises NotFoundError when the post no longer exists.
        """
        params = {"id": f"eq.{post_id}", stage.done_field: "eq.false"}
        result = await self._request("PATCH", "posts", params=params, json=fields)
        if result:
            return True

        existing = await self._request("GET", "posts", params={"id": f"eq.{post_id}", "select": "id"})
        if not existing:
            raise NotFoundError(f"Post {post_id} not found")
        return False

    # --- Posts ---

    async def post_exists(self, reddit_id: str) -> bool:
        """Check if a post with this Reddit ID has been collected."""
        result = await self._request("GET", f"posts?reddit_id=eq.{quote(reddit_id, safe='')}&select=id")
        return len(result) > 0 if result else False

    async def insert_post(self, post: dict) -> dict:
        """Insert a new post."""
        result = await self._request("POST", "posts", json=post)
        return result[0] if result else post

    async def list_posts(
        self,
        subreddit_id: str | None = None,
        search: str | None = None,
        min_score: int | None = None,
        flagged: bool = False,
        passed_triage: bool | None = None,
        since: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Post], int]:
        """List posts with filters. Returns (page, total matching)."""
        params: dict[str, Any] = {"select": POST_SELECT}
        if subreddit_id:
            params["subreddit_id"] = f"eq.{subreddit_id}"
        if search:
            # PostgREST or-filter values can't carry commas or parentheses
            term = search.replace(",", " ").replace("(", " ").replace(")", " ")
            params["or"] = f"(title.ilike.*{term}*,body.ilike.*{term}*)"
        if min_score is not None:
            params["score"] = f"gte.{min_score}"
        if flagged:
            params["is_flagged"] = "eq.true"
        if passed_triage is not None:
            params["passed_triage"] = f"eq.{str(passed_triage).lower()}"
        if since:
            params["created_utc"] = f"gte.{since}"
        params["order"] = "created_utc.desc"
        params["limit"] = limit
        params["offset"] = offset

        headers = {"Prefer": "count=exact"}
        response = await self._client.get(f"{self.base_url}/posts", params=params, headers=headers)
        response.raise_for_status()
        rows = response.json() if response.text else []
        total = _count_from_range(response.headers.get("content-range"))
        return [Post.from_row(row) for row in rows], total

    async def update_post_flag(self, post_id: str, is_flagged: bool) -> Post:
        """Flag or unflag a post."""
        result = await self._request(
            "PATCH",
            "posts",
            params={"id": f"eq.{post_id}", "select": POST_SELECT},
            json={"is_flagged": is_flagged},
        )
        if not result:
            raise NotFoundError(f"Post {post_id} not found")
        return Post.from_row(result[0])

    # --- Subreddits ---

    async def list_subreddits(self) -> list[dict]:
        """All subreddits with their post counts."""
        rows = await self._request("GET", "subreddits?select=*,posts(count)&order=name.asc") or []
        for row in rows:
            counts = row.pop("posts", None) or [{"count": 0}]
            row["post_count"] = counts[0].get("count", 0)
        return rows

    async def get_enabled_subreddits(self) -> list[dict]:
        return await self._request("GET", "subreddits?enabled=eq.true&order=name.asc") or []

    async def get_subreddit_by_name(self, name: str) -> dict | None:
        result = await self._request("GET", f"subreddits?name=eq.{quote(name, safe='')}")
        return result[0] if result else None

    async def insert_subreddit(self, name: str) -> dict:
        result = await self._request("POST", "subreddits", json={"name": name})
        return result[0] if result else {"name": name}

    async def upsert_subreddit(self, name: str) -> dict:
        """Insert a subreddit or leave the existing row as is."""
        headers = {**self.headers, "Prefer": "resolution=ignore-duplicates,return=representation"}
        url = f"{self.base_url}/subreddits?on_conflict=name"
        response = await self._client.post(url, json={"name": name}, headers=headers)
        response.raise_for_status()
        result = response.json() if response.text else []
        return result[0] if result else {"name": name}

    async def update_subreddit(self, subreddit_id: str, data: dict) -> dict:
        result = await self._request("PATCH", f"subreddits?id=eq.{subreddit_id}", json=data)
        if not result:
            raise NotFoundError(f"Subreddit {subreddit_id} not found")
        return result[0]

    async def delete_subreddit(self, subreddit_id: str):
        result = await self._request("DELETE", f"subreddits?id=eq.{subreddit_id}")
        if not result:
            raise NotFoundError(f"Subreddit {subreddit_id} not found")

    async def mark_subreddit_fetched(self, subreddit_id: str):
        """Update the last_fetched_at timestamp for a subreddit."""
        await self._request("PATCH", f"subreddits?id=eq.{subreddit_id}", json={"last_fetched_at": _utcnow()})


# Global database instance
_db: Database | None = None


def get_db() -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        _db = Database()
    return _db
