"""Shared fakes: an in-memory post store and a scripted classifier."""

import asyncio
import itertools
from datetime import datetime, timedelta, timezone

import pytest

from reddit_radar.coordinator import RunCoordinator
from reddit_radar.errors import NotFoundError
from reddit_radar.models import ClassificationResult, Post
from reddit_radar.stages import TRIAGE

BASE_TIME = datetime(2025, 1, 28, 12, 0, tzinfo=timezone.utc)


def _parse(value: str):
    if value == "true":
        return True
    if value == "false":
        return False
    if value.lstrip("-").isdigit():
        return int(value)
    return value


def matches(row: dict, filters: dict[str, str] | None) -> bool:
    """Evaluate the PostgREST filter subset the pipeline uses."""
    for key, expr in (filters or {}).items():
        if expr == "not.is.null":
            if row.get(key) is None:
                return False
            continue
        op, _, raw = expr.partition(".")
        value = _parse(raw)
        if op == "eq" and row.get(key) != value:
            return False
        if op == "gte" and (row.get(key) is None or row.get(key) < value):
            return False
    return True


class FakeStore:
    """In-memory stand-in for reddit_radar.db.Database."""

    def __init__(self):
        self.rows: dict[str, dict] = {}
        self.subreddits: dict[str, dict] = {}
        self.writes: list[tuple[str, str]] = []
        self.fetch_error: Exception | None = None
        self.fetch_calls = 0
        self._ids = itertools.count(1)

    def add_post(self, **fields) -> dict:
        n = next(self._ids)
        row = {
            "id": f"p{n}",
            "reddit_id": f"t3_{n}",
            "title": f"Post {n}",
            "body": "Is there a tool that does this?",
            "author": "someone",
            "url": f"https://www.reddit.com/r/SaaS/comments/{n}/",
            "subreddit": {"name": "SaaS"},
            "score": 10,
            "num_comments": 3,
            "created_utc": (BASE_TIME + timedelta(minutes=n)).isoformat(),
            "is_flagged": False,
            "is_triaged": False,
            "passed_triage": None,
            "triage_score": None,
            "triage_reason": None,
            "triaged_at": None,
            "is_evaluated": False,
            "is_opportunity": None,
            "opportunity_score": None,
            "opportunity_reason": None,
            "evaluated_at": None,
        }
        row.update(fields)
        self.rows[row["id"]] = row
        return row

    def add_subreddit(self, name: str, enabled: bool = True) -> dict:
        row = {"id": f"s-{name}", "name": name, "enabled": enabled, "created_at": None, "last_fetched_at": None}
        self.subreddits[row["id"]] = row
        return row

    def pending_ids(self, stage=TRIAGE) -> set[str]:
        return {pid for pid, row in self.rows.items() if matches(row, stage.pending_filters())}

    # --- Classification contract ---

    async def find_pending_posts(self, stage, limit, offset=0):
        self.fetch_calls += 1
        await asyncio.sleep(0)
        if self.fetch_error is not None:
            raise self.fetch_error
        rows = [r for r in self.rows.values() if matches(r, stage.pending_filters())]
        rows.sort(key=lambda r: r["created_utc"], reverse=True)
        return [Post.from_row(r) for r in rows[offset:offset + limit]]

    async def find_one_pending_post(self, stage):
        posts = await self.find_pending_posts(stage, limit=1)
        return posts[0] if posts else None

    async def update_post_classification(self, stage, post_id, fields):
        await asyncio.sleep(0)
        row = self.rows.get(post_id)
        if row is None:
            raise NotFoundError(f"Post {post_id} not found")
        if row[stage.done_field]:
            return False
        row.update(fields)
        self.writes.append((stage.name, post_id))
        return True

    async def count_posts(self, filters=None):
        return sum(1 for r in self.rows.values() if matches(r, filters))

    async def count_rows(self, table, filters=None):
        rows = self.subreddits.values() if table == "subreddits" else self.rows.values()
        return sum(1 for r in rows if matches(r, filters))

    async def average_post_field(self, field, filters=None):
        values = [r[field] for r in self.rows.values() if matches(r, filters) and r.get(field) is not None]
        return sum(values) / len(values) if values else None

    async def ping(self):
        return True

    # --- Posts ---

    async def post_exists(self, reddit_id):
        return any(r["reddit_id"] == reddit_id for r in self.rows.values())

    async def insert_post(self, post):
        subreddit = next(
            (s["name"] for s in self.subreddits.values() if s["id"] == post.get("subreddit_id")),
            "unknown",
        )
        return self.add_post(**{**post, "subreddit": {"name": subreddit}})

    async def list_posts(self, subreddit_id=None, search=None, min_score=None, flagged=False,
                         passed_triage=None, since=None, limit=50, offset=0):
        rows = list(self.rows.values())
        if subreddit_id:
            rows = [r for r in rows if r.get("subreddit_id") == subreddit_id]
        if search:
            term = search.lower()
            rows = [r for r in rows if term in r["title"].lower() or term in (r["body"] or "").lower()]
        if min_score is not None:
            rows = [r for r in rows if r["score"] >= min_score]
        if flagged:
            rows = [r for r in rows if r["is_flagged"]]
        if passed_triage is not None:
            rows = [r for r in rows if r["passed_triage"] is passed_triage]
        if since:
            rows = [r for r in rows if r["created_utc"] >= since]
        rows.sort(key=lambda r: r["created_utc"], reverse=True)
        return [Post.from_row(r) for r in rows[offset:offset + limit]], len(rows)

    async def update_post_flag(self, post_id, is_flagged):
        row = self.rows.get(post_id)
        if row is None:
            raise NotFoundError(f"Post {post_id} not found")
        row["is_flagged"] = is_flagged
        return Post.from_row(row)

    # --- Subreddits ---

    async def list_subreddits(self):
        return [
            {**s, "post_count": sum(1 for r in self.rows.values() if r.get("subreddit_id") == s["id"])}
            for s in sorted(self.subreddits.values(), key=lambda s: s["name"])
        ]

    async def get_enabled_subreddits(self):
        return [s for s in self.subreddits.values() if s["enabled"]]

    async def get_subreddit_by_name(self, name):
        return next((s for s in self.subreddits.values() if s["name"] == name), None)

    async def insert_subreddit(self, name):
        return self.add_subreddit(name)

    async def update_subreddit(self, subreddit_id, data):
        if subreddit_id not in self.subreddits:
            raise NotFoundError(f"Subreddit {subreddit_id} not found")
        self.subreddits[subreddit_id].update(data)
        return self.subreddits[subreddit_id]

    async def delete_subreddit(self, subreddit_id):
        if self.subreddits.pop(subreddit_id, None) is None:
            raise NotFoundError(f"Subreddit {subreddit_id} not found")

    async def mark_subreddit_fetched(self, subreddit_id):
        self.subreddits[subreddit_id]["last_fetched_at"] = BASE_TIME.isoformat()


class FakeClassifier:
    """Returns scripted verdicts per post id; exceptions in the script are raised."""

    def __init__(self, results=None, default=None):
        self.results = results or {}
        self.default = default or ClassificationResult(passed=True, score=8, reason="Specific, recurring pain point")
        self.calls: list[str] = []
        self.on_call = None
        self.gate: asyncio.Event | None = None

    async def classify(self, post):
        self.calls.append(post.id)
        if self.on_call is not None:
            self.on_call(post)
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.results.get(post.id, self.default)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def make_coordinator(store, classifier, stage=TRIAGE, batch_size=50, idle_delay=0.01, error_delay=0.01):
    return RunCoordinator(
        stage,
        store,
        classifier,
        batch_size=batch_size,
        post_delay=0,
        background_post_delay=0,
        idle_delay=idle_delay,
        error_delay=error_delay,
    )


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def classifier():
    return FakeClassifier()
