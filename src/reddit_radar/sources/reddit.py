"""Reddit RSS source connector and collector."""

import asyncio
import calendar
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone

import feedparser
import html2text
import httpx
from bs4 import BeautifulSoup

from ..db import Database

logger = logging.getLogger(__name__)

FEED_URL = "https://www.reddit.com/r/{name}/new.rss"
REDDIT_ID_PATTERN = re.compile(r"/comments/([a-z0-9]+)/", re.IGNORECASE)


@dataclass
class FeedEntry:
    """A post as it appears in a subreddit feed."""
    link: str
    title: str
    author: str
    reddit_id: str | None
    body: str | None
    created_utc: str


@dataclass
class CollectResult:
    """Outcome of collecting one subreddit."""
    fetched: int = 0
    new_posts: int = 0
    errors: list[str] = field(default_factory=list)


def extract_reddit_id(link: str) -> str | None:
    """Fullname (`t3_<id>`) from a comments permalink."""
    match = REDDIT_ID_PATTERN.search(link)
    return f"t3_{match.group(1)}" if match else None


def extract_author(raw: str | None) -> str:
    return re.sub(r"^/u/", "", raw or "unknown")


class RedditFeedSource:
    """Fetches and parses subreddit `new` feeds."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        self.client = httpx.AsyncClient(
            timeout=30.0,
            follow_redirects=True,
            headers={"User-Agent": "reddit-rss-collector/1.0"},
            transport=transport,
        )
        self.html_converter = html2text.HTML2Text()
        self.html_converter.ignore_links = True
        self.html_converter.ignore_images = True
        self.html_converter.body_width = 0  # No wrapping

    async def aclose(self):
        await self.client.aclose()

    async def fetch_entries(self, subreddit: str) -> list[FeedEntry]:
        """Fetch a subreddit feed. Raises httpx.HTTPError on failure."""
        response = await self.client.get(FEED_URL.format(name=subreddit))
        response.raise_for_status()
        return self.parse_feed(response.content)

    def parse_feed(self, content: bytes | str) -> list[FeedEntry]:
        feed = feedparser.parse(content)
        entries = []
        for entry in feed.entries:
            link = entry.get("link")
            if not link:
                continue
            entries.append(FeedEntry(
                link=link,
                title=entry.get("title") or "No title",
                author=extract_author(entry.get("author")),
                reddit_id=extract_reddit_id(link),
                body=self.extract_body(self._entry_html(entry)),
                created_utc=self._entry_time(entry),
            ))
        return entries

    def extract_body(self, html: str | None) -> str | None:
        """Self-text of a post, or None for link posts."""
        if not html:
            return None
        soup = BeautifulSoup(html, "html.parser")
        # Reddit wraps self-text in <div class="md">; the rest is the "submitted by" footer
        body = soup.find("div", class_="md")
        if body is None:
            return None
        text = self.html_converter.handle(str(body)).strip()
        return text or None

    @staticmethod
    def _entry_html(entry) -> str | None:
        content = entry.get("content")
        if content:
            return content[0].get("value")
        return entry.get("summary")

    @staticmethod
    def _entry_time(entry) -> str:
        parsed = entry.get("published_parsed") or entry.get("updated_parsed")
        if parsed:
            return datetime.fromtimestamp(calendar.timegm(parsed), tz=timezone.utc).isoformat()
        return datetime.now(timezone.utc).isoformat()


class RedditCollector:
    """Polls enabled subreddits and stores posts not seen before."""

    def __init__(self, store: Database, source: RedditFeedSource | None = None, feed_delay: float = 1.0):
        self.store = store
        self.source = source or RedditFeedSource()
        self.feed_delay = feed_delay

    async def collect_from_subreddit(self, name: str) -> CollectResult:
        result = CollectResult()

        try:
            subreddit = await self.store.get_subreddit_by_name(name)
            if not subreddit:
                result.errors.append(f"Subreddit {name} not found in database")
                return result

            entries = await self.source.fetch_entries(name)
            result.fetched = len(entries)

            for entry in entries:
                if not entry.reddit_id:
                    result.errors.append(f"Could not extract Reddit ID from {entry.link}")
                    continue

                if await self.store.post_exists(entry.reddit_id):
                    continue

                try:
                    await self.store.insert_post({
                        "reddit_id": entry.reddit_id,
                        "subreddit_id": subreddit["id"],
                        "title": entry.title,
                        "body": entry.body,
                        "author": entry.author,
                        "url": entry.link,
                        "score": 0,
                        "num_comments": 0,
                        "created_utc": entry.created_utc,
                    })
                    result.new_posts += 1
                except httpx.HTTPError as e:
                    result.errors.append(f"Failed to save post {entry.reddit_id}: {e}")

            await self.store.mark_subreddit_fetched(subreddit["id"])
        except httpx.HTTPError as e:
            result.errors.append(f"Failed to fetch feed for r/{name}: {e}")

        return result

    async def collect_all(self) -> dict:
        """Collect every enabled subreddit, politely spaced."""
        logger.info("[Collector] Starting collection run...")

        subreddits = await self.store.get_enabled_subreddits()
        total_fetched = 0
        total_new = 0
        results: dict[str, CollectResult] = {}

        for i, subreddit in enumerate(subreddits):
            if i > 0 and self.feed_delay > 0:
                # Be polite to Reddit
                await asyncio.sleep(self.feed_delay)

            name = subreddit["name"]
            logger.info(f"[Collector] Fetching r/{name}...")
            result = await self.collect_from_subreddit(name)
            results[name] = result
            total_fetched += result.fetched
            total_new += result.new_posts

            if result.errors:
                logger.error(f"[Collector] Errors for r/{name}: {result.errors}")
            else:
                logger.info(f"[Collector] r/{name}: {result.fetched} fetched, {result.new_posts} new")

        logger.info(f"[Collector] Complete: {total_fetched} posts fetched, {total_new} new posts saved")

        return {
            "total_fetched": total_fetched,
            "total_new": total_new,
            "subreddits": results,
        }

    async def run_forever(self, interval_minutes: int, token):
        """Collect now, then every `interval_minutes`, until `token` is cancelled."""
        logger.info(f"[Collector] Starting scheduled collector (every {interval_minutes} minutes)")
        while not token.cancelled:
            try:
                await self.collect_all()
            except Exception as e:
                logger.error(f"[Collector] Collection run failed: {e}")
            await token.sleep(interval_minutes * 60)
        logger.info("[Collector] Scheduled collector stopped")
