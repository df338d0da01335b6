"""Source connectors for collecting posts."""

from .reddit import RedditFeedSource, RedditCollector, FeedEntry, CollectResult

__all__ = ["RedditFeedSource", "RedditCollector", "FeedEntry", "CollectResult"]
