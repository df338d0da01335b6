"""Reddit Radar: collect subreddit posts and surface business opportunities."""
