"""Data types shared by the collector, pipeline and API."""

from dataclasses import dataclass, asdict
from typing import Any


@dataclass(frozen=True)
class Post:
    """A collected Reddit post and its classification subrecords."""
    id: str
    title: str
    subreddit: str
    body: str | None = None
    author: str | None = None
    url: str | None = None
    reddit_id: str | None = None
    subreddit_id: str | None = None
    score: int = 0
    num_comments: int = 0
    created_utc: str | None = None
    fetched_at: str | None = None
    is_flagged: bool = False

    # Triage subrecord
    is_triaged: bool = False
    passed_triage: bool | None = None
    triage_score: int | None = None
    triage_reason: str | None = None
    triaged_at: str | None = None

    # Evaluation subrecord
    is_evaluated: bool = False
    is_opportunity: bool | None = None
    opportunity_score: int | None = None
    opportunity_reason: str | None = None
    evaluated_at: str | None = None

    @classmethod
    def from_row(cls, row: dict) -> "Post":
        """Build a Post from a `posts` row with the subreddit name embedded."""
        subreddit = row.get("subreddit")
        if isinstance(subreddit, dict):
            subreddit = subreddit.get("name")
        known = cls.__dataclass_fields__.keys()
        values = {k: v for k, v in row.items() if k in known and k != "subreddit"}
        return cls(subreddit=subreddit or "unknown", **values)

    def prompt_fields(self) -> dict[str, Any]:
        """Values interpolated into a stage's rubric template."""
        return {
            "title": self.title,
            "body": self.body or "(no body)",
            "subreddit": self.subreddit,
            "score": self.score,
            "num_comments": self.num_comments,
            "triage_score": self.triage_score if self.triage_score is not None else "n/a",
            "triage_reason": self.triage_reason or "n/a",
        }


@dataclass(frozen=True)
class ClassificationResult:
    """Normalized classifier verdict."""
    passed: bool
    score: int
    reason: str


@dataclass(frozen=True)
class StageOutcome:
    """Terminal result of evaluating one post."""
    post_id: str
    passed: bool | None
    score: int | None
    reason: str
    failed: bool = False
    # False when another runner had already written this post
    written: bool = True


@dataclass
class RunResult:
    """Counters reported by a batch run."""
    processed: int = 0
    passed: int = 0
    failed: int = 0
    stopped: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class StageStatus:
    """Aggregate counters for a stage plus liveness flags."""
    total: int
    pending: int
    classified: int
    passed: int
    avg_score: float | None
    is_running: bool
    is_background_running: bool
    is_configured: bool

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "pending": self.pending,
            "classified": self.classified,
            "passed": self.passed,
            "avgScore": self.avg_score,
            "isRunning": self.is_running,
            "isBackgroundRunning": self.is_background_running,
            "isConfigured": self.is_configured,
        }
