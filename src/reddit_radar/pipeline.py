"""Classification pipeline: single-post evaluation, batch draining and background mode.

Architecture:
- StageEvaluator classifies one post and always writes a terminal subrecord
- BatchRunner drains pending posts page by page until empty or cancelled
- BackgroundRunner polls for one pending post at a time, forever, until stopped
- Both runners may run at once; the datastore's guarded update is the only
  serialization point between them
"""

import asyncio
import logging
from dataclasses import replace

from .db import Database
from .errors import NotFoundError
from .llm.classifier import ClassifierClient
from .models import Post, RunResult, StageOutcome
from .stages import StageConfig

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative stop signal scoped to a single run."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def sleep(self, seconds: float) -> bool:
        """Sleep up to `seconds`, waking early on cancel. Returns whether cancelled."""
        if seconds <= 0:
            await asyncio.sleep(0)
            return self.cancelled
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
        return self.cancelled


class StageEvaluator:
    """Classifies a single post and persists the terminal result."""

    def __init__(self, stage: StageConfig, store: Database, classifier: ClassifierClient):
        self.stage = stage
        self.store = store
        self.classifier = classifier

    async def evaluate_one(self, post: Post) -> StageOutcome:
        """Classify `post` and write its subrecord exactly once.

        A classification failure of any kind is recorded as the stage's Failed
        state and never retried. Errors from the datastore write itself
        (NotFoundError, transport errors) propagate to the caller.
        """
        try:
            result = await self.classifier.classify(post)
        except Exception as e:
            logger.error(f"[{self.stage.label}] Failed to classify post {post.id}: {e}")
            fields = self.stage.failed_update()
            outcome = StageOutcome(
                post_id=post.id,
                passed=None,
                score=None,
                reason=self.stage.failure_reason,
                failed=True,
            )
        else:
            fields = self.stage.classified_update(result.passed, result.score, result.reason)
            outcome = StageOutcome(
                post_id=post.id,
                passed=result.passed,
                score=result.score,
                reason=result.reason,
            )

        written = await self.store.update_post_classification(self.stage, post.id, fields)
        if not written:
            logger.info(f"[{self.stage.label}] Post {post.id} was already classified, result dropped")
            return replace(outcome, written=False)

        if not outcome.failed:
            logger.info(
                f"[{self.stage.label}] \"{post.title[:50]}...\" - Score: {outcome.score}, Passed: {outcome.passed}"
            )
        return outcome


class BatchRunner:
    """Drains every pending post for a stage in pages of `batch_size`."""

    def __init__(
        self,
        evaluator: StageEvaluator,
        store: Database,
        stage: StageConfig,
        batch_size: int = 50,
        post_delay: float = 0.1,
    ):
        self.evaluator = evaluator
        self.store = store
        self.stage = stage
        self.batch_size = batch_size
        self.post_delay = post_delay

    async def run(self, token: CancellationToken) -> RunResult:
        """Classify pending posts until none are left or `token` is cancelled.

        Errors fetching a page propagate; counts for posts already written are
        lost with them, but the written rows are not.
        """
        result = RunResult()

        while not token.cancelled:
            posts = await self.store.find_pending_posts(self.stage, limit=self.batch_size)
            if not posts:
                break

            logger.info(f"[{self.stage.label}] Processing page of {len(posts)} pending posts")

            for post in posts:
                if token.cancelled:
                    logger.info(f"[{self.stage.label}] Stop requested, halting...")
                    break

                try:
                    outcome = await self.evaluator.evaluate_one(post)
                except NotFoundError as e:
                    logger.warning(f"[{self.stage.label}] {e}, skipping")
                    result.processed += 1
                    result.failed += 1
                    await token.sleep(self.post_delay)
                    continue

                if outcome.written:
                    result.processed += 1
                    if outcome.failed:
                        result.failed += 1
                    elif outcome.passed:
                        result.passed += 1

                await token.sleep(self.post_delay)

        result.stopped = token.cancelled
        logger.info(
            f"[{self.stage.label}] Run finished: {result.processed} processed, "
            f"{result.passed} passed, {result.failed} failed, stopped={result.stopped}"
        )
        return result


class BackgroundRunner:
    """Continuously classifies pending posts one at a time until stopped."""

    def __init__(
        self,
        evaluator: StageEvaluator,
        store: Database,
        stage: StageConfig,
        post_delay: float = 0.2,
        idle_delay: float = 30.0,
        error_delay: float = 5.0,
    ):
        self.evaluator = evaluator
        self.store = store
        self.stage = stage
        self.post_delay = post_delay
        self.idle_delay = idle_delay
        self.error_delay = error_delay
        self._token: CancellationToken | None = None
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        """True until the loop task has exited, including while it is stopping."""
        return self._task is not None and not self._task.done()

    @property
    def is_stopping(self) -> bool:
        return self.is_running and self._token.cancelled

    def start(self) -> bool:
        """Schedule the loop on the running event loop.

        Returns False if a loop is already running or still finishing its
        current post after a stop.
        """
        if self.is_stopping:
            logger.info(f"[{self.stage.label}] Background {self.stage.name} is still stopping, not restarted")
            return False
        if self.is_running:
            logger.info(f"[{self.stage.label}] Background {self.stage.name} already running")
            return False

        token = CancellationToken()
        self._token = token
        self._task = asyncio.create_task(self._run(token), name=f"background-{self.stage.name}")
        return True

    def stop(self) -> bool:
        """Ask the loop to exit after its current iteration. Returns False if not running."""
        if not self.is_running or self.is_stopping:
            return False
        self._token.cancel()
        return True

    async def join(self):
        """Wait for the most recently started loop to exit."""
        if self._task is not None:
            await self._task

    async def _run(self, token: CancellationToken):
        logger.info(f"[{self.stage.label}] Starting background {self.stage.name}...")

        while not token.cancelled:
            try:
                post = await self.store.find_one_pending_post(self.stage)
                if post is None:
                    await token.sleep(self.idle_delay)
                    continue

                await self.evaluator.evaluate_one(post)
                await token.sleep(self.post_delay)
            except Exception as e:
                logger.error(f"[{self.stage.label}] Background {self.stage.name} error: {e}")
                await token.sleep(self.error_delay)

        logger.info(f"[{self.stage.label}] Background {self.stage.name} stopped")
