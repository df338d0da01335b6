"""Run coordination and status reporting for classification stages."""

import asyncio
import logging

from .config import Config
from .db import Database
from .errors import ConfigurationError, ConflictError, NoActiveRunError
from .llm.classifier import ClassifierClient
from .models import RunResult, StageStatus
from .pipeline import BackgroundRunner, BatchRunner, CancellationToken, StageEvaluator
from .stages import STAGES, StageConfig

logger = logging.getLogger(__name__)


class RunCoordinator:
    """Owns the run state for one stage.

    At most one batch run is active per coordinator; a second request is
    rejected rather than queued. The background loop is independent of it.
    """

    def __init__(
        self,
        stage: StageConfig,
        store: Database,
        classifier: ClassifierClient | None = None,
        batch_size: int = 50,
        post_delay: float = 0.1,
        background_post_delay: float = 0.2,
        idle_delay: float = 30.0,
        error_delay: float = 5.0,
    ):
        self.stage = stage
        self.store = store
        self.classifier = classifier
        self._active_token: CancellationToken | None = None
        self.batch_runner: BatchRunner | None = None
        self.background: BackgroundRunner | None = None

        if classifier is not None:
            evaluator = StageEvaluator(stage, store, classifier)
            self.batch_runner = BatchRunner(evaluator, store, stage, batch_size=batch_size, post_delay=post_delay)
            self.background = BackgroundRunner(
                evaluator,
                store,
                stage,
                post_delay=background_post_delay,
                idle_delay=idle_delay,
                error_delay=error_delay,
            )

    @property
    def is_configured(self) -> bool:
        return self.classifier is not None

    @property
    def is_batch_running(self) -> bool:
        return self._active_token is not None

    @property
    def is_background_running(self) -> bool:
        return self.background is not None and self.background.is_running

    async def start_batch(self) -> RunResult:
        """Run a batch to completion.

        Raises ConflictError if a batch is already active and
        ConfigurationError if no classifier is configured.
        """
        if self._active_token is not None:
            raise ConflictError(f"{self.stage.label} is already running")
        if self.batch_runner is None:
            raise ConfigurationError("OPENAI_API_KEY is not configured")

        token = CancellationToken()
        self._active_token = token
        try:
            return await self.batch_runner.run(token)
        finally:
            self._active_token = None

    def request_stop(self):
        """Cancel the active batch run after its current post."""
        if self._active_token is None:
            raise NoActiveRunError(f"No {self.stage.name} job is running")
        self._active_token.cancel()

    def start_background(self) -> bool:
        """Start the background loop. Returns False if it was already running."""
        if self.background is None:
            raise ConfigurationError("OPENAI_API_KEY is not configured")
        return self.background.start()

    def stop_background(self) -> bool:
        if self.background is None:
            return False
        return self.background.stop()

    async def status(self) -> StageStatus:
        """Counters derived from the datastore on every call."""
        stage = self.stage
        total, pending, passed, avg_score = await asyncio.gather(
            self.store.count_posts(dict(stage.prerequisites)),
            self.store.count_posts(stage.pending_filters()),
            self.store.count_posts({stage.passed_field: "eq.true"}),
            self.store.average_post_field(stage.score_field, {stage.done_field: "eq.true"}),
        )
        return StageStatus(
            total=total,
            pending=pending,
            classified=total - pending,
            passed=passed,
            avg_score=avg_score,
            is_running=self.is_batch_running,
            is_background_running=self.is_background_running,
            is_configured=self.is_configured,
        )

    async def shutdown(self):
        """Stop the background loop and any active batch, waiting for the loop to exit."""
        if self._active_token is not None:
            self._active_token.cancel()
        if self.background is not None:
            self.background.stop()
            await self.background.join()


def build_coordinators(config: Config, store: Database) -> dict[str, RunCoordinator]:
    """One coordinator per stage, each with its own classifier."""
    coordinators = {}
    for name, stage in STAGES.items():
        try:
            classifier = ClassifierClient(
                stage,
                api_key=config.openai_api_key,
                model=getattr(config, stage.model_setting),
                timeout=config.classifier_timeout,
            )
        except ConfigurationError as e:
            logger.warning(f"[{stage.label}] Classifier disabled: {e}")
            classifier = None

        coordinators[name] = RunCoordinator(
            stage,
            store,
            classifier,
            batch_size=config.filter_batch_size,
        )
    return coordinators
