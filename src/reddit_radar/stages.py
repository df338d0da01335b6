"""Classification stages.

Triage and evaluation run through the same pipeline. A stage only differs in
the columns its subrecord lives in, the rubric it sends to the classifier,
and which posts are eligible for it.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .llm.prompts import EVALUATION_PROMPT, TRIAGE_PROMPT


@dataclass(frozen=True)
class StageConfig:
    """Describes one classification stage and its subrecord columns."""
    name: str
    label: str
    done_field: str
    passed_field: str
    score_field: str
    reason_field: str
    at_field: str
    prompt_template: str
    pass_description: str
    model_setting: str
    # Extra PostgREST filters a post must match to be pending for this stage
    prerequisites: dict[str, str] = field(default_factory=dict)

    @property
    def failure_reason(self) -> str:
        return f"{self.label} failed"

    def pending_filters(self) -> dict[str, str]:
        """Filters selecting posts this stage has not classified yet."""
        return {self.done_field: "eq.false", **self.prerequisites}

    def classified_update(self, passed: bool, score: int, reason: str, now: datetime | None = None) -> dict[str, Any]:
        """Column values for the Classified state."""
        return {
            self.done_field: True,
            self.passed_field: passed,
            self.score_field: score,
            self.reason_field: reason,
            self.at_field: (now or datetime.now(timezone.utc)).isoformat(),
        }

    def failed_update(self, now: datetime | None = None) -> dict[str, Any]:
        """Column values for the terminal Failed state."""
        return {
            self.done_field: True,
            self.passed_field: None,
            self.score_field: None,
            self.reason_field: self.failure_reason,
            self.at_field: (now or datetime.now(timezone.utc)).isoformat(),
        }


TRIAGE = StageConfig(
    name="triage",
    label="Triage",
    done_field="is_triaged",
    passed_field="passed_triage",
    score_field="triage_score",
    reason_field="triage_reason",
    at_field="triaged_at",
    prompt_template=TRIAGE_PROMPT,
    pass_description="Whether this post should pass triage for deeper evaluation",
    model_setting="filter_model",
)

EVALUATION = StageConfig(
    name="evaluation",
    label="Evaluation",
    done_field="is_evaluated",
    passed_field="is_opportunity",
    score_field="opportunity_score",
    reason_field="opportunity_reason",
    at_field="evaluated_at",
    prompt_template=EVALUATION_PROMPT,
    pass_description="Whether this post describes a viable business opportunity",
    model_setting="evaluate_model",
    prerequisites={"passed_triage": "eq.true"},
)

STAGES = {stage.name: stage for stage in (TRIAGE, EVALUATION)}
