"""Tests for the structured-output classifier client."""

import asyncio
import json
from types import SimpleNamespace

import httpx
import openai
import pytest

from reddit_radar.errors import ClassificationError, ConfigurationError
from reddit_radar.llm.classifier import (
    ClassifierClient,
    build_prompt,
    clamp_score,
    normalize_result,
    response_schema,
)
from reddit_radar.models import Post
from reddit_radar.stages import EVALUATION, TRIAGE


class FakeCompletions:
    def __init__(self, content=None, error=None, refusal=None, choices=True):
        self.content = content
        self.error = error
        self.refusal = refusal
        self.choices = choices
        self.kwargs = None

    async def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error is not None:
            raise self.error
        if not self.choices:
            return SimpleNamespace(choices=[])
        message = SimpleNamespace(content=self.content, refusal=self.refusal)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_openai(completions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def make_post(**overrides):
    values = dict(
        id="p1",
        title="Anyone know a tool to reconcile Stripe payouts?",
        subreddit="SaaS",
        body="I spend 5 hours a week doing this by hand.",
        score=42,
        num_comments=17,
    )
    values.update(overrides)
    return Post(**values)


@pytest.mark.parametrize(
    "raw, expected",
    [
        (13.7, 10),
        (-2, 0),
        (6.4, 6),
        (6.5, 7),
        (7, 7),
        (0, 0),
        (10, 10),
    ],
)
def test_clamp_score(raw, expected):
    assert clamp_score(raw) == expected


@pytest.mark.parametrize("raw", [True, "7", None, float("nan"), float("inf")])
def test_clamp_score_rejects_non_numbers(raw):
    with pytest.raises(ClassificationError):
        clamp_score(raw)


def test_normalize_truncates_reason_to_500_characters():
    result = normalize_result({"passed": True, "score": 8, "reason": "x" * 800})

    assert len(result.reason) == 500


def test_normalize_coerces_score_and_keeps_verdict():
    result = normalize_result({"passed": False, "score": 13.7, "reason": " Too vague. "})

    assert result.passed is False
    assert result.score == 10
    assert result.reason == "Too vague."


@pytest.mark.parametrize(
    "payload",
    [
        {"passed": True, "score": 8},
        {"passed": True, "reason": "ok"},
        {"score": 8, "reason": "ok"},
        {"passed": True, "score": 8, "reason": "   "},
        {"passed": True, "score": 8, "reason": None},
        ["passed", 8, "ok"],
        "passed",
    ],
)
def test_normalize_rejects_nonconforming_payloads(payload):
    with pytest.raises(ClassificationError):
        normalize_result(payload)


def test_build_prompt_interpolates_post_fields():
    prompt = build_prompt(TRIAGE, make_post())

    assert "Anyone know a tool to reconcile Stripe payouts?" in prompt
    assert "I spend 5 hours a week doing this by hand." in prompt
    assert "r/SaaS" in prompt
    assert "42" in prompt


def test_build_prompt_uses_placeholder_for_missing_body():
    prompt = build_prompt(TRIAGE, make_post(body=None))

    assert "(no body)" in prompt


def test_evaluation_prompt_includes_triage_verdict():
    post = make_post(triage_score=8, triage_reason="Recurring manual chore")

    prompt = build_prompt(EVALUATION, post)

    assert "Recurring manual chore" in prompt


def test_response_schema_is_strict_and_named_per_stage():
    schema = response_schema(EVALUATION)

    assert schema["type"] == "json_schema"
    assert schema["json_schema"]["name"] == "evaluation_result"
    assert schema["json_schema"]["strict"] is True
    assert schema["json_schema"]["schema"]["required"] == ["passed", "score", "reason"]


def test_missing_api_key_fails_at_construction():
    with pytest.raises(ConfigurationError):
        ClassifierClient(TRIAGE, api_key=None, model="gpt-5-nano")
    with pytest.raises(ConfigurationError):
        ClassifierClient(TRIAGE, api_key="", model="gpt-5-nano")


def test_classify_sends_schema_constrained_request():
    completions = FakeCompletions(content=json.dumps({"passed": True, "score": 6.5, "reason": "Clear pain"}))
    client = ClassifierClient(TRIAGE, api_key="sk-test", model="gpt-5-nano", client=fake_openai(completions))

    result = asyncio.run(client.classify(make_post()))

    assert result.passed is True
    assert result.score == 7
    assert result.reason == "Clear pain"
    assert completions.kwargs["model"] == "gpt-5-nano"
    assert completions.kwargs["reasoning_effort"] == "low"
    assert completions.kwargs["response_format"] == response_schema(TRIAGE)
    assert completions.kwargs["messages"][0]["role"] == "user"


def test_transport_timeout_becomes_classification_error():
    error = openai.APITimeoutError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))
    client = ClassifierClient(
        TRIAGE, api_key="sk-test", model="gpt-5-nano", client=fake_openai(FakeCompletions(error=error))
    )

    with pytest.raises(ClassificationError):
        asyncio.run(client.classify(make_post()))


@pytest.mark.parametrize(
    "completions",
    [
        FakeCompletions(content="not json at all"),
        FakeCompletions(content=""),
        FakeCompletions(content=None, refusal="I can't help with that"),
        FakeCompletions(choices=False),
        FakeCompletions(content=json.dumps({"passed": True, "score": "high", "reason": "ok"})),
    ],
)
def test_unusable_responses_become_classification_errors(completions):
    client = ClassifierClient(TRIAGE, api_key="sk-test", model="gpt-5-nano", client=fake_openai(completions))

    with pytest.raises(ClassificationError):
        asyncio.run(client.classify(make_post()))
