"""Tests des clients d'analyse: parsing de la sortie modèle et correspondance des erreurs."""

import json
from types import SimpleNamespace
from unittest.mock import Mock

import httpx
import openai
import pytest

from content_analyzer.domain.errors import ExternalTransient
from content_analyzer.infra.llm.base import (
    AnalysisFailure,
    AnalysisSuccess,
    FailureKind,
    build_prompt,
    parse_analysis,
)
from content_analyzer.infra.llm.fake_deterministic import DeterministicAnalysisClient
from content_analyzer.infra.llm.gemini_client import GeminiAnalysisClient, parse_retry_after
from content_analyzer.infra.llm.openai_client import OpenAIAnalysisClient

GOOD = {"sentiment": "negative", "sentiment_score": -0.7, "topics": ["delivery"], "summary": "Late."}


# -------------------- parse_analysis --------------------


def test_parse_analysis_normalizes_fields():
    text = json.dumps(
        {
            "sentiment": "Positive",
            "sentiment_score": 3.2,
            "topics": ["a", " ", "b", "c", "d", "e", "f"],
            "summary": "  ok  ",
        }
    )
    a = parse_analysis(text, {"raw": 1}, 42)
    assert a.sentiment_label == "positive"
    assert a.sentiment_score == 1.0
    assert a.topics == ("a", "b", "c", "d", "e")
    assert a.summary == "ok"
    assert a.processing_time_ms == 42


def test_parse_analysis_accepts_fenced_json():
    a = parse_analysis("```json\n" + json.dumps(GOOD) + "\n```", {}, 1)
    assert a.sentiment_label == "negative"


@pytest.mark.parametrize(
    "text",
    ["not json", "[1, 2]", json.dumps({"sentiment": "furious"}), json.dumps({"sentiment": "neutral", "sentiment_score": "x"})],
)
def test_parse_analysis_rejects_malformed(text):
    with pytest.raises(ExternalTransient):
        parse_analysis(text, {}, 1)


def test_prompt_embeds_content():
    assert build_prompt("hello there").endswith("Text:\nhello there\n")


# -------------------- Gemini --------------------


def _gemini(handler):
    transport = httpx.MockTransport(handler)
    return GeminiAnalysisClient(
        api_key="k-123",
        model="gemini-test",
        base_url="https://gemini.test/",
        http_client=httpx.Client(transport=transport),
    )


def _candidate(text, finish="STOP"):
    return {"candidates": [{"content": {"parts": [{"text": text}]}, "finishReason": finish}]}


def test_gemini_success_sends_key_and_prompt():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["key"] = request.headers["x-goog-api-key"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_candidate(json.dumps(GOOD)))

    outcome = _gemini(handler).analyze("The parcel was late", timeout=1)
    assert isinstance(outcome, AnalysisSuccess)
    assert outcome.analysis.sentiment_label == "negative"
    assert outcome.analysis.raw_response["candidates"]
    assert seen["url"] == "https://gemini.test/v1beta/models/gemini-test:generateContent"
    assert seen["key"] == "k-123"
    assert "The parcel was late" in seen["body"]["contents"][0]["parts"][0]["text"]


@pytest.mark.parametrize(
    "status,kind",
    [
        (500, FailureKind.TRANSIENT),
        (503, FailureKind.TRANSIENT),
        (408, FailureKind.TRANSIENT),
        (400, FailureKind.PERMANENT),
        (403, FailureKind.PERMANENT),
    ],
)
def test_gemini_status_mapping(status, kind):
    outcome = _gemini(lambda r: httpx.Response(status, json={"error": {"message": "nope"}})).analyze(
        "x", timeout=1
    )
    assert isinstance(outcome, AnalysisFailure)
    assert outcome.kind is kind
    assert outcome.status_code == status


def test_gemini_429_carries_retry_after():
    outcome = _gemini(lambda r: httpx.Response(429, headers={"Retry-After": "7"})).analyze("x", timeout=1)
    assert outcome.kind is FailureKind.RATE_LIMITED
    assert outcome.retry_after == 7.0


def test_gemini_timeout_is_transient():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    outcome = _gemini(handler).analyze("x", timeout=1)
    assert outcome.kind is FailureKind.TRANSIENT


def test_gemini_connect_error_is_transient():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    assert _gemini(handler).analyze("x", timeout=1).kind is FailureKind.TRANSIENT


def test_gemini_blocked_prompt_is_permanent():
    body = {"promptFeedback": {"blockReason": "SAFETY"}}
    outcome = _gemini(lambda r: httpx.Response(200, json=body)).analyze("x", timeout=1)
    assert outcome.kind is FailureKind.PERMANENT
    assert "SAFETY" in outcome.message


def test_gemini_empty_text_depends_on_finish_reason():
    safety = _gemini(lambda r: httpx.Response(200, json=_candidate("", "SAFETY"))).analyze("x", timeout=1)
    assert safety.kind is FailureKind.PERMANENT
    other = _gemini(lambda r: httpx.Response(200, json=_candidate("", "MAX_TOKENS"))).analyze("x", timeout=1)
    assert other.kind is FailureKind.TRANSIENT


def test_gemini_non_json_body_is_transient():
    outcome = _gemini(lambda r: httpx.Response(200, text="<html>")).analyze("x", timeout=1)
    assert outcome.kind is FailureKind.TRANSIENT


@pytest.mark.parametrize("value,expected", [("3", 3.0), ("1.5", 1.5), ("-2", 0.0), ("soon", None), (None, None)])
def test_parse_retry_after(value, expected):
    assert parse_retry_after(value) == expected


# -------------------- OpenAI --------------------

_REQ = httpx.Request("POST", "https://api.openai.test/v1/chat/completions")


def _openai(side_effect=None, return_value=None):
    sdk = Mock()
    sdk.chat.completions.create.side_effect = side_effect
    sdk.chat.completions.create.return_value = return_value
    return OpenAIAnalysisClient(api_key="sk-test", model="gpt-test", client=sdk), sdk


def _completion(content, finish="stop"):
    message = SimpleNamespace(content=content)
    return SimpleNamespace(choices=[SimpleNamespace(message=message, finish_reason=finish)])


def test_openai_success():
    client, sdk = _openai(return_value=_completion(json.dumps(GOOD)))
    outcome = client.analyze("late parcel", timeout=3)
    assert isinstance(outcome, AnalysisSuccess)
    assert outcome.analysis.topics == ("delivery",)
    kwargs = sdk.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-test"
    assert kwargs["timeout"] == 3
    assert kwargs["response_format"] == {"type": "json_object"}


def test_openai_rate_limit_maps_retry_after():
    resp = httpx.Response(429, headers={"retry-after": "4"}, request=_REQ)
    client, _ = _openai(side_effect=openai.RateLimitError("slow down", response=resp, body=None))
    outcome = client.analyze("x", timeout=1)
    assert outcome.kind is FailureKind.RATE_LIMITED
    assert outcome.retry_after == 4.0


@pytest.mark.parametrize(
    "exc,kind",
    [
        (openai.APITimeoutError(request=_REQ), FailureKind.TRANSIENT),
        (openai.APIConnectionError(request=_REQ), FailureKind.TRANSIENT),
        (
            openai.InternalServerError("boom", response=httpx.Response(502, request=_REQ), body=None),
            FailureKind.TRANSIENT,
        ),
        (
            openai.BadRequestError("bad", response=httpx.Response(400, request=_REQ), body=None),
            FailureKind.PERMANENT,
        ),
    ],
)
def test_openai_error_mapping(exc, kind):
    client, _ = _openai(side_effect=exc)
    assert client.analyze("x", timeout=1).kind is kind


def test_openai_content_filter_is_permanent():
    client, _ = _openai(return_value=_completion(None, finish="content_filter"))
    assert client.analyze("x", timeout=1).kind is FailureKind.PERMANENT


def test_openai_empty_content_is_transient():
    client, _ = _openai(return_value=_completion(""))
    assert client.analyze("x", timeout=1).kind is FailureKind.TRANSIENT


# -------------------- déterministe --------------------


def test_deterministic_client_is_stable_and_keyword_based():
    client = DeterministicAnalysisClient()
    a = client.analyze("I love this product, the quality is great", timeout=1)
    b = client.analyze("I love this product, the quality is great", timeout=1)
    assert a.analysis.sentiment_label == "positive"
    assert a.analysis.topics == b.analysis.topics
    assert "product" in a.analysis.topics
    neg = client.analyze("terrible service, awful experience", timeout=1)
    assert neg.analysis.sentiment_label == "negative"
    neutral = client.analyze("The meeting is on Tuesday", timeout=1)
    assert neutral.analysis.sentiment_label == "neutral"
