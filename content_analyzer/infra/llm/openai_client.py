"""
Client d'analyse basé sur le SDK OpenAI (chat.completions, sortie `json_object`).

Les retries internes du SDK sont désactivés (`max_retries=0`): la politique de retry et le
quota appartiennent au pipeline, pas au client.
"""

from __future__ import annotations

from typing import Any

import openai
from openai import OpenAI

from content_analyzer.core.http_constants import HTTP_REQUEST_TIMEOUT
from content_analyzer.domain.errors import (
    ExternalPermanent,
    ExternalRateLimited,
    ExternalTransient,
)
from content_analyzer.infra.llm.base import AnalysisClient
from content_analyzer.infra.llm.gemini_client import parse_retry_after


class OpenAIAnalysisClient(AnalysisClient):
    """Client OpenAI pour l'analyse de texte."""

    provider = "openai"

    def __init__(self, api_key: str | None, model: str = "gpt-4o-mini", client: Any = None) -> None:
        self.model = model
        self.client = client if client is not None else OpenAI(api_key=api_key, max_retries=0)

    def _complete(self, prompt: str, timeout: float) -> tuple[str, dict[str, Any]]:
        try:
            resp = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                response_format={"type": "json_object"},
                temperature=0,
                timeout=timeout,
            )
        except openai.RateLimitError as exc:
            headers = getattr(getattr(exc, "response", None), "headers", None) or {}
            raise ExternalRateLimited(
                str(exc), retry_after=parse_retry_after(headers.get("retry-after"))
            ) from exc
        except (openai.APITimeoutError, openai.APIConnectionError) as exc:
            raise ExternalTransient(f"openai unreachable: {exc}") from exc
        except openai.InternalServerError as exc:
            raise ExternalTransient(str(exc), status_code=exc.status_code) from exc
        except openai.APIStatusError as exc:
            if exc.status_code == HTTP_REQUEST_TIMEOUT:
                raise ExternalTransient(str(exc), status_code=exc.status_code) from exc
            raise ExternalPermanent(str(exc), status_code=exc.status_code) from exc

        choice = resp.choices[0]
        if getattr(choice, "finish_reason", None) == "content_filter":
            raise ExternalPermanent("content blocked: content_filter")
        content = getattr(getattr(choice, "message", None), "content", None)
        if not content:
            raise ExternalTransient("openai returned empty content")
        raw = resp.model_dump() if hasattr(resp, "model_dump") else {"content": content}
        return str(content), raw
