"""Client d'analyse basé sur l'API REST Gemini (`generateContent`) via httpx.

Correspondance des erreurs:
- 429 -> ExternalRateLimited (en-tête `Retry-After` si présent)
- 408, 5xx, timeout, erreur réseau -> ExternalTransient
- autre 4xx, prompt bloqué (aucun candidat) -> ExternalPermanent
"""

from __future__ import annotations

from typing import Any

import httpx

from content_analyzer.core.http_constants import (
    HTTP_REQUEST_TIMEOUT,
    HTTP_STATUS_CLIENT_ERROR_MIN,
    HTTP_STATUS_SERVER_ERROR_MIN,
    HTTP_TOO_MANY_REQUESTS,
)
from content_analyzer.domain.errors import (
    ExternalPermanent,
    ExternalRateLimited,
    ExternalTransient,
)
from content_analyzer.infra.llm.base import AnalysisClient


def parse_retry_after(value: str | None) -> float | None:
    """Retry-After en secondes (la forme date HTTP n'est pas utilisée par l'API)."""
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class GeminiAnalysisClient(AnalysisClient):
    """Client Gemini (REST v1beta)."""

    provider = "gemini"

    def __init__(
        self,
        api_key: str | None,
        model: str = "gemini-1.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com",
        http_client: httpx.Client | None = None,
    ) -> None:
        self.api_key = api_key or ""
        self.model = model
        self.base_url = base_url.rstrip("/")
        self._http = http_client or httpx.Client()

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/v1beta/models/{self.model}:generateContent"

    def _complete(self, prompt: str, timeout: float) -> tuple[str, dict[str, Any]]:
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"responseMimeType": "application/json", "temperature": 0.0},
        }
        try:
            resp = self._http.post(
                self.endpoint,
                json=payload,
                headers={"x-goog-api-key": self.api_key},
                timeout=timeout,
            )
        except httpx.TimeoutException as exc:
            raise ExternalTransient(f"gemini timeout: {exc}") from exc
        except httpx.TransportError as exc:
            raise ExternalTransient(f"gemini transport error: {exc}") from exc

        status = resp.status_code
        if status == HTTP_TOO_MANY_REQUESTS:
            raise ExternalRateLimited(
                "gemini rate limited", retry_after=parse_retry_after(resp.headers.get("Retry-After"))
            )
        if status == HTTP_REQUEST_TIMEOUT or status >= HTTP_STATUS_SERVER_ERROR_MIN:
            raise ExternalTransient(f"gemini upstream error {status}", status_code=status)
        if status >= HTTP_STATUS_CLIENT_ERROR_MIN:
            raise ExternalPermanent(f"gemini rejected request ({status}): {_error_message(resp)}", status)

        try:
            body = resp.json()
        except ValueError as exc:
            raise ExternalTransient("gemini returned a non-JSON body", status_code=status) from exc
        candidates = body.get("candidates") or []
        if not candidates:
            reason = (body.get("promptFeedback") or {}).get("blockReason") or "no candidates"
            raise ExternalPermanent(f"content blocked: {reason}", status)
        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(str(p.get("text", "")) for p in parts)
        if not text:
            finish = candidates[0].get("finishReason") or "empty"
            if finish == "SAFETY":
                raise ExternalPermanent("content blocked: SAFETY", status)
            raise ExternalTransient(f"gemini returned empty content ({finish})", status_code=status)
        return text, body

    def close(self) -> None:
        self._http.close()


def _error_message(resp: httpx.Response) -> str:
    try:
        return str((resp.json().get("error") or {}).get("message") or resp.text[:200])
    except ValueError:
        return resp.text[:200]
