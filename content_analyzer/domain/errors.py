"""Taxonomie d'erreurs du pipeline d'analyse.

Les erreurs « externes » sont levées à l'intérieur des clients d'analyse puis converties en
résultat typé (`AnalysisFailure`) à la frontière; le reste du pipeline ne les voit jamais.
"""

from __future__ import annotations


class AnalyzerError(Exception):
    """Base class for every pipeline error."""


class CacheUnavailable(AnalyzerError):
    """Le cache est injoignable; traité comme un miss, jamais remonté à l'appelant."""


class QueueFull(AnalyzerError):
    """Backpressure: la file de dispatch a atteint sa borne."""

    def __init__(self, depth: int, limit: int) -> None:
        super().__init__(f"dispatch queue full ({depth}/{limit})")
        self.depth = depth
        self.limit = limit


class ExternalAnalysisError(AnalyzerError):
    """Erreur renvoyée par l'API d'analyse externe."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ExternalTransient(ExternalAnalysisError):
    """Timeout, 5xx, erreur réseau ou réponse inexploitable: à retenter."""


class ExternalRateLimited(ExternalTransient):
    """L'API externe signale son propre throttling."""

    def __init__(
        self, message: str, retry_after: float | None = None, status_code: int | None = 429
    ) -> None:
        super().__init__(message, status_code)
        self.retry_after = retry_after


class ExternalPermanent(ExternalAnalysisError):
    """Entrée rejetée par l'API (4xx hors 429): aucun retry."""


class SubmissionNotFound(AnalyzerError):
    """Identifiant inconnu, ou appartenant à un autre utilisateur."""

    def __init__(self, submission_id: str) -> None:
        super().__init__(f"submission {submission_id} not found")
        self.submission_id = submission_id


class ResultNotReady(AnalyzerError):
    """La soumission n'a pas encore atteint l'état `completed`."""

    def __init__(self, submission_id: str, status: str) -> None:
        super().__init__(f"submission {submission_id} is {status}")
        self.submission_id = submission_id
        self.status = status


class AnalysisFailed(AnalyzerError):
    """La soumission est terminée en `failed`."""

    def __init__(self, submission_id: str, reason: str | None) -> None:
        super().__init__(f"submission {submission_id} failed: {reason or 'unknown'}")
        self.submission_id = submission_id
        self.reason = reason


class InvalidSubmission(AnalyzerError):
    """Contenu soumis invalide (vide ou trop long)."""


class InvalidTransition(AnalyzerError):
    """Transition d'état interdite par la machine à états."""
