"""
Tâches Celery du pipeline d'analyse.

- `process_next`: draine jusqu'à `CELERY_DRAIN_BATCH` éléments de la file de dispatch
- `reclaim_leases`: remet en file les éléments dont le bail a expiré
- `recover_pending`: remet en file les soumissions `pending` absentes de la file
"""

from __future__ import annotations

import time

import structlog

from content_analyzer.app.celery_app import celery_app
from content_analyzer.core.container import container

log = structlog.get_logger(__name__)

# Réserve avant le hard kill: appel externe + écriture du résultat
TIME_LIMIT_MARGIN_S = 30.0


def _drain_budget() -> float:
    """Temps disponible pour attendre le quota sans atteindre `task_time_limit`."""
    limit = celery_app.conf.task_time_limit or 600
    return max(0.0, limit - container.settings.ANALYSIS_TIMEOUT_S - TIME_LIMIT_MARGIN_S)


@celery_app.task(name="content_analyzer.tasks.process_next")
def process_next(batch: int | None = None) -> dict[str, int]:
    """Traite au plus `batch` éléments prêts; s'arrête dès que la file n'en propose plus.

    L'attente du quota est bornée par le budget de la tâche: un élément qui n'obtient pas de
    jeton à temps est rendu à la file (`deferred`) et le drain s'arrête.
    """
    limit = batch or container.settings.CELERY_DRAIN_BATCH
    deadline = time.monotonic() + _drain_budget()
    worker = container.make_worker("celery")
    outcomes: dict[str, int] = {}
    for _ in range(limit):
        worker.admit_timeout = max(0.0, deadline - time.monotonic())
        outcome = worker.run_once(claim_timeout=0)
        if outcome is None:
            break
        outcomes[outcome] = outcomes.get(outcome, 0) + 1
        if outcome == "deferred":
            break
    if outcomes:
        log.info("celery_drain_done", **outcomes)
    return outcomes


@celery_app.task(name="content_analyzer.tasks.reclaim_leases")
def reclaim_leases() -> int:
    return container.dispatcher.reclaim_expired()


@celery_app.task(name="content_analyzer.tasks.recover_pending")
def recover_pending() -> int:
    return container.orchestrator.recover_pending(container.settings.PENDING_RECOVERY_GRACE_S)
