"""Post-commit hooks for API→pipeline handoff.

Ce module fournit des utilitaires pour déclencher des actions (mise en file de dispatch, envoi
de tâches Celery) uniquement après qu'une transaction SQLAlchemy ait été effectivement
commitée. Une soumission n'est jamais mise en file si son insertion est rollback.
"""

from __future__ import annotations

import functools
from collections.abc import Callable

import structlog
from prometheus_client import Counter
from sqlalchemy import event
from sqlalchemy.orm import Session

log = structlog.get_logger(__name__)

POSTCOMMIT_ACTIONS_TOTAL = Counter(
    "postcommit_actions_total",
    "Post-commit action outcomes",
    ["result"],
)

_ACTIONS_KEY = "_post_commit_actions"
_BOUND_KEY = "_post_commit_bound"


def _ensure_action_list(session: Session) -> list[Callable[[], None]]:
    """Ensure action list container exists on session.info and return it."""
    actions = session.info.get(_ACTIONS_KEY)
    if actions is None:
        actions = []
        session.info[_ACTIONS_KEY] = actions
        _bind_session_events(session)
    return actions


def _bind_session_events(session: Session) -> None:
    """Bind commit/rollback events once for the given session instance."""
    if session.info.get(_BOUND_KEY):
        return
    session.info[_BOUND_KEY] = True

    @event.listens_for(session, "after_commit")
    def _after_commit(_session: Session) -> None:
        actions = list(_session.info.get(_ACTIONS_KEY, []) or [])
        _session.info[_ACTIONS_KEY] = []
        for action in actions:
            # La transaction est déjà commitée: un échec ici est journalisé, et la reprise
            # (recover_pending) rattrape les soumissions restées hors file.
            try:
                action()
            except Exception as exc:
                POSTCOMMIT_ACTIONS_TOTAL.labels(result="error").inc()
                log.warning(
                    "post_commit_action_failed",
                    action=getattr(getattr(action, "func", action), "__name__", "action"),
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
            else:
                POSTCOMMIT_ACTIONS_TOTAL.labels(result="done").inc()

    @event.listens_for(session, "after_rollback")
    def _after_rollback(_session: Session) -> None:
        # Purge les actions planifiées si la transaction est rollback
        if _session.info.get(_ACTIONS_KEY):
            POSTCOMMIT_ACTIONS_TOTAL.labels(result="rolled_back").inc()
        _session.info[_ACTIONS_KEY] = []


def register_action_after_commit(
    session: Session,
    func: Callable[..., None],
    *args,
    **kwargs,
) -> None:
    """Register an arbitrary callable to run after a successful commit.

    La fonction est stockée dans la session et exécutée lors de l'évènement
    `after_commit`. En cas de rollback, elle est oubliée.
    """
    bound = functools.partial(func, *args, **kwargs)
    _ensure_action_list(session).append(bound)


__all__ = ["register_action_after_commit"]
