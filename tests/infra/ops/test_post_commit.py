"""Tests unitaires pour les actions post-commit (mise en file après commit).

Vérifie que les actions enregistrées via `register_action_after_commit` ne sont exécutées
qu'après un commit, jamais après un rollback, et qu'un échec d'action ne remonte pas.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session

from content_analyzer.infra.ops.post_commit import register_action_after_commit


def _make_session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    return Session(bind=engine)


def test_register_action_runs_after_commit():
    """Exécute l'action après commit et pas avant, avec ses arguments."""
    ran: dict[str, Any] = {"ids": []}

    s = _make_session()
    s.execute(text("SELECT 1"))
    register_action_after_commit(s, ran["ids"].append, "sub-1")
    # Avant commit: rien ne s'exécute
    assert ran["ids"] == []
    s.commit()
    assert ran["ids"] == ["sub-1"]
    # Les actions ne sont jouées qu'une fois
    s.execute(text("SELECT 1"))
    s.commit()
    assert ran["ids"] == ["sub-1"]


def test_register_action_cleared_on_rollback():
    """Purge les actions sur rollback et ne les exécute pas ensuite."""
    ran: dict[str, int] = {"x": 0}

    def action() -> None:
        ran["x"] += 1

    s = _make_session()
    s.execute(text("SELECT 1"))
    register_action_after_commit(s, action)
    s.rollback()
    assert ran["x"] == 0
    s.execute(text("SELECT 1"))
    s.commit()
    assert ran["x"] == 0


def test_failing_action_does_not_break_commit():
    """Une action qui lève est journalisée; les suivantes s'exécutent quand même."""
    ran: list[str] = []

    def broken() -> None:
        raise RuntimeError("queue unreachable")

    s = _make_session()
    s.execute(text("SELECT 1"))
    register_action_after_commit(s, broken)
    register_action_after_commit(s, ran.append, "after")
    s.commit()
    assert ran == ["after"]
