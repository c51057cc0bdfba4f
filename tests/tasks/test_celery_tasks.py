"""Tests des tâches Celery (appelées directement, sans broker)."""

from __future__ import annotations

from content_analyzer.app.celery_app import celery_app
from content_analyzer.domain.entities import SubmissionStatus
from content_analyzer.infra.rate_limit_store import RateWindow, SlidingWindowLimiter
from content_analyzer.tasks import analysis_tasks
from fakes import ScriptedAnalysisClient


def test_process_next_drains_up_to_batch(make_container, owner_id, monkeypatch):
    c = make_container(client=ScriptedAnalysisClient())
    monkeypatch.setattr(analysis_tasks, "container", c)
    ids = [c.orchestrator.submit(f"text {i}", owner_id).id for i in range(3)]

    assert analysis_tasks.process_next(batch=2) == {"completed": 2}
    assert analysis_tasks.process_next() == {"completed": 1}
    assert analysis_tasks.process_next() == {}
    assert all(c.orchestrator.get_status(i, owner_id) is SubmissionStatus.COMPLETED for i in ids)


def test_maintenance_tasks(make_container, owner_id, monkeypatch):
    c = make_container(LEASE_SECONDS=0.0)
    monkeypatch.setattr(analysis_tasks, "container", c)
    sub = c.orchestrator.submit("orphan", owner_id)

    assert c.dispatcher.claim("dead-worker", timeout=0) is not None
    assert analysis_tasks.reclaim_leases() == 1
    assert c.dispatcher.contains(sub.id)

    c.dispatcher.ack(c.dispatcher.claim("w", timeout=0))
    assert analysis_tasks.recover_pending() == 1
    assert c.dispatcher.contains(sub.id)


def test_task_names_and_routing():
    assert analysis_tasks.process_next.name == "content_analyzer.tasks.process_next"
    assert "content_analyzer.tasks.reclaim_leases" in celery_app.tasks
    assert celery_app.conf.task_routes["content_analyzer.tasks.*"]["queue"] == "analysis"


def test_process_next_defers_when_quota_outlasts_task_budget(make_container, owner_id, monkeypatch):
    limiter = SlidingWindowLimiter([RateWindow(limit=1, seconds=3600.0)])
    c = make_container(client=ScriptedAnalysisClient(), limiter=limiter)
    monkeypatch.setattr(analysis_tasks, "container", c)
    # budget = limite - ANALYSIS_TIMEOUT_S (2.0) - marge (30.0) = 0.2 s
    monkeypatch.setitem(celery_app.conf, "task_time_limit", 32.2)
    sid = c.orchestrator.submit("waiting for quota", owner_id).id
    assert c.dispatcher.admit(timeout=0)

    assert analysis_tasks.process_next() == {"deferred": 1}
    assert c.dispatcher.contains(sid)
    assert c.dispatcher.queue.leased_count() == 0
    assert c.orchestrator.get_status(sid, owner_id) is SubmissionStatus.PENDING
