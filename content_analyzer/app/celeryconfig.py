"""Configuration centralisée Celery pour le pipeline d'analyse.

Ce module définit les acquittements, timeouts et la planification (beat) des tâches de
maintenance: reprise des baux expirés et des soumissions `pending` orphelines.
"""

# ============================================================
# Module : content_analyzer/app/celeryconfig.py
# Objet  : Configuration centralisée Celery (acks, timeouts, beat).
# ============================================================

from __future__ import annotations

# Acks
task_acks_late = True
task_reject_on_worker_lost = True
worker_prefetch_multiplier = 1
task_time_limit = 600  # secondes (un drain peut attendre le quota externe)
broker_pool_limit = 10

# Les retries sont gérés par la file de dispatch, pas par Celery
task_default_retry_delay = 0

beat_schedule = {
    "analysis-reclaim-leases": {
        "task": "content_analyzer.tasks.reclaim_leases",
        "schedule": 30.0,
    },
    "analysis-recover-pending": {
        "task": "content_analyzer.tasks.recover_pending",
        "schedule": 60.0,
    },
    "analysis-drain": {
        "task": "content_analyzer.tasks.process_next",
        "schedule": 15.0,
    },
}
