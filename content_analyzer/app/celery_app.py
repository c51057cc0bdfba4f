"""
Module: celery_app.

But: Initialiser l'instance Celery de l'application (mode `WORKER_MODE=celery`) et charger la
config runtime. Les tâches drainent la file de dispatch Redis; le quota externe reste garanti
par le limiteur Redis partagé entre tous les workers Celery.
"""

from celery import Celery

from content_analyzer.core.container import container

celery_app = Celery(
    "content_analyzer",
    broker=container.settings.CELERY_BROKER_URL,
    backend=container.settings.CELERY_RESULT_BACKEND,
    include=["content_analyzer.tasks.analysis_tasks"],
)
# Load configuration from module (acks, timeouts, beat schedule)
celery_app.config_from_object("content_analyzer.app.celeryconfig")
celery_app.conf.task_routes = {"content_analyzer.tasks.*": {"queue": "analysis"}}

__all__ = ["celery_app"]
