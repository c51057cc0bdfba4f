"""Dispatcher à débit limité: file de dispatch bornée + admission vers l'API externe.

Seul composant autorisé à laisser partir un appel externe: chaque appel passe par `admit()`,
qui consomme un jeton du limiteur (mémoire ou Redis) et suspend le worker, sans attente active,
tant que le quota est épuisé.
"""

from __future__ import annotations

import threading
import time

import structlog

from content_analyzer.app.metrics import (
    DISPATCH_QUEUE_DEPTH,
    DISPATCH_REJECTED,
    LEASES_RECLAIMED,
    RATE_LIMIT_WAIT,
)
from content_analyzer.domain.entities import DispatchItem
from content_analyzer.domain.errors import QueueFull

log = structlog.get_logger(__name__)


class RateLimitedDispatcher:
    """Façade unique sur la file de dispatch et le limiteur de débit."""

    def __init__(self, queue, limiter, max_depth: int, lease_seconds: float) -> None:
        self.queue = queue
        self.limiter = limiter
        self.max_depth = int(max_depth)
        self.lease_seconds = float(lease_seconds)
        self._stop = threading.Event()

    # -------------------- file --------------------

    def depth(self) -> int:
        depth = self.queue.depth()
        DISPATCH_QUEUE_DEPTH.set(depth)
        return depth

    def ensure_capacity(self) -> None:
        """Lève QueueFull si la file a atteint sa borne (aucun effet de bord sinon)."""
        depth = self.depth()
        if depth >= self.max_depth:
            DISPATCH_REJECTED.inc()
            raise QueueFull(depth, self.max_depth)

    def enqueue(self, submission_id: str, delay: float = 0.0) -> bool:
        """Met une soumission en file.

        Returns:
            False si la soumission y était déjà (dédoublonnage par id).

        Raises:
            QueueFull: si la borne `max_depth` est atteinte.
        """
        self.ensure_capacity()
        item = DispatchItem(submission_id=submission_id, not_before=time.time() + max(0.0, delay))
        pushed = self.queue.push(item)
        if pushed:
            log.debug("dispatch_enqueued", submission_id=submission_id, delay=delay)
        return pushed

    def contains(self, submission_id: str) -> bool:
        return self.queue.contains(submission_id)

    def claim(self, worker_id: str, timeout: float | None = None) -> DispatchItem | None:
        if self._stop.is_set():
            return None
        return self.queue.claim(worker_id, self.lease_seconds, timeout)

    def extend_lease(self, item: DispatchItem) -> bool:
        return self.queue.extend_lease(item, self.lease_seconds)

    def ack(self, item: DispatchItem) -> bool:
        return self.queue.ack(item)

    def requeue(self, item: DispatchItem, delay: float) -> bool:
        """Rend l'élément à la file après `delay` secondes (compteurs de `item` conservés).

        Pas de contrôle de borne: l'élément est déjà compté dans la profondeur.
        """
        released = self.queue.release(item, delay)
        if not released:
            log.warning(
                "dispatch_requeue_lost_lease",
                submission_id=item.submission_id,
                attempts=item.attempts,
                throttled=item.throttled,
            )
        return released

    def reclaim_expired(self) -> int:
        count = self.queue.reclaim_expired()
        if count:
            LEASES_RECLAIMED.inc(count)
            log.info("dispatch_leases_reclaimed", count=count)
        return count

    # -------------------- admission --------------------

    def admit(self, timeout: float | None = None) -> bool:
        """Attend un jeton d'appel externe.

        Returns:
            True si l'appel est admis; False si le dispatcher est arrêté ou si `timeout`
            expire avant qu'un jeton soit disponible.
        """
        start = time.monotonic()
        deadline = None if timeout is None else start + timeout
        while not self._stop.is_set():
            admission = self.limiter.try_acquire()
            if admission.allowed:
                RATE_LIMIT_WAIT.observe(time.monotonic() - start)
                return True
            wait = max(admission.retry_after, 0.001)
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                wait = min(wait, remaining)
            log.debug("dispatch_admission_wait", retry_after=round(wait, 3))
            self._stop.wait(wait)
        return False

    # -------------------- cycle de vie --------------------

    def start(self) -> None:
        self._stop.clear()

    def stop(self) -> None:
        """Réveille les workers suspendus sur l'admission et refuse les nouveaux claims."""
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()
