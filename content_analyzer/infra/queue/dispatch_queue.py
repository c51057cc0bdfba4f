"""File de dispatch en mémoire, à baux (leases).

Un seul `threading.Condition` sérialise toutes les opérations du processus. Les éléments prêts
ou différés sont rangés dans un tas trié par `not_before` (suppression paresseuse des entrées
périmées); les éléments réclamés passent dans `_leases` jusqu'à `ack`/`release`, ou jusqu'à
expiration du bail (`reclaim_expired`).
"""

from __future__ import annotations

import heapq
import itertools
import threading
import time
import uuid
from dataclasses import replace

from content_analyzer.domain.entities import DispatchItem


class InMemoryDispatchQueue:
    """File de dispatch mono-processus (mode `threads`)."""

    def __init__(self, clock=time.time) -> None:
        self._clock = clock
        self._cond = threading.Condition()
        self._items: dict[str, DispatchItem] = {}
        self._heap: list[tuple[float, int, str]] = []
        self._seq = itertools.count()
        self._leases: dict[str, DispatchItem] = {}

    def _schedule(self, item: DispatchItem) -> None:
        self._items[item.submission_id] = item
        heapq.heappush(self._heap, (item.not_before, next(self._seq), item.submission_id))
        self._cond.notify()

    def _peek_ready(self) -> tuple[DispatchItem | None, float | None]:
        """Return (ready item, None) or (None, seconds until the next delayed item)."""
        while self._heap:
            not_before, _, sid = self._heap[0]
            item = self._items.get(sid)
            if item is None or item.not_before != not_before:
                heapq.heappop(self._heap)
                continue
            wait = not_before - self._clock()
            if wait > 0:
                return None, wait
            heapq.heappop(self._heap)
            return item, None
        return None, None

    def push(self, item: DispatchItem) -> bool:
        """Ajoute un élément; False si la soumission est déjà en file ou réclamée."""
        with self._cond:
            sid = item.submission_id
            if sid in self._items or sid in self._leases:
                return False
            self._schedule(replace(item, worker_id=None, lease_token=None, lease_until=None))
            return True

    def claim(
        self, worker_id: str, lease_seconds: float, timeout: float | None = None
    ) -> DispatchItem | None:
        """Réclame le prochain élément prêt; attend au plus `timeout` secondes."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                item, wait = self._peek_ready()
                if item is not None:
                    del self._items[item.submission_id]
                    leased = item.leased(worker_id, uuid.uuid4().hex, self._clock() + lease_seconds)
                    self._leases[item.submission_id] = leased
                    return leased
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return None
                    wait = remaining if wait is None else min(wait, remaining)
                self._cond.wait(wait)

    def _owns(self, item: DispatchItem) -> bool:
        current = self._leases.get(item.submission_id)
        return (
            current is not None
            and item.lease_token is not None
            and current.lease_token == item.lease_token
        )

    def extend_lease(self, item: DispatchItem, lease_seconds: float) -> bool:
        """Prolonge le bail; False si le bail a été perdu (expiré puis repris)."""
        with self._cond:
            if not self._owns(item):
                return False
            self._leases[item.submission_id] = replace(
                self._leases[item.submission_id], lease_until=self._clock() + lease_seconds
            )
            return True

    def ack(self, item: DispatchItem) -> bool:
        """Retire définitivement l'élément réclamé."""
        with self._cond:
            if not self._owns(item):
                return False
            del self._leases[item.submission_id]
            self._cond.notify()
            return True

    def release(self, item: DispatchItem, delay: float = 0.0) -> bool:
        """Rend l'élément à la file, disponible après `delay` secondes.

        Les compteurs (`attempts`, `throttled`) de `item` sont conservés tels quels.
        """
        with self._cond:
            if not self._owns(item):
                return False
            del self._leases[item.submission_id]
            self._schedule(
                replace(
                    item,
                    not_before=self._clock() + max(0.0, delay),
                    worker_id=None,
                    lease_token=None,
                    lease_until=None,
                )
            )
            return True

    def reclaim_expired(self) -> int:
        """Remet en file les éléments dont le bail a expiré."""
        with self._cond:
            now = self._clock()
            expired = [i for i in self._leases.values() if (i.lease_until or 0) <= now]
            for leased in expired:
                del self._leases[leased.submission_id]
                self._schedule(
                    replace(leased, not_before=now, worker_id=None, lease_token=None, lease_until=None)
                )
            return len(expired)

    def contains(self, submission_id: str) -> bool:
        with self._cond:
            return submission_id in self._items or submission_id in self._leases

    def depth(self) -> int:
        """Nombre total d'éléments en attente (prêts + différés + réclamés)."""
        with self._cond:
            return len(self._items) + len(self._leases)

    def leased_count(self) -> int:
        with self._cond:
            return len(self._leases)
