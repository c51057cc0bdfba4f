"""Pool de workers d'analyse en threads (mode `WORKER_MODE=threads`).

`concurrency` threads bouclent sur `AnalysisWorker.run_once`; un thread de maintenance reprend
les baux expirés et remet en file les soumissions `pending` orphelines.
"""

from __future__ import annotations

import threading

import structlog

log = structlog.get_logger(__name__)


class AnalysisWorkerPool:
    """Démarre/arrête les workers et la boucle de maintenance."""

    def __init__(
        self,
        worker_factory,
        dispatcher,
        orchestrator=None,
        concurrency: int = 4,
        poll_interval: float = 1.0,
        maintenance_interval: float = 30.0,
        recovery_grace: float = 60.0,
    ) -> None:
        self.worker_factory = worker_factory
        self.dispatcher = dispatcher
        self.orchestrator = orchestrator
        self.concurrency = max(1, int(concurrency))
        self.poll_interval = poll_interval
        self.maintenance_interval = maintenance_interval
        self.recovery_grace = recovery_grace
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self.dispatcher.start()
        for i in range(self.concurrency):
            worker = self.worker_factory(f"worker-{i}")
            t = threading.Thread(target=self._run_worker, args=(worker,), name=f"analysis-{i}", daemon=True)
            t.start()
            self._threads.append(t)
        m = threading.Thread(target=self._run_maintenance, name="analysis-maintenance", daemon=True)
        m.start()
        self._threads.append(m)
        log.info("worker_pool_started", concurrency=self.concurrency)

    def stop(self, timeout: float = 10.0) -> None:
        """Arrête les workers; un appel externe en cours se termine normalement."""
        self._stop.set()
        self.dispatcher.stop()
        for t in self._threads:
            t.join(timeout)
        self._threads = []
        log.info("worker_pool_stopped")

    def run_maintenance_once(self) -> dict[str, int]:
        reclaimed = self.dispatcher.reclaim_expired()
        recovered = 0
        if self.orchestrator is not None:
            recovered = self.orchestrator.recover_pending(self.recovery_grace)
        return {"reclaimed": reclaimed, "recovered": recovered}

    def _run_worker(self, worker) -> None:
        while not self._stop.is_set():
            try:
                worker.run_once(self.poll_interval)
            except Exception:
                # Échec du claim lui-même (store indisponible): on patiente puis on réessaie.
                log.exception("worker_loop_error", worker_id=worker.worker_id)
                self._stop.wait(self.poll_interval)

    def _run_maintenance(self) -> None:
        while not self._stop.wait(self.maintenance_interval):
            try:
                self.run_maintenance_once()
            except Exception:
                log.exception("worker_maintenance_error")
