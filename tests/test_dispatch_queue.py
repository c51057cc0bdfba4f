"""Tests de la file de dispatch en mémoire (baux, délais, dédoublonnage)."""

import threading
import time

from content_analyzer.domain.entities import DispatchItem
from content_analyzer.infra.queue.dispatch_queue import InMemoryDispatchQueue
from fakes import FakeClock


def test_push_claim_ack():
    q = InMemoryDispatchQueue()
    assert q.push(DispatchItem("a"))
    assert q.depth() == 1
    item = q.claim("w1", lease_seconds=30, timeout=0)
    assert item.submission_id == "a"
    assert item.worker_id == "w1" and item.lease_token
    assert q.depth() == 1 and q.leased_count() == 1
    assert q.ack(item)
    assert q.depth() == 0
    assert q.claim("w1", 30, timeout=0) is None


def test_push_is_deduplicated_while_queued_or_leased():
    q = InMemoryDispatchQueue()
    assert q.push(DispatchItem("a"))
    assert not q.push(DispatchItem("a"))
    item = q.claim("w", 30, timeout=0)
    assert not q.push(DispatchItem("a"))
    assert q.contains("a")
    q.ack(item)
    assert not q.contains("a")
    assert q.push(DispatchItem("a"))


def test_claim_is_exclusive_across_threads():
    q = InMemoryDispatchQueue()
    for i in range(50):
        q.push(DispatchItem(f"s{i}"))
    claimed: list[str] = []
    lock = threading.Lock()

    def worker(name):
        while True:
            item = q.claim(name, 30, timeout=0)
            if item is None:
                return
            with lock:
                claimed.append(item.submission_id)

    threads = [threading.Thread(target=worker, args=(f"w{i}",)) for i in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert sorted(claimed) == sorted(f"s{i}" for i in range(50))


def test_delayed_item_not_claimable_before_not_before():
    clock = FakeClock()
    q = InMemoryDispatchQueue(clock=clock)
    q.push(DispatchItem("late", not_before=clock.now + 10))
    q.push(DispatchItem("now", not_before=clock.now))
    assert q.claim("w", 30, timeout=0).submission_id == "now"
    assert q.claim("w", 30, timeout=0) is None
    clock.advance(10)
    assert q.claim("w", 30, timeout=0).submission_id == "late"


def test_release_requeues_with_delay_and_counters():
    clock = FakeClock()
    q = InMemoryDispatchQueue(clock=clock)
    q.push(DispatchItem("a"))
    item = q.claim("w", 30, timeout=0)
    item.attempts = 2
    assert q.release(item, delay=5)
    assert q.claim("w", 30, timeout=0) is None
    clock.advance(5)
    again = q.claim("w", 30, timeout=0)
    assert again.attempts == 2
    assert again.lease_token != item.lease_token


def test_stale_token_cannot_mutate():
    clock = FakeClock()
    q = InMemoryDispatchQueue(clock=clock)
    q.push(DispatchItem("a"))
    first = q.claim("w1", lease_seconds=10, timeout=0)
    clock.advance(11)
    assert q.reclaim_expired() == 1
    second = q.claim("w2", lease_seconds=10, timeout=0)
    assert second.submission_id == "a"
    # Le premier worker a perdu son bail
    assert not q.extend_lease(first, 10)
    assert not q.ack(first)
    assert not q.release(first, 0)
    assert q.extend_lease(second, 10)
    assert q.ack(second)
    assert q.depth() == 0


def test_reclaim_ignores_live_leases():
    clock = FakeClock()
    q = InMemoryDispatchQueue(clock=clock)
    q.push(DispatchItem("a"))
    item = q.claim("w", lease_seconds=10, timeout=0)
    clock.advance(5)
    assert q.reclaim_expired() == 0
    assert q.extend_lease(item, 10)
    clock.advance(8)
    assert q.reclaim_expired() == 0


def test_blocking_claim_wakes_on_push():
    q = InMemoryDispatchQueue()
    got: list = []
    t = threading.Thread(target=lambda: got.append(q.claim("w", 30, timeout=2)))
    t.start()
    time.sleep(0.05)
    q.push(DispatchItem("x"))
    t.join(2)
    assert got and got[0].submission_id == "x"


def test_blocking_claim_times_out():
    q = InMemoryDispatchQueue()
    start = time.monotonic()
    assert q.claim("w", 30, timeout=0.1) is None
    assert time.monotonic() - start >= 0.09
