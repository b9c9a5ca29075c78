"""Tests for the file-backed sliding-window rate limiter."""

import json
import multiprocessing
import sys
import threading

import pytest
from starlette.requests import Request

from contact_service.shared.contact.rate_limit import (
    RateLimitStore,
    RateLimitStoreUnavailable,
    SlidingWindowRateLimiter,
    get_client_ip,
)

NOW = 1_700_000_000
CLIENT = "203.0.113.7"


def _stored(store):
    return json.loads(store.path.read_text(encoding="utf-8"))


def test_store_created_lazily(store, limiter):
    assert not store.path.exists()
    assert limiter.admit(CLIENT, now=NOW)
    assert store.path.exists()
    assert _stored(store) == {CLIENT: [NOW]}


def test_admits_up_to_max_then_rejects(limiter):
    results = [limiter.admit(CLIENT, now=NOW + i) for i in range(5)]
    assert results == [True] * 5
    assert not limiter.admit(CLIENT, now=NOW + 5)


def test_rejection_does_not_record_event(store, limiter):
    for i in range(5):
        limiter.admit(CLIENT, now=NOW + i)
    assert not limiter.admit(CLIENT, now=NOW + 10)
    assert _stored(store)[CLIENT] == [NOW + i for i in range(5)]


def test_window_slides(limiter):
    for i in range(5):
        assert limiter.admit(CLIENT, now=NOW + i)

    # The oldest event is still inside the window exactly W seconds later
    assert not limiter.admit(CLIENT, now=NOW + 600)
    # One second later it is pruned, freeing exactly one slot
    assert limiter.admit(CLIENT, now=NOW + 601)
    assert not limiter.admit(CLIENT, now=NOW + 601)


def test_prunes_stale_events_on_access(store, limiter):
    store.path.parent.mkdir(parents=True)
    store.path.write_text(json.dumps({CLIENT: [NOW - 5000, NOW - 700, NOW - 10]}), encoding="utf-8")
    assert limiter.admit(CLIENT, now=NOW)
    assert _stored(store)[CLIENT] == [NOW - 10, NOW]


def test_clients_are_independent(limiter):
    for i in range(5):
        assert limiter.admit(CLIENT, now=NOW + i)
    assert not limiter.admit(CLIENT, now=NOW + 5)
    assert limiter.admit("198.51.100.1", now=NOW + 5)


def test_other_keys_are_preserved(store, limiter):
    limiter.admit("198.51.100.1", now=NOW)
    limiter.admit(CLIENT, now=NOW + 1)
    assert _stored(store) == {"198.51.100.1": [NOW], CLIENT: [NOW + 1]}


@pytest.mark.parametrize("contents", [
    b"{not json",
    b"[1, 2, 3]",
    b"",
    b"null",
    b'{"x": [1]}\xff\xfe',
    b"\x00\x81\xc3\x28",
])
def test_malformed_store_reads_as_empty(store, limiter, contents):
    store.path.parent.mkdir(parents=True)
    store.path.write_bytes(contents)
    assert limiter.admit(CLIENT, now=NOW)
    assert _stored(store) == {CLIENT: [NOW]}


def test_non_integer_entries_are_dropped(store, limiter):
    store.path.parent.mkdir(parents=True)
    store.path.write_text(json.dumps({CLIENT: ["x", None, 1.5, True, NOW - 1], "other": "junk"}), encoding="utf-8")
    assert limiter.admit(CLIENT, now=NOW)
    assert _stored(store)[CLIENT] == [NOW - 1, NOW]


def test_remaining_does_not_modify_store(store, limiter):
    assert limiter.remaining(CLIENT, now=NOW) == 5
    limiter.admit(CLIENT, now=NOW)
    limiter.admit(CLIENT, now=NOW + 1)
    before = store.path.read_text(encoding="utf-8")
    assert limiter.remaining(CLIENT, now=NOW + 2) == 3
    assert store.path.read_text(encoding="utf-8") == before


def test_remaining_propagates_lock_timeout(store):
    contender = RateLimitStore(store.path, lock_timeout=0.1, poll_interval=0.01)
    limiter = SlidingWindowRateLimiter(contender, window_seconds=600, max_requests=5)
    with store.locked():
        with pytest.raises(RateLimitStoreUnavailable):
            limiter.remaining(CLIENT, now=NOW)


def test_write_leaves_no_temp_files(store, limiter):
    for i in range(3):
        limiter.admit(CLIENT, now=NOW + i)
    names = sorted(p.name for p in store.path.parent.iterdir())
    assert names == ["rate_limit.json", "rate_limit.json.lock"]


def test_fails_open_when_lock_times_out(store):
    contender = RateLimitStore(store.path, lock_timeout=0.1, poll_interval=0.01)
    limiter = SlidingWindowRateLimiter(contender, window_seconds=600, max_requests=1)
    with store.locked():
        with pytest.raises(RateLimitStoreUnavailable):
            with contender.locked():
                pass
        # Would be rejected by the limit if the store were consulted
        assert limiter.admit(CLIENT, now=NOW)
        assert limiter.admit(CLIENT, now=NOW)


def test_fails_open_when_store_cannot_be_opened(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    limiter = SlidingWindowRateLimiter(RateLimitStore(blocker / "rate_limit.json"), max_requests=1)
    assert limiter.admit(CLIENT, now=NOW)
    assert limiter.admit(CLIENT, now=NOW)


def test_lock_is_released_after_use(store, limiter):
    limiter.admit(CLIENT, now=NOW)
    contender = RateLimitStore(store.path, lock_timeout=0.1, poll_interval=0.01)
    with contender.locked():
        pass


def test_concurrent_requests_for_last_slot_admit_exactly_one(store, limiter):
    for i in range(4):
        limiter.admit(CLIENT, now=NOW + i)

    barrier = threading.Barrier(2)
    results = []
    results_lock = threading.Lock()

    def worker():
        # Each thread uses its own store handle, like separate workers
        own = SlidingWindowRateLimiter(RateLimitStore(store.path, lock_timeout=5.0), max_requests=5)
        barrier.wait()
        allowed = own.admit(CLIENT, now=NOW + 10)
        with results_lock:
            results.append(allowed)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(results) == [False, True]
    assert len(_stored(store)[CLIENT]) == 5


def test_many_concurrent_threads_never_exceed_limit(store):
    barrier = threading.Barrier(20)
    results = []
    results_lock = threading.Lock()

    def worker():
        own = SlidingWindowRateLimiter(RateLimitStore(store.path, lock_timeout=10.0), max_requests=5)
        barrier.wait()
        allowed = own.admit(CLIENT, now=NOW)
        with results_lock:
            results.append(allowed)

    threads = [threading.Thread(target=worker) for _ in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 5
    assert _stored(store)[CLIENT] == [NOW] * 5


def _admit_in_process(path, queue):
    limiter = SlidingWindowRateLimiter(RateLimitStore(path, lock_timeout=10.0), max_requests=5)
    queue.put(limiter.admit(CLIENT, now=NOW))


@pytest.mark.skipif(sys.platform != "linux", reason="fork start method required")
def test_concurrent_processes_never_exceed_limit(store):
    ctx = multiprocessing.get_context("fork")
    queue = ctx.Queue()
    procs = [ctx.Process(target=_admit_in_process, args=(str(store.path), queue)) for _ in range(8)]
    for p in procs:
        p.start()
    results = [queue.get(timeout=30) for _ in procs]
    for p in procs:
        p.join(timeout=30)

    assert results.count(True) == 5
    assert len(_stored(store)[CLIENT]) == 5


def _request(headers=None, client=("192.0.2.10", 5000)):
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/api/contact",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


def test_client_ip_uses_connection_address():
    request = _request({"X-Forwarded-For": "1.2.3.4"})
    assert get_client_ip(request) == "192.0.2.10"


def test_client_ip_uses_forwarded_for_when_trusted():
    request = _request({"X-Forwarded-For": "1.2.3.4, 10.0.0.1"})
    assert get_client_ip(request, trust_forwarded_for=True) == "1.2.3.4"


def test_client_ip_unknown():
    assert get_client_ip(_request(client=None)) == "0.0.0.0"
