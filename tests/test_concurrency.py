"""
Tests for take under real multi-process contention.

Workers here are separate OS processes sharing nothing but the store file,
the same way independent `jerbs take` invocations do.
"""

import multiprocessing
import os
import signal
from collections import Counter

import pytest

from jerbs import allocation
from jerbs.env import Settings
from jerbs.errors import NoJobsAvailable, StoreAlreadyExists
from jerbs.store import JobStore

START_METHOD = "fork" if "fork" in multiprocessing.get_all_start_methods() else "spawn"
ctx = multiprocessing.get_context(START_METHOD)

PATIENT = Settings(busy_timeout=60.0)
RESULT_TIMEOUT = 120


def _drain(db_path, worker, barrier, results):
    barrier.wait()
    taken = []
    with JobStore.open(db_path, PATIENT) as store:
        while True:
            try:
                taken.append(store.take_next(worker).id)
            except NoJobsAvailable:
                break
    results.put((worker, taken))


def _watch(db_path, barrier, stop, results):
    """Keep listing while others take; report the smallest count seen."""
    barrier.wait()
    lowest = None
    snapshots = 0
    with JobStore.open(db_path, PATIENT) as store:
        while not stop.is_set() or snapshots == 0:
            for job in store.list_available():
                if lowest is None or job.remaining_count < lowest:
                    lowest = job.remaining_count
            snapshots += 1
    results.put(("watcher", lowest))


def _create_many(db_path, worker, barrier, results):
    barrier.wait()
    with JobStore.open(db_path, PATIENT) as store:
        ids = [store.create_job(f"{worker}-{i}".encode(), 1) for i in range(10)]
    results.put((worker, ids))


def _die_before_commit(db_path):
    store = JobStore.open(db_path, PATIENT)
    with store.transaction() as session:
        allocation.take_next(session)
        os._exit(0)


def _die_after_commit(db_path, sender):
    store = JobStore.open(db_path, PATIENT)
    taken = store.take_next("doomed")
    # a pipe write is done when send returns; a Queue would still be flushing
    sender.send(taken.payload)
    os._exit(0)


def _init_store(db_path, name, barrier, results):
    barrier.wait()
    try:
        JobStore.init(db_path, PATIENT).close()
    except StoreAlreadyExists:
        results.put((name, "exists"))
    else:
        results.put((name, "ok"))


def _hold_decrement(db_path, ready):
    store = JobStore.open(db_path, PATIENT)
    with store.transaction() as session:
        allocation.take_next(session)
        ready.set()
        signal.pause()


def _run(target, args_list):
    """Start one process per args tuple, all released by a shared barrier."""
    results = ctx.Queue()
    barrier = ctx.Barrier(len(args_list))
    procs = [ctx.Process(target=target, args=args + (barrier, results)) for args in args_list]
    for proc in procs:
        proc.start()
    collected = dict(results.get(timeout=RESULT_TIMEOUT) for _ in procs)
    for proc in procs:
        proc.join(timeout=RESULT_TIMEOUT)
        assert proc.exitcode == 0
    return collected


class TestConcurrentTake:
    """Concurrent takes never hand out more units than a job has."""

    def test_two_workers_share_seventeen_units(self, store, store_path, payload):
        store.create_job(payload, 17)

        taken = _run(_drain, [(str(store_path), "worker-a"), (str(store_path), "worker-b")])

        all_ids = taken["worker-a"] + taken["worker-b"]
        assert len(all_ids) == 17
        assert set(all_ids) == {1}
        assert store.get_job(1).remaining_count == 0
        assert store.list_available() == []

    def test_many_workers_many_jobs(self, store, store_path):
        counts = {}
        for count in (5, 11, 0, 7, 1, 23):
            counts[store.create_job(f"count {count}".encode(), count)] = count

        workers = [(str(store_path), f"worker-{n}") for n in range(6)]
        taken = _run(_drain, workers)

        per_job = Counter(job_id for ids in taken.values() for job_id in ids)
        assert per_job == Counter({job_id: c for job_id, c in counts.items() if c})
        for job_id in counts:
            assert store.get_job(job_id).remaining_count == 0

    def test_each_worker_sees_ids_in_order(self, store, store_path):
        """Oldest-first selection holds for every individual worker."""
        for _ in range(5):
            store.create_job(b"x", 4)

        taken = _run(_drain, [(str(store_path), f"w{n}") for n in range(3)])

        for ids in taken.values():
            assert ids == sorted(ids)

    def test_readers_never_see_negative_counts(self, store, store_path):
        store.create_job(b"x", 50)
        stop = ctx.Event()
        results = ctx.Queue()
        barrier = ctx.Barrier(3)
        watcher = ctx.Process(target=_watch, args=(str(store_path), barrier, stop, results))
        takers = [
            ctx.Process(target=_drain, args=(str(store_path), name, barrier, results))
            for name in ("a", "b")
        ]
        for proc in [watcher] + takers:
            proc.start()

        collected = {}
        for _ in takers:
            name, value = results.get(timeout=RESULT_TIMEOUT)
            collected[name] = value
        stop.set()
        name, lowest = results.get(timeout=RESULT_TIMEOUT)
        for proc in [watcher] + takers:
            proc.join(timeout=RESULT_TIMEOUT)

        assert len(collected["a"]) + len(collected["b"]) == 50
        assert lowest is None or lowest >= 1


class TestConcurrentCreate:
    """Ids stay unique and increasing under concurrent creates."""

    def test_ids_unique_across_processes(self, store, store_path):
        created = _run(_create_many, [(str(store_path), f"p{n}") for n in range(4)])

        all_ids = [job_id for ids in created.values() for job_id in ids]
        assert len(all_ids) == 40
        assert sorted(all_ids) == list(range(1, 41))
        for ids in created.values():
            assert ids == sorted(ids)


class TestConcurrentInit:
    """Racing inits on one path: exactly one creates the store."""

    @pytest.mark.parametrize("round_", range(5))
    def test_exactly_one_init_succeeds(self, tmp_path, round_):
        path = str(tmp_path / f"race-{round_}.db")

        outcomes = _run(_init_store, [(path, f"init-{n}") for n in range(4)])

        assert sorted(outcomes.values()) == ["exists", "exists", "exists", "ok"]
        with JobStore.open(path) as store:
            assert store.list_available() == []
            assert store.create_job(b"x", 1) == 1


class TestCrashConsistency:
    """A process dying mid-transaction leaves the previous state intact."""

    def test_exit_before_commit_keeps_count(self, store, store_path):
        store.create_job(b"x", 3)

        proc = ctx.Process(target=_die_before_commit, args=(str(store_path),))
        proc.start()
        proc.join(timeout=RESULT_TIMEOUT)

        assert store.get_job(1).remaining_count == 3
        # the dead process's lock is gone
        assert store.take_next("survivor").remaining_count == 2

    def test_exit_after_commit_keeps_decrement(self, store, store_path):
        store.create_job(b"delivered once", 3)
        receiver, sender = ctx.Pipe(duplex=False)

        proc = ctx.Process(target=_die_after_commit, args=(str(store_path), sender))
        proc.start()
        assert receiver.poll(RESULT_TIMEOUT)
        delivered = receiver.recv()
        proc.join(timeout=RESULT_TIMEOUT)

        assert delivered == b"delivered once"
        assert store.get_job(1).remaining_count == 2

    @pytest.mark.skipif(not hasattr(signal, "SIGKILL"), reason="needs SIGKILL")
    def test_killed_holding_write_lock(self, store, store_path):
        store.create_job(b"x", 1)
        ready = ctx.Event()

        proc = ctx.Process(target=_hold_decrement, args=(str(store_path), ready))
        proc.start()
        assert ready.wait(timeout=RESULT_TIMEOUT)
        os.kill(proc.pid, signal.SIGKILL)
        proc.join(timeout=RESULT_TIMEOUT)

        assert proc.exitcode == -signal.SIGKILL
        assert store.get_job(1).remaining_count == 1
        assert store.take_next("survivor").id == 1
