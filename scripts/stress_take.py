#!/usr/bin/env python3
"""
Drain a store with many concurrent worker processes and check that no
job was handed out more often than it had units.

Usage:
    python scripts/stress_take.py --db /tmp/stress.db --jobs 20 --count 50 --workers 8
"""

import argparse
import multiprocessing
import sys
from collections import Counter
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from jerbs.env import Settings
from jerbs.errors import NoJobsAvailable
from jerbs.store import JobStore


def drain(args):
    """Take until the queue is empty. Returns the ids taken, in order."""
    db_path, worker, busy_timeout = args
    taken = []
    with JobStore.open(db_path, Settings(busy_timeout=busy_timeout)) as store:
        while True:
            try:
                taken.append(store.take_next(worker).id)
            except NoJobsAvailable:
                return taken


def stress(db_path: Path, jobs: int, count: int, workers: int, busy_timeout: float) -> bool:
    """
    Fill a fresh store, drain it concurrently and compare.

    Returns True if every job was taken exactly `count` times.
    """
    print(f"Creating {jobs} jobs x {count} units in {db_path}...")
    with JobStore.init(db_path, Settings(busy_timeout=busy_timeout)) as store:
        expected = {store.create_job(f"job {i}".encode(), count): count for i in range(jobs)}

    print(f"Draining with {workers} worker processes...")
    tasks = [(str(db_path), f"worker-{n}", busy_timeout) for n in range(workers)]
    with multiprocessing.Pool(workers) as pool:
        results = pool.map(drain, tasks)

    per_job = Counter(job_id for ids in results for job_id in ids)
    for n, ids in enumerate(results):
        print(f"  worker-{n}: {len(ids)} units")

    ok = True
    over = {job_id: n for job_id, n in per_job.items() if n > expected.get(job_id, 0)}
    under = {job_id: n for job_id, n in expected.items() if per_job.get(job_id, 0) < n}
    if over:
        print(f"\n❌ OVER-ALLOCATED: {over}")
        ok = False
    if under:
        print(f"\n❌ UNDER-ALLOCATED: {under}")
        ok = False

    with JobStore.open(db_path) as store:
        leftover = store.list_available()
    if leftover:
        print(f"\n❌ Jobs still available after draining: {[job.id for job in leftover]}")
        ok = False

    if ok:
        print(f"\n✅ {sum(per_job.values())} units taken, exactly {count} per job")
    return ok


def main():
    parser = argparse.ArgumentParser(description="Concurrent take stress test")
    parser.add_argument("--db", required=True, help="Path for a new store (must not exist)")
    parser.add_argument("--jobs", type=int, default=20, help="Number of jobs (default 20)")
    parser.add_argument("--count", type=int, default=50, help="Units per job (default 50)")
    parser.add_argument("--workers", type=int, default=8, help="Worker processes (default 8)")
    parser.add_argument("--busy-timeout", type=float, default=60.0, help="SQLite lock timeout in seconds")
    args = parser.parse_args()

    ok = stress(Path(args.db), args.jobs, args.count, args.workers, args.busy_timeout)
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
