import argparse
import os
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .env import LOG_LEVELS, Settings, get_settings
from .errors import InvalidArgument, JerbsError, NoJobsAvailable
from .listing import format_stable, format_verbose
from .logger import configure_logger, get_logger
from .retry import RetryError, exponential_backoff
from .store import JobStore

# argparse exits 2 on usage errors, the same status as an empty queue.
# Usage errors use EX_USAGE from sysexits instead.
EXIT_USAGE = 64


class _Parser(argparse.ArgumentParser):
    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(EXIT_USAGE, f"{self.prog}: error: {message}\n")


def _store_path(args: argparse.Namespace, settings: Settings) -> Path:
    if args.db is not None:
        return Path(args.db)
    if settings.db_path is not None:
        return settings.db_path
    raise InvalidArgument("No store path given. Pass --db or set JERBS_DB.")


def _write_bytes(data: bytes) -> None:
    sys.stdout.flush()
    sys.stdout.buffer.write(data)
    sys.stdout.buffer.flush()


def _payload(args: argparse.Namespace) -> Optional[bytes]:
    if args.data is None:
        return None
    # fsencode gives back the exact bytes of the argument, even undecodable ones
    return os.fsencode(args.data)


def cmd_init(args: argparse.Namespace, settings: Settings) -> None:
    path = Path(args.path) if args.path else _store_path(args, settings)
    JobStore.init(path, settings).close()


def cmd_create(args: argparse.Namespace, settings: Settings) -> None:
    payload = _payload(args)
    if payload is None:
        payload = sys.stdin.buffer.read()
    with JobStore.open(_store_path(args, settings), settings) as store:
        job_id = store.create_job(payload, args.count)
    print(job_id)


def cmd_edit(args: argparse.Namespace, settings: Settings) -> None:
    payload = _payload(args)
    if payload is None and args.count is None:
        raise InvalidArgument("Nothing to edit. Pass --count and/or --data.")
    with JobStore.open(_store_path(args, settings), settings) as store:
        store.edit_job(args.job_id, payload=payload, count=args.count)


def cmd_list_available(args: argparse.Namespace, settings: Settings) -> None:
    with JobStore.open(_store_path(args, settings), settings) as store:
        jobs = store.list_available()
    lines = format_verbose(jobs) if args.verbose else format_stable(jobs)
    for line in lines:
        print(line)


def cmd_take(args: argparse.Namespace, settings: Settings) -> None:
    with JobStore.open(_store_path(args, settings), settings) as store:
        if not args.wait:
            taken = store.take_next(args.worker)
        else:
            logger = get_logger()

            def on_retry(attempt, error, delay):
                logger.debug("Queue empty, waiting", worker=args.worker, attempt=attempt, delay=delay)

            take = exponential_backoff(
                max_retries=None,
                base_delay=settings.poll_interval,
                max_delay=settings.poll_max_interval,
                exceptions=(NoJobsAvailable,),
                on_retry=on_retry,
                timeout=args.timeout,
            )(store.take_next)
            try:
                taken = take(args.worker)
            except RetryError as e:
                raise NoJobsAvailable(f"No jobs available after waiting {args.timeout}s") from e
    _write_bytes(taken.payload)


def cmd_get_data(args: argparse.Namespace, settings: Settings) -> None:
    with JobStore.open(_store_path(args, settings), settings) as store:
        job = store.get_job(args.job_id)
    _write_bytes(job.payload)


def cmd_get_count(args: argparse.Namespace, settings: Settings) -> None:
    with JobStore.open(_store_path(args, settings), settings) as store:
        job = store.get_job(args.job_id)
    print(job.remaining_count)


def build_parser() -> argparse.ArgumentParser:
    parser = _Parser(prog="jerbs", description="Command-line work-stealing scheduler")
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--db", help="Path to the jobs store (default: $JERBS_DB)")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        help="Console log level on stderr (default: $JERBS_LOG_LEVEL or WARNING)",
    )

    subparsers = parser.add_subparsers(dest="command")

    ini = subparsers.add_parser("init", aliases=["new"], help="Create a new, empty jobs store")
    ini.add_argument("path", nargs="?", help="Where to create the store (overrides --db)")
    ini.set_defaults(func=cmd_init)

    cre = subparsers.add_parser("create", aliases=["new-job"], help="Define a job; prints its id")
    cre.add_argument("-c", "--count", type=int, required=True, help="Number of repetitions to enqueue")
    cre.add_argument("-d", "--data", help="Job data (default: read all of stdin)")
    cre.set_defaults(func=cmd_create)

    edt = subparsers.add_parser("edit", help="Change a job's data and/or remaining count")
    edt.add_argument("job_id", type=int, help="Job id")
    edt.add_argument("-c", "--count", type=int, help="New remaining count")
    edt.add_argument("-d", "--data", help="New job data")
    edt.set_defaults(func=cmd_edit)

    lst = subparsers.add_parser(
        "list-available",
        aliases=["list-jobs"],
        help="List jobs with remaining work: id, remaining count, escaped data (tab separated)",
    )
    lst.add_argument("-v", "--verbose", action="store_true", help="Human-readable output (format may change)")
    lst.set_defaults(func=cmd_list_available)

    tak = subparsers.add_parser(
        "take",
        help="Take one unit of work and print its data; exits 2 when no jobs are available",
    )
    tak.add_argument("worker", help="Any string identifying the worker taking the job")
    tak.add_argument("-w", "--wait", action="store_true", help="Poll until a job becomes available")
    tak.add_argument("--timeout", type=float, help="With --wait, give up after this many seconds")
    tak.set_defaults(func=cmd_take)

    gdt = subparsers.add_parser("get-data", help="Print the data of a job")
    gdt.add_argument("job_id", type=int, help="Job id")
    gdt.set_defaults(func=cmd_get_data)

    gct = subparsers.add_parser("get-count", help="Print the remaining count of a job")
    gct.add_argument("job_id", type=int, help="Job id")
    gct.set_defaults(func=cmd_get_count)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return 0

    if not hasattr(args, "func"):
        parser.print_help(sys.stderr)
        return EXIT_USAGE

    try:
        settings = get_settings()
    except JerbsError as e:
        print(f"jerbs: {e}", file=sys.stderr)
        return e.exit_code

    logger = configure_logger(args.log_level or settings.log_level, settings.log_dir)

    try:
        args.func(args, settings)
    except NoJobsAvailable as e:
        # routine for polling loops; the exit status says it all
        logger.debug(str(e), command=args.command)
        return e.exit_code
    except JerbsError as e:
        logger.record_error(type(e).__name__)
        print(f"jerbs: {e}", file=sys.stderr)
        return e.exit_code
    finally:
        logger.log_metrics_summary()

    return 0


if __name__ == "__main__":
    sys.exit(main())
