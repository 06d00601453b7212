#!/usr/bin/env python3
"""Main entry point for fleetrun."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .config import load_config, read_payload
from .errors import FleetRunError
from .executor import Executor
from .fleet import read_fleet
from .session import SessionRunner
from .sink import open_sink


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    logging.getLogger("asyncssh").setLevel(logging.WARNING)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Run one script on every host of a fleet over SSH"
    )
    parser.add_argument(
        "config",
        type=Path,
        nargs="?",
        default=Path("config.yaml"),
        help="Path to YAML configuration file (default: config.yaml)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help="Override the SSH connect timeout in seconds",
    )
    parser.add_argument(
        "--max-parallel",
        type=int,
        help="Limit the number of hosts running at once",
    )
    parser.add_argument(
        "--dashboard",
        action="store_true",
        help="Run with the TUI dashboard",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log session progress to stderr",
    )
    args = parser.parse_args(argv)

    if args.timeout is not None and args.timeout <= 0:
        parser.error("--timeout must be a positive number")
    if args.max_parallel is not None and args.max_parallel < 1:
        parser.error("--max-parallel must be at least 1")

    _setup_logging(args.verbose)

    # Everything that can fail fatally happens before any host is contacted
    try:
        settings = load_config(args.config)
        fleet = read_fleet(settings.fleet_file_path)
        payload = read_payload(settings.payload_script_path)
        console = None if args.dashboard else sys.stdout
        with open_sink(settings.log_file_path, console=console) as sink:
            runner = SessionRunner(
                connect_timeout=(
                    args.timeout if args.timeout is not None else settings.connect_timeout
                )
            )
            executor = Executor(
                sink,
                runner=runner,
                max_parallel=(
                    args.max_parallel
                    if args.max_parallel is not None
                    else settings.max_parallel
                ),
            )
            if args.dashboard:
                finished = _run_dashboard(executor, fleet, payload, settings.credential)
            else:
                executor.run(fleet, payload, settings.credential)
                finished = True
    except FleetRunError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not finished:
        print(f"\nRun interrupted. Partial results in: {settings.log_file_path}", file=sys.stderr)
        return 1

    print(f"\n✅ All tasks completed. See: {settings.log_file_path}")
    return 0


def _run_dashboard(executor: Executor, fleet, payload: str, credential: str) -> bool:
    """Run the executor inside the TUI dashboard. Returns False if the user quit early."""
    from .dashboard import Dashboard

    app = Dashboard(executor, fleet, payload, credential)
    app.run()

    failed = [frame.host_label for frame in app.frames if not frame.ok]
    if failed:
        print(f"\nFailed hosts: {', '.join(failed)}", file=sys.stderr)
    return app.run_finished


if __name__ == "__main__":
    sys.exit(main())
