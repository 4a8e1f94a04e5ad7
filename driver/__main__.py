"""
driver/__main__.py

Entry point of the sentinel watcher process:

    python -m driver --marker PATH --pgid N [--tty-fd FD] [--notify-fd FD]
                     [--interval S] [--grace S] [--target-name NAME]
                     [--sweep-by-name]

Started by SentinelProcess; not meant to be run by hand.
"""

import argparse
import os
import sys
import time
from pathlib import Path
from typing import Callable, List, Optional

from consent.state_store import FileStateStore
from driver.reaper import reap
from driver.sentinel import (
    SENTINEL_FIRED,
    CompletionSentinel,
    notify_triggered,
    send_exit_command,
)
from settings import configure_logging


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="claude-yolo-sentinel",
        description="Watch for the autorun completion marker and end the session.",
    )
    parser.add_argument("--marker", required=True, help="Path of the completion marker.")
    parser.add_argument("--pgid", required=True, type=int, help="Process group to reap.")
    parser.add_argument("--tty-fd", type=int, default=None,
                        help="Inherited fd of the CLI's terminal (PTY master).")
    parser.add_argument("--notify-fd", type=int, default=None,
                        help="Inherited pipe fd written to once the marker is consumed.")
    parser.add_argument("--interval", type=float, default=1.0)
    parser.add_argument("--grace", type=float, default=2.0)
    parser.add_argument("--target-name", default=None,
                        help="Command-line fragment for the last-resort name sweep.")
    parser.add_argument("--sweep-by-name", action="store_true", default=False)
    return parser


def main(argv: Optional[List[str]] = None, sleep: Callable[[float], None] = time.sleep) -> int:
    args = build_arg_parser().parse_args(argv)

    marker = Path(args.marker)

    def _finish_session() -> None:
        notify_triggered(args.notify_fd)
        send_exit_command(args.tty_fd)
        sleep(args.grace)
        reap(
            args.pgid,
            grace=args.grace,
            target_name=args.target_name,
            sweep_by_name_enabled=args.sweep_by_name,
        )

    sentinel = CompletionSentinel(
        FileStateStore(marker.parent),
        marker.name,
        _finish_session,
        interval=args.interval,
        sleep=sleep,
    )
    sentinel.run()
    return SENTINEL_FIRED


if __name__ == "__main__":
    configure_logging(bool(os.environ.get("DEBUG")))
    sys.exit(main())
