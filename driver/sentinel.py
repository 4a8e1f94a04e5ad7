"""
driver/sentinel.py

Completion sentinel — ends an autorun session once the task says it is done.
─────────────────────────────────────────────────────────────────────────────
The driven task signals completion by creating a marker file in the working
directory. The sentinel polls for it at a fixed interval (1 s by default).
On first sight it:

  1. deletes the marker, so a stale marker cannot end a later run,
  2. types the exit command into the CLI's terminal,
  3. waits a short grace period,
  4. reaps the CLI's process group (see driver/reaper.py),
  5. exits with status 0.

It runs as its own process (`python -m driver …`, see driver/__main__.py),
started and owned by SentinelProcess, so its kill sweep never depends on
the state of the orchestrator's I/O loop. If the marker never appears it
polls until the orchestrator stops it during cleanup.

Two concurrent autorun sessions in the same directory share the marker
path and race on it; that setup is not supported.
"""

import logging
import os
import select
import subprocess
import sys
import time
from pathlib import Path
from typing import Callable, List, Optional

from consent.state_store import StateStore

logger = logging.getLogger(__name__)

_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

EXIT_COMMAND = b"/exit\r"
TRIGGER_BYTE = b"!"

# Exit status of a sentinel that saw the marker and reaped the session.
SENTINEL_FIRED = 0


class CompletionSentinel:
    """
    Polls a StateStore for a marker key and fires once.

    Args:
        store      : Where the marker lives.
        marker_key : Key of the marker in *store*.
        on_trigger : Called once, after the marker was deleted.
        interval   : Seconds between polls.
        sleep      : Injected for tests.
    """

    def __init__(
        self,
        store: StateStore,
        marker_key: str,
        on_trigger: Callable[[], None],
        interval: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._key = marker_key
        self._on_trigger = on_trigger
        self._interval = interval
        self._sleep = sleep
        self.triggered = False

    def poll_once(self) -> bool:
        """Check for the marker; consume it and fire if present."""
        if self.triggered:
            return True
        if not self._store.exists(self._key):
            return False

        # Delete-on-read: only the poll that removes the marker fires.
        try:
            if not self._store.delete(self._key):
                return False
        except OSError as exc:
            # Seen but not removable (e.g. a non-empty directory); the
            # orchestrator retries the removal during cleanup.
            logger.warning("Could not remove completion marker '%s': %s", self._key, exc)
        self.triggered = True
        logger.info("Completion marker '%s' detected and consumed", self._key)
        self._on_trigger()
        return True

    def run(self, max_polls: Optional[int] = None) -> bool:
        """
        Poll until triggered. *max_polls* bounds the loop (tests only).

        Returns True if the sentinel fired.
        """
        polls = 0
        while not self.poll_once():
            polls += 1
            if max_polls is not None and polls >= max_polls:
                return False
            self._sleep(self._interval)
        return True


def notify_triggered(notify_fd: Optional[int]) -> None:
    """Tell the orchestrator the marker was consumed, before the sweep starts."""
    if notify_fd is None:
        return
    try:
        os.write(notify_fd, TRIGGER_BYTE)
        os.close(notify_fd)
    except OSError as exc:
        logger.debug("Could not notify orchestrator on fd %d: %s", notify_fd, exc)


def send_exit_command(tty_fd: Optional[int]) -> None:
    """Type the CLI's exit command into its terminal."""
    if tty_fd is None:
        return
    try:
        os.write(tty_fd, EXIT_COMMAND)
        logger.debug("Wrote exit command to fd %d", tty_fd)
    except OSError as exc:
        logger.warning("Could not write exit command to the CLI terminal: %s", exc)


class SentinelProcess:
    """
    Owns the sentinel subprocess for one autorun session.

    Use as a context manager so the watcher is stopped on every exit path:

        with SentinelProcess(marker, pgid=child_pid, tty_fd=master_fd) as watcher:
            ...
            if watcher.triggered():
                fired = watcher.fired(timeout=3.0)

    The watcher runs with the project root as its working directory, so a
    module in the operator's directory cannot shadow ours. A pipe inherited
    by the watcher carries a single byte once it consumed the marker.
    """

    def __init__(
        self,
        marker_path: Path,
        pgid: int,
        tty_fd: Optional[int] = None,
        interval: float = 1.0,
        grace: float = 2.0,
        target_name: Optional[str] = None,
        sweep_by_name: bool = False,
        python: str = sys.executable,
    ) -> None:
        self._marker_path = Path(marker_path).resolve()
        self._pgid = pgid
        self._tty_fd = tty_fd
        self._interval = interval
        self._grace = grace
        self._target_name = target_name
        self._sweep_by_name = sweep_by_name
        self._python = python
        self._process: Optional[subprocess.Popen] = None
        self._notify_r: Optional[int] = None
        self._notify_w: Optional[int] = None
        self._triggered = False

    def __enter__(self) -> "SentinelProcess":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process is not None else None

    def command(self) -> List[str]:
        cmd = [
            self._python, "-m", "driver",
            "--marker", str(self._marker_path),
            "--pgid", str(self._pgid),
            "--interval", str(self._interval),
            "--grace", str(self._grace),
        ]
        if self._tty_fd is not None:
            cmd.extend(["--tty-fd", str(self._tty_fd)])
        if self._notify_w is not None:
            cmd.extend(["--notify-fd", str(self._notify_w)])
        if self._target_name:
            cmd.extend(["--target-name", self._target_name])
        if self._sweep_by_name:
            cmd.append("--sweep-by-name")
        return cmd

    def start(self) -> None:
        env = dict(os.environ)
        env["PYTHONPATH"] = os.pathsep.join(
            p for p in (_PROJECT_ROOT, env.get("PYTHONPATH")) if p
        )
        self._notify_r, self._notify_w = os.pipe()
        pass_fds = [self._notify_w]
        if self._tty_fd is not None:
            pass_fds.append(self._tty_fd)
        try:
            self._process = subprocess.Popen(
                self.command(),
                stdin=subprocess.DEVNULL,
                pass_fds=tuple(pass_fds),
                cwd=_PROJECT_ROOT,
                env=env,
            )
        finally:
            # Only the watcher keeps the write end.
            os.close(self._notify_w)
            self._notify_w = None
        logger.debug("Sentinel started (PID %d) for %s", self._process.pid, self._marker_path)

    def triggered(self) -> bool:
        """True once the sentinel reported consuming the marker. Never blocks."""
        if self._triggered or self._notify_r is None:
            return self._triggered
        readable, _, _ = select.select([self._notify_r], [], [], 0)
        if readable and os.read(self._notify_r, 1) == TRIGGER_BYTE:
            self._triggered = True
        return self._triggered

    def fired(self, timeout: float = 0.0) -> bool:
        """True if the sentinel exited after consuming the marker."""
        if self._process is None:
            return False
        try:
            code = self._process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return False
        return code == SENTINEL_FIRED

    def stop(self) -> None:
        """Terminate the sentinel if it is still polling."""
        if self._notify_r is not None:
            os.close(self._notify_r)
            self._notify_r = None
        if self._process is None:
            return
        try:
            if self._process.poll() is None:
                self._process.terminate()
                self._process.wait(timeout=5)
                logger.debug("Sentinel terminated (PID %d)", self._process.pid)
        except subprocess.TimeoutExpired:
            self._process.kill()
            self._process.wait()
            logger.warning("Sentinel killed (PID %d)", self._process.pid)
        except ProcessLookupError:
            logger.debug("Sentinel process already exited")
