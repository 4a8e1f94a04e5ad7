"""
driver/tty_driver.py

Orchestrator — patches the Claude CLI and drives it to completion.
───────────────────────────────────────────────────────────────────
One Orchestrator.run() call is one session. The session moves through:

    IDLE → AUTHORIZING → PATCHING → LAUNCHING → RUNNING
         → COMPLETING | FORCE_TERMINATING → CLEANUP → DONE
    (any failure: … → CLEANUP → FAILED)

Two ways of running the patched CLI:

  Interactive : the CLI inherits our terminal. We block until it exits and
                mirror its exit code.

  Autorun     : engaged when the autorun payload file exists in the working
                directory. The CLI is forked onto a pseudo-terminal (it
                becomes a session leader, so its process group is exactly
                its own descendants). The parent proxies PTY output to
                stdout, forwards operator keystrokes when stdin is a TTY,
                and writes the timed stdin script into the PTY. A sentinel
                process watches for the completion marker and, when it
                appears, types the exit command and reaps the CLI's process
                group.

Every session-scoped artifact is registered on an ExitStack and released on
every path: the completion marker is removed, the sentinel is stopped, the
PTY is closed and a still-running child is reaped. The patched artifact is
never removed; it is the cache for the next run.
"""

import fcntl
import logging
import os
import pty
import select
import shutil
import subprocess
import sys
import termios
import time
import tty
from contextlib import ExitStack
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from colorama import Fore, Style

from consent.gate import ConsentGate, ConsentMode
from consent.state_store import FileStateStore
from errors import ConsentDeclined, LaunchError, PatchError, YoloError
from installation import Installation
from patch_engine.engine import PatchEngine
from settings import YoloSettings

from .reaper import reap
from .sentinel import SentinelProcess
from .stdin_script import StdinScript, build_stdin_script, read_payload

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────────────────────────────────────

BYPASS_FLAG = "--dangerously-skip-permissions"

EXIT_INTERNAL_ERROR = 1
EXIT_TERMINATED_BY_WATCHER = 0
EXIT_INTERRUPTED = 130  # 128 + SIGINT

_PTY_READ_SIZE = 4096
_PTY_WRITE_CHUNK = 1024
_SELECT_TIMEOUT = 0.05

_INFO   = f"{Fore.CYAN}{Style.BRIGHT}"
_WARN   = f"{Fore.YELLOW}{Style.BRIGHT}"
_ERROR  = f"{Fore.RED}{Style.BRIGHT}"
_RESET  = Style.RESET_ALL

_TAG = f"{_INFO}[claude-yolo]{_RESET}"


class SessionState(Enum):
    IDLE = "idle"
    AUTHORIZING = "authorizing"
    PATCHING = "patching"
    LAUNCHING = "launching"
    RUNNING = "running"
    COMPLETING = "completing"
    FORCE_TERMINATING = "force_terminating"
    CLEANUP = "cleanup"
    DONE = "done"
    FAILED = "failed"


@dataclass
class SessionResult:
    """
    Final status of one session.

    Attributes:
        exit_code             : Code to exit the wrapper with.
        terminated_by_watcher : The sentinel ended the session.
        history               : Every state the session passed through.
    """
    exit_code: int
    terminated_by_watcher: bool = False
    history: List[SessionState] = field(default_factory=list)


def with_bypass_flag(args: List[str], position: str = "prepend") -> List[str]:
    """Return *args* with BYPASS_FLAG injected unless already present."""
    args = list(args)
    if BYPASS_FLAG in args:
        return args
    if position == "append":
        return args + [BYPASS_FLAG]
    return [BYPASS_FLAG] + args


def exit_code_from_status(status: int) -> int:
    """Map a waitpid() status to a shell-style exit code."""
    if os.WIFEXITED(status):
        return os.WEXITSTATUS(status)
    if os.WIFSIGNALED(status):
        return 128 + os.WTERMSIG(status)
    return EXIT_INTERNAL_ERROR


def exit_code_from_returncode(returncode: int) -> int:
    """Map a Popen returncode (negative for signals) to a shell-style code."""
    if returncode < 0:
        return 128 - returncode
    return returncode


class Orchestrator:
    """
    Runs one claude-yolo session against a resolved installation.

    Args:
        installation  : The Claude CLI to patch and drive.
        settings      : Resolved YoloSettings.
        consent_gate  : Defaults to a file-backed ConsentGate.
        patch_engine  : Defaults to PatchEngine with the default rules.
        cwd           : Directory holding the autorun payload and the
                        completion marker. Defaults to os.getcwd().
        force_repatch : Rebuild the artifact even if it looks current
                        (set after the CLI was updated).
    """

    def __init__(
        self,
        installation: Installation,
        settings: Optional[YoloSettings] = None,
        consent_gate: Optional[ConsentGate] = None,
        patch_engine: Optional[PatchEngine] = None,
        cwd: Optional[Path] = None,
        force_repatch: bool = False,
    ) -> None:
        self._installation = installation
        self._settings = settings or YoloSettings()
        self._gate = consent_gate or ConsentGate()
        self._engine = patch_engine or PatchEngine()
        self._cwd = Path(cwd or os.getcwd())
        self._force_repatch = force_repatch
        self._marker_store = FileStateStore(self._cwd)

        self._state = SessionState.IDLE
        self._history: List[SessionState] = []

        # Set once the autorun child is forked.
        self._child_pid: Optional[int] = None
        self._child_fd: Optional[int] = None
        self._child_reaped = False
        self._pending_input = bytearray()

    # ── Public API ────────────────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def history(self) -> List[SessionState]:
        return list(self._history)

    @property
    def payload_path(self) -> Path:
        return self._cwd / self._settings.autorun_file

    @property
    def marker_path(self) -> Path:
        return self._cwd / self._settings.done_file

    def run(self, args: List[str]) -> SessionResult:
        """
        Authorize, patch, launch and supervise the CLI with *args*.

        Never raises for expected failures; they are reported and mapped to
        EXIT_INTERNAL_ERROR.
        """
        self._history = []
        self._transition(SessionState.IDLE)
        payload = read_payload(self.payload_path)
        if payload is not None:
            logger.debug("Autorun payload found at %s (%d bytes)", self.payload_path, len(payload))

        session = ExitStack()
        try:
            result = self._run_session(args, payload, session)
        except YoloError as exc:
            self._close_session(session)
            self._transition(SessionState.FAILED)
            if not isinstance(exc, ConsentDeclined):
                print(f"{_TAG} {_ERROR}Error: {exc}{_RESET}", file=sys.stderr)
            return SessionResult(exc.exit_code, history=self.history)
        except BaseException:
            self._close_session(session)
            self._transition(SessionState.FAILED)
            raise

        self._close_session(session)
        self._transition(SessionState.DONE)
        result.history = self.history
        return result

    def build_command(self, args: List[str]) -> List[str]:
        """The full argv for the patched CLI, bypass flag included."""
        node = shutil.which(self._settings.node_bin)
        if node is None:
            raise LaunchError(
                f"'{self._settings.node_bin}' not found on PATH. "
                "Node.js is required to run the Claude CLI."
            )
        argv = with_bypass_flag(args, self._settings.flag_position)
        logger.debug("Added %s flag to command line arguments", BYPASS_FLAG)
        return [node, str(self._installation.patched_path), *argv]

    # ── Session phases ────────────────────────────────────────────────────────

    def _run_session(self, args: List[str], payload: Optional[bytes], session: ExitStack) -> SessionResult:
        autorun = payload is not None
        if autorun:
            # A marker left by an earlier run must not end this one.
            self._discard_marker()
            session.callback(self._discard_marker)

        self._transition(SessionState.AUTHORIZING)
        consent_requested = self._authorize(autorun)

        self._transition(SessionState.PATCHING)
        self._patch(consent_requested)

        self._transition(SessionState.LAUNCHING)
        command = self.build_command(args)

        if not autorun:
            return SessionResult(self._run_interactive(command))
        return self._run_autorun(command, payload, session)

    def _authorize(self, autorun: bool) -> bool:
        """Pass the consent gate. Returns True if consent was just requested."""
        if not self._gate.needs_consent(self._installation):
            return False

        mode = ConsentMode.PROMPT
        if autorun and self._settings.autorun_consent == "auto":
            mode = ConsentMode.AUTO_APPROVE

        if not self._gate.request_consent(mode):
            raise ConsentDeclined("Consent not given")
        self._gate.persist(self._installation, mode)
        return True

    def _patch(self, consent_requested: bool) -> None:
        stale = self._engine.needs_repatch(self._installation)
        if consent_requested or self._force_repatch or stale:
            try:
                self._engine.write_artifact(self._installation)
            except PatchError:
                raise
            except Exception as exc:
                raise PatchError(f"Unexpected error while patching: {exc}") from exc
        else:
            logger.debug("Reusing patched CLI at %s", self._installation.patched_path)
        print(f"{_WARN}🔥 YOLO MODE ACTIVATED 🔥{_RESET}")

    # ── Interactive mode ──────────────────────────────────────────────────────

    def _run_interactive(self, command: List[str]) -> int:
        try:
            process = subprocess.Popen(command)
        except OSError as exc:
            raise LaunchError(f"Error launching Claude CLI: {exc}") from exc

        self._transition(SessionState.RUNNING)
        try:
            returncode = process.wait()
        except KeyboardInterrupt:
            # The child shares our process group and got the SIGINT too.
            try:
                process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait()
            self._transition(SessionState.COMPLETING)
            return EXIT_INTERRUPTED

        self._transition(SessionState.COMPLETING)
        return exit_code_from_returncode(returncode)

    # ── Autorun mode ──────────────────────────────────────────────────────────

    def _run_autorun(self, command: List[str], payload: bytes, session: ExitStack) -> SessionResult:
        script = build_stdin_script(
            payload,
            settle_delay=self._settings.settle_delay,
            trailing_delay=self._settings.trailing_delay,
        )

        self._child_reaped = False
        self._pending_input = bytearray()
        try:
            pid, fd = pty.fork()
        except OSError as exc:
            raise LaunchError(f"Failed to fork PTY: {exc}") from exc

        if pid == 0:
            self._exec_child(command)

        self._child_pid, self._child_fd = pid, fd
        session.callback(self._close_child_fd)
        session.callback(self._reap_child_if_running)
        logger.debug("Claude CLI started on PTY (PID %d)", pid)

        watcher = session.enter_context(
            SentinelProcess(
                self.marker_path,
                pgid=pid,
                tty_fd=fd,
                interval=self._settings.poll_interval,
                grace=self._settings.kill_grace,
                target_name=self._installation.patched_path.name,
                sweep_by_name=self._settings.sweep_by_name,
            )
        )

        self._transition(SessionState.RUNNING)
        exit_code = self._run_proxy(script)

        if self._watcher_fired(watcher):
            self._transition(SessionState.FORCE_TERMINATING)
            reap(
                pid,
                grace=self._settings.kill_grace,
                target_name=self._installation.patched_path.name,
                sweep_by_name_enabled=self._settings.sweep_by_name,
            )
            print(f"\n{_TAG} Task signalled completion; session terminated.")
            return SessionResult(EXIT_TERMINATED_BY_WATCHER, terminated_by_watcher=True)

        self._transition(SessionState.COMPLETING)
        return SessionResult(exit_code)

    def _watcher_fired(self, watcher: SentinelProcess) -> bool:
        """
        Whether the sentinel ended the session. Waits only while a trigger
        can still be in flight: the marker was consumed and the sweep is
        running, or the marker exists and has not been polled yet.
        """
        if watcher.triggered():
            return watcher.fired(timeout=self._settings.kill_grace + 1.0)
        if self._marker_store.exists(self._settings.done_file):
            return watcher.fired(
                timeout=self._settings.poll_interval + self._settings.kill_grace + 1.0
            )
        return watcher.fired(timeout=0)

    def _exec_child(self, command: List[str]) -> None:
        """
        Replace the forked child with the patched CLI. Never returns.
        """
        try:
            os.execv(command[0], command)
        except OSError as exc:
            sys.stderr.write(f"\n[claude-yolo] ERROR: could not start {command[0]}: {exc}\n")
            sys.stderr.flush()
        os._exit(127)

    def _run_proxy(self, script: StdinScript) -> int:
        """
        Proxy I/O between our terminal and the child PTY until it closes.
        Saves and restores terminal state around the raw-mode session.
        """
        stdin_fd = self._interactive_stdin()
        original_term_settings = None
        if stdin_fd is not None:
            original_term_settings = termios.tcgetattr(stdin_fd)
            self._copy_window_size(stdin_fd)

        try:
            if original_term_settings is not None:
                tty.setraw(stdin_fd)
                # setraw() clears OPOST; keep \n → \r\n for our own prints.
                attrs = termios.tcgetattr(stdin_fd)
                attrs[1] |= termios.OPOST | termios.ONLCR
                termios.tcsetattr(stdin_fd, termios.TCSANOW, attrs)
            self._io_loop(stdin_fd, script)
        except OSError as exc:
            logger.error("Proxy loop error: %s", exc, exc_info=True)
        finally:
            if original_term_settings is not None:
                try:
                    termios.tcsetattr(stdin_fd, termios.TCSADRAIN, original_term_settings)
                except termios.error:
                    pass  # stdin may have been closed already

        return self._wait_for_child()

    def _io_loop(self, stdin_fd: Optional[int], script: StdinScript) -> None:
        """
        select()-based loop. Returns when the child PTY closes.

          • script      → child PTY : timed writes as steps fall due.
          • stdin       → child PTY : operator keystrokes (TTY only).
          • child PTY   → stdout    : everything the CLI prints.
        """
        started = time.monotonic()
        while True:
            for step in script.due(time.monotonic() - started):
                self._pending_input.extend(step.data)
                logger.debug("Queued '%s' step (%d bytes)", step.phase, len(step.data))

            read_list = [self._child_fd]
            if stdin_fd is not None:
                read_list.append(stdin_fd)
            write_list = [self._child_fd] if self._pending_input else []

            try:
                read_fds, write_fds, _ = select.select(read_list, write_list, [], _SELECT_TIMEOUT)
            except (ValueError, OSError):
                # Descriptor closed; the child has exited.
                break

            if write_fds:
                written = os.write(self._child_fd, bytes(self._pending_input[:_PTY_WRITE_CHUNK]))
                del self._pending_input[:written]

            if stdin_fd is not None and stdin_fd in read_fds:
                user_input = os.read(stdin_fd, 1024)
                if user_input:
                    self._pending_input.extend(user_input)
                else:
                    stdin_fd = None

            if self._child_fd in read_fds:
                try:
                    data = os.read(self._child_fd, _PTY_READ_SIZE)
                except OSError:
                    # EIO: every slave end is closed, the CLI has exited.
                    break
                if not data:
                    break
                sys.stdout.buffer.write(data)
                sys.stdout.buffer.flush()

    @staticmethod
    def _interactive_stdin() -> Optional[int]:
        try:
            fd = sys.stdin.fileno()
        except (AttributeError, ValueError, OSError):
            return None
        return fd if os.isatty(fd) else None

    def _copy_window_size(self, stdin_fd: int) -> None:
        try:
            size = fcntl.ioctl(stdin_fd, termios.TIOCGWINSZ, b"\0" * 8)
            fcntl.ioctl(self._child_fd, termios.TIOCSWINSZ, size)
        except OSError as exc:
            logger.debug("Could not copy terminal size to PTY: %s", exc)

    def _wait_for_child(self) -> int:
        """Reap the child process and return its exit code."""
        try:
            _, status = os.waitpid(self._child_pid, 0)
        except ChildProcessError:
            self._child_reaped = True
            return 0
        self._child_reaped = True
        return exit_code_from_status(status)

    # ── Cleanup ───────────────────────────────────────────────────────────────

    def _discard_marker(self) -> None:
        try:
            if self._marker_store.delete(self._settings.done_file):
                logger.debug("Removed completion marker %s", self.marker_path)
        except OSError as exc:
            logger.warning("Could not remove completion marker %s: %s", self.marker_path, exc)

    def _close_child_fd(self) -> None:
        if self._child_fd is None:
            return
        try:
            os.close(self._child_fd)
        except OSError:
            pass
        self._child_fd = None

    def _reap_child_if_running(self) -> None:
        """Kill and collect the CLI if the session is ending without it."""
        if self._child_pid is None or self._child_reaped:
            return
        try:
            pid, _ = os.waitpid(self._child_pid, os.WNOHANG)
        except ChildProcessError:
            self._child_reaped = True
            return
        if pid == 0:
            logger.warning("Claude CLI (PID %d) still running at cleanup; reaping", self._child_pid)
            reap(self._child_pid, grace=self._settings.kill_grace)
            try:
                os.waitpid(self._child_pid, 0)
            except ChildProcessError:
                pass
        self._child_reaped = True

    def _close_session(self, session: ExitStack) -> None:
        self._transition(SessionState.CLEANUP)
        try:
            session.close()
        except Exception as exc:
            # Cleanup must never mask the session's own result.
            logger.warning("Cleanup failed: %s", exc, exc_info=True)

    def _transition(self, state: SessionState) -> None:
        logger.debug("Session state: %s → %s", self._state.value, state.value)
        self._state = state
        self._history.append(state)
