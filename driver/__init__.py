"""
driver — launches and supervises the patched Claude CLI.

Public API:
    Orchestrator        : One session: authorize, patch, launch, supervise.
    SessionState        : States of the session state machine.
    SessionResult       : Exit code and history of a finished session.
    StdinScript         : Timed input steps for autorun mode.
    build_stdin_script  : Builds the four-phase autorun input.
    CompletionSentinel  : Polls for the completion marker.
    SentinelProcess     : Owns the sentinel subprocess for a session.
    reap                : Escalating process-group termination.
"""

from .reaper import ReapReport, reap
from .sentinel import CompletionSentinel, SentinelProcess
from .stdin_script import ScriptStep, StdinScript, build_stdin_script
from .tty_driver import BYPASS_FLAG, Orchestrator, SessionResult, SessionState, with_bypass_flag

__all__ = [
    "Orchestrator",
    "SessionState",
    "SessionResult",
    "BYPASS_FLAG",
    "with_bypass_flag",
    "StdinScript",
    "ScriptStep",
    "build_stdin_script",
    "CompletionSentinel",
    "SentinelProcess",
    "ReapReport",
    "reap",
]
