"""
driver/reaper.py

Escalating termination for the driven CLI and everything it started.
─────────────────────────────────────────────────────────────────────
The driven CLI runs as a session leader (it was forked onto its own PTY),
so its process group id equals its pid and every descendant that did not
call setsid() itself is in that group. Reaping therefore targets the group:

  1. SIGTERM to the group.
  2. Poll for up to `grace` seconds for the group to disappear.
  3. SIGKILL to the group if anything is left.

Name matching is a last resort for descendants that escaped the group. It
runs `pkill -TERM -f <name>` then `pkill -KILL -f <name>` and is only used
when explicitly enabled or when the group could not be signalled at all.

Every step is best-effort: failures are recorded in the ReapReport and
logged, never raised. The caller always proceeds to cleanup.
"""

import logging
import os
import signal
import subprocess
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

_GROUP_POLL_INTERVAL = 0.1  # seconds


@dataclass
class ReapReport:
    """
    What the reaper did.

    Attributes:
        pgid          : Target process group id.
        terminated    : SIGTERM reached the group.
        killed        : SIGKILL was needed and reached the group.
        group_gone    : The group no longer exists afterwards.
        name_sweep    : The name-matching sweep ran.
        errors        : Human-readable failures, in order.
    """
    pgid: int
    terminated: bool = False
    killed: bool = False
    group_gone: bool = False
    name_sweep: bool = False
    errors: List[str] = field(default_factory=list)


def group_alive(pgid: int) -> bool:
    """True while at least one process in group *pgid* exists."""
    try:
        os.killpg(pgid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, but belongs to someone else.
        return True
    return True


def _signal_group(pgid: int, sig: signal.Signals, report: ReapReport) -> bool:
    try:
        os.killpg(pgid, sig)
    except ProcessLookupError:
        logger.debug("Process group %d already gone — skipping %s", pgid, sig.name)
        return False
    except PermissionError as exc:
        report.errors.append(f"{sig.name} to group {pgid}: {exc}")
        logger.error("Could not send %s to process group %d: %s", sig.name, pgid, exc)
        return False
    logger.debug("Sent %s to process group %d", sig.name, pgid)
    return True


def sweep_by_name(name: str, report: ReapReport) -> None:
    """Signal every process whose command line contains *name*."""
    report.name_sweep = True
    for sig in ("TERM", "KILL"):
        try:
            subprocess.run(
                ["pkill", f"-{sig}", "-f", name],
                capture_output=True,
                timeout=3,
            )
            logger.debug("pkill -%s -f %s", sig, name)
        except (OSError, subprocess.TimeoutExpired) as exc:
            report.errors.append(f"pkill -{sig} {name}: {exc}")
            logger.warning("Name sweep with pkill -%s failed: %s", sig, exc)


def reap(
    pgid: int,
    grace: float = 2.0,
    target_name: Optional[str] = None,
    sweep_by_name_enabled: bool = False,
    sleep: Callable[[float], None] = time.sleep,
) -> ReapReport:
    """
    Terminate process group *pgid*, escalating to SIGKILL after *grace*.

    Args:
        pgid                  : Process group to terminate.
        grace                 : Seconds to wait between SIGTERM and SIGKILL.
        target_name           : Command-line fragment for the name sweep.
        sweep_by_name_enabled : Always run the name sweep after the group.
        sleep                 : Injected for tests.

    Returns:
        A ReapReport; never raises.
    """
    report = ReapReport(pgid=pgid)

    if pgid <= 1:
        # killpg(0) or killpg(1) would hit our own group or init's.
        report.errors.append(f"refusing to signal process group {pgid}")
        logger.error("Refusing to reap process group %d", pgid)
    else:
        report.terminated = _signal_group(pgid, signal.SIGTERM, report)

        deadline = time.monotonic() + max(grace, 0.0)
        while group_alive(pgid) and time.monotonic() < deadline:
            sleep(_GROUP_POLL_INTERVAL)

        if group_alive(pgid):
            report.killed = _signal_group(pgid, signal.SIGKILL, report)
            sleep(_GROUP_POLL_INTERVAL)

        report.group_gone = not group_alive(pgid)

    unreachable = not report.terminated and not report.group_gone
    if target_name and (sweep_by_name_enabled or unreachable):
        logger.info("Falling back to name sweep for '%s'", target_name)
        sweep_by_name(target_name, report)

    logger.info(
        "Reaped process group %d | term=%s kill=%s gone=%s sweep=%s",
        pgid, report.terminated, report.killed, report.group_gone, report.name_sweep,
    )
    return report
