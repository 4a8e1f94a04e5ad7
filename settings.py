"""
settings.py

Environment-driven configuration for claude-yolo.
──────────────────────────────────────────────────
The wrapper forwards every command-line argument to the driven CLI, so it
has no flags of its own. All knobs come from environment variables,
optionally seeded from a `.env` file next to the entry script.

Variables
─────────
  DEBUG                         Any non-empty value enables verbose tracing.
  CLAUDE_YOLO_INSTALL_DIR       Use this Claude installation directory.
  CLAUDE_YOLO_NODE              Node.js binary used to run the patched CLI.
  CLAUDE_YOLO_AUTORUN_FILE      Payload file whose presence engages autorun.
  CLAUDE_YOLO_DONE_FILE         Completion marker written by the driven task.
  CLAUDE_YOLO_SETTLE_DELAY      Seconds between the ack and the payload.
  CLAUDE_YOLO_TRAILING_DELAY    Seconds between the payload and the final CR.
  CLAUDE_YOLO_POLL_INTERVAL     Completion marker polling interval.
  CLAUDE_YOLO_KILL_GRACE        Seconds between polite and forceful kill.
  CLAUDE_YOLO_SWEEP_BY_NAME     Also kill processes matched by name.
  CLAUDE_YOLO_FLAG_POSITION     "prepend" (default) or "append".
  CLAUDE_YOLO_AUTORUN_CONSENT   "auto" (default) or "prompt".
  CLAUDE_YOLO_SKIP_UPDATE       Skip the npm registry update check.
"""

import logging
import os
import sys
from dataclasses import dataclass
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

_PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))

_TRUE_VALUES = {"1", "true", "yes", "on"}


def load_dotenv_file(path: Optional[str] = None) -> None:
    """Load a `.env` file into os.environ without overriding real variables."""
    from dotenv import load_dotenv

    load_dotenv(path or os.path.join(_PROJECT_ROOT, ".env"), override=False)


def configure_logging(debug: bool) -> None:
    """
    Verbose tracing goes to stdout when DEBUG is set; otherwise only
    warnings and errors reach stderr.
    """
    logging.basicConfig(
        stream=sys.stdout if debug else sys.stderr,
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _flag(env: Mapping[str, str], name: str) -> bool:
    return env.get(name, "").strip().lower() in _TRUE_VALUES


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r (using %s)", name, raw, default)
        return default


def _choice(env: Mapping[str, str], name: str, choices: tuple, default: str) -> str:
    raw = env.get(name, "").strip().lower()
    if not raw:
        return default
    if raw not in choices:
        logger.warning("Ignoring %s=%r (expected one of %s)", name, raw, ", ".join(choices))
        return default
    return raw


@dataclass(frozen=True)
class YoloSettings:
    """
    Resolved configuration for a single claude-yolo run.

    Attributes:
        debug             : Verbose internal tracing to stdout.
        install_dir       : Explicit Claude installation directory, if any.
        node_bin          : Node.js executable used to run the patched CLI.
        autorun_file      : Name of the autorun payload file in the cwd.
        done_file         : Name of the completion marker file in the cwd.
        settle_delay      : Delay after the affirmative token (seconds).
        trailing_delay    : Delay after the payload (seconds).
        poll_interval     : Completion marker polling interval (seconds).
        kill_grace        : Grace period before escalating to SIGKILL.
        sweep_by_name     : Also reap processes whose command line names
                            the patched artifact.
        flag_position     : Where the bypass flag is injected.
        autorun_consent   : "auto" synthesises consent under autorun,
                            "prompt" always asks the operator.
        skip_update       : Do not contact the npm registry.
    """
    debug: bool = False
    install_dir: Optional[str] = None
    node_bin: str = "node"
    autorun_file: str = ".claude-yolo-autorun"
    done_file: str = ".claude-yolo-done"
    settle_delay: float = 2.0
    trailing_delay: float = 2.0
    poll_interval: float = 1.0
    kill_grace: float = 2.0
    sweep_by_name: bool = False
    flag_position: str = "prepend"
    autorun_consent: str = "auto"
    skip_update: bool = False

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "YoloSettings":
        env = os.environ if env is None else env
        return cls(
            debug=bool(env.get("DEBUG")),
            install_dir=env.get("CLAUDE_YOLO_INSTALL_DIR") or None,
            node_bin=env.get("CLAUDE_YOLO_NODE") or "node",
            autorun_file=env.get("CLAUDE_YOLO_AUTORUN_FILE") or cls.autorun_file,
            done_file=env.get("CLAUDE_YOLO_DONE_FILE") or cls.done_file,
            settle_delay=_float(env, "CLAUDE_YOLO_SETTLE_DELAY", cls.settle_delay),
            trailing_delay=_float(env, "CLAUDE_YOLO_TRAILING_DELAY", cls.trailing_delay),
            poll_interval=_float(env, "CLAUDE_YOLO_POLL_INTERVAL", cls.poll_interval),
            kill_grace=_float(env, "CLAUDE_YOLO_KILL_GRACE", cls.kill_grace),
            sweep_by_name=_flag(env, "CLAUDE_YOLO_SWEEP_BY_NAME"),
            flag_position=_choice(
                env, "CLAUDE_YOLO_FLAG_POSITION", ("prepend", "append"), cls.flag_position
            ),
            autorun_consent=_choice(
                env, "CLAUDE_YOLO_AUTORUN_CONSENT", ("auto", "prompt"), cls.autorun_consent
            ),
            skip_update=_flag(env, "CLAUDE_YOLO_SKIP_UPDATE"),
        )
