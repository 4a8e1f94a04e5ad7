#!/usr/bin/env python3
"""
claudeyolo.py — claude-yolo entry point.
─────────────────────────────────────────
Run this INSTEAD of running `claude` directly:

    claude-yolo [any claude arguments]

claude-yolo will:
  1. Check the npm registry for a newer Claude CLI and update the
     wrapper-owned installation.
  2. Locate the Claude CLI installation (global first, then local).
  3. Ask for consent the first time (or whenever the patched copy is gone).
  4. Write a patched copy of the CLI next to the original.
  5. Launch the patched copy with --dangerously-skip-permissions.
  6. Exit with the same exit code as the Claude CLI.

Every argument is forwarded to the Claude CLI unchanged. Configuration is
read from the environment; see settings.py.

Autorun
───────
If `.claude-yolo-autorun` exists in the current directory, its content is
typed into the CLI as the task. The task must create `.claude-yolo-done` in
the current directory when it is finished; claude-yolo then ends the
session and removes the marker.

Exit Codes
──────────
  0     Claude CLI exited normally, or the autorun task signalled completion.
  1     claude-yolo error (installation not found, consent declined,
        patching or launch failure).
  130   Interrupted with Ctrl+C.
  Any other value is the exit code of the Claude CLI process.
"""

import json
import logging
import os
import sys
from typing import List, Optional

# Ensure the project root is on sys.path so the top-level packages import
# when the script is executed directly (not as an installed entry point).
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from colorama import Fore, Style, init as colorama_init

from driver.tty_driver import EXIT_INTERNAL_ERROR, Orchestrator
from errors import YoloError
from installation import Installation, candidate_dirs, resolve_installation, wrapper_root
from settings import YoloSettings, configure_logging, load_dotenv_file
from updater import check_for_updates

__version__ = "1.0.0"

_CYAN  = Fore.CYAN
_RED   = Fore.RED
_RESET = Style.RESET_ALL


def print_installation(installation: Installation, debug: bool) -> None:
    print(f"{_CYAN}Using Claude installation from: {installation.directory}{_RESET}")
    if not debug:
        return
    try:
        with installation.package_json_path.open(encoding="utf-8") as f:
            version = json.load(f).get("version")
        print(f"{_CYAN}Claude version from package.json: {version}{_RESET}")
    except (OSError, ValueError) as exc:
        logging.getLogger(__name__).debug("Error reading Claude package.json: %s", exc)


def main(argv: Optional[List[str]] = None) -> int:
    """
    claude-yolo entry point.

    Returns the exit code to pass to the OS.
    """
    args = list(sys.argv[1:] if argv is None else argv)

    load_dotenv_file()
    settings = YoloSettings.from_env()
    configure_logging(settings.debug)
    colorama_init()
    logger = logging.getLogger(__name__)
    logger.debug("claude-yolo %s starting with %d forwarded argument(s)", __version__, len(args))

    root = wrapper_root()
    try:
        installation = resolve_installation(candidate_dirs(settings.install_dir, root))
    except YoloError as exc:
        print(f"{_RED}Error: {exc}{_RESET}", file=sys.stderr)
        return exc.exit_code

    print_installation(installation, settings.debug)

    updated = False
    if not settings.skip_update:
        updated = check_for_updates(installation, root)

    orchestrator = Orchestrator(installation, settings=settings, force_repatch=updated)
    try:
        result = orchestrator.run(args)
    except KeyboardInterrupt:
        return 130
    except Exception as exc:
        logger.exception("Unhandled exception in Orchestrator: %s", exc)
        print(f"{_RED}[claude-yolo] Fatal error: {exc}{_RESET}", file=sys.stderr)
        return EXIT_INTERNAL_ERROR

    logger.debug("claude-yolo exiting with code %d", result.exit_code)
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
