"""
consent/gate.py

ConsentGate — decides whether claude-yolo may patch and launch the CLI.
────────────────────────────────────────────────────────────────────────
Consent is a one-way fact per installation: once a record exists it is
never rewritten and never expires. The gate asks again whenever either the
record or the patched artifact is missing, which covers "the cached patch
went stale" without any version bookkeeping.

Two modes exist for the question itself:

  PROMPT       : print the terms and block on the operator's yes/no.
  AUTO_APPROVE : print the terms and synthesise "yes" (unattended
                 autorun). The stored record says so, so it is always
                 possible to tell a typed consent from a synthesised one.
"""

import logging
import sys
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, TextIO

from colorama import Fore, Style

from installation import CONSENT_KEY, Installation

from .state_store import FileStateStore, StateStore

logger = logging.getLogger(__name__)

_RED    = Fore.RED
_YELLOW = Fore.YELLOW
_CYAN   = Fore.CYAN
_BOLD   = Style.BRIGHT
_RESET  = Style.RESET_ALL

_AFFIRMATIVE = {"yes", "y"}


class ConsentMode(Enum):
    PROMPT = "prompt"
    AUTO_APPROVE = "auto"


# Value written to the consent record for each mode.
_RECORD_VALUES = {
    ConsentMode.PROMPT: "consent-given",
    ConsentMode.AUTO_APPROVE: "consent-auto-approved",
}


def consent_terms() -> str:
    """The consent text shown before every decision, typed or synthesised."""
    rule = f"{_CYAN}{'-' * 40}{_RESET}"
    return "\n".join([
        "",
        f"{_BOLD}{_YELLOW}🔥 CLAUDE-YOLO INSTALLATION CONSENT REQUIRED 🔥{_RESET}",
        "",
        rule,
        f"{_BOLD}What is claude-yolo?{_RESET}",
        "This package creates a wrapper around the official Claude CLI tool that:",
        f"  1. {_RED}BYPASSES safety checks{_RESET} by automatically adding the "
        "--dangerously-skip-permissions flag",
        "  2. Automatically updates to the latest Claude CLI version",
        "  3. Adds colorful YOLO-themed loading messages",
        "",
        f"{_BOLD}{_RED}⚠️ IMPORTANT SECURITY WARNING ⚠️{_RESET}",
        f"The {_BOLD}--dangerously-skip-permissions{_RESET} flag was designed for use in containers",
        "and bypasses important safety checks. This includes ignoring file access",
        "permissions that protect your system and privacy.",
        "",
        f"{_BOLD}By using claude-yolo:{_RESET}",
        "  • You acknowledge these safety checks are being bypassed",
        "  • You understand this may allow Claude CLI to access sensitive files",
        "  • You accept full responsibility for any security implications",
        "",
        rule,
        "",
    ])


class ConsentGate:
    """
    Persisted yes/no gate in front of patching and launching.

    Args:
        store_factory : Builds the StateStore holding the record for an
                        installation directory. Defaults to a file store
                        rooted in the installation directory itself.
        input_fn      : Reads the operator's answer (defaults to input()).
        output        : Stream the terms and verdict are printed to.
    """

    def __init__(
        self,
        store_factory: Callable[[Path], StateStore] = FileStateStore,
        input_fn: Optional[Callable[[str], str]] = None,
        output: Optional[TextIO] = None,
    ) -> None:
        self._store_factory = store_factory
        self._input = input_fn or input
        self._output = output

    def _out(self) -> TextIO:
        return self._output or sys.stdout

    def _store(self, installation: Installation) -> StateStore:
        return self._store_factory(installation.directory)

    # ── Queries ───────────────────────────────────────────────────────────────

    def is_granted(self, installation: Installation) -> bool:
        """True when a non-empty consent record exists for *installation*."""
        try:
            return bool(self._store(installation).get(CONSENT_KEY))
        except OSError as exc:
            logger.debug("Could not read consent record: %s", exc)
            return False

    def needs_consent(self, installation: Installation) -> bool:
        """Ask again unless both the record and the patched artifact exist."""
        return not installation.patched_path.exists() or not self.is_granted(installation)

    # ── Decision ──────────────────────────────────────────────────────────────

    def request_consent(self, mode: ConsentMode = ConsentMode.PROMPT) -> bool:
        """
        Show the terms and return the decision.

        In AUTO_APPROVE mode the answer is synthesised; the terms are still
        shown and the synthesis is logged.
        """
        out = self._out()
        print(consent_terms(), file=out)

        question = (
            f"{_YELLOW}Do you consent to using claude-yolo with these "
            f"modifications? (yes/no): {_RESET}"
        )

        if mode is ConsentMode.AUTO_APPROVE:
            print(f"{question}yes {_CYAN}(auto-approved for autorun){_RESET}", file=out)
            logger.info("Consent synthesised for unattended autorun session")
            answer = "yes"
        else:
            try:
                answer = self._input(question)
            except EOFError:
                answer = ""

        if answer.strip().lower() in _AFFIRMATIVE:
            print(f"\n{_YELLOW}🔥 YOLO MODE APPROVED 🔥{_RESET}", file=out)
            return True

        print(f"\n{_CYAN}Aborted. YOLO mode not activated.{_RESET}", file=out)
        print("If you want the official Claude CLI with normal safety features, run:", file=out)
        print("claude", file=out)
        return False

    def persist(self, installation: Installation, mode: ConsentMode = ConsentMode.PROMPT) -> bool:
        """
        Record consent for *installation*. An existing record is left as is.

        Returns False if the record could not be written; the run continues
        either way.
        """
        store = self._store(installation)
        try:
            if store.get(CONSENT_KEY):
                logger.debug("Consent record already present; not rewriting it")
                return True
            store.set(CONSENT_KEY, _RECORD_VALUES[mode])
        except OSError as exc:
            logger.debug("Error creating consent flag file: %s", exc)
            return False
        logger.debug("Created consent flag file (%s)", mode.value)
        return True

    def record_for(self, installation: Installation) -> Optional[str]:
        """Raw record value, for auditing who consented."""
        return self._store(installation).get(CONSENT_KEY)
