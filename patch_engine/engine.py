"""
patch_engine/engine.py

PatchEngine — produces the patched copy of the Claude CLI.
───────────────────────────────────────────────────────────
The engine reads the original entry point, runs the rule set over it in a
fixed order (each rule sees the previous rule's output) and writes the result
to the installation's patched artifact path. The original file is only ever
opened for reading.

A rule that finds nothing to replace is skipped and logged; it is not an
error. Only I/O failures (unreadable original, unwritable artifact) are
fatal and surface as PatchError.
"""

import logging
import os
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional

from errors import PatchError
from installation import Installation

from .rules import DEFAULT_RULES, PatchRule

logger = logging.getLogger(__name__)


@dataclass
class PatchResult:
    """
    Outcome of running the rule set over one source text.

    Attributes:
        text    : The transformed source.
        applied : Names of rules that matched at least once.
        skipped : Names of rules that found no match (no-ops).
        counts  : Match count per rule name.
    """
    text: str
    applied: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    counts: dict = field(default_factory=dict)


class PatchEngine:
    """
    Applies an ordered list of PatchRules and writes the patched artifact.

    Args:
        rules : Rules in application order. Defaults to DEFAULT_RULES.
        rng   : Random source for cosmetic suffixes. Pass a seeded
                random.Random for reproducible output.
    """

    def __init__(
        self,
        rules: Optional[Iterable[PatchRule]] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._rules = tuple(DEFAULT_RULES if rules is None else rules)
        self._rng = rng or random.Random()

    @property
    def rules(self) -> tuple:
        return self._rules

    def apply(self, text: str) -> PatchResult:
        """Run every rule over *text* in order and report what happened."""
        result = PatchResult(text=text)
        for rule in self._rules:
            result.text, count = rule.apply(result.text, self._rng)
            result.counts[rule.name] = count
            if count:
                result.applied.append(rule.name)
                logger.debug("Rule '%s' replaced %d occurrence(s)", rule.name, count)
            else:
                result.skipped.append(rule.name)
                logger.debug("Rule '%s' found no match; skipped", rule.name)
        return result

    def write_artifact(self, installation: Installation) -> Path:
        """
        Patch the installation's entry point into its patched artifact path.

        Any existing artifact is overwritten.

        Raises:
            PatchError : The original could not be read or the artifact
                         could not be written.
        """
        source = installation.original_path
        target = installation.patched_path

        try:
            text = source.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise PatchError(f"Could not read {source}: {exc}") from exc

        result = self.apply(text)

        # The artifact is replaced atomically; it is never seen half-written.
        tmp_path = target.with_name(f".{target.name}.{os.getpid()}.tmp")
        try:
            tmp_path.write_text(result.text, encoding="utf-8")
            os.replace(tmp_path, target)
        except OSError as exc:
            try:
                tmp_path.unlink()
            except OSError:
                pass
            raise PatchError(f"Could not write {target}: {exc}") from exc

        logger.debug(
            "Created modified CLI at %s | applied=%s skipped=%s",
            target, ",".join(result.applied) or "-", ",".join(result.skipped) or "-",
        )
        return target

    @staticmethod
    def needs_repatch(installation: Installation) -> bool:
        """True when the artifact is missing or older than the original."""
        patched = installation.patched_path
        if not patched.exists():
            return True
        try:
            return installation.original_path.stat().st_mtime > patched.stat().st_mtime
        except OSError as exc:
            logger.debug("Could not compare artifact timestamps: %s", exc)
            return True
