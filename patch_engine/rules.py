"""
patch_engine/rules.py

The fixed, ordered rule set applied to the Claude CLI source.
──────────────────────────────────────────────────────────────
Each rule is a compiled regex plus a replacement. The replacement is either
a plain string or a callable that receives the match and an RNG, which lets
the status-label rule draw random suffixes while staying testable.

Every rule is structurally idempotent: its own output never matches its
pattern again, so running the rules over already patched text is a no-op.

  1. punycode    "punycode"              → "punycode/"
  2. docker      <ident>.getIsDocker()   → true
  3. internet    <ident>.hasInternetAccess() → false
  4. spinner     the known spinner label array → same labels + random suffix
"""

import json
import logging
import random
import re
from dataclasses import dataclass
from typing import Callable, List, Union

from colorama import Fore, Style

logger = logging.getLogger(__name__)

Replacement = Union[str, Callable[[re.Match, random.Random], str]]

# The spinner labels shipped by the CLI, exactly as they appear in its bundle.
STATUS_LABELS = (
    '["Accomplishing","Actioning","Actualizing","Baking","Brewing",'
    '"Calculating","Cerebrating","Churning","Clauding","Coalescing",'
    '"Cogitating","Computing","Conjuring","Considering","Cooking","Crafting",'
    '"Creating","Crunching","Deliberating","Determining","Doing","Effecting",'
    '"Finagling","Forging","Forming","Generating","Hatching","Herding",'
    '"Honking","Hustling","Ideating","Inferring","Manifesting","Marinating",'
    '"Moseying","Mulling","Mustering","Musing","Noodling","Percolating",'
    '"Pondering","Processing","Puttering","Reticulating","Ruminating",'
    '"Schlepping","Shucking","Simmering","Smooshing","Spinning","Stewing",'
    '"Synthesizing","Thinking","Transmuting","Vibing","Working"]'
)

STATUS_SUFFIXES = (
    f" {Fore.RED}(safety's off, hold on tight){Style.RESET_ALL}",
    f" {Fore.YELLOW}(all gas, no brakes, lfg){Style.RESET_ALL}",
    f" {Style.BRIGHT}{Fore.MAGENTA}(yolo mode engaged){Style.RESET_ALL}",
    f" {Fore.CYAN}(dangerous mode! I guess you can just do things){Style.RESET_ALL}",
)


@dataclass(frozen=True)
class PatchRule:
    """
    A single textual rewrite.

    Attributes:
        name        : Short identifier used in logs and PatchResult.
        pattern     : Compiled regex; every match is replaced.
        replacement : Literal replacement text, or a callable taking
                      (match, rng) and returning the replacement.
    """
    name: str
    pattern: re.Pattern
    replacement: Replacement

    def apply(self, text: str, rng: random.Random) -> tuple:
        """Return (new_text, match_count)."""
        if callable(self.replacement):
            return self.pattern.subn(lambda m: self.replacement(m, rng), text)
        # Literal replacement: no backreference processing.
        literal = self.replacement
        return self.pattern.subn(lambda _m: literal, text)


def decorate_status_labels(segment: str, rng: random.Random) -> str:
    """
    Append a random suffix from STATUS_SUFFIXES to every label in a JSON array.

    Anything that is not a JSON array of strings is returned unchanged so a
    surprising bundle layout can never be corrupted.
    """
    try:
        labels = json.loads(segment)
    except ValueError as exc:
        logger.debug("Error modifying loading messages array: %s", exc)
        return segment
    if not isinstance(labels, list) or not all(isinstance(x, str) for x in labels):
        logger.debug("Loading messages segment is not a list of strings; leaving it")
        return segment

    decorated: List[str] = [label + rng.choice(STATUS_SUFFIXES) for label in labels]
    return json.dumps(decorated, ensure_ascii=False, separators=(",", ":"))


DEFAULT_RULES: tuple = (
    PatchRule(
        name="punycode",
        pattern=re.compile(r'"punycode"'),
        replacement='"punycode/"',
    ),
    PatchRule(
        name="docker",
        pattern=re.compile(r"[a-zA-Z0-9_$]*\.getIsDocker\(\)"),
        replacement="true",
    ),
    PatchRule(
        name="internet",
        pattern=re.compile(r"[a-zA-Z0-9_$]*\.hasInternetAccess\(\)"),
        replacement="false",
    ),
    PatchRule(
        name="spinner",
        pattern=re.compile(re.escape(STATUS_LABELS)),
        replacement=lambda match, rng: decorate_status_labels(match.group(0), rng),
    ),
)
