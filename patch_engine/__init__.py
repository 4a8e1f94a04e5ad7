"""
patch_engine — textual rewrites that turn the Claude CLI into its yolo copy.

Public API:
    PatchEngine   : Applies the ordered rule set and writes the artifact.
    PatchRule     : One (pattern, replacement) pair.
    PatchResult   : Patched text plus which rules applied or were skipped.
    DEFAULT_RULES : The fixed rule set, in application order.
"""

from .engine import PatchEngine, PatchResult
from .rules import DEFAULT_RULES, PatchRule, STATUS_SUFFIXES

__all__ = [
    "PatchEngine",
    "PatchResult",
    "PatchRule",
    "DEFAULT_RULES",
    "STATUS_SUFFIXES",
]
