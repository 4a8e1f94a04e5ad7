"""
errors.py

Exception hierarchy for claude-yolo.

Only conditions that must stop the run are raised. Everything else
(unmatched patch rules, cleanup failures, registry lookups) is logged
where it happens and the run continues.
"""


class YoloError(Exception):
    """Base class for all fatal claude-yolo errors."""

    exit_code = 1


class InstallationNotFound(YoloError):
    """Neither cli.js nor cli.mjs exists in any candidate directory."""

    def __init__(self, searched):
        self.searched = list(searched)
        locations = ", ".join(str(p) for p in self.searched) or "<none>"
        super().__init__(
            f"Claude CLI entry point not found (searched: {locations}). "
            "Make sure @anthropic-ai/claude-code is installed."
        )


class PatchError(YoloError):
    """The patched artifact could not be produced."""


class LaunchError(YoloError):
    """The patched CLI could not be started."""


class ConsentDeclined(YoloError):
    """The operator did not consent to running the patched CLI."""
