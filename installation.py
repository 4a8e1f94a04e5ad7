"""
installation.py

Locates the Claude CLI installation that claude-yolo patches and drives.
─────────────────────────────────────────────────────────────────────────
Candidate directories, in order:

  1. CLAUDE_YOLO_INSTALL_DIR, when set.
  2. The global npm root:  $(npm -g root)/@anthropic-ai/claude-code
  3. The nearest node_modules/@anthropic-ai/claude-code found by walking up
     from this file (the wrapper's own dependency).

The first directory that contains an entry point wins. Two entry point
filenames exist across CLI releases; `cli.js` is preferred over `cli.mjs`
and each maps to its own patched artifact name.
"""

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from errors import InstallationNotFound

logger = logging.getLogger(__name__)

PACKAGE_SCOPE = "@anthropic-ai"
PACKAGE_NAME = "claude-code"

# (entry point, patched artifact), in order of preference.
ENTRY_POINTS: Tuple[Tuple[str, str], ...] = (
    ("cli.js", "cli-yolo.js"),
    ("cli.mjs", "cli-yolo.mjs"),
)

CONSENT_KEY = ".claude-yolo-consent"


@dataclass(frozen=True)
class Installation:
    """
    A resolved Claude CLI installation. Immutable for the lifetime of a run.

    Attributes:
        directory   : The @anthropic-ai/claude-code package directory.
        entry_point : The entry point filename present there.
        is_global   : True when found under the global npm root.
    """
    directory: Path
    entry_point: str
    is_global: bool = False

    @property
    def original_path(self) -> Path:
        return self.directory / self.entry_point

    @property
    def patched_path(self) -> Path:
        for entry, patched in ENTRY_POINTS:
            if entry == self.entry_point:
                return self.directory / patched
        raise ValueError(f"Unsupported entry point: {self.entry_point}")

    @property
    def package_json_path(self) -> Path:
        return self.directory / "package.json"


def find_entry_point(directory: Path) -> Optional[str]:
    """Return the preferred entry point filename in *directory*, or None."""
    for entry, _ in ENTRY_POINTS:
        if (directory / entry).is_file():
            return entry
    return None


def global_install_dir() -> Optional[Path]:
    """Ask npm for its global root; None when npm is missing or fails."""
    try:
        result = subprocess.run(
            ["npm", "-g", "root"],
            capture_output=True,
            text=True,
            timeout=15,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.debug("Error finding global Claude installation: %s", exc)
        return None

    if result.returncode != 0 or not result.stdout.strip():
        logger.debug("npm -g root failed (exit %d): %s", result.returncode, result.stderr.strip())
        return None

    global_root = Path(result.stdout.strip())
    logger.debug("Global node_modules: %s", global_root)
    return global_root / PACKAGE_SCOPE / PACKAGE_NAME


def wrapper_root(start: Optional[Path] = None) -> Path:
    """
    Walk up from *start* until a directory containing node_modules is found.

    Falls back to the filesystem root, where nothing will be found and
    resolution fails with a clear error.
    """
    current = (start or Path(__file__).resolve().parent).resolve()
    for candidate in (current, *current.parents):
        if (candidate / "node_modules").is_dir():
            return candidate
    return Path(current.anchor)


def local_install_dir(root: Optional[Path] = None) -> Path:
    return (root or wrapper_root()) / "node_modules" / PACKAGE_SCOPE / PACKAGE_NAME


def candidate_dirs(
    override: Optional[str] = None,
    root: Optional[Path] = None,
) -> List[Tuple[Path, bool]]:
    """Build the ordered (directory, is_global) search list."""
    candidates: List[Tuple[Path, bool]] = []
    if override:
        candidates.append((Path(override).expanduser(), False))
    global_dir = global_install_dir()
    if global_dir is not None:
        candidates.append((global_dir, True))
    candidates.append((local_install_dir(root), False))
    return candidates


def resolve_installation(candidates: Iterable[Tuple[Path, bool]]) -> Installation:
    """
    Pick the first candidate directory that holds an entry point.

    Raises:
        InstallationNotFound : No candidate has cli.js or cli.mjs.
    """
    searched: List[Path] = []
    for directory, is_global in candidates:
        searched.append(directory)
        entry = find_entry_point(directory)
        if entry is None:
            logger.debug("No Claude CLI entry point in %s", directory)
            continue
        installation = Installation(directory=directory, entry_point=entry, is_global=is_global)
        logger.debug(
            "Found Claude CLI at %s (%s version)",
            installation.original_path, entry.rsplit(".", 1)[-1],
        )
        return installation
    raise InstallationNotFound(searched)
