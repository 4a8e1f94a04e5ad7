"""
updater.py — keeps the wrapper's Claude CLI dependency current.

On each run we ask the npm registry for the latest published version:

    https://registry.npmjs.org/@anthropic-ai/claude-code/latest

Global installations are never touched; if they are behind we only say so.
For the wrapper's own local installation the dependency in the wrapper's
package.json is bumped and `npm install` runs in the wrapper root.

Nothing here is fatal. A registry timeout, a malformed package.json or a
failing npm install is logged and the run carries on with whatever is
installed.
"""

from __future__ import annotations

import json
import logging
import subprocess
from pathlib import Path

import requests

from installation import PACKAGE_NAME, PACKAGE_SCOPE, Installation

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

REGISTRY_BASE = "https://registry.npmjs.org"
PACKAGE_SPEC = f"{PACKAGE_SCOPE}/{PACKAGE_NAME}"
REQUEST_TIMEOUT = 8          # seconds
NPM_INSTALL_TIMEOUT = 300    # seconds


# ---------------------------------------------------------------------------
# Version lookups
# ---------------------------------------------------------------------------


def fetch_latest_version(session: requests.Session | None = None) -> str | None:
    """Return the latest published CLI version, or None if unavailable."""
    getter = session.get if session is not None else requests.get
    try:
        resp = getter(
            f"{REGISTRY_BASE}/{PACKAGE_SPEC}/latest",
            timeout=REQUEST_TIMEOUT,
            headers={"Accept": "application/json"},
        )
        resp.raise_for_status()
        version = resp.json().get("version")
    except requests.exceptions.RequestException as exc:
        logger.debug("Registry lookup failed: %s", exc)
        return None
    except ValueError as exc:
        logger.debug("Registry returned malformed JSON: %s", exc)
        return None

    if not isinstance(version, str) or not version:
        return None
    logger.debug("Latest Claude version on npm: %s", version)
    return version


def _read_json(path: Path) -> dict | None:
    try:
        with path.open(encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        logger.debug("Error reading %s: %s", path, exc)
        return None
    return data if isinstance(data, dict) else None


def installed_version(installation: Installation) -> str | None:
    """Version recorded in the installation's package.json."""
    data = _read_json(installation.package_json_path)
    if data is None:
        return None
    version = data.get("version")
    return version if isinstance(version, str) else None


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------


def _run_npm_install(root: Path) -> bool:
    print("Running npm install to update dependencies...")
    try:
        result = subprocess.run(["npm", "install"], cwd=root, timeout=NPM_INSTALL_TIMEOUT)
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.error("npm install failed: %s", exc)
        return False
    if result.returncode != 0:
        logger.error("npm install exited with code %d", result.returncode)
        return False
    print("Update complete!")
    return True


def check_for_updates(
    installation: Installation,
    wrapper_root: Path,
    latest: str | None = None,
) -> bool:
    """
    Bring the wrapper-owned CLI up to the latest registry version.

    Args:
        installation : The resolved installation.
        wrapper_root : Directory holding the wrapper's package.json.
        latest       : Skip the registry lookup (tests, offline runs).

    Returns:
        True if `npm install` ran successfully, meaning the entry point may
        have changed and the patched artifact must be rebuilt.
    """
    logger.debug("Checking for Claude package updates...")
    latest = latest or fetch_latest_version()
    if latest is None:
        return False

    current = installed_version(installation)
    if current == latest:
        logger.debug("Claude installation is already the latest version (%s)", current)
        return False

    if installation.is_global:
        logger.info(
            "Global Claude installation is %s; %s is available. "
            "Run `npm install -g %s` to update.",
            current or "unknown", latest, PACKAGE_SPEC,
        )
        return False

    package_json_path = wrapper_root / "package.json"
    package_json = _read_json(package_json_path)
    if package_json is None:
        return False

    dependencies = package_json.setdefault("dependencies", {})
    declared = dependencies.get(PACKAGE_SPEC)
    logger.debug("Current dependency in package.json: %s", declared)

    if declared == "latest":
        logger.debug("Using 'latest' tag in package.json; running npm install")
        return _run_npm_install(wrapper_root)

    if declared == latest:
        # Declared but not yet installed at that version.
        return _run_npm_install(wrapper_root)

    print(f"Updating Claude package from {declared or 'unknown'} to {latest}...")
    dependencies[PACKAGE_SPEC] = latest
    try:
        package_json_path.write_text(json.dumps(package_json, indent=2) + "\n", encoding="utf-8")
    except OSError as exc:
        logger.error("Could not update %s: %s", package_json_path, exc)
        return False
    return _run_npm_install(wrapper_root)
