"""
tests/test_updater.py

Unit tests for the npm registry update check.
No network or npm calls are made: requests.get and subprocess.run are
patched.

Run with:
    python -m pytest tests/test_updater.py -v
"""

import json
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

import requests

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from installation import Installation
from updater import (
    PACKAGE_SPEC,
    REQUEST_TIMEOUT,
    check_for_updates,
    fetch_latest_version,
    installed_version,
)


def _make_response(status=200, body=None):
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = body if body is not None else {}
    if status >= 400:
        resp.raise_for_status.side_effect = requests.exceptions.HTTPError(f"{status}")
    else:
        resp.raise_for_status.return_value = None
    return resp


class TestFetchLatestVersion(unittest.TestCase):

    @patch("updater.requests.get")
    def test_returns_version(self, mock_get):
        mock_get.return_value = _make_response(body={"version": "1.2.3"})
        self.assertEqual(fetch_latest_version(), "1.2.3")
        url = mock_get.call_args.args[0]
        self.assertTrue(url.endswith("/@anthropic-ai/claude-code/latest"))
        self.assertEqual(mock_get.call_args.kwargs["timeout"], REQUEST_TIMEOUT)

    @patch("updater.requests.get", side_effect=requests.exceptions.ConnectionError("offline"))
    def test_offline(self, mock_get):
        self.assertIsNone(fetch_latest_version())

    @patch("updater.requests.get")
    def test_http_error(self, mock_get):
        mock_get.return_value = _make_response(status=503)
        self.assertIsNone(fetch_latest_version())

    @patch("updater.requests.get")
    def test_malformed_json(self, mock_get):
        resp = _make_response()
        resp.json.side_effect = ValueError("not json")
        mock_get.return_value = resp
        self.assertIsNone(fetch_latest_version())

    @patch("updater.requests.get")
    def test_missing_version_field(self, mock_get):
        mock_get.return_value = _make_response(body={"name": "x"})
        self.assertIsNone(fetch_latest_version())

    def test_uses_given_session(self):
        session = MagicMock()
        session.get.return_value = _make_response(body={"version": "2.0.0"})
        self.assertEqual(fetch_latest_version(session), "2.0.0")
        session.get.assert_called_once()


class TestCheckForUpdates(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.cli_dir = self.root / "node_modules" / "@anthropic-ai" / "claude-code"
        self.cli_dir.mkdir(parents=True)
        (self.cli_dir / "cli.js").write_text("// cli")
        (self.cli_dir / "package.json").write_text(json.dumps({"version": "1.0.0"}))
        self.installation = Installation(self.cli_dir, "cli.js")

    def tearDown(self):
        self._tmp.cleanup()

    def _write_wrapper_package(self, declared):
        (self.root / "package.json").write_text(json.dumps({
            "name": "claude-yolo",
            "dependencies": {PACKAGE_SPEC: declared},
        }))

    def test_installed_version(self):
        self.assertEqual(installed_version(self.installation), "1.0.0")

    @patch("updater.subprocess.run")
    def test_already_latest(self, mock_run):
        self.assertFalse(check_for_updates(self.installation, self.root, latest="1.0.0"))
        mock_run.assert_not_called()

    @patch("updater.fetch_latest_version", return_value=None)
    @patch("updater.subprocess.run")
    def test_registry_unavailable(self, mock_run, mock_fetch):
        self.assertFalse(check_for_updates(self.installation, self.root))
        mock_run.assert_not_called()

    @patch("updater.subprocess.run")
    def test_global_install_is_never_modified(self, mock_run):
        installation = Installation(self.cli_dir, "cli.js", is_global=True)
        self.assertFalse(check_for_updates(installation, self.root, latest="2.0.0"))
        mock_run.assert_not_called()

    @patch("updater.subprocess.run")
    def test_bumps_declared_version_and_installs(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0)
        self._write_wrapper_package("1.0.0")
        self.assertTrue(check_for_updates(self.installation, self.root, latest="2.0.0"))

        data = json.loads((self.root / "package.json").read_text())
        self.assertEqual(data["dependencies"][PACKAGE_SPEC], "2.0.0")
        mock_run.assert_called_once()
        self.assertEqual(mock_run.call_args.args[0], ["npm", "install"])
        self.assertEqual(mock_run.call_args.kwargs["cwd"], self.root)

    @patch("updater.subprocess.run")
    def test_latest_tag_only_installs(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0)
        self._write_wrapper_package("latest")
        self.assertTrue(check_for_updates(self.installation, self.root, latest="2.0.0"))
        data = json.loads((self.root / "package.json").read_text())
        self.assertEqual(data["dependencies"][PACKAGE_SPEC], "latest")

    @patch("updater.subprocess.run")
    def test_failed_install_is_not_fatal(self, mock_run):
        mock_run.return_value = MagicMock(returncode=1)
        self._write_wrapper_package("1.0.0")
        self.assertFalse(check_for_updates(self.installation, self.root, latest="2.0.0"))

    @patch("updater.subprocess.run", side_effect=subprocess.TimeoutExpired("npm", 300))
    def test_install_timeout_is_not_fatal(self, mock_run):
        self._write_wrapper_package("1.0.0")
        self.assertFalse(check_for_updates(self.installation, self.root, latest="2.0.0"))

    @patch("updater.subprocess.run")
    def test_missing_wrapper_package_json(self, mock_run):
        self.assertFalse(check_for_updates(self.installation, self.root, latest="2.0.0"))
        mock_run.assert_not_called()


if __name__ == "__main__":
    unittest.main()
