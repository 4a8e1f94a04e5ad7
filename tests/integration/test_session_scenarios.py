"""
tests/integration/test_session_scenarios.py

End-to-end session scenarios through the claude-yolo entry point.
─────────────────────────────────────────────────────────────────
These tests exercise the full stack:

    claudeyolo.main()
        → YoloSettings        (environment)
        → resolve_installation (override dir)
        → ConsentGate         (typed answer, file-backed record)
        → PatchEngine         (real rewrite of a fake CLI bundle)
        → Orchestrator        (interactive launch)

No Node.js, npm or network access is needed: the launch, the `npm -g root`
lookup and the operator's answer are mocked.

Run with:
    python -m pytest tests/integration/test_session_scenarios.py -v
"""

import io
import os
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

import claudeyolo
from driver.tty_driver import BYPASS_FLAG
from installation import CONSENT_KEY


# ─────────────────────────────────────────────────────────────────────────────
# Shared helpers
# ─────────────────────────────────────────────────────────────────────────────

CLI_BUNDLE = (
    'import punycode from "punycode";\n'
    "const inDocker = env.getIsDocker();\n"
    "const online = await net.hasInternetAccess();\n"
)


class SessionScenario(unittest.TestCase):
    """Temp installation dir + temp working dir + mocked outer world."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        root = Path(self._tmp.name)
        self.cli_dir = root / "claude-code"
        self.work = root / "project"
        self.cli_dir.mkdir()
        self.work.mkdir()

        self._old_cwd = os.getcwd()
        os.chdir(self.work)
        self.addCleanup(os.chdir, self._old_cwd)

        env = patch.dict(os.environ, {
            "CLAUDE_YOLO_INSTALL_DIR": str(self.cli_dir),
            "CLAUDE_YOLO_SKIP_UPDATE": "1",
        })
        env.start()
        self.addCleanup(env.stop)
        os.environ.pop("DEBUG", None)

        for target, kwargs in (
            ("installation.global_install_dir", {"return_value": None}),
            ("claudeyolo.colorama_init", {}),
            ("driver.tty_driver.shutil.which", {"return_value": "/usr/bin/node"}),
            ("sys.stdout", {"new_callable": io.StringIO}),
        ):
            patcher = patch(target, **kwargs)
            patcher.start()
            self.addCleanup(patcher.stop)

    def tearDown(self):
        self._tmp.cleanup()


# ─────────────────────────────────────────────────────────────────────────────
# Scenarios
# ─────────────────────────────────────────────────────────────────────────────

class TestFirstRunWithModuleEntryPoint(SessionScenario):
    """Only cli.mjs installed, operator types "yes", args ["--help"]."""

    @patch("builtins.input", return_value="yes")
    @patch("driver.tty_driver.subprocess.Popen")
    def test_patches_and_launches_mjs_variant(self, mock_popen, mock_input):
        (self.cli_dir / "cli.mjs").write_text(CLI_BUNDLE)
        mock_popen.return_value.wait.return_value = 0

        code = claudeyolo.main(["--help"])

        self.assertEqual(code, 0)
        mock_input.assert_called_once()
        mock_popen.assert_called_once_with([
            "/usr/bin/node", str(self.cli_dir / "cli-yolo.mjs"), BYPASS_FLAG, "--help",
        ])

        patched = (self.cli_dir / "cli-yolo.mjs").read_text()
        self.assertIn('"punycode/"', patched)
        self.assertIn("const inDocker = true;", patched)
        self.assertIn("const online = await false;", patched)
        self.assertEqual((self.cli_dir / "cli.mjs").read_text(), CLI_BUNDLE)
        self.assertEqual((self.cli_dir / CONSENT_KEY).read_text(), "consent-given")
        self.assertIn("Using Claude installation from", sys.stdout.getvalue())


class TestDeclinedConsent(SessionScenario):

    @patch("builtins.input", return_value="no")
    @patch("driver.tty_driver.subprocess.Popen")
    def test_nothing_launched_nothing_recorded(self, mock_popen, mock_input):
        (self.cli_dir / "cli.js").write_text(CLI_BUNDLE)

        self.assertEqual(claudeyolo.main([]), 1)

        mock_popen.assert_not_called()
        self.assertFalse((self.cli_dir / "cli-yolo.js").exists())
        self.assertFalse((self.cli_dir / CONSENT_KEY).exists())


class TestMissingInstallation(SessionScenario):

    @patch("driver.tty_driver.subprocess.Popen")
    def test_reports_and_exits_1(self, mock_popen):
        with patch("sys.stderr", new_callable=io.StringIO) as err:
            # Nothing in the override dir; the wrapper's own node_modules is
            # pointed somewhere empty as well.
            with patch("claudeyolo.wrapper_root", return_value=self.work):
                code = claudeyolo.main([])

        self.assertEqual(code, 1)
        self.assertIn("not found", err.getvalue())
        mock_popen.assert_not_called()
        self.assertEqual(list(self.cli_dir.iterdir()), [])


class TestUpdateForcesRepatch(SessionScenario):

    @patch("builtins.input", return_value="yes")
    @patch("driver.tty_driver.subprocess.Popen")
    def test_artifact_rebuilt_after_update(self, mock_popen, mock_input):
        (self.cli_dir / "cli.js").write_text(CLI_BUNDLE)
        mock_popen.return_value.wait.return_value = 0
        claudeyolo.main([])

        (self.cli_dir / "cli-yolo.js").write_text("// outdated patched copy")
        os.environ.pop("CLAUDE_YOLO_SKIP_UPDATE")
        with patch("claudeyolo.check_for_updates", return_value=True) as mock_update:
            self.assertEqual(claudeyolo.main([]), 0)

        mock_update.assert_called_once()
        self.assertIn("punycode/", (self.cli_dir / "cli-yolo.js").read_text())
        mock_input.assert_called_once()


if __name__ == "__main__":
    unittest.main()
