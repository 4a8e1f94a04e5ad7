"""
tests/test_reaper.py

Unit tests for the process-group reaper.
No real processes are signalled: os.killpg and pkill are patched.

Run with:
    python -m pytest tests/test_reaper.py -v
"""

import os
import signal
import subprocess
import sys
import unittest
from unittest.mock import MagicMock, call, patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from driver.reaper import group_alive, reap


def _fake_group(dies_on):
    """Build a killpg stand-in for a group that exits on the given signal."""
    state = {"alive": True, "sent": []}

    def killpg(pgid, sig):
        if sig == 0:
            if not state["alive"]:
                raise ProcessLookupError
            return
        state["sent"].append(sig)
        if not state["alive"]:
            raise ProcessLookupError
        if sig in dies_on:
            state["alive"] = False

    return killpg, state


class TestGroupAlive(unittest.TestCase):

    @patch("driver.reaper.os.killpg", side_effect=ProcessLookupError)
    def test_gone(self, mock_killpg):
        self.assertFalse(group_alive(4242))

    @patch("driver.reaper.os.killpg", side_effect=PermissionError)
    def test_foreign_group_counts_as_alive(self, mock_killpg):
        self.assertTrue(group_alive(4242))

    @patch("driver.reaper.os.killpg", return_value=None)
    def test_alive(self, mock_killpg):
        self.assertTrue(group_alive(4242))
        mock_killpg.assert_called_once_with(4242, 0)


class TestReap(unittest.TestCase):

    def test_sigterm_is_enough(self):
        killpg, state = _fake_group(dies_on={signal.SIGTERM})
        with patch("driver.reaper.os.killpg", side_effect=killpg):
            report = reap(4242, grace=0, sleep=MagicMock())
        self.assertEqual(state["sent"], [signal.SIGTERM])
        self.assertTrue(report.terminated)
        self.assertFalse(report.killed)
        self.assertTrue(report.group_gone)
        self.assertFalse(report.name_sweep)

    def test_escalates_to_sigkill(self):
        killpg, state = _fake_group(dies_on={signal.SIGKILL})
        with patch("driver.reaper.os.killpg", side_effect=killpg):
            report = reap(4242, grace=0, sleep=MagicMock())
        self.assertEqual(state["sent"], [signal.SIGTERM, signal.SIGKILL])
        self.assertTrue(report.killed)
        self.assertTrue(report.group_gone)

    @patch("driver.reaper.subprocess.run")
    @patch("driver.reaper.os.killpg", side_effect=ProcessLookupError)
    def test_already_gone_never_raises(self, mock_killpg, mock_run):
        report = reap(4242, grace=0, target_name="cli-yolo.js", sleep=MagicMock())
        self.assertFalse(report.terminated)
        self.assertTrue(report.group_gone)
        self.assertEqual(report.errors, [])
        mock_run.assert_not_called()

    @patch("driver.reaper.subprocess.run")
    @patch("driver.reaper.os.killpg", side_effect=PermissionError("not ours"))
    def test_unreachable_group_falls_back_to_name_sweep(self, mock_killpg, mock_run):
        report = reap(4242, grace=0, target_name="cli-yolo.js", sleep=MagicMock())
        self.assertTrue(report.name_sweep)
        self.assertTrue(report.errors)
        self.assertEqual(mock_run.call_args_list, [
            call(["pkill", "-TERM", "-f", "cli-yolo.js"], capture_output=True, timeout=3),
            call(["pkill", "-KILL", "-f", "cli-yolo.js"], capture_output=True, timeout=3),
        ])

    @patch("driver.reaper.subprocess.run")
    def test_opt_in_name_sweep(self, mock_run):
        killpg, _ = _fake_group(dies_on={signal.SIGTERM})
        with patch("driver.reaper.os.killpg", side_effect=killpg):
            report = reap(4242, grace=0, target_name="cli-yolo.mjs",
                          sweep_by_name_enabled=True, sleep=MagicMock())
        self.assertTrue(report.group_gone)
        self.assertTrue(report.name_sweep)
        self.assertEqual(mock_run.call_count, 2)

    @patch("driver.reaper.subprocess.run", side_effect=FileNotFoundError("pkill"))
    @patch("driver.reaper.os.killpg", side_effect=PermissionError("not ours"))
    def test_missing_pkill_is_recorded_not_raised(self, mock_killpg, mock_run):
        report = reap(4242, grace=0, target_name="cli-yolo.js", sleep=MagicMock())
        self.assertTrue(any("pkill" in e for e in report.errors))

    @patch("driver.reaper.subprocess.run", side_effect=subprocess.TimeoutExpired("pkill", 3))
    @patch("driver.reaper.os.killpg", side_effect=PermissionError("not ours"))
    def test_pkill_timeout_is_recorded(self, mock_killpg, mock_run):
        report = reap(4242, grace=0, target_name="cli-yolo.js", sleep=MagicMock())
        self.assertEqual(len(report.errors), 4)

    @patch("driver.reaper.os.killpg")
    def test_refuses_own_or_init_group(self, mock_killpg):
        for pgid in (0, 1):
            report = reap(pgid, grace=0, sleep=MagicMock())
            self.assertTrue(report.errors)
        mock_killpg.assert_not_called()


if __name__ == "__main__":
    unittest.main()
