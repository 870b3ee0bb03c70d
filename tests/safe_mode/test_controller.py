"""Tests for the safe-mode controller and its boot protocol."""

import logging
import os
import shutil
import tempfile
import unittest
from datetime import timedelta
from unittest.mock import MagicMock

from safe_boot.safe_mode.base import REDIRECTED_ROLES, SandboxError
from safe_boot.safe_mode.boot_detector import BootFailureDetector, FileBootMarker
from safe_boot.safe_mode.controller import SafeModeController, SafeModeState
from safe_boot.safe_mode.path_config import PathConfig
from safe_boot.safe_mode.provisioner import SandboxProvisioner, TemporaryDirectorySandbox

CONTROLLER_LOGGER = "safe_boot.safe_mode.controller"


class TestSafeModeController(unittest.TestCase):
    """Runs the controller across simulated process launches."""

    def setUp(self):
        self.marker_dir = tempfile.mkdtemp(prefix="safe_boot_marker_")
        self.sandbox_parent = tempfile.mkdtemp(prefix="safe_boot_sandbox_")

    def tearDown(self):
        shutil.rmtree(self.marker_dir, ignore_errors=True)
        shutil.rmtree(self.sandbox_parent, ignore_errors=True)

    def _make_config(self, revision="1.2.3", branch="main", hash_="abcdef"):
        values = {"BuildRevision": revision}
        if branch is not None:
            values["BuildRevisionBranch"] = branch
        if hash_ is not None:
            values["BuildRevisionHash"] = hash_
        for role in REDIRECTED_ROLES:
            values[role] = f"/home/user/{role}/"
        return PathConfig(values)

    def _launch(self, config, sandbox_factory=None):
        """Build a controller the way a fresh process would."""
        detector = BootFailureDetector(
            config,
            marker=FileBootMarker(directory=self.marker_dir),
            max_age=timedelta(hours=12),
        )
        if sandbox_factory is None:
            def sandbox_factory():
                return TemporaryDirectorySandbox.create(dir=self.sandbox_parent)
        provisioner = SandboxProvisioner(sandbox_factory=sandbox_factory)
        return SafeModeController(config, detector=detector, provisioner=provisioner)

    def _marker_path(self):
        return os.path.join(self.marker_dir, "FREECAD_BOOT_NOT_COMPLETE")

    def test_initial_state(self):
        controller = self._launch(self._make_config())
        self.assertEqual(controller.state, SafeModeState.NORMAL)
        self.assertFalse(controller.safe_mode_enabled())
        self.assertIsNone(controller.sandbox_path)

    def test_crash_then_safe_mode(self):
        """Run 1 crashes before completing; run 2 enters safe mode."""
        config = self._make_config()
        run1 = self._launch(config)
        self.assertEqual(run1.initialize_safe_mode(False), SafeModeState.NORMAL)
        with open(self._marker_path()) as f:
            self.assertEqual(f.read(), "1.2.3 main abcdef")
        # no boot_up_complete(): simulated crash

        config2 = self._make_config()
        original = config2.snapshot()
        run2 = self._launch(config2)
        with self.assertLogs(CONTROLLER_LOGGER, level="WARNING") as logs:
            state = run2.initialize_safe_mode(False)

        self.assertEqual(state, SafeModeState.SANDBOXED)
        self.assertTrue(run2.safe_mode_enabled())
        self.assertIn("Failed boot detected, entering safe mode!", logs.output[0])
        root = run2.sandbox_path
        self.assertEqual(os.path.dirname(root), self.sandbox_parent)
        for role in REDIRECTED_ROLES:
            self.assertTrue(config2[role].startswith(root + os.sep))
            self.assertNotEqual(config2[role], original[role])
            self.assertTrue(os.path.isdir(config2[role]))

        run2.teardown()
        self.assertFalse(os.path.exists(root))

    def test_boot_complete_clears_marker(self):
        """After a successful boot the next launch starts normally."""
        run1 = self._launch(self._make_config())
        run1.initialize_safe_mode(False)
        run2 = self._launch(self._make_config())
        run2.initialize_safe_mode(False)
        self.assertTrue(run2.safe_mode_enabled())

        run2.boot_up_complete()
        self.assertFalse(os.path.exists(self._marker_path()))
        self.assertTrue(run2.safe_mode_enabled())
        run2.teardown()

        run3 = self._launch(self._make_config(revision="1.2.4"))
        self.assertEqual(run3.initialize_safe_mode(False), SafeModeState.NORMAL)
        self.assertFalse(run3.safe_mode_enabled())

    def test_forced_safe_mode_without_warning(self):
        config = self._make_config()
        controller = self._launch(config)
        with self.assertLogs(CONTROLLER_LOGGER, level="INFO") as logs:
            state = controller.initialize_safe_mode(True)

        self.assertEqual(state, SafeModeState.SANDBOXED)
        self.assertTrue(all(r.levelno < logging.WARNING for r in logs.records))
        self.assertFalse(any("Failed boot detected" in line for line in logs.output))
        controller.teardown()

    def test_stale_marker_is_rewritten(self):
        run1 = self._launch(self._make_config())
        run1.initialize_safe_mode(False)
        os.utime(self._marker_path(), (0, 0))

        run2 = self._launch(self._make_config())
        run2.initialize_safe_mode(False)
        self.assertFalse(run2.safe_mode_enabled())
        self.assertGreater(os.path.getmtime(self._marker_path()), 0)

    def test_different_build_does_not_trigger(self):
        run1 = self._launch(self._make_config(hash_="abcdef"))
        run1.initialize_safe_mode(False)
        run2 = self._launch(self._make_config(hash_="fedcba"))
        self.assertEqual(run2.initialize_safe_mode(False), SafeModeState.NORMAL)

    def test_provision_failure_stays_normal(self):
        def failing_factory():
            raise SandboxError("no temp location")

        config = self._make_config()
        before = config.snapshot()
        controller = self._launch(config, sandbox_factory=failing_factory)

        self.assertEqual(controller.initialize_safe_mode(True), SafeModeState.NORMAL)
        self.assertFalse(controller.safe_mode_enabled())
        self.assertEqual(config.snapshot(), before)
        self.assertTrue(os.path.exists(self._marker_path()))

    def test_redirect_failure_releases_sandbox(self):
        config = self._make_config()
        before = config.snapshot()
        sandbox = MagicMock()
        sandbox.is_valid.return_value = True
        provisioner = MagicMock()
        provisioner.provision_sandbox.return_value = sandbox
        provisioner.redirect_paths.return_value = False
        detector = BootFailureDetector(
            config, marker=FileBootMarker(directory=self.marker_dir)
        )
        controller = SafeModeController(config, detector=detector, provisioner=provisioner)

        self.assertEqual(controller.initialize_safe_mode(True), SafeModeState.NORMAL)
        sandbox.release.assert_called_once_with()
        self.assertEqual(config.snapshot(), before)

    def test_initialize_twice_keeps_single_sandbox(self):
        controller = self._launch(self._make_config())
        controller.initialize_safe_mode(True)
        first = controller.sandbox_path
        controller.initialize_safe_mode(True)
        self.assertEqual(controller.sandbox_path, first)
        self.assertEqual(len(os.listdir(self.sandbox_parent)), 1)
        controller.teardown()

    def test_boot_up_complete_repeatable(self):
        controller = self._launch(self._make_config())
        controller.boot_up_complete()
        controller.initialize_safe_mode(False)
        controller.boot_up_complete()
        controller.boot_up_complete()
        self.assertFalse(os.path.exists(self._marker_path()))
        self.assertEqual(controller.state, SafeModeState.NORMAL)

    def test_teardown_without_sandbox(self):
        controller = self._launch(self._make_config())
        controller.initialize_safe_mode(False)
        controller.teardown()
        self.assertEqual(controller.state, SafeModeState.TORN_DOWN)
        self.assertFalse(controller.safe_mode_enabled())
        controller.teardown()
        self.assertEqual(controller.state, SafeModeState.TORN_DOWN)

    def test_initialize_after_teardown_stays_torn_down(self):
        config = self._make_config()
        before = config.snapshot()
        controller = self._launch(config)
        controller.teardown()

        self.assertEqual(controller.initialize_safe_mode(True), SafeModeState.TORN_DOWN)
        self.assertFalse(controller.safe_mode_enabled())
        self.assertIsNone(controller.sandbox_path)
        self.assertEqual(os.listdir(self.sandbox_parent), [])
        self.assertEqual(config.snapshot(), before)

    def test_context_manager_tears_down(self):
        with self._launch(self._make_config()) as controller:
            controller.initialize_safe_mode(True)
            root = controller.sandbox_path
            self.assertTrue(os.path.isdir(root))
        self.assertEqual(controller.state, SafeModeState.TORN_DOWN)
        self.assertFalse(os.path.exists(root))

    def test_status(self):
        controller = self._launch(self._make_config())
        controller.initialize_safe_mode(True)
        status = controller.get_status()

        self.assertTrue(status.enabled)
        self.assertEqual(status.state, "sandboxed")
        self.assertEqual(status.sandbox_path, controller.sandbox_path)
        self.assertEqual(status.marker_path, self._marker_path())
        self.assertEqual(status.build_identity, "1.2.3 main abcdef")
        self.assertEqual(sorted(status.redirected_paths), sorted(REDIRECTED_ROLES))
        controller.teardown()

        status = controller.get_status()
        self.assertFalse(status.enabled)
        self.assertIsNone(status.sandbox_path)
        self.assertEqual(status.redirected_paths, {})


if __name__ == "__main__":
    unittest.main()
