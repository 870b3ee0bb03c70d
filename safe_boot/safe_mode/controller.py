"""
Safe-mode startup and shutdown protocol.
"""

import logging
from collections.abc import MutableMapping
from enum import Enum
from typing import Optional

from .base import EphemeralDirectory
from .boot_detector import BootFailureDetector
from .provisioner import SandboxProvisioner
from .status import SafeModeStatus

logger = logging.getLogger(__name__)


class SafeModeState(Enum):
    NORMAL = "normal"
    SANDBOXED = "sandboxed"
    TORN_DOWN = "torn_down"


class SafeModeController:
    """
    Detects crash loops at startup and switches user paths to a sandbox.

    Lifecycle, once per process:
        initialize_safe_mode() at startup
        boot_up_complete() once startup is stable
        teardown() before exit
    None of these raise.
    """

    def __init__(
        self,
        path_config: MutableMapping,
        detector: Optional[BootFailureDetector] = None,
        provisioner: Optional[SandboxProvisioner] = None,
    ):
        """
        Initialize the controller.

        Args:
            path_config: Shared path configuration, rewritten in safe mode
            detector: Boot failure detector (creates default if None)
            provisioner: Sandbox provisioner (creates default if None)
        """
        self.path_config = path_config
        self.detector = detector or BootFailureDetector(path_config)
        self.provisioner = provisioner or SandboxProvisioner()
        self._sandbox: Optional[EphemeralDirectory] = None
        self._state = SafeModeState.NORMAL
        self._initialized = False

    @property
    def state(self) -> SafeModeState:
        return self._state

    @property
    def sandbox_path(self) -> Optional[str]:
        return self._sandbox.path if self._sandbox else None

    def initialize_safe_mode(self, force_safe_mode: bool = False) -> SafeModeState:
        """
        Run the startup half of the protocol.

        Args:
            force_safe_mode: Enter safe mode even without a detected failure

        Returns:
            The resulting state
        """
        if self._state is SafeModeState.TORN_DOWN:
            logger.debug("Safe mode already torn down")
            return self._state
        if self._initialized:
            logger.debug("Safe mode already initialized")
            return self._state
        self._initialized = True

        boot_failed_previously = self.detector.detect_prior_failure()
        # Re-arm before anything else so a crash in this boot shows up next time
        self.detector.write_marker()

        if not (boot_failed_previously or force_safe_mode):
            return self._state

        sandbox = self.provisioner.provision_sandbox()
        if sandbox is None:
            return self._state

        if not self.provisioner.redirect_paths(sandbox, self.path_config):
            sandbox.release()
            return self._state

        self._sandbox = sandbox
        self._state = SafeModeState.SANDBOXED
        if boot_failed_previously:
            logger.warning("Failed boot detected, entering safe mode!")
        else:
            logger.info(f"Safe mode forced, user paths redirected to {sandbox.path}")
        return self._state

    def boot_up_complete(self):
        """Mark the current boot as successful."""
        self.detector.clear_marker()

    def safe_mode_enabled(self) -> bool:
        return self._state is SafeModeState.SANDBOXED

    def teardown(self):
        """Release the sandbox, deleting its directory tree."""
        if self._state is SafeModeState.TORN_DOWN:
            return
        if self._sandbox is not None:
            try:
                self._sandbox.release()
            except Exception as e:
                logger.warning(f"Failed to remove sandbox {self._sandbox.path}: {e}")
            self._sandbox = None
        self._state = SafeModeState.TORN_DOWN

    def get_status(self) -> SafeModeStatus:
        marker_path = getattr(self.detector.marker, "path", None)
        redirected = {}
        if self.safe_mode_enabled() and hasattr(self.path_config, "user_paths"):
            redirected = self.path_config.user_paths()
        return SafeModeStatus(
            state=self._state.value,
            enabled=self.safe_mode_enabled(),
            sandbox_path=self.sandbox_path,
            marker_path=marker_path,
            build_identity=self.detector.identity,
            redirected_paths=redirected,
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.teardown()
