"""
Safe-mode module for safe-boot.

Detects a startup that crashed before completing and, on the next launch,
redirects all user data paths into a throwaway directory tree so the
application can start even with corrupted settings or caches.

Provides:
- Boot marker: a sentinel file written at startup and removed once stable
- Sandbox: an OS temporary directory owned by the controller
- Controller: the startup/shutdown protocol tying both together
"""

from .base import REDIRECTED_ROLES, SandboxError
from .boot_detector import BootFailureDetector, FileBootMarker, build_identity
from .controller import SafeModeController, SafeModeState
from .path_config import PathConfig
from .provisioner import SandboxProvisioner, TemporaryDirectorySandbox
from .status import SafeModeStatus, render_status

__all__ = [
    "REDIRECTED_ROLES",
    "SandboxError",
    "BootFailureDetector",
    "FileBootMarker",
    "build_identity",
    "SafeModeController",
    "SafeModeState",
    "PathConfig",
    "SandboxProvisioner",
    "TemporaryDirectorySandbox",
    "SafeModeStatus",
    "render_status",
]
