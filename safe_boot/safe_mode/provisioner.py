"""
Ephemeral sandbox creation and user path redirection.
"""

import logging
import os
import shutil
import tempfile
from collections.abc import MutableMapping
from typing import Callable, Optional

from safe_boot.config import get_sandbox_parent_dir

from .base import REDIRECTED_ROLES, EphemeralDirectory, SandboxError

logger = logging.getLogger(__name__)

SANDBOX_PREFIX = "safe_boot-"


class TemporaryDirectorySandbox(EphemeralDirectory):
    """Uniquely named OS temporary directory, removed on release()."""

    def __init__(self, path: str):
        self._path = path
        self._released = False

    @classmethod
    def create(
        cls,
        prefix: str = SANDBOX_PREFIX,
        dir: Optional[str] = None,
    ) -> "TemporaryDirectorySandbox":
        """
        Create a new sandbox directory.

        Args:
            prefix: Name prefix for the directory
            dir: Parent directory (default: the OS temp directory)

        Raises:
            SandboxError: If the directory could not be created
        """
        try:
            path = tempfile.mkdtemp(prefix=prefix, dir=dir)
        except OSError as e:
            raise SandboxError(f"Could not create sandbox directory: {e}") from e
        return cls(path)

    @property
    def path(self) -> str:
        return self._path

    def is_valid(self) -> bool:
        return not self._released and os.path.isdir(self._path)

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        shutil.rmtree(self._path, ignore_errors=True)
        logger.debug(f"Removed sandbox directory {self._path}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()

    def __repr__(self) -> str:
        return f"TemporaryDirectorySandbox({self._path!r})"


def _default_sandbox_factory() -> EphemeralDirectory:
    return TemporaryDirectorySandbox.create(dir=get_sandbox_parent_dir())


class SandboxProvisioner:
    """Creates the safe-mode sandbox and points user paths inside it."""

    def __init__(self, sandbox_factory: Optional[Callable[[], EphemeralDirectory]] = None):
        """
        Initialize the provisioner.

        Args:
            sandbox_factory: Creates a new sandbox or raises SandboxError
                (default: TemporaryDirectorySandbox.create)
        """
        self.sandbox_factory = sandbox_factory or _default_sandbox_factory

    def provision_sandbox(self) -> Optional[EphemeralDirectory]:
        """
        Create a fresh sandbox directory.

        Returns:
            The sandbox handle, or None if the OS could not provide one
        """
        try:
            sandbox = self.sandbox_factory()
        except SandboxError as e:
            logger.warning(f"Safe mode unavailable: {e}")
            return None

        if not sandbox.is_valid():
            logger.warning("Safe mode unavailable: sandbox directory is not usable")
            sandbox.release()
            return None

        logger.debug(f"Provisioned sandbox at {sandbox.path}")
        return sandbox

    def redirect_paths(self, sandbox: EphemeralDirectory, path_config: MutableMapping) -> bool:
        """
        Point every user path role at its own directory inside the sandbox.

        Either all roles are redirected or, if any directory cannot be
        created, none are and the directories made so far are removed.

        Args:
            sandbox: Sandbox to redirect into
            path_config: Shared configuration to rewrite

        Returns:
            True if all roles were redirected
        """
        created = []
        redirected = {}
        try:
            for role in REDIRECTED_ROLES:
                role_dir = os.path.join(sandbox.path, role)
                if not os.path.isdir(role_dir):
                    os.makedirs(role_dir, exist_ok=True)
                    created.append(role_dir)
                redirected[role] = role_dir + os.sep
        except OSError as e:
            logger.warning(f"Could not prepare sandbox directory for safe mode: {e}")
            for role_dir in reversed(created):
                shutil.rmtree(role_dir, ignore_errors=True)
            return False

        path_config.update(redirected)
        return True
