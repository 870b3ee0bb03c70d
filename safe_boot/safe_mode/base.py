"""
Base classes and interfaces for safe-mode implementations.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

# Marker file name, shared with existing installs
BOOT_MARKER_FILENAME = "FREECAD_BOOT_NOT_COMPLETE"

# Path roles redirected into the sandbox, in creation order
REDIRECTED_ROLES = (
    "UserAppData",
    "UserConfigPath",
    "UserCachePath",
    "AppTempPath",
    "UserMacroPath",
    "UserHomePath",
)

# Read-only keys that make up the build identity
BUILD_REVISION_KEY = "BuildRevision"
BUILD_BRANCH_KEY = "BuildRevisionBranch"
BUILD_HASH_KEY = "BuildRevisionHash"


class SandboxError(Exception):
    """Raised when an ephemeral sandbox directory cannot be created."""


@dataclass(frozen=True)
class MarkerRecord:
    """Contents of a boot marker as read back from storage (modified is UTC)."""

    content: str
    modified: datetime


class BootMarkerStore(ABC):
    """Abstract persisted-marker capability."""

    @abstractmethod
    def read(self) -> Optional[MarkerRecord]:
        """
        Read the marker.

        Returns:
            MarkerRecord, or None if the marker is absent or unreadable
        """
        pass

    @abstractmethod
    def write(self, content: str) -> bool:
        """Overwrite the marker with content. Returns False on failure."""
        pass

    @abstractmethod
    def delete(self) -> bool:
        """Remove the marker. Removing an absent marker succeeds."""
        pass


class EphemeralDirectory(ABC):
    """Abstract handle to a uniquely named, owned temporary directory."""

    @property
    @abstractmethod
    def path(self) -> str:
        """Absolute path of the directory root."""
        pass

    @abstractmethod
    def is_valid(self) -> bool:
        """True while the directory exists and has not been released."""
        pass

    @abstractmethod
    def release(self) -> None:
        """Delete the directory tree. Safe to call more than once."""
        pass
