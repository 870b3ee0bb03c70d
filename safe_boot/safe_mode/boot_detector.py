"""
Boot failure detection through a persisted marker file.

A marker holding the running build's identity is written at the start of
every boot and removed once the application reports a stable startup. A
fresh marker left behind for the same build means the previous boot never
got that far.
"""

import logging
import os
import tempfile
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from safe_boot.config import get_boot_marker_dir, get_boot_marker_max_age_hours

from .base import (
    BOOT_MARKER_FILENAME,
    BUILD_BRANCH_KEY,
    BUILD_HASH_KEY,
    BUILD_REVISION_KEY,
    BootMarkerStore,
    MarkerRecord,
)

logger = logging.getLogger(__name__)


def build_identity(path_config: Mapping) -> str:
    """
    Build the identity string of the running build.

    The revision is always present; branch and hash are appended, space
    separated, only when their keys exist in the configuration.
    """
    identity = path_config.get(BUILD_REVISION_KEY, "")
    if BUILD_BRANCH_KEY in path_config:
        identity += " " + path_config[BUILD_BRANCH_KEY]
    if BUILD_HASH_KEY in path_config:
        identity += " " + path_config[BUILD_HASH_KEY]
    return identity


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FileBootMarker(BootMarkerStore):
    """Boot marker stored as a plain text file at a fixed location."""

    def __init__(
        self,
        directory: Optional[str] = None,
        filename: str = BOOT_MARKER_FILENAME,
    ):
        """
        Initialize the marker location.

        Args:
            directory: Directory holding the marker (default: configured
                boot_marker_dir, else the OS temp directory)
            filename: Marker file name
        """
        if directory is None:
            directory = get_boot_marker_dir() or tempfile.gettempdir()
        self._path = os.path.join(directory, filename)

    @property
    def path(self) -> str:
        return self._path

    def read(self) -> Optional[MarkerRecord]:
        try:
            modified = datetime.fromtimestamp(os.stat(self._path).st_mtime, tz=timezone.utc)
            with open(self._path, encoding="utf-8") as f:
                content = f.read()
        except (OSError, UnicodeDecodeError, ValueError, OverflowError) as e:
            if not isinstance(e, FileNotFoundError):
                logger.debug(f"Boot marker unreadable, treating as absent: {e}")
            return None
        return MarkerRecord(content=content, modified=modified)

    def write(self, content: str) -> bool:
        try:
            with open(self._path, "w", encoding="utf-8") as f:
                f.write(content)
        except OSError as e:
            logger.debug(f"Could not write boot marker {self._path}: {e}")
            return False
        return True

    def delete(self) -> bool:
        try:
            os.remove(self._path)
        except FileNotFoundError:
            return True
        except OSError as e:
            logger.debug(f"Could not remove boot marker {self._path}: {e}")
            return False
        return True


class BootFailureDetector:
    """Decides whether the previous launch failed to finish booting."""

    def __init__(
        self,
        path_config: Mapping,
        marker: Optional[BootMarkerStore] = None,
        max_age: Optional[timedelta] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the detector.

        Args:
            path_config: Shared configuration holding the build keys
            marker: Marker storage (default: FileBootMarker in the temp dir)
            max_age: Age after which a marker is ignored (default: 12 hours)
            clock: Returns the current time as an aware UTC datetime
                (mainly for testing)
        """
        self.path_config = path_config
        self.marker = marker if marker is not None else FileBootMarker()
        if max_age is None:
            max_age = timedelta(hours=get_boot_marker_max_age_hours())
        self.max_age = max_age
        self._clock = clock or _utc_now

    @property
    def identity(self) -> str:
        return build_identity(self.path_config)

    def detect_prior_failure(self) -> bool:
        """
        Check whether a fresh marker for this build was left behind.

        Returns:
            True only if the marker exists, is no older than max_age and
            holds exactly the current build identity
        """
        record = self.marker.read()
        if record is None:
            return False

        age = self._clock() - record.modified
        if age > self.max_age:
            logger.debug(f"Ignoring stale boot marker (age {age})")
            return False

        if record.content != self.identity:
            logger.debug("Ignoring boot marker written by a different build")
            return False

        return True

    def write_marker(self):
        """Record that a boot attempt has started. Failures are ignored."""
        self.marker.write(self.identity)

    def clear_marker(self):
        """Record that the boot completed. Safe to call repeatedly."""
        self.marker.delete()
