"""
Shared path configuration store.
"""

from collections.abc import MutableMapping
from typing import Iterator, Optional

from .base import REDIRECTED_ROLES


class PathConfig(MutableMapping):
    """
    Key-value store mapping path-role names to filesystem paths.

    The application owns one instance and hands it by reference to the
    safe-mode components, which read the build keys and may rewrite the
    user path roles.
    """

    def __init__(self, values: Optional[dict[str, str]] = None):
        self._config: dict[str, str] = dict(values or {})

    def __getitem__(self, key: str) -> str:
        return self._config[key]

    def __setitem__(self, key: str, value: str):
        self._config[key] = str(value)

    def __delitem__(self, key: str):
        del self._config[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._config)

    def __len__(self) -> int:
        return len(self._config)

    def __repr__(self) -> str:
        return f"PathConfig({self._config!r})"

    def snapshot(self) -> dict[str, str]:
        """Return a plain copy of the current values."""
        return dict(self._config)

    def user_paths(self) -> dict[str, str]:
        """Get the current values of the redirectable path roles."""
        return {role: self._config[role] for role in REDIRECTED_ROLES if role in self._config}
