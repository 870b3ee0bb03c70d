"""
Safe-mode status reporting.
"""

from typing import Optional

from pydantic import BaseModel
from rich.markdown import Markdown


class SafeModeStatus(BaseModel):
    state: str
    enabled: bool
    sandbox_path: Optional[str] = None
    marker_path: Optional[str] = None
    build_identity: str = ""
    redirected_paths: dict[str, str] = {}


def render_status(status: SafeModeStatus) -> Markdown:
    """Render a status snapshot as Markdown for console display."""
    status_text = f"""
# Safe Mode Status

**Enabled:** {"✅ Yes" if status.enabled else "❌ No"}
**State:** {status.state}
**Build:** {status.build_identity or "unknown"}
**Boot Marker:** {status.marker_path or "n/a"}
"""
    if status.sandbox_path:
        status_text += f"**Sandbox:** {status.sandbox_path}\n"

    if status.redirected_paths:
        status_text += "\n**Redirected Paths:**\n"
        for role, path in status.redirected_paths.items():
            status_text += f"  - {role}: {path}\n"

    return Markdown(status_text)
