"""
Generated file model: used by all template renderers.
"""

from __future__ import annotations

from pydantic import BaseModel


class GeneratedFile(BaseModel):
    """A file rendered from a template and written to the host.

    Attributes:
        path:    Absolute destination path on the host.
        content: Full file content.
        mode:    Permission bits applied before the content is written.
        owner:   Owning user (None = root).
        reason:  Why this file exists.
    """

    path: str
    content: str
    mode: int = 0o644
    owner: str | None = None
    reason: str = ""
