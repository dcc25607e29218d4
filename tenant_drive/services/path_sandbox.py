"""Tenant path sandboxing.

Every storage operation turns a client-supplied logical path into a physical
location through :class:`PathSandbox`; nothing else builds physical paths.
"""

from __future__ import annotations

import logging
import os
import posixpath
from dataclasses import dataclass
from pathlib import Path

from ..errors import InvalidPath

logger = logging.getLogger(__name__)

_FORBIDDEN_OWNER_CHARS = ("/", "\\", "\x00")


def clean_logical_path(logical_path: str | None) -> str:
    """Return the normalized, ``/``-rooted form of ``logical_path``.

    Any ``..`` segment is rejected outright rather than resolved, both in the
    raw input and in the cleaned result.
    """
    raw = (logical_path or "").replace("\\", "/")
    if "\x00" in raw:
        raise InvalidPath("Invalid path")
    if any(segment == ".." for segment in raw.split("/")):
        raise InvalidPath("Path traversal attempt")
    cleaned = posixpath.normpath("/" + raw.lstrip("/"))
    if cleaned.startswith("..") or "../" in cleaned or cleaned.endswith("/.."):
        raise InvalidPath("Path traversal attempt")
    return cleaned


def join_scoped(base_path: str, view_path: str | None) -> str:
    """Place ``view_path`` underneath ``base_path``, both cleaned."""
    base = clean_logical_path(base_path)
    view = clean_logical_path(view_path)
    if view == "/":
        return base
    return clean_logical_path(posixpath.join(base, view.lstrip("/")))


@dataclass
class PathSandbox:
    root_dir: Path

    def __post_init__(self) -> None:
        self.root_dir = Path(self.root_dir).expanduser().resolve()

    def tenant_root(self, owner_id: str) -> Path:
        if not owner_id or owner_id in (".", "..") or any(ch in owner_id for ch in _FORBIDDEN_OWNER_CHARS):
            raise InvalidPath("Invalid owner id")
        return self.root_dir / owner_id

    def resolve(self, owner_id: str, logical_path: str | None) -> Path:
        tenant_root = self.tenant_root(owner_id)
        try:
            cleaned = clean_logical_path(logical_path)
        except InvalidPath:
            logger.warning("Rejected path %r for tenant %s", logical_path, owner_id)
            raise
        physical = tenant_root.joinpath(cleaned[1:]) if cleaned != "/" else tenant_root
        if os.path.commonpath([str(tenant_root), str(physical)]) != str(tenant_root):
            raise InvalidPath("Path traversal attempt")
        return physical

    def is_tenant_root(self, owner_id: str, physical: Path) -> bool:
        return physical == self.tenant_root(owner_id)
