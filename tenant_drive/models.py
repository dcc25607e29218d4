"""Data models shared across the storage services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

PERMISSION_READ = "read"
PERMISSION_WRITE = "write"
PERMISSION_NONE = ""

GIB = float(1 << 30)


def normalize_permission(value: Optional[str]) -> str:
    """Map anything other than ``read``/``write`` to the empty permission."""
    if value in (PERMISSION_READ, PERMISSION_WRITE):
        return value
    return PERMISSION_NONE


@dataclass(frozen=True)
class ShareLink:
    id: str
    token: str
    owner_id: str
    path: str
    permission: str
    created_at: datetime
    expires_at: datetime

    def is_valid_at(self, now: datetime) -> bool:
        return now < self.expires_at


@dataclass(frozen=True)
class OwnedAuthority:
    """The caller acts on their own tree with full rights."""

    owner_id: str

    is_delegated = False

    @property
    def base_path(self) -> str:
        return "/"

    @property
    def permission(self) -> str:
        return PERMISSION_WRITE


@dataclass(frozen=True)
class DelegatedAuthority:
    """The caller presented a share link; everything is scoped to it."""

    share: ShareLink

    is_delegated = True

    @property
    def owner_id(self) -> str:
        return self.share.owner_id

    @property
    def base_path(self) -> str:
        return self.share.path

    @property
    def permission(self) -> str:
        return self.share.permission


Authority = Union[OwnedAuthority, DelegatedAuthority]


@dataclass(frozen=True)
class EffectiveAuthority:
    """Authority plus the request path, expressed both ways.

    ``view_path`` is what the caller named (cleaned); ``tenant_path`` is the
    same location relative to the owner's storage root.
    """

    authority: Authority
    view_path: str
    tenant_path: str

    @property
    def owner_id(self) -> str:
        return self.authority.owner_id

    @property
    def base_path(self) -> str:
        return self.authority.base_path

    @property
    def permission(self) -> str:
        return self.authority.permission

    @property
    def is_delegated(self) -> bool:
        return self.authority.is_delegated

    @property
    def can_write(self) -> bool:
        return self.authority.permission == PERMISSION_WRITE


@dataclass
class FileInfo:
    name: str
    path: str
    size: int
    is_dir: bool
    modified: datetime


@dataclass
class SpaceInfo:
    used: int
    max: int
    used_gb: float
    max_gb: float
    percent: float

    @classmethod
    def from_usage(cls, used: int, max_bytes: int) -> "SpaceInfo":
        percent = (used / max_bytes * 100.0) if max_bytes > 0 else 0.0
        return cls(
            used=used,
            max=max_bytes,
            used_gb=used / GIB,
            max_gb=max_bytes / GIB,
            percent=percent,
        )


@dataclass
class UploadedFile:
    original_name: str
    stored_name: str
    path: str
    size_bytes: int


@dataclass
class UploadResult:
    uploaded: List[UploadedFile] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.uploaded)


@dataclass
class DownloadTarget:
    name: str
    size_bytes: int
    physical_path: Path


@dataclass
class ObservabilityEvent:
    event_type: str
    message: str
    attributes: Optional[dict] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
