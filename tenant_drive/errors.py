"""Error taxonomy raised by the storage core.

Every core operation either returns its value or raises exactly one of the
classes below. Adapters translate ``kind`` into a protocol status; the core
only classifies.
"""

from __future__ import annotations


class TenantDriveError(Exception):
    kind = "error"


class InvalidPath(TenantDriveError):
    """Traversal attempt or malformed path segment."""

    kind = "invalid_path"


class Unauthorized(TenantDriveError):
    """No identity, or an unknown/expired share token."""

    kind = "unauthorized"


class Forbidden(TenantDriveError):
    """Identity is known but its permission is insufficient."""

    kind = "forbidden"


class NotFound(TenantDriveError):
    kind = "not_found"


class Conflict(TenantDriveError):
    kind = "conflict"


class IOFailure(TenantDriveError):
    """The underlying file I/O layer failed."""

    kind = "io_failure"
