"""Per-tenant sandboxed file storage with share-link delegation."""

from .config import TenantDriveConfig  # noqa: F401
from .runtime import TenantDriveRuntime  # noqa: F401
