"""Per-tenant space accounting."""

from __future__ import annotations

import time
from dataclasses import dataclass

from ..models import SpaceInfo
from ..storage.local_file_store import LocalFileStore
from .base import BaseService
from .path_sandbox import PathSandbox


@dataclass
class QuotaAccountant(BaseService):
    """Reports used/max space by walking the tenant tree on every call.

    The ceiling is advisory; nothing here blocks a write that exceeds it.
    """

    sandbox: PathSandbox
    file_store: LocalFileStore

    def usage(self, owner_id: str) -> SpaceInfo:
        max_bytes = self.config.storage.max_bytes_per_tenant
        tenant_root = self.sandbox.tenant_root(owner_id)
        if not self.file_store.exists(tenant_root):
            return SpaceInfo.from_usage(0, max_bytes)

        started = time.perf_counter()
        used = self.file_store.walk_sizes(tenant_root)
        self.emit_metric("quota.walk_ms", (time.perf_counter() - started) * 1000, owner_id=owner_id)
        info = SpaceInfo.from_usage(used, max_bytes)
        if info.percent >= 100.0:
            self.emit_event("quota_exceeded", owner_id=owner_id, used=used)
        return info
