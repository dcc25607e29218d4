"""Owner-facing share link management."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from ..errors import NotFound, Unauthorized
from ..models import ShareLink
from ..storage.local_file_store import LocalFileStore
from .base import BaseService
from .capability_registry import CapabilityRegistry
from .identity_resolver import IdentityResolver
from .path_sandbox import PathSandbox, clean_logical_path


@dataclass
class SharingService(BaseService):
    registry: CapabilityRegistry
    resolver: IdentityResolver
    sandbox: PathSandbox
    file_store: LocalFileStore

    def create_share(
        self,
        owner_id: Optional[str],
        path: Optional[str],
        permission: str,
        ttl_hours: float = 0,
        token: Optional[str] = None,
    ) -> ShareLink:
        authority = self.resolver.resolve_owner(owner_id, token)
        logical = clean_logical_path(path)
        physical = self.sandbox.resolve(authority.owner_id, logical)
        if not self.file_store.exists(physical):
            raise NotFound("Path not found")
        return self.registry.create(authority.owner_id, logical, permission, ttl_hours)

    def list_shares(self, owner_id: Optional[str], token: Optional[str] = None) -> List[ShareLink]:
        authority = self.resolver.resolve_owner(owner_id, token)
        return sorted(self.registry.list_for(authority.owner_id), key=lambda link: link.created_at)

    def revoke_share(self, owner_id: Optional[str], share_id: str, token: Optional[str] = None) -> None:
        authority = self.resolver.resolve_owner(owner_id, token)
        if not self.registry.revoke(authority.owner_id, share_id):
            raise NotFound("Share link not found")

    def describe_share(self, token: Optional[str]) -> ShareLink:
        link = self.registry.validate(token)
        if link is None:
            raise Unauthorized("Share link is invalid or expired")
        return link
