"""Turns a caller's identity and optional share token into an authority."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..errors import Forbidden, InvalidPath, Unauthorized
from ..models import DelegatedAuthority, EffectiveAuthority, OwnedAuthority
from .capability_registry import CapabilityRegistry
from .path_sandbox import clean_logical_path, join_scoped

logger = logging.getLogger(__name__)


def _clean_requested(owner_id: str, requested_path: Optional[str]) -> str:
    try:
        return clean_logical_path(requested_path)
    except InvalidPath:
        logger.warning("Rejected path %r for tenant %s", requested_path, owner_id)
        raise


@dataclass
class IdentityResolver:
    registry: CapabilityRegistry

    def resolve(
        self,
        owner_id: Optional[str],
        requested_path: Optional[str] = "/",
        token: Optional[str] = None,
    ) -> EffectiveAuthority:
        """Resolve who the request acts as and where ``requested_path`` lands.

        A presented token always wins over the authenticated identity, so a
        logged-in user following someone else's link acts as the link's owner
        within the link's scope. An unknown or expired token is Unauthorized
        even when an identity is also present.
        """
        if token:
            share = self.registry.validate(token)
            if share is None:
                raise Unauthorized("Share link is invalid or expired")
            authority = DelegatedAuthority(share=share)
            view_path = _clean_requested(share.owner_id, requested_path)
            return EffectiveAuthority(
                authority=authority,
                view_path=view_path,
                tenant_path=join_scoped(share.path, view_path),
            )
        if not owner_id:
            raise Unauthorized("Unauthorized")
        view_path = _clean_requested(owner_id, requested_path)
        return EffectiveAuthority(
            authority=OwnedAuthority(owner_id=owner_id),
            view_path=view_path,
            tenant_path=view_path,
        )

    def resolve_owner(self, owner_id: Optional[str], token: Optional[str] = None) -> OwnedAuthority:
        """Resolve an operation only the tree's owner may perform directly."""
        if token:
            if self.registry.validate(token) is None:
                raise Unauthorized("Share link is invalid or expired")
            raise Forbidden("Not available through a share link")
        if not owner_id:
            raise Unauthorized("Unauthorized")
        return OwnedAuthority(owner_id=owner_id)
