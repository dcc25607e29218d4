"""In-memory registry of share links (capability tokens)."""

from __future__ import annotations

import logging
import secrets
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from ..models import ShareLink, normalize_permission
from .base import BaseService
from .path_sandbox import clean_logical_path

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CapabilityRegistry(BaseService):
    """Issues, validates, enumerates and revokes share links.

    Links are keyed by their full token. Expiry is lazy: ``validate`` and
    ``list_for`` ignore expired entries without removing them, and only
    ``sweep_expired`` (or ``revoke``) mutates the map. The lock guards the
    map access only.
    """

    clock: Callable[[], datetime] = _utcnow
    _links: Dict[str, ShareLink] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def create(self, owner_id: str, path: str, permission: str, ttl_hours: float = 0) -> ShareLink:
        if not owner_id:
            raise ValueError("owner_id is required")
        if ttl_hours is None or ttl_hours <= 0:
            ttl_hours = self.config.sharing.default_ttl_hours
        now = self.clock()
        link = ShareLink(
            id=secrets.token_hex(self.config.sharing.id_bytes),
            token=secrets.token_hex(self.config.sharing.token_bytes),
            owner_id=owner_id,
            path=clean_logical_path(path),
            permission=normalize_permission(permission),
            created_at=now,
            expires_at=now + timedelta(hours=ttl_hours),
        )
        with self._lock:
            self._links[link.token] = link
        logger.info("Share %s created by %s for %s (%s)", link.id, owner_id, link.path, link.permission or "none")
        self.emit_event("share_created", share_id=link.id, owner_id=owner_id, permission=link.permission)
        return link

    def validate(self, token: Optional[str]) -> Optional[ShareLink]:
        """Return the link for ``token`` or ``None`` when unknown or expired."""
        if not token:
            return None
        with self._lock:
            link = self._links.get(token)
        if link is None or not link.is_valid_at(self.clock()):
            return None
        return link

    def list_for(self, owner_id: str) -> List[ShareLink]:
        now = self.clock()
        with self._lock:
            links = list(self._links.values())
        return [link for link in links if link.owner_id == owner_id and link.is_valid_at(now)]

    def revoke(self, owner_id: str, share_id: str) -> bool:
        with self._lock:
            matches = [
                token
                for token, link in self._links.items()
                if link.id == share_id and link.owner_id == owner_id
            ]
            for token in matches:
                del self._links[token]
        if matches:
            logger.info("Share %s revoked by %s", share_id, owner_id)
            self.emit_event("share_revoked", share_id=share_id, owner_id=owner_id)
        return bool(matches)

    def sweep_expired(self) -> int:
        now = self.clock()
        with self._lock:
            expired = [token for token, link in self._links.items() if not link.is_valid_at(now)]
            for token in expired:
                del self._links[token]
        if expired:
            logger.debug("Swept %d expired share links", len(expired))
            self.emit_metric("shares.swept", float(len(expired)))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._links)


class CapabilitySweeper:
    """Background thread pruning expired links at a fixed interval."""

    def __init__(self, registry: CapabilityRegistry, interval_seconds: float):
        self.registry = registry
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running or self.interval_seconds <= 0:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="share-sweeper", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval_seconds + 1)
        self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            self.registry.sweep_expired()
