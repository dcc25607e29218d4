"""List/upload/download/delete/mkdir over a tenant's tree."""

from __future__ import annotations

import logging
import os
import posixpath
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterable, List, Optional, Tuple

from ..errors import Conflict, Forbidden, InvalidPath, NotFound, TenantDriveError
from ..models import (
    PERMISSION_WRITE,
    DelegatedAuthority,
    DownloadTarget,
    EffectiveAuthority,
    FileInfo,
    OwnedAuthority,
    SpaceInfo,
    UploadedFile,
    UploadResult,
)
from ..storage.local_file_store import LocalFileStore
from .base import BaseService
from .identity_resolver import IdentityResolver
from .path_sandbox import PathSandbox
from .quota_service import QuotaAccountant

logger = logging.getLogger(__name__)

RESERVED_NAME_CHARS = frozenset('<>:"/\\|?*')


def require_write(ctx: EffectiveAuthority) -> None:
    authority = ctx.authority
    if isinstance(authority, OwnedAuthority):
        return
    if isinstance(authority, DelegatedAuthority):
        if authority.permission == PERMISSION_WRITE:
            return
        raise Forbidden("Write permission required")
    raise TypeError(f"Unknown authority type: {type(authority).__name__}")


def validate_entry_name(name: Optional[str]) -> str:
    """Reject names that are empty, relative markers, or carry reserved characters."""
    candidate = (name or "").strip()
    if not candidate or candidate in (".", ".."):
        raise InvalidPath("Invalid name")
    if any(ch in RESERVED_NAME_CHARS or ord(ch) < 32 for ch in candidate):
        raise InvalidPath("Name contains reserved characters")
    return candidate


def upload_name(filename: Optional[str]) -> str:
    base = (filename or "").replace("\\", "/").rsplit("/", 1)[-1]
    return validate_entry_name(base)


def next_free_name(file_store: LocalFileStore, directory: Path, name: str) -> str:
    """Return ``name`` or the first free ``base (n).ext`` with ``n >= 1``."""
    if not file_store.exists(directory / name):
        return name
    base, ext = os.path.splitext(name)
    index = 1
    while True:
        candidate = f"{base} ({index}){ext}"
        if not file_store.exists(directory / candidate):
            return candidate
        index += 1


@dataclass
class StorageService(BaseService):
    resolver: IdentityResolver
    sandbox: PathSandbox
    file_store: LocalFileStore
    quota: QuotaAccountant

    def _physical(self, ctx: EffectiveAuthority) -> Path:
        return self.sandbox.resolve(ctx.owner_id, ctx.tenant_path)

    def list_directory(
        self,
        owner_id: Optional[str],
        path: Optional[str] = "/",
        token: Optional[str] = None,
    ) -> List[FileInfo]:
        ctx = self.resolver.resolve(owner_id, path, token)
        physical = self._physical(ctx)
        info = self.file_store.stat(physical)
        if info is None:
            if not ctx.is_delegated:
                self.file_store.make_dirs(physical)
            return []
        if not stat.S_ISDIR(info.st_mode):
            raise InvalidPath("Not a directory")
        return [
            FileInfo(
                name=entry.name,
                path=posixpath.join(ctx.view_path, entry.name),
                size=entry.size,
                is_dir=entry.is_dir,
                modified=entry.modified,
            )
            for entry in self.file_store.list_entries(physical)
        ]

    def upload(
        self,
        owner_id: Optional[str],
        path: Optional[str],
        files: Iterable[Tuple[str, BinaryIO]],
        token: Optional[str] = None,
    ) -> UploadResult:
        """Store each ``(filename, stream)`` pair under ``path``.

        Name collisions get ``base (n).ext``. A file that cannot be stored is
        skipped and recorded in ``UploadResult.skipped``; the batch goes on.
        """
        ctx = self.resolver.resolve(owner_id, path, token)
        require_write(ctx)
        directory = self._physical(ctx)
        info = self.file_store.stat(directory)
        if info is not None and not stat.S_ISDIR(info.st_mode):
            raise InvalidPath("Not a directory")
        self.file_store.make_dirs(directory)

        result = UploadResult()
        for filename, stream in files:
            try:
                stored = self._store_one(ctx, directory, filename, stream)
            except TenantDriveError as exc:
                logger.warning("Skipping upload of %r for %s: %s", filename, ctx.owner_id, exc)
                result.skipped.append(filename or "")
                continue
            result.uploaded.append(stored)

        self.emit_event(
            "upload_completed",
            owner_id=ctx.owner_id,
            uploaded=result.count,
            skipped=len(result.skipped),
        )
        return result

    def _store_one(self, ctx: EffectiveAuthority, directory: Path, filename: str, stream: BinaryIO) -> UploadedFile:
        name = upload_name(filename)
        stored_name = next_free_name(self.file_store, directory, name)
        target_path = directory / stored_name
        with self.file_store.create_write(target_path) as target:
            try:
                size_bytes = self.file_store.copy_stream(stream, target)
            except TenantDriveError:
                target.close()
                self._discard_partial(target_path)
                raise
        return UploadedFile(
            original_name=filename,
            stored_name=stored_name,
            path=posixpath.join(ctx.view_path, stored_name),
            size_bytes=size_bytes,
        )

    def _discard_partial(self, target_path: Path) -> None:
        try:
            self.file_store.remove_tree(target_path)
        except TenantDriveError as exc:
            logger.warning("Could not remove partial upload %s: %s", target_path.name, exc)

    def download(
        self,
        owner_id: Optional[str],
        path: Optional[str],
        token: Optional[str] = None,
    ) -> DownloadTarget:
        ctx = self.resolver.resolve(owner_id, path, token)
        physical = self._physical(ctx)
        info = self.file_store.stat(physical)
        if info is None:
            raise NotFound("File not found")
        if stat.S_ISDIR(info.st_mode):
            raise InvalidPath("Cannot download directory")
        if not stat.S_ISREG(info.st_mode):
            raise InvalidPath("Not a regular file")
        return DownloadTarget(name=physical.name, size_bytes=info.st_size, physical_path=physical)

    def open_download(self, target: DownloadTarget) -> BinaryIO:
        return self.file_store.open_read(target.physical_path)

    def delete(
        self,
        owner_id: Optional[str],
        path: Optional[str],
        token: Optional[str] = None,
    ) -> None:
        ctx = self.resolver.resolve(owner_id, path, token)
        require_write(ctx)
        physical = self._physical(ctx)
        if ctx.view_path == "/" or self.sandbox.is_tenant_root(ctx.owner_id, physical):
            raise Forbidden("Cannot delete root")
        if self.file_store.stat(physical) is None and not physical.is_symlink():
            raise NotFound("Not found")
        self.file_store.remove_tree(physical)
        logger.info("Deleted %s for %s", ctx.tenant_path, ctx.owner_id)
        self.emit_event("deleted", owner_id=ctx.owner_id, path=ctx.tenant_path)

    def mkdir(
        self,
        owner_id: Optional[str],
        path: Optional[str],
        name: Optional[str],
        token: Optional[str] = None,
    ) -> str:
        ctx = self.resolver.resolve(owner_id, path, token)
        require_write(ctx)
        dir_name = validate_entry_name(name)
        target = self._physical(ctx) / dir_name
        if self.file_store.exists(target):
            raise Conflict("Directory already exists")
        self.file_store.make_dir(target)
        self.emit_event("directory_created", owner_id=ctx.owner_id, name=dir_name)
        return posixpath.join(ctx.view_path, dir_name)

    def space(self, owner_id: Optional[str], token: Optional[str] = None) -> SpaceInfo:
        authority = self.resolver.resolve_owner(owner_id, token)
        return self.quota.usage(authority.owner_id)
