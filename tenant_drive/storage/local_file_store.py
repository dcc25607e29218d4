from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, List, Optional

from ..errors import Conflict, InvalidPath, IOFailure

logger = logging.getLogger(__name__)


@dataclass
class EntryStat:
    name: str
    size: int
    is_dir: bool
    modified: datetime


class LocalFileStore:
    """Disk-backed file primitives the storage services are built on.

    Paths handed to this class are already sandboxed; it never interprets
    client input itself.
    """

    def __init__(self, base_path: str, chunk_size: int = 1024 * 1024):
        self.base_path = Path(base_path).expanduser().resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.chunk_size = max(1, chunk_size)

    def list_entries(self, directory: Path) -> List[EntryStat]:
        try:
            with os.scandir(directory) as iterator:
                children = sorted(iterator, key=lambda entry: entry.name)
        except OSError as exc:
            raise IOFailure(f"Cannot read directory: {exc.strerror or exc}") from exc

        entries: List[EntryStat] = []
        for child in children:
            try:
                info = child.stat(follow_symlinks=False)
                is_dir = child.is_dir(follow_symlinks=False)
            except OSError as exc:
                # Unreadable entries are left out of the listing.
                logger.debug("Skipping unreadable entry %s: %s", child.path, exc)
                continue
            entries.append(
                EntryStat(
                    name=child.name,
                    size=info.st_size,
                    is_dir=is_dir,
                    modified=datetime.fromtimestamp(info.st_mtime, tz=timezone.utc),
                )
            )
        return entries

    def stat(self, path: Path) -> Optional[os.stat_result]:
        try:
            return path.stat()
        except FileNotFoundError:
            return None
        except NotADirectoryError:
            return None
        except OSError as exc:
            raise IOFailure(f"Cannot stat {path.name}: {exc.strerror or exc}") from exc

    def exists(self, path: Path) -> bool:
        return self.stat(path) is not None

    def make_dirs(self, path: Path) -> None:
        try:
            path.mkdir(parents=True, exist_ok=True)
        except (NotADirectoryError, FileExistsError) as exc:
            raise InvalidPath("A file is in the way of this directory") from exc
        except OSError as exc:
            raise IOFailure(f"Failed to create directory: {exc.strerror or exc}") from exc

    def make_dir(self, path: Path) -> None:
        """Create ``path`` (and parents); the leaf itself must not exist yet."""
        try:
            path.mkdir(parents=True, exist_ok=False)
        except FileExistsError as exc:
            raise Conflict("Directory already exists") from exc
        except NotADirectoryError as exc:
            raise InvalidPath("A file is in the way of this directory") from exc
        except OSError as exc:
            raise IOFailure(f"Failed to create directory: {exc.strerror or exc}") from exc

    def open_read(self, path: Path) -> BinaryIO:
        try:
            return path.open("rb")
        except OSError as exc:
            raise IOFailure(f"Cannot open {path.name}: {exc.strerror or exc}") from exc

    def create_write(self, path: Path) -> BinaryIO:
        try:
            return path.open("xb")
        except FileExistsError as exc:
            raise Conflict(f"{path.name} already exists") from exc
        except OSError as exc:
            raise IOFailure(f"Cannot create {path.name}: {exc.strerror or exc}") from exc

    def copy_stream(self, source: BinaryIO, target: BinaryIO) -> int:
        size_bytes = 0
        try:
            while True:
                chunk = source.read(self.chunk_size)
                if not chunk:
                    break
                target.write(chunk)
                size_bytes += len(chunk)
        except OSError as exc:
            raise IOFailure(f"Copy failed: {exc.strerror or exc}") from exc
        return size_bytes

    def remove_tree(self, path: Path) -> None:
        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink()
        except OSError as exc:
            raise IOFailure(f"Failed to delete: {exc.strerror or exc}") from exc

    def walk_sizes(self, root: Path) -> int:
        """Sum the sizes of every non-directory entry below ``root``."""

        def _raise(exc: OSError) -> None:
            raise exc

        total = 0
        try:
            for current, _dirs, files in os.walk(root, onerror=_raise):
                for name in files:
                    total += os.lstat(os.path.join(current, name)).st_size
        except OSError as exc:
            raise IOFailure(f"Failed to calculate space: {exc.strerror or exc}") from exc
        return total
