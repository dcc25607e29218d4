from __future__ import annotations

import io
import shutil
from datetime import datetime, timedelta, timezone

import pytest

from tenant_drive.config import TenantDriveConfig
from tenant_drive.errors import Conflict, Forbidden, InvalidPath, NotFound, Unauthorized
from tenant_drive.runtime import TenantDriveRuntime
from tenant_drive.services import storage_service as storage_module


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


class _FailingStream:
    def __init__(self, good_bytes: bytes):
        self._good = good_bytes
        self._sent = False

    def read(self, size=-1):
        if not self._sent:
            self._sent = True
            return self._good
        raise OSError("connection reset")


def _runtime(tmp_path, clock=None):
    cfg = TenantDriveConfig.default()
    cfg.storage.root_dir = str(tmp_path / "uploads")
    return TenantDriveRuntime.bootstrap(cfg, clock=clock)


def _upload(runtime, owner, path, *names, token=None, body=b"payload"):
    return runtime.storage_service.upload(owner, path, [(name, io.BytesIO(body)) for name in names], token)


# list ---------------------------------------------------------------------


def test_list_on_fresh_tenant_creates_root_and_is_idempotent(tmp_path):
    runtime = _runtime(tmp_path)
    root = runtime.sandbox.tenant_root("u1")
    assert not root.exists()

    assert runtime.storage_service.list_directory("u1", "/") == []
    assert root.is_dir()
    assert runtime.storage_service.list_directory("u1", "/") == []


def test_list_reports_entries_with_caller_paths(tmp_path):
    runtime = _runtime(tmp_path)
    runtime.storage_service.mkdir("u1", "/", "docs")
    _upload(runtime, "u1", "/docs", "b.txt", body=b"12345")
    runtime.storage_service.mkdir("u1", "/docs", "archive")

    entries = runtime.storage_service.list_directory("u1", "/docs")
    assert [(e.name, e.path, e.is_dir) for e in entries] == [
        ("archive", "/docs/archive", True),
        ("b.txt", "/docs/b.txt", False),
    ]
    assert entries[1].size == 5
    assert entries[1].modified.tzinfo is not None

    link = runtime.registry.create("u1", "/docs", "read")
    shared = runtime.storage_service.list_directory(None, "/", link.token)
    assert [e.path for e in shared] == ["/archive", "/b.txt"]


def test_delegated_list_of_missing_directory_does_not_create_it(tmp_path):
    runtime = _runtime(tmp_path)
    runtime.storage_service.mkdir("u1", "/", "docs")
    link = runtime.sharing_service.create_share("u1", "/docs", "read")
    shutil.rmtree(runtime.sandbox.tenant_root("u1") / "docs")

    assert runtime.storage_service.list_directory(None, "/", link.token) == []
    assert not (runtime.sandbox.tenant_root("u1") / "docs").exists()


def test_list_of_a_file_is_invalid(tmp_path):
    runtime = _runtime(tmp_path)
    _upload(runtime, "u1", "/", "a.txt")
    with pytest.raises(InvalidPath):
        runtime.storage_service.list_directory("u1", "/a.txt")


def test_list_rejects_traversal(tmp_path):
    runtime = _runtime(tmp_path)
    with pytest.raises(InvalidPath):
        runtime.storage_service.list_directory("u1", "/a/../../u2")


# upload -------------------------------------------------------------------


def test_upload_collisions_pick_smallest_free_suffix(tmp_path):
    runtime = _runtime(tmp_path)
    names = [
        _upload(runtime, "u1", "/", "report.txt").uploaded[0].stored_name,
        _upload(runtime, "u1", "/", "report.txt").uploaded[0].stored_name,
        _upload(runtime, "u1", "/", "report.txt").uploaded[0].stored_name,
    ]
    assert names == ["report.txt", "report (1).txt", "report (2).txt"]

    result = _upload(runtime, "u1", "/", "notes", "notes")
    assert [item.stored_name for item in result.uploaded] == ["notes", "notes (1)"]
    assert result.uploaded[1].original_name == "notes"
    assert result.uploaded[1].path == "/notes (1)"


def test_upload_batch_skips_failures_and_counts_successes(tmp_path):
    runtime = _runtime(tmp_path)
    files = [
        ("good.txt", io.BytesIO(b"fine")),
        ("", io.BytesIO(b"nameless")),
        ("broken.bin", _FailingStream(b"partial")),
        ("also-good.txt", io.BytesIO(b"ok")),
    ]
    result = runtime.storage_service.upload("u1", "/", files)

    assert result.count == 2
    assert [item.stored_name for item in result.uploaded] == ["good.txt", "also-good.txt"]
    assert result.skipped == ["", "broken.bin"]
    root = runtime.sandbox.tenant_root("u1")
    assert not (root / "broken.bin").exists()
    assert (root / "good.txt").read_bytes() == b"fine"


def test_upload_strips_directory_components_from_names(tmp_path):
    runtime = _runtime(tmp_path)
    result = _upload(runtime, "u1", "/inbox", "../../evil.txt", "C:\\temp\\win.txt")

    assert [item.stored_name for item in result.uploaded] == ["evil.txt", "win.txt"]
    root = runtime.sandbox.tenant_root("u1")
    assert (root / "inbox" / "evil.txt").exists()
    assert not (tmp_path / "evil.txt").exists()


def test_upload_requires_write_permission(tmp_path):
    runtime = _runtime(tmp_path)
    runtime.storage_service.list_directory("u1", "/")
    read_link = runtime.registry.create("u1", "/", "read")
    odd_link = runtime.registry.create("u1", "/", "owner")

    for link in (read_link, odd_link):
        with pytest.raises(Forbidden):
            _upload(runtime, None, "/", "x.txt", token=link.token)

    write_link = runtime.registry.create("u1", "/", "write")
    assert _upload(runtime, "intruder", "/", "x.txt", token=write_link.token).count == 1
    assert (runtime.sandbox.tenant_root("u1") / "x.txt").exists()
    assert not runtime.sandbox.tenant_root("intruder").exists()


def test_upload_onto_a_file_path_is_invalid(tmp_path):
    runtime = _runtime(tmp_path)
    _upload(runtime, "u1", "/", "a.txt")
    with pytest.raises(InvalidPath):
        _upload(runtime, "u1", "/a.txt", "b.txt")


# download -----------------------------------------------------------------


def test_download_returns_regular_files_only(tmp_path):
    runtime = _runtime(tmp_path)
    _upload(runtime, "u1", "/docs", "a.txt", body=b"0123456789")

    target = runtime.storage_service.download("u1", "docs/a.txt")
    assert target.name == "a.txt"
    assert target.size_bytes == 10
    with runtime.storage_service.open_download(target) as handle:
        assert handle.read() == b"0123456789"

    with pytest.raises(InvalidPath):
        runtime.storage_service.download("u1", "/docs")
    with pytest.raises(NotFound):
        runtime.storage_service.download("u1", "/docs/missing.txt")


def test_download_through_file_scoped_share(tmp_path):
    runtime = _runtime(tmp_path)
    _upload(runtime, "u1", "/", "a.txt", body=b"abc")
    link = runtime.sharing_service.create_share("u1", "/a.txt", "read")

    assert runtime.storage_service.download(None, "/", link.token).size_bytes == 3
    with pytest.raises(NotFound):
        runtime.storage_service.download(None, "/other.txt", link.token)


# delete -------------------------------------------------------------------


def test_delete_root_always_fails(tmp_path):
    runtime = _runtime(tmp_path)
    runtime.storage_service.mkdir("u1", "/", "docs")
    root_link = runtime.registry.create("u1", "/", "write")
    docs_link = runtime.registry.create("u1", "/docs", "write")

    for owner, token in (("u1", None), (None, root_link.token), (None, docs_link.token)):
        for path in ("/", "", ".", "//"):
            with pytest.raises(Forbidden):
                runtime.storage_service.delete(owner, path, token)
    assert (runtime.sandbox.tenant_root("u1") / "docs").is_dir()


def test_delete_removes_files_and_trees(tmp_path):
    runtime = _runtime(tmp_path)
    _upload(runtime, "u1", "/docs/deep", "a.txt")
    _upload(runtime, "u1", "/", "b.txt")

    runtime.storage_service.delete("u1", "/b.txt")
    runtime.storage_service.delete("u1", "/docs")
    assert runtime.storage_service.list_directory("u1", "/") == []

    with pytest.raises(NotFound):
        runtime.storage_service.delete("u1", "/docs")


def test_delete_requires_write_permission(tmp_path):
    runtime = _runtime(tmp_path)
    _upload(runtime, "u1", "/", "a.txt")
    link = runtime.registry.create("u1", "/", "read")
    with pytest.raises(Forbidden):
        runtime.storage_service.delete(None, "/a.txt", link.token)


# mkdir --------------------------------------------------------------------


def test_mkdir_creates_once_then_conflicts(tmp_path):
    runtime = _runtime(tmp_path)
    assert runtime.storage_service.mkdir("u1", "/", "photos") == "/photos"
    assert (runtime.sandbox.tenant_root("u1") / "photos").is_dir()

    with pytest.raises(Conflict):
        runtime.storage_service.mkdir("u1", "/", "photos")

    _upload(runtime, "u1", "/", "file.txt")
    with pytest.raises(Conflict):
        runtime.storage_service.mkdir("u1", "/", "file.txt")


@pytest.mark.parametrize("name", ["", "   ", ".", "..", "a/b", "a\\b", "bad:name", "what?", "pipe|", "tab\tname"])
def test_mkdir_rejects_bad_names(tmp_path, name):
    runtime = _runtime(tmp_path)
    with pytest.raises(InvalidPath):
        runtime.storage_service.mkdir("u1", "/", name)


def test_mkdir_through_write_share_lands_inside_scope(tmp_path):
    runtime = _runtime(tmp_path)
    runtime.storage_service.mkdir("u1", "/", "docs")
    write_link = runtime.registry.create("u1", "/docs", "write")
    read_link = runtime.registry.create("u1", "/docs", "read")

    assert runtime.storage_service.mkdir(None, "/", "inner", write_link.token) == "/inner"
    assert (runtime.sandbox.tenant_root("u1") / "docs" / "inner").is_dir()

    with pytest.raises(Forbidden):
        runtime.storage_service.mkdir(None, "/", "nope", read_link.token)


# space --------------------------------------------------------------------


def test_space_is_owner_only(tmp_path):
    runtime = _runtime(tmp_path)
    _upload(runtime, "u1", "/", "a.txt", body=b"x" * 10)
    link = runtime.registry.create("u1", "/", "write")

    assert runtime.storage_service.space("u1").used == 10
    with pytest.raises(Forbidden):
        runtime.storage_service.space(None, link.token)
    with pytest.raises(Unauthorized):
        runtime.storage_service.space(None)


# end to end ---------------------------------------------------------------


def test_read_share_lifecycle(tmp_path):
    clock = FakeClock()
    runtime = _runtime(tmp_path, clock=clock)
    storage = runtime.storage_service

    assert _upload(runtime, "u1", "/", "a.txt", body=b"0123456789").count == 1
    link = runtime.sharing_service.create_share("u1", "/", "read", ttl_hours=1)

    listing = storage.list_directory(None, "/", link.token)
    assert [(e.name, e.size) for e in listing] == [("a.txt", 10)]
    target = storage.download(None, "a.txt", link.token)
    with storage.open_download(target) as handle:
        assert handle.read() == b"0123456789"

    with pytest.raises(Forbidden):
        storage.mkdir(None, "/", "new", link.token)
    with pytest.raises(Forbidden):
        _upload(runtime, None, "/", "b.txt", token=link.token)

    clock.now = link.expires_at + timedelta(seconds=1)
    with pytest.raises(Unauthorized):
        storage.list_directory(None, "/", link.token)
    with pytest.raises(Unauthorized):
        storage.download(None, "a.txt", link.token)
    with pytest.raises(Unauthorized):
        storage.list_directory("u1", "/", link.token)


# file in the way / races --------------------------------------------------


def test_file_used_as_parent_directory_is_invalid(tmp_path):
    runtime = _runtime(tmp_path)
    _upload(runtime, "u1", "/", "a.txt")

    with pytest.raises(InvalidPath):
        runtime.storage_service.mkdir("u1", "/a.txt", "sub")
    with pytest.raises(InvalidPath):
        _upload(runtime, "u1", "/a.txt/sub", "b.txt")
    assert (runtime.sandbox.tenant_root("u1") / "a.txt").is_file()


def test_name_taken_after_collision_check_skips_only_that_file(tmp_path, monkeypatch):
    runtime = _runtime(tmp_path)
    runtime.storage_service.list_directory("u1", "/")
    root = runtime.sandbox.tenant_root("u1")
    pick_name = storage_module.next_free_name

    def pick_then_lose_race(file_store, directory, name):
        chosen = pick_name(file_store, directory, name)
        if name == "race.txt":
            (directory / chosen).write_bytes(b"other writer")
        return chosen

    monkeypatch.setattr(storage_module, "next_free_name", pick_then_lose_race)
    result = _upload(runtime, "u1", "/", "race.txt", "calm.txt", body=b"mine")

    assert result.skipped == ["race.txt"]
    assert [item.stored_name for item in result.uploaded] == ["calm.txt"]
    assert (root / "race.txt").read_bytes() == b"other writer"
