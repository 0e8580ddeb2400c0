import os
import shutil

from conftest import read_file, write_file
from selfpatch.core import self_updater
from selfpatch.core.self_updater import apply_staged_files, cleanup_backups, cleanup_staging


def test_apply_staged_files_overwrites_live_tree(tmp_path):
    staging, root = tmp_path / "staging", tmp_path / "root"
    write_file(staging, "app.exe", b"v2")
    write_file(staging, "plugins/extra.dll", b"new plugin")
    write_file(root, "app.exe", b"v1")
    write_file(root, "keep.cfg", b"user config")

    assert apply_staged_files(str(staging), str(root)) == (2, 0)

    assert read_file(root, "app.exe") == b"v2"
    assert read_file(root, "plugins/extra.dll") == b"new plugin"
    assert read_file(root, "keep.cfg") == b"user config"


def test_locked_file_is_renamed_aside(tmp_path, monkeypatch):
    staging, root = tmp_path / "staging", tmp_path / "root"
    write_file(staging, "app.exe", b"v2")
    locked = write_file(root, "app.exe", b"v1")

    real_copy = shutil.copy2
    calls = []

    def copy_locked_once(src, dest):
        calls.append(dest)
        if len(calls) == 1:
            raise PermissionError("in use")
        return real_copy(src, dest)

    monkeypatch.setattr(self_updater.shutil, "copy2", copy_locked_once)

    assert apply_staged_files(str(staging), str(root)) == (1, 1)
    assert read_file(root, "app.exe") == b"v2"
    with open(locked + ".bak", "rb") as f:
        assert f.read() == b"v1"


def test_cleanup_backups_and_staging(tmp_path):
    root, staging = tmp_path / "root", tmp_path / "staging"
    write_file(root, "app.exe.bak", b"old")
    write_file(root, "sub/lib.dll.bak", b"old")
    write_file(root, "app.exe", b"new")
    write_file(staging, "app.exe", b"new")

    assert cleanup_backups(str(root)) == 2
    assert os.listdir(root / "sub") == []
    assert read_file(root, "app.exe") == b"new"

    cleanup_staging(str(staging))
    assert not staging.exists()
