import json
import logging

import pytest

from conftest import BASE_URL, FakeRemote, make_item, read_file, write_file
from selfpatch import main as cli


@pytest.fixture
def env(tmp_path, monkeypatch):
    """Settings file, live root and a manifest with one stale file."""
    root = tmp_path / "app"
    item, payload = make_item("bin/tool.exe", b"tool v2")
    write_file(root, "bin/tool.exe", b"tool v1")

    manifest = tmp_path / "version.json"
    manifest.write_text(json.dumps({
        "version": "2.0.0",
        "base_download_url": BASE_URL,
        "files": [{"path": item.path, "size": item.size, "md5": item.md5,
                   "compressed_size": item.compressed_size,
                   "compressed_md5": item.compressed_md5}],
    }), encoding="utf-8")

    settings = tmp_path / "settings.json"
    settings.write_text(json.dumps({
        "data_dir": str(tmp_path / "data"),
        "root_path": str(root),
        "manifest_url": str(manifest),
        "check_free_space": False,
    }), encoding="utf-8")

    fake = FakeRemote({BASE_URL + item.path: payload})
    monkeypatch.setattr(cli, "HttpRemoteSource", lambda **kwargs: fake)
    monkeypatch.setattr(cli, "setup_logging", lambda data_dir: None)
    return tmp_path, root, settings, fake


def test_repair_command(env, capsys):
    tmp_path, root, settings, fake = env

    assert cli.main(["--settings", str(settings), "repair"]) == 0

    assert read_file(root, "bin/tool.exe") == b"tool v2"
    assert "Done." in capsys.readouterr().out

    assert cli.main(["--settings", str(settings), "repair"]) == 0
    assert "Already up to date." in capsys.readouterr().out
    assert len(fake.fetch_calls) == 1


def test_repair_failure_exit_code(env, capsys):
    tmp_path, root, settings, fake = env
    fake.objects.clear()

    assert cli.main(["--settings", str(settings), "repair"]) == 1
    assert "file_does_not_exist_on_server" in capsys.readouterr().out


def test_self_patch_then_swap(env, capsys):
    tmp_path, root, settings, fake = env
    staging = tmp_path / "data" / "staging"

    assert cli.main(["--settings", str(settings), "repair", "--self-patching"]) == 0
    assert read_file(root, "bin/tool.exe") == b"tool v1"
    assert read_file(staging, "bin/tool.exe") == b"tool v2"

    assert cli.main(["--settings", str(settings), "swap"]) == 0
    assert read_file(root, "bin/tool.exe") == b"tool v2"
    assert not staging.exists()


def test_check_command(env, capsys):
    tmp_path, root, settings, fake = env

    assert cli.main(["--settings", str(settings), "check", "--current-version", "1.9"]) == 0
    assert "Update available" in capsys.readouterr().out

    assert cli.main(["--settings", str(settings), "check", "--current-version", "2.0.0"]) == 0
    assert "Up to date" in capsys.readouterr().out


def test_bad_manifest_exit_code(env, capsys):
    tmp_path, root, settings, fake = env

    args = ["--settings", str(settings), "repair", "--manifest", str(tmp_path / "missing.json")]
    assert cli.main(args) == 1
    assert "Error:" in capsys.readouterr().out


def test_setup_logging_writes_log_file(tmp_path, monkeypatch):
    monkeypatch.setattr(logging.root, "handlers", [])
    cli.setup_logging(str(tmp_path))
    try:
        logging.getLogger("selfpatch.test").info("hello")
        assert (tmp_path / "logs" / "selfpatch.log").exists()
    finally:
        for handler in list(logging.root.handlers):
            handler.close()


def test_repair_and_swap_require_an_install_root(env, capsys, monkeypatch):
    tmp_path, root, settings, fake = env
    data = json.loads(settings.read_text(encoding="utf-8"))
    del data["root_path"]
    settings.write_text(json.dumps(data), encoding="utf-8")
    monkeypatch.chdir(root)

    assert cli.main(["--settings", str(settings), "repair"]) == 2
    assert "--root" in capsys.readouterr().out
    assert fake.exists_calls == [] and fake.fetch_calls == []
    assert read_file(root, "bin/tool.exe") == b"tool v1"

    assert cli.main(["--settings", str(settings), "swap"]) == 2

    assert cli.main(["--settings", str(settings), "repair", "--root", str(root)]) == 0
    assert read_file(root, "bin/tool.exe") == b"tool v2"
