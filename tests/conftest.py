"""Shared fixtures: an in-memory remote and manifest builders."""

import hashlib
import lzma
import os

import pytest
from packaging.version import Version

from selfpatch.core.comms import PatchComms
from selfpatch.core.decompress import LzmaDecompressor
from selfpatch.core.models import VersionInfo, VersionItem

BASE_URL = "https://patch.example.com/v2/"


def md5(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


def make_item(path: str, content: bytes) -> tuple[VersionItem, bytes]:
    """Return a manifest item for ``content`` plus its compressed payload."""
    payload = lzma.compress(content)
    item = VersionItem(path=path, size=len(content), md5=md5(content),
                       compressed_size=len(payload), compressed_md5=md5(payload))
    return item, payload


def write_file(root, rel_path: str, data: bytes):
    path = os.path.join(str(root), *rel_path.split('/'))
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'wb') as f:
        f.write(data)
    return path


def read_file(root, rel_path: str) -> bytes:
    with open(os.path.join(str(root), *rel_path.split('/')), 'rb') as f:
        return f.read()


class FakeRemote:
    """Serves payloads from a dict keyed by URL and records every call."""

    def __init__(self, objects: dict[str, bytes] | None = None):
        self.objects = dict(objects or {})
        self.reported_sizes: dict[str, int] = {}
        self.corrupt: set[str] = set()
        self.fail_fetch: set[str] = set()
        self.exists_calls: list[str] = []
        self.fetch_calls: list[str] = []
        self.on_fetch = None

    def exists(self, url):
        self.exists_calls.append(url)
        if url not in self.objects:
            return False, 0
        return True, self.reported_sizes.get(url, len(self.objects[url]))

    def fetch(self, url, dest_path, expected_size):
        self.fetch_calls.append(url)
        if self.on_fetch:
            self.on_fetch(url)
        if url in self.fail_fetch or url not in self.objects:
            return None
        data = self.objects[url]
        if url in self.corrupt:
            data = b'\x00' * len(data)
        with open(dest_path, 'wb') as f:
            f.write(data)
        return dest_path


class Workspace:
    """Live root, download cache and staging root under one tmp dir."""

    def __init__(self, tmp_path):
        self.root = tmp_path / "app"
        self.downloads = tmp_path / "downloads"
        self.staging = tmp_path / "staging"
        self.root.mkdir()
        self.items: list[VersionItem] = []
        self.contents: dict[str, bytes] = {}
        self.remote = FakeRemote()

    def add(self, path: str, content: bytes, local: bytes | None = None) -> VersionItem:
        """Add a manifest file; ``local`` is what currently sits in the live root."""
        item, payload = make_item(path, content)
        self.items.append(item)
        self.contents[path] = content
        self.remote.objects[self.url(item)] = payload
        if local is not None:
            write_file(self.root, path, local)
        return item

    def url(self, item: VersionItem) -> str:
        return self.manifest().download_url_for(item)

    def manifest(self) -> VersionInfo:
        return VersionInfo(version=Version("2.0.0"), base_download_url=BASE_URL,
                           files=self.items)

    def comms(self, **kwargs) -> PatchComms:
        kwargs.setdefault('decompressed_path', str(self.staging))
        return PatchComms(
            root_path=str(self.root),
            downloads_path=str(self.downloads),
            version_info=self.manifest(),
            remote=self.remote,
            decompressor=LzmaDecompressor(),
            **kwargs,
        )


@pytest.fixture
def ws(tmp_path):
    return Workspace(tmp_path)
