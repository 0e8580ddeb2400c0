"""Manifest loading: JSON version description from disk or over HTTP."""

import json
import logging
import os
from urllib.error import URLError
from urllib.request import Request, urlopen

from packaging.version import Version, InvalidVersion

from selfpatch.branding import PatcherBranding
from selfpatch.core.models import ManifestError, VersionInfo, VersionItem

logger = logging.getLogger(__name__)

_ITEM_FIELDS = ('path', 'size', 'md5', 'compressed_size', 'compressed_md5')


def _parse_item(entry: dict, index: int) -> VersionItem:
    if not isinstance(entry, dict):
        raise ManifestError(f"File entry #{index} is not an object")
    missing = [k for k in _ITEM_FIELDS if k not in entry]
    if missing:
        raise ManifestError(f"File entry #{index} is missing {', '.join(missing)}")

    path = str(entry['path']).replace('\\', '/').lstrip('/')
    if not path or '..' in path.split('/'):
        raise ManifestError(f"File entry #{index} has an invalid path: {entry['path']!r}")

    try:
        size = int(entry['size'])
        compressed_size = int(entry['compressed_size'])
    except (TypeError, ValueError) as e:
        raise ManifestError(f"File entry {path} has a non-numeric size") from e
    if size < 0 or compressed_size < 0:
        raise ManifestError(f"File entry {path} has a negative size")

    return VersionItem(
        path=path,
        size=size,
        md5=str(entry['md5']).lower(),
        compressed_size=compressed_size,
        compressed_md5=str(entry['compressed_md5']).lower(),
    )


def parse_manifest(data: dict) -> VersionInfo:
    """Build a VersionInfo from decoded manifest JSON."""
    if not isinstance(data, dict):
        raise ManifestError("Manifest root must be an object")

    try:
        version = Version(str(data.get('version', '')))
    except InvalidVersion as e:
        raise ManifestError(f"Invalid manifest version: {data.get('version')!r}") from e

    base_url = data.get('base_download_url')
    if not base_url:
        raise ManifestError("Manifest has no base_download_url")

    files = data.get('files', [])
    if not isinstance(files, list):
        raise ManifestError("Manifest 'files' must be a list")

    return VersionInfo(
        version=version,
        base_download_url=str(base_url),
        maintenance_check_url=str(data.get('maintenance_check_url') or ''),
        files=[_parse_item(entry, i) for i, entry in enumerate(files)],
    )


def load_manifest(source: str, timeout: int = 30) -> VersionInfo:
    """Load a manifest from a local file path or an http(s) URL."""
    try:
        if source.startswith(('http://', 'https://')):
            req = Request(source, headers={'User-Agent': PatcherBranding.user_agent()})
            with urlopen(req, timeout=timeout) as resp:
                data = json.loads(resp.read().decode('utf-8'))
        else:
            with open(os.path.expanduser(source), 'r', encoding='utf-8') as f:
                data = json.load(f)
    except (URLError, OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ManifestError(f"Failed to read manifest {source}: {e}") from e

    info = parse_manifest(data)
    logger.info("Loaded manifest v%s with %d files", info.version, len(info.files))
    return info
