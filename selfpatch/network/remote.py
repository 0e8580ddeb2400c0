"""HTTP(S) remote source and maintenance gate: urllib transport.

All methods are synchronous (blocking); the repair engine calls them from its
single thread of control.
"""

import logging
import os
import threading
from http.client import HTTPException
from typing import Callable
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from selfpatch.branding import PatcherBranding

logger = logging.getLogger(__name__)

# Buffer size for streaming downloads (80 KB)
DOWNLOAD_BUFFER = 81920


class HttpRemoteSource:
    """Queries and downloads patch payloads over HTTP(S)."""

    def __init__(self, timeout: int = 30, retries: int = 3,
                 cancel_event: threading.Event | None = None,
                 progress_callback: Callable[[int, int], None] | None = None):
        self.timeout = timeout
        self.retries = max(1, retries)
        self.cancel_event = cancel_event
        self.progress_callback = progress_callback

    def _request(self, url: str, method: str = 'GET') -> Request:
        return Request(url, method=method, headers={
            'User-Agent': PatcherBranding.user_agent(),
        })

    # ── Existence ────────────────────────────────────────────────────

    def exists(self, url: str) -> tuple[bool, int]:
        """HEAD the URL. Returns (present, size); size is 0 when unreported."""
        try:
            with urlopen(self._request(url, 'HEAD'), timeout=self.timeout) as resp:
                size = int(resp.headers.get('Content-Length') or 0)
                return True, size
        except HTTPError as e:
            if e.code != 404:
                logger.warning("HEAD %s failed: HTTP %d", url, e.code)
            return False, 0
        except (URLError, OSError, HTTPException, ValueError) as e:
            logger.warning("HEAD %s failed: %s", url, e)
            return False, 0

    # ── Download ─────────────────────────────────────────────────────

    def fetch(self, url: str, dest_path: str, expected_size: int) -> str | None:
        """Download ``url`` to ``dest_path``. Returns the path, or None on failure.

        Each attempt streams into ``dest_path + '.part'``, which replaces the
        destination only once the transfer completes.
        """
        part_path = dest_path + '.part'
        for attempt in range(1, self.retries + 1):
            if self._cancelled():
                break
            try:
                if self._stream(url, part_path, expected_size):
                    os.replace(part_path, dest_path)
                    return dest_path
                break  # cancelled mid-transfer
            except (URLError, OSError, HTTPException, ValueError) as e:
                logger.warning("Download of %s failed (attempt %d/%d): %s",
                               url, attempt, self.retries, e)

        if os.path.exists(part_path):
            os.remove(part_path)
        return None

    def _stream(self, url: str, part_path: str, expected_size: int) -> bool:
        with urlopen(self._request(url), timeout=self.timeout) as resp:
            total = int(resp.headers.get('Content-Length') or 0) or expected_size
            downloaded = 0
            with open(part_path, 'wb') as f:
                while True:
                    if self._cancelled():
                        return False
                    chunk = resp.read(DOWNLOAD_BUFFER)
                    if not chunk:
                        break
                    f.write(chunk)
                    downloaded += len(chunk)
                    if self.progress_callback:
                        self.progress_callback(downloaded, total)
        return True

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()


class MaintenanceGate:
    """Readiness gate backed by the manifest's maintenance check URL.

    The server is under maintenance when the document at the URL starts
    with '1'. No URL, or an unreachable one, means the server is available.
    """

    def __init__(self, url: str, timeout: int = 30):
        self.url = url
        self.timeout = timeout

    def __call__(self) -> bool:
        return self.is_under_maintenance()

    def is_under_maintenance(self) -> bool:
        if not self.url:
            return False
        req = Request(self.url, headers={'User-Agent': PatcherBranding.user_agent()})
        try:
            with urlopen(req, timeout=self.timeout) as resp:
                body = resp.read().decode('utf-8', errors='replace')
        except (URLError, OSError, HTTPException, ValueError) as e:
            logger.warning("Maintenance check failed: %s", e)
            return False
        return body.strip().startswith('1')
