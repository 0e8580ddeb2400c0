"""LZMA decompressor for downloaded payloads."""

import lzma
import os
import shutil

from selfpatch.core.models import DecompressionError

# Copy buffer (1 MB)
COPY_BUFFER = 1024 * 1024


class LzmaDecompressor:
    """Decompresses .xz/.lzma payloads into their install location.

    Output goes to a sibling temp file first so a failed decompression never
    leaves a truncated file at the destination.
    """

    def decompress(self, src_path: str, dest_path: str) -> None:
        tmp_path = dest_path + '.tmp'
        try:
            with lzma.open(src_path, 'rb') as src, open(tmp_path, 'wb') as dst:
                shutil.copyfileobj(src, dst, COPY_BUFFER)
            os.replace(tmp_path, dest_path)
        except (lzma.LZMAError, EOFError, OSError) as e:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise DecompressionError(f"Could not decompress {src_path}: {e}") from e
