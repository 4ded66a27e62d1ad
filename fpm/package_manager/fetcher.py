"""
Tarball fetcher for fpm

Downloads a package tarball and verifies its SHA-1 checksum while it streams
to disk, so the archive is never held in memory.
"""

import hashlib
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import requests

from ..errors import IntegrityError, UpstreamError

logger = logging.getLogger(__name__)


class ArchiveFetcher:
    """Fetches and verifies package archives"""

    def __init__(self, session: Optional[requests.Session] = None,
                 chunk_size: int = 8192,
                 timeout: Optional[float] = None):
        self.session = session or requests.Session()
        self.chunk_size = chunk_size
        self.timeout = timeout

    def fetch(self, url: str, expected_hash: str, dest_dir: Path) -> Path:
        """
        Download ``url`` into ``dest_dir``

        Returns the path of the verified archive. On any failure the partial
        file is removed before the error propagates.
        """
        try:
            response = self.session.get(url, stream=True, timeout=self.timeout)
        except requests.RequestException as e:
            raise UpstreamError(f"Failed to download {url}: {e}") from e

        try:
            if not response.ok:
                raise UpstreamError(
                    f"Failed to download {url}: HTTP {response.status_code}",
                    status=response.status_code
                )

            basename = os.path.basename(urlparse(url).path) or "package.tgz"
            fd, tmp_name = tempfile.mkstemp(prefix="fpm-", suffix=f"-{basename}", dir=dest_dir)
            dest_path = Path(tmp_name)

            hasher = hashlib.sha1()
            try:
                with os.fdopen(fd, 'wb') as f:
                    for chunk in response.iter_content(chunk_size=self.chunk_size):
                        if chunk:
                            hasher.update(chunk)
                            f.write(chunk)

                actual = hasher.hexdigest()
                if actual != expected_hash.strip().lower():
                    raise IntegrityError(url, expected_hash, actual)
            except requests.RequestException as e:
                dest_path.unlink(missing_ok=True)
                raise UpstreamError(f"Failed to download {url}: {e}") from e
            except BaseException:
                dest_path.unlink(missing_ok=True)
                raise
        finally:
            response.close()

        logger.info("Downloaded %s (sha1 %s)", url, actual)
        return dest_path
