"""
Tarball extractor for fpm

npm tarballs wrap their content in a single top-level directory (usually
``package/``). Extraction drops that segment so the package directory mirrors
the published package root. Only directories and regular files are allowed.
"""

import gzip
import logging
import os
import shutil
import tarfile
import zlib
from pathlib import Path, PurePosixPath
from typing import Tuple

from ..errors import ArchiveError, UnsupportedEntryError, UnsafeEntryError
from .manifest import package_path

logger = logging.getLogger(__name__)

ENTRY_KINDS = {
    tarfile.SYMTYPE: "symlink",
    tarfile.LNKTYPE: "hardlink",
    tarfile.CHRTYPE: "character device",
    tarfile.BLKTYPE: "block device",
    tarfile.FIFOTYPE: "fifo",
}


def strip_root(entry_name: str) -> Tuple[str, ...]:
    """Drop the archive's wrapper directory from an entry path"""
    parts = [p for p in PurePosixPath(entry_name).parts if p not in ("", ".")]
    if entry_name.startswith("/") or any(p == ".." for p in parts):
        raise UnsafeEntryError(entry_name)
    return tuple(parts[1:])


class ArchiveExtractor:
    """Unpacks verified package archives into the install tree"""

    def extract(self, archive_path: Path, dest_root: Path, package_name: str) -> Path:
        """
        Extract ``archive_path`` into ``dest_root/package_name``

        The archive is deleted afterwards whether or not extraction worked.
        Returns the package directory.
        """
        package_dir = package_path(dest_root, package_name)
        try:
            package_dir.mkdir(parents=True, exist_ok=True)
            self._extract_entries(Path(archive_path), package_dir, package_name)
        finally:
            try:
                os.remove(archive_path)
            except OSError as e:
                logger.warning("Failed to remove archive %s: %s", archive_path, e)

        logger.info("Extracted %s into %s", package_name, package_dir)
        return package_dir

    def _extract_entries(self, archive_path: Path, package_dir: Path, package_name: str) -> None:
        root = package_dir.resolve()

        try:
            with tarfile.open(archive_path, "r|gz") as tar:
                for member in tar:
                    try:
                        relative = strip_root(member.name)
                    except UnsafeEntryError as e:
                        e.package = package_name
                        raise

                    if not relative:
                        # Anything but the wrapper directory itself is lost here
                        if not member.isdir():
                            logger.warning(
                                "Skipping %r in %s archive: outside the package directory",
                                member.name, package_name
                            )
                        continue

                    target = package_dir.joinpath(*relative)
                    if not target.resolve().is_relative_to(root):
                        raise UnsafeEntryError(member.name, package_name)

                    if member.isdir():
                        target.mkdir(parents=True, exist_ok=True)
                        os.chmod(target, (member.mode & 0o7777) | 0o700)
                    elif member.isreg():
                        target.parent.mkdir(parents=True, exist_ok=True)
                        source = tar.extractfile(member)
                        with open(target, 'wb') as out:
                            shutil.copyfileobj(source, out)
                    else:
                        kind = ENTRY_KINDS.get(member.type, repr(member.type))
                        raise UnsupportedEntryError(member.name, kind, package_name)
        except (tarfile.TarError, EOFError, gzip.BadGzipFile, zlib.error) as e:
            raise ArchiveError(f"Failed to read archive for {package_name}: {e}", package_name) from e
