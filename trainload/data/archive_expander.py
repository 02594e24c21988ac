"""Expansion of archived activity files (zip, tar, gzip)."""

import gzip
import logging
import shutil
import tarfile
import zipfile
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from trainload.data.identity import ID_HASH_LENGTH, hash_text
from trainload.data.scanner import ActivityFileScanner
from trainload.exceptions import ArchiveExtractionError

logger = logging.getLogger(__name__)


class UnArchiver:
    """Unpack supported archive containers."""

    SUPPORTED_SUFFIXES = (".tar.gz", ".tgz", ".tar", ".zip", ".gz")

    def is_archive_file(self, file_name: str) -> bool:
        return file_name.lower().endswith(self.SUPPORTED_SUFFIXES)

    def unpack(self, archive_path: Path, dest_dir: Path):
        """Extract an archive into a destination directory.

        Args:
            archive_path: Archive to extract
            dest_dir: Directory receiving the archive content

        Raises:
            ArchiveExtractionError: If the archive is corrupted or unsupported
        """
        archive_path = Path(archive_path)
        dest_dir = Path(dest_dir)
        dest_dir.mkdir(parents=True, exist_ok=True)
        name = archive_path.name.lower()

        try:
            if name.endswith(".zip"):
                with zipfile.ZipFile(archive_path) as archive:
                    archive.extractall(dest_dir)
            elif name.endswith((".tar.gz", ".tgz", ".tar")):
                with tarfile.open(archive_path) as archive:
                    self._extract_tar(archive, dest_dir)
            elif name.endswith(".gz"):
                target = dest_dir / archive_path.name[:-len(".gz")]
                with gzip.open(archive_path, "rb") as source, open(target, "wb") as output:
                    shutil.copyfileobj(source, output)
            else:
                raise ArchiveExtractionError(f"Unsupported archive: {archive_path}")
        except (OSError, EOFError, zipfile.BadZipFile, tarfile.TarError) as e:
            raise ArchiveExtractionError(f"Unable to extract {archive_path}: {e}") from e

    @staticmethod
    def _extract_tar(archive: tarfile.TarFile, dest_dir: Path):
        if hasattr(tarfile, "data_filter"):
            archive.extractall(dest_dir, filter="data")
            return

        # Interpreters without extraction filters: regular files and folders inside dest_dir only
        root = dest_dir.resolve()
        for member in archive.getmembers():
            target = (dest_dir / member.name).resolve()
            if not (member.isfile() or member.isdir()) or (target != root and root not in target.parents):
                raise ArchiveExtractionError(f"Unsafe archive member: {member.name}")
        archive.extractall(dest_dir)


class ArchiveExpander:
    """Expand archives found in the source directory next to themselves.

    Each archive is extracted into a temporary directory named after the hash
    of its file name. Extracted activity files are moved up beside the archive
    and renamed ``<archive hash>[-<sub path hash>]-<file name>`` so that files
    from different archives or nested folders never collide.
    """

    def __init__(self, unarchiver: Optional[UnArchiver] = None, scanner: Optional[ActivityFileScanner] = None):
        """Initialize archive expander.

        Args:
            unarchiver: Archive backend (defaults to stdlib formats)
            scanner: Scanner used to find activity files once extracted
        """
        self.unarchiver = unarchiver or UnArchiver()
        self.scanner = scanner or ActivityFileScanner()

    def deflate_activities_from_archive(self, archive_path: Path, delete_archive: bool = False) -> List[Path]:
        """Extract one archive and flatten its activity files beside it.

        Args:
            archive_path: Archive to expand
            delete_archive: Remove the archive once expanded

        Returns:
            Paths of the relocated activity files
        """
        archive_path = Path(archive_path)
        archive_dir = archive_path.parent
        fingerprint = hash_text(archive_path.name, ID_HASH_LENGTH)
        extract_dir = archive_dir / fingerprint

        if extract_dir.exists():
            shutil.rmtree(extract_dir)

        try:
            self.unarchiver.unpack(archive_path, extract_dir)

            relocated = []
            for activity_file in self.scanner.scan(extract_dir, recursive=True):
                source = Path(activity_file.path)
                sub_path = source.parent.relative_to(extract_dir)
                sub_hash = (
                    f"-{hash_text(sub_path.as_posix(), ID_HASH_LENGTH)}" if sub_path != Path(".") else ""
                )
                target = archive_dir / f"{fingerprint}{sub_hash}-{source.name}"
                shutil.move(str(source), str(target))
                relocated.append(target)

            shutil.rmtree(extract_dir)
        except Exception:
            if extract_dir.exists():
                shutil.rmtree(extract_dir, ignore_errors=True)
            raise

        if delete_archive:
            archive_path.unlink()

        logger.info(f"Expanded {len(relocated)} activity files from {archive_path.name}")
        return relocated

    def scan_inflate_activities_from_archives(
        self,
        source_dir: Path,
        delete_archives: bool = False,
        on_expanded: Optional[Callable[[Path, List[Path]], None]] = None,
        recursive: bool = False
    ) -> Tuple[List[Path], List[Tuple[Path, Exception]]]:
        """Expand every archive found in a directory.

        A failing archive is logged and reported, then the next one is processed.

        Args:
            source_dir: Directory holding archives
            delete_archives: Remove each archive once expanded
            on_expanded: Called with the archive path and its relocated files
            recursive: Also expand archives in sub-directories

        Returns:
            Tuple of (relocated activity files, failures as (archive, error))
        """
        relocated: List[Path] = []
        failures: List[Tuple[Path, Exception]] = []

        for entry in sorted(Path(source_dir).iterdir()):
            if entry.is_dir():
                if recursive:
                    sub_relocated, sub_failures = self.scan_inflate_activities_from_archives(
                        entry, delete_archives, on_expanded, recursive=True
                    )
                    relocated.extend(sub_relocated)
                    failures.extend(sub_failures)
                continue

            if not self.unarchiver.is_archive_file(entry.name):
                continue

            try:
                files = self.deflate_activities_from_archive(entry, delete_archive=delete_archives)
            except Exception as e:
                logger.error(f"Failed to expand archive {entry}: {e}")
                failures.append((entry, e))
                continue

            relocated.extend(files)
            if on_expanded:
                on_expanded(entry, files)

        return relocated, failures
