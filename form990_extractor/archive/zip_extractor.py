"""
Extraction of downloaded IRS e-file archives into shard directories.

Every archive under the data root is unpacked into a sibling directory named
after the archive stem, which is exactly the layout ShardDiscoverer expects:

    data/990_zips/2023_TEOS_XML_01A.zip
    data/990_zips/2023_TEOS_XML_01A/202300000000000001_public.xml
"""

import logging
import os
import shutil
import zipfile

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Sequence, Union

from ..exceptions import ArchiveExtractionError


@dataclass
class ExtractionSummary:
    """Outcome of one extract_all() call."""
    extracted: int = 0
    skipped: int = 0
    failed: int = 0
    members_written: int = 0
    errors: List[str] = field(default_factory=list)


class ZipExtractor:
    """
    Zip-slip-safe extractor for the archives under a data root.

    An archive whose target directory already exists with content is skipped,
    so re-running after a partial download only extracts the new archives.
    Every member is checked before anything is written: if one would land
    outside the target directory the whole archive is refused.
    """

    def __init__(self, data_root: Union[str, Path], archive_extensions: Sequence[str] = (".zip",)):
        self.data_root = Path(data_root)
        self.archive_extensions = tuple(ext.lower() for ext in archive_extensions)
        self.logger = logging.getLogger(__name__)

    def target_directory(self, archive_path: Path) -> Path:
        name = archive_path.name
        for ext in self.archive_extensions:
            if name.lower().endswith(ext):
                name = name[:-len(ext)]
                break
        return archive_path.parent / name

    def extract_all(self) -> ExtractionSummary:
        """
        Extract every archive under the data root.

        Returns:
            ExtractionSummary with extracted/skipped/failed counts

        Raises:
            ArchiveExtractionError: If the data root cannot be listed
        """
        summary = ExtractionSummary()

        try:
            archives = sorted(
                path for path in self.data_root.iterdir()
                if path.is_file() and path.name.lower().endswith(self.archive_extensions)
            )
        except OSError as e:
            raise ArchiveExtractionError(f"Failed to read data root {self.data_root}: {e}", str(self.data_root))

        for archive_path in archives:
            target = self.target_directory(archive_path)

            if self._already_extracted(target):
                summary.skipped += 1
                self.logger.info(f"Skipping {archive_path.name} (already extracted)")
                continue

            self.logger.info(f"Extracting {archive_path.name} to {target}")
            try:
                summary.members_written += self.extract(archive_path, target)
                summary.extracted += 1
            except ArchiveExtractionError as e:
                summary.failed += 1
                summary.errors.append(str(e))
                self.logger.error(f"Error extracting {archive_path.name}: {e}")

        self.logger.info(f"Extraction complete: {summary.extracted} extracted, {summary.skipped} skipped, "
                         f"{summary.failed} failed")
        return summary

    def extract(self, archive_path: Union[str, Path], target: Union[str, Path]) -> int:
        """
        Extract one archive into a directory.

        Args:
            archive_path: Zip file to extract
            target: Destination directory (created if missing)

        Returns:
            Number of files written

        Raises:
            ArchiveExtractionError: If the archive is unreadable or contains an unsafe member
        """
        archive_path = Path(archive_path)
        target = Path(target)
        written = 0

        try:
            with zipfile.ZipFile(archive_path, 'r') as archive:
                members = archive.infolist()
                root = target.resolve()
                for member in members:
                    self._check_member(member.filename, root, archive_path)

                target.mkdir(parents=True, exist_ok=True)
                for member in members:
                    destination = target / member.filename
                    if member.is_dir():
                        destination.mkdir(parents=True, exist_ok=True)
                        continue
                    destination.parent.mkdir(parents=True, exist_ok=True)
                    with archive.open(member) as source, open(destination, 'wb') as output:
                        shutil.copyfileobj(source, output)
                    written += 1
        except (zipfile.BadZipFile, zipfile.LargeZipFile) as e:
            raise ArchiveExtractionError(f"Invalid zip archive: {e}", str(archive_path))
        except OSError as e:
            raise ArchiveExtractionError(f"Failed to extract archive: {e}", str(archive_path))

        self.logger.debug(f"Extracted {written} files from {archive_path.name}")
        return written

    def _check_member(self, member_name: str, root: Path, archive_path: Path) -> None:
        resolved = (root / member_name).resolve()
        if resolved != root and root not in resolved.parents:
            raise ArchiveExtractionError(
                f"Illegal file path in archive (zip slip protection): {member_name}", str(archive_path)
            )

    def _already_extracted(self, target: Path) -> bool:
        if not target.is_dir():
            return False
        try:
            with os.scandir(target) as it:
                return any(True for _ in it)
        except OSError:
            return False
