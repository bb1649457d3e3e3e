"""
Shard discovery: enumerate extracted-archive directories under the data root.

Each immediate subdirectory of the root is one shard; its directly contained
regular files are the documents. Archive files sitting next to their extracted
directories are excluded by extension.
"""

import logging
import os

from pathlib import Path
from typing import List, Sequence, Union

from ..exceptions import ShardDiscoveryError
from ..models import Shard


class ShardDiscoverer:
    """
    Non-recursive shard enumeration.

    Failure policy:
    - Root cannot be listed: ShardDiscoveryError (fatal for the run)
    - A shard cannot be listed: logged, counted in skipped_shards, run continues
    - Nested subdirectories inside a shard: logged as a warning and not traversed
    """

    def __init__(self, root: Union[str, Path], archive_extensions: Sequence[str] = (".zip",)):
        """
        Initialize the discoverer.

        Args:
            root: Data root holding one subdirectory per extracted archive
            archive_extensions: Name suffixes treated as archives and never used as shards
        """
        self.root = Path(root)
        self.archive_extensions = tuple(ext.lower() for ext in archive_extensions)
        self.logger = logging.getLogger(__name__)

        self.skipped_shards = 0
        self.skipped_entries = 0
        self.nested_directories = 0

    def is_archive(self, name: str) -> bool:
        return name.lower().endswith(self.archive_extensions)

    def discover(self) -> List[Shard]:
        """
        List the shards under the root.

        Returns:
            Shards sorted by directory name, each with its documents sorted by file name

        Raises:
            ShardDiscoveryError: If the root itself cannot be listed
        """
        self.skipped_shards = 0
        self.skipped_entries = 0
        self.nested_directories = 0

        try:
            with os.scandir(self.root) as it:
                entries = sorted(it, key=lambda entry: entry.name)
        except OSError as e:
            raise ShardDiscoveryError(f"Failed to read data root {self.root}: {e}", str(self.root))

        shards = []
        for entry in entries:
            if self.is_archive(entry.name):
                self.logger.debug(f"Skipping archive {entry.path}")
                continue
            try:
                is_directory = entry.is_dir()
            except OSError as e:
                self.skipped_entries += 1
                self.logger.warning(f"Could not stat {entry.path} under {self.root}: {e}")
                continue
            if not is_directory:
                self.skipped_entries += 1
                self.logger.debug(f"Skipping non-directory entry {entry.path}")
                continue

            shard = self._list_shard(Path(entry.path))
            if shard is not None:
                shards.append(shard)

        total_documents = sum(len(shard) for shard in shards)
        self.logger.info(f"Discovered {len(shards)} shards with {total_documents} documents under {self.root}"
                         f" ({self.skipped_shards} shards skipped)")
        return shards

    def _list_shard(self, shard_path: Path):
        try:
            with os.scandir(shard_path) as it:
                entries = sorted(it, key=lambda entry: entry.name)
        except OSError as e:
            self.skipped_shards += 1
            self.logger.error(f"Error reading shard directory {shard_path}: {e}")
            return None

        documents = []
        for entry in entries:
            try:
                if entry.is_dir():
                    self.nested_directories += 1
                    self.logger.warning(f"Skipping nested directory {entry.path} in shard {shard_path}")
                    continue
                if entry.is_file():
                    documents.append(Path(entry.path))
                else:
                    self.skipped_entries += 1
            except OSError as e:
                self.skipped_entries += 1
                self.logger.warning(f"Could not stat {entry.path} in shard {shard_path}: {e}")

        return Shard(path=shard_path, documents=tuple(documents))
