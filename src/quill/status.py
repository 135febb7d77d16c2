"""Reconcile a directory's record with what is actually on disk.

Every name is classified as:

    managed     listed in the record and present on disk
    untracked   present on disk but not listed
    missing     listed in the record but absent from disk

The readme named by the record counts as managed but is not listed. Failures on
single entries are logged and skipped; the listing itself always completes.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from enum import Enum
from fnmatch import fnmatch
from pathlib import Path
from typing import TYPE_CHECKING

from quill.config import reserved_names
from quill.errors import QuillError
from quill.models import FileEntry, SettingEntry, SubdirectoryEntry

if TYPE_CHECKING:
    from collections.abc import Iterable

    from quill.models import DirectoryRecord
    from quill.store import MetaStore

logger = logging.getLogger("quill.status")


class FileStatus(str, Enum):
    MANAGED = "managed"
    UNTRACKED = "untracked"
    MISSING = "missing"


@dataclass
class FileStatusInfo:
    name: str
    absolute_path: Path
    status: FileStatus
    entry: FileEntry | None = None      # the record's entry (managed / missing)
    is_directory: bool | None = None    # None until the entry has been stat'ed

    def to_entry(self) -> FileEntry:
        """Convert back to an entry carrying path and status flags."""
        if self.entry is not None:
            return dataclasses.replace(
                self.entry,
                path=self.absolute_path,
                is_missing=self.status is FileStatus.MISSING,
            )
        if self.is_directory:
            return SubdirectoryEntry(name=self.name, path=self.absolute_path, is_untracked=True)
        return SettingEntry(name=self.name, path=self.absolute_path, is_untracked=True)


def is_excluded(name: str, patterns: Iterable[str]) -> bool:
    """Match a bare name against simple glob patterns (``.*`` hides dot-files)."""
    for pattern in patterns:
        if pattern == ".*":
            if name.startswith("."):
                return True
        elif fnmatch(name, pattern):
            return True
    return False


def _load_record(directory: Path, store: MetaStore) -> DirectoryRecord | None:
    try:
        return store.load(directory)
    except QuillError as exc:
        logger.warning("cannot load record for %s: %s", directory, exc)
        return None


def get_file_status_list(
    directory: Path | str,
    store: MetaStore,
    *,
    exclude: Iterable[str] = (),
) -> list[FileStatusInfo]:
    """Three-way status of every child of ``directory``.

    Directories come first (by name); files follow the record's order, then
    unlisted files, ties broken by name.
    """
    directory = Path(directory)
    reserved = reserved_names(store.meta_dir.name)
    exclude = list(exclude)

    record = _load_record(directory, store)
    status_map: dict[str, FileStatusInfo] = {}
    implicitly_managed: set[str] = set()
    order: dict[str, int] = {}

    if record is not None:
        for i, entry in enumerate(record.files):
            status_map[entry.name] = FileStatusInfo(
                name=entry.name,
                absolute_path=directory / entry.name,
                status=FileStatus.MISSING,   # until seen on disk
                entry=entry,
            )
            order.setdefault(entry.name, i)
        if record.readme:
            implicitly_managed.add(record.readme)

    names: list[str] = []
    if store.exists(directory):
        try:
            names = store.list_dir(directory)
        except QuillError as exc:
            logger.warning("cannot list %s: %s", directory, exc)

    for name in names:
        if name in reserved:
            continue
        absolute_path = directory / name
        try:
            is_directory = store.is_dir(absolute_path)
        except OSError as exc:
            logger.warning("skipping %s: %s", absolute_path, exc)
            continue

        info = status_map.get(name)
        if info is not None:
            info.status = FileStatus.MANAGED
            info.is_directory = is_directory
        elif name in implicitly_managed or is_excluded(name, exclude):
            continue
        else:
            status_map[name] = FileStatusInfo(
                name=name,
                absolute_path=absolute_path,
                status=FileStatus.UNTRACKED,
                is_directory=is_directory,
            )

    def _sort_key(info: FileStatusInfo) -> tuple[int, int, str]:
        is_dir = info.is_directory
        if is_dir is None:
            is_dir = isinstance(info.entry, SubdirectoryEntry)
        if is_dir:
            return (0, 0, info.name)
        return (1, order.get(info.name, len(order)), info.name)

    return sorted(status_map.values(), key=_sort_key)


def get_file_entries(
    directory: Path | str,
    store: MetaStore,
    *,
    exclude: Iterable[str] = (),
) -> list[FileEntry]:
    """Status listing converted to entries, flags set."""
    return [info.to_entry() for info in get_file_status_list(directory, store, exclude=exclude)]
