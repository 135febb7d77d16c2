"""Read and write per-directory meta.yaml records.

MetaStore is the storage accessor used by everything else:
    store = MetaStore("/path/to/novel")
    record = store.load("/path/to/novel/contents")
    record.files[0].tags.append("draft")
    store.save("/path/to/novel/contents", record)

Records live in a parallel tree under the bookkeeping directory:

    <root>/.quill/meta.yaml             # record for <root>
    <root>/.quill/contents/meta.yaml    # record for <root>/contents

Saves are read-modify-write under flock with an optimistic check: a record
remembers the fingerprint of the bytes it was loaded from, and save refuses to
overwrite bytes that changed in the meantime (StaleRecordError).
"""

from __future__ import annotations

import fcntl
import hashlib
import logging
import os
import stat
from pathlib import Path
from typing import TYPE_CHECKING

import yaml

from quill.errors import IOFailureError, OutOfProjectError, StaleRecordError
from quill.models import DirectoryRecord, SubdirectoryEntry, validate_record
from quill.paths import get_project_relative_path

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger("quill.store")

META_FILENAME = "meta.yaml"


class InvalidRecordError(IOFailureError):
    """A record failed validation and was not written."""


def _fingerprint(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def content_hash(path: Path | str) -> str:
    """Fingerprint of a file's bytes: ``sha256:<hex>``."""
    try:
        data = Path(path).read_bytes()
    except OSError as exc:
        msg = f"cannot hash {path}: {exc}"
        raise IOFailureError(msg) from exc
    return "sha256:" + hashlib.sha256(data).hexdigest()


def encode_record(record: DirectoryRecord) -> str:
    return yaml.safe_dump(record.to_dict(), sort_keys=False, allow_unicode=True)


def decode_record(text: str | bytes, fingerprint: str | None = None) -> DirectoryRecord:
    """Parse YAML into a record. Raises ValueError on anything malformed."""
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        msg = f"invalid YAML: {exc}"
        raise ValueError(msg) from exc
    if not isinstance(raw, dict):
        msg = "record is not a mapping"
        raise ValueError(msg)
    return DirectoryRecord.from_dict(raw, fingerprint=fingerprint)


class MetaStore:
    """YAML-backed store of directory records for one project."""

    def __init__(self, root: Path | str, meta_dir: Path | str | None = None) -> None:
        self.root = Path(root)
        self.meta_dir = Path(meta_dir) if meta_dir is not None else self.root / ".quill"

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def meta_path(self, directory: Path | str) -> Path:
        """Location of the record describing ``directory``."""
        rel = get_project_relative_path(directory, self.root)
        if rel is None:
            msg = f"{directory} is outside the project {self.root}"
            raise OutOfProjectError(msg)
        if rel == "":
            return self.meta_dir / META_FILENAME
        return self.meta_dir / rel / META_FILENAME

    def _lock_path(self, directory: Path | str) -> Path:
        return self.meta_path(directory).with_suffix(".yaml.lock")

    # ------------------------------------------------------------------
    # Filesystem
    # ------------------------------------------------------------------

    def exists(self, path: Path | str) -> bool:
        return os.path.lexists(path)

    def list_dir(self, directory: Path | str) -> list[str]:
        """Entry names of a directory. Raises IOFailureError."""
        try:
            return sorted(os.listdir(directory))
        except OSError as exc:
            msg = f"cannot list {directory}: {exc}"
            raise IOFailureError(msg) from exc

    def is_dir(self, path: Path | str) -> bool:
        """Stat-based directory check. Raises OSError when the entry cannot be stat'ed."""
        return stat.S_ISDIR(Path(path).stat().st_mode)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def has_record(self, directory: Path | str) -> bool:
        return self.meta_path(directory).exists()

    def load(self, directory: Path | str) -> DirectoryRecord | None:
        """Load a directory's record; None when absent or malformed."""
        path = self.meta_path(directory)
        if not path.exists():
            return None
        try:
            data = path.read_bytes()
        except OSError as exc:
            msg = f"cannot read {path}: {exc}"
            raise IOFailureError(msg) from exc
        try:
            return decode_record(data, fingerprint=_fingerprint(data))
        except ValueError as exc:
            logger.warning("ignoring malformed record %s: %s", path, exc)
            return None

    def walk(self, start: Path | str | None = None) -> Iterator[tuple[Path, str, DirectoryRecord]]:
        """Yield (directory, canonical dir path, record) depth-first in record order.

        Descends through subdirectory entries only. A record that cannot be
        read is logged and its subtree skipped.
        """
        start_dir = Path(start) if start is not None else self.root
        start_rel = get_project_relative_path(start_dir, self.root)
        if start_rel is None:
            msg = f"{start_dir} is outside the project {self.root}"
            raise OutOfProjectError(msg)

        pending: list[tuple[Path, str]] = [(start_dir, start_rel)]
        while pending:
            directory, rel_dir = pending.pop()
            try:
                record = self.load(directory)
            except IOFailureError as exc:
                logger.warning("skipping subtree %s: %s", directory, exc)
                continue
            if record is None:
                continue
            yield directory, rel_dir, record
            pending.extend(
                (directory / e.name, f"{rel_dir}/{e.name}" if rel_dir else e.name)
                for e in reversed(record.files)
                if isinstance(e, SubdirectoryEntry)
            )

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def save(self, directory: Path | str, record: DirectoryRecord) -> None:
        """Validate and atomically write a record.

        Raises InvalidRecordError, StaleRecordError or IOFailureError.
        """
        errors = validate_record(record)
        if errors:
            msg = "invalid record: " + "; ".join(errors)
            raise InvalidRecordError(msg)

        path = self.meta_path(directory)
        content = encode_record(record).encode("utf-8")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with self._lock_path(directory).open("a") as lock:
                fcntl.flock(lock, fcntl.LOCK_EX)
                current = _fingerprint(path.read_bytes()) if path.exists() else None
                if current != record.fingerprint:
                    msg = f"{path} changed since it was loaded"
                    raise StaleRecordError(msg)
                # Write to tmp then rename for atomicity
                tmp = path.with_suffix(".yaml.tmp")
                tmp.write_bytes(content)
                tmp.replace(path)
        except OSError as exc:
            msg = f"cannot write {path}: {exc}"
            raise IOFailureError(msg) from exc
        record.fingerprint = _fingerprint(content)
        logger.debug("saved %s (%d entries)", path, len(record.files))
