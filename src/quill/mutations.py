"""Tag, reference and entry mutations on directory records.

Every operation follows the same cycle:

    load record -> locate entry -> check entry kind -> apply -> save

and returns a MutationResult instead of raising. Reference changes are pushed
to the project's ReferenceGraph once the record has been saved, so the graph
never runs ahead of what is on disk.
"""

from __future__ import annotations

import dataclasses
import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, assert_never

from quill.config import DEFAULT_EXTERNAL_SCHEMES, reserved_names
from quill.errors import (
    ConflictError,
    ErrorKind,
    NotFoundError,
    OutOfProjectError,
    QuillError,
    StaleRecordError,
    UnsupportedError,
)
from quill.links import find_markdown_files, rewrite_links
from quill.models import (
    CHARACTER_IMPORTANCE,
    CharacterInfo,
    ContentEntry,
    DirectoryRecord,
    EntryKind,
    ForeshadowingInfo,
    GlossaryInfo,
    SettingEntry,
    SubdirectoryEntry,
)
from quill.paths import (
    get_project_relative_path,
    is_same_path,
    normalize_separators,
    normalize_to_project_path,
    rebase_path,
)
from quill.store import content_hash

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from quill.graph import ReferenceGraph
    from quill.models import FileEntry, SettingPayload
    from quill.store import MetaStore

logger = logging.getLogger("quill.mutations")


@dataclass
class MutationResult:
    success: bool
    message: str
    updated_items: list[FileEntry] | None = None   # the directory's entries, paths resolved
    error: ErrorKind | None = None


# ---------------------------------------------------------------------------
# Entry checks
# ---------------------------------------------------------------------------

def _locate(record: DirectoryRecord, name: str) -> FileEntry:
    entry = record.find(name)
    if entry is None:
        msg = f"{name} is not listed"
        raise NotFoundError(msg)
    return entry


def _with_tags(entry: FileEntry) -> ContentEntry | SettingEntry:
    match entry:
        case ContentEntry() | SettingEntry():
            return entry
        case SubdirectoryEntry():
            msg = f"{entry.name} is a subdirectory and has no tags"
            raise UnsupportedError(msg)
        case _:
            assert_never(entry)


def _with_references(entry: FileEntry) -> ContentEntry:
    match entry:
        case ContentEntry():
            return entry
        case SettingEntry() | SubdirectoryEntry():
            msg = f"{entry.name} is a {entry.kind} entry and has no references"
            raise UnsupportedError(msg)
        case _:
            assert_never(entry)


def _setting(entry: FileEntry) -> SettingEntry:
    match entry:
        case SettingEntry():
            return entry
        case ContentEntry() | SubdirectoryEntry():
            msg = f"{entry.name} is a {entry.kind} entry, not a setting"
            raise UnsupportedError(msg)
        case _:
            assert_never(entry)


def _check_name(name: str) -> None:
    if not name or name in (".", "..") or "/" in name or "\\" in name:
        msg = f"invalid file name {name!r}"
        raise UnsupportedError(msg)


def _dedupe(items: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(items))


def _undo_moves(moves: list[tuple[Path, Path]]) -> None:
    for src, dst in reversed(moves):
        try:
            os.rename(dst, src)
        except OSError as exc:
            logger.error("could not move %s back to %s: %s", dst, src, exc)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class MetadataService:
    """Mutations on one project's directory records."""

    def __init__(
        self,
        store: MetaStore,
        graph: ReferenceGraph | None = None,
        *,
        external_schemes: Iterable[str] = DEFAULT_EXTERNAL_SCHEMES,
    ) -> None:
        self.store = store
        self.graph = graph
        self.external_schemes = tuple(external_schemes)

    @property
    def root(self) -> Path:
        return self.store.root

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _canonical(self, path: Path) -> str:
        rel = get_project_relative_path(path, self.root)
        if not rel:
            msg = f"{path} is outside the project {self.root}"
            raise OutOfProjectError(msg)
        return rel

    def _normalize_link(self, link: str, current_file: Path) -> str:
        canonical = normalize_to_project_path(link, current_file, self.root, self.external_schemes)
        if not canonical:
            msg = f"{link!r} is external or outside the project"
            raise OutOfProjectError(msg)
        return canonical

    @staticmethod
    def _resolved(directory: Path, record: DirectoryRecord) -> list[FileEntry]:
        return [dataclasses.replace(e, path=directory / e.name) for e in record.files]

    @staticmethod
    def _failure(action: str, exc: Exception, kind: ErrorKind) -> MutationResult:
        if isinstance(exc, StaleRecordError):
            logger.warning("%s: %s", action, exc)
        else:
            logger.debug("%s failed: %s", action, exc)
        return MutationResult(success=False, message=f"{action} failed: {exc}", error=kind)

    def _update(
        self,
        directory: Path | str,
        apply: Callable[[DirectoryRecord], str],
        *,
        action: str,
        create: bool = False,
        on_saved: Callable[[DirectoryRecord], None] | None = None,
    ) -> MutationResult:
        """Load, apply, save. ``apply`` returns the success message."""
        directory = Path(directory)
        try:
            record = self.store.load(directory)
            if record is None:
                if not create:
                    msg = f"no metadata record for {directory}"
                    raise NotFoundError(msg)
                record = DirectoryRecord()
            message = apply(record)
            self.store.save(directory, record)
        except QuillError as exc:
            return self._failure(action, exc, exc.kind)
        except OSError as exc:
            return self._failure(action, exc, ErrorKind.IO_FAILURE)

        if on_saved is not None:
            on_saved(record)
        return MutationResult(success=True, message=message, updated_items=self._resolved(directory, record))

    def _sync_graph(self, directory: Path, name: str, record: DirectoryRecord) -> None:
        if self.graph is None:
            return
        entry = record.find(name)
        if isinstance(entry, ContentEntry):
            self.graph.update_file_references(self._canonical(directory / name), entry.references)

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    def add_tag(self, directory: Path | str, name: str, tag: str) -> MutationResult:
        def apply(record: DirectoryRecord) -> str:
            entry = _with_tags(_locate(record, name))
            if tag in entry.tags:
                return f"{name} already has tag {tag!r}"
            entry.tags.append(tag)
            return f"added tag {tag!r} to {name}"

        return self._update(directory, apply, action="add tag")

    def remove_tag(self, directory: Path | str, name: str, tag: str) -> MutationResult:
        def apply(record: DirectoryRecord) -> str:
            entry = _with_tags(_locate(record, name))
            if tag not in entry.tags:
                return f"{name} has no tag {tag!r}"
            entry.tags = [t for t in entry.tags if t != tag]
            return f"removed tag {tag!r} from {name}"

        return self._update(directory, apply, action="remove tag")

    def set_tags(self, directory: Path | str, name: str, tags: Iterable[str]) -> MutationResult:
        new_tags = _dedupe(tags)

        def apply(record: DirectoryRecord) -> str:
            entry = _with_tags(_locate(record, name))
            entry.tags = new_tags
            return f"set {len(new_tags)} tag(s) on {name}"

        return self._update(directory, apply, action="set tags")

    # ------------------------------------------------------------------
    # References
    # ------------------------------------------------------------------

    def add_reference(self, directory: Path | str, name: str, target: str) -> MutationResult:
        """Add a reference; ``target`` may be relative to the file or to the root."""
        directory = Path(directory)

        def apply(record: DirectoryRecord) -> str:
            entry = _with_references(_locate(record, name))
            canonical = self._normalize_link(target, directory / name)
            if canonical in entry.references:
                return f"{name} already references {canonical}"
            entry.references.append(canonical)
            return f"{name} now references {canonical}"

        return self._update(
            directory, apply, action="add reference",
            on_saved=lambda record: self._sync_graph(directory, name, record),
        )

    def remove_reference(self, directory: Path | str, name: str, target: str) -> MutationResult:
        directory = Path(directory)

        def apply(record: DirectoryRecord) -> str:
            entry = _with_references(_locate(record, name))
            canonical = normalize_to_project_path(
                target, directory / name, self.root, self.external_schemes,
            ) or normalize_separators(target)
            kept = [ref for ref in entry.references if not is_same_path(ref, canonical)]
            if len(kept) == len(entry.references):
                return f"{name} does not reference {canonical}"
            entry.references = kept
            return f"{name} no longer references {canonical}"

        return self._update(
            directory, apply, action="remove reference",
            on_saved=lambda record: self._sync_graph(directory, name, record),
        )

    def set_references(self, directory: Path | str, name: str, targets: Iterable[str]) -> MutationResult:
        directory = Path(directory)
        targets = list(targets)

        def apply(record: DirectoryRecord) -> str:
            entry = _with_references(_locate(record, name))
            entry.references = _dedupe(self._normalize_link(t, directory / name) for t in targets)
            return f"set {len(entry.references)} reference(s) on {name}"

        return self._update(
            directory, apply, action="set references",
            on_saved=lambda record: self._sync_graph(directory, name, record),
        )

    # ------------------------------------------------------------------
    # Setting payloads
    # ------------------------------------------------------------------

    def _set_payload(
        self, directory: Path | str, name: str, payload: SettingPayload | None, action: str,
    ) -> MutationResult:
        def apply(record: DirectoryRecord) -> str:
            entry = _setting(_locate(record, name))
            entry.payload = payload
            if payload is None:
                return f"{name} is now a plain setting"
            return f"{name} is now a {type(payload).__name__.removesuffix('Info').lower()} entry"

        return self._update(directory, apply, action=action)

    def set_character(
        self,
        directory: Path | str,
        name: str,
        importance: str = "main",
        *,
        multiple: bool = False,
        display_name: str = "",
    ) -> MutationResult:
        if importance not in CHARACTER_IMPORTANCE:
            return MutationResult(
                success=False,
                message=f"set character failed: importance must be one of {', '.join(CHARACTER_IMPORTANCE)}",
                error=ErrorKind.UNSUPPORTED,
            )
        payload = CharacterInfo(importance=importance, multiple_characters=multiple, display_name=display_name)
        return self._set_payload(directory, name, payload, "set character")

    def set_foreshadowing(self, directory: Path | str, name: str, start: str, goal: str) -> MutationResult:
        return self._set_payload(directory, name, ForeshadowingInfo(start=start, goal=goal), "set foreshadowing")

    def set_glossary(self, directory: Path | str, name: str) -> MutationResult:
        return self._set_payload(directory, name, GlossaryInfo(), "set glossary")

    def clear_payload(self, directory: Path | str, name: str) -> MutationResult:
        return self._set_payload(directory, name, None, "clear payload")

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def refresh_hash(self, directory: Path | str, name: str) -> MutationResult:
        """Recompute an entry's content hash from the file on disk."""
        directory = Path(directory)

        def apply(record: DirectoryRecord) -> str:
            entry = _with_tags(_locate(record, name))
            path = directory / name
            if not path.is_file():
                msg = f"{path} does not exist"
                raise NotFoundError(msg)
            entry.hash = content_hash(path)
            return f"{name}: {entry.hash}"

        return self._update(directory, apply, action="refresh hash")

    def reorder(self, directory: Path | str, name: str, new_index: int) -> MutationResult:
        def apply(record: DirectoryRecord) -> str:
            i = record.index_of(name)
            if i < 0:
                msg = f"{name} is not listed"
                raise NotFoundError(msg)
            entry = record.files.pop(i)
            index = max(0, min(new_index, len(record.files)))
            record.files.insert(index, entry)
            return f"moved {name} to position {index}"

        return self._update(directory, apply, action="reorder")

    def track(self, path: Path | str, kind: EntryKind = "setting") -> MutationResult:
        """List an untracked file or directory in its parent's record."""
        path = Path(path)
        name = path.name

        def apply(record: DirectoryRecord) -> str:
            self._canonical(path)
            if not self.store.exists(path):
                msg = f"{path} does not exist"
                raise NotFoundError(msg)
            if record.find(name) is not None:
                msg = f"{name} is already listed"
                raise ConflictError(msg)
            is_dir = self.store.is_dir(path)
            match kind:
                case "subdirectory":
                    if not is_dir:
                        msg = f"{name} is not a directory"
                        raise UnsupportedError(msg)
                    if not self.store.has_record(path):
                        self.store.save(path, DirectoryRecord())
                    record.files.append(SubdirectoryEntry(name=name))
                case "content" | "setting":
                    if is_dir:
                        msg = f"{name} is a directory"
                        raise UnsupportedError(msg)
                    entry = ContentEntry(name=name) if kind == "content" else SettingEntry(name=name)
                    entry.hash = content_hash(path)
                    record.files.append(entry)
                case _:
                    assert_never(kind)
            return f"now tracking {name} as {kind}"

        return self._update(path.parent, apply, action="track", create=True)

    def untrack(self, path: Path | str) -> MutationResult:
        """Drop an entry from its record; the file itself is left alone."""
        path = Path(path)
        removed: list[FileEntry] = []

        def apply(record: DirectoryRecord) -> str:
            i = record.index_of(path.name)
            if i < 0:
                msg = f"{path.name} is not listed"
                raise NotFoundError(msg)
            removed.append(record.files.pop(i))
            return f"stopped tracking {path.name}"

        def on_saved(_record: DirectoryRecord) -> None:
            if self.graph is not None and isinstance(removed[0], ContentEntry):
                self.graph.discard_file(self._canonical(path))

        return self._update(path.parent, apply, action="untrack", on_saved=on_saved)

    def delete(self, directory: Path | str, name: str) -> MutationResult:
        """Delete a file or directory from disk and from its record.

        The record is saved first; when removal from disk then fails the entry
        is put back. References pointing at it are kept and become dangling.
        """
        directory = Path(directory)
        path = directory / name
        try:
            record = self.store.load(directory)
            if record is None:
                msg = f"no metadata record for {directory}"
                raise NotFoundError(msg)
            entry = _locate(record, name)
            canonical = self._canonical(path)
            index = record.files.index(entry)
            record.files.pop(index)
            self.store.save(directory, record)
        except QuillError as exc:
            return self._failure("delete", exc, exc.kind)
        except OSError as exc:
            return self._failure("delete", exc, ErrorKind.IO_FAILURE)

        try:
            if isinstance(entry, SubdirectoryEntry):
                if path.exists():
                    shutil.rmtree(path)
            elif self.store.exists(path):
                path.unlink()
        except OSError as exc:
            record.files.insert(index, entry)
            try:
                self.store.save(directory, record)
            except QuillError as restore_exc:
                logger.error("could not restore %s in %s: %s", name, directory, restore_exc)
            return self._failure("delete", exc, ErrorKind.IO_FAILURE)

        if isinstance(entry, SubdirectoryEntry):
            meta_subtree = self.store.meta_path(path).parent
            try:
                if meta_subtree.exists():
                    shutil.rmtree(meta_subtree)
            except OSError as exc:
                logger.warning("could not remove records under %s: %s", meta_subtree, exc)

        if self.graph is not None:
            for key in self._graph_keys_under(canonical):
                self.graph.discard_file(key)
        return MutationResult(
            success=True, message=f"deleted {name}", updated_items=self._resolved(directory, record),
        )

    def rename(self, directory: Path | str, old_name: str, new_name: str) -> MutationResult:
        """Rename an entry (and its file), rewriting every reference and markdown link to it.

        Disk moves and the record save succeed together or are undone together.
        """
        directory = Path(directory)
        old_path, new_path = directory / old_name, directory / new_name
        try:
            _check_name(new_name)
            record = self.store.load(directory)
            if record is None:
                msg = f"no metadata record for {directory}"
                raise NotFoundError(msg)
            entry = _locate(record, old_name)
            if old_name == new_name:
                return MutationResult(
                    success=True, message=f"{old_name} unchanged", updated_items=self._resolved(directory, record),
                )
            if record.find(new_name) is not None or self.store.exists(new_path):
                msg = f"{new_name} already exists"
                raise ConflictError(msg)
            old_rel, new_rel = self._canonical(old_path), self._canonical(new_path)

            moves: list[tuple[Path, Path]] = []
            try:
                if self.store.exists(old_path):
                    os.rename(old_path, new_path)
                    moves.append((old_path, new_path))
                if isinstance(entry, SubdirectoryEntry):
                    old_meta = self.store.meta_path(old_path).parent
                    if old_meta.exists():
                        new_meta = self.store.meta_path(new_path).parent
                        new_meta.parent.mkdir(parents=True, exist_ok=True)
                        os.rename(old_meta, new_meta)
                        moves.append((old_meta, new_meta))
                entry.name = new_name
                self.store.save(directory, record)
            except (QuillError, OSError):
                entry.name = old_name
                _undo_moves(moves)
                raise
        except QuillError as exc:
            return self._failure("rename", exc, exc.kind)
        except OSError as exc:
            return self._failure("rename", exc, ErrorKind.IO_FAILURE)

        rewritten, failed = self._rewrite_references(old_rel, new_rel)
        relinked = self._rewrite_hyperlinks(old_rel, new_rel)
        if self.graph is not None:
            for key in self._graph_keys_under(old_rel):
                self.graph.rename_path(key, rebase_path(key, old_rel, new_rel))

        message = f"renamed {old_name} to {new_name}"
        if rewritten:
            message += f"; updated references in {rewritten} record(s)"
        if relinked:
            message += f"; updated links in {relinked} file(s)"
        if failed:
            message += f"; {failed} record(s) could not be updated"
        updated = self.store.load(directory) or record
        return MutationResult(success=True, message=message, updated_items=self._resolved(directory, updated))

    def _rewrite_references(self, old_rel: str, new_rel: str) -> tuple[int, int]:
        """Point every reference at ``old_rel`` (or below it) to ``new_rel``."""
        rewritten = failed = 0
        for directory, _rel_dir, record in self.store.walk():
            changed = False
            for entry in record.files:
                if not isinstance(entry, ContentEntry):
                    continue
                refs = _dedupe(rebase_path(ref, old_rel, new_rel) for ref in entry.references)
                if refs != entry.references:
                    entry.references = refs
                    changed = True
            if not changed:
                continue
            try:
                self.store.save(directory, record)
                rewritten += 1
            except QuillError as exc:
                logger.warning("could not update references in %s: %s", directory, exc)
                failed += 1
        return rewritten, failed

    def _graph_keys_under(self, rel: str) -> list[str]:
        if self.graph is None:
            return []
        keys = [k for k in self.graph.all_paths() if k == rel or k.startswith(rel + "/")]
        return keys or [rel]

    def _rewrite_hyperlinks(self, old_rel: str, new_rel: str) -> int:
        """Point markdown links at ``old_rel`` (or below it) to ``new_rel``; returns files changed."""
        changed = 0
        for path in find_markdown_files(self.root, reserved_names(self.store.meta_dir.name)):
            try:
                if rewrite_links(path, self.root, old_rel, new_rel, self.external_schemes):
                    changed += 1
            except (OSError, UnicodeDecodeError) as exc:
                logger.warning("could not update links in %s: %s", path, exc)
        return changed
