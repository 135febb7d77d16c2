"""In-memory bidirectional reference graph for one open project.

Keys are canonical project paths. For every pair of files A, B:

    B in references(A)  <=>  A in referenced_by(B)

Each edge remembers where it came from: ``manual`` edges mirror the
``references`` lists of the directory records, ``hyperlink`` edges mirror
markdown links found in the file's text. Updating one source never touches
edges of the other.

The graph is rebuilt from the directory records when a project is opened
(``initialize``) and patched per file afterwards (``update_file_references``,
``update_file_hyperlink_references``). It is never persisted. A node is
dropped only once it has neither outgoing nor incoming references.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Literal, Protocol, assert_never

from quill.config import DEFAULT_EXTERNAL_SCHEMES, reserved_names
from quill.links import extract_project_links, find_markdown_files
from quill.models import ContentEntry, SettingEntry, SubdirectoryEntry
from quill.paths import get_project_relative_path, normalize_separators, resolve_project_path

if TYPE_CHECKING:
    from collections.abc import Iterable

    from quill.store import MetaStore

logger = logging.getLogger("quill.graph")

ReferenceSource = Literal["manual", "hyperlink"]
REFERENCE_SOURCES: tuple[ReferenceSource, ...] = ("manual", "hyperlink")


class Interrupt(Protocol):
    def is_set(self) -> bool: ...


@dataclass
class ReferenceNode:
    # neighbour key -> sources of that edge
    references: dict[str, set[ReferenceSource]] = field(default_factory=dict)
    referenced_by: dict[str, set[ReferenceSource]] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.references and not self.referenced_by


@dataclass(frozen=True)
class ReferenceInfo:
    """Read-only view returned by ``get_references``; sorted for stable output."""

    references: tuple[str, ...] = ()
    referenced_by: tuple[str, ...] = ()


def _merge(edges: dict[str, set[ReferenceSource]], key: str, kinds: Iterable[ReferenceSource]) -> None:
    edges.setdefault(key, set()).update(kinds)


class ReferenceGraph:
    """Project-scoped reference index. One instance per open project session."""

    def __init__(self, external_schemes: Iterable[str] = DEFAULT_EXTERNAL_SCHEMES) -> None:
        self._nodes: dict[str, ReferenceNode] = {}
        self.root: Path | None = None
        self.external_schemes = tuple(external_schemes)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self.root is not None

    def clear(self) -> None:
        """Forget everything, including the project root."""
        self._nodes.clear()
        self.root = None

    def initialize(
        self,
        project_root: Path | str,
        store: MetaStore,
        interrupt: Interrupt | None = None,
        *,
        scan_hyperlinks: bool = False,
    ) -> bool:
        """Rebuild from every directory record under the root.

        With ``scan_hyperlinks`` the markdown files are scanned as well. A
        record that cannot be read skips only its own subtree. Returns False
        when ``interrupt`` was set before the scan finished.
        """
        self._nodes.clear()
        self.root = Path(project_root)

        scanned = 0
        for _directory, rel_dir, record in store.walk(self.root):
            if interrupt is not None and interrupt.is_set():
                logger.info("reference scan interrupted after %d directories", scanned)
                return False
            scanned += 1
            for entry in record.files:
                rel_path = f"{rel_dir}/{entry.name}" if rel_dir else entry.name
                match entry:
                    case ContentEntry():
                        if entry.references:
                            self.add_file_references(rel_path, entry.references)
                    case SettingEntry() | SubdirectoryEntry():
                        pass
                    case _:
                        assert_never(entry)

        if scan_hyperlinks:
            for path in find_markdown_files(self.root, reserved_names(store.meta_dir.name)):
                if interrupt is not None and interrupt.is_set():
                    logger.info("hyperlink scan interrupted")
                    return False
                self.update_file_hyperlink_references(path)

        logger.info("reference scan: %d directories, %d nodes", scanned, len(self._nodes))
        return True

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def key(self, path: Path | str) -> str:
        """Canonical map key for a project path or an absolute path inside the root."""
        text = normalize_separators(str(path))
        if self.root is not None and Path(text).is_absolute():
            rel = get_project_relative_path(text, self.root)
            if rel is not None:
                return rel
        return text

    def _node(self, key: str) -> ReferenceNode:
        node = self._nodes.get(key)
        if node is None:
            node = self._nodes[key] = ReferenceNode()
        return node

    def _prune(self, key: str) -> None:
        node = self._nodes.get(key)
        if node is not None and node.is_empty:
            del self._nodes[key]

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add_file_references(
        self,
        source: Path | str,
        targets: Iterable[Path | str],
        kind: ReferenceSource = "manual",
    ) -> None:
        """Add edges source -> target for each target (idempotent)."""
        source_key = self.key(source)
        source_node = self._node(source_key)
        for target in targets:
            target_key = self.key(target)
            _merge(source_node.references, target_key, [kind])
            _merge(self._node(target_key).referenced_by, source_key, [kind])

    def remove_file_references(self, source: Path | str, kind: ReferenceSource | None = None) -> None:
        """Drop source's outgoing edges of ``kind`` (all kinds when None).

        Source's own node is kept; targets left without edges are pruned.
        """
        source_key = self.key(source)
        source_node = self._nodes.get(source_key)
        if source_node is None:
            return
        for target_key, kinds in list(source_node.references.items()):
            if kind is not None:
                kinds.discard(kind)
                if kinds:
                    self._nodes[target_key].referenced_by[source_key].discard(kind)
                    continue
            del source_node.references[target_key]
            target_node = self._nodes.get(target_key)
            if target_node is not None:
                target_node.referenced_by.pop(source_key, None)
                if target_key != source_key:
                    self._prune(target_key)

    def update_file_references(
        self,
        source: Path | str,
        targets: Iterable[Path | str],
        kind: ReferenceSource = "manual",
    ) -> None:
        """Replace source's outgoing edges of ``kind`` with ``targets``."""
        targets = list(targets)
        # Order matters: remove, then add
        self.remove_file_references(source, kind)
        self.add_file_references(source, targets, kind)

    def update_file_hyperlink_references(
        self, path: Path | str, targets: Iterable[Path | str] | None = None,
    ) -> list[str]:
        """Replace a file's hyperlink edges with the links found in its text.

        ``targets`` skips the file scan. Returns the canonical targets used.
        """
        key = self.key(path)
        if targets is None:
            if self.root is None:
                return []
            file_path = resolve_project_path(key, self.root)
            targets = extract_project_links(file_path, self.root, self.external_schemes)
        found = [self.key(t) for t in targets]
        self.update_file_references(key, found, "hyperlink")
        if not found:
            self._prune(key)
        return found

    def discard_file(self, path: Path | str) -> None:
        """Forget a deleted file's outgoing edges; incoming edges stay (now dangling)."""
        key = self.key(path)
        self.remove_file_references(key)
        self._prune(key)

    def rename_path(self, old: Path | str, new: Path | str) -> None:
        """Move a node to a new key; edges on both sides follow it."""
        old_key, new_key = self.key(old), self.key(new)
        if old_key == new_key:
            return
        node = self._nodes.pop(old_key, None)
        if node is None:
            return

        def moved(k: str) -> str:
            return new_key if k == old_key else k

        for target_key in node.references:
            target = self._nodes.get(target_key) if target_key != old_key else None
            if target is not None:
                _merge(target.referenced_by, new_key, target.referenced_by.pop(old_key, set()))
        for source_key in node.referenced_by:
            source = self._nodes.get(source_key) if source_key != old_key else None
            if source is not None:
                _merge(source.references, new_key, source.references.pop(old_key, set()))
        merged = self._node(new_key)
        for k, kinds in node.references.items():
            _merge(merged.references, moved(k), kinds)
        for k, kinds in node.referenced_by.items():
            _merge(merged.referenced_by, moved(k), kinds)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_references(self, path: Path | str, source: ReferenceSource | None = None) -> ReferenceInfo:
        """Outgoing and incoming references, optionally of one source. Never creates a node."""
        node = self._nodes.get(self.key(path))
        if node is None:
            return ReferenceInfo()

        def keys(edges: dict[str, set[ReferenceSource]]) -> tuple[str, ...]:
            return tuple(sorted(k for k, kinds in edges.items() if source is None or source in kinds))

        return ReferenceInfo(references=keys(node.references), referenced_by=keys(node.referenced_by))

    def get_manual_references(self, path: Path | str) -> ReferenceInfo:
        return self.get_references(path, "manual")

    def get_hyperlink_references(self, path: Path | str) -> ReferenceInfo:
        return self.get_references(path, "hyperlink")

    def edge_sources(self, source: Path | str, target: Path | str) -> frozenset[ReferenceSource]:
        """Where the edge source -> target came from; empty when there is none."""
        node = self._nodes.get(self.key(source))
        if node is None:
            return frozenset()
        return frozenset(node.references.get(self.key(target), ()))

    def get_invalid_references(self, path: Path | str) -> list[str]:
        """Targets of ``path`` that do not exist on disk."""
        if self.root is None:
            return []
        return [
            target
            for target in self.get_references(path).references
            if not resolve_project_path(target, self.root).exists()
        ]

    def dangling_references(self) -> dict[str, list[str]]:
        """Every source with at least one target missing on disk."""
        result: dict[str, list[str]] = {}
        for source in self.all_paths():
            invalid = self.get_invalid_references(source)
            if invalid:
                result[source] = invalid
        return result

    def all_paths(self) -> list[str]:
        return sorted(self._nodes)

    def __contains__(self, path: object) -> bool:
        return isinstance(path, (str, Path)) and self.key(path) in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)
