"""Shared fixtures: a small novel project on disk."""

from __future__ import annotations

from pathlib import Path

import pytest

from quill.graph import ReferenceGraph
from quill.mutations import MetadataService
from quill.store import MetaStore

ROOT_RECORD = """\
files:
  - name: contents
    type: subdirectory
  - name: settings
    type: subdirectory
"""

CONTENTS_RECORD = """\
files:
  - name: chapter1.md
    type: content
    tags: [draft]
    references: [settings/world.md, settings/alice.md]
  - name: chapter2.md
    type: content
    tags: []
    references: [settings/world.md]
"""

SETTINGS_RECORD = """\
files:
  - name: world.md
    type: setting
    tags: [lore]
  - name: alice.md
    type: setting
    tags: []
    character:
      importance: main
      multiple_characters: false
      display_name: Alice
"""


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """Project root with records for the root, contents/ and settings/.

    contents/chapter1.md -> settings/world.md, settings/alice.md
    contents/chapter2.md -> settings/world.md
    notes.txt exists on disk but is not listed anywhere.
    """
    root = (tmp_path / "novel").resolve()
    write(root / "quill.toml", '[project]\nname = "sample"\n')
    write(root / ".quill" / "meta.yaml", ROOT_RECORD)
    write(root / ".quill" / "contents" / "meta.yaml", CONTENTS_RECORD)
    write(root / ".quill" / "settings" / "meta.yaml", SETTINGS_RECORD)
    write(root / "contents" / "chapter1.md", "# One\n\nSee [the world](../settings/world.md).\n")
    write(root / "contents" / "chapter2.md", "# Two\n")
    write(root / "settings" / "world.md", "# World\n")
    write(root / "settings" / "alice.md", "# Alice\n")
    write(root / "notes.txt", "loose notes\n")
    return root


@pytest.fixture
def store(project: Path) -> MetaStore:
    return MetaStore(project)


@pytest.fixture
def graph(project: Path, store: MetaStore) -> ReferenceGraph:
    g = ReferenceGraph()
    assert g.initialize(project, store)
    return g


@pytest.fixture
def service(store: MetaStore, graph: ReferenceGraph) -> MetadataService:
    return MetadataService(store, graph)
