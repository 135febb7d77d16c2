"""QuillConfig: project descriptor for a writing project.

Default layout (all relative to the project root):

    quill.toml            # project descriptor (git-tracked); marks the root
    .quill/
        meta.yaml         # record for the root directory
        contents/
            meta.yaml     # record for <root>/contents
        settings/
            meta.yaml

quill.toml example:

    [project]
    name = "my-novel"
    # meta_dir = ".quill"   # default

    [status]
    exclude = [".*", "*.tmp"]

    [references]
    external_schemes = ["http://", "https://", "ftp://", "mailto:", "tel:"]
    scan_hyperlinks = false
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

CONFIG_FILENAME = "quill.toml"
LEGACY_META_FILENAME = ".quill-meta.yaml"
_DEFAULT_META_DIR = ".quill"

# Link prefixes that are never resolved against the filesystem
DEFAULT_EXTERNAL_SCHEMES = ("http://", "https://", "ftp://", "mailto:", "tel:")


@dataclass
class StatusConfig:
    exclude: list[str] = field(default_factory=list)   # extra names hidden from listings


@dataclass
class ReferencesConfig:
    external_schemes: list[str] = field(default_factory=lambda: list(DEFAULT_EXTERNAL_SCHEMES))
    scan_hyperlinks: bool = False   # also index markdown links when a project is opened


@dataclass
class QuillConfig:
    """Resolved configuration for one writing project."""

    root: Path                      # directory that contains quill.toml
    name: str = ""
    meta_dir: Path = field(default_factory=Path)
    status: StatusConfig = field(default_factory=StatusConfig)
    references: ReferencesConfig = field(default_factory=ReferencesConfig)

    @property
    def config_path(self) -> Path:
        return self.root / CONFIG_FILENAME

    @property
    def reserved_names(self) -> frozenset[str]:
        return reserved_names(self.meta_dir.name)

    def ensure_dirs(self) -> None:
        """Create the bookkeeping directory and an empty root record."""
        self.meta_dir.mkdir(parents=True, exist_ok=True)
        root_meta = self.meta_dir / "meta.yaml"
        if not root_meta.exists():
            root_meta.write_text("files: []\n")


def reserved_names(meta_dir_name: str) -> frozenset[str]:
    """Directory entries used for bookkeeping, never listed as files."""
    return frozenset({meta_dir_name, CONFIG_FILENAME, LEGACY_META_FILENAME})


def load_config(root: Path | str | None = None) -> QuillConfig:
    """Load quill.toml from root (or search upward from cwd if root is None)."""
    root_path = find_root(Path(root) if root else Path.cwd()) or Path(root or Path.cwd())
    root_path = root_path.resolve()
    config_path = root_path / CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_path.exists():
        with config_path.open("rb") as f:
            raw = tomllib.load(f)

    project_section = raw.get("project", {})
    status_section = raw.get("status", {})
    refs_section = raw.get("references", {})

    return QuillConfig(
        root=root_path,
        name=project_section.get("name", root_path.name),
        meta_dir=root_path / project_section.get("meta_dir", _DEFAULT_META_DIR),
        status=StatusConfig(
            exclude=[str(p) for p in status_section.get("exclude", [])],
        ),
        references=ReferencesConfig(
            external_schemes=[
                str(s) for s in refs_section.get("external_schemes", DEFAULT_EXTERNAL_SCHEMES)
            ],
            scan_hyperlinks=bool(refs_section.get("scan_hyperlinks", False)),
        ),
    )


def find_root(start: Path) -> Path | None:
    """Walk upward from start looking for quill.toml."""
    start = start.resolve()
    for directory in (start, *start.parents):
        if (directory / CONFIG_FILENAME).exists():
            return directory
    return None


def init_config(root: Path, name: str | None = None) -> Path:
    """Write a default quill.toml at root. Raises if already exists."""
    config_path = root / CONFIG_FILENAME
    if config_path.exists():
        msg = f"quill.toml already exists at {config_path}"
        raise FileExistsError(msg)

    project_name = name or root.name
    content = f"""\
[project]
name = "{project_name}"
# meta_dir = ".quill"   # default

# Names hidden from `quill status` in addition to the bookkeeping files
# [status]
# exclude = [".*", "*.tmp"]

# Link prefixes treated as external (never resolved against the project)
# [references]
# external_schemes = ["http://", "https://", "ftp://", "mailto:", "tel:"]
# scan_hyperlinks = false   # also index markdown links on open
"""
    root.mkdir(parents=True, exist_ok=True)
    config_path.write_text(content)
    return config_path
