"""Path normalization between link forms and canonical project paths.

A canonical path is relative to the project root, uses forward slashes,
preserves case and never escapes the root:

    normalize_to_project_path("../settings/world.md", "/novel/contents/ch1.md", "/novel")
        -> "settings/world.md"

Invalid or external input yields None; callers treat that as "not applicable".
"""

from __future__ import annotations

import ntpath
import os
import posixpath
from pathlib import Path
from typing import TYPE_CHECKING

from quill.config import DEFAULT_EXTERNAL_SCHEMES

if TYPE_CHECKING:
    from collections.abc import Iterable


def normalize_separators(path: str) -> str:
    return path.replace("\\", "/")


def is_external_link(link: str, schemes: Iterable[str] = DEFAULT_EXTERNAL_SCHEMES) -> bool:
    return any(link.startswith(scheme) for scheme in schemes)


def _is_absolute(link: str) -> bool:
    return posixpath.isabs(link) or ntpath.isabs(link) or bool(ntpath.splitdrive(link)[0])


def _escapes_root(rel: str) -> bool:
    return rel == ".." or rel.startswith("../")


def is_project_root_relative(link: str) -> bool:
    """True for bare paths like ``settings/world.md`` (no ./, ../, not absolute)."""
    link = normalize_separators(link)
    return (
        not link.startswith("./")
        and not link.startswith("../")
        and link not in (".", "..")
        and not _is_absolute(link)
    )


def escapes_root(canonical: str) -> bool:
    """True when a root-relative path climbs above the root once ``..`` segments collapse."""
    return _escapes_root(posixpath.normpath(normalize_separators(canonical)))


def normalize_to_project_path(
    link_path: str,
    current_file: Path | str,
    project_root: Path | str,
    external_schemes: Iterable[str] = DEFAULT_EXTERNAL_SCHEMES,
) -> str | None:
    """Convert any link form to a canonical project path, or None."""
    if not link_path or not link_path.strip():
        return None
    if is_external_link(link_path, external_schemes):
        return None
    if is_project_root_relative(link_path):
        link = normalize_separators(link_path)
        if ".." not in link.split("/"):
            return link
        # settings/../world.md
        if escapes_root(link):
            return None
        link = posixpath.normpath(link)
        return "" if link == "." else link
    if os.name != "nt" and ntpath.splitdrive(link_path)[0]:
        # Drive-letter paths cannot be resolved on POSIX
        return None

    current_dir = os.path.dirname(os.fspath(current_file))
    target = os.path.normpath(os.path.join(current_dir, normalize_separators(link_path)))
    return get_project_relative_path(target, project_root)


def resolve_project_path(canonical_path: str, project_root: Path | str) -> Path:
    """Canonical project path -> absolute path."""
    return Path(project_root) / normalize_separators(canonical_path)


def get_project_relative_path(absolute_path: Path | str, project_root: Path | str) -> str | None:
    """Absolute path -> canonical project path, or None when outside the root."""
    try:
        rel = os.path.relpath(os.path.normpath(os.fspath(absolute_path)), os.path.normpath(os.fspath(project_root)))
    except ValueError:  # different drives on Windows
        return None
    rel = normalize_separators(rel)
    if _escapes_root(rel):
        return None
    # The root itself
    if rel == ".":
        return ""
    return rel


def is_same_path(a: str, b: str) -> bool:
    """Compare after separator normalization only (no case folding)."""
    return normalize_separators(a) == normalize_separators(b)


def rebase_path(path: str, old: str, new: str) -> str:
    """Move ``path`` from under ``old`` to under ``new`` (exact match or directory prefix)."""
    if is_same_path(path, old):
        return new
    if path.startswith(old + "/"):
        return new + path[len(old):]
    return path
