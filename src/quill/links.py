"""Extract and rewrite in-project links in markdown files."""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import quote, unquote

from quill.config import DEFAULT_EXTERNAL_SCHEMES
from quill.paths import (
    get_project_relative_path,
    is_project_root_relative,
    normalize_to_project_path,
    rebase_path,
    resolve_project_path,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

# [text](url) and [text](url "title"); empty urls allowed
_LINK_RE = re.compile(r'\[([^\]]*)\]\(([^\s)]*)(?:\s+"([^"]*)")?\)')


@dataclass(frozen=True)
class MarkdownLink:
    text: str
    url: str
    title: str | None = None


def extract_markdown_links(content: str) -> list[MarkdownLink]:
    return [
        MarkdownLink(text=m.group(1), url=m.group(2), title=m.group(3))
        for m in _LINK_RE.finditer(content)
    ]


def extract_project_links(
    file_path: Path | str,
    project_root: Path | str,
    external_schemes: Iterable[str] = DEFAULT_EXTERNAL_SCHEMES,
) -> list[str]:
    """Canonical paths of existing project files linked from a markdown file.

    Anchors (``#section``) are stripped; links to missing files are dropped.
    Unreadable files yield an empty list.
    """
    try:
        content = Path(file_path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return []

    schemes = tuple(external_schemes) + ("file://",)
    result: list[str] = []
    for link in extract_markdown_links(content):
        url = unquote(link.url.split("#", 1)[0])
        canonical = normalize_to_project_path(url, file_path, project_root, schemes)
        if not canonical or canonical in result:
            continue
        if resolve_project_path(canonical, project_root).is_file():
            result.append(canonical)
    return result


def find_markdown_files(project_root: Path | str, skip: Iterable[str] = ()) -> list[Path]:
    """Every ``*.md`` file under the root, skipping hidden directories and ``skip`` names."""
    root = Path(project_root)
    skip = set(skip)
    files: list[Path] = []
    for p in sorted(root.rglob("*.md")):
        parts = p.relative_to(root).parts
        if any(part in skip or part.startswith(".") for part in parts[:-1]):
            continue
        if p.is_file():
            files.append(p)
    return files


def _relink(url: str, target: str, file_rel: str, project_root: Path) -> str:
    """Write ``target`` back in the same form as ``url`` (root-relative, relative or absolute)."""
    if Path(url).is_absolute():
        return resolve_project_path(target, project_root).as_posix()
    if is_project_root_relative(url):
        return target
    link = posixpath.relpath(target, posixpath.dirname(file_rel) or ".")
    if url.startswith("./") and not link.startswith("../"):
        link = "./" + link
    return link


def rewrite_links(
    file_path: Path | str,
    project_root: Path | str,
    old_rel: str,
    new_rel: str,
    external_schemes: Iterable[str] = DEFAULT_EXTERNAL_SCHEMES,
) -> int:
    """Point links at ``old_rel`` (or below it) to ``new_rel``; returns the number changed.

    Anchors and titles are kept. The file is only written when something changed.
    Raises OSError or UnicodeDecodeError when the file cannot be read or written.
    """
    file_path = Path(file_path)
    project_root = Path(project_root)
    file_rel = get_project_relative_path(file_path, project_root)
    if not file_rel:
        return 0
    content = file_path.read_text(encoding="utf-8")
    schemes = tuple(external_schemes) + ("file://",)
    changed = 0

    def replace(m: re.Match[str]) -> str:
        nonlocal changed
        url, sep, anchor = m.group(2).partition("#")
        decoded = unquote(url)
        canonical = normalize_to_project_path(decoded, file_path, project_root, schemes)
        if not canonical:
            return m.group(0)
        moved = rebase_path(canonical, old_rel, new_rel)
        if moved == canonical:
            return m.group(0)
        link = _relink(decoded, moved, file_rel, project_root)
        if decoded != url or any(c in link for c in " ()"):
            link = quote(link)
        changed += 1
        start, end = m.start(2) - m.start(), m.end(2) - m.start()
        return m.group(0)[:start] + link + sep + anchor + m.group(0)[end:]

    rewritten = _LINK_RE.sub(replace, content)
    if changed:
        tmp = file_path.with_suffix(file_path.suffix + ".tmp")
        tmp.write_text(rewritten, encoding="utf-8")
        tmp.replace(file_path)
    return changed
