"""Tests for link normalization and canonical project paths."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from quill.paths import (
    escapes_root,
    get_project_relative_path,
    is_external_link,
    is_project_root_relative,
    is_same_path,
    normalize_to_project_path,
    resolve_project_path,
)

ROOT = Path("/novel")
CHAPTER = ROOT / "contents" / "chapter1.md"


class TestNormalizeToProjectPath:
    def test_root_relative_kept(self):
        assert normalize_to_project_path("settings/world.md", CHAPTER, ROOT) == "settings/world.md"

    def test_parent_relative(self):
        assert normalize_to_project_path("../settings/world.md", CHAPTER, ROOT) == "settings/world.md"

    def test_current_dir_relative(self):
        assert normalize_to_project_path("./chapter2.md", CHAPTER, ROOT) == "contents/chapter2.md"

    def test_absolute_inside_root(self):
        assert normalize_to_project_path("/novel/settings/world.md", CHAPTER, ROOT) == "settings/world.md"

    def test_backslashes_normalized(self):
        assert normalize_to_project_path("settings\\world.md", CHAPTER, ROOT) == "settings/world.md"
        assert normalize_to_project_path("..\\settings\\world.md", CHAPTER, ROOT) == "settings/world.md"

    def test_escaping_root_is_none(self):
        assert normalize_to_project_path("../../outside.md", CHAPTER, ROOT) is None
        assert normalize_to_project_path("/elsewhere/file.md", CHAPTER, ROOT) is None

    def test_bare_path_climbing_out_is_none(self):
        assert normalize_to_project_path("settings/../../outside.md", CHAPTER, ROOT) is None
        assert normalize_to_project_path("a/../../../etc/passwd", CHAPTER, ROOT) is None

    def test_bare_path_with_parent_segments_collapses(self):
        assert normalize_to_project_path("contents/../settings/world.md", CHAPTER, ROOT) == "settings/world.md"
        assert normalize_to_project_path("settings/..", CHAPTER, ROOT) == ""

    @pytest.mark.skipif(os.name == "nt", reason="drive letters resolve on Windows")
    def test_drive_letter_on_posix_is_none(self):
        assert normalize_to_project_path("C:/x", CHAPTER, ROOT) is None
        assert normalize_to_project_path("C:\\notes\\a.md", CHAPTER, ROOT) is None

    def test_external_and_empty_are_none(self):
        assert normalize_to_project_path("https://example.com/a.md", CHAPTER, ROOT) is None
        assert normalize_to_project_path("mailto:me@example.com", CHAPTER, ROOT) is None
        assert normalize_to_project_path("", CHAPTER, ROOT) is None
        assert normalize_to_project_path("   ", CHAPTER, ROOT) is None

    def test_custom_schemes(self):
        assert normalize_to_project_path("zotero://item", CHAPTER, ROOT, ["zotero://"]) is None

    def test_case_preserved(self):
        assert normalize_to_project_path("Settings/World.md", CHAPTER, ROOT) == "Settings/World.md"


class TestProjectRelativePath:
    def test_root_itself(self):
        assert get_project_relative_path(ROOT, ROOT) == ""

    def test_inside(self):
        assert get_project_relative_path(ROOT / "a" / "b.md", ROOT) == "a/b.md"

    def test_outside(self):
        assert get_project_relative_path(Path("/other/b.md"), ROOT) is None
        assert get_project_relative_path(Path("/"), ROOT) is None

    def test_dotdot_prefixed_name_is_inside(self):
        """A file literally named ``..notes`` does not escape the root."""
        assert get_project_relative_path(ROOT / "..notes", ROOT) == "..notes"

    def test_resolve_round_trip(self):
        assert resolve_project_path("settings/world.md", ROOT) == ROOT / "settings" / "world.md"
        assert get_project_relative_path(resolve_project_path("settings/world.md", ROOT), ROOT) == "settings/world.md"


class TestPredicates:
    def test_root_relative_forms(self):
        assert is_project_root_relative("settings/world.md")
        assert not is_project_root_relative("./world.md")
        assert not is_project_root_relative("../world.md")
        assert not is_project_root_relative("/abs/world.md")
        assert not is_project_root_relative("C:\\abs\\world.md")

    def test_external(self):
        assert is_external_link("http://example.com")
        assert not is_external_link("settings/http.md")

    def test_escapes_root(self):
        assert escapes_root("a/../../b.md")
        assert escapes_root("..\\b.md")
        assert not escapes_root("a/../b.md")
        assert not escapes_root("..notes/b.md")

    def test_same_path(self):
        assert is_same_path("a\\b.md", "a/b.md")
        assert not is_same_path("A/b.md", "a/b.md")
