"""Tests for the quill command line, driven through click's CliRunner."""

from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner

from quill.cli import cli
from quill.store import MetaStore


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def run(runner: CliRunner, project: Path, *args: str, input: str | None = None):
    return runner.invoke(cli, ["--root", str(project), *args], input=input)


class TestInit:
    def test_creates_project(self, runner: CliRunner, tmp_path: Path):
        result = runner.invoke(cli, ["init", "book", "--dir", str(tmp_path / "book")])
        assert result.exit_code == 0, result.output
        assert "Created" in result.output
        assert (tmp_path / "book" / "quill.toml").exists()
        assert (tmp_path / "book" / ".quill" / "meta.yaml").exists()

    def test_second_init_skips(self, runner: CliRunner, project: Path):
        result = runner.invoke(cli, ["init", "--dir", str(project)])
        assert result.exit_code == 0
        assert "already exists" in result.output


class TestStatus:
    def test_lists_three_states(self, runner: CliRunner, project: Path):
        (project / "contents" / "chapter2.md").unlink()
        (project / "contents" / "chapter3.md").write_text("")
        result = run(runner, project, "status", str(project / "contents"))
        assert result.exit_code == 0, result.output
        assert "chapter1.md" in result.output
        assert "managed" in result.output
        assert "missing" in result.output
        assert "untracked" in result.output
        assert "draft" in result.output

    def test_outside_project(self, runner: CliRunner, project: Path):
        result = run(runner, project, "status", str(project.parent))
        assert result.exit_code == 1
        assert "not inside the project" in result.output


class TestTagsAndRefs:
    def test_tag_add(self, runner: CliRunner, project: Path):
        result = run(runner, project, "tag", "add", str(project / "settings"), "world.md", "map")
        assert result.exit_code == 0, result.output
        assert MetaStore(project).load(project / "settings").find("world.md").tags == ["lore", "map"]

    def test_tag_set_empty_clears(self, runner: CliRunner, project: Path):
        result = run(runner, project, "tag", "set", str(project / "contents"), "chapter1.md")
        assert result.exit_code == 0, result.output
        assert MetaStore(project).load(project / "contents").find("chapter1.md").tags == []

    def test_tag_on_subdirectory_fails(self, runner: CliRunner, project: Path):
        result = run(runner, project, "tag", "add", str(project), "contents", "x")
        assert result.exit_code == 1
        assert "subdirectory" in result.output

    def test_ref_add_and_refs(self, runner: CliRunner, project: Path):
        result = run(runner, project, "ref", "add", str(project / "contents"), "chapter2.md", "../settings/alice.md")
        assert result.exit_code == 0, result.output

        result = run(runner, project, "refs", str(project / "settings" / "alice.md"))
        assert result.exit_code == 0, result.output
        assert "contents/chapter2.md" in result.output
        assert "referenced by (2)" in result.output

    def test_ref_outside_project_fails(self, runner: CliRunner, project: Path):
        result = run(runner, project, "ref", "add", str(project / "contents"), "chapter2.md", "../../x.md")
        assert result.exit_code == 1
        assert "outside the project" in result.output

    def test_refs_with_links(self, runner: CliRunner, project: Path):
        (project / "contents" / "chapter2.md").write_text("[alice](../settings/alice.md)\n")
        result = run(runner, project, "refs", "--links", str(project / "contents" / "chapter2.md"))
        assert result.exit_code == 0, result.output
        assert "settings/alice.md  [link]" in result.output
        assert "settings/world.md\n" in result.output

        result = run(runner, project, "refs", str(project / "contents" / "chapter2.md"))
        assert "settings/alice.md" not in result.output

    def test_ref_remove(self, runner: CliRunner, project: Path):
        result = run(runner, project, "ref", "remove", str(project / "contents"), "chapter1.md", "settings/alice.md")
        assert result.exit_code == 0, result.output
        assert MetaStore(project).load(project / "contents").find("chapter1.md").references == ["settings/world.md"]


class TestCheck:
    def test_clean(self, runner: CliRunner, project: Path):
        result = run(runner, project, "check")
        assert result.exit_code == 0
        assert "No dangling references" in result.output

    def test_dangling(self, runner: CliRunner, project: Path):
        (project / "settings" / "world.md").unlink()
        result = run(runner, project, "check")
        assert result.exit_code == 1
        assert "contents/chapter1.md -> settings/world.md" in result.output

    def test_refs_marks_missing(self, runner: CliRunner, project: Path):
        (project / "settings" / "alice.md").unlink()
        result = run(runner, project, "refs", str(project / "contents" / "chapter1.md"))
        assert "settings/alice.md  [missing]" in result.output


class TestEntryCommands:
    def test_track_and_untrack(self, runner: CliRunner, project: Path):
        result = run(runner, project, "track", str(project / "notes.txt"), "--kind", "content")
        assert result.exit_code == 0, result.output
        assert MetaStore(project).load(project).find("notes.txt") is not None

        result = run(runner, project, "untrack", str(project / "notes.txt"))
        assert result.exit_code == 0, result.output
        assert MetaStore(project).load(project).find("notes.txt") is None
        assert (project / "notes.txt").exists()

    def test_track_conflict(self, runner: CliRunner, project: Path):
        result = run(runner, project, "track", str(project / "contents" / "chapter1.md"))
        assert result.exit_code == 1
        assert "already listed" in result.output

    def test_rename(self, runner: CliRunner, project: Path):
        result = run(runner, project, "rename", str(project / "settings"), "world.md", "earth.md")
        assert result.exit_code == 0, result.output
        refs = MetaStore(project).load(project / "contents").find("chapter2.md").references
        assert refs == ["settings/earth.md"]

    def test_delete_needs_confirmation(self, runner: CliRunner, project: Path):
        result = run(runner, project, "delete", str(project / "settings"), "world.md", input="n\n")
        assert result.exit_code == 1
        assert (project / "settings" / "world.md").exists()

        result = run(runner, project, "delete", str(project / "settings"), "world.md", "--yes")
        assert result.exit_code == 0, result.output
        assert not (project / "settings" / "world.md").exists()

    def test_move(self, runner: CliRunner, project: Path):
        result = run(runner, project, "move", str(project / "contents"), "chapter2.md", "0")
        assert result.exit_code == 0, result.output
        assert MetaStore(project).load(project / "contents").names() == ["chapter2.md", "chapter1.md"]

    def test_character(self, runner: CliRunner, project: Path):
        result = run(
            runner, project, "character", str(project / "settings"), "world.md",
            "--importance", "sub", "--display-name", "The World",
        )
        assert result.exit_code == 0, result.output
        payload = MetaStore(project).load(project / "settings").find("world.md").payload
        assert payload.importance == "sub"
        assert payload.display_name == "The World"

        result = run(runner, project, "character", str(project / "settings"), "world.md", "--clear")
        assert result.exit_code == 0, result.output
        assert MetaStore(project).load(project / "settings").find("world.md").payload is None


class TestLinks:
    def test_links(self, runner: CliRunner, project: Path):
        result = run(runner, project, "links", str(project / "contents" / "chapter1.md"))
        assert result.exit_code == 0, result.output
        assert result.output.strip() == "settings/world.md"
