"""quill CLI — metadata, tags and cross-references for a writing project.

Commands:
    quill init [NAME]                    create quill.toml + .quill/
    quill status [DIR]                   managed / untracked / missing listing
    quill tag add|remove|set DIR NAME    edit an entry's tags
    quill ref add|remove|set DIR NAME    edit a content entry's references
    quill refs PATH [--links]            outgoing, incoming and dangling refs
    quill check                          project-wide dangling references
    quill track PATH [--kind]            list an untracked file
    quill untrack PATH                   unlist a file (keeps it on disk)
    quill rename DIR OLD NEW             rename, rewriting references and links
    quill delete DIR NAME                delete file and entry
    quill move DIR NAME INDEX            reorder within the directory
    quill character DIR NAME             mark a setting as a character
    quill links FILE                     in-project markdown links of a file
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import TYPE_CHECKING

import click

from quill.config import init_config, load_config
from quill.errors import QuillError
from quill.links import extract_project_links
from quill.models import CHARACTER_IMPORTANCE, ENTRY_KINDS, ContentEntry, SettingEntry
from quill.paths import get_project_relative_path
from quill.session import ProjectSession
from quill.status import FileStatus, get_file_status_list

if TYPE_CHECKING:
    from quill.mutations import MutationResult

_STATUS_STYLE = {
    FileStatus.MANAGED: "green",
    FileStatus.UNTRACKED: "yellow",
    FileStatus.MISSING: "red",
}

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_session(
    ctx: click.Context, *, build_graph: bool = True, scan_hyperlinks: bool | None = None,
) -> ProjectSession:
    root = ctx.obj.get("root") if ctx.obj else None
    try:
        return ProjectSession.open(root, build_graph=build_graph, scan_hyperlinks=scan_hyperlinks)
    except (OSError, tomllib.TOMLDecodeError, QuillError) as exc:
        raise click.ClickException(str(exc)) from exc


def _report(result: MutationResult) -> None:
    if not result.success:
        raise click.ClickException(result.message)
    click.echo(result.message)


def _abs(path: str) -> Path:
    return Path(path).resolve()


def _canonical(session: ProjectSession, path: str) -> str:
    rel = get_project_relative_path(_abs(path), session.root)
    if not rel:
        msg = f"{path} is not inside the project {session.root}"
        raise click.ClickException(msg)
    return rel


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="quill")
@click.option("--root", "-C", default=None, help="Start the project search here instead of cwd")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx: click.Context, root: str | None, verbose: bool) -> None:
    """quill — metadata for writing projects."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["root"] = root


# ---------------------------------------------------------------------------
# quill init
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("name", required=False)
@click.option("--dir", "root", default=".", show_default=True, help="Project root")
def init(name: str | None, root: str) -> None:
    """Create quill.toml and the .quill/ bookkeeping directory."""
    root_path = Path(root).resolve()
    try:
        config_path = init_config(root_path, name=name)
        click.echo(f"Created {config_path}")
    except FileExistsError:
        click.echo("quill.toml already exists, skipping init")

    cfg = load_config(root_path)
    cfg.ensure_dirs()
    click.echo(f"Metadata dir : {cfg.meta_dir}")


# ---------------------------------------------------------------------------
# quill status
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("directory", default=".")
@click.pass_context
def status(ctx: click.Context, directory: str) -> None:
    """List a directory's children as managed, untracked or missing."""
    from rich.console import Console
    from rich.table import Table

    session = _load_session(ctx, build_graph=False)
    path = _abs(directory)
    if get_project_relative_path(path, session.root) is None:
        msg = f"{directory} is not inside the project {session.root}"
        raise click.ClickException(msg)

    infos = get_file_status_list(path, session.store, exclude=session.config.status.exclude)
    rel = get_project_relative_path(path, session.root) or "."
    table = Table(title=f"quill — {session.config.name}: {rel}", show_header=True, header_style="bold")
    table.add_column("Name", no_wrap=True)
    table.add_column("Kind", style="dim")
    table.add_column("Status", no_wrap=True)
    table.add_column("Tags")
    table.add_column("Refs", justify="right")

    for info in infos:
        entry = info.to_entry()
        kind = "untracked" if entry.is_untracked else entry.kind
        tags = ""
        if isinstance(entry, ContentEntry | SettingEntry) and not entry.is_untracked:
            tags = ", ".join(entry.tags)
        refs = str(len(entry.references)) if isinstance(entry, ContentEntry) else ""
        name = info.name + "/" if info.is_directory or entry.kind == "subdirectory" else info.name
        style = _STATUS_STYLE[info.status]
        table.add_row(name, kind, f"[{style}]{info.status.value}[/{style}]", tags, refs)

    Console().print(table)


# ---------------------------------------------------------------------------
# quill tag
# ---------------------------------------------------------------------------


@cli.group()
def tag() -> None:
    """Edit an entry's tags."""


@tag.command("add")
@click.argument("directory")
@click.argument("name")
@click.argument("tag_name", metavar="TAG")
@click.pass_context
def tag_add(ctx: click.Context, directory: str, name: str, tag_name: str) -> None:
    """Add TAG to NAME in DIRECTORY."""
    session = _load_session(ctx, build_graph=False)
    _report(session.service.add_tag(_abs(directory), name, tag_name))


@tag.command("remove")
@click.argument("directory")
@click.argument("name")
@click.argument("tag_name", metavar="TAG")
@click.pass_context
def tag_remove(ctx: click.Context, directory: str, name: str, tag_name: str) -> None:
    """Remove TAG from NAME in DIRECTORY."""
    session = _load_session(ctx, build_graph=False)
    _report(session.service.remove_tag(_abs(directory), name, tag_name))


@tag.command("set")
@click.argument("directory")
@click.argument("name")
@click.argument("tags", nargs=-1)
@click.pass_context
def tag_set(ctx: click.Context, directory: str, name: str, tags: tuple[str, ...]) -> None:
    """Replace NAME's tags (no TAGS clears them)."""
    session = _load_session(ctx, build_graph=False)
    _report(session.service.set_tags(_abs(directory), name, tags))


# ---------------------------------------------------------------------------
# quill ref / refs / check
# ---------------------------------------------------------------------------


@cli.group()
def ref() -> None:
    """Edit a content entry's references."""


@ref.command("add")
@click.argument("directory")
@click.argument("name")
@click.argument("target")
@click.pass_context
def ref_add(ctx: click.Context, directory: str, name: str, target: str) -> None:
    """Make NAME reference TARGET (relative to NAME, or to the project root)."""
    session = _load_session(ctx)
    _report(session.service.add_reference(_abs(directory), name, target))


@ref.command("remove")
@click.argument("directory")
@click.argument("name")
@click.argument("target")
@click.pass_context
def ref_remove(ctx: click.Context, directory: str, name: str, target: str) -> None:
    """Drop NAME's reference to TARGET."""
    session = _load_session(ctx)
    _report(session.service.remove_reference(_abs(directory), name, target))


@ref.command("set")
@click.argument("directory")
@click.argument("name")
@click.argument("targets", nargs=-1)
@click.pass_context
def ref_set(ctx: click.Context, directory: str, name: str, targets: tuple[str, ...]) -> None:
    """Replace NAME's references (no TARGETS clears them)."""
    session = _load_session(ctx)
    _report(session.service.set_references(_abs(directory), name, targets))


@cli.command()
@click.argument("path")
@click.option("--links", "scan_links", is_flag=True, help="Also count markdown links as references")
@click.pass_context
def refs(ctx: click.Context, path: str, scan_links: bool) -> None:
    """Show what PATH references and what references it."""
    with _load_session(ctx, scan_hyperlinks=scan_links or None) as session:
        graph = session.graph
        canonical = _canonical(session, path)
        info = graph.get_references(canonical)
        dangling = set(graph.get_invalid_references(canonical))

        click.echo(f"{canonical}")
        click.echo(f"  references ({len(info.references)}):")
        for target in info.references:
            marker = "  [missing]" if target in dangling else ""
            if graph.edge_sources(canonical, target) == {"hyperlink"}:
                marker += "  [link]"
            click.echo(f"    {target}{marker}")
        click.echo(f"  referenced by ({len(info.referenced_by)}):")
        for source in info.referenced_by:
            marker = "  [link]" if graph.edge_sources(source, canonical) == {"hyperlink"} else ""
            click.echo(f"    {source}{marker}")


@cli.command()
@click.pass_context
def check(ctx: click.Context) -> None:
    """Report references whose target no longer exists. Exit 1 if any."""
    with _load_session(ctx) as session:
        dangling = session.graph.dangling_references()
    if not dangling:
        click.echo("No dangling references.")
        return
    for source, targets in dangling.items():
        for target in targets:
            click.echo(f"{source} -> {target}  (missing)")
    click.echo(f"{sum(len(t) for t in dangling.values())} dangling reference(s)", err=True)
    raise SystemExit(1)


# ---------------------------------------------------------------------------
# quill track / untrack / rename / delete / move
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("path")
@click.option(
    "--kind", type=click.Choice(ENTRY_KINDS), default=None,
    help="Entry kind (default: subdirectory for directories, setting for files)",
)
@click.pass_context
def track(ctx: click.Context, path: str, kind: str | None) -> None:
    """List an untracked file or directory in its parent's record."""
    session = _load_session(ctx, build_graph=False)
    target = _abs(path)
    if kind is None:
        kind = "subdirectory" if target.is_dir() else "setting"
    _report(session.service.track(target, kind))  # type: ignore[arg-type]


@cli.command()
@click.argument("path")
@click.pass_context
def untrack(ctx: click.Context, path: str) -> None:
    """Remove PATH's entry from its record. The file stays on disk."""
    session = _load_session(ctx)
    _report(session.service.untrack(_abs(path)))


@cli.command()
@click.argument("directory")
@click.argument("old")
@click.argument("new")
@click.pass_context
def rename(ctx: click.Context, directory: str, old: str, new: str) -> None:
    """Rename OLD to NEW in DIRECTORY and rewrite references to it."""
    session = _load_session(ctx)
    _report(session.service.rename(_abs(directory), old, new))


@cli.command()
@click.argument("directory")
@click.argument("name")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def delete(ctx: click.Context, directory: str, name: str, yes: bool) -> None:
    """Delete NAME from disk and from DIRECTORY's record."""
    if not yes:
        click.confirm(f"Delete {Path(directory) / name}?", abort=True)
    session = _load_session(ctx)
    _report(session.service.delete(_abs(directory), name))


@cli.command()
@click.argument("directory")
@click.argument("name")
@click.argument("index", type=int)
@click.pass_context
def move(ctx: click.Context, directory: str, name: str, index: int) -> None:
    """Move NAME to position INDEX within DIRECTORY."""
    session = _load_session(ctx, build_graph=False)
    _report(session.service.reorder(_abs(directory), name, index))


# ---------------------------------------------------------------------------
# quill character
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("directory")
@click.argument("name")
@click.option("--importance", type=click.Choice(CHARACTER_IMPORTANCE), default="main", show_default=True)
@click.option("--multiple", is_flag=True, help="The entry describes a group of characters")
@click.option("--display-name", default="", help="Name shown instead of the file name")
@click.option("--clear", is_flag=True, help="Turn the entry back into a plain setting")
@click.pass_context
def character(
    ctx: click.Context, directory: str, name: str, importance: str, multiple: bool, display_name: str, clear: bool,
) -> None:
    """Mark setting NAME as a character sheet."""
    session = _load_session(ctx, build_graph=False)
    if clear:
        _report(session.service.clear_payload(_abs(directory), name))
        return
    _report(session.service.set_character(
        _abs(directory), name, importance, multiple=multiple, display_name=display_name,
    ))


# ---------------------------------------------------------------------------
# quill links
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def links(ctx: click.Context, file: str) -> None:
    """List in-project files linked from markdown FILE."""
    session = _load_session(ctx, build_graph=False)
    for target in extract_project_links(_abs(file), session.root, session.config.references.external_schemes):
        click.echo(target)
