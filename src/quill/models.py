"""Data models for per-directory metadata records.

A directory's record lists its children in display order. Each child is one of
three entry kinds, discriminated by an explicit ``type`` key when encoded:

    readme: README.md
    files:
      - name: chapter1.md
        type: content
        hash: sha256:...
        tags: [draft]
        references: [settings/world.md]
      - name: alice.md
        type: setting
        tags: []
        character: {importance: main, multiple_characters: false, display_name: Alice}
      - name: settings
        type: subdirectory

Setting entries carry at most one payload (character, foreshadowing, glossary).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar, Literal, assert_never

from quill.paths import escapes_root, is_project_root_relative

EntryKind = Literal["content", "setting", "subdirectory"]
ENTRY_KINDS: tuple[EntryKind, ...] = ("content", "setting", "subdirectory")
CHARACTER_IMPORTANCE = ("main", "sub", "background")


# ---------------------------------------------------------------------------
# Setting payloads
# ---------------------------------------------------------------------------

@dataclass
class CharacterInfo:
    importance: str = "main"           # main | sub | background
    multiple_characters: bool = False
    display_name: str = ""

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> CharacterInfo:
        if "importance" not in d and "main" in d:
            # Older records: {main: bool, multi: bool}
            return cls(
                importance="main" if d.get("main") else "sub",
                multiple_characters=bool(d.get("multi", False)),
            )
        return cls(
            importance=str(d.get("importance", "main")),
            multiple_characters=bool(d.get("multiple_characters", False)),
            display_name=str(d.get("display_name", "")),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "importance": self.importance,
            "multiple_characters": self.multiple_characters,
        }
        if self.display_name:
            d["display_name"] = self.display_name
        return d


@dataclass
class ForeshadowingInfo:
    start: str = ""    # where the hint is planted
    goal: str = ""     # where it pays off

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ForeshadowingInfo:
        return cls(start=str(d.get("start", "")), goal=str(d.get("goal", "")))

    def to_dict(self) -> dict[str, Any]:
        return {"start": self.start, "goal": self.goal}


@dataclass
class GlossaryInfo:
    pass


SettingPayload = CharacterInfo | ForeshadowingInfo | GlossaryInfo
_PAYLOAD_KEYS = ("character", "foreshadowing", "glossary")


def _decode_payload(d: dict[str, Any]) -> SettingPayload | None:
    present = [k for k in _PAYLOAD_KEYS if d.get(k) not in (None, False)]
    if len(present) > 1:
        msg = f"{d.get('name')}: at most one of {', '.join(present)} allowed"
        raise ValueError(msg)
    if not present:
        return None
    key = present[0]
    value = d[key]
    if key == "glossary":
        return GlossaryInfo()
    if not isinstance(value, dict):
        msg = f"{d.get('name')}: {key} must be a mapping"
        raise ValueError(msg)
    if key == "character":
        return CharacterInfo.from_dict(value)
    return ForeshadowingInfo.from_dict(value)


def _encode_payload(payload: SettingPayload | None) -> dict[str, Any]:
    match payload:
        case None:
            return {}
        case CharacterInfo():
            return {"character": payload.to_dict()}
        case ForeshadowingInfo():
            return {"foreshadowing": payload.to_dict()}
        case GlossaryInfo():
            return {"glossary": True}
        case _:
            assert_never(payload)


def _str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        msg = f"expected a list, got {type(value).__name__}"
        raise ValueError(msg)
    return list(dict.fromkeys(str(v) for v in value))


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------

@dataclass(kw_only=True)
class _EntryBase:
    name: str
    # Derived, never persisted
    path: Path | None = field(default=None, compare=False)
    is_untracked: bool = field(default=False, compare=False)
    is_missing: bool = field(default=False, compare=False)


@dataclass(kw_only=True)
class ContentEntry(_EntryBase):
    """A manuscript file: tags plus outgoing references."""

    kind: ClassVar[EntryKind] = "content"
    hash: str = ""
    tags: list[str] = field(default_factory=list)
    references: list[str] = field(default_factory=list)
    comments: str = ""


@dataclass(kw_only=True)
class SettingEntry(_EntryBase):
    """A worldbuilding file; may describe a character, foreshadowing or glossary."""

    kind: ClassVar[EntryKind] = "setting"
    hash: str = ""
    tags: list[str] = field(default_factory=list)
    comments: str = ""
    payload: SettingPayload | None = None


@dataclass(kw_only=True)
class SubdirectoryEntry(_EntryBase):
    kind: ClassVar[EntryKind] = "subdirectory"


FileEntry = ContentEntry | SettingEntry | SubdirectoryEntry


def entry_from_dict(d: dict[str, Any]) -> FileEntry:
    """Decode one ``files`` item. Raises ValueError on malformed input."""
    if not isinstance(d, dict):
        msg = f"file entry must be a mapping, got {type(d).__name__}"
        raise ValueError(msg)
    name = d.get("name")
    if not name or not isinstance(name, str):
        msg = "file entry without a name"
        raise ValueError(msg)

    kind = d.get("type")
    if kind == "content":
        return ContentEntry(
            name=name,
            hash=str(d.get("hash") or ""),
            tags=_str_list(d.get("tags")),
            references=_str_list(d.get("references")),
            comments=str(d.get("comments") or ""),
        )
    if kind == "setting":
        return SettingEntry(
            name=name,
            hash=str(d.get("hash") or ""),
            tags=_str_list(d.get("tags")),
            comments=str(d.get("comments") or ""),
            payload=_decode_payload(d),
        )
    if kind == "subdirectory":
        return SubdirectoryEntry(name=name)
    msg = f"{name}: unknown entry type {kind!r}"
    raise ValueError(msg)


def entry_to_dict(entry: FileEntry) -> dict[str, Any]:
    d: dict[str, Any] = {"name": entry.name, "type": entry.kind}
    match entry:
        case ContentEntry():
            if entry.hash:
                d["hash"] = entry.hash
            d["tags"] = list(entry.tags)
            d["references"] = list(entry.references)
            if entry.comments:
                d["comments"] = entry.comments
        case SettingEntry():
            if entry.hash:
                d["hash"] = entry.hash
            d["tags"] = list(entry.tags)
            if entry.comments:
                d["comments"] = entry.comments
            d.update(_encode_payload(entry.payload))
        case SubdirectoryEntry():
            pass
        case _:
            assert_never(entry)
    return d


def new_entry(name: str, kind: EntryKind) -> FileEntry:
    """Empty entry of the given kind."""
    match kind:
        case "content":
            return ContentEntry(name=name)
        case "setting":
            return SettingEntry(name=name)
        case "subdirectory":
            return SubdirectoryEntry(name=name)
        case _:
            assert_never(kind)


# ---------------------------------------------------------------------------
# Directory record
# ---------------------------------------------------------------------------

@dataclass
class DirectoryRecord:
    """Metadata for one directory's children, in display order."""

    files: list[FileEntry] = field(default_factory=list)
    readme: str | None = None
    # sha256 of the bytes this record was decoded from; None for new records
    fingerprint: str | None = field(default=None, compare=False)

    @classmethod
    def from_dict(cls, d: dict[str, Any], fingerprint: str | None = None) -> DirectoryRecord:
        files = d.get("files")
        if not isinstance(files, list):
            msg = "record has no files list"
            raise ValueError(msg)
        readme = d.get("readme")
        return cls(
            files=[entry_from_dict(item) for item in files],
            readme=str(readme) if readme else None,
            fingerprint=fingerprint,
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        if self.readme:
            d["readme"] = self.readme
        d["files"] = [entry_to_dict(e) for e in self.files]
        return d

    def names(self) -> list[str]:
        return [e.name for e in self.files]

    def index_of(self, name: str) -> int:
        """Position of the named entry, or -1."""
        for i, entry in enumerate(self.files):
            if entry.name == name:
                return i
        return -1

    def find(self, name: str) -> FileEntry | None:
        i = self.index_of(name)
        return self.files[i] if i >= 0 else None


def validate_record(record: DirectoryRecord) -> list[str]:
    """Return a list of structural problems; empty when the record is valid."""
    errors: list[str] = []
    seen: set[str] = set()
    for i, entry in enumerate(record.files):
        label = f"files[{i}]"
        if not entry.name:
            errors.append(f"{label}: name is required")
        elif entry.name in seen:
            errors.append(f"{label}: duplicate name {entry.name!r}")
        seen.add(entry.name)
        if "/" in entry.name or "\\" in entry.name:
            errors.append(f"{label}: name must not contain a path separator")

        match entry:
            case ContentEntry():
                if len(set(entry.references)) != len(entry.references):
                    errors.append(f"{label}: duplicate references")
                for ref in entry.references:
                    if not ref or not is_project_root_relative(ref) or escapes_root(ref):
                        errors.append(f"{label}: reference {ref!r} is not a project path")
            case SettingEntry():
                if isinstance(entry.payload, CharacterInfo) and (
                    entry.payload.importance not in CHARACTER_IMPORTANCE
                ):
                    errors.append(
                        f"{label}: character importance must be one of {', '.join(CHARACTER_IMPORTANCE)}"
                    )
            case SubdirectoryEntry():
                pass
            case _:
                assert_never(entry)
    return errors
