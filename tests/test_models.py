"""Tests for the entry model, payload decoding and record validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from quill.models import (
    CharacterInfo,
    ContentEntry,
    DirectoryRecord,
    ForeshadowingInfo,
    GlossaryInfo,
    SettingEntry,
    SubdirectoryEntry,
    entry_from_dict,
    entry_to_dict,
    new_entry,
    validate_record,
)


class TestEntryDecoding:
    def test_content(self):
        entry = entry_from_dict({
            "name": "ch1.md", "type": "content", "tags": ["a", "a", "b"], "references": ["s/w.md"],
        })
        assert isinstance(entry, ContentEntry)
        assert entry.tags == ["a", "b"]
        assert entry.references == ["s/w.md"]

    def test_setting_payloads(self):
        character = entry_from_dict({"name": "a.md", "type": "setting", "character": {"importance": "sub"}})
        assert isinstance(character, SettingEntry)
        assert character.payload == CharacterInfo(importance="sub")

        hint = entry_from_dict({"name": "h.md", "type": "setting", "foreshadowing": {"start": "ch1", "goal": "ch9"}})
        assert hint.payload == ForeshadowingInfo(start="ch1", goal="ch9")

        glossary = entry_from_dict({"name": "g.md", "type": "setting", "glossary": True})
        assert glossary.payload == GlossaryInfo()

        plain = entry_from_dict({"name": "p.md", "type": "setting"})
        assert plain.payload is None

    def test_legacy_character_form(self):
        entry = entry_from_dict({"name": "a.md", "type": "setting", "character": {"main": False, "multi": True}})
        assert entry.payload == CharacterInfo(importance="sub", multiple_characters=True)

    def test_two_payloads_rejected(self):
        with pytest.raises(ValueError, match="at most one"):
            entry_from_dict({"name": "x.md", "type": "setting", "glossary": True, "foreshadowing": {}})

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError, match="unknown entry type"):
            entry_from_dict({"name": "x.md", "type": "chapter"})

    def test_missing_name_rejected(self):
        with pytest.raises(ValueError):
            entry_from_dict({"type": "content"})

    def test_subdirectory_encodes_without_tags(self):
        assert entry_to_dict(SubdirectoryEntry(name="contents")) == {"name": "contents", "type": "subdirectory"}

    def test_setting_encodes_payload_key(self):
        d = entry_to_dict(SettingEntry(name="g.md", payload=GlossaryInfo()))
        assert d["glossary"] is True
        assert "references" not in d

    def test_new_entry(self):
        assert isinstance(new_entry("a", "content"), ContentEntry)
        assert isinstance(new_entry("a", "setting"), SettingEntry)
        assert isinstance(new_entry("a", "subdirectory"), SubdirectoryEntry)


class TestDirectoryRecord:
    def test_round_trip_preserves_order(self):
        raw = {
            "readme": "README.md",
            "files": [
                {"name": "b.md", "type": "content", "tags": [], "references": []},
                {"name": "a.md", "type": "setting", "tags": ["x"]},
                {"name": "sub", "type": "subdirectory"},
            ],
        }
        record = DirectoryRecord.from_dict(raw)
        assert record.names() == ["b.md", "a.md", "sub"]
        assert DirectoryRecord.from_dict(record.to_dict()) == record

    def test_derived_fields_ignored_in_equality(self):
        assert ContentEntry(name="a.md", path=Path("/x/a.md"), is_missing=True) == ContentEntry(name="a.md")

    def test_files_required(self):
        with pytest.raises(ValueError):
            DirectoryRecord.from_dict({"readme": "README.md"})

    def test_find_and_index(self):
        record = DirectoryRecord(files=[ContentEntry(name="a.md"), SettingEntry(name="b.md")])
        assert record.index_of("b.md") == 1
        assert record.index_of("zzz") == -1
        assert record.find("a.md") is record.files[0]
        assert record.find("zzz") is None


class TestValidateRecord:
    def test_valid(self):
        record = DirectoryRecord(files=[ContentEntry(name="a.md", references=["s/w.md"])])
        assert validate_record(record) == []

    def test_duplicate_names(self):
        record = DirectoryRecord(files=[ContentEntry(name="a.md"), SettingEntry(name="a.md")])
        assert any("duplicate name" in e for e in validate_record(record))

    def test_separator_in_name(self):
        record = DirectoryRecord(files=[ContentEntry(name="a/b.md")])
        assert validate_record(record)

    def test_non_canonical_reference(self):
        record = DirectoryRecord(files=[ContentEntry(name="a.md", references=["../w.md"])])
        assert any("not a project path" in e for e in validate_record(record))

    def test_reference_climbing_out_of_root(self):
        record = DirectoryRecord(files=[ContentEntry(name="a.md", references=["s/../../w.md"])])
        assert any("not a project path" in e for e in validate_record(record))

    def test_duplicate_reference(self):
        record = DirectoryRecord(files=[ContentEntry(name="a.md", references=["w.md", "w.md"])])
        assert any("duplicate references" in e for e in validate_record(record))

    def test_bad_importance(self):
        record = DirectoryRecord(files=[SettingEntry(name="a.md", payload=CharacterInfo(importance="hero"))])
        assert any("importance" in e for e in validate_record(record))
