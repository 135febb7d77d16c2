"""File metadata and cross-references for long-form writing projects.

Layout:
    quill.toml              # project descriptor; marks the root
    .quill/
        meta.yaml           # record for the root directory (YAML, git-tracked)
        <dir>/meta.yaml     # record for <root>/<dir>
    contents/ settings/ ... # the writer's own files, never modified except by
                            # rename/delete

A record lists a directory's children in display order. Content entries carry
tags and references (canonical project paths); setting entries carry tags and
an optional character / foreshadowing / glossary payload.

The reference graph is derived from the records when a project is opened and
is never persisted.
"""

from quill.config import QuillConfig, init_config, load_config
from quill.errors import ErrorKind, QuillError
from quill.graph import ReferenceGraph, ReferenceInfo
from quill.models import ContentEntry, DirectoryRecord, SettingEntry, SubdirectoryEntry
from quill.mutations import MetadataService, MutationResult
from quill.session import ProjectSession
from quill.status import FileStatus, get_file_status_list
from quill.store import MetaStore

__all__ = [
    "ContentEntry",
    "DirectoryRecord",
    "ErrorKind",
    "FileStatus",
    "MetaStore",
    "MetadataService",
    "MutationResult",
    "ProjectSession",
    "QuillConfig",
    "QuillError",
    "ReferenceGraph",
    "ReferenceInfo",
    "SettingEntry",
    "SubdirectoryEntry",
    "get_file_status_list",
    "init_config",
    "load_config",
]
