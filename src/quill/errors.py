"""Error taxonomy shared by the store, graph and mutation service."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    UNSUPPORTED = "unsupported"
    OUT_OF_PROJECT = "out_of_project"
    IO_FAILURE = "io_failure"
    CONFLICT = "conflict"


class QuillError(Exception):
    """Base class for all quill errors."""

    kind: ErrorKind = ErrorKind.IO_FAILURE


class NotFoundError(QuillError):
    """A directory record or a named entry does not exist."""

    kind = ErrorKind.NOT_FOUND


class UnsupportedError(QuillError):
    """The entry kind does not carry the requested field."""

    kind = ErrorKind.UNSUPPORTED


class OutOfProjectError(QuillError):
    """A link is external or resolves outside the project root."""

    kind = ErrorKind.OUT_OF_PROJECT


class IOFailureError(QuillError):
    """Reading or writing storage failed."""

    kind = ErrorKind.IO_FAILURE


class ConflictError(QuillError):
    """An entry or file with the target name already exists."""

    kind = ErrorKind.CONFLICT


class StaleRecordError(IOFailureError):
    """The record on disk changed between load and save."""
