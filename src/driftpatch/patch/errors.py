from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    PARSE = "parse"
    DUPLICATE = "duplicate"
    FILE_EXISTS = "file_exists"
    FILE_NOT_FOUND = "file_not_found"
    CONTEXT_NOT_FOUND = "context_not_found"
    CHUNK_ORDER = "chunk_order"
    PATH_SECURITY = "path_security"
    IO = "io"


class DiffError(ValueError):
    """Any problem detected while parsing or applying a patch."""

    default_kind: ErrorKind = ErrorKind.PARSE

    def __init__(
        self,
        msg: str,
        *,
        kind: Optional[ErrorKind] = None,
        path: Optional[str] = None,
        line: Optional[int] = None,
        hint: Optional[str] = None,
    ) -> None:
        super().__init__(msg)
        self.msg = msg
        self.kind = kind or self.default_kind
        self.path = path
        self.line = line
        self.hint = hint

    def describe(self) -> str:
        loc = ""
        if self.path and self.line is not None:
            loc = f"{self.path}:{self.line}: "
        elif self.path:
            loc = f"{self.path}: "
        elif self.line is not None:
            loc = f"line {self.line}: "
        text = f"{loc}{self.msg}"
        if self.hint:
            text += f"\n  Hint: {self.hint}"
        return text


class ParseError(DiffError):
    """Malformed patch text. Always raised before any file is touched."""

    default_kind = ErrorKind.PARSE


class ContextNotFoundError(DiffError):
    default_kind = ErrorKind.CONTEXT_NOT_FOUND

    def __init__(
        self,
        msg: str,
        *,
        chunk_index: int,
        similarity: float = 0.0,
        path: Optional[str] = None,
        hint: Optional[str] = None,
    ) -> None:
        super().__init__(msg, path=path, hint=hint)
        self.chunk_index = chunk_index
        self.similarity = similarity


class ChunkOrderError(DiffError):
    default_kind = ErrorKind.CHUNK_ORDER


class PathSecurityError(DiffError):
    default_kind = ErrorKind.PATH_SECURITY


class PatchIOError(DiffError):
    default_kind = ErrorKind.IO

    @classmethod
    def from_os_error(
        cls, exc: OSError, *, path: str, action: str
    ) -> "PatchIOError":
        kind = ErrorKind.IO
        if isinstance(exc, FileNotFoundError):
            kind = ErrorKind.FILE_NOT_FOUND
        elif isinstance(exc, FileExistsError):
            kind = ErrorKind.FILE_EXISTS
        return cls(
            f"Failed to {action} file: {path}",
            kind=kind,
            path=path,
            hint=f"{type(exc).__name__}: {exc}",
        )
