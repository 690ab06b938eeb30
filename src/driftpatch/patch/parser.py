from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Iterable, List, Optional, Set, Tuple

from driftpatch.logger import logger

from .errors import ErrorKind, ParseError
from .format import (
    ADD_PREFIX,
    BEGIN_MARKER,
    CONTEXT_LINE,
    DEL_LINE,
    DELETE_PREFIX,
    END_MARKER,
    END_OF_FILE_MARKER,
    FILE_HEADER_PREFIXES,
    INS_LINE,
    MOVE_TO_PREFIX,
    SECTION_PREFIX,
    UPDATE_PREFIX,
)
from .models import Patch, PatchAction, PatchActionType, PatchChunk, PatchWarning


# Leading lines LLM tool calls tend to wrap patches in.
WRAPPER_PREFIXES = ("```", "%%bash", "apply_patch", "EOF")


class ParserState(Enum):
    PREAMBLE = auto()  # before *** Begin Patch
    ENVELOPE = auto()  # inside the envelope, no open file section
    ADD_BODY = auto()
    UPDATE_HEADER = auto()  # right after an Update header; Move to allowed
    UPDATE_BODY = auto()
    DELETE_BODY = auto()
    SKIP_TO_NEXT = auto()  # after *** End of File
    DONE = auto()


_HEADER_TYPES = {
    ADD_PREFIX: PatchActionType.ADD,
    UPDATE_PREFIX: PatchActionType.UPDATE,
    DELETE_PREFIX: PatchActionType.DELETE,
}

_BODY_STATES = {
    PatchActionType.ADD: ParserState.ADD_BODY,
    PatchActionType.UPDATE: ParserState.UPDATE_HEADER,
    PatchActionType.DELETE: ParserState.DELETE_BODY,
}


@dataclass
class _FileAccumulator:
    path: str
    type: PatchActionType
    line: int
    new_lines: List[str] = field(default_factory=list)
    chunks: List[PatchChunk] = field(default_factory=list)
    move_path: Optional[str] = None
    # Context + deleted lines seen so far in this file.
    seen: int = 0
    del_lines: List[str] = field(default_factory=list)
    ins_lines: List[str] = field(default_factory=list)
    context_run: List[str] = field(default_factory=list)
    # Chunk still collecting trailing context (until the next edit or @@).
    open_tail: Optional[PatchChunk] = None
    # Unprefixed blank lines, held back until more content follows so blanks
    # at the end of a section are dropped.
    pending_blank: int = 0
    warned_content: bool = False

    def add_context(self, text: str) -> None:
        self.close_chunk()
        self.seen += 1
        self.context_run.append(text)
        if self.open_tail is not None:
            self.open_tail.context_after.append(text)

    def add_deleted(self, text: str) -> None:
        self.seen += 1
        self.del_lines.append(text)

    def add_inserted(self, text: str) -> None:
        self.ins_lines.append(text)

    def close_chunk(self) -> None:
        if not self.del_lines and not self.ins_lines:
            return
        chunk = PatchChunk(
            orig_index=self.seen - len(self.del_lines),
            del_lines=self.del_lines,
            ins_lines=self.ins_lines,
            context_before=list(self.context_run),
        )
        self.chunks.append(chunk)
        self.del_lines = []
        self.ins_lines = []
        self.context_run = []
        self.open_tail = chunk

    def break_section(self) -> None:
        self.close_chunk()
        self.context_run = []
        self.open_tail = None

    def to_action(self) -> PatchAction:
        if self.type == PatchActionType.ADD:
            return PatchAction(type=self.type, new_file="\n".join(self.new_lines))
        if self.type == PatchActionType.UPDATE:
            self.break_section()
            return PatchAction(
                type=self.type, chunks=self.chunks, move_path=self.move_path
            )
        return PatchAction(type=self.type)


@dataclass
class _ParseContext:
    existing: Optional[Set[str]]
    unchecked: Set[str] = field(default_factory=set)
    patch: Patch = field(default_factory=Patch)

    def warn(self, message: str, *, path: Optional[str] = None, line: Optional[int] = None) -> None:
        self.patch.warnings.append(PatchWarning(message=message, path=path, line=line))


def normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _match_header(line: str) -> Optional[Tuple[PatchActionType, str]]:
    for prefix in FILE_HEADER_PREFIXES:
        if line.startswith(prefix):
            return _HEADER_TYPES[prefix], line[len(prefix) :].strip()
        # Tolerate a header with an empty path so we can report it.
        if line.rstrip() == prefix.rstrip():
            return _HEADER_TYPES[prefix], ""
    return None


def _open_file(
    ctx: _ParseContext, kind: PatchActionType, path: str, lineno: int
) -> _FileAccumulator:
    if not path:
        raise ParseError(f"Missing file path in {kind.value} header", line=lineno)
    if path in ctx.patch.actions:
        raise ParseError(
            f"Duplicate {kind.value} for file: {path}",
            kind=ErrorKind.DUPLICATE,
            path=path,
            line=lineno,
            hint="Each file may appear only once per patch; merge all its changes into one section.",
        )
    if ctx.existing is not None and path not in ctx.unchecked:
        if kind == PatchActionType.ADD and path in ctx.existing:
            raise ParseError(
                f"Add File Error: File already exists: {path}",
                kind=ErrorKind.FILE_EXISTS,
                path=path,
                line=lineno,
                hint="Use an Update File section to change an existing file.",
            )
        if kind != PatchActionType.ADD and path not in ctx.existing:
            verb = "Update" if kind == PatchActionType.UPDATE else "Delete"
            raise ParseError(
                f"{verb} File Error: Missing File: {path}",
                kind=ErrorKind.FILE_NOT_FOUND,
                path=path,
                line=lineno,
            )
    return _FileAccumulator(path=path, type=kind, line=lineno)


def _finish_file(ctx: _ParseContext, acc: Optional[_FileAccumulator]) -> None:
    if acc is None:
        return
    action = acc.to_action()
    if action.type == PatchActionType.UPDATE and not action.chunks and not action.move_path:
        ctx.warn("Update section has no changes", path=acc.path, line=acc.line)
    ctx.patch.actions[acc.path] = action
    logger.debug(
        "Parsed patch action",
        path=acc.path,
        action=action.type.value,
        chunks=len(action.chunks),
        move_path=action.move_path,
    )


def _add_body_line(ctx: _ParseContext, acc: _FileAccumulator, line: str, lineno: int) -> None:
    if line == "":
        acc.pending_blank += 1
        return
    if acc.pending_blank:
        acc.new_lines.extend([""] * acc.pending_blank)
        acc.pending_blank = 0
    if line.startswith(INS_LINE) or line.startswith(CONTEXT_LINE):
        acc.new_lines.append(line[1:])
        return
    if not acc.warned_content:
        ctx.warn(
            "Add File content line without '+' prefix taken verbatim",
            path=acc.path,
            line=lineno,
        )
        acc.warned_content = True
    acc.new_lines.append(line)


def _update_body_line(acc: _FileAccumulator, line: str) -> None:
    if line == "":
        acc.pending_blank += 1
        return
    for _ in range(acc.pending_blank):
        acc.add_context("")
    acc.pending_blank = 0

    if line.startswith(SECTION_PREFIX):
        # The text after @@ is a hint for humans; it does not anchor anything.
        acc.break_section()
    elif line.startswith(DEL_LINE):
        acc.add_deleted(line[1:])
    elif line.startswith(INS_LINE):
        acc.add_inserted(line[1:])
    elif line.startswith(CONTEXT_LINE):
        acc.add_context(line[1:])
    else:
        # Unprefixed lines are context taken verbatim.
        acc.add_context(line)


def _step(
    ctx: _ParseContext,
    state: ParserState,
    acc: Optional[_FileAccumulator],
    line: str,
    lineno: int,
) -> Tuple[ParserState, Optional[_FileAccumulator]]:
    if state == ParserState.PREAMBLE:
        if line.strip() == BEGIN_MARKER:
            return ParserState.ENVELOPE, None
        return state, None

    if line.rstrip() == END_MARKER:
        _finish_file(ctx, acc)
        return ParserState.DONE, None

    header = _match_header(line)
    if header is not None:
        _finish_file(ctx, acc)
        kind, path = header
        return _BODY_STATES[kind], _open_file(ctx, kind, path, lineno)

    if acc is None:
        if line.strip():
            ctx.warn(f"Ignoring line outside of a file section: {line!r}", line=lineno)
        return state, None

    if line.startswith(MOVE_TO_PREFIX.rstrip()):
        if state != ParserState.UPDATE_HEADER:
            raise ParseError(
                "Move directive must directly follow an Update File header",
                path=acc.path,
                line=lineno,
            )
        move_to = line[len(MOVE_TO_PREFIX.rstrip()) :].strip()
        if not move_to:
            raise ParseError("Missing path in Move to directive", path=acc.path, line=lineno)
        acc.move_path = move_to
        return ParserState.UPDATE_BODY, acc

    if state == ParserState.SKIP_TO_NEXT:
        return state, acc

    if line.rstrip() == END_OF_FILE_MARKER:
        acc.break_section()
        return ParserState.SKIP_TO_NEXT, acc

    if state == ParserState.ADD_BODY:
        _add_body_line(ctx, acc, line, lineno)
        return state, acc

    if state == ParserState.DELETE_BODY:
        if line.strip() and not acc.warned_content:
            ctx.warn("Ignoring content in Delete File section", path=acc.path, line=lineno)
            acc.warned_content = True
        return state, acc

    _update_body_line(acc, line)
    return ParserState.UPDATE_BODY, acc


def parse_patch(
    text: str,
    existing_files: Optional[Iterable[str]] = None,
    unchecked_paths: Iterable[str] = (),
) -> Patch:
    """
    Parse V4A patch text into a Patch.

    When `existing_files` is given, Add sections must target paths outside it
    and Update/Delete sections paths inside it. Paths in `unchecked_paths`
    skip that check. Any structural problem raises ParseError; no partial
    Patch is returned.
    """
    ctx = _ParseContext(
        existing=set(existing_files) if existing_files is not None else None,
        unchecked=set(unchecked_paths),
    )
    state = ParserState.PREAMBLE
    acc: Optional[_FileAccumulator] = None

    for lineno, line in enumerate(normalize_newlines(text).split("\n"), start=1):
        state, acc = _step(ctx, state, acc, line, lineno)
        if state == ParserState.DONE:
            break

    if state == ParserState.PREAMBLE:
        raise ParseError(
            f"Missing {BEGIN_MARKER}",
            hint=f"Wrap the patch with {BEGIN_MARKER} / {END_MARKER}",
        )
    if state != ParserState.DONE:
        raise ParseError(
            f"Missing {END_MARKER}",
            hint=f"Add {END_MARKER} after the last file section",
        )
    return ctx.patch


def preprocess_patch_text(text: str) -> str:
    """
    Clean up patch text as it usually arrives from a model or a shell:
    normalize newlines, drop markdown fences and heredoc wrappers, and add
    the envelope when both markers are missing.
    """
    lines = normalize_newlines(text).split("\n")
    out: List[str] = []
    inside = False
    for line in lines:
        stripped = line.strip()
        if stripped == BEGIN_MARKER:
            inside = True
            out.append(BEGIN_MARKER)
            continue
        if stripped == END_MARKER:
            inside = False
            out.append(END_MARKER)
            continue
        if not inside and stripped.startswith(WRAPPER_PREFIXES):
            continue
        out.append(line)

    while out and not out[0].strip():
        out.pop(0)
    while out and not out[-1].strip():
        out.pop()

    has_begin = any(l == BEGIN_MARKER for l in out)
    has_end = any(l == END_MARKER for l in out)
    if not has_begin and not has_end:
        out = [BEGIN_MARKER, *out, END_MARKER]
    return "\n".join(out)


def referenced_paths(text: str) -> List[str]:
    """All paths named by file headers and Move directives, in order."""
    paths: List[str] = []
    for line in normalize_newlines(text).split("\n"):
        header = _match_header(line)
        if header is not None and header[1]:
            paths.append(header[1])
        elif line.startswith(MOVE_TO_PREFIX):
            move_to = line[len(MOVE_TO_PREFIX) :].strip()
            if move_to:
                paths.append(move_to)
    return paths
