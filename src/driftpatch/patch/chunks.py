from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from driftpatch.logger import logger
from driftpatch.settings import (
    DEFAULT_CONTEXT_LINES,
    DEFAULT_SIMILARITY_THRESHOLD,
    ChunkMode,
)

from .errors import ChunkOrderError, ContextNotFoundError
from .matcher import ContextMatch, find_context
from .models import PatchChunk

_ESCAPES = ("`", "'", '"')


@dataclass
class ChunkApplication:
    content: str
    chunks_applied: int = 0
    fuzz: int = 0
    warnings: List[str] = field(default_factory=list)


def preserve_escaping(original_text: str, new_text: str) -> str:
    """
    Re-escape `new_text` for every quote character that `original_text`
    escapes with a backslash while `new_text` does not.
    """
    needed = [
        ch
        for ch in _ESCAPES
        if "\\" + ch in original_text and "\\" + ch not in new_text
    ]
    if not needed:
        return new_text
    # Backslashes are doubled once, before any quote is escaped.
    result = new_text.replace("\\", "\\\\")
    for ch in needed:
        result = result.replace(ch, "\\" + ch)
    return result


def check_chunk_order(chunks: Sequence[PatchChunk], path: Optional[str] = None) -> None:
    for i, (c1, c2) in enumerate(zip(chunks, chunks[1:]), start=1):
        if c2.orig_index < c1.orig_index + len(c1.del_lines):
            raise ChunkOrderError(
                f"Overlapping or out-of-order change blocks (chunk {i} at line "
                f"{c1.orig_index + 1}, chunk {i + 1} at line {c2.orig_index + 1})",
                path=path,
                hint="Order change blocks top-to-bottom and make sure they do not overlap.",
            )


def _render_chunk(chunk: PatchChunk) -> str:
    out = [f" {s}" for s in chunk.context_before]
    out += [f"-{s}" for s in chunk.del_lines]
    out += [f"+{s}" for s in chunk.ins_lines]
    out += [f" {s}" for s in chunk.context_after]
    return "\n".join(out)


def _locate(
    lines: List[str],
    chunk: PatchChunk,
    est: int,
    min_start: int,
    context_lines: int,
    threshold: float,
) -> tuple[ContextMatch, int]:
    """Return the match and the number of leading context lines in the anchor."""
    if chunk.context_before or chunk.context_after:
        before = chunk.context_before[-context_lines:] if context_lines else []
        after = chunk.context_after[:context_lines]
    else:
        # No context from the patch: anchor on the lines currently around the
        # estimated position.
        before = lines[max(0, est - context_lines) : max(0, est)]
        tail = est + len(chunk.del_lines)
        after = lines[tail : tail + context_lines]

    start = max(0, est - context_lines, min_start)
    anchor = [*before, *chunk.del_lines, *after]
    match = find_context(lines, anchor, start, threshold=threshold)
    if match.found:
        return match, len(before)

    if chunk.del_lines and (before or after):
        # The estimate can lag behind the real position (lines skipped between
        # @@ sections); the deleted block alone is still a usable anchor.
        retry = find_context(lines, chunk.del_lines, min_start, threshold=threshold)
        if retry.found:
            return retry, 0
        return ContextMatch(-1, 0, max(match.similarity, retry.similarity)), 0
    return match, 0


def apply_chunks(
    content: str,
    chunks: Sequence[PatchChunk],
    *,
    mode: ChunkMode = ChunkMode.STRICT,
    preserve_escapes: bool = False,
    context_lines: int = DEFAULT_CONTEXT_LINES,
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    path: Optional[str] = None,
) -> ChunkApplication:
    """
    Replay `chunks` against `content` in order and return the new content.

    Each chunk is located with find_context starting near its original index
    shifted by the net line delta of the chunks applied before it. The search
    never moves back past the previous match.
    """
    check_chunk_order(chunks, path)

    lines = content.split("\n")
    result = ChunkApplication(content=content)
    offset = 0
    min_start = 0

    for idx, chunk in enumerate(chunks):
        est = chunk.orig_index + offset
        match, before_len = _locate(
            lines, chunk, est, min_start, context_lines, threshold
        )
        if not match.found:
            msg = f"Could not find context for chunk {idx + 1} (line {chunk.orig_index + 1})"
            if mode == ChunkMode.STRICT:
                raise ContextNotFoundError(
                    msg,
                    chunk_index=idx,
                    similarity=match.similarity,
                    path=path,
                    hint=(
                        f"Best similarity {match.similarity:.2f}. "
                        f"Change block not found:\n---\n{_render_chunk(chunk)}\n---"
                    ),
                )
            logger.warning(
                "Skipping chunk", path=path, chunk=idx + 1, similarity=match.similarity
            )
            result.warnings.append(f"{path + ': ' if path else ''}{msg}; chunk skipped")
            continue

        insert_index = match.index + before_len
        ins_lines = list(chunk.ins_lines)
        if preserve_escapes and chunk.del_lines:
            replaced = preserve_escaping("\n".join(chunk.del_lines), "\n".join(ins_lines))
            ins_lines = replaced.split("\n") if ins_lines else []

        lines[insert_index : insert_index + len(chunk.del_lines)] = ins_lines
        offset += len(ins_lines) - len(chunk.del_lines)
        min_start = match.index
        result.fuzz += match.fuzz
        result.chunks_applied += 1
        if match.fuzz:
            logger.info(
                "Chunk matched with fuzz",
                path=path,
                chunk=idx + 1,
                fuzz=match.fuzz,
                similarity=round(match.similarity, 3),
            )

    result.content = "\n".join(lines)
    return result
