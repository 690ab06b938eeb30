from __future__ import annotations

from .applier import PatchApplier, apply_patch, apply_patch_text, parse_for_workspace
from .canonical import canonicalize
from .chunks import ChunkApplication, apply_chunks, preserve_escaping
from .errors import (
    ChunkOrderError,
    ContextNotFoundError,
    DiffError,
    ErrorKind,
    ParseError,
    PatchIOError,
    PathSecurityError,
)
from .format import V4A_SYSTEM_INSTRUCTION
from .matcher import ContextMatch, find_context
from .models import Patch, PatchAction, PatchActionType, PatchChunk, PatchWarning
from .parser import parse_patch, preprocess_patch_text
from .report import ApplyResult, FailedFile, FileDetail
from .similarity import levenshtein, similarity

__all__ = [
    "ApplyResult",
    "ChunkApplication",
    "ChunkOrderError",
    "ContextMatch",
    "ContextNotFoundError",
    "DiffError",
    "ErrorKind",
    "FailedFile",
    "FileDetail",
    "ParseError",
    "Patch",
    "PatchAction",
    "PatchActionType",
    "PatchApplier",
    "PatchChunk",
    "PatchIOError",
    "PatchWarning",
    "PathSecurityError",
    "V4A_SYSTEM_INSTRUCTION",
    "apply_chunks",
    "apply_patch",
    "apply_patch_text",
    "canonicalize",
    "find_context",
    "levenshtein",
    "parse_for_workspace",
    "parse_patch",
    "preprocess_patch_text",
    "preserve_escaping",
    "similarity",
]
