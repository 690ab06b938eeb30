from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class PatchActionType(str, Enum):
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class PatchChunk:
    # 0-based line index into the original file where deletion/insertion
    # begins, before any offset introduced by earlier chunks.
    orig_index: int
    del_lines: List[str] = field(default_factory=list)
    ins_lines: List[str] = field(default_factory=list)
    # Context lines the patch author showed around the edit. Used only to
    # anchor the chunk; not part of chunk identity.
    context_before: List[str] = field(default_factory=list, compare=False)
    context_after: List[str] = field(default_factory=list, compare=False)


@dataclass
class PatchAction:
    type: PatchActionType
    # ADD only
    new_file: Optional[str] = None
    # UPDATE only, ordered by orig_index
    chunks: List[PatchChunk] = field(default_factory=list)
    move_path: Optional[str] = None


@dataclass
class PatchWarning:
    message: str
    path: Optional[str] = None
    line: Optional[int] = None

    def __str__(self) -> str:
        loc = ""
        if self.path and self.line is not None:
            loc = f"{self.path}:{self.line}: "
        elif self.path:
            loc = f"{self.path}: "
        elif self.line is not None:
            loc = f"line {self.line}: "
        return f"{loc}{self.message}"


@dataclass
class Patch:
    # Insertion ordered: file path -> its single action
    actions: Dict[str, PatchAction] = field(default_factory=dict)
    warnings: List[PatchWarning] = field(default_factory=list)

    def paths(self, *types: PatchActionType) -> List[str]:
        if not types:
            return list(self.actions.keys())
        return [p for p, a in self.actions.items() if a.type in types]
