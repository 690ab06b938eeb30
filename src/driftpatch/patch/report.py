from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from .errors import ErrorKind
from .models import PatchActionType


class FailedFile(BaseModel):
    path: str
    kind: ErrorKind
    message: str


class FileDetail(BaseModel):
    path: str
    action: PatchActionType
    chunks_applied: int = 0
    # Sum of the fuzz codes of every located chunk; 0 means all exact.
    fuzz: int = 0
    move_path: Optional[str] = None
    # Computed content for Add/Update, also filled under dry-run for preview.
    new_content: Optional[str] = None


class ApplyResult(BaseModel):
    applied: List[str] = Field(default_factory=list)
    failed: List[FailedFile] = Field(default_factory=list)
    backups: List[str] = Field(default_factory=list)
    details: List[FileDetail] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def total_fuzz(self) -> int:
        return sum(d.fuzz for d in self.details)

    def detail_for(self, path: str) -> Optional[FileDetail]:
        for d in self.details:
            if d.path == path:
                return d
        return None

    def summary(self) -> str:
        """Human-readable report, suitable as tool output for an LLM loop."""
        lines: List[str] = []
        mode = " (dry run, no files were changed)" if self.dry_run else ""

        if not self.failed:
            lines.append(f"Applied patch successfully{mode}.")
        elif not self.applied:
            lines.append(f"Patch application failed{mode}. No changes were applied.")
        else:
            lines.append(f"Patch application completed with errors{mode}. Summary:")

        groups = (
            (PatchActionType.ADD, "Added files:"),
            (PatchActionType.UPDATE, "Updated files:"),
            (PatchActionType.DELETE, "Deleted files:"),
        )
        for action, title in groups:
            entries = [d for d in self.details if d.action == action]
            if not entries:
                continue
            lines.append(title)
            for d in entries:
                entry = f"* {d.path}"
                if d.move_path:
                    entry += f" -> {d.move_path}"
                if d.fuzz:
                    entry += f" (fuzz {d.fuzz}, review recommended)"
                lines.append(entry)

        if self.backups:
            lines.append("Backups:")
            lines.extend(f"* {b}" for b in self.backups)

        if self.warnings:
            lines.append("Warnings:")
            lines.extend(f"* {w}" for w in self.warnings)

        if self.failed:
            lines.append("Errors:")
            for f in self.failed:
                lines.append(f"* {f.path}: [{f.kind.value}] {f.message}")
            lines.append(
                "Please regenerate patch sections for the failed files. "
                "You might want to re-read the source files."
            )

        total = len(self.applied) + len(self.failed)
        if total:
            rate = len(self.applied) / total * 100
            lines.append(f"Success rate: {rate:.1f}% ({len(self.applied)}/{total})")
        return "\n".join(lines)
