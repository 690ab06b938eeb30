from __future__ import annotations

import datetime
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

from driftpatch.logger import logger
from driftpatch.settings import ApplyOptions

from .chunks import apply_chunks
from .errors import DiffError, ErrorKind, PatchIOError, PathSecurityError
from .models import Patch, PatchAction, PatchActionType
from .parser import normalize_newlines, parse_patch, preprocess_patch_text, referenced_paths
from .report import ApplyResult, FailedFile, FileDetail


@dataclass
class _JournalEntry:
    # created | updated | deleted | moved
    change: str
    path: str
    move_path: Optional[str] = None


class PatchApplier:
    """
    Applies a parsed Patch to the files under `workspace_root`.

    Every file is handled independently: a failure is recorded in the
    result and the remaining files are still processed. Files written before
    a failure are not rolled back; `revert()` restores them on request.
    """

    def __init__(
        self,
        workspace_root: Union[str, Path],
        options: Optional[ApplyOptions] = None,
    ) -> None:
        self._root = Path(workspace_root).resolve()
        self._options = options or ApplyOptions()
        self._originals: Dict[str, str] = {}
        # Delete targets are kept as raw bytes; they are never decoded.
        self._deleted: Dict[str, bytes] = {}
        self._journal: List[_JournalEntry] = []

    @property
    def workspace_root(self) -> Path:
        return self._root

    @property
    def options(self) -> ApplyOptions:
        return self._options

    @property
    def originals(self) -> Dict[str, str]:
        return dict(self._originals)

    def resolve_path(self, rel: str) -> Path:
        if not rel or not rel.strip():
            raise PathSecurityError("Empty path", path=rel)
        resolved = (self._root / Path(rel).expanduser()).resolve()
        try:
            resolved.relative_to(self._root)
        except ValueError:
            raise PathSecurityError(
                f"Path escapes workspace root: {rel}",
                path=rel,
                hint="Use a path relative to the workspace root.",
            ) from None
        if resolved == self._root:
            raise PathSecurityError(f"Path points at the workspace root: {rel}", path=rel)
        return resolved

    def _read(self, rel: str) -> str:
        target = self.resolve_path(rel)
        try:
            with target.open("rt", encoding="utf-8", newline="") as fh:
                return normalize_newlines(fh.read())
        except OSError as e:
            raise PatchIOError.from_os_error(e, path=rel, action="read") from e
        except UnicodeDecodeError as e:
            raise PatchIOError(
                f"File is not valid UTF-8 text: {rel}",
                path=rel,
                hint="Binary files cannot be patched.",
            ) from e

    def _read_bytes(self, rel: str) -> bytes:
        target = self.resolve_path(rel)
        try:
            return target.read_bytes()
        except OSError as e:
            raise PatchIOError.from_os_error(e, path=rel, action="read") from e

    def _write(self, target: Path, content: str) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("wt", encoding="utf-8", newline="") as fh:
            fh.write(content)

    def _write_bytes(self, target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    def _backup(self, target: Path, rel: str) -> str:
        stamp = datetime.datetime.now().isoformat().replace(":", "-").replace(".", "-")
        suffix = f".backup-{stamp}"
        shutil.copy2(target, target.with_name(target.name + suffix))
        return rel + suffix

    def load_originals(self, patch: Patch) -> Dict[str, DiffError]:
        """
        Read every Update target as text and every Delete target as bytes.
        Returns per-file errors.
        """
        errors: Dict[str, DiffError] = {}
        for path in patch.paths(PatchActionType.UPDATE):
            try:
                self._originals[path] = self._read(path)
            except DiffError as e:
                errors[path] = e
        for path in patch.paths(PatchActionType.DELETE):
            try:
                self._deleted[path] = self._read_bytes(path)
            except DiffError as e:
                errors[path] = e
        return errors

    def apply(self, patch: Patch) -> ApplyResult:
        opts = self._options
        result = ApplyResult(
            dry_run=opts.dry_run, warnings=[str(w) for w in patch.warnings]
        )
        logger.info(
            "Applying patch",
            files=len(patch.actions),
            root=str(self._root),
            dry_run=opts.dry_run,
        )

        preload_errors = self.load_originals(patch)

        for path, action in patch.actions.items():
            error: Optional[DiffError] = preload_errors.get(path)
            if error is None:
                try:
                    detail = self._apply_action(path, action, result)
                except DiffError as e:
                    error = e
                except OSError as e:
                    error = PatchIOError.from_os_error(e, path=path, action="update")
            if error is not None:
                logger.warning(
                    "Failed to apply file", path=path, kind=error.kind.value, error=error.msg
                )
                result.failed.append(
                    FailedFile(path=path, kind=error.kind, message=error.describe())
                )
                continue
            result.applied.append(path)
            result.details.append(detail)

        logger.info(
            "Patch applied",
            applied=len(result.applied),
            failed=len(result.failed),
            fuzz=result.total_fuzz,
        )
        return result

    def _apply_action(
        self, path: str, action: PatchAction, result: ApplyResult
    ) -> FileDetail:
        if action.type == PatchActionType.ADD:
            return self._add(path, action)
        if action.type == PatchActionType.DELETE:
            return self._delete(path, result)
        return self._update(path, action, result)

    def _add(self, path: str, action: PatchAction) -> FileDetail:
        target = self.resolve_path(path)
        if target.exists():
            raise PatchIOError(
                f"Add File Error: File already exists: {path}",
                kind=ErrorKind.FILE_EXISTS,
                path=path,
            )
        content = action.new_file or ""
        if not self._options.dry_run:
            self._write(target, content)
            self._journal.append(_JournalEntry("created", path))
        return FileDetail(path=path, action=action.type, new_content=content)

    def _delete(self, path: str, result: ApplyResult) -> FileDetail:
        target = self.resolve_path(path)
        if not self._options.dry_run:
            if self._options.backup:
                result.backups.append(self._backup(target, path))
            target.unlink()
            self._journal.append(_JournalEntry("deleted", path))
        return FileDetail(path=path, action=PatchActionType.DELETE)

    def _update(self, path: str, action: PatchAction, result: ApplyResult) -> FileDetail:
        opts = self._options
        target = self.resolve_path(path)
        move_target = self.resolve_path(action.move_path) if action.move_path else None
        if move_target == target:
            move_target = None

        applied = apply_chunks(
            self._originals[path],
            action.chunks,
            mode=opts.chunk_mode,
            preserve_escapes=opts.preserve_escaping,
            context_lines=opts.context_lines,
            threshold=opts.similarity_threshold,
            path=path,
        )
        result.warnings.extend(applied.warnings)

        if move_target is not None and move_target.exists():
            raise PatchIOError(
                f"Move target already exists: {action.move_path}",
                kind=ErrorKind.FILE_EXISTS,
                path=path,
            )

        if not opts.dry_run:
            if opts.backup:
                result.backups.append(self._backup(target, path))
            if move_target is not None:
                self._write(move_target, applied.content)
                target.unlink()
                self._journal.append(_JournalEntry("moved", path, action.move_path))
            else:
                self._write(target, applied.content)
                self._journal.append(_JournalEntry("updated", path))

        return FileDetail(
            path=path,
            action=PatchActionType.UPDATE,
            chunks_applied=applied.chunks_applied,
            fuzz=applied.fuzz,
            move_path=action.move_path if move_target is not None else None,
            new_content=applied.content,
        )

    def revert(self) -> List[str]:
        """
        Undo every change made by this applier, newest first, using the
        originals loaded before applying. Returns the reverted paths.
        """
        reverted: List[str] = []
        while self._journal:
            entry = self._journal.pop()
            try:
                target = self.resolve_path(entry.path)
                if entry.change == "created":
                    target.unlink(missing_ok=True)
                elif entry.change == "deleted":
                    self._write_bytes(target, self._deleted[entry.path])
                else:
                    if entry.change == "moved" and entry.move_path:
                        self.resolve_path(entry.move_path).unlink(missing_ok=True)
                    self._write(target, self._originals[entry.path])
            except (OSError, DiffError) as e:
                logger.error("Failed to revert file", path=entry.path, error=str(e))
                continue
            logger.info("Reverted file", path=entry.path, change=entry.change)
            reverted.append(entry.path)
        return reverted


def apply_patch(
    patch: Patch,
    workspace_root: Union[str, Path],
    options: Optional[ApplyOptions] = None,
) -> ApplyResult:
    return PatchApplier(workspace_root, options).apply(patch)


def _inside_root(root: Path, rel: str) -> bool:
    try:
        (root / Path(rel).expanduser()).resolve().relative_to(root)
    except ValueError:
        return False
    return True


def existing_files_for(text: str, workspace_root: Union[str, Path]) -> set[str]:
    root = Path(workspace_root).resolve()
    return {
        p
        for p in referenced_paths(text)
        if _inside_root(root, p) and (root / p).is_file()
    }


def parse_for_workspace(text: str, workspace_root: Union[str, Path]) -> Patch:
    """
    Parse patch text, checking Add/Update/Delete targets against the files
    under `workspace_root`. Paths outside the root are not checked here; the
    applier rejects them per file with PathSecurityError.
    """
    root = Path(workspace_root).resolve()
    outside = {p for p in referenced_paths(text) if not _inside_root(root, p)}
    return parse_patch(
        text,
        existing_files=existing_files_for(text, root),
        unchecked_paths=outside,
    )


def apply_patch_text(
    text: str,
    workspace_root: Union[str, Path],
    options: Optional[ApplyOptions] = None,
) -> ApplyResult:
    """
    Clean up, parse and apply patch text in one go. Raises ParseError before
    touching any file when the text is malformed.
    """
    cleaned = preprocess_patch_text(text)
    patch = parse_for_workspace(cleaned, workspace_root)
    return apply_patch(patch, workspace_root, options)
