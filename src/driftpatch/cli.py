from __future__ import annotations

import difflib
import sys
from pathlib import Path
from typing import Any, Dict, Optional, TextIO

import click
from rich import console as rich_console
from rich import syntax as rich_syntax
from rich import table as rich_table
from rich import text as rich_text

from driftpatch.logger import LogBuffer, apply_logging_settings, capture_logs
from driftpatch.patch import V4A_SYSTEM_INSTRUCTION, ParseError, Patch, PatchActionType
from driftpatch.patch.applier import PatchApplier, parse_for_workspace
from driftpatch.patch.parser import preprocess_patch_text
from driftpatch.patch.report import ApplyResult
from driftpatch.settings import ApplyOptions, ChunkMode, Settings, load_settings

EXIT_FAILED = 1
EXIT_PARSE_ERROR = 2


def _load_settings(config: Optional[Path]) -> Settings:
    if config is None:
        return Settings()
    try:
        return load_settings(config)
    except (ValueError, TypeError) as e:
        raise click.BadParameter(str(e), param_hint="--config") from e


def _merge_options(base: ApplyOptions, **overrides: Any) -> ApplyOptions:
    update: Dict[str, Any] = {k: v for k, v in overrides.items() if v is not None}
    return ApplyOptions.model_validate({**base.model_dump(), **update})


def _parse(text: str, root: Path, err: rich_console.Console) -> Patch:
    cleaned = preprocess_patch_text(text)
    try:
        return parse_for_workspace(cleaned, root)
    except ParseError as e:
        err.print(rich_text.Text(f"Parse error: {e.describe()}", style="red"))
        raise SystemExit(EXIT_PARSE_ERROR) from e


def _render_diffs(
    console: rich_console.Console, applier: PatchApplier, result: ApplyResult
) -> None:
    originals = applier.originals
    for detail in result.details:
        if detail.new_content is None:
            continue
        before = originals.get(detail.path, "")
        target = detail.move_path or detail.path
        diff = "".join(
            difflib.unified_diff(
                before.splitlines(keepends=True),
                detail.new_content.splitlines(keepends=True),
                fromfile="/dev/null" if detail.action == PatchActionType.ADD else f"a/{detail.path}",
                tofile=f"b/{target}",
            )
        )
        if diff:
            console.print(rich_syntax.Syntax(diff, "diff"))


def _print_log(err: rich_console.Console, buffer: LogBuffer) -> None:
    for rec in buffer.get_records():
        err.print(rich_text.Text(f"{rec.level_name:<8} {rec.logger_name}: {rec.message}"))


@click.group()
def main() -> None:
    """Apply V4A patches to a directory tree."""


@main.command("apply")
@click.argument("patch_file", type=click.File("r", encoding="utf-8"))
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Workspace root all patch paths are relative to.",
)
@click.option(
    "--config",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML or JSON5 settings file.",
)
@click.option("--dry-run/--no-dry-run", default=None, help="Compute the result without writing.")
@click.option("--backup/--no-backup", default=None, help="Copy updated and deleted files first.")
@click.option("--best-effort", is_flag=True, default=False, help="Skip chunks that cannot be located.")
@click.option("--preserve-escaping/--no-preserve-escaping", default=None)
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the result as JSON.")
@click.option("--show-log", is_flag=True, default=False, help="Print captured log records to stderr.")
def apply_cmd(
    patch_file: TextIO,
    root: Path,
    config: Optional[Path],
    dry_run: Optional[bool],
    backup: Optional[bool],
    best_effort: bool,
    preserve_escaping: Optional[bool],
    as_json: bool,
    show_log: bool,
) -> None:
    """Apply PATCH_FILE ('-' for stdin) under --root."""
    log_buffer = capture_logs(max_entries=1000)
    log_buffer.clear()
    settings = _load_settings(config)
    apply_logging_settings(settings.logging)

    options = _merge_options(
        settings.apply,
        dry_run=dry_run,
        backup=backup,
        chunk_mode=ChunkMode.BEST_EFFORT if best_effort else None,
        preserve_escaping=preserve_escaping,
    )

    console = rich_console.Console(soft_wrap=True)
    err = rich_console.Console(stderr=True, soft_wrap=True)

    try:
        patch = _parse(patch_file.read(), root, err)
        applier = PatchApplier(root, options)
        result = applier.apply(patch)
    finally:
        if show_log:
            _print_log(err, log_buffer)

    if as_json:
        click.echo(result.model_dump_json(indent=2))
    else:
        if options.dry_run:
            _render_diffs(console, applier, result)
        style = "green" if result.ok else ("red" if not result.applied else "yellow")
        console.print(rich_text.Text(result.summary(), style=style))

    if not result.ok:
        sys.exit(EXIT_FAILED)


@main.command("check")
@click.argument("patch_file", type=click.File("r", encoding="utf-8"))
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    show_default=True,
)
def check_cmd(patch_file: TextIO, root: Path) -> None:
    """Parse PATCH_FILE and list its actions without touching any file."""
    capture_logs(max_entries=1000)
    console = rich_console.Console(soft_wrap=True)
    err = rich_console.Console(stderr=True, soft_wrap=True)

    patch = _parse(patch_file.read(), root, err)

    table = rich_table.Table(title="Patch actions")
    table.add_column("Action")
    table.add_column("Path")
    table.add_column("Chunks", justify="right")
    table.add_column("Move to")
    for path, action in patch.actions.items():
        table.add_row(
            action.type.value,
            path,
            str(len(action.chunks)) if action.type == PatchActionType.UPDATE else "-",
            action.move_path or "",
        )
    console.print(table)

    for warning in patch.warnings:
        err.print(rich_text.Text(f"warning: {warning}", style="yellow"))


@main.command("prompt")
def prompt_cmd() -> None:
    """Print the system instruction that teaches a model the V4A format."""
    click.echo(V4A_SYSTEM_INSTRUCTION)


if __name__ == "__main__":
    main()
