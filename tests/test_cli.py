from __future__ import annotations

import json
from pathlib import Path

from click.testing import CliRunner

from driftpatch.cli import EXIT_FAILED, EXIT_PARSE_ERROR, main

PATCH = """*** Begin Patch
*** Update File: a.txt
@@
 one
-two
+TWO
 three
*** End Patch
"""


def _setup(tmp_path: Path, patch: str = PATCH) -> Path:
    (tmp_path / "a.txt").write_text("one\ntwo\nthree\n", encoding="utf-8")
    p = tmp_path / "change.patch"
    p.write_text(patch, encoding="utf-8")
    return p


def test_apply(tmp_path: Path) -> None:
    patch_path = _setup(tmp_path)
    result = CliRunner().invoke(main, ["apply", str(patch_path), "--root", str(tmp_path)])
    assert result.exit_code == 0, result.output
    assert "Applied patch successfully." in result.output
    assert (tmp_path / "a.txt").read_text(encoding="utf-8") == "one\nTWO\nthree\n"


def test_apply_from_stdin(tmp_path: Path) -> None:
    _setup(tmp_path)
    result = CliRunner().invoke(main, ["apply", "-", "--root", str(tmp_path)], input=PATCH)
    assert result.exit_code == 0, result.output
    assert (tmp_path / "a.txt").read_text(encoding="utf-8") == "one\nTWO\nthree\n"


def test_dry_run_prints_diff_and_keeps_files(tmp_path: Path) -> None:
    patch_path = _setup(tmp_path)
    result = CliRunner().invoke(
        main, ["apply", str(patch_path), "--root", str(tmp_path), "--dry-run"]
    )
    assert result.exit_code == 0, result.output
    assert "-two" in result.output
    assert "+TWO" in result.output
    assert "dry run" in result.output
    assert (tmp_path / "a.txt").read_text(encoding="utf-8") == "one\ntwo\nthree\n"


def test_failed_file_exit_code(tmp_path: Path) -> None:
    patch_path = _setup(tmp_path, PATCH.replace("-two", "-something else entirely"))
    result = CliRunner().invoke(main, ["apply", str(patch_path), "--root", str(tmp_path)])
    assert result.exit_code == EXIT_FAILED
    assert "[context_not_found]" in result.output


def test_best_effort_flag(tmp_path: Path) -> None:
    patch_path = _setup(tmp_path, PATCH.replace("-two", "-something else entirely"))
    result = CliRunner().invoke(
        main, ["apply", str(patch_path), "--root", str(tmp_path), "--best-effort"]
    )
    assert result.exit_code == 0, result.output
    assert "chunk skipped" in result.output


def test_parse_error_exit_code(tmp_path: Path) -> None:
    duplicate = PATCH.replace("*** End Patch", "*** Update File: a.txt\n-three\n*** End Patch")
    patch_path = _setup(tmp_path, duplicate)
    result = CliRunner().invoke(main, ["apply", str(patch_path), "--root", str(tmp_path)])
    assert result.exit_code == EXIT_PARSE_ERROR
    assert "Parse error" in result.output
    assert (tmp_path / "a.txt").read_text(encoding="utf-8") == "one\ntwo\nthree\n"


def test_json_output(tmp_path: Path) -> None:
    patch_path = _setup(tmp_path)
    result = CliRunner().invoke(
        main, ["apply", str(patch_path), "--root", str(tmp_path), "--json"]
    )
    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["applied"] == ["a.txt"]
    assert payload["details"][0]["new_content"] == "one\nTWO\nthree\n"


def test_config_file_and_flag_override(tmp_path: Path) -> None:
    patch_path = _setup(tmp_path)
    config = tmp_path / "driftpatch.yaml"
    config.write_text("apply:\n  dry_run: true\n", encoding="utf-8")

    runner = CliRunner()
    args = ["apply", str(patch_path), "--root", str(tmp_path), "--config", str(config)]
    result = runner.invoke(main, args)
    assert result.exit_code == 0, result.output
    assert (tmp_path / "a.txt").read_text(encoding="utf-8") == "one\ntwo\nthree\n"

    result = runner.invoke(main, args + ["--no-dry-run"])
    assert result.exit_code == 0, result.output
    assert (tmp_path / "a.txt").read_text(encoding="utf-8") == "one\nTWO\nthree\n"


def test_show_log(tmp_path: Path) -> None:
    patch_path = _setup(tmp_path)
    result = CliRunner().invoke(
        main, ["apply", str(patch_path), "--root", str(tmp_path), "--show-log"]
    )
    assert result.exit_code == 0, result.output
    assert "Applying patch" in result.output


def test_check_lists_actions(tmp_path: Path) -> None:
    patch_path = _setup(tmp_path)
    result = CliRunner().invoke(main, ["check", str(patch_path), "--root", str(tmp_path)])
    assert result.exit_code == 0, result.output
    assert "a.txt" in result.output
    assert "update" in result.output
    assert (tmp_path / "a.txt").read_text(encoding="utf-8") == "one\ntwo\nthree\n"


def test_prompt() -> None:
    result = CliRunner().invoke(main, ["prompt"])
    assert result.exit_code == 0
    assert "*** Begin Patch" in result.output
