import pytest

from driftpatch.patch.chunks import apply_chunks, check_chunk_order, preserve_escaping
from driftpatch.patch.errors import ChunkOrderError, ContextNotFoundError, ErrorKind
from driftpatch.patch.matcher import FUZZ_TRAILING_WS
from driftpatch.patch.models import PatchChunk
from driftpatch.settings import ChunkMode

LETTERS = "a\nb\nc\nd\ne\nf\ng\nh"


def test_single_chunk_anchored_on_file_lines() -> None:
    res = apply_chunks("one\ntwo\nthree\n", [PatchChunk(1, ["two"], ["TWO"])])
    assert res.content == "one\nTWO\nthree\n"
    assert res.chunks_applied == 1
    assert res.fuzz == 0
    assert res.warnings == []


def test_single_chunk_anchored_on_patch_context() -> None:
    chunk = PatchChunk(1, ["two"], ["TWO"], context_before=["one"], context_after=["three"])
    res = apply_chunks("one\ntwo\nthree\n", [chunk])
    assert res.content == "one\nTWO\nthree\n"


def test_growing_chunk_shifts_following_chunk_by_one() -> None:
    chunks = [
        PatchChunk(1, ["b"], ["b1", "b2"]),
        PatchChunk(5, ["f"], ["F"]),
    ]
    res = apply_chunks(LETTERS, chunks)
    assert res.content == "a\nb1\nb2\nc\nd\ne\nF\ng\nh"
    assert res.chunks_applied == 2
    assert res.fuzz == 0


def test_shrinking_chunk_shifts_following_chunk_back() -> None:
    chunks = [
        PatchChunk(1, ["b", "c"], []),
        PatchChunk(6, ["g"], ["G"]),
    ]
    res = apply_chunks(LETTERS, chunks)
    assert res.content == "a\nd\ne\nf\nG\nh"


def test_trailing_whitespace_drift_reports_fuzz() -> None:
    chunk = PatchChunk(1, ["two"], ["TWO"], context_before=["one"], context_after=["three"])
    res = apply_chunks("one\ntwo  \nthree", [chunk])
    assert res.content == "one\nTWO\nthree"
    assert res.fuzz == FUZZ_TRAILING_WS


def test_canonical_match_writes_inserted_text_verbatim() -> None:
    chunk = PatchChunk(0, ["print(“hi”)"], ["print(“bye”)"])
    res = apply_chunks('print("hi")\nx = 1', [chunk])
    assert res.content == "print(“bye”)\nx = 1"
    assert res.fuzz == 0


def test_insert_only_chunk_uses_patch_context_far_from_estimate() -> None:
    content = "x1\nx2\nx3\nx4\nx5\nx6\nx7\nx8\ntarget\nafter"
    chunk = PatchChunk(1, [], ["new"], context_before=["target"], context_after=["after"])
    res = apply_chunks(content, [chunk])
    assert res.content.endswith("target\nnew\nafter")


def test_deleted_lines_alone_are_a_fallback_anchor() -> None:
    content = "x1\nx2\nx3\nx4\nx5\nx6\nx7\nx8"
    chunk = PatchChunk(0, ["x7"], ["X7"], context_before=["a line the file never had"])
    res = apply_chunks(content, [chunk])
    assert res.content == "x1\nx2\nx3\nx4\nx5\nx6\nX7\nx8"


def test_search_continues_after_previous_match() -> None:
    chunks = [
        PatchChunk(0, ["dup"], ["D1"], context_after=["x"]),
        PatchChunk(2, ["dup"], ["D2"], context_after=["y"]),
    ]
    res = apply_chunks("dup\nx\ndup\ny", chunks)
    assert res.content == "D1\nx\nD2\ny"


def test_unmatched_chunk_fails_in_strict_mode() -> None:
    chunk = PatchChunk(0, ["zzzz qqqq"], ["x"], context_before=["nothing"])
    with pytest.raises(ContextNotFoundError) as exc:
        apply_chunks("alpha\nbeta", [chunk], path="a.txt")
    err = exc.value
    assert err.kind == ErrorKind.CONTEXT_NOT_FOUND
    assert err.chunk_index == 0
    assert err.path == "a.txt"
    assert err.similarity < 0.66
    assert "-zzzz qqqq" in (err.hint or "")


def test_unmatched_chunk_is_skipped_in_best_effort_mode() -> None:
    chunks = [
        PatchChunk(0, ["zzzz qqqq"], ["x"], context_before=["nothing"]),
        PatchChunk(1, ["beta"], ["BETA"]),
    ]
    res = apply_chunks("alpha\nbeta", chunks, mode=ChunkMode.BEST_EFFORT, path="a.txt")
    assert res.content == "alpha\nBETA"
    assert res.chunks_applied == 1
    assert len(res.warnings) == 1
    assert res.warnings[0].startswith("a.txt: Could not find context for chunk 1")


def test_overlapping_chunks_are_rejected() -> None:
    chunks = [PatchChunk(5, ["a", "b"], []), PatchChunk(6, ["c"], [])]
    with pytest.raises(ChunkOrderError) as exc:
        apply_chunks(LETTERS, chunks, path="x.txt")
    assert exc.value.kind == ErrorKind.CHUNK_ORDER
    assert exc.value.path == "x.txt"


def test_chunk_order_allows_adjacent_chunks() -> None:
    check_chunk_order([PatchChunk(1, ["b"], []), PatchChunk(2, ["c"], [])])
    check_chunk_order([PatchChunk(1, [], ["x"]), PatchChunk(1, [], ["y"])])
    with pytest.raises(ChunkOrderError):
        check_chunk_order([PatchChunk(3, [], []), PatchChunk(1, [], [])])


def test_preserve_escaping_reescapes_replacement() -> None:
    assert preserve_escaping(r'say \"hi\"', 'say "bye"') == r'say \"bye\"'
    assert preserve_escaping(r"it\'s", "it's") == r"it\'s"
    assert preserve_escaping(r"run \`ls\`", "run `pwd`") == r"run \`pwd\`"


def test_preserve_escaping_leaves_text_alone_when_not_needed() -> None:
    # original has no escapes
    assert preserve_escaping('say "hi"', 'say "bye"') == 'say "bye"'
    # replacement already escaped
    assert preserve_escaping(r'say \"hi\"', r'say \"bye\"') == r'say \"bye\"'


def test_apply_chunks_with_escape_preservation() -> None:
    content = 'msg = \\"hello\\"\nend'
    chunk = PatchChunk(0, [r'msg = \"hello\"'], ['msg = "bye"'])
    plain = apply_chunks(content, [chunk])
    assert plain.content == 'msg = "bye"\nend'
    escaped = apply_chunks(content, [chunk], preserve_escapes=True)
    assert escaped.content == 'msg = \\"bye\\"\nend'


def test_context_lines_zero_anchors_on_deleted_lines_only() -> None:
    chunk = PatchChunk(2, ["c"], ["C"], context_before=["b"], context_after=["d"])
    res = apply_chunks(LETTERS, [chunk], context_lines=0)
    assert res.content == "a\nb\nC\nd\ne\nf\ng\nh"


def test_preserve_escaping_two_quote_classes() -> None:
    original = "a \\'x\\' \\\"y\\\""
    assert preserve_escaping(original, "b 'x' \"y\"") == "b \\'x\\' \\\"y\\\""
    # existing backslashes are doubled once
    assert preserve_escaping(original, "c\\n 'x' \"y\"") == "c\\\\n \\'x\\' \\\"y\\\""
