import pytest

from cobrakit.marksets import (
    MarkSetError,
    SetOp,
    backup,
    clear,
    count_marks,
    parse_set_command,
    restore,
    save,
    undo,
)
from cobrakit.tokens import Token, TokenStream


def make_stream(n=6):
    return TokenStream([Token(f"t{i}") for i in range(n)])


def set_marks(stream, indices):
    for i, tok in enumerate(stream):
        tok.mark = 1 if i in indices else 0


def marked(stream):
    return {i for i, tok in enumerate(stream) if tok.mark}


def test_parse_short_forms():
    assert parse_set_command(">1") == ("save", 1, SetOp.COPY)
    assert parse_set_command("<&2") == ("restore", 2, SetOp.INTERSECT)
    assert parse_set_command("<+3") == ("restore", 3, SetOp.UNION)
    assert parse_set_command("<-1") == ("restore", 1, SetOp.SUBTRACT)
    assert parse_set_command(">=2") == ("save", 2, SetOp.COPY)


def test_parse_long_forms():
    assert parse_set_command("save 2") == ("save", 2, SetOp.COPY)
    assert parse_set_command("restore ^3") == ("restore", 3, SetOp.SUBTRACT)


@pytest.mark.parametrize("text", [">4", "<0", ">x", "restore", "hello"])
def test_parse_errors(text):
    with pytest.raises(MarkSetError):
        parse_set_command(text)


def test_setop_aliases():
    assert SetOp.from_symbol("*") is SetOp.INTERSECT
    assert SetOp.from_symbol("+") is SetOp.UNION
    assert SetOp.from_symbol("-") is SetOp.SUBTRACT
    with pytest.raises(MarkSetError):
        SetOp.from_symbol("!")


def test_save_and_restore_copy_round_trip():
    stream = make_stream()
    set_marks(stream, {1, 3})
    assert save(stream, 1) == 2
    clear(stream)
    assert marked(stream) == set()
    assert restore(stream, 1) == 2
    assert marked(stream) == {1, 3}


def test_restore_keeps_bounds():
    stream = make_stream()
    toks = list(stream)
    toks[0].mark = 1
    toks[0].bound = toks[4]
    save(stream, 2)
    clear(stream, all_bounds=True)
    assert toks[0].bound is None
    restore(stream, 2)
    assert toks[0].bound is toks[4]


def test_restore_union_intersect_subtract():
    stream = make_stream()
    set_marks(stream, {0, 1, 2})
    save(stream, 1)
    set_marks(stream, {2, 3})
    assert restore(stream, 1, SetOp.UNION) == 2
    assert marked(stream) == {0, 1, 2, 3}

    set_marks(stream, {2, 3})
    assert restore(stream, 1, "&") == 1
    assert marked(stream) == {2}

    set_marks(stream, {2, 3})
    assert restore(stream, 1, "^") == 1
    assert marked(stream) == {3}


def test_save_union_intersect_subtract():
    stream = make_stream()
    set_marks(stream, {0, 1})
    save(stream, 3)
    set_marks(stream, {1, 4})
    save(stream, 3, SetOp.UNION)
    assert count_marks(stream, 3) == 3

    set_marks(stream, {1, 5})
    save(stream, 3, SetOp.INTERSECT)
    assert {i for i, t in enumerate(stream) if t.mset[3]} == {1}

    set_marks(stream, {0, 1})
    save(stream, 3)
    set_marks(stream, {1})
    assert save(stream, 3, SetOp.SUBTRACT) == 1
    assert {i for i, t in enumerate(stream) if t.mset[3]} == {0}


def test_save_restore_reject_bad_set():
    stream = make_stream()
    with pytest.raises(MarkSetError):
        save(stream, 0)
    with pytest.raises(MarkSetError):
        restore(stream, 4)


def test_undo_swaps_with_backup():
    stream = make_stream()
    set_marks(stream, {1})
    backup(stream, 0)
    set_marks(stream, {2, 5})
    assert undo(stream) == 1
    assert marked(stream) == {1}
    assert undo(stream) == 2
    assert marked(stream) == {2, 5}


def test_clear_can_be_undone():
    stream = make_stream()
    set_marks(stream, {0, 4})
    clear(stream)
    assert count_marks(stream) == 0
    undo(stream)
    assert marked(stream) == {0, 4}


def test_clear_without_all_keeps_bounds():
    stream = make_stream()
    toks = list(stream)
    toks[1].bound = toks[3]
    clear(stream)
    assert toks[1].bound is toks[3]


def test_count_marks_and_errors():
    stream = make_stream()
    set_marks(stream, {0, 2, 4})
    assert count_marks(stream) == 3
    save(stream, 2)
    assert count_marks(stream, 2) == 3
    assert count_marks(stream, 1) == 0
    with pytest.raises(MarkSetError):
        count_marks(stream, 4)


def test_backup_rejects_bad_slot():
    with pytest.raises(MarkSetError):
        backup(make_stream(), 7)


def test_empty_stream():
    stream = TokenStream([])
    assert save(stream, 1) == 0
    assert restore(stream, 1) == 0
    assert count_marks(stream) == 0