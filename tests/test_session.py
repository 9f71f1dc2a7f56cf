import io

import pytest

from cobrakit.session import Session
from cobrakit.tokens import Token, TokenStream, link_brackets

KEYWORDS = {"if", "else", "struct", "for", "while", "return", "int"}
SRC = "int x ;\nx = y + x ;\nstruct s { int a ; } ;\n"


def make_stream(src=SRC, fnm="t.c"):
    toks = []
    for lnr, line in enumerate(src.splitlines(), 1):
        for word in line.split():
            if word in KEYWORDS:
                typ = "key"
            elif word[0].isalpha() or word[0] == "_":
                typ = "ident"
            else:
                typ = "oper"
            toks.append(Token(word, typ=typ, fnm=fnm, lnr=lnr))
    link_brackets(toks)
    return TokenStream(toks)


def make_session():
    out = io.StringIO()
    session = Session(make_stream(), out)
    session.err = io.StringIO()
    return session, out


def marked_texts(session):
    return [t.txt for t in session.engine.marked()]


def test_mark_reports_matches():
    session, out = make_session()
    assert session.execute_line("m x") is True
    assert out.getvalue() == "3 matches\n"
    assert session.count == 3


def test_next_moves_marks():
    session, _ = make_session()
    session.execute_line("m y; n")
    assert marked_texts(session) == ["+"]


def test_unmark_removes_marks():
    session, _ = make_session()
    session.execute_line("m x; unmark x")
    assert marked_texts(session) == []


def test_quit_ends_session():
    session, _ = make_session()
    assert session.execute_line("quit") is False
    assert session.execute_line("m x; q") is False


def test_history_skips_repeats():
    session, _ = make_session()
    for line in ("m x", "m x", "n"):
        session.execute_line(line)
    assert session.history() == ["m x", "n"]


def test_save_reset_restore():
    session, out = make_session()
    session.execute_line("m x")
    session.execute_line(">1")
    session.execute_line("reset")
    assert marked_texts(session) == []
    out.seek(0)
    out.truncate()
    session.execute_line("<1")
    assert out.getvalue() == "3 matches\n"
    assert marked_texts(session) == ["x", "x", "x"]


def test_bad_set_number():
    session, out = make_session()
    session.execute_line(">7")
    assert "invalid set - save 1..3" in out.getvalue()


def test_list_marks_format():
    session, out = make_session()
    session.execute_line("m y")
    out.seek(0)
    out.truncate()
    assert session.list_marks("") == 1
    assert out.getvalue() == "t.c:2:\n  1:      2 \ty\n"


def test_terse_suppresses_listing():
    session, out = make_session()
    session.execute_line("m y; terse on")
    out.seek(0)
    out.truncate()
    assert session.list_marks("") == 0
    assert out.getvalue() == ""


def test_pre_shows_caret_under_mark():
    session, out = make_session()
    session.execute_line("m y")
    session.execute_line("p")
    lines = out.getvalue().splitlines()
    assert any("x = y + x" in line for line in lines)
    caret_lines = [line for line in lines if "^" in line]
    assert len(caret_lines) == 1
    assert caret_lines[0].count("^") == 1


def test_print_count_with_prefix():
    session, out = make_session()
    session.execute_line("m x")
    session.execute_line("= total")
    assert out.getvalue().splitlines()[-1] == "total 3"


def test_quiet_hides_counts():
    session, out = make_session()
    session.execute_line("quiet on")
    session.execute_line("m x")
    assert out.getvalue() == ""
    assert len(session.engine.marked()) == 3


def test_interactive_script_definition():
    session, out = make_session()
    for line in ("def pick(v)", "m v", "end"):
        session.execute_line(line)
    session.execute_line(":pick y")
    assert marked_texts(session) == ["y"]
    assert "\tm y" in out.getvalue()
    session.execute_line("reset")
    session.execute_line("pick x")
    assert marked_texts(session) == ["x", "x", "x"]


def test_script_argument_count_error():
    session, _ = make_session()
    for line in ("def pick(v)", "m v", "end"):
        session.execute_line(line)
    session.execute_line(":pick")
    assert "takes 1 arguments, saw 0" in session.err.getvalue()


def test_recursive_script_detected():
    session, _ = make_session()
    for line in ("def loop", ":loop", "end"):
        session.execute_line(line)
    session.execute_line(":loop")
    assert "script is recursive loop" in session.err.getvalue()


def test_unknown_command_without_scripts():
    session, out = make_session()
    session.execute_line("frobnicate")
    assert "no such command: 'frobnicate' (no scripts defined)" in out.getvalue()


def test_ambiguous_abbreviation():
    session, _ = make_session()
    session.execute_line("v")
    assert "ambiguous" in session.err.getvalue()


def test_jump_rejects_arguments():
    session, out = make_session()
    session.execute_line("j foo")
    assert "invalid query - j[ump] (redundant args)" in out.getvalue()


def test_find_type_marks_struct_body():
    session, _ = make_session()
    session.execute_line("ft s")
    assert marked_texts(session) == ["{", "int", "a", ";", "}"]


def test_stretch_binds_range():
    session, _ = make_session()
    session.execute_line("m struct; s }")
    struct = next(t for t in session.stream if t.txt == "struct")
    assert struct.mark
    assert struct.bound.txt == "}"


def test_inspect_line():
    session, out = make_session()
    session.execute_line("i t.c 1")
    lines = out.getvalue().splitlines()
    assert lines[0].split() == ["int", "x", ";"]
    assert lines[1].split() == ["key", "ident", "oper"]


def test_map_file_retypes_tokens(tmp_path):
    mapping = tmp_path / "types.map"
    mapping.write_text("x myvar\n")
    session, out = make_session()
    session.execute_line(f"map {mapping}")
    assert {t.typ for t in session.stream if t.txt == "x"} == {"myvar"}
    assert out.getvalue() == "3 matches\n"


def test_run_file(tmp_path):
    script = tmp_path / "two.cobra"
    script.write_text("def two\nm x\nend\nquiet on\n:two\n")
    session, out = make_session()
    assert session.run_file(str(script)) is True
    assert "script 'two'" in out.getvalue()
    assert len(session.engine.marked()) == 3


def test_run_file_missing(tmp_path):
    session, _ = make_session()
    with pytest.raises(OSError):
        session.run_file(str(tmp_path / "absent.cobra"))


def test_dot_command_missing_file(tmp_path):
    session, out = make_session()
    session.execute_line(f". {tmp_path / 'nothing'}")
    assert "cannot find" in out.getvalue()


def test_track_diverts_listing(tmp_path):
    target = tmp_path / "track.txt"
    session, out = make_session()
    session.execute_line(f"track start {target}")
    session.execute_line("m y; l")
    session.execute_line("track stop")
    assert "t.c:2:" in target.read_text()
    assert "t.c:2:" not in out.getvalue()


def test_shell_escape():
    session, out = make_session()
    session.execute_line("!echo hello")
    assert out.getvalue() == "hello\n"


def test_help_text_topic_and_full():
    session, _ = make_session()
    topic = session.help_text("mark")
    assert "mark tokens matching p" in topic
    assert "Qualifiers" not in topic
    full = session.help_text("")
    assert full.startswith("Command Summary")
    assert "Qualifiers" in full


def test_undo_restores_previous_marks():
    session, _ = make_session()
    session.execute_line("m x")
    session.execute_line("m y")
    assert len(session.engine.marked()) == 4
    session.execute_line("u")
    assert marked_texts(session) == ["x", "x", "x"]