import pytest

from cobrakit.marksets import undo
from cobrakit.query import MarkEngine, Qualifiers, QueryError
from cobrakit.tokens import Token, TokenStream, link_brackets

_KEYWORDS = {"struct", "int", "if", "while"}


def _typ(txt):
    if txt in _KEYWORDS:
        return "key"
    if txt[:1].isalpha() or txt[:1] == "_":
        return "ident"
    return "oper"


def build(text):
    toks = [Token(txt=w, typ=_typ(w), fnm="a.c", lnr=1) for w in text.split()]
    link_brackets(toks)
    stream = TokenStream(toks)
    return MarkEngine(stream), toks


def texts(engine):
    return [t.txt for t in engine.marked()]


def test_mark_literal_marks_matching_tokens():
    engine, toks = build("a b a c")
    engine.mark("a")
    assert engine.marked() == [toks[0], toks[2]]


def test_mark_regex():
    engine, toks = build("alpha beta apple")
    engine.mark("/^a")
    assert engine.marked() == [toks[0], toks[2]]


def test_mark_followed_by():
    engine, toks = build("x = 1 ; x + y")
    engine.mark("x", "=")
    assert engine.marked() == [toks[0]]


def test_mark_by_type():
    engine, toks = build("a + b")
    engine.mark("@ident")
    assert engine.marked() == [toks[0], toks[2]]


def test_mark_inverse_removes_marks():
    engine, _ = build("a b a")
    engine.mark("a")
    engine.mark("a", "", Qualifiers(inverse=True))
    assert engine.marked() == []


def test_mark_and_mode_narrows():
    engine, toks = build("a b c")
    engine.mark("/^[ab]$")
    engine.mark("b", "", Qualifiers(and_mode=True))
    assert engine.marked() == [toks[1]]


def test_mark_inside_range():
    engine, toks = build("{ x y } x")
    engine.mark("{")
    engine.mark("x", "", Qualifiers(inside_range=True))
    assert engine.marked() == [toks[1]]


def test_mark_count_equals_marked_length():
    engine, _ = build("a b a c a")
    count = engine.mark("a")
    assert count == len(engine.marked())


def test_undo_restores_previous_marks():
    engine, toks = build("a b a")
    engine.mark("b")
    engine.mark("a")
    undo(engine.stream)
    assert engine.marked() == [toks[1]]


@pytest.mark.parametrize("quals", [
    Qualifiers(top_only=True),
    Qualifiers(top_up=True),
    Qualifiers(inverse=True, inside_range=True),
    Qualifiers(inverse=True, and_mode=True),
])
def test_mark_rejects_qualifiers(quals):
    engine, _ = build("a b")
    with pytest.raises(QueryError):
        engine.mark("a", "", quals)


def test_mark_requires_pattern():
    engine, _ = build("a b")
    with pytest.raises(QueryError):
        engine.mark("")


def test_bad_regex_raises():
    engine, _ = build("a b")
    with pytest.raises(QueryError):
        engine.mark("/(")


def test_next_moves_forward():
    engine, toks = build("a b c")
    engine.mark("a")
    engine.next()
    assert engine.marked() == [toks[1]]


def test_next_to_pattern():
    engine, toks = build("a b c")
    engine.mark("a")
    engine.next("c")
    assert engine.marked() == [toks[2]]


def test_back_moves_backward():
    engine, toks = build("a b c")
    engine.mark("c")
    engine.back()
    assert engine.marked() == [toks[1]]
    engine.back("a")
    assert engine.marked() == [toks[0]]


def test_contains_keeps_ranges_with_match():
    engine, toks = build("{ x ; } { y ; }")
    engine.mark("{")
    engine.contains("y")
    assert engine.marked() == [toks[4]]


def test_contains_inverse():
    engine, toks = build("{ x ; } { y ; }")
    engine.mark("{")
    engine.contains("y", "", Qualifiers(inverse=True))
    assert engine.marked() == [toks[0]]


def test_contains_rejects_ir():
    engine, _ = build("{ x }")
    engine.mark("{")
    with pytest.raises(QueryError):
        engine.contains("x", "", Qualifiers(inside_range=True))


def test_stretch_sets_bounds():
    engine, toks = build("a b c a b c")
    engine.mark("a")
    engine.stretch("c")
    assert toks[0].bound is toks[2]
    assert toks[2].bound is toks[0]
    assert toks[3].bound is toks[5]


def test_stretch_drops_marks_without_match():
    engine, toks = build("a b a c")
    engine.mark("c")
    engine.back("a")
    engine.stretch("b")
    assert engine.marked() == []


def test_stretch_rejects_inverse():
    engine, _ = build("a b")
    with pytest.raises(QueryError):
        engine.stretch("b", "", Qualifiers(inverse=True))


def test_jump_to_matching_brace():
    engine, toks = build("{ x } { y }")
    engine.mark("{")
    engine.jump()
    assert engine.marked() == [toks[0].jmp, toks[3].jmp]


def test_jump_to_stretch_end():
    engine, toks = build("a b c d")
    engine.mark("a")
    engine.stretch("c")
    engine.jump()
    assert engine.marked() == [toks[2]]


def test_extend_keeps_marks_followed_by_pattern():
    engine, toks = build("a b a c")
    engine.mark("a")
    engine.extend("b")
    assert engine.marked() == [toks[0]]


def test_find_type_marks_struct_body():
    engine, toks = build("struct S { int x ; } ; struct T { int y ; } ;")
    engine.find_type("S")
    assert engine.marked() == toks[2:7]


def test_dollar_matches_reference_text():
    engine, toks = build("a b a")
    assert engine.matches(toks[0], toks[2], "$$")
    assert not engine.matches(toks[0], toks[1], "$$")
    assert not engine.matches(toks[0], toks[0], "$$")


def test_escaped_pattern_matches_text():
    engine, toks = build("@x y")
    assert engine.matches(toks[0], toks[0], "\\@x")
    assert not engine.matches(toks[0], toks[0], "@x")


def test_const_type_prefix():
    engine, _ = build("a")
    tok = Token(txt="42", typ="const_int")
    assert engine.matches(tok, tok, "@const")
    assert not engine.matches(tok, tok, "@ident")


def test_matches_none_token():
    engine, toks = build("a")
    assert engine.matches(toks[0], None, "a") is False


def test_qualifiers_from_words():
    quals, rest = Qualifiers.from_words(["no", "x", "&", "y"])
    assert quals.inverse and quals.and_mode
    assert not quals.top_only
    assert rest == ["x", "y"]


def test_empty_stream_marks_nothing():
    engine = MarkEngine(TokenStream([]))
    assert engine.mark("a") == 0
    assert engine.marked() == []