import pytest

from cobrakit.tokens import Token, TokenLists, TokenStream, link_brackets


def make(text):
    return [Token(w, "oper", "t.c", 1) for w in text.split()]


def test_curly_levels_follow_documented_convention():
    toks = link_brackets(make("{ x }"))
    assert [t.curly for t in toks] == [0, 1, 0]


def test_matching_brackets_are_linked_both_ways():
    toks = link_brackets(make("{ ( a [ b ] ) }"))
    for opener, closer in ((0, 7), (1, 6), (3, 5)):
        assert toks[opener].jmp is toks[closer]
        assert toks[closer].jmp is toks[opener]
    assert toks[2].jmp is None


def test_round_and_bracket_levels_enclose_contents():
    toks = link_brackets(make("( [ x ] )"))
    assert toks[0].round == toks[4].round
    assert toks[2].round == toks[0].round + 1
    assert toks[2].bracket == toks[1].bracket + 1
    assert toks[3].bracket == toks[1].bracket


def test_unbalanced_closer_has_no_jump():
    toks = link_brackets(make("}"))
    assert toks[0].jmp is None


def test_stream_links_and_numbers():
    toks = make("a b c d")
    stream = TokenStream(toks)
    assert list(stream) == toks
    assert len(stream) == len(toks)
    assert [t.seq for t in toks] == list(range(len(toks)))
    assert stream.first() is toks[0]
    assert stream.last() is toks[-1]
    for left, right in zip(toks, toks[1:]):
        assert left.nxt is right
        assert right.prv is left


def test_renumber_after_removal():
    toks = make("a b c")
    stream = TokenStream(toks)
    toks[0].nxt = toks[2]
    toks[2].prv = toks[0]
    stream.renumber()
    assert [t.txt for t in stream] == ["a", "c"]
    assert toks[2].seq == 1
    assert len(stream) == 2


def test_empty_stream():
    stream = TokenStream([])
    assert stream.first() is None
    assert stream.last() is None
    assert len(stream) == 0


def test_lists_add_and_pop():
    lists = TokenLists()
    a, b, c = make("a b c")
    lists.add_bot("L", a)
    lists.add_bot("L", b)
    assert lists.top("L") is a
    assert lists.bot("L") is b
    lists.add_top("L", c)
    assert lists.top("L") is c
    assert lists.length("L") == 3
    assert lists.pop_top("L") is c
    assert lists.pop_bot("L") is b
    assert lists.length("L") == 1
    assert lists.top("L") is a and lists.bot("L") is a


def test_missing_list_behaves_as_empty():
    lists = TokenLists()
    assert lists.top("none") is None
    assert lists.bot("none") is None
    assert lists.pop_top("none") is None
    assert lists.length("none") == 0


def test_unlist_and_names():
    lists = TokenLists()
    a, b = make("a b")
    lists.add_bot("first", a)
    lists.add_bot("second", b)
    assert lists.names() == ["second", "first"]
    lists.unlist("first")
    assert lists.names() == ["second"]
    assert lists.length("first") == 0
    lists.unlist("absent")
    assert lists.names() == ["second"]


@pytest.mark.parametrize("count", [1, 5])
def test_length_matches_additions(count):
    lists = TokenLists()
    for tok in make(" ".join(["x"] * count)):
        lists.add_top("n", tok)
    assert lists.length("n") == count