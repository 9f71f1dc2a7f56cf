"""Token records, token streams and named token lists."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterable, Iterator, List, Optional

SAVED_SETS = 4


@dataclass(eq=False)
class Token:
    """One lexical token with its nesting levels, links and marks."""

    txt: str
    typ: str = ""
    fnm: str = ""
    lnr: int = 0
    seq: int = 0
    curly: int = 0
    round: int = 0
    bracket: int = 0
    mark: int = 0
    bound: Optional["Token"] = field(default=None, repr=False)
    jmp: Optional["Token"] = field(default=None, repr=False)
    nxt: Optional["Token"] = field(default=None, repr=False)
    prv: Optional["Token"] = field(default=None, repr=False)
    mset: List[int] = field(default_factory=lambda: [0] * SAVED_SETS, repr=False)
    mbnd: List[Optional["Token"]] = field(
        default_factory=lambda: [None] * SAVED_SETS, repr=False
    )


_PAIRS = {"{": ("}", "curly"), "(": (")", "round"), "[": ("]", "bracket")}
_CLOSERS = {close: (opener, attr) for opener, (close, attr) in _PAIRS.items()}


def link_brackets(tokens: Iterable[Token]) -> List[Token]:
    """Set nesting levels and link matching brackets through ``jmp``.

    An opening bracket carries the level outside it, the tokens it encloses
    one level deeper, and the closing bracket the outer level again.
    """
    tokens = list(tokens)
    levels = {"curly": 0, "round": 0, "bracket": 0}
    open_stacks: Dict[str, List[Token]] = {"curly": [], "round": [], "bracket": []}

    for tok in tokens:
        if tok.txt in _CLOSERS:
            _, attr = _CLOSERS[tok.txt]
            levels[attr] -= 1
        tok.curly = levels["curly"]
        tok.round = levels["round"]
        tok.bracket = levels["bracket"]
        if tok.txt in _PAIRS:
            _, attr = _PAIRS[tok.txt]
            levels[attr] += 1
            open_stacks[attr].append(tok)
        elif tok.txt in _CLOSERS:
            _, attr = _CLOSERS[tok.txt]
            if open_stacks[attr]:
                opener = open_stacks[attr].pop()
                opener.jmp = tok
                tok.jmp = opener
    return tokens


class TokenStream:
    """A doubly linked sequence of tokens, numbered in order."""

    def __init__(self, tokens: Iterable[Token]):
        tokens = list(tokens)
        self._head: Optional[Token] = tokens[0] if tokens else None
        self._tail: Optional[Token] = tokens[-1] if tokens else None
        prev: Optional[Token] = None
        for tok in tokens:
            tok.prv = prev
            tok.nxt = None
            if prev is not None:
                prev.nxt = tok
            prev = tok
        self.renumber()

    def __iter__(self) -> Iterator[Token]:
        tok = self._head
        while tok is not None:
            yield tok
            tok = tok.nxt

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def renumber(self) -> None:
        """Give every token its position as sequence number."""
        last = None
        for seq, tok in enumerate(self):
            tok.seq = seq
            last = tok
        self._tail = last

    def first(self) -> Optional[Token]:
        return self._head

    def last(self) -> Optional[Token]:
        return self._tail


class TokenLists:
    """Named lists of tokens that can grow and shrink at either end."""

    def __init__(self):
        self._lists: Dict[str, Deque[Token]] = {}

    def top(self, name: str) -> Optional[Token]:
        items = self._lists.get(name)
        return items[0] if items else None

    def bot(self, name: str) -> Optional[Token]:
        items = self._lists.get(name)
        return items[-1] if items else None

    def pop_top(self, name: str) -> Optional[Token]:
        items = self._lists.get(name)
        return items.popleft() if items else None

    def pop_bot(self, name: str) -> Optional[Token]:
        items = self._lists.get(name)
        return items.pop() if items else None

    def length(self, name: str) -> int:
        return len(self._lists.get(name, ()))

    def add_top(self, name: str, token: Token) -> None:
        self._lists.setdefault(name, deque()).appendleft(token)

    def add_bot(self, name: str, token: Token) -> None:
        self._lists.setdefault(name, deque()).append(token)

    def unlist(self, name: str) -> None:
        self._lists.pop(name, None)

    def names(self) -> List[str]:
        """Names of the existing lists, most recently created first."""
        return list(reversed(self._lists))