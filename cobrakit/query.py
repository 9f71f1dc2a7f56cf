"""Mark, move and extend the marks of a token stream by pattern."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Pattern, Tuple

from .marksets import backup
from .tokens import Token, TokenStream

_QUALIFIER_WORDS = {
    "no": "inverse",
    "ir": "inside_range",
    "and": "and_mode",
    "&": "and_mode",
    "top": "top_only",
    "up": "top_up",
}


class QueryError(ValueError):
    """Raised for an invalid query: bad qualifiers, missing pattern or bad regex."""


@dataclass
class Qualifiers:
    """Modifiers of a query: no, ir, and/&, top and up."""

    inverse: bool = False
    inside_range: bool = False
    and_mode: bool = False
    top_only: bool = False
    top_up: bool = False

    @classmethod
    def from_words(cls, words: Iterable[str]) -> Tuple["Qualifiers", List[str]]:
        """Take the qualifier words out of ``words``; return them and the rest."""
        quals = cls()
        rest: List[str] = []
        for word in words:
            attr = _QUALIFIER_WORDS.get(word)
            if attr is None:
                rest.append(word)
            else:
                setattr(quals, attr, True)
        return quals, rest


def _same_level(a: Token, b: Token) -> bool:
    if a.txt == "{":
        return a.curly == (b.curly if b.txt == "}" else b.curly - 1)
    if a.txt == "(":
        return a.round == (b.round if b.txt == ")" else b.round - 1)
    if a.txt == "[":
        return a.bracket == (b.bracket if b.txt == "]" else b.bracket - 1)
    return a.curly == b.curly


def _one_up(a: Token, b: Token) -> bool:
    if a.txt == "(":
        return a.round == b.round + 1
    if a.txt == "[":
        return a.bracket == b.bracket + 1
    return a.curly == b.curly + 1


def _range_end(r: Token) -> Optional[Token]:
    if r.bound is not None and r.bound.seq > r.seq:
        return r.bound
    return r.jmp


def _compile(body: str) -> Pattern[str]:
    body = body.strip(" ")
    try:
        return re.compile(body)
    except re.error as exc:
        raise QueryError(f"bad regular expression '{body}': {exc}") from None


class MarkEngine:
    """Runs the marking queries of an interactive session on a token stream.

    Every query first saves the current marks in slot 0, so that the
    ``undo`` operation of :mod:`cobrakit.marksets` reverses it.
    """

    def __init__(self, stream: TokenStream):
        self.stream = stream
        self._regex: List[Optional[Tuple[str, Pattern[str]]]] = [None, None]

    # pattern matching

    def matches(self, ref: Optional[Token], token: Optional[Token],
                pattern: str, slot: int = 0) -> bool:
        """Does ``token`` match ``pattern``, relative to the reference token ``ref``?

        ``/re`` is a regular expression, ``@typ`` a token type, ``$$`` the text
        of the reference token (or of its backward bound); a leading backslash
        makes the rest literal.
        """
        if token is None:
            return False
        if slot not in (0, 1):
            raise QueryError(f"invalid pattern slot {slot}")
        if pattern.startswith("/"):
            cached = self._regex[slot]
            if cached is None or cached[0] != pattern:
                cached = (pattern, _compile(pattern[1:]))
                self._regex[slot] = cached
            return cached[1].search(token.txt) is not None
        s = pattern
        if s.startswith("\\"):
            s = s[1:]
        elif s.startswith("@"):
            if s == "@const":
                return token.typ.startswith("const")
            return token.typ == s[1:]
        elif s.startswith("$$"):
            if ref is None:
                return False
            if ref.bound is not None and ref.bound.seq < ref.seq:
                return token is not ref and ref.bound.txt == token.txt
            return token is not ref and token.txt == ref.txt
        return token.txt == s

    def _follows(self, ref: Token, token: Token, p2: str) -> bool:
        return not p2 or self.matches(ref, token.nxt, p2, 1)

    def _run(self, p: str, p2: str,
             body: Callable[[Token, Token], int]) -> int:
        first, last = self.stream.first(), self.stream.last()
        if first is None or last is None:
            return 0
        self._regex = [None, None]
        for slot, pat in enumerate((p, p2)):
            if pat.startswith("/"):
                self._regex[slot] = (pat, _compile(pat[1:]))
        backup(self.stream, 0)
        try:
            return body(first, last)
        finally:
            self._regex = [None, None]

    # queries

    def mark(self, p: str, p2: str = "", quals: Optional[Qualifiers] = None) -> int:
        """Mark tokens matching ``p`` (optionally followed by ``p2``)."""
        q = quals or Qualifiers()
        if q.top_only or q.top_up:
            raise QueryError("m[ark] does not support qualifiers top or up")
        if q.inverse and q.inside_range:
            raise QueryError("m[ark]: cannot combine 'not' and 'ir'")
        if q.inverse and q.and_mode:
            raise QueryError("m[ark]: cannot combine 'not' and '&'")
        if not p:
            raise QueryError(f"invalid query - mark '{p}' - '{p2}'")

        def body(first: Token, last: Token) -> int:
            count = 0
            if q.inside_range:
                r: Optional[Token] = last
                while r is not None and r.seq >= first.seq:
                    if r.mark:
                        stop = _range_end(r)
                        if stop is None:
                            break
                        if not q.and_mode:
                            r.mark = 0
                        t = r.nxt
                        while t is not None and t.seq < stop.seq:
                            if q.and_mode:
                                if t.mark:
                                    if (not self.matches(r, t, p, 0)
                                            or not self._follows(r, t, p2)):
                                        t.mark = 0
                                    else:
                                        count += 1
                            elif self.matches(r, t, p, 0) and self._follows(r, t, p2):
                                count += 1
                                t.mark = 1
                            t = t.nxt
                    r = r.prv
                return count
            r = first
            while r is not None and r.seq <= last.seq:
                if q.and_mode:
                    if r.mark:
                        if not self.matches(r, r, p, 0) or not self._follows(r, r, p2):
                            r.mark = 0
                        else:
                            count += 1
                else:
                    if (self.matches(r, r, p, 0)
                            and bool(r.mark) == q.inverse
                            and self._follows(r, r, p2)):
                        r.mark = 0 if q.inverse else 1
                    if r.mark:
                        count += 1
                r = r.nxt
            return count

        return self._run(p, p2, body)

    def next(self, p: str = "", p2: str = "") -> int:
        """Move every mark one token forward, or forward to a match of ``p``."""

        def body(first: Token, last: Token) -> int:
            count = 0
            r: Optional[Token] = last
            while r is not None and r.seq >= first.seq:
                if r.mark:
                    r.mark = 0
                    if p:
                        t: Optional[Token] = r
                        while t is not None:
                            if self.matches(r, t, p, 0) and self._follows(r, t, p2):
                                count += 1
                                t.mark = 1
                                break
                            t = t.nxt
                    elif r.nxt is not None:
                        r.nxt.mark = 1
                        count += 1
                r = r.prv
            return count

        return self._run(p, p2, body)

    def back(self, p: str = "", p2: str = "") -> int:
        """Move every mark one token back, or back to a match of ``p``."""

        def body(first: Token, last: Token) -> int:
            count = 0
            r: Optional[Token] = first
            while r is not None and r.seq <= last.seq:
                if r.mark:
                    r.mark = 0
                    if p:
                        t = r.prv
                        while t is not None and t.seq >= first.seq:
                            if self.matches(r, t, p, 0) and self._follows(r, t, p2):
                                t.mark = 1
                                count += 1
                                break
                            t = t.prv
                    elif r.prv is not None:
                        r.prv.mark = 1
                        count += 1
                r = r.nxt
            return count

        return self._run(p, p2, body)

    def contains(self, p: str, p2: str = "",
                 quals: Optional[Qualifiers] = None) -> int:
        """Keep the marked ranges that contain a match of ``p`` (or, with no, don't)."""
        q = quals or Qualifiers()
        if q.inside_range:
            raise QueryError("c[ontains]: unsupported qualifier")
        if not p:
            raise QueryError("invalid query -- missing pattern")

        def in_scope(r: Token, t: Token) -> bool:
            if q.top_up:
                return _one_up(r, t)
            return not q.top_only or _same_level(r, t)

        def body(first: Token, last: Token) -> int:
            count = 0
            r: Optional[Token] = first
            while r is not None and r.seq <= last.seq:
                if r.mark <= 0:
                    r = r.nxt
                    continue
                r.mark = 0
                if r.jmp is None and r.bound is None:
                    r = r.nxt
                    continue
                stop = _range_end(r)
                if stop is None:
                    break
                found = False
                t = r.nxt
                while t is not None and t.seq < stop.seq:
                    if (in_scope(r, t) and self.matches(r, t, p, 0)
                            and self._follows(r, t, p2)):
                        found = True
                        if q.and_mode and not q.inverse:
                            count += 1
                            t.mark = -1
                        if not q.and_mode:
                            break
                    t = t.nxt
                if found != q.inverse and (not q.and_mode or q.inverse):
                    count += 1
                    r.mark += 1
                r = r.nxt
            if q.and_mode and not q.inverse and count > 0:
                r = first
                while r is not None and r.seq <= last.seq:
                    if r.mark < 0:
                        r.mark = -r.mark
                    r = r.nxt
            return count

        return self._run(p, p2, body)

    def extend(self, p: str, p2: str = "") -> int:
        """Keep the marks whose next token matches ``p`` (and then ``p2``)."""
        if not p:
            raise QueryError("invalid query - extend")

        def body(first: Token, last: Token) -> int:
            count = 0
            r: Optional[Token] = first
            while r is not None and r.seq <= last.seq:
                if not r.mark:
                    r = r.nxt
                    continue
                r.mark = 0
                marked = r
                r = r.nxt
                if r is None:
                    break
                if self.matches(r, r, p, 0):
                    if p2 and not self.matches(marked, r.nxt, p2, 1):
                        r = r.nxt
                        continue
                    count += 1
                    marked.mark += 1
                r = marked.nxt
            return count

        return self._run(p, p2, body)

    def stretch(self, p: str, p2: str = "",
                quals: Optional[Qualifiers] = None) -> int:
        """Bind each mark to the next match of ``p``; drop marks with none."""
        q = quals or Qualifiers()
        if q.inverse or q.inside_range or q.and_mode:
            raise QueryError("s[tretch]: unsupported qualifier")
        if not p:
            raise QueryError("invalid query - s[tretch] (missing arg)")

        def body(first: Token, last: Token) -> int:
            count = 0
            r: Optional[Token] = first
            while r is not None and r.seq <= last.seq:
                if r.mark:
                    t = r.nxt
                    while t is not None:
                        in_scope = (_one_up(r, t) if q.top_up
                                    else not q.top_only or _same_level(r, t))
                        if (in_scope and self.matches(r, t, p, 0)
                                and self._follows(r, t, p2)):
                            count += 1
                            r.bound = t
                            t.bound = r
                            break
                        t = t.nxt
                    if t is None:
                        r.mark = 0
                r = r.nxt
            return count

        return self._run(p, p2, body)

    def jump(self) -> int:
        """Move each mark to the end of its range or to its matching bracket."""

        def body(first: Token, last: Token) -> int:
            count = 0
            r: Optional[Token] = first
            while r is not None and r.seq <= last.seq:
                if r.mark and r.mset[0] == r.mark:
                    dest = _range_end(r) or r.jmp
                    if dest is not None:
                        dest.mark = r.mark
                        r.mark = 0
                        count += 1
                r = r.nxt
            return count

        return self._run("", "", body)

    def find_type(self, name: str) -> int:
        """Mark the body of every ``struct name { ... }`` definition."""
        if not name:
            raise QueryError("invalid query - missing struct name")

        def body(first: Token, last: Token) -> int:
            count = 0
            r: Optional[Token] = first
            while r is not None and r.seq <= last.seq:
                if (r.round > 0 or r.bracket > 0 or r.txt != "struct"
                        or r.nxt is None or r.nxt.txt != name):
                    r = r.nxt
                    continue
                t = r.nxt
                while t is not None:
                    if t.txt == ";":
                        break
                    if t.txt == "{":
                        u: Optional[Token] = t
                        while u is not None:
                            u.mark = 1
                            if u is t.jmp:
                                break
                            u = u.nxt
                        count += 1
                        r = u
                        break
                    t = t.nxt
                r = r.nxt if r is not None else None
            return count

        return self._run("", "", body)

    def marked(self) -> List[Token]:
        """The tokens that currently carry a mark, in stream order."""
        return [tok for tok in self.stream if tok.mark]