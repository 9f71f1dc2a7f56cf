"""Link identifiers to the most likely place of their declaration."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .tokens import Token, TokenStream

MAX_SCOPE = 128
_MASK32 = 0xFFFFFFFF
_STD_STREAMS = frozenset(("stdin", "stdout", "stderr"))


def _get16(data: bytes, i: int) -> int:
    return data[i] | (data[i + 1] << 8)


def _signed(byte: int) -> int:
    return byte - 256 if byte > 127 else byte


def hasher(s: str) -> int:
    """Return a 32-bit hash of ``s`` (an incremental mixing hash)."""
    data = s.encode("utf-8")
    length = len(data)
    h = length & _MASK32
    rem = length & 3
    pos = 0
    for _ in range(length >> 2):
        h = (h + _get16(data, pos)) & _MASK32
        tmp = ((_get16(data, pos + 2) << 11) ^ h) & _MASK32
        h = ((h << 16) ^ tmp) & _MASK32
        pos += 4
        h = (h + (h >> 11)) & _MASK32
    if rem == 3:
        h = (h + _get16(data, pos)) & _MASK32
        h ^= (h << 16) & _MASK32
        h ^= (_signed(data[pos + 2]) << 18) & _MASK32
        h = (h + (h >> 11)) & _MASK32
    elif rem == 2:
        h = (h + _get16(data, pos)) & _MASK32
        h ^= (h << 11) & _MASK32
        h = (h + (h >> 17)) & _MASK32
    elif rem == 1:
        h = (h + _signed(data[pos])) & _MASK32
        h ^= (h << 10) & _MASK32
        h = (h + (h >> 1)) & _MASK32
    h ^= (h << 3) & _MASK32
    h = (h + (h >> 5)) & _MASK32
    h ^= (h << 4) & _MASK32
    h = (h + (h >> 17)) & _MASK32
    h ^= (h << 25) & _MASK32
    h = (h + (h >> 6)) & _MASK32
    return h


@dataclass
class SymbolCounts:
    """How many identifier uses were linked, and to what kind of declaration."""

    params: int = 0
    locals: int = 0
    globals: int = 0
    missed: int = 0
    warnings: List[str] = field(default_factory=list)

    def summary(self) -> str:
        return (f"symbols: linked {self.params} params, {self.locals} locals, "
                f"{self.globals} globals, {self.missed} unknown")


@dataclass
class _Decl:
    name: Token
    loc: Token


def _first(tok: Optional[Token]) -> str:
    return tok.txt[:1] if tok is not None else ""


def _likely_decl(x: Optional[Token]) -> bool:
    """True if the tokens after a typename look like a variable declaration."""
    if x is not None and _first(x) in (",", "="):
        return False
    while x is not None and _first(x) != ";":
        if x.typ == "type" or _first(x) in (".", "{"):
            return False
        if x.txt == "=":
            break
        x = x.nxt
    return True


def _is_static(p: Optional[Token]) -> bool:
    if p is None or p.round != 0:
        return False
    while p is not None and _first(p) != ";" and p.curly == 0:
        if p.txt == "static":
            return True
        p = p.prv
    return False


def _all_uppercase(tok: Token) -> bool:
    """True for likely macro names and for header file names."""
    s = tok.txt
    if len(s) > 2 and s.endswith(".h"):
        return True
    return not any("a" <= c <= "z" for c in s)


def _not_prototype(p: Optional[Token]) -> bool:
    if p is None or p.round == 0:
        return True
    while p is not None and p.round > 0:
        p = p.nxt
    return not (p is not None and p.nxt is not None and _first(p.nxt) == ";")


class _Resolver:
    def __init__(self) -> None:
        self.counts = SymbolCounts()
        self.scopes: List[Dict[str, List[_Decl]]] = [{} for _ in range(MAX_SCOPE)]
        self.params: List[_Decl] = []

    def enter_level(self, tok: Token) -> int:
        level = tok.curly + 1
        if level >= MAX_SCOPE:
            raise ValueError(f"{tok.fnm}:{tok.lnr}: error: scope to deeply nested "
                             f"(max {MAX_SCOPE})")
        return level

    def find_in(self, v: Token, decls: List[_Decl]) -> bool:
        for decl in decls:
            if decl.name.txt != v.txt:
                continue
            if v.fnm != decl.loc.fnm and _is_static(decl.loc):
                continue
            v.bound = decl.loc
            return True
        return False

    def add_scope(self, q: Token, p: Token, level: int) -> None:
        if _all_uppercase(q):
            return
        if level == 0 and p.round == 1:
            self.params.insert(0, _Decl(q, p))
        elif p.round == 0:
            self.scopes[level].setdefault(q.txt, []).insert(0, _Decl(q, p))
        old = q.bound
        if (old is not None and old.txt not in ("unsigned", "signed")
                and old.txt != p.txt):
            if p.typ != "type" and old.typ != "void":
                return
        q.bound = p

    def possible_typedef(self, p: Token, level: int) -> None:
        """Handle ``Typename [*]* name`` where the typedef was not seen."""
        if p.prv is not None and _first(p.prv) in ("*", ","):
            return
        if p.nxt is not None and (_first(p.nxt) in (",", "(", ")")
                                  or p.nxt.txt[1:2] == "="):
            return
        q = p.nxt
        while q is not None:
            if _first(q) in ("*", ","):
                q = q.nxt
                continue
            if _first(q) == ";" or q.typ != "ident":
                break
            self.add_scope(q, p, level)
            break

    def find_decl(self, p: Token, level: int) -> bool:
        x = p.nxt
        if x is not None and _first(x) in ("(", ":"):
            return True
        x = p.prv
        if x is not None and (_first(x) == "." or x.txt in ("goto", "->")):
            return True
        if p.round > 0 and p.prv is not None and p.prv.typ == "type":
            return True
        if self.find_in(p, self.params):
            self.counts.params += 1
            return True
        for n in range(level, -1, -1):
            if self.find_in(p, self.scopes[n].get(p.txt, [])):
                if n > 0:
                    self.counts.locals += 1
                else:
                    self.counts.globals += 1
                return True
        if (p.bound is None and p.txt not in _STD_STREAMS
                and "_t" not in p.txt and not _all_uppercase(p)):
            self.counts.missed += 1
        return False

    def run(self, stream: TokenStream) -> SymbolCounts:
        level = 0
        cur = stream.first()
        while cur is not None:
            head = _first(cur)
            if head == "{":
                level = self.enter_level(cur)
                self.scopes[level] = {}
                cur = cur.nxt
                continue
            if head == "}":
                level = cur.curly
                if level < 0:
                    self.counts.warnings.append(f"{cur.fnm}:{cur.lnr}: error: bad nesting")
                    level = 0
                if level == 0:
                    self.params = []
                cur = cur.nxt
                continue

            if cur.typ in ("type", "modifier") and cur.bracket == 0:
                if (cur.typ == "modifier" and cur.nxt is not None
                        and cur.nxt.typ == "type"):
                    cur = cur.nxt
                if cur.round == 1 and cur.curly == 0:
                    if cur.nxt is not None and _first(cur.nxt) in (",", "="):
                        cur = cur.nxt
                        continue
                    x = cur
                    while x is not None and x.round >= 1 and _first(x) != ",":
                        if x.typ == "ident":
                            self.add_scope(x, cur, level)
                        x = x.nxt
                    cur = cur.nxt
                    continue
                if cur.round == 0 and _likely_decl(cur.nxt):
                    cur, level = self._declaration(cur, level)
                    cur = cur.nxt if cur is not None else None
                    continue

            if cur.typ == "ident" and not self.find_decl(cur, level):
                self.possible_typedef(cur, level)
            cur = cur.nxt
        return self.counts

    def _declaration(self, cur: Optional[Token], level: int):
        """Add every identifier up to the next ';' to the current scope."""
        decl_type = cur
        while cur is not None and _first(cur) != ";":
            if cur.txt == "=":
                cur = cur.nxt
                while cur is not None and _first(cur) not in (",", ";"):
                    if cur.typ == "ident":
                        self.find_decl(cur, level)
                    if _first(cur) == "{":
                        level = self.enter_level(cur)
                    elif _first(cur) == "}":
                        level = cur.curly
                    cur = cur.nxt
                if cur is None or _first(cur) == ";":
                    continue
            if cur.typ == "type" and cur is not decl_type:
                decl_type = cur
                continue
            if (cur.typ == "ident" and cur.nxt is not None
                    and _first(cur.nxt) != "(" and _not_prototype(cur)):
                self.add_scope(cur, decl_type, level)
            cur = cur.nxt
        return cur, level


def var_links(stream: TokenStream) -> SymbolCounts:
    """Bind identifier uses to their declarations through ``bound``.

    Raises ValueError when braces nest deeper than ``MAX_SCOPE``.
    """
    return _Resolver().run(stream)