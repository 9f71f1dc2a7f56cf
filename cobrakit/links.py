"""Control-flow links for goto, if/else, switch/case and break statements."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .tokens import Token, TokenStream

_LABEL_PRECEDERS = frozenset(";:}{)")


def _nxt(tok: Optional[Token]) -> Optional[Token]:
    return tok.nxt if tok is not None else None


def _skip_comments(tok: Optional[Token]) -> Optional[Token]:
    while tok is not None and tok.typ == "cmnt":
        tok = tok.nxt
    return tok


def _skip_cond(tok: Optional[Token]) -> Optional[Token]:
    """Move past the parenthesised condition that follows a keyword."""
    while tok is not None and tok.txt != "(":
        tok = tok.nxt
    if tok is None or tok.jmp is None:
        return None
    return _skip_comments(tok.jmp.nxt)


def _matching_while(do: Token) -> Optional[Token]:
    level = 1
    cur = do
    while True:
        cur = cur.nxt
        if cur is None:
            return None
        if (cur.curly, cur.round, cur.bracket) == (do.curly, do.round, do.bracket):
            if cur.txt == "do":
                level += 1
            elif cur.txt == "while":
                level -= 1
                if level == 0:
                    return cur


def _skip_stmnt(tok: Optional[Token]) -> Optional[Token]:
    """Return the first token after the statement starting at ``tok``."""
    while tok is not None:
        if tok.txt == "{":
            if tok.jmp is None:
                return None
            tok = tok.jmp.nxt
            if tok is not None and tok.txt == "else":
                tok = tok.nxt
                continue
            return tok
        if tok.txt in ("if", "for", "switch", "while"):
            tok = _skip_cond(tok)
            continue
        if tok.txt == "else":
            tok = tok.nxt
            continue
        if tok.txt == "do":
            tok = _matching_while(tok)
            tok = _skip_cond(tok) if tok is not None else None
            if tok is None:
                return None
        break
    while tok is not None and tok.txt != ";":
        tok = tok.nxt
    return _skip_comments(_nxt(tok))


def _empty_case(tok: Token) -> bool:
    cur = tok.nxt
    while cur is not None and cur.txt != ":":
        cur = cur.nxt
    cur = _skip_comments(_nxt(cur))
    return cur is not None and cur.txt in ("case", "default", "}")


@dataclass
class _Ref:
    token: Token
    fnr: int = 0


@dataclass
class _Tracked:
    first: Token
    refs: List[_Ref] = field(default_factory=list)


def _store(table: Dict[Tuple[str, str], _Tracked], tok: Token) -> Optional[_Ref]:
    key = (tok.txt, tok.fnm)
    tracked = table.get(key)
    if tracked is None:
        ref = _Ref(tok)
        table[key] = _Tracked(tok, [ref])
        return ref
    if tok.lnr != tracked.first.lnr:
        ref = _Ref(tok)
        tracked.refs.insert(0, ref)
        return ref
    return None


def _connect_gotos(gotos: Dict[Tuple[str, str], _Tracked],
                   labels: Dict[Tuple[str, str], _Tracked]) -> None:
    for goto in gotos.values():
        for label in labels.values():
            if goto.first.txt != label.first.txt:
                continue
            for gref in goto.refs:
                for lref in label.refs:
                    if lref.fnr == gref.fnr:
                        stmt = gref.token.prv
                        if stmt is not None:
                            stmt.bound = lref.token
                        break


class Linker:
    """Sets ``bound`` links on statement keywords of a token stream."""

    def __init__(self, stream: TokenStream):
        self.stream = stream
        self.bad_breaks = 0
        self.good_breaks = 0
        self.invalid_breaks: List[Token] = []
        self.warnings: List[str] = []
        self.clear_seen()

    def clear_seen(self) -> None:
        """Allow every kind of link to be computed again."""
        self._seen_goto = False
        self._seen_else = False
        self._seen_switch = False
        self._seen_break = False

    def set_links(self) -> None:
        self.goto_links()
        self.else_links()
        self.switch_links()
        self.break_links()

    def _range(self) -> Optional[Tuple[Token, Token]]:
        first, last = self.stream.first(), self.stream.last()
        if first is None or last is None:
            return None
        return first, last

    def goto_links(self) -> None:
        """Bind each goto to its label in the same function body."""
        if self._seen_goto:
            return
        self._seen_goto = True
        span = self._range()
        if span is None:
            return
        first, last = span
        gotos: Dict[Tuple[str, str], _Tracked] = {}
        labels: Dict[Tuple[str, str], _Tracked] = {}
        fname = first.fnm
        fnr = 0
        cur = first.nxt
        while cur is not None and cur.seq <= last.seq:
            if cur.fnm != fname:
                _connect_gotos(gotos, labels)
                gotos, labels = {}, {}
                fname = cur.fnm
                fnr = 0
            if cur.curly == 0 and cur.txt == "{":
                fnr += 1
            if cur.txt == "goto":
                cur = cur.nxt
                if cur is None:
                    break
                ref = _store(gotos, cur)
                if ref is not None:
                    ref.fnr = fnr
            if cur.txt == ":":
                name = cur.prv
                if name is not None and name.typ == "ident":
                    before = name.prv
                    while before is not None and before.typ == "cmnt":
                        before = before.prv
                    if (before is not None and len(before.txt) == 1
                            and before.txt in _LABEL_PRECEDERS):
                        ref = _store(labels, name)
                        if ref is not None:
                            ref.fnr = fnr
            cur = cur.nxt
        _connect_gotos(gotos, labels)

    def else_links(self) -> None:
        """Bind if to its else block or following statement, else to what follows."""
        if self._seen_else:
            return
        self._seen_else = True
        span = self._range()
        if span is None:
            return
        first, last = span
        cur = first.nxt
        while cur is not None and cur.seq <= last.seq:
            if cur.txt == "if":
                keyword = cur
                cur = _skip_comments(_skip_cond(keyword))
                if cur is None:
                    break
                if cur.txt == "{":
                    cur = cur.jmp.nxt if cur.jmp is not None else None
                else:
                    cur = _skip_stmnt(cur)
                if cur is None:
                    break
                keyword.bound = cur.nxt if cur.txt == "else" else cur
                cur = keyword
            elif cur.txt == "else":
                keyword = cur
                cur = _skip_stmnt(cur.nxt)
                if cur is None:
                    break
                keyword.bound = cur
                cur = keyword
            cur = cur.nxt

    def switch_links(self) -> None:
        """Chain case labels and bind switch without default past its body."""
        if self._seen_switch:
            return
        self._seen_switch = True
        span = self._range()
        if span is None:
            return
        first, last = span
        cur = first.nxt
        while cur is not None and cur.seq <= last.seq:
            if cur.txt != "switch":
                cur = cur.nxt
                continue
            keyword = cur
            body = _skip_cond(keyword)
            if body is None or body.txt != "{" or body.jmp is None:
                cur = _nxt(body)
                continue
            end = body.jmp
            last_case: Optional[Token] = None
            saw_default = False
            cur = body
            while cur is not None and cur.seq < end.seq:
                if cur.curly == end.curly + 1:
                    if cur.txt in ("case", "default"):
                        if cur.txt == "default":
                            saw_default = True
                        if _empty_case(cur):
                            cur = cur.nxt
                            continue
                        if last_case is not None:
                            last_case.bound = cur
                        last_case = cur
                    if cur.txt == "break":
                        cur.bound = end.nxt
                cur = cur.nxt
            after = _skip_comments(_nxt(cur))
            if last_case is not None:
                last_case.bound = after
            if not saw_default:
                keyword.bound = after
            cur = keyword.nxt

    def _enter_body(self, cur: Token, mode: str, stack: List[Token],
                    dest: Token) -> Tuple[Optional[Token], Token]:
        while True:
            if mode == "cond":
                cur = cur.nxt
                while cur is not None and cur.txt != "(":
                    cur = cur.nxt
                if cur is None or cur.jmp is None:
                    return None, dest
                cur = cur.jmp.nxt
            else:
                cur = cur.nxt
            cur = _skip_comments(cur)
            if cur is None:
                return None, dest
            if cur.txt == "{" and cur.jmp is not None:
                stack.append(dest)
                return cur, cur.jmp.nxt
            if cur.txt in ("for", "while", "switch", "if"):
                mode = "cond"
                continue
            if cur.txt == "do":
                mode = "do"
                continue
            return cur, dest

    def break_links(self) -> None:
        """Bind each break to the first token after its enclosing loop or switch."""
        if self._seen_break:
            return
        self._seen_break = True
        self.bad_breaks = 0
        self.good_breaks = 0
        self.invalid_breaks = []
        span = self._range()
        if span is None:
            return
        first, last = span
        stack: List[Token] = []
        dest = first
        cur = first.nxt
        while cur is not None and cur.seq <= last.seq:
            if cur.txt == "}":
                if cur.nxt is dest:
                    dest = stack.pop() if stack else first
                if cur.curly == 0:
                    stack.clear()
                    dest = first
                cur = cur.nxt
                continue
            if cur.typ != "key":
                cur = cur.nxt
                continue
            if cur.txt == "while":
                paren = cur.nxt
                while paren is not None and paren.txt != "(":
                    paren = paren.nxt
                after = _nxt(paren.jmp) if paren is not None and paren.jmp else None
                if after is not None and after.txt == ";":
                    cur = cur.nxt
                    continue
            if cur.txt in ("for", "while", "switch", "do"):
                mode = "do" if cur.txt == "do" else "cond"
                cur, dest = self._enter_body(cur, mode, stack, dest)
                if cur is None:
                    break
                cur = cur.nxt
                continue
            if cur.txt == "break":
                if dest is not first:
                    if cur.bound is not None:
                        if cur.bound is not dest:
                            self.bad_breaks += 1
                        else:
                            self.good_breaks += 1
                    cur.bound = dest
                else:
                    self.invalid_breaks.append(cur)
            cur = cur.nxt
        if stack:
            self.warnings.append(f"internal error, nesting: n={len(stack)}")