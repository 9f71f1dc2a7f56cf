"""Saving, restoring and combining the marks of a token stream.

Every token carries a current mark and bound plus a small number of saved
slots (``mset``/``mbnd``).  Slot 0 holds the state before the last
operation, so that it can be undone; slots 1 to 3 are the named sets that
the ``>n`` and ``<n`` commands work with.
"""

from __future__ import annotations

import enum
from typing import Tuple, Union

from .tokens import SAVED_SETS, TokenStream

USER_SETS = range(1, SAVED_SETS)


class MarkSetError(ValueError):
    """Raised for a malformed set command or a set number out of range."""


class SetOp(enum.Enum):
    """How a saved set is combined with the current marks."""

    COPY = "="
    UNION = "|"
    INTERSECT = "&"
    SUBTRACT = "^"

    @classmethod
    def from_symbol(cls, symbol: str) -> "SetOp":
        """Map an operator character, aliases included, to a SetOp."""
        try:
            return _SYMBOLS[symbol]
        except KeyError:
            raise MarkSetError(f"unknown set operator '{symbol}'") from None


_SYMBOLS = {
    "=": SetOp.COPY,
    "|": SetOp.UNION,
    "+": SetOp.UNION,
    "&": SetOp.INTERSECT,
    "*": SetOp.INTERSECT,
    "^": SetOp.SUBTRACT,
    "-": SetOp.SUBTRACT,
}

_KEYWORDS = (("save", "save"), ("restore", "restore"), (">", "save"), ("<", "restore"))


def _as_op(op: Union[SetOp, str]) -> SetOp:
    return op if isinstance(op, SetOp) else SetOp.from_symbol(op)


def _check_set(n: int, action: str) -> None:
    if n not in USER_SETS:
        raise MarkSetError(f"invalid set - {action} 1..3")


def parse_set_command(text: str) -> Tuple[str, int, SetOp]:
    """Parse ``>n``, ``<&n``, ``save n`` or ``restore |n``.

    Returns ``(action, n, op)`` where action is ``"save"`` or ``"restore"``.
    """
    text = text.strip()
    for keyword, action in _KEYWORDS:
        if text.startswith(keyword):
            rest = text[len(keyword):]
            if keyword.isalpha():
                if rest and not rest[0].isspace():
                    continue
                rest = rest.lstrip()
            break
    else:
        raise MarkSetError(f"not a save or restore command: '{text}'")

    op = SetOp.COPY
    if rest and rest[0] in _SYMBOLS:
        op = _SYMBOLS[rest[0]]
        rest = rest[1:]
    rest = rest.strip()

    digits = ""
    for ch in rest:
        if not ch.isdigit():
            break
        digits += ch
    if not digits:
        raise MarkSetError(
            f"invalid command - {action} n or {'>' if action == 'save' else '<'}n "
            f"with n: 1..3"
        )
    n = int(digits)
    _check_set(n, action)
    return action, n, op


def backup(stream: TokenStream, n: int) -> None:
    """Copy the current marks and bounds into slot ``n`` (0..3)."""
    if not 0 <= n < SAVED_SETS:
        raise MarkSetError(f"invalid slot {n}, expecting 0..{SAVED_SETS - 1}")
    for tok in stream:
        tok.mset[n] = tok.mark
        tok.mbnd[n] = tok.bound


def save(stream: TokenStream, n: int, op: Union[SetOp, str] = SetOp.COPY) -> int:
    """Store the current marks in set ``n``; return the marks now in that set."""
    _check_set(n, "save")
    op = _as_op(op)
    count = 0
    for tok in stream:
        if op is SetOp.UNION:
            if tok.mark and not tok.mset[n]:
                tok.mset[n] = tok.mark
                count += 1
                if tok.bound is not None:
                    tok.mbnd[n] = tok.bound
        elif op is SetOp.INTERSECT:
            if tok.mset[n]:
                if not tok.mark:
                    tok.mset[n] = 0
                    tok.mbnd[n] = None
                else:
                    count += 1
        elif op is SetOp.SUBTRACT:
            if tok.mset[n]:
                if tok.mark:
                    tok.mset[n] = 0
                    tok.mbnd[n] = None
                else:
                    count += 1
        else:
            tok.mset[n] = tok.mark
            tok.mbnd[n] = tok.bound
            if tok.mark:
                count += 1
    return count


def restore(stream: TokenStream, n: int, op: Union[SetOp, str] = SetOp.COPY) -> int:
    """Combine set ``n`` into the current marks; return the resulting count."""
    _check_set(n, "restore")
    op = _as_op(op)
    count = 0
    for tok in stream:
        if op is SetOp.UNION:
            if not tok.mark and tok.mset[n]:
                tok.mark = tok.mset[n]
                count += 1
                if tok.mbnd[n] is not None:
                    tok.bound = tok.mbnd[n]
        elif op is SetOp.INTERSECT:
            if tok.mark:
                if not tok.mset[n]:
                    tok.mark = 0
                    tok.bound = None
                else:
                    count += 1
        elif op is SetOp.SUBTRACT:
            if tok.mark:
                if tok.mset[n]:
                    tok.mark = 0
                    tok.bound = None
                else:
                    count += 1
        else:
            tok.mark = tok.mset[n]
            tok.bound = tok.mbnd[n]
            if tok.mark:
                count += 1
    return count


def undo(stream: TokenStream) -> int:
    """Swap current marks and bounds with slot 0; return the marks now set."""
    count = 0
    for tok in stream:
        tok.mark, tok.mset[0] = tok.mset[0], tok.mark
        tok.bound, tok.mbnd[0] = tok.mbnd[0], tok.bound
        if tok.mark:
            count += 1
    return count


def clear(stream: TokenStream, all_bounds: bool = False) -> None:
    """Remove all marks, and with ``all_bounds`` all bounds; slot 0 keeps them."""
    for tok in stream:
        tok.mset[0] = tok.mark
        tok.mark = 0
        if all_bounds:
            tok.mbnd[0] = tok.bound
            tok.bound = None


def count_marks(stream: TokenStream, n: int = 0) -> int:
    """Count the current marks (``n == 0``) or those saved in set ``n``."""
    if not 0 <= n < SAVED_SETS:
        raise MarkSetError("expr: invalid query - size 1..3")
    if n == 0:
        return sum(1 for tok in stream if tok.mark)
    return sum(1 for tok in stream if tok.mset[n])