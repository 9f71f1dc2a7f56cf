"""Named command scripts: definition, loading, argument binding and expansion."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

Bindings = Union[Mapping[str, Optional[str]], Iterable[Tuple[str, Optional[str]]]]

_PARAM_NAME = re.compile(r"[A-Za-z0-9_]*")


class ScriptError(ValueError):
    """Raised for a malformed script definition or a bad script call."""


def _is_word(ch: str) -> bool:
    return ch == "_" or (ch.isascii() and ch.isalnum())


def _trim_line(buf: str) -> str:
    """Drop a trailing ``#`` comment (one preceded by white space) or the newline."""
    cut: Optional[int] = None
    first = buf.find("#")
    if first > 0 and buf[first - 1].isspace():
        cut = first
    else:
        last = buf.rfind("#")
        if last > 0 and buf[last - 1].isspace():
            cut = last
        else:
            newline = buf.find("\n")
            if newline >= 0:
                cut = newline
    if cut is not None:
        buf = buf[:cut].rstrip()
    return buf.lstrip()


def _split_once(text: str) -> Tuple[str, str]:
    """Split off the first command at an unescaped ``;`` outside ``%{ ... %}``."""
    start = 0
    while True:
        inline = text.find("%{")
        inline_end = text.find("%}", inline) if inline >= 0 else -1
        pos = text.find(";", start)
        if pos < 0:
            return text, ""
        if inline >= 0 and pos > inline and (inline_end < 0 or pos < inline_end):
            start = pos + 1
            continue
        if pos > 0 and text[pos - 1] == "\\":
            text = text[:pos - 1] + text[pos:]
            start = pos
            continue
        return text[:pos], text[pos + 1:].lstrip()


def split_commands(line: str) -> List[str]:
    """Split a command line into its ``;``-separated commands.

    ``\\;`` stands for a literal semicolon, semicolons inside an inline
    program ``%{ ... %}`` are kept, and a shell escape (``!``) is never split.
    """
    commands: List[str] = []
    rest = line.split("\n", 1)[0].lstrip()
    while rest:
        if rest.startswith("!"):
            command, rest = rest, ""
        else:
            command, rest = _split_once(rest)
        if command:
            commands.append(command)
    return commands


def strip_comment(line: str) -> str:
    """Remove a ``#`` comment from a command line.

    Shell escapes keep their ``#``, as does a ``#`` preceded by a backslash
    or one that follows the start of an inline program ``%{``.
    """
    text = line.split("\n", 1)[0].lstrip()
    if text.startswith("!"):
        return text
    pos = text.find("#")
    if pos >= 0 and (pos == 0 or text[pos - 1] != "\\"):
        inline = text.find("%{")
        if inline < 0 or inline > pos:
            text = text[:pos]
    return text


def next_arg(text: str) -> Tuple[str, str]:
    """Return the first word of ``text`` and what follows it, white space removed.

    A backslash makes the next character part of the word, so ``a\\ b`` is
    one word.
    """
    i = 0
    n = len(text)
    while i < n and not text[i].isspace():
        if text[i] == "\\" and i + 1 < n:
            i += 1
        i += 1
    return text[:i], text[i:].lstrip()


def parse_params(text: str) -> List[str]:
    """Parse a comma separated list of parameter names."""
    names: List[str] = []
    rest = text.strip()
    while rest:
        name = _PARAM_NAME.match(rest).group()
        names.append(name)
        rest = rest[len(name):].lstrip()
        if rest:
            if rest[0] != ",":
                raise ScriptError(f"expecting ',' saw: '{rest[0]}'")
            rest = rest[1:].lstrip()
    return names


def substitute(text: str, bindings: Bindings) -> str:
    """Replace whole-word occurrences of parameter names by their values.

    A name bound to ``None`` or to the empty string is removed from the text.
    """
    if isinstance(bindings, Mapping):
        pairs = list(bindings.items())
    else:
        pairs = list(bindings)
    pairs = [(name, value) for name, value in pairs if name]
    if not pairs:
        return text

    out: List[str] = []
    i = 0
    n = len(text)
    while i < n:
        for name, value in pairs:
            end = i + len(name)
            if text.startswith(name, i) and (end >= n or not _is_word(text[end])):
                if value:
                    out.append(value)
                i = end
                break
        else:
            while i < n:
                ch = text[i]
                out.append(ch)
                i += 1
                if not _is_word(ch):
                    break
    return "".join(out)


@dataclass
class Script:
    """A named sequence of commands with formal parameters."""

    name: str
    params: List[str] = field(default_factory=list)
    commands: List[str] = field(default_factory=list)
    requires_nocpp: bool = False

    def signature(self) -> str:
        if self.params:
            return f"{self.name}({', '.join(self.params)})"
        return self.name


def _is_def(line: str) -> bool:
    return line.startswith("def") and (len(line) == 3 or line[3].isspace())


class ScriptLibrary:
    """The scripts known to a session, and the command-line variables."""

    def __init__(self, variables: Optional[Mapping[str, str]] = None):
        self.variables: Dict[str, str] = dict(variables or {})
        self._scripts: Dict[str, Script] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._scripts

    def __iter__(self) -> Iterator[Script]:
        return iter(list(self._scripts.values()))

    def __len__(self) -> int:
        return len(self._scripts)

    def define(self, header: str, body: Iterable[str]) -> Script:
        """Define (or redefine) a script from its ``def`` header and body lines."""
        pos = header.find("#")
        if pos >= 0 and (pos == 0 or header[pos - 1] != "\\"):
            header = header[:pos]
        words = header.split()
        if not words:
            raise ScriptError(f"bad format for 'def:' '{header.strip()}'")
        name = words[0].split("(", 1)[0]
        if not name:
            raise ScriptError(f"bad format for 'def:' '{header.strip()}'")

        params: List[str] = []
        open_pos = header.find("(")
        if open_pos >= 0:
            close_pos = header.find(")", open_pos)
            if close_pos < 0:
                raise ScriptError(f"missing ')' in '{header.strip()}'")
            inside = header[open_pos + 1:close_pos]
            if inside:
                params = parse_params(inside)

        script = Script(
            name=name,
            params=params,
            commands=[line.rstrip("\n") for line in body],
            requires_nocpp=len(words) > 1 and "-n" in words[1],
        )
        self._scripts[name] = script
        return script

    def load(self, lines: Iterable[str]) -> List[str]:
        """Read script definitions; return the other (immediate) commands in order.

        A definition runs from a ``def`` line up to an ``end`` line, or up to
        the next ``def`` line when the ``end`` is missing.
        """
        immediate: List[str] = []
        source = iter(lines)
        pending: Optional[str] = None
        while True:
            if pending is not None:
                raw, pending = pending, None
            else:
                raw = next(source, None)
                if raw is None:
                    break
            text = _trim_line(raw)
            if not text:
                continue
            if _is_def(text):
                body: List[str] = []
                for line in source:
                    if line.startswith("def"):
                        pending = line
                        break
                    if line.startswith("end"):
                        break
                    body.append(line)
                self.define(text[3:], body)
                continue
            command = strip_comment(text).rstrip()
            if command:
                immediate.append(command)
        return immediate

    def get(self, name: str) -> Optional[Script]:
        return self._scripts.get(name)

    def expand(self, call: str) -> List[str]:
        """Bind the arguments of a call such as ``name(a, b)`` or ``name a b``.

        Returns the script's commands with command-line variables and then
        the actual parameters substituted.
        """
        text = call.strip()
        if not self._scripts:
            raise ScriptError(f"no such command: '{text}' (no scripts defined)")

        open_pos = text.find("(")
        if open_pos >= 0:
            head, tail = text[:open_pos], text[open_pos + 1:]
            last_comma = tail.rfind(",")
            tail = tail.replace(",", " ")
            close_pos = tail.find(")", last_comma + 1 if last_comma >= 0 else 0)
            if close_pos >= 0:
                tail = tail[:close_pos]
            text = f"{head} {tail}"

        name, rest = next_arg(text)
        args: List[str] = []
        while rest:
            arg, rest = next_arg(rest)
            args.append(arg)

        script = self._scripts.get(name)
        if script is None:
            raise ScriptError(f"no such command: '{name}'")
        if len(args) != len(script.params):
            raise ScriptError(
                f"'{name}' takes {len(script.params)} arguments, saw {len(args)}"
            )

        bindings = list(zip(script.params, args))
        expanded: List[str] = []
        for command in script.commands:
            line = substitute(substitute(command, self.variables), bindings)
            line = _trim_line(line)
            if line:
                expanded.append(line)
        return expanded

    def listing(self) -> str:
        """One line per script, with its parameter list."""
        return "".join(f" {script.signature()}\n" for script in self._scripts.values())