"""Interactive command sessions: parse command lines and run them on a token stream."""

from __future__ import annotations

import os
import re
import subprocess
import sys
from dataclasses import dataclass
from typing import Dict, List, Optional, TextIO

from .links import Linker
from .marksets import (MarkSetError, clear, count_marks, parse_set_command,
                       restore, save, undo)
from .query import MarkEngine, Qualifiers, QueryError
from .scripts import ScriptError, ScriptLibrary, next_arg, split_commands, strip_comment
from .symbols import SymbolCounts, var_links
from .tokens import Token, TokenStream

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def _atoi(text: str) -> int:
    found = _LEADING_INT.match(text)
    return int(found.group(1)) if found else 0


def _basename(path: str) -> str:
    return path.rsplit("/", 1)[-1]


def _matches(n: int) -> str:
    return f"{n} match{'' if n == 1 else 'es'}"


def _has_qualifiers(q: Qualifiers) -> bool:
    return q.inverse or q.inside_range or q.and_mode or q.top_only or q.top_up


@dataclass(frozen=True)
class _Command:
    name: str
    handler: str
    explanation: str
    min_len: int


_MARK_HELP = "[q] p [p2] mark tokens matching p (optionally followed by p2)"

_TABLE = (
    _Command("mark", "_cmd_mark", _MARK_HELP, 1),
    _Command("match", "_cmd_mark", _MARK_HELP, 1),
    _Command("next", "_cmd_next",
             "[p]      move marks forward one step, or to a token matching p", 1),
    _Command("back", "_cmd_back",
             "[p]      move marks back one step, or to a token matching p", 1),
    _Command("view", "_cmd_scripts", "         list names of known scripts", 2),
    _Command("stretch", "_cmd_stretch",
             "[q] p [p2] add range from current marks upto token matching p", 1),
    _Command("scripts", "_cmd_scripts", "         list names of known scripts", 2),
    _Command("inspect", "_cmd_inspect", "fnm lnr  show the lexical tokens on this line", 1),
    _Command("jump", "_cmd_jump", "         move marks to end of range, if specified", 1),
    _Command("contains", "_cmd_contains",
             "[q] p [p2]  clear marked ranges not containing token(s)", 1),
    _Command("extend", "_cmd_extend",
             "p [p2]   select those marked items followed by p [and p2]", 1),
    _Command("reset", "_cmd_reset", "         clear marks and ranges", 1),
    _Command("history", "_cmd_history", "         list history of commands", 1),
    _Command("list", "_cmd_list", "[n]      print a numbered list of marked tokens", 1),
    _Command("pre", "_cmd_pre",
             "[n [n2]] show the tokens on the lines of marked items", 1),
    _Command("symbols", "_cmd_symbols",
             "        link identifiers to likely place of declaration", 2),
    _Command("undo", "_cmd_undo",
             "         undo effect of last operation on marks and ranges", 1),
    _Command("ft", "_cmd_ft", "s        find the source text for struct s", 2),
    _Command("?", "_cmd_help", "[s]      print this list, or print help on command s", 1),
)

_HELP_TAIL = """\
 q      quit           end cobra session

        >n            save marks and ranges in set n: 1..3
       >=n            same as >n
        <n            restore marks and ranges from set n: 1..3
       <=n            same as <n
       <|n            or <+n, add marks and ranges from set n (union)
       <&n            or <*n, keep only marks and ranges also in set n (intersect)
       <^n            or <-n, keep only marks and ranges not in set n (subtract)
       : s            execute the script named s
       . f            load and execute commands from file f
       ! c            execute command(s) c in a shell
  def ... end         define a named script

Additional commands that cannot be abbreviated:
   default            c         set c as the default command on empty line
       map            f         set token types from a file of 'text type' lines
     quiet            on|off    more/less verbose in script executions
      save            n         alternative syntax for: >n
   restore            n         alternative syntax for: <n
  setlinks                      set .bound field for if/else/switch/case/break stmnts
     terse            on|off    enable/disable display of details with l/p
     track            start fnm|stop temporarily divert all output to fnm
    unmark            p [p2]    alternative syntax for: mark no p [p2]
   verbose            on|off    increase/decrease verbosity
         =            [string]  print nr of matches, with optional string

Qualifiers
  in the above list [q] refers to an option qualifier, see below
  p, and p2 can be strings or regular expressions
  regular expressions must start with a forward slash '/'
  qualifiers [q] can be:
    no  -- to find non-matches (supported in: contains and mark)
    ir  -- restrict to matching in ranges (supported in: mark)
    &   -- (or 'and') restrict to marks that also match a new pattern (mark)
    top -- restrict to matching at same nesting level as mark (contains, stretch)
    up  -- restrict to matching one nesting level up as mark (contains, stretch)

Token Types
  names starting with @ are considered typenames, e.g. @ident, @key, @oper, @const
  commands can be separated by newlines or semi-colons

Special Symbols
  the symbol $$ refers to the text of the current token,
  which can be useful with mark ir in scripts
"""


class Session:
    """Runs command lines against a token stream, writing results to ``out``."""

    def __init__(self, stream: TokenStream, out: Optional[TextIO] = None):
        self.stream = stream
        self.out: TextIO = out if out is not None else sys.stdout
        self.err: TextIO = sys.stderr
        self.engine = MarkEngine(stream)
        self.library = ScriptLibrary()
        self.linker = Linker(stream)
        self.quiet = False
        self.terse = False
        self.verbose = 0
        self.echo = False
        self.default = ""
        self.count = 0
        self.symbol_counts: Optional[SymbolCounts] = None
        self._history: List[str] = []
        self._depth = 0
        self._stack: List[str] = []
        self._pending_def: Optional[List[str]] = None
        self._track: Optional[TextIO] = None

    # output helpers

    @property
    def _display_out(self) -> TextIO:
        return self._track if self._track is not None else self.out

    def _say(self, text: str) -> None:
        self.out.write(text + "\n")

    def _error(self, text: str) -> None:
        self.err.write(text + "\n")

    # entry points

    def execute_line(self, line: str) -> bool:
        """Run one line of commands; return False when the session should end."""
        if self._pending_def is not None:
            return self._collect_def(line)
        text = strip_comment(line).strip()
        if text and text != "%{" and (not self._history or self._history[-1] != text):
            self._history.append(text)
        if not text:
            if not self.default:
                return True
            text = self.default
        for command in split_commands(text):
            if not self.execute_command(command):
                return False
        return True

    def execute_command(self, command: str) -> bool:
        """Run a single command; return False for quit."""
        bc = command.strip()
        if not bc:
            return True
        self.count = 0
        if bc.startswith("def") and len(bc) > 3 and bc[3] in " \t":
            self._pending_def = [bc]
            return True
        handled = self._pre_scan(bc)
        if handled is not None:
            return handled
        return self._table_command(bc)

    def run_file(self, path: str) -> bool:
        """Read script definitions and run the commands in a file.

        Raises OSError when the file cannot be read.
        """
        with open(path, encoding="utf-8") as handle:
            lines = handle.read().splitlines()
        source = iter(lines)
        pending: Optional[str] = None
        while True:
            if pending is not None:
                raw, pending = pending, None
            else:
                raw = next(source, None)
                if raw is None:
                    return True
            text = raw.strip()
            if not text:
                continue
            if text.startswith("def") and (len(text) == 3 or text[3].isspace()):
                body: List[str] = []
                for line in source:
                    if line.startswith("def"):
                        pending = line
                        break
                    if line.startswith("end"):
                        break
                    body.append(line)
                try:
                    script = self.library.define(text[3:], body)
                except ScriptError as exc:
                    self._error(f"error: {exc}")
                    continue
                if not self.quiet:
                    self._say(f"script '{script.name}'")
                continue
            if not self.execute_line(text):
                return False

    def history(self) -> List[str]:
        """The commands entered so far, without immediate repetitions."""
        return list(self._history)

    def list_marks(self, arg: str = "") -> int:
        """Print a numbered list of the marked lines; ``arg`` selects one item."""
        return self._list(arg, "", raw=False)

    def help_text(self, topic: str = "") -> str:
        """The command summary, or the entries whose name contains ``topic``."""
        lines = [
            "Command Summary",
            "short-hand / full-text / arguments / explanation",
            "q is a qualifier (see below), s, t, and f are strings",
            "p and p2 are strings or expressions matching the text of a token",
        ]
        hits = 0
        for cmd in _TABLE:
            if cmd.min_len > 1:
                continue
            if not topic or topic in cmd.name:
                lines.append(f" {cmd.name[0]}  {cmd.name:>8}  {cmd.explanation}")
                hits += 1
        text = "\n".join(lines) + "\n"
        if topic and hits:
            return text
        return text + _HELP_TAIL

    # command dispatch

    def _collect_def(self, line: str) -> bool:
        assert self._pending_def is not None
        self._pending_def.append(line)
        if line.strip().startswith("end"):
            lines, self._pending_def = self._pending_def, None
            try:
                self.library.load(lines)
            except ScriptError as exc:
                self._error(f"error: {exc}")
        return True

    def _pre_scan(self, bc: str) -> Optional[bool]:
        head = bc[0]
        if head == ".":
            return self._source_file(bc[1:].strip())
        if head == ":":
            return self._run_script(bc[1:].strip())
        if head == "!":
            self._shell(bc[1:])
            return True
        if bc.startswith("%{"):
            self._error("error: inline programs are not supported")
            return True
        if head in "<>" or bc.startswith("save ") or bc.startswith("restore"):
            self._set_command(bc)
            return True
        if bc.startswith("terse"):
            self.terse = self._toggle(bc[5:], self.terse)
            return True
        if bc.startswith("quiet"):
            self.quiet = self._toggle(bc[5:], self.quiet)
            return True
        if bc.startswith("verbose"):
            if "on" in bc[7:]:
                self.verbose += 1
            elif "off" in bc[7:]:
                self.verbose = max(0, self.verbose - 1)
            else:
                self._say("usage: verbose [on|off]")
            return True
        if bc.startswith("track") or (head == "t" and len(bc) > 1 and bc[1].isspace()):
            self._track_command(bc)
            return True
        if bc.startswith("help"):
            space = bc.find(" ")
            self.out.write(self.help_text(bc[space + 1:].strip() if space >= 0 else ""))
            return True
        if bc.startswith("setlinks"):
            self.linker.set_links()
            return True
        if bc.startswith("default"):
            self.default = next_arg(bc)[1]
            return True
        if bc.startswith("map") and (len(bc) == 3 or bc[3] in " \t"):
            self._load_map(next_arg(bc)[1])
            if not self._depth and not self.quiet:
                self._say(_matches(self.count))
            return True
        if bc.startswith("unmark"):
            quals, args = self._arguments(next_arg(bc)[1])
            quals.inverse = True
            a = args[0] if args else ""
            b = " ".join(args[1:])
            try:
                self.count = self.engine.mark(a, b, quals)
            except QueryError as exc:
                self._error(f"error: {exc}")
            return True
        if head == "=":
            self._print_count(bc)
            return True
        if bc in ("quit", "q"):
            return False
        return None

    @staticmethod
    def _toggle(rest: str, current: bool) -> bool:
        if "on" in rest:
            return True
        if "off" in rest:
            return False
        return not current

    @staticmethod
    def _arguments(rest: str):
        words: List[str] = []
        while rest:
            word, rest = next_arg(rest)
            words.append(word)
        return Qualifiers.from_words(words)

    def _table_command(self, bc: str) -> bool:
        name, rest = next_arg(bc)
        quals, args = self._arguments(rest)
        a = args[0] if args else ""
        b = " ".join(args[1:])
        if a.startswith("(") and b.startswith("("):
            self._say("can have only one expression per command")
            return True
        for cmd in _TABLE:
            if not cmd.name.startswith(name):
                continue
            if len(name) < cmd.min_len:
                self._error(f"error: ambiguous, need at least {cmd.min_len} chars")
                return True
            try:
                result = getattr(self, cmd.handler)(a, b, quals)
            except (QueryError, MarkSetError) as exc:
                self._error(f"error: {exc}")
                result = None
            if result is not None:
                self.count = result
            if self._reports_count(name):
                self._say(_matches(self.count))
            return True
        return self._run_script(" ".join([name] + args))

    def _reports_count(self, name: str) -> bool:
        head = name[0]
        if head in "adhilp?>":
            return False
        if head == "r" and not (name.startswith("re") and not name.startswith("reset")):
            return False
        return not self._depth and not self.quiet

    # table handlers

    def _cmd_mark(self, a: str, b: str, q: Qualifiers) -> int:
        return self.engine.mark(a, b, q)

    def _cmd_next(self, a: str, b: str, q: Qualifiers) -> int:
        if _has_qualifiers(q):
            raise QueryError("n[ext] does not support qualifiers")
        return self.engine.next(a, b)

    def _cmd_back(self, a: str, b: str, q: Qualifiers) -> int:
        if _has_qualifiers(q):
            raise QueryError("b[ack] does not support qualifiers")
        return self.engine.back(a, b)

    def _cmd_stretch(self, a: str, b: str, q: Qualifiers) -> int:
        return self.engine.stretch(a, b, q)

    def _cmd_contains(self, a: str, b: str, q: Qualifiers) -> int:
        return self.engine.contains(a, b, q)

    def _cmd_extend(self, a: str, b: str, q: Qualifiers) -> int:
        if _has_qualifiers(q):
            raise QueryError("e[xtend] does not support qualifiers")
        return self.engine.extend(a, b)

    def _cmd_jump(self, a: str, b: str, q: Qualifiers) -> Optional[int]:
        if a or b:
            self._say("invalid query - j[ump] (redundant args)")
            return None
        return self.engine.jump()

    def _cmd_scripts(self, a: str, b: str, q: Qualifiers) -> None:
        self.out.write(self.library.listing())

    def _cmd_inspect(self, a: str, b: str, q: Qualifiers) -> int:
        if q.inverse or q.inside_range or q.and_mode:
            raise QueryError("i[nspect] does not take qualifiers")
        if not a or not b:
            raise QueryError("invalid query -- i[nspect] fnm lnr")
        lnr = _atoi(b)
        tokens = [t for t in self.stream if t.fnm == a and t.lnr == lnr]
        if tokens:
            texts = "".join(t.txt + " " + " " * max(0, len(t.typ) - len(t.txt))
                            for t in tokens)
            types = "".join(t.typ + " " + " " * max(0, len(t.txt) - len(t.typ))
                            for t in tokens)
            self.out.write(texts + "\n" + types + "\n")
        return 0

    def _cmd_reset(self, a: str, b: str, q: Qualifiers) -> int:
        everything = a == "all"
        if everything:
            self.linker.clear_seen()
            self.symbol_counts = None
        clear(self.stream, everything)
        return 0

    def _cmd_history(self, a: str, b: str, q: Qualifiers) -> int:
        for number, entry in enumerate(self._history, 1):
            self.out.write(f"{number:3d}: {entry}\n")
        return len(self._history)

    def _cmd_list(self, a: str, b: str, q: Qualifiers) -> None:
        if b:
            self._error("error: usage list [n]")
            return
        self._list(a, "", raw=False)

    def _cmd_pre(self, a: str, b: str, q: Qualifiers) -> None:
        self._list(a, b, raw=True)

    def _cmd_symbols(self, a: str, b: str, q: Qualifiers) -> None:
        if self.symbol_counts is None:
            try:
                self.symbol_counts = var_links(self.stream)
            except ValueError as exc:
                self._error(str(exc))
                return
        if not self.quiet:
            self._say(self.symbol_counts.summary())

    def _cmd_undo(self, a: str, b: str, q: Qualifiers) -> int:
        if a or b:
            self._error("warning: undo takes no arguments")
        return undo(self.stream)

    def _cmd_ft(self, a: str, b: str, q: Qualifiers) -> int:
        return self.engine.find_type(a)

    def _cmd_help(self, a: str, b: str, q: Qualifiers) -> None:
        self.out.write(self.help_text(a))

    # listing

    def _list(self, arg: str, context: str, raw: bool) -> int:
        n = 0 if (arg == "*" or "-" in arg) else _atoi(arg)
        if self.terse:
            return 0
        fd = self._display_out
        shown_file: Optional[str] = None
        last_lnr = -1
        last_file = ""
        item = 0
        shown = 0
        for tok in self.stream:
            if not tok.mark:
                shown_file = None
                continue
            base = _basename(tok.fnm)
            if tok.lnr == last_lnr and base == last_file:
                continue
            last_file, last_lnr = base, tok.lnr
            item += 1
            if n and item != n:
                continue
            if shown_file != base:
                if tok.bound is not None:
                    tail = f"<->{_basename(tok.bound.fnm)}:{tok.bound.lnr}"
                else:
                    tail = ":"
                fd.write(f"{base}:{last_lnr}{tail}\n")
                shown_file = base
            if raw:
                self._reproduce(tok, item, context)
            else:
                fd.write(f"{item:3d}:  {tok.lnr:5d} \t{tok.txt}\n")
            shown += 1
            if n:
                break
        return shown

    def _reproduce(self, q: Token, seq: int, context: str) -> None:
        fd = self._display_out
        n = _atoi(context) + 1
        start = q
        while (start.prv is not None and start.prv.lnr > q.lnr - n
               and start.prv.fnm == q.fnm):
            start = start.prv
        end = q.bound if q.bound is not None and q.bound.seq > q.seq else q.jmp

        src = tag = ""
        line_nr: Optional[int] = None
        cur: Optional[Token] = start
        while cur is not None and cur.lnr < q.lnr + n and cur.fnm == q.fnm:
            if line_nr != cur.lnr:
                if line_nr is not None:
                    fd.write(src + "\n")
                    if "^" in tag:
                        fd.write(tag + "\n")
                marker = "> " if q.lnr == cur.lnr and n > 1 else "  "
                src = f"{seq:3d}: {marker}{cur.lnr:3d}  "
                tag = f"{seq:3d}: " + " " * (len(src) - 5)
                line_nr = cur.lnr
            src += cur.txt + " "
            inside = end is not None and q.seq < cur.seq <= end.seq
            tag += ("^" if cur.mark or inside else " ") * len(cur.txt) + " "
            cur = cur.nxt
        fd.write(src + "\n")
        if "^" in tag:
            fd.write(tag + "\n")

    # other commands

    def _set_command(self, bc: str) -> None:
        try:
            action, n, op = parse_set_command(bc)
        except MarkSetError as exc:
            self._say(str(exc))
            return
        if action == "save":
            self.count = save(self.stream, n, op)
            return
        self.count = restore(self.stream, n, op)
        if not self._depth and not self.quiet:
            self._say(_matches(self.count))

    def _print_count(self, bc: str) -> None:
        rest = bc
        while rest and not rest[0].isspace():
            rest = rest[1:]
        rest = rest.lstrip()
        if rest.startswith('"'):
            close = rest.find('"', 1)
            if close < 0:
                self._error("error: missing closing double-quote")
                return
            prefix = rest[1:close].replace("\\", " ")
            suffix = rest[close + 1:].strip()
        else:
            prefix, suffix = next_arg(rest)
        self.count = count_marks(self.stream)
        if self.count == 0:
            return
        if suffix or prefix.startswith("("):
            self._error("error: expressions are not supported in this context")
            return
        self._display_out.write(f"{prefix} {self.count}\n")

    def _track_command(self, bc: str) -> None:
        if "stop" in bc:
            if self._track is not None:
                self._track.close()
                self._track = None
            return
        pos = bc.find("start")
        if pos < 0:
            self._say("usage: t[rack] start filename")
            self._say("   or: t[rack] stop")
            return
        rest = bc[pos + len("start"):].strip()
        if not rest:
            self._say("usage: t[rack] start filename")
            return
        path = rest.split()[0]
        if self._track is not None:
            self._track.close()
            self._track = None
        if os.path.exists(path):
            self._error(f"warning: '{path}' exists")
            self._error(f"first do:  !rm {path}")
            return
        try:
            self._track = open(path, "w", encoding="utf-8")
        except OSError:
            self._error(f"cannot create '{path}'")

    def _load_map(self, path: str) -> None:
        entries: Dict[str, List[str]] = {}
        try:
            with open(path, encoding="utf-8") as handle:
                for line in handle:
                    fields = line.split()
                    if len(fields) < 2:
                        self._error(f"error: bad map input '{line.rstrip()}'")
                        break
                    entries.setdefault(fields[0], []).append(fields[1])
        except OSError:
            self._error(f"error: no such file '{path}'")
            return
        count = 0
        for tok in self.stream:
            types = entries.get(tok.txt)
            if types:
                tok.typ = types[0]
                count += len(types)
        self.count = count

    def _shell(self, command: str) -> None:
        try:
            result = subprocess.run(command, shell=True, capture_output=True, text=True)
        except OSError:
            self._say("error")
            return
        self.out.write(result.stdout)
        self.err.write(result.stderr)

    def _source_file(self, path: str) -> bool:
        candidates = [path]
        if ".cobra" not in path and ".def" not in path:
            candidates.append(path + ".cobra")
        for candidate in candidates:
            if path and os.path.isfile(candidate):
                return self.run_file(candidate)
        self._say(f"cobra: cannot find '{path}'")
        return True

    def _run_script(self, call: str) -> bool:
        words = call.split("(", 1)[0].split()
        name = words[0] if words else ""
        if name in self._stack:
            self._error(f"error: script is recursive {name}")
            return True
        try:
            commands = self.library.expand(call)
        except ScriptError as exc:
            message = str(exc)
            if message.startswith("no such command"):
                self._say(message)
            else:
                self._error(f"error: {message}")
            return True
        if self.echo or self.verbose == 1:
            self._say(f":{name}")
        self._stack.append(name)
        self._depth += 1
        try:
            for line in commands:
                if not self.quiet:
                    self.out.write(f"\t{line}\n")
                self.execute_line(line)
        finally:
            self._depth -= 1
            self._stack.pop()
        return True