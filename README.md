# cobrakit

cobrakit queries the token stream of C-like source code, interactively or
from scripts. You supply the tokens; cobrakit links them, marks them, moves
the marks around and reports on what it finds.

## Modules

- **`cobrakit.tokens`**: `Token` (text, type, file name, line number,
  nesting levels, `mark`, `bound`, `jmp` and saved mark slots),
  `TokenStream` (a doubly linked, numbered sequence with `first()`,
  `last()` and `renumber()`), and `link_brackets`, which sets the nesting
  levels and pairs every `{`/`}`, `(`/`)` and `[`/`]` through `jmp`.
  `TokenLists` keeps named lists of tokens that grow and shrink at either
  end (`add_top`, `add_bot`, `pop_top`, `pop_bot`, `top`, `bot`,
  `length`, `unlist`, `names`).
- **`cobrakit.links`**: `Linker` sets `bound` links: `goto_links` binds a
  `goto` to its label in the same function body, `else_links` binds `if`
  to its `else` block or the following statement and `else` to what comes
  after it, `switch_links` chains `case` labels and binds a `switch`
  without `default` past its body, and `break_links` binds `break` to the
  first token after its enclosing loop or switch. `set_links` runs all
  four; each runs only once until `clear_seen` is called. After
  `break_links`, `bad_breaks`, `good_breaks`, `invalid_breaks` and
  `warnings` describe what was found.
- **`cobrakit.symbols`**: `var_links(stream)` binds identifier uses to
  their likely declaration (parameter, local or global) and returns
  `SymbolCounts`, whose `summary()` gives a one-line report. It raises
  `ValueError` when braces nest deeper than 128 levels. `hasher` is the
  32-bit string hash used for symbol names.
- **`cobrakit.marksets`**: `backup`, `save`, `restore`, `undo`, `clear`
  and `count_marks` work on the current marks and the saved sets 1 to 3.
  `SetOp` is copy, union, intersection or subtraction;
  `parse_set_command` reads `>n`, `<&n`, `save n`, `restore |n` and the
  like. Errors raise `MarkSetError`.
- **`cobrakit.query`**: `MarkEngine` implements `mark`, `next`, `back`,
  `contains`, `extend`, `stretch`, `jump` and `find_type`, and `marked()`
  lists the marked tokens. Patterns are plain text, `@type`, `$$` (the
  text of the reference token) or `/regex`; a leading `\` makes a pattern
  literal. `Qualifiers` holds `no`, `ir`, `and`/`&`, `top` and `up`.
  Every query saves the previous marks in slot 0, so `marksets.undo`
  reverses it. Invalid queries raise `QueryError`.
- **`cobrakit.scripts`**: `ScriptLibrary` holds named `def ... end`
  scripts with parameters (`define`, `load`, `get`, `expand`, `listing`),
  plus command-line style variables substituted before the parameters.
  Helpers: `split_commands`, `strip_comment`, `next_arg`, `parse_params`
  and `substitute`. Errors raise `ScriptError`.
- **`cobrakit.session`**: `Session` runs command lines against a stream
  and writes results to an output stream (`execute_line`,
  `execute_command`, `run_file`, `history`, `list_marks`, `help_text`).

## Quick start

```python
import sys

from cobrakit.tokens import TokenStream, link_brackets
from cobrakit.links import Linker
from cobrakit.session import Session

tokens = ...                 # Token objects produced by your own lexer
link_brackets(tokens)
stream = TokenStream(tokens)

Linker(stream).set_links()

session = Session(stream, sys.stdout)
session.execute_line("m malloc; n (; >1")
session.execute_line("m free; <|1")
session.list_marks("")
```

Commands on one line are separated by `;`, and `#` starts a comment.
Session commands include `mark`/`match`, `next`, `back`, `contains`,
`extend`, `stretch`, `jump`, `inspect`, `reset`, `undo`, `list`, `pre`,
`history`, `symbols`, `ft`, `scripts`/`view`, `?`, `unmark`, `>n` / `<n`
and `save` / `restore`, `=`, `setlinks`, `map`, `default`, `quiet`,
`terse`, `verbose`, `track`, `help`, `. file`, `: script`, `! command`,
`def ... end` and `quit`. Table commands may be abbreviated.
`Session.help_text("")` returns the full summary.

Inside a `Session`, errors from queries, set commands and scripts are
reported on standard error and the session carries on; used directly,
`MarkEngine`, the `marksets` functions and `ScriptLibrary` raise
`QueryError`, `MarkSetError` and `ScriptError`.

## What it does not do

- It has no lexer: tokens must come from elsewhere, and no source files
  are read or preprocessed.
- There is no command-line program or interactive terminal loop; drive a
  `Session` from your own code.
- Inline programs (`%{ ... %}`), value expressions such as `(.lnr > 10)`
  in `=`, pattern expressions, JSON output, function lists and call
  graphs are not provided.