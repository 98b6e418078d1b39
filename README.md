# cfgtree

A configuration file parser driven by a schema declared in code. Options are
typed (integer, float, boolean, string, or an arbitrary value produced by a
parse callback), may hold a single value or a list, and may be grouped into
sections. Sections can repeat and carry titles. A file can call function
options such as `include("other.conf")`, and values can be checked with
validation callbacks.

## Installing

```
pip install .
```

## The file format

```
# comments start with '#' or '//', or are enclosed in /* ... */
name = "example"
retries = 5
ratio = 0.75
verbose = yes
hosts = {"alpha", "beta"}
hosts += {"gamma"}

server main {
    port = 0x1f90
    root = ${HOME:-/srv}
}

include("extra.conf")
```

- Double-quoted strings understand backslash escapes (`\n`, `\t`, octal `\040`,
  hex `\x20`, and so on) and environment substitution: `${VAR}` becomes the
  variable's value or an empty string, `${VAR:-default}` falls back to
  `default` when the variable is unset or empty.
- Single-quoted strings are taken literally; only `\'` and `\\` are escapes.
- Unquoted words are strings too, and also expand `${...}`.
- Integers accept `0x` hexadecimal, `0b` binary and leading-zero octal forms.
- Booleans accept `true/false`, `yes/no` and `on/off`, in any case.
- `=` replaces the value of an option; `+=` appends to a list option. A list
  value is either one value or `{a, b, c}`.

## Declaring a schema and parsing

The helpers in `cfgtree.options` build `Option` definitions:
`int_opt`, `float_opt`, `bool_opt`, `str_opt`, the list forms `int_list`,
`float_list`, `bool_list`, `str_list` (whose default is written in
configuration syntax, e.g. `"{1, 2}"`), `sec_opt`, `func_opt` and `ptr_opt`.

```python
from cfgtree.options import Flag, int_opt, str_opt, bool_opt, str_list, sec_opt, func_opt
from cfgtree.config import Config, include

server = [
    int_opt("port", 80),
    str_opt("root", "/srv"),
]

opts = [
    str_opt("name", "default"),
    int_opt("retries", 3),
    bool_opt("verbose", False),
    str_list("hosts", "{localhost}"),
    sec_opt("server", server, Flag.MULTI | Flag.TITLE),
    func_opt("include", include),
]

cfg = Config(opts)
cfg.parse("app.conf")            # or cfg.parse_string(text), cfg.parse_stream(fp)

cfg.get_str("name")
cfg.get_int("retries")
cfg.size("hosts")
cfg.get_str("hosts", 1)
cfg.get_int("server=main|port")  # address a titled section by title
cfg.get_section("server=main")
cfg.get_titled_section("server", "main").get_str("root")
```

Paths use `|` between section and option names. A repeated section is picked
with `name=index`, or `name=title` for titled sections; a title holding `|`
can be quoted as `name='a|b'`.

Useful `Flag` values: `MULTI` and `TITLE` for sections, `LIST` (set by the
list helpers), `NODEFAULT` to leave an option empty until set,
`NO_TITLE_DUPES`, `NOCASE` for case-insensitive names, `IGNORE_UNKNOWN` to skip
unknown options in a file, `KEYSTRVAL` for sections that accept any
`key = value` string pairs, `COMMENTS` to keep comments attached to the option
that follows them, and `DEPRECATED` / `DROP` for options that are reported (and
optionally discarded) when used.

Parse failures raise `cfgtree.options.ParseError`, which carries `filename`
and `line`; other misuse (unknown option, wrong type, missing file) raises
`cfgtree.options.ConfigError`.

## Callbacks

- `parse(cfg, opt, text)` on an option returns the value to store, or raises
  `ValueError` to reject the text. `ptr_opt` requires one, and takes an optional
  `free(value)` called when a value is replaced or dropped.
- `func(cfg, opt, args)` runs a function option; raising makes parsing fail.
  `cfgtree.config.include` is a ready-made one that reads another file in place.
- `Config.set_validate_func(name, func)` attaches `func(cfg, opt)`, run while
  parsing; it raises `ValueError` to reject the values.
- `Config.set_validate_func2(name, func)` attaches `func(cfg, opt, value)`, run
  by `set_int`, `set_float` and `set_str`; it returns the value to store or raises.
- `Config.set_error_function(func)` receives `func(cfg, message)` for warnings
  and parse errors instead of standard error.
- `Config.set_print_func(name, func)` writes a value as `func(opt, index, out)`.

## Changing and writing back a configuration

```python
import sys

cfg.set_int("retries", 10)
cfg.set_list("hosts", ["a", "b"])
cfg.add_list("hosts", ["c"])
cfg.set_multi("hosts", ["x", "y"])   # from text; old values kept on failure
cfg.add_titled_section("server", "backup")
cfg.remove_titled_section("server", "backup")
cfg.dump(sys.stdout)                 # cfg.dump() returns the text instead
```

`Config.set_print_filter(func)` hides options from the output: `func(cfg, opt)`
returns true for options to leave out.

## Files and search paths

`Config.add_searchpath` adds directories searched, in the order they were
added, by `parse` and `include`. Without a search path, file names are used as
given after `~` / `~user` expansion, relative to the current directory rather
than to the including file.

## What it does not do

cfgtree is a library only: it has no command-line program, and its messages
are in English only.