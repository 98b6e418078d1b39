"""The configuration tree: lookups, updates and parsing entry points."""

from __future__ import annotations

import io
import math
import os
import re
import sys
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, TextIO

from .lexer import Lexer
from .options import (
    ConfigError,
    Flag,
    Option,
    OptType,
    ParseError,
    parse_boolean,
    tilde_expand,
)
from .parser import parse_section
from .printer import print_section

_LONG_MIN = -(2 ** 63)
_LONG_MAX = 2 ** 63 - 1
_OCTAL_INDEX = re.compile(r"[+-]?0[0-7]*")


def _has(flags: int, flag: Flag) -> bool:
    return int(flags) & int(flag) == int(flag)


def _same(a: str, b: str, nocase: bool) -> bool:
    return a.lower() == b.lower() if nocase else a == b


def _parse_title(text: str) -> tuple[Optional[str], int]:
    """A section title at the start of text and how many characters it used."""
    if not text.startswith("'"):
        length = text.find("|")
        if length == -1:
            length = len(text)
        if not length:
            return None, 0
        return text[:length], length
    parts: list[str] = []
    pos = 1
    while pos < len(text):
        ch = text[pos]
        if ch == "'":
            return "".join(parts), pos + 1
        if ch == "\\":
            if pos + 1 >= len(text) or text[pos + 1] not in "'\\":
                return None, 0
            parts.append(text[pos + 1])
            pos += 2
            continue
        parts.append(ch)
        pos += 1
    return None, 0


def _index_from_text(text: str) -> int:
    try:
        if _OCTAL_INDEX.fullmatch(text):
            return int(text, 8)
        return int(text, 0)
    except ValueError:
        return -1


def search_path(directories: Iterable, filename) -> Optional[str]:
    """The first regular file named filename in the directories, or None."""
    filename = os.fspath(filename)
    if filename.startswith("/"):
        return filename if os.path.isfile(filename) else None
    for directory in directories:
        full = f"{directory}/{filename}"
        if os.path.isfile(full):
            return full
    return None


def include(cfg: "Config", opt: Option, args: list) -> None:
    """Function option that reads another configuration file in place."""
    if len(args) != 1:
        raise ConfigError("wrong number of arguments to include()")
    cfg.include(args[0])


class Config:
    """A section of configuration: the root, or a section within it."""

    def __init__(self, opts: Iterable[Option] = (), flags: Flag = Flag.NONE) -> None:
        self._setup("root", [opt.copy() for opt in opts], Flag(flags))
        self._init_defaults()

    def _setup(self, name: str, opts: list, flags: Flag) -> None:
        self.name = name
        self.title: Optional[str] = None
        self.opts: list[Option] = opts
        self.flags = Flag(flags)
        self.filename: Optional[str] = None
        self.line = 0
        self.errfunc: Optional[Callable] = None
        self.print_filter: Optional[Callable] = None
        self.path: list[str] = []
        self.lexer: Optional[Lexer] = None
        self.comment: Optional[str] = None

    @classmethod
    def _new_section(cls, parent: "Config", opt: Option, title: Optional[str]) -> "Config":
        section = cls.__new__(cls)
        flags = parent.flags
        if _has(opt.flags, Flag.KEYSTRVAL):
            flags |= Flag.KEYSTRVAL
        section._setup(opt.name, [sub.copy() for sub in opt.subopts], flags)
        section.title = title
        section.filename = parent.filename
        section.line = parent.line
        section.errfunc = parent.errfunc
        return section

    def __repr__(self) -> str:
        return f"Config(name={self.name!r}, title={self.title!r})"

    # defaults

    def _init_defaults(self) -> None:
        for position, opt in enumerate(self.opts):
            for earlier in self.opts[:position]:
                nocase = _has(opt.flags | earlier.flags, Flag.NOCASE)
                if _same(opt.name, earlier.name, nocase):
                    self.error(f"duplicate option '{opt.name}' not allowed")
                    break
            if _has(opt.flags, Flag.NODEFAULT):
                continue
            if opt.type is not OptType.SEC:
                opt.flags |= Flag.DEFINIT
                if _has(opt.flags, Flag.LIST) or opt.default_text:
                    if not opt.default_text:
                        continue
                    self._parse_default(opt)
                elif opt.type is OptType.INT:
                    opt.set_int(opt.default or 0, 0)
                elif opt.type is OptType.FLOAT:
                    opt.set_float(opt.default or 0.0, 0)
                elif opt.type is OptType.BOOL:
                    opt.set_bool(bool(opt.default), 0)
                elif opt.type is OptType.STR:
                    opt.set_str(opt.default, 0)
                elif opt.type not in (OptType.FUNC, OptType.PTR):
                    self.error(f"internal error in defaults of '{opt.name}'")
                opt.flags |= Flag.RESET
                opt.flags &= ~Flag.MODIFIED
            elif not _has(opt.flags, Flag.MULTI):
                self.setopt(opt, None)
                opt.flags |= Flag.DEFINIT

    def _parse_default(self, opt: Option) -> None:
        if _has(opt.flags, Flag.LIST):
            state = 3
        elif opt.type is OptType.FUNC:
            state = 0
        else:
            state = 2
        saved = self.lexer
        try:
            parse_section(self, Lexer(opt.default_text, self.filename), 1, state, opt)
        except ConfigError as exc:
            raise ConfigError(
                f"parse error in default value '{opt.default_text}' for option "
                f"'{opt.name}': {exc}") from exc
        finally:
            self.lexer = saved

    # lookup

    def _leaf(self, name: str) -> Optional[Option]:
        nocase = _has(self.flags, Flag.NOCASE)
        for opt in self.opts:
            if _same(opt.name, name, nocase):
                return opt
        return None

    def _lookup(self, name: str, want_index: bool) -> tuple[Optional[Option], int]:
        opt: Optional[Option] = None
        index = -1
        if not name:
            return None, index
        section: Config = self
        path = name
        while path:
            length = len(path)
            for pos, ch in enumerate(path):
                if ch in "|=":
                    length = pos
                    break
            rest = path[length] if length < len(path) else ""
            if not want_index and rest == "":
                break
            if not length:
                break
            segment = path[:length]
            found = -1
            opt = section._leaf(segment)
            if opt is None or opt.type is not OptType.SEC:
                opt = None
            elif rest != "=":
                found = 0
            elif _has(opt.flags, Flag.MULTI):
                path = path[length + 1:]
                title, length = _parse_title(path)
                if title is not None:
                    if _has(opt.flags, Flag.TITLE):
                        where = opt.titled_section_index(title)
                        found = -1 if where is None else where
                    else:
                        found = _index_from_text(title)
            index = found
            nxt = opt.get_section(found) if opt is not None and found >= 0 else None
            if nxt is None:
                return None, index
            section = nxt
            path = path[length:].lstrip("|")
        if not want_index:
            return section._leaf(path), index
        return opt, index

    def getopt(self, name: str) -> Optional[Option]:
        """The option at a path such as 'section|option', or None."""
        return self._lookup(name, False)[0]

    def getnopt(self, index: int) -> Optional[Option]:
        if 0 <= index < len(self.opts):
            return self.opts[index]
        return None

    def num(self) -> int:
        return len(self.opts)

    def size(self, name: str) -> int:
        opt = self.getopt(name)
        return opt.size() if opt is not None else 0

    def _require(self, name: str) -> Option:
        opt = self.getopt(name)
        if opt is None:
            raise ConfigError(f"no such option '{name}'")
        return opt

    def get_int(self, name: str, index: int = 0) -> int:
        return self._require(name).get_int(index)

    def get_float(self, name: str, index: int = 0) -> float:
        return self._require(name).get_float(index)

    def get_bool(self, name: str, index: int = 0) -> bool:
        return self._require(name).get_bool(index)

    def get_str(self, name: str, index: int = 0) -> Optional[str]:
        return self._require(name).get_str(index)

    def get_ptr(self, name: str, index: int = 0) -> Any:
        return self._require(name).get_ptr(index)

    def get_section(self, name: str) -> Optional["Config"]:
        """The section at a path such as 'multi=1' or "titled='a b'", or None."""
        opt, index = self._lookup(name, True)
        if opt is None or index < 0:
            return None
        return opt.get_section(index)

    def get_nsection(self, name: str, index: int) -> Optional["Config"]:
        opt = self.getopt(name)
        return None if opt is None else opt.get_section(index)

    def get_titled_section(self, name: str, title: str) -> Optional["Config"]:
        opt = self.getopt(name)
        return None if opt is None else opt.get_titled_section(title)

    def get_comment(self, name: str) -> Optional[str]:
        return self._require(name).comment

    def set_comment(self, name: str, comment: str) -> None:
        self._require(name).set_comment(comment)

    # setting values

    def _validated(self, opt: Option, value: Any) -> Any:
        if opt.validate2 is None:
            return value
        return opt.validate2(self, opt, value)

    def set_int(self, name: str, value: int, index: int = 0) -> None:
        opt = self._require(name)
        opt.set_int(self._validated(opt, value), index)

    def set_float(self, name: str, value: float, index: int = 0) -> None:
        opt = self._require(name)
        opt.set_float(self._validated(opt, value), index)

    def set_bool(self, name: str, value: bool, index: int = 0) -> None:
        self._require(name).set_bool(value, index)

    def set_str(self, name: str, value: Optional[str], index: int = 0) -> None:
        opt = self._require(name)
        opt.set_str(self._validated(opt, value), index)

    def _list_option(self, name: str) -> Option:
        opt = self.getopt(name)
        if opt is None or not _has(opt.flags, Flag.LIST):
            raise ConfigError(f"'{name}' is not a list option")
        return opt

    @staticmethod
    def _append(opt: Option, values: Iterable) -> None:
        setters = {
            OptType.INT: opt.set_int,
            OptType.FLOAT: opt.set_float,
            OptType.BOOL: opt.set_bool,
            OptType.STR: opt.set_str,
        }
        setter = setters.get(opt.type)
        if setter is None:
            return
        for value in values:
            setter(value, opt.size())

    def set_list(self, name: str, values: Iterable) -> None:
        """Replace the values of a list option."""
        opt = self._list_option(name)
        opt.clear()
        self._append(opt, values)

    def add_list(self, name: str, values: Iterable) -> None:
        """Append values to a list option."""
        self._append(self._list_option(name), values)

    @staticmethod
    def _release(opt: Option, values: list) -> None:
        if opt.type is OptType.PTR and opt.free is not None:
            for value in values:
                if value is not None:
                    opt.free(value)

    def set_multi(self, name: str, values: list) -> None:
        """Set all values from text; on any failure the old values stay."""
        opt = self.getopt(name)
        if opt is None:
            raise ConfigError(f"no such option '{name}'")
        values = list(values)
        if not values:
            raise ConfigError(f"no values given for option '{name}'")
        old_values, old_flags = opt.values, opt.flags
        keep = Flag.RESET | Flag.MODIFIED
        opt.values = []
        try:
            for text in values:
                self.setopt(opt, text)
        except ConfigError:
            self._release(opt, opt.values)
            opt.values = old_values
            opt.flags = (opt.flags & ~keep) | (old_flags & keep)
            raise
        self._release(opt, old_values)
        opt.flags |= Flag.MODIFIED

    def _call_parse(self, opt: Option, value: Optional[str]) -> Any:
        try:
            return opt.parse(self, opt, value)
        except ValueError as exc:
            raise ConfigError(str(exc) or f"invalid value for option '{opt.name}'") from exc

    @staticmethod
    def _parse_int(opt: Option, value: Optional[str]) -> int:
        if value is None:
            raise ConfigError(f"missing value for option '{opt.name}'")
        body, radix = value, 0
        if value.startswith("0"):
            second = value[1:2]
            if second == "b":
                body, radix = value[2:], 2
            elif second == "x":
                body, radix = value[2:], 16
            else:
                body, radix = value[1:], 8
        try:
            number = int(body, radix) if body or radix == 0 else 0
        except ValueError:
            raise ConfigError(f"invalid integer value for option '{opt.name}'") from None
        if not _LONG_MIN <= number <= _LONG_MAX:
            raise ConfigError(f"integer value for option '{opt.name}' is out of range")
        return number

    @staticmethod
    def _parse_float(opt: Option, value: Optional[str]) -> float:
        if value is None:
            raise ConfigError(f"missing value for option '{opt.name}'")
        try:
            number = float(value)
        except ValueError:
            raise ConfigError(f"invalid floating point value for option '{opt.name}'") from None
        if math.isinf(number) and "inf" not in value.lower():
            raise ConfigError(f"floating point value for option '{opt.name}' is out of range")
        return number

    def _title_index(self, opt: Option, title: Optional[str]) -> Optional[int]:
        if title is None:
            return None
        nocase = _has(self.flags, Flag.NOCASE)
        for index, section in enumerate(opt.values):
            if section is not None and section.title is not None \
                    and _same(title, section.title, nocase):
                return index
        return None

    def setopt(self, opt: Option, value: Optional[str]) -> Any:
        """Store a value given as text; for sections, return the section."""
        if opt is None:
            raise ConfigError("missing option")
        if _has(opt.flags, Flag.RESET):
            opt.clear()
            opt.flags &= ~Flag.RESET
        index: Optional[int] = None
        if not opt.values or opt.flags & (Flag.MULTI | Flag.LIST):
            if opt.type is OptType.SEC and _has(opt.flags, Flag.TITLE):
                if opt.values and value is None:
                    raise ConfigError(f"missing title for section '{opt.name}'")
                index = self._title_index(opt, value)
                if index is not None and _has(opt.flags, Flag.NO_TITLE_DUPES):
                    raise ConfigError(f"found duplicate title '{value}'")
        else:
            index = 0
        old = opt.values[index] if index is not None else None

        kind = opt.type
        if kind is OptType.INT:
            new = self._call_parse(opt, value) if opt.parse else self._parse_int(opt, value)
        elif kind is OptType.FLOAT:
            new = self._call_parse(opt, value) if opt.parse else self._parse_float(opt, value)
        elif kind is OptType.STR:
            new = self._call_parse(opt, value) if opt.parse else value
            if new is None:
                raise ConfigError(f"missing value for option '{opt.name}'")
        elif kind is OptType.BOOL:
            if opt.parse:
                new = bool(self._call_parse(opt, value))
            else:
                try:
                    new = parse_boolean(value)
                except ValueError:
                    raise ConfigError(
                        f"invalid boolean value for option '{opt.name}'") from None
        elif kind is OptType.SEC:
            if _has(opt.flags, Flag.MULTI) or old is None:
                new = Config._new_section(self, opt, value)
            else:
                new = old
            if not _has(opt.flags, Flag.DEFINIT):
                new._init_defaults()
        elif kind is OptType.PTR:
            if opt.parse is None:
                raise ConfigError(f"no parse function for option '{opt.name}'")
            new = self._call_parse(opt, value)
        else:
            raise ConfigError(f"internal error setting option '{opt.name}'")

        if index is None:
            opt.values.append(new)
        else:
            opt.values[index] = new
            if kind is OptType.PTR and old is not None and old is not new and opt.free:
                opt.free(old)
        opt.flags |= Flag.MODIFIED
        return new

    # sections

    def add_titled_section(self, name: str, title: str) -> "Config":
        if self.get_titled_section(name, title) is not None:
            raise ConfigError(f"section '{name}' titled '{title}' already exists")
        opt = self._require(name)
        section = self.setopt(opt, title)
        section.path = self.path
        section.line = 1
        section.errfunc = self.errfunc
        return section

    def remove_section(self, name: str) -> None:
        opt, index = self._lookup(name, True)
        if opt is None:
            raise ConfigError(f"no such section '{name}'")
        opt.remove_section(index)

    def remove_nsection(self, name: str, index: int) -> None:
        self._require(name).remove_section(index)

    def remove_titled_section(self, name: str, title: str) -> None:
        self._require(name).remove_titled_section(title)

    # reading

    def add_searchpath(self, directory) -> None:
        """Add a directory searched, after those added before, for files."""
        if directory is None:
            raise ConfigError("missing directory")
        self.path.append(tilde_expand(directory))

    def _resolve(self, filename) -> Optional[str]:
        if self.path:
            return search_path(self.path, filename)
        return tilde_expand(filename)

    def parse(self, filename) -> None:
        """Read a configuration file, looked up in the search path if one is set."""
        found = self._resolve(filename)
        if found is None:
            raise ConfigError(f"cannot find configuration file '{os.fspath(filename)}'")
        self.filename = found
        try:
            text = Path(found).read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"cannot read '{found}': {exc.strerror}") from exc
        self._run(text)

    def parse_stream(self, stream: TextIO) -> None:
        if stream is None:
            raise ConfigError("missing stream")
        if not self.filename:
            self.filename = "FILE"
        self._run(stream.read())

    def parse_string(self, text: Optional[str]) -> None:
        if text is None:
            return
        self.filename = "[buf]"
        self._run(text)

    def _run(self, text: str) -> None:
        self.line = 1
        lexer = Lexer(text, self.filename, keep_comments=_has(self.flags, Flag.COMMENTS))
        try:
            parse_section(self, lexer, 0)
        except ParseError as exc:
            if self.errfunc is not None:
                self.errfunc(self, str(exc))
            raise

    def include(self, filename) -> None:
        """Continue reading from another file; used while parsing."""
        if self.lexer is None:
            raise ConfigError("include is only possible while parsing")
        found = self._resolve(filename)
        if found is None:
            raise ParseError(f"cannot find include file '{filename}'",
                             self.lexer.filename, self.lexer.line)
        self.lexer.push_file(found)

    # output and hooks

    def dump(self, out: Optional[TextIO] = None, indent: int = 0) -> Optional[str]:
        """Write the configuration; with no stream, return it as text."""
        if out is None:
            buffer = io.StringIO()
            print_section(self, buffer, indent)
            return buffer.getvalue()
        print_section(self, out, indent)
        return None

    def set_print_filter(self, func: Optional[Callable]) -> Optional[Callable]:
        old, self.print_filter = self.print_filter, func
        return old

    def set_error_function(self, func: Optional[Callable]) -> Optional[Callable]:
        old, self.errfunc = self.errfunc, func
        return old

    def _definition(self, name: str) -> Optional[Option]:
        nocase = _has(self.flags, Flag.NOCASE)
        opts = self.opts
        *sections, leaf = name.split("|")
        for segment in sections:
            if not segment:
                continue
            secopt = next((o for o in opts if _same(o.name, segment, nocase)), None)
            if secopt is None or secopt.type is not OptType.SEC:
                return None
            existing = None if _has(secopt.flags, Flag.MULTI) else secopt.get_section(0)
            opts = existing.opts if existing is not None else secopt.subopts
        return next((o for o in opts if _same(o.name, leaf, nocase)), None)

    def set_validate_func(self, name: str, func: Optional[Callable]) -> Optional[Callable]:
        opt = self._definition(name)
        if opt is None:
            return None
        old, opt.validate = opt.validate, func
        return old

    def set_validate_func2(self, name: str, func: Optional[Callable]) -> Optional[Callable]:
        opt = self._definition(name)
        if opt is None:
            return None
        old, opt.validate2 = opt.validate2, func
        return old

    def set_print_func(self, name: str, func: Optional[Callable]) -> Optional[Callable]:
        opt = self._require(name)
        old, opt.print_func = opt.print_func, func
        return old

    def error(self, message: str) -> None:
        """Report a problem through the error function, or on standard error."""
        if self.errfunc is not None:
            self.errfunc(self, message)
            return
        if self.filename and self.line:
            prefix = f"{self.filename}:{self.line}: "
        elif self.filename:
            prefix = f"{self.filename}: "
        else:
            prefix = ""
        sys.stderr.write(prefix + message + "\n")