"""Option definitions, the values they hold and the errors raised about them."""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Optional

try:
    import pwd
except ImportError:  # pragma: no cover - platforms without a user database
    pwd = None


class Flag(enum.IntFlag):
    """Flags that change how an option or a configuration behaves."""

    NONE = 0
    MULTI = 1
    LIST = 2
    NOCASE = 4
    TITLE = 8
    NODEFAULT = 16
    NO_TITLE_DUPES = 32
    RESET = 64
    DEFINIT = 128
    IGNORE_UNKNOWN = 256
    DEPRECATED = 512
    DROP = 1024
    COMMENTS = 2048
    MODIFIED = 4096
    KEYSTRVAL = 8192


class OptType(enum.Enum):
    """The kind of value an option holds."""

    NONE = "none"
    INT = "int"
    FLOAT = "float"
    STR = "str"
    BOOL = "bool"
    SEC = "section"
    FUNC = "function"
    PTR = "pointer"
    COMMENT = "comment"


class ConfigError(Exception):
    """Raised when a configuration cannot be read, looked up or changed."""


def _location(filename: Optional[str], line: Optional[int]) -> str:
    if filename and line:
        return f"{filename}:{line}: "
    if filename:
        return f"{filename}: "
    return ""


class ParseError(ConfigError):
    """Raised when configuration text cannot be parsed."""

    def __init__(self, message: str, filename: Optional[str] = None,
                 line: Optional[int] = None) -> None:
        self.message = message
        self.filename = filename
        self.line = line
        super().__init__(_location(filename, line) + message)


_TRUE_WORDS = ("true", "on", "yes")
_FALSE_WORDS = ("false", "off", "no")


def parse_boolean(s: Optional[str]) -> bool:
    """Read true/on/yes or false/off/no, in any case."""
    if s is None:
        raise ValueError("missing boolean value")
    word = s.lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    raise ValueError(f"invalid boolean value '{s}'")


def tilde_expand(filename) -> str:
    """Replace a leading ~ or ~user with that user's home directory."""
    filename = os.fspath(filename)
    if pwd is None or not filename.startswith("~"):
        return filename
    user, sep, rest = filename[1:].partition("/")
    try:
        entry = pwd.getpwnam(user) if user else pwd.getpwuid(os.geteuid())
    except KeyError:
        return filename
    return entry.pw_dir + sep + rest


@dataclass(eq=False)
class Option:
    """One named option: its definition, callbacks and current values.

    Callbacks:
      parse(cfg, opt, text) returns the parsed value or raises ValueError.
      free(value) releases a pointer value.
      func(cfg, opt, args) runs a function option; it raises to fail.
      validate(cfg, opt) raises ValueError to reject parsed values.
      validate2(cfg, opt, value) returns the value to store or raises.
      print_func(opt, index, out) writes the value at index.
    """

    name: str
    type: OptType
    flags: Flag = Flag.NONE
    default: Any = None
    default_text: Optional[str] = None
    subopts: list = field(default_factory=list)
    parse: Optional[Callable] = None
    free: Optional[Callable] = None
    func: Optional[Callable] = None
    validate: Optional[Callable] = None
    validate2: Optional[Callable] = None
    print_func: Optional[Callable] = None
    comment: Optional[str] = None
    values: list = field(default_factory=list)

    def __post_init__(self) -> None:
        self.flags = Flag(self.flags)

    def size(self) -> int:
        """Number of values currently held."""
        return len(self.values)

    def copy(self) -> "Option":
        """A fresh definition with copied sub-options and no values."""
        return replace(self, subopts=[sub.copy() for sub in self.subopts], values=[])

    def clear(self) -> None:
        """Drop every value, releasing pointer values."""
        if self.comment is not None and Flag.RESET not in self.flags:
            self.comment = None
        if self.type is OptType.PTR and self.free is not None:
            for value in self.values:
                if value is not None:
                    self.free(value)
        self.values = []

    def _require(self, kind: OptType) -> None:
        if self.type is not kind:
            raise ConfigError(f"option '{self.name}' is not of type {kind.value}")

    def _get(self, kind: OptType, index: int, empty: Any) -> Any:
        self._require(kind)
        if 0 <= index < len(self.values):
            return self.values[index]
        return empty

    def _store(self, value: Any, index: int) -> None:
        if index < 0:
            raise ConfigError(f"negative index {index} for option '{self.name}'")
        if index != 0 and not self.flags & (Flag.LIST | Flag.MULTI):
            raise ConfigError(f"option '{self.name}' holds a single value")
        if Flag.RESET in self.flags:
            self.clear()
            self.flags &= ~Flag.RESET
        if index >= len(self.values):
            self.values.append(value)
        else:
            self.values[index] = value
        self.flags |= Flag.MODIFIED

    def get_int(self, index: int = 0) -> int:
        return self._get(OptType.INT, index, 0)

    def get_float(self, index: int = 0) -> float:
        return self._get(OptType.FLOAT, index, 0.0)

    def get_bool(self, index: int = 0) -> bool:
        return self._get(OptType.BOOL, index, False)

    def get_str(self, index: int = 0) -> Optional[str]:
        return self._get(OptType.STR, index, None)

    def get_ptr(self, index: int = 0) -> Any:
        return self._get(OptType.PTR, index, None)

    def get_section(self, index: int = 0) -> Any:
        """The section at index, or None when there is none."""
        return self._get(OptType.SEC, index, None)

    def titled_section_index(self, title: str) -> Optional[int]:
        """Index of the section with this title, or None."""
        nocase = Flag.NOCASE in self.flags
        wanted = title.lower() if nocase else title
        for index, section in enumerate(self.values):
            if section is None or section.title is None:
                return None
            have = section.title.lower() if nocase else section.title
            if have == wanted:
                return index
        return None

    def get_titled_section(self, title: str) -> Any:
        """The section with this title, or None."""
        if title is None or Flag.TITLE not in self.flags:
            raise ConfigError(f"option '{self.name}' has no titled sections")
        index = self.titled_section_index(title)
        return None if index is None else self.values[index]

    def set_int(self, value: int, index: int = 0) -> None:
        self._require(OptType.INT)
        self._store(int(value), index)

    def set_float(self, value: float, index: int = 0) -> None:
        self._require(OptType.FLOAT)
        self._store(float(value), index)

    def set_bool(self, value: bool, index: int = 0) -> None:
        self._require(OptType.BOOL)
        self._store(bool(value), index)

    def set_str(self, value: Optional[str], index: int = 0) -> None:
        self._require(OptType.STR)
        self._store(value, index)

    def set_comment(self, comment: str) -> None:
        if comment is None:
            raise ConfigError(f"missing comment for option '{self.name}'")
        self.comment = comment
        self.flags |= Flag.COMMENTS | Flag.MODIFIED

    def remove_section(self, index: int) -> None:
        self._require(OptType.SEC)
        if not 0 <= index < len(self.values):
            raise ConfigError(f"no section {index} in '{self.name}'")
        del self.values[index]

    def remove_titled_section(self, title: str) -> None:
        if title is None or Flag.TITLE not in self.flags:
            raise ConfigError(f"option '{self.name}' has no titled sections")
        index = self.titled_section_index(title)
        if index is None:
            raise ConfigError(f"no sub-section '{title}' in '{self.name}'")
        self.remove_section(index)


def int_opt(name, default=0, flags=Flag.NONE, parse=None) -> Option:
    return Option(name, OptType.INT, flags, default=default, parse=parse)


def float_opt(name, default=0.0, flags=Flag.NONE, parse=None) -> Option:
    return Option(name, OptType.FLOAT, flags, default=default, parse=parse)


def bool_opt(name, default=False, flags=Flag.NONE, parse=None) -> Option:
    return Option(name, OptType.BOOL, flags, default=default, parse=parse)


def str_opt(name, default=None, flags=Flag.NONE, parse=None) -> Option:
    return Option(name, OptType.STR, flags, default=default, parse=parse)


def _list_opt(name, kind, default, flags, parse) -> Option:
    if default is not None and not isinstance(default, str):
        raise TypeError("a list default is written in configuration syntax, e.g. '{1, 2}'")
    return Option(name, kind, Flag(flags) | Flag.LIST, default_text=default, parse=parse)


def int_list(name, default=None, flags=Flag.NONE, parse=None) -> Option:
    return _list_opt(name, OptType.INT, default, flags, parse)


def float_list(name, default=None, flags=Flag.NONE, parse=None) -> Option:
    return _list_opt(name, OptType.FLOAT, default, flags, parse)


def bool_list(name, default=None, flags=Flag.NONE, parse=None) -> Option:
    return _list_opt(name, OptType.BOOL, default, flags, parse)


def str_list(name, default=None, flags=Flag.NONE, parse=None) -> Option:
    return _list_opt(name, OptType.STR, default, flags, parse)


def sec_opt(name, subopts=None, flags=Flag.NONE) -> Option:
    return Option(name, OptType.SEC, flags, subopts=list(subopts or ()))


def func_opt(name, func) -> Option:
    return Option(name, OptType.FUNC, Flag.NONE, func=func)


def ptr_opt(name, default=None, flags=Flag.NONE, parse=None, free=None) -> Option:
    return Option(name, OptType.PTR, flags, default_text=default, parse=parse, free=free)