"""State machine that reads a token stream into a configuration tree.

The configuration object handed to :func:`parse_section` is expected to offer:

* ``flags`` and ``opts`` (its list of :class:`~cfgtree.options.Option`),
* ``path``, ``line``, ``errfunc`` and ``lexer`` attributes,
* ``setopt(opt, text)``, which stores a value parsed from text and returns it;
  for a section option it returns the new section, and it raises
  :class:`~cfgtree.options.ConfigError` or ``ValueError`` on bad input,
* ``error(message)``, which reports a warning without stopping.
"""

from __future__ import annotations

import enum
from typing import Any, Callable, Optional

from .lexer import Lexer, Token, TokenKind
from .options import ConfigError, Flag, Option, OptType, ParseError, str_opt


class _State(enum.IntEnum):
    OPTION = 0
    ASSIGN = 1
    VALUE = 2
    LIST_START = 3
    LIST_NEXT = 4
    SECTION_BRACE = 5
    SECTION_TITLE = 6
    FUNC_PAREN = 7
    FUNC_ARG = 8
    FUNC_NEXT = 9
    SKIP = 10
    SKIP_TITLE = 11
    SKIP_SECTION = 12
    SKIP_UNTIL = 13
    SKIP_VALUE = 14
    SKIP_NEXT = 15


def _has(flags: int, flag: Flag) -> bool:
    return int(flags) & int(flag) == int(flag)


def _find_option(cfg: Any, name: str) -> Optional[Option]:
    nocase = _has(cfg.flags, Flag.NOCASE)
    wanted = name.lower() if nocase else name
    for opt in cfg.opts:
        have = opt.name.lower() if nocase else opt.name
        if have == wanted:
            return opt
    return None


class _SectionParser:
    def __init__(self, cfg: Any, lexer: Lexer, level: int,
                 force_state: Optional[int], force_opt: Optional[Option]) -> None:
        self.cfg = cfg
        self.lexer = lexer
        self.level = level
        if force_state is None or force_state == -1:
            self.force_state: Optional[_State] = None
        else:
            self.force_state = _State(force_state)
        self.state = self.force_state if self.force_state is not None else _State.OPTION
        self.opt = force_opt
        self.comment: Optional[str] = None
        self.title: Optional[str] = None
        self.ignore: Optional[TokenKind] = None
        self.num_values = 0
        self.args: list[str] = []
        self.token: Optional[Token] = None
        self.handlers: dict[_State, Callable[[Token], bool]] = {
            _State.OPTION: self._option,
            _State.ASSIGN: self._assign,
            _State.VALUE: self._value,
            _State.LIST_START: self._list_start,
            _State.LIST_NEXT: self._list_next,
            _State.SECTION_BRACE: self._section_brace,
            _State.SECTION_TITLE: self._section_title,
            _State.FUNC_PAREN: self._func_paren,
            _State.FUNC_ARG: self._func_arg,
            _State.FUNC_NEXT: self._func_next,
            _State.SKIP: self._skip,
            _State.SKIP_TITLE: self._skip_title,
            _State.SKIP_SECTION: self._skip_section,
            _State.SKIP_UNTIL: self._skip_until,
            _State.SKIP_VALUE: self._skip_value,
            _State.SKIP_NEXT: self._skip_next,
        }

    def run(self) -> None:
        self.cfg.lexer = self.lexer
        while True:
            token = self.lexer.next_token()
            self.token = token
            self.cfg.line = token.line
            if token.kind is TokenKind.EOF:
                if self.state is not _State.OPTION:
                    raise self._error("premature end of file")
                self._check_deprecated()
                return
            if token.kind is TokenKind.COMMENT and self.state is not _State.OPTION:
                continue
            if self.handlers[self.state](token):
                return

    # helpers

    def _error(self, message: str) -> ParseError:
        token = self.token
        if token is None:
            return ParseError(message, self.lexer.filename, self.lexer.line)
        return ParseError(message, token.filename, token.line)

    def _call(self, fallback: str, func: Callable, *args: Any) -> Any:
        try:
            return func(*args)
        except ParseError:
            raise
        except (ConfigError, ValueError) as exc:
            raise self._error(str(exc) or fallback) from exc

    def _setopt(self, text: Optional[str]) -> Any:
        name = self.opt.name if self.opt is not None else ""
        return self._call(f"invalid value for option '{name}'", self.cfg.setopt, self.opt, text)

    def _validate(self) -> None:
        opt = self.opt
        if opt is None or opt.validate is None:
            return
        self._call(f"validation failed for option '{opt.name}'", opt.validate, self.cfg, opt)

    def _check_deprecated(self) -> None:
        opt = self.opt
        if opt is None or not _has(opt.flags, Flag.DEPRECATED):
            return
        if _has(opt.flags, Flag.DROP):
            self.cfg.error(f"dropping deprecated configuration option '{opt.name}'")
            opt.clear()
        else:
            self.cfg.error(f"found deprecated option '{opt.name}', please update configuration file.")

    def _unexpected(self, token: Token) -> ParseError:
        return self._error(f"unexpected token '{token.text}'")

    def _opt_name(self) -> str:
        return self.opt.name if self.opt is not None else ""

    def _call_function(self) -> None:
        args, self.args = self.args, []
        opt = self.opt
        if opt is None or opt.func is None:
            raise self._error(f"no function registered for '{self._opt_name()}'")
        self._call(f"call of function '{opt.name}' failed", opt.func, self.cfg, opt, args)

    # states

    def _option(self, token: Token) -> bool:
        self._check_deprecated()
        kind = token.kind
        if kind is TokenKind.RBRACE:
            if self.level == 0:
                raise self._error("unexpected closing brace")
            return True
        if kind is TokenKind.COMMENT:
            if _has(self.cfg.flags, Flag.COMMENTS):
                self.comment = token.text
            return False
        if kind is not TokenKind.STRING:
            raise self._unexpected(token)

        self.opt = _find_option(self.cfg, token.text)
        if self.opt is None:
            if _has(self.cfg.flags, Flag.IGNORE_UNKNOWN):
                self.state = _State.SKIP
                return False
            if _has(self.cfg.flags, Flag.KEYSTRVAL):
                self.opt = str_opt(token.text)
                self.cfg.opts.append(self.opt)
                self.state = _State.ASSIGN
                return False
            raise self._error(f"no such option '{token.text}'")

        if self.opt.type is OptType.SEC:
            titled = _has(self.opt.flags, Flag.TITLE)
            self.state = _State.SECTION_TITLE if titled else _State.SECTION_BRACE
        elif self.opt.type is OptType.FUNC:
            self.state = _State.FUNC_PAREN
        else:
            self.state = _State.ASSIGN
        return False

    def _assign(self, token: Token) -> bool:
        opt = self.opt
        if opt is None:
            raise self._error("missing option before assignment")
        if token.kind is TokenKind.PLUS:
            if not _has(opt.flags, Flag.LIST):
                raise self._error(f"attempt to append to non-list option '{opt.name}'")
            opt.flags &= ~Flag.RESET
        elif token.kind is TokenKind.EQUALS:
            opt.flags |= Flag.RESET
        else:
            raise self._error(f"missing equal sign after option '{opt.name}'")
        opt.flags |= Flag.MODIFIED
        if _has(opt.flags, Flag.LIST):
            self.state = _State.LIST_START
            self.num_values = 0
        else:
            self.state = _State.VALUE
        return False

    def _value(self, token: Token) -> bool:
        opt = self.opt
        is_list = opt is not None and _has(opt.flags, Flag.LIST)
        if token.kind is TokenKind.RBRACE and is_list:
            self.state = _State.OPTION
            if self.num_values == 0 and _has(opt.flags, Flag.RESET):
                opt.clear()
            return False
        if token.kind is not TokenKind.STRING:
            raise self._unexpected(token)
        self._setopt(token.text)
        self._validate()
        if self.comment is not None:
            opt.set_comment(self.comment)
        self.comment = None
        if is_list:
            self.num_values += 1
            self.state = _State.LIST_NEXT
        else:
            self.state = _State.OPTION
        return False

    def _list_start(self, token: Token) -> bool:
        if token.kind is TokenKind.LBRACE:
            self.state = _State.VALUE
            return False
        if token.kind is not TokenKind.STRING:
            raise self._unexpected(token)
        self._setopt(token.text)
        self._validate()
        self.num_values += 1
        self.state = _State.OPTION
        return False

    def _list_next(self, token: Token) -> bool:
        if token.kind is TokenKind.COMMA:
            self.state = _State.VALUE
        elif token.kind is TokenKind.RBRACE:
            self.state = _State.OPTION
            self._validate()
        else:
            raise self._unexpected(token)
        return False

    def _section_brace(self, token: Token) -> bool:
        if token.kind is not TokenKind.LBRACE:
            raise self._error(f"missing opening brace for section '{self._opt_name()}'")
        section = self._setopt(self.title)
        self.title = None
        section.path = self.cfg.path
        section.line = token.line
        section.errfunc = self.cfg.errfunc
        parse_section(section, self.lexer, self.level + 1)
        self.cfg.lexer = self.lexer
        self.cfg.line = section.line
        self._validate()
        self.state = _State.OPTION
        return False

    def _section_title(self, token: Token) -> bool:
        if token.kind is not TokenKind.STRING:
            raise self._error(f"missing title for section '{self._opt_name()}'")
        self.title = token.text
        self.state = _State.SECTION_BRACE
        return False

    def _func_paren(self, token: Token) -> bool:
        if token.kind is not TokenKind.LPAREN:
            raise self._error(f"missing parenthesis for function '{self._opt_name()}'")
        self.state = _State.FUNC_ARG
        return False

    def _func_arg(self, token: Token) -> bool:
        if token.kind is TokenKind.RPAREN:
            self._call_function()
            self.state = _State.OPTION
        elif token.kind is TokenKind.STRING:
            self.args.append(token.text)
            self.state = _State.FUNC_NEXT
        else:
            raise self._error(f"syntax error in call of function '{self._opt_name()}'")
        return False

    def _func_next(self, token: Token) -> bool:
        if token.kind is TokenKind.RPAREN:
            self._call_function()
            self.state = _State.OPTION
        elif token.kind is TokenKind.COMMA:
            self.state = _State.FUNC_ARG
        else:
            raise self._error(f"syntax error in call of function '{self._opt_name()}'")
        return False

    def _skip(self, token: Token) -> bool:
        self.comment = None
        kind = token.kind
        if kind in (TokenKind.PLUS, TokenKind.EQUALS):
            self.ignore = None
            self.state = _State.SKIP_VALUE
        elif kind is TokenKind.LPAREN:
            self.ignore = TokenKind.RPAREN
            self.state = _State.SKIP_UNTIL
        elif kind is TokenKind.LBRACE:
            self.state = _State.SKIP_SECTION
        elif kind is TokenKind.STRING:
            self.state = _State.SKIP_TITLE
        elif kind is TokenKind.RBRACE and self.force_state is _State.SKIP:
            return True
        return False

    def _skip_title(self, token: Token) -> bool:
        if token.kind is not TokenKind.LBRACE:
            raise self._unexpected(token)
        self.state = _State.SKIP_SECTION
        return False

    def _skip_section(self, token: Token) -> bool:
        parse_section(self.cfg, self.lexer, self.level + 1, _State.SKIP)
        self.ignore = TokenKind.RBRACE
        self.state = _State.SKIP_UNTIL
        return False

    def _skip_until(self, token: Token) -> bool:
        if token.kind is not self.ignore:
            return False
        if self.force_state is _State.SKIP:
            return True
        self.ignore = None
        self.state = _State.OPTION
        return False

    def _skip_value(self, token: Token) -> bool:
        if token.kind is TokenKind.LBRACE:
            self.ignore = TokenKind.RBRACE
            self.state = _State.SKIP_UNTIL
            return False
        if token.kind is not TokenKind.STRING:
            raise self._unexpected(token)
        self.ignore = None
        self.state = _State.SKIP_NEXT if self.force_state is _State.SKIP else _State.OPTION
        return False

    def _skip_next(self, token: Token) -> bool:
        self.state = _State.SKIP
        return False


def parse_section(cfg: Any, lexer: Lexer, level: int = 0,
                  force_state: Optional[int] = None,
                  force_opt: Optional[Option] = None) -> None:
    """Read options from the lexer into cfg until its section ends.

    ``level`` is the nesting depth; a closing brace ends a nested section and is
    an error at level 0. ``force_state`` starts in a given state instead of
    expecting an option name: 2 reads one value, 3 reads a list value or a
    braced list, 10 skips an unknown entry. ``force_opt`` is the option the
    forced state fills. Raises :class:`ParseError` on any error.
    """
    _SectionParser(cfg, lexer, level, force_state, force_opt).run()