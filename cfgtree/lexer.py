"""Tokenizer for the configuration language."""

from __future__ import annotations

import enum
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

from .options import ParseError


class TokenKind(enum.Enum):
    """Kinds of token; punctuation kinds carry their text as value."""

    STRING = "string"
    COMMENT = "comment"
    LBRACE = "{"
    RBRACE = "}"
    LPAREN = "("
    RPAREN = ")"
    COMMA = ","
    EQUALS = "="
    PLUS = "+="
    EOF = "end of file"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    line: int
    filename: Optional[str] = None


_PUNCTUATION = {
    "{": TokenKind.LBRACE,
    "}": TokenKind.RBRACE,
    "(": TokenKind.LPAREN,
    ")": TokenKind.RPAREN,
    ",": TokenKind.COMMA,
    "=": TokenKind.EQUALS,
}

_BARE_STOP = frozenset(" \t\r\n\f\v\"'{}(),=#")

_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "e": "\x1b",
}

_OCTAL = re.compile(r"[0-7]{1,3}")
_HEX = re.compile(r"x([0-9A-Fa-f]{1,2})")


@dataclass
class _Source:
    text: str
    filename: Optional[str]
    pos: int = 0
    line: int = 1


class Lexer:
    """Reads tokens from a stack of texts; included files go on top."""

    def __init__(self, text: Optional[str] = None, filename: Optional[str] = "[buf]",
                 keep_comments: bool = False) -> None:
        self.keep_comments = keep_comments
        self._sources: list[_Source] = []
        self._last_line = 1
        self._last_filename = filename
        if text is not None:
            self.push_text(text, filename)

    @property
    def line(self) -> int:
        return self._sources[-1].line if self._sources else self._last_line

    @property
    def filename(self) -> Optional[str]:
        return self._sources[-1].filename if self._sources else self._last_filename

    def push_text(self, text: str, filename: Optional[str] = "[buf]") -> None:
        """Read this text next, before what remains of the current one."""
        self._sources.append(_Source(text, filename))

    def push_file(self, path) -> None:
        """Read the file next, before what remains of the current text."""
        path = os.fspath(path)
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            raise ParseError(f"cannot include file '{path}': {exc.strerror}",
                             self.filename, self.line) from exc
        self.push_text(text, path)

    def next_token(self) -> Token:
        """The next token, or an EOF token once every text is used up."""
        while self._sources:
            source = self._sources[-1]
            token = self._scan(source)
            if token is not None:
                return token
            self._last_line = source.line
            self._last_filename = source.filename
            self._sources.pop()
        return Token(TokenKind.EOF, "", self._last_line, self._last_filename)

    def __iter__(self) -> Iterator[Token]:
        while True:
            token = self.next_token()
            if token.kind is TokenKind.EOF:
                return
            yield token

    def _error(self, source: _Source, message: str, line: int) -> ParseError:
        return ParseError(message, source.filename, line)

    def _scan(self, source: _Source) -> Optional[Token]:
        text = source.text
        while source.pos < len(text):
            ch = text[source.pos]
            if ch == "\n":
                source.line += 1
                source.pos += 1
                continue
            if ch.isspace():
                source.pos += 1
                continue
            if ch == "#" or text.startswith("//", source.pos):
                start = source.pos + (1 if ch == "#" else 2)
                end = text.find("\n", start)
                if end == -1:
                    end = len(text)
                source.pos = end
                if self.keep_comments:
                    return Token(TokenKind.COMMENT, text[start:end].strip(),
                                 source.line, source.filename)
                continue
            if text.startswith("/*", source.pos):
                line = source.line
                end = text.find("*/", source.pos + 2)
                if end == -1:
                    raise self._error(source, "unterminated comment", line)
                body = text[source.pos + 2:end]
                source.line += body.count("\n")
                source.pos = end + 2
                if self.keep_comments:
                    return Token(TokenKind.COMMENT, body.strip(), line, source.filename)
                continue
            if ch in _PUNCTUATION:
                source.pos += 1
                return Token(_PUNCTUATION[ch], ch, source.line, source.filename)
            if text.startswith("+=", source.pos):
                source.pos += 2
                return Token(TokenKind.PLUS, "+=", source.line, source.filename)
            if ch == '"':
                return self._scan_double(source)
            if ch == "'":
                return self._scan_single(source)
            return self._scan_bare(source)
        return None

    def _expand(self, source: _Source, pos: int, line: int) -> tuple[str, int]:
        end = source.text.find("}", pos + 2)
        if end == -1:
            raise self._error(source, "unterminated environment variable", line)
        body = source.text[pos + 2:end]
        name, sep, fallback = body.partition(":-")
        if sep:
            return os.environ.get(name) or fallback, end + 1
        return os.environ.get(name, ""), end + 1

    def _scan_bare(self, source: _Source) -> Token:
        text = source.text
        line = source.line
        parts: list[str] = []
        while source.pos < len(text):
            ch = text[source.pos]
            if text.startswith("${", source.pos):
                value, source.pos = self._expand(source, source.pos, line)
                parts.append(value)
                continue
            if ch in _BARE_STOP or text.startswith("+=", source.pos):
                break
            parts.append(ch)
            source.pos += 1
        return Token(TokenKind.STRING, "".join(parts), line, source.filename)

    def _scan_double(self, source: _Source) -> Token:
        text = source.text
        line = source.line
        pos = source.pos + 1
        parts: list[str] = []
        while True:
            if pos >= len(text):
                raise self._error(source, "unterminated string", line)
            ch = text[pos]
            if ch == '"':
                source.pos = pos + 1
                return Token(TokenKind.STRING, "".join(parts), line, source.filename)
            if ch == "\\":
                if pos + 1 >= len(text):
                    raise self._error(source, "unterminated string", line)
                match = _OCTAL.match(text, pos + 1)
                if match:
                    parts.append(chr(int(match.group(), 8)))
                    pos = match.end()
                    continue
                match = _HEX.match(text, pos + 1)
                if match:
                    parts.append(chr(int(match.group(1), 16)))
                    pos = match.end()
                    continue
                escaped = text[pos + 1]
                if escaped == "\n":
                    source.line += 1
                parts.append(_ESCAPES.get(escaped, escaped))
                pos += 2
                continue
            if text.startswith("${", pos):
                value, pos = self._expand(source, pos, line)
                parts.append(value)
                continue
            if ch == "\n":
                source.line += 1
            parts.append(ch)
            pos += 1

    def _scan_single(self, source: _Source) -> Token:
        text = source.text
        line = source.line
        pos = source.pos + 1
        parts: list[str] = []
        while True:
            if pos >= len(text):
                raise self._error(source, "unterminated string", line)
            ch = text[pos]
            if ch == "'":
                source.pos = pos + 1
                return Token(TokenKind.STRING, "".join(parts), line, source.filename)
            if ch == "\\" and pos + 1 < len(text) and text[pos + 1] in "'\\":
                parts.append(text[pos + 1])
                pos += 2
                continue
            if ch == "\n":
                source.line += 1
            parts.append(ch)
            pos += 1


def tokenize(text: str) -> list[Token]:
    """All tokens of the text, comments dropped, without the EOF token."""
    return list(Lexer(text))