# calcir_lexer.py
# Streaming lexer for calcir arithmetic expressions
# Author: Violet Magenta / VACU Technologies (modified)
# License: MIT
"""
Character-at-a-time lexer for calcir.

Tokens:
 - EOF     end of input (stable: repeated calls keep returning it)
 - ERROR   an identifier-like run, which the grammar does not allow
 - NUMBER  a decimal literal, value is a float
 - CHAR    any other single character, value is the character itself

The lexer never looks ahead more than one character and never rewinds, so it
can sit directly on an interactive stdin.
"""

from __future__ import annotations
import io
import logging
import re
from dataclasses import dataclass
from typing import Iterator, Optional, TextIO, Union

from calcir_diagnostics import DiagnosticSink, ErrorKind

LOG = logging.getLogger("calcir.lexer")
LOG.addHandler(logging.NullHandler())

TOK_EOF = "EOF"
TOK_ERROR = "ERROR"
TOK_NUMBER = "NUMBER"
TOK_CHAR = "CHAR"

IDENTIFIER_ERROR = "Only numeric literals and operators are permitted."

# longest decimal prefix accepted by a strtod-style conversion
_FLOAT_PREFIX = re.compile(r'\d+\.?\d*|\.\d+')

# C isspace set; other Unicode spaces are ordinary characters
_WHITESPACE = frozenset(" \t\n\r\v\f")


@dataclass(frozen=True)
class Token:
    kind: str
    value: Union[str, float, None] = None

    @property
    def is_eof(self) -> bool:
        return self.kind == TOK_EOF

    @property
    def is_error(self) -> bool:
        return self.kind == TOK_ERROR

    def is_char(self, ch: str) -> bool:
        return self.kind == TOK_CHAR and self.value == ch

    def __str__(self) -> str:
        if self.kind == TOK_NUMBER:
            return f"number {self.value!r}"
        if self.kind == TOK_CHAR:
            return repr(self.value)
        return self.kind


EOF_TOKEN = Token(TOK_EOF)
ERROR_TOKEN = Token(TOK_ERROR)


def parse_lenient_float(text: str) -> float:
    """Convert the longest valid decimal prefix of text; 0.0 when there is none."""
    mo = _FLOAT_PREFIX.match(text)
    if mo is None:
        return 0.0
    return float(mo.group())


@dataclass
class LexerConfig:
    discard_line_on_error: bool = True   # drop the rest of a line (up to ';') holding an identifier


class LexerState:
    """Forward-only character cursor with one character of lookahead."""

    def __init__(self, stream: Union[TextIO, str]):
        if isinstance(stream, str):
            stream = io.StringIO(stream)
        self.stream = stream
        # '' marks end of input; start on a blank so the first call reads
        self.last_char: str = " "

    def advance(self) -> str:
        self.last_char = self.stream.read(1)
        return self.last_char

    @property
    def at_eof(self) -> bool:
        return self.last_char == ""

    def skip_line(self) -> None:
        """Skip to the end of the line or the next ';', which is left as lookahead."""
        while not self.at_eof and self.last_char not in ("\n", ";"):
            self.advance()


class CalcLexer:
    def __init__(self, state: Union[LexerState, TextIO, str],
                 diagnostics: Optional[DiagnosticSink] = None,
                 config: Optional[LexerConfig] = None):
        self.state = state if isinstance(state, LexerState) else LexerState(state)
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticSink()
        self.config = config or LexerConfig()

    def next_token(self) -> Token:
        tok = self._scan()
        LOG.debug("token %s", tok)
        return tok

    def iter_tokens(self) -> Iterator[Token]:
        """Yield tokens up to and including the first EOF."""
        while True:
            tok = self.next_token()
            yield tok
            if tok.is_eof:
                return

    def _scan(self) -> Token:
        st = self.state
        while st.last_char in _WHITESPACE:
            st.advance()

        if _is_letter(st.last_char):
            self.diagnostics.report(ErrorKind.LEX, IDENTIFIER_ERROR)
            while _is_alnum(st.advance()):
                pass
            if self.config.discard_line_on_error:
                st.skip_line()
            return ERROR_TOKEN

        if _is_digit(st.last_char) or st.last_char == ".":
            num_str = ""
            while _is_digit(st.last_char) or st.last_char == ".":
                num_str += st.last_char
                st.advance()
            return Token(TOK_NUMBER, parse_lenient_float(num_str))

        if st.at_eof:
            return EOF_TOKEN

        this_char = st.last_char
        st.advance()
        return Token(TOK_CHAR, this_char)


def _is_letter(ch: str) -> bool:
    return ch.isascii() and ch.isalpha()


def _is_alnum(ch: str) -> bool:
    return ch.isascii() and ch.isalnum()


def _is_digit(ch: str) -> bool:
    return ch.isascii() and ch.isdigit()
