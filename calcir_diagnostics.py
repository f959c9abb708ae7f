# calcir_diagnostics.py
# Diagnostics shared by the calcir lexer, parser and code generator
# Author: Violet Magenta / VACU Technologies (modified)
# License: MIT
"""
Non-fatal error reporting for calcir.

Stages never raise on bad input: they record a Diagnostic in the shared
DiagnosticSink and hand a None result back to their caller.
"""

from __future__ import annotations
import enum
import logging
import sys
from dataclasses import dataclass
from typing import List, Optional, TextIO

LOG = logging.getLogger("calcir.diagnostics")
LOG.addHandler(logging.NullHandler())


class ErrorKind(enum.Enum):
    LEX = "lex"
    SYNTAX = "syntax"
    CODEGEN = "codegen"

    @property
    def is_lex_error(self) -> bool:
        return self is ErrorKind.LEX

    @property
    def is_syntax_or_codegen_error(self) -> bool:
        return self in (ErrorKind.SYNTAX, ErrorKind.CODEGEN)


@dataclass(frozen=True)
class Diagnostic:
    kind: ErrorKind
    message: str

    def __str__(self) -> str:
        return f"Error: {self.message}"


class DiagnosticSink:
    """Collects diagnostics and echoes them to a stream (stderr by default)."""

    def __init__(self, stream: Optional[TextIO] = None, echo: bool = True):
        self.stream = stream
        self.echo = echo
        self.diagnostics: List[Diagnostic] = []

    def report(self, kind: ErrorKind, message: str) -> None:
        diag = Diagnostic(kind, message)
        self.diagnostics.append(diag)
        LOG.debug("%s error: %s", kind.value, message)
        if self.echo:
            out = self.stream if self.stream is not None else sys.stderr
            out.write(str(diag) + "\n")

    def of_kind(self, kind: ErrorKind) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.kind is kind]

    def messages(self) -> List[str]:
        return [d.message for d in self.diagnostics]

    def clear(self) -> None:
        self.diagnostics.clear()

    def __len__(self) -> int:
        return len(self.diagnostics)
