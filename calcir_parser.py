# calcir_parser.py
# Precedence-climbing parser for calcir arithmetic expressions
# Author: Violet Magenta / VACU Technologies (modified)
# License: MIT
"""
calcir_parser.py

Recursive-descent parser for calcir with operator-precedence (precedence-climbing)
binary expressions.

 - Closed AST: Expr = NumberExpr | BinaryExpr, plus Prototype / FunctionDef wrappers
 - Mutable PrecedenceTable consulted for every binary operator
 - One token of lookahead pulled lazily from a CalcLexer
 - Errors are reported to the shared DiagnosticSink and signalled with None
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Iterator, Optional, Tuple, Union

from calcir_diagnostics import DiagnosticSink, ErrorKind
from calcir_lexer import CalcLexer, Token, TOK_CHAR, TOK_NUMBER

LOG = logging.getLogger("calcir.parser")
LOG.addHandler(logging.NullHandler())

ANON_EXPR_NAME = "__anon_expr"

UNEXPECTED_TOKEN = "unexpected token when expecting an expression"
EXPECTED_RPAREN = "expected ')'"


# -------------------------
# AST
# -------------------------
@dataclass(frozen=True)
class NumberExpr:
    node_type: ClassVar[str] = "Number"
    value: float


@dataclass(frozen=True)
class BinaryExpr:
    node_type: ClassVar[str] = "Binary"
    op: str
    lhs: "Expr"
    rhs: "Expr"


Expr = Union[NumberExpr, BinaryExpr]


@dataclass(frozen=True)
class Prototype:
    name: str
    params: Tuple[str, ...] = ()

    @property
    def is_anonymous(self) -> bool:
        return self.name == ANON_EXPR_NAME


@dataclass(frozen=True)
class FunctionDef:
    proto: Prototype
    body: Expr


def expr_to_dict(expr: Expr) -> Dict[str, Any]:
    if isinstance(expr, NumberExpr):
        return {"node_type": expr.node_type, "value": expr.value}
    return {
        "node_type": expr.node_type,
        "op": expr.op,
        "lhs": expr_to_dict(expr.lhs),
        "rhs": expr_to_dict(expr.rhs),
    }


def format_expr(expr: Expr) -> str:
    """Fully parenthesized rendering, e.g. ((8 - 3) - 2)."""
    if isinstance(expr, NumberExpr):
        return f"{expr.value:g}"
    return f"({format_expr(expr.lhs)} {expr.op} {format_expr(expr.rhs)})"


# -------------------------
# Operator precedence
# -------------------------
DEFAULT_PRECEDENCE: Dict[str, int] = {
    '<': 10, '>': 10, '=': 10,
    '+': 20, '-': 20,
    '*': 40, '/': 40,
}


@dataclass
class PrecedenceTable:
    """Binding strength per operator symbol (higher binds tighter)."""

    entries: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def default(cls) -> "PrecedenceTable":
        return cls(dict(DEFAULT_PRECEDENCE))

    def set(self, op: str, prec: int) -> None:
        if len(op) != 1:
            raise ValueError(f"binary operators are single characters, got {op!r}")
        self.entries[op] = int(prec)

    def remove(self, op: str) -> None:
        self.entries.pop(op, None)

    def get(self, op: str) -> int:
        """Precedence of op, or -1 when op is not a binary operator."""
        if not op.isascii():
            return -1
        prec = self.entries.get(op, 0)
        if prec <= 0:
            return -1
        return prec

    def precedence_of(self, tok: Token) -> int:
        if tok.kind != TOK_CHAR:
            return -1
        return self.get(tok.value)

    def copy(self) -> "PrecedenceTable":
        return PrecedenceTable(dict(self.entries))

    def __contains__(self, op: str) -> bool:
        return self.get(op) > 0

    def __iter__(self) -> Iterator[str]:
        return iter(self.entries)


# -------------------------
# Parser
# -------------------------
class CalcParser:
    def __init__(self, lexer: CalcLexer,
                 precedence: Optional[PrecedenceTable] = None,
                 diagnostics: Optional[DiagnosticSink] = None):
        self.lexer = lexer
        self.precedence = precedence if precedence is not None else PrecedenceTable.default()
        self.diagnostics = diagnostics if diagnostics is not None else lexer.diagnostics
        self.cur_tok: Optional[Token] = None

    def next_token(self) -> Token:
        self.cur_tok = self.lexer.next_token()
        return self.cur_tok

    def _tok_precedence(self) -> int:
        return self.precedence.precedence_of(self.cur_tok)

    def _error(self, msg: str) -> None:
        self.diagnostics.report(ErrorKind.SYNTAX, msg)
        return None

    # numberexpr ::= number
    def parse_number_expr(self) -> NumberExpr:
        result = NumberExpr(self.cur_tok.value)
        self.next_token()
        return result

    # parenexpr ::= '(' expression ')'
    def parse_paren_expr(self) -> Optional[Expr]:
        self.next_token()
        inner = self.parse_expression()
        if inner is None:
            return None
        if not self.cur_tok.is_char(')'):
            return self._error(EXPECTED_RPAREN)
        self.next_token()
        return inner

    def parse_primary(self) -> Optional[Expr]:
        tok = self.cur_tok
        if tok.kind == TOK_NUMBER:
            return self.parse_number_expr()
        if tok.is_char('('):
            return self.parse_paren_expr()
        return self._error(UNEXPECTED_TOKEN)

    def parse_binop_rhs(self, expr_prec: int, lhs: Expr) -> Optional[Expr]:
        while True:
            tok_prec = self._tok_precedence()
            if tok_prec < expr_prec:
                return lhs

            bin_op = self.cur_tok.value
            self.next_token()

            rhs = self.parse_primary()
            if rhs is None:
                return None

            # a tighter operator after rhs takes rhs as its own lhs
            next_prec = self._tok_precedence()
            if tok_prec < next_prec:
                rhs = self.parse_binop_rhs(tok_prec + 1, rhs)
                if rhs is None:
                    return None

            lhs = BinaryExpr(bin_op, lhs, rhs)

    def parse_expression(self) -> Optional[Expr]:
        lhs = self.parse_primary()
        if lhs is None:
            return None
        return self.parse_binop_rhs(0, lhs)

    def parse_top_level_expr(self) -> Optional[FunctionDef]:
        expr = self.parse_expression()
        if expr is None:
            return None
        LOG.debug("parsed top-level expression %s", format_expr(expr))
        return FunctionDef(Prototype(ANON_EXPR_NAME, ()), expr)
