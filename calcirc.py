# calcirc.py
# calcir interactive compiler driver
# Author: Violet Magenta / VACU Technologies (modified)
# License: MIT
"""
Reads arithmetic expressions, compiles each one into an anonymous LLVM IR
function and prints the IR.

Per top-level unit:
 - end of input stops the loop
 - ';' and lexer errors are skipped
 - anything else is parsed and compiled; the function IR goes to stderr and the
   function is then erased from the module
 - a failed unit is abandoned and one token is discarded to resynchronize
After the loop the (normally empty) module is written to stdout.
"""

from __future__ import annotations
import argparse
import json
import logging
import sys
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, TextIO

from calcir_diagnostics import Diagnostic, DiagnosticSink
from calcir_lexer import CalcLexer, LexerConfig, LexerState
from calcir_parser import CalcParser, PrecedenceTable, expr_to_dict, format_expr
from calcir_llvm_ir_codegen import CalcLLVMCodegen, CodegenConfig, CompilerContext
from calcir_jit_runner import CalcRunner

LOG = logging.getLogger("calcir.driver")


@dataclass
class SessionConfig:
    prompt: str = "ready> "
    show_prompt: bool = True
    evaluate: bool = False
    emit: str = "llvm"          # "llvm" or "ast"
    verbose: bool = False
    lexer: LexerConfig = field(default_factory=LexerConfig)
    codegen: CodegenConfig = field(default_factory=CodegenConfig)
    precedence: Optional[PrecedenceTable] = None


class Session:
    def __init__(self, config: Optional[SessionConfig] = None,
                 in_stream: Optional[TextIO] = None,
                 ir_stream: Optional[TextIO] = None,
                 out_stream: Optional[TextIO] = None):
        self.config = config or SessionConfig()
        self.in_stream = in_stream if in_stream is not None else sys.stdin
        self.ir_stream = ir_stream if ir_stream is not None else sys.stderr
        self.out_stream = out_stream if out_stream is not None else sys.stdout

        self.sink = DiagnosticSink(self.ir_stream)
        self.lexer = CalcLexer(LexerState(self.in_stream), self.sink, self.config.lexer)
        precedence = self.config.precedence if self.config.precedence is not None else PrecedenceTable.default()
        self.parser = CalcParser(self.lexer, precedence, self.sink)
        self.context = CompilerContext.create(self.config.codegen)
        self.codegen = CalcLLVMCodegen(self.context, self.config.codegen, self.sink)
        self.runner = CalcRunner(verbose=self.config.verbose) if self.config.evaluate else None

        self.functions_emitted = 0
        self.last_ir: Optional[str] = None
        self.results: List[float] = []

    @property
    def diagnostics(self) -> List[Diagnostic]:
        return self.sink.diagnostics

    def _prompt(self) -> None:
        if self.config.show_prompt:
            self.ir_stream.write(self.config.prompt)
            self.ir_stream.flush()

    def handle_top_level_expression(self) -> bool:
        fn_ast = self.parser.parse_top_level_expr()
        if fn_ast is None:
            self.parser.next_token()
            return False

        if self.config.emit == "ast":
            self.ir_stream.write(f"Parsed AST: {format_expr(fn_ast.body)}\n")
            self.ir_stream.write(json.dumps(expr_to_dict(fn_ast.body)) + "\n")

        fn_ir = self.codegen.codegen_function(fn_ast)
        if fn_ir is None:
            self.parser.next_token()
            return False

        self.last_ir = self.codegen.function_ir(fn_ir)
        self.functions_emitted += 1
        self.ir_stream.write("Generated IR and result:\n")
        self.ir_stream.write(self.last_ir)
        self.ir_stream.write("\n")

        if self.runner is not None:
            ok, value = self.runner.evaluate(fn_ir)
            if ok:
                self.results.append(value)
                self.ir_stream.write(f"Evaluated to {value:f}\n")
            else:
                LOG.warning("evaluation of %s failed: %s", fn_ir.name, value)

        # anonymous expressions never accumulate in the module
        self.codegen.erase_function(fn_ir)
        return True

    def main_loop(self) -> None:
        while True:
            self._prompt()
            tok = self.parser.cur_tok
            if tok.is_eof:
                return
            if tok.is_error or tok.is_char(';'):
                self.parser.next_token()
                continue
            self.handle_top_level_expression()

    def run(self) -> int:
        self._prompt()
        self.parser.next_token()
        self.main_loop()
        if self.config.show_prompt:
            self.ir_stream.write("\n")
        self.out_stream.write(self.codegen.module_ir())
        self.out_stream.flush()
        LOG.debug("session finished: %d functions, %d errors", self.functions_emitted, len(self.sink))
        return 0


# -------------------------------------------------------------------------
# CLI entrypoint
# -------------------------------------------------------------------------
def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="calcir: compile arithmetic expressions to LLVM IR")
    parser.add_argument("file", nargs="?", default=None, help="Read expressions from this file instead of stdin")
    parser.add_argument("--emit", type=str, choices=["llvm", "ast"], default="llvm",
                        help="Also print the parsed AST of each expression when set to 'ast'")
    parser.add_argument("--eval", action="store_true", help="JIT compile and evaluate each expression")
    parser.add_argument("--no-prompt", action="store_true", help="Do not print the 'ready>' prompt")
    parser.add_argument("--no-verify", action="store_true", help="Skip LLVM verification of generated functions")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(asctime)s [%(levelname)s] %(message)s")
    if args.verbose:
        LOG.debug("Verbose mode enabled")

    config = SessionConfig(
        show_prompt=not args.no_prompt,
        evaluate=args.eval,
        emit=args.emit,
        verbose=args.verbose,
        codegen=CodegenConfig(verify=not args.no_verify),
    )

    # undecodable bytes become lone surrogates and lex as ordinary characters
    if args.file is None:
        if hasattr(sys.stdin, "reconfigure"):
            sys.stdin.reconfigure(errors="surrogateescape")
        return Session(config).run()

    try:
        fh = open(args.file, "r", encoding="utf-8", errors="surrogateescape")
    except OSError as e:
        LOG.error("cannot open %s: %s", args.file, e)
        return 2
    with fh:
        return Session(config, in_stream=fh).run()


def console_main() -> None:
    try:
        sys.exit(main())
    except Exception:
        LOG.exception("Fatal error in calcirc")
        sys.exit(3)


if __name__ == "__main__":
    console_main()
