# calcir_llvm_ir_codegen.py
# calcir AST -> LLVM IR code generator
# Author: Violet Magenta / VACU Technologies (modified)
# License: MIT
"""
LLVM IR generator for calcir expressions, built on llvmlite.

 - Every value is a double; comparisons produce i1 and are widened back to 0.0/1.0
 - All state (module, builder, symbol table) lives in an explicit CompilerContext
 - Failed functions are erased from the module before codegen returns
 - Finished functions are checked with the LLVM verifier via llvmlite.binding
Requirements:
 - llvmlite installed
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from llvmlite import ir, binding

from calcir_diagnostics import DiagnosticSink, ErrorKind
from calcir_parser import BinaryExpr, Expr, FunctionDef, NumberExpr, Prototype

LOG = logging.getLogger("calcir.codegen")
LOG.addHandler(logging.NullHandler())

DOUBLE = ir.DoubleType()

INVALID_BINARY_OPERATOR = "invalid binary operator"


def initialize_llvm() -> None:
    try:
        binding.initialize()
    except RuntimeError:
        # newer llvmlite initializes the core itself and rejects the explicit call
        LOG.debug("llvmlite core initialization is automatic")
    binding.initialize_native_target()
    binding.initialize_native_asmprinter()


initialize_llvm()


@dataclass
class CodegenConfig:
    module_name: str = "jit"
    verify: bool = True
    set_host_triple: bool = True


@dataclass
class CompilerContext:
    module: ir.Module
    builder: ir.IRBuilder = field(default_factory=ir.IRBuilder)
    # parameter name -> IR value, only for the function being compiled
    named_values: Dict[str, ir.Value] = field(default_factory=dict)

    @classmethod
    def create(cls, config: Optional[CodegenConfig] = None) -> "CompilerContext":
        config = config or CodegenConfig()
        module = ir.Module(name=config.module_name)
        if config.set_host_triple:
            module.triple = binding.get_default_triple()
        return cls(module)


class CalcLLVMCodegen:
    # op -> (IRBuilder method, result name)
    _ARITH_OPS = {
        '+': ('fadd', 'addtmp'),
        '-': ('fsub', 'subtmp'),
        '*': ('fmul', 'multmp'),
        '/': ('fdiv', 'divtmp'),
    }
    # op -> unordered fcmp predicate (ult / ugt / ueq)
    _COMPARE_OPS = {
        '<': '<',
        '>': '>',
        '=': '==',
    }

    def __init__(self, context: Optional[CompilerContext] = None,
                 config: Optional[CodegenConfig] = None,
                 diagnostics: Optional[DiagnosticSink] = None):
        self.config = config or CodegenConfig()
        self.context = context or CompilerContext.create(self.config)
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticSink()

    @property
    def module(self) -> ir.Module:
        return self.context.module

    def _error(self, msg: str) -> None:
        self.diagnostics.report(ErrorKind.CODEGEN, msg)
        return None

    # -------------------------
    # Expressions
    # -------------------------
    def codegen_expr(self, expr: Expr) -> Optional[ir.Value]:
        if isinstance(expr, NumberExpr):
            return ir.Constant(DOUBLE, expr.value)
        if isinstance(expr, BinaryExpr):
            return self._codegen_binary(expr)
        return self._error(f"unknown expression node {expr!r}")

    def _codegen_binary(self, expr: BinaryExpr) -> Optional[ir.Value]:
        lhs = self.codegen_expr(expr.lhs)
        rhs = self.codegen_expr(expr.rhs)
        if lhs is None or rhs is None:
            return None

        builder = self.context.builder
        if expr.op in self._ARITH_OPS:
            method, name = self._ARITH_OPS[expr.op]
            return getattr(builder, method)(lhs, rhs, name=name)
        if expr.op in self._COMPARE_OPS:
            cmp = builder.fcmp_unordered(self._COMPARE_OPS[expr.op], lhs, rhs, name="cmptmp")
            return builder.uitofp(cmp, DOUBLE, name="booltmp")
        return self._error(INVALID_BINARY_OPERATOR)

    # -------------------------
    # Functions
    # -------------------------
    def codegen_prototype(self, proto: Prototype) -> Optional[ir.Function]:
        module = self.context.module
        name = proto.name
        if proto.is_anonymous:
            # every top-level unit gets its own definition: __anon_expr, __anon_expr.1, ...
            name = module.get_unique_name(name)
        elif module.scope.is_used(name):
            return self._error(f"function {name!r} cannot be redefined")

        fnty = ir.FunctionType(DOUBLE, [DOUBLE] * len(proto.params))
        func = ir.Function(module, fnty, name=name)
        for arg, param in zip(func.args, proto.params):
            arg.name = param
        LOG.debug("declared function %s(%s)", func.name, ", ".join(proto.params))
        return func

    def _lookup_declaration(self, name: str) -> Optional[ir.Function]:
        existing = self.context.module.globals.get(name)
        if isinstance(existing, ir.Function) and existing.is_declaration:
            return existing
        return None

    def codegen_function(self, fn_def: FunctionDef) -> Optional[ir.Function]:
        ctx = self.context
        func = self._lookup_declaration(fn_def.proto.name)
        if func is None:
            func = self.codegen_prototype(fn_def.proto)
        if func is None:
            return None

        entry = func.append_basic_block("entry")
        ctx.builder.position_at_end(entry)

        ctx.named_values.clear()
        for arg in func.args:
            ctx.named_values[arg.name] = arg

        ret_val = self.codegen_expr(fn_def.body)
        if ret_val is not None:
            ctx.builder.ret(ret_val)
            if self._verify(func):
                return func

        self.erase_function(func)
        return None

    def erase_function(self, func: ir.Function) -> None:
        globals_ = self.context.module.globals
        if globals_.get(func.name) is func:
            del globals_[func.name]
            LOG.debug("erased function %s", func.name)

    # -------------------------
    # Verification & output
    # -------------------------
    def _verify(self, func: ir.Function) -> bool:
        if not self.config.verify:
            return True
        try:
            llvm_mod = binding.parse_assembly(str(self.context.module))
            llvm_mod.verify()
        except RuntimeError as e:
            LOG.debug("verification of %s failed: %s", func.name, e)
            self._error(f"generated IR for {func.name} failed verification: {e}")
            return False
        LOG.debug("verified function %s", func.name)
        return True

    def function_ir(self, func: ir.Function) -> str:
        return str(func)

    def module_ir(self) -> str:
        return str(self.context.module)

    def functions(self):
        return list(self.context.module.functions)
