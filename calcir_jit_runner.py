# calcir_jit_runner.py
# JIT evaluation of compiled calcir expressions
# Author: Violet Magenta / VACU Technologies (modified)
# License: MIT
"""
Runs a compiled zero-argument calcir function through llvmlite's MCJIT and
returns its double result.

evaluate() follows the runner convention of returning (ok, value_or_reason)
instead of raising, so a failed evaluation never stops an interactive session.
"""

from __future__ import annotations
import ctypes
import logging
from typing import Any, Tuple

from llvmlite import ir, binding

from calcir_llvm_ir_codegen import initialize_llvm

LOG = logging.getLogger("calcir.jit")
LOG.addHandler(logging.NullHandler())


class CalcRunner:
    def __init__(self, verbose: bool = False):
        self.verbose = bool(verbose)
        self._target_machine = None
        if self.verbose:
            LOG.setLevel(logging.DEBUG)

    def _get_target_machine(self):
        if self._target_machine is None:
            initialize_llvm()
            target = binding.Target.from_default_triple()
            self._target_machine = target.create_target_machine()
            LOG.debug("Created target machine (%s)", target.triple)
        return self._target_machine

    def _create_execution_engine(self, llvm_ir: str):
        tm = self._get_target_machine()
        backing = binding.parse_assembly("")
        engine = binding.create_mcjit_compiler(backing, tm)
        mod = binding.parse_assembly(llvm_ir)
        mod.verify()
        engine.add_module(mod)
        engine.finalize_object()
        engine.run_static_constructors()
        return engine

    def evaluate(self, func: ir.Function) -> Tuple[bool, Any]:
        """JIT the module holding func and call it. Returns (ok, value or reason)."""
        if func.ftype.args:
            return False, f"function {func.name} takes arguments"
        if func.is_declaration:
            return False, f"function {func.name} has no body"
        return self.call_double(str(func.module), func.name)

    def call_double(self, llvm_ir: str, func_name: str) -> Tuple[bool, Any]:
        try:
            engine = self._create_execution_engine(llvm_ir)
        except RuntimeError as e:
            LOG.debug("JIT compile failed: %s", e)
            return False, f"failed to compile module: {e}"

        ptr = engine.get_function_address(func_name)
        if not ptr:
            return False, f"function {func_name} not found"
        cfunc = ctypes.CFUNCTYPE(ctypes.c_double)(ptr)
        result = float(cfunc())
        LOG.debug("%s() -> %r", func_name, result)
        return True, result
