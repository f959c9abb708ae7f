import unittest

from llvmlite import ir

from calcir_diagnostics import DiagnosticSink, ErrorKind
from calcir_lexer import CalcLexer
from calcir_parser import (
    ANON_EXPR_NAME, BinaryExpr, CalcParser, FunctionDef, NumberExpr, PrecedenceTable, Prototype,
)
from calcir_llvm_ir_codegen import (
    INVALID_BINARY_OPERATOR, CalcLLVMCodegen, CodegenConfig, CompilerContext,
)


class CodegenTestCase(unittest.TestCase):
    def setUp(self):
        self.sink = DiagnosticSink(echo=False)
        self.codegen = CalcLLVMCodegen(diagnostics=self.sink)

    def compile(self, code, precedence=None):
        parser = CalcParser(CalcLexer(code, self.sink), precedence)
        parser.next_token()
        fn_ast = parser.parse_top_level_expr()
        self.assertIsNotNone(fn_ast)
        return self.codegen.codegen_function(fn_ast)

    def instructions(self, func):
        self.assertEqual(len(func.blocks), 1)
        self.assertEqual(func.blocks[0].name, "entry")
        return list(func.blocks[0].instructions)


class ExpressionCodegenTest(CodegenTestCase):
    def test_number_is_double_constant(self):
        value = self.codegen.codegen_expr(NumberExpr(2.5))
        self.assertIsInstance(value, ir.Constant)
        self.assertEqual(value.type, ir.DoubleType())
        self.assertEqual(value.constant, 2.5)

    def test_precedence_shapes_instructions(self):
        func = self.compile("2 + 25 * 2 - 8")
        mul, add, sub, ret = self.instructions(func)
        self.assertEqual([i.opname for i in (mul, add, sub, ret)], ["fmul", "fadd", "fsub", "ret"])
        self.assertIs(add.operands[1], mul)
        self.assertIs(sub.operands[0], add)
        self.assertIs(ret.operands[0], sub)

    def test_left_associative_subtraction(self):
        func = self.compile("8 - 3 - 2")
        first, second, _ = self.instructions(func)
        self.assertEqual(first.opname, "fsub")
        self.assertIs(second.operands[0], first)

    def test_parenthesized_group(self):
        func = self.compile("(1 + 2) * 3")
        add, mul, _ = self.instructions(func)
        self.assertEqual(add.opname, "fadd")
        self.assertEqual(mul.opname, "fmul")
        self.assertIs(mul.operands[0], add)

    def test_division_and_names(self):
        text = str(self.compile("6 / 3 + 1 * 2 - 1"))
        for name in ("divtmp", "multmp", "addtmp", "subtmp"):
            self.assertIn(name, text)

    def test_comparison_is_widened_to_double(self):
        func = self.compile("3 < 5")
        cmp, conv, ret = self.instructions(func)
        self.assertEqual(cmp.opname, "fcmp")
        self.assertEqual(cmp.type, ir.IntType(1))
        self.assertEqual(conv.opname, "uitofp")
        self.assertEqual(conv.type, ir.DoubleType())
        self.assertIs(ret.operands[0], conv)
        self.assertIn("fcmp ult", str(func))

    def test_greater_and_equal_predicates(self):
        self.assertIn("fcmp ugt", str(self.compile("3 > 5")))
        self.assertIn("fcmp ueq", str(self.compile("3 = 5")))

    def test_invalid_operator_fails_without_leftovers(self):
        table = PrecedenceTable.default()
        table.set('%', 40)
        func = self.compile("4 % 2", table)
        self.assertIsNone(func)
        self.assertEqual(self.sink.messages(), [INVALID_BINARY_OPERATOR])
        self.assertEqual(self.sink.diagnostics[0].kind, ErrorKind.CODEGEN)
        self.assertEqual(self.codegen.functions(), [])

    def test_failure_in_child_propagates(self):
        expr = BinaryExpr('+', NumberExpr(1.0), BinaryExpr('^', NumberExpr(2.0), NumberExpr(3.0)))
        self.assertIsNone(self.codegen.codegen_expr(expr))
        self.assertEqual(self.sink.messages(), [INVALID_BINARY_OPERATOR])


class FunctionCodegenTest(CodegenTestCase):
    def test_anonymous_function_signature(self):
        func = self.compile("1 + 2")
        self.assertEqual(func.name, ANON_EXPR_NAME)
        self.assertEqual(func.ftype.return_type, ir.DoubleType())
        self.assertEqual(len(func.ftype.args), 0)
        self.assertIn(func, self.codegen.functions())
        self.assertIn("define double", self.codegen.function_ir(func))

    def test_repeated_anonymous_expressions_are_fresh_definitions(self):
        first = self.compile("1")
        first_name = first.name
        self.codegen.erase_function(first)
        second = self.compile("2")
        self.assertIsNotNone(second)
        self.assertNotEqual(second.name, first_name)
        self.assertTrue(second.name.startswith(ANON_EXPR_NAME))
        third = self.compile("3")
        self.assertNotEqual(third.name, second.name)
        self.assertEqual(len(self.codegen.functions()), 2)

    def test_erase_function_empties_module(self):
        func = self.compile("1 + 1")
        self.codegen.erase_function(func)
        self.assertEqual(self.codegen.functions(), [])
        self.assertNotIn("define", self.codegen.module_ir())

    def test_existing_declaration_is_reused(self):
        decl = self.codegen.codegen_prototype(Prototype(ANON_EXPR_NAME, ()))
        self.assertTrue(decl.is_declaration)
        func = self.codegen.codegen_function(FunctionDef(Prototype(ANON_EXPR_NAME, ()), NumberExpr(7.0)))
        self.assertIs(func, decl)
        self.assertFalse(func.is_declaration)

    def test_prototype_names_parameters(self):
        func = self.codegen.codegen_prototype(Prototype("scale", ("x", "factor")))
        self.assertEqual([a.name for a in func.args], ["x", "factor"])
        self.assertEqual(func.ftype.args, (ir.DoubleType(), ir.DoubleType()))

    def test_named_prototype_cannot_be_redefined(self):
        self.codegen.codegen_prototype(Prototype("scale", ("x",)))
        self.assertIsNone(self.codegen.codegen_prototype(Prototype("scale", ("x",))))
        self.assertEqual(self.sink.diagnostics[-1].kind, ErrorKind.CODEGEN)

    def test_symbol_table_holds_one_function(self):
        ctx = self.codegen.context
        func = self.codegen.codegen_function(FunctionDef(Prototype("withparam", ("a",)), NumberExpr(1.0)))
        self.assertEqual(list(ctx.named_values), ["a"])
        self.assertIs(ctx.named_values["a"], func.args[0])
        self.compile("2")
        self.assertEqual(ctx.named_values, {})

    def test_failed_body_erases_function(self):
        fn_def = FunctionDef(Prototype(ANON_EXPR_NAME, ()), BinaryExpr('?', NumberExpr(1.0), NumberExpr(2.0)))
        self.assertIsNone(self.codegen.codegen_function(fn_def))
        self.assertEqual(self.codegen.functions(), [])

    def test_module_header(self):
        text = self.codegen.module_ir()
        self.assertIn('ModuleID = "jit"', text)


class ContextTest(unittest.TestCase):
    def test_contexts_are_independent(self):
        one = CalcLLVMCodegen(diagnostics=DiagnosticSink(echo=False))
        two = CalcLLVMCodegen(diagnostics=DiagnosticSink(echo=False))
        one.codegen_function(FunctionDef(Prototype(ANON_EXPR_NAME, ()), NumberExpr(1.0)))
        self.assertEqual(len(one.functions()), 1)
        self.assertEqual(two.functions(), [])

    def test_module_name_from_config(self):
        ctx = CompilerContext.create(CodegenConfig(module_name="calc", set_host_triple=False))
        self.assertEqual(ctx.module.name, "calc")

    def test_verification_can_be_disabled(self):
        codegen = CalcLLVMCodegen(config=CodegenConfig(verify=False), diagnostics=DiagnosticSink(echo=False))
        func = codegen.codegen_function(FunctionDef(Prototype(ANON_EXPR_NAME, ()), NumberExpr(1.0)))
        self.assertIsNotNone(func)


if __name__ == "__main__":
    unittest.main()
