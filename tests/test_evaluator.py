"""
Formula Evaluator Tests
=======================
Tests for the tree-walking evaluator: operator table, truthiness,
user functions, built-ins, error propagation and the depth limit.

Usage:
    python -m pytest tests/test_evaluator.py -v
"""
import sys
import os
import math
import unittest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from formula.ast import BuiltInNode, ConstantNode, EMPTY, UnresolvedNode
from formula.environment import Environment
from formula.evaluator import Evaluator
from formula.parser import Parser
from formula.scanner import parse_formula
from formula.values import Bool, ErrorKind, Err, FuncMarker, NoValue, Num, is_truthy


def if_builtin(ctx):
    """If(cond, then, else): evaluates only the chosen branch."""
    cond = ctx.evaluate(0)
    if isinstance(cond, Err):
        return cond
    return ctx.evaluate(1) if is_truthy(cond) else ctx.evaluate(2)


class EvaluatorTestCase(unittest.TestCase):

    def setUp(self):
        self.parser = Parser()

    def calc(self, source: str):
        return self.parser.calculate(source).value

    def assertErrorKind(self, value, kind: ErrorKind):
        self.assertIsInstance(value, Err)
        self.assertEqual(value.kind, kind, str(value))


# ─────────────────────────────────────────────
#  Operators
# ─────────────────────────────────────────────

class TestArithmetic(EvaluatorTestCase):

    def test_basic_operations(self):
        self.assertEqual(self.calc("7 + 3"), Num(10.0))
        self.assertEqual(self.calc("7 - 3"), Num(4.0))
        self.assertEqual(self.calc("7 * 3"), Num(21.0))
        self.assertEqual(self.calc("6 / 3"), Num(2.0))

    def test_sequential_folding(self):
        self.assertEqual(self.calc("1 + 2 * 3"), Num(7.0))
        self.assertEqual(self.calc("2 * 3 + 1"), Num(8.0))
        self.assertEqual(self.calc("10 - 2 - 3"), Num(11.0))

    def test_grouping(self):
        self.assertEqual(self.calc("(1 + 2) * 3"), Num(9.0))
        self.assertEqual(self.calc("[10 - 2] - 3"), Num(5.0))

    def test_division_by_zero_is_ieee(self):
        self.assertEqual(self.calc("1 / 0"), Num(math.inf))
        self.assertEqual(self.calc("(0 - 1) / 0"), Num(-math.inf))
        value = self.calc("0 / 0")
        self.assertIsInstance(value, Num)
        self.assertTrue(math.isnan(value.value))

    def test_arithmetic_on_bool(self):
        self.assertErrorKind(self.calc("true + 1"), ErrorKind.TYPE_MISMATCH)


class TestComparison(EvaluatorTestCase):

    def test_comparisons(self):
        cases = {
            "1 < 2": True, "2 < 1": False,
            "2 <= 2": True, "3 > 2": True,
            "2 >= 3": False, "2 = 2": True, "2 = 3": False,
        }
        for source, expected in cases.items():
            with self.subTest(source=source):
                self.assertEqual(self.calc(source), Bool(expected))

    def test_comparison_on_bool(self):
        self.assertErrorKind(self.calc("1 < true"), ErrorKind.TYPE_MISMATCH)


class TestNot(EvaluatorTestCase):

    def test_negate_bool(self):
        self.assertEqual(self.calc("!true"), Bool(False))
        self.assertEqual(self.calc("^false"), Bool(True))

    def test_negate_number_is_zero_test(self):
        self.assertEqual(self.calc("!0"), Bool(True))
        self.assertEqual(self.calc("!2"), Bool(False))

    def test_negate_function(self):
        self.parser.parse("f(x) { x }")
        self.assertErrorKind(self.calc("!f"), ErrorKind.TYPE_MISMATCH)


class TestLogic(EvaluatorTestCase):

    def test_and_keeps_representation(self):
        self.assertEqual(self.calc("true && 0"), Num(0.0))
        self.assertEqual(self.calc("0 && true"), Num(0.0))
        self.assertEqual(self.calc("2 && 3"), Num(3.0))
        self.assertEqual(self.calc("true && false"), Bool(False))
        self.assertEqual(self.calc("false && 3"), Bool(False))

    def test_or_keeps_representation(self):
        self.assertEqual(self.calc("5 || false"), Num(5.0))
        self.assertEqual(self.calc("false || 3"), Num(3.0))
        self.assertEqual(self.calc("0 || 0"), Num(0.0))
        self.assertEqual(self.calc("true || 0"), Bool(True))

    def test_logic_on_function(self):
        self.parser.parse("f(x) { x }")
        self.assertErrorKind(self.calc("true && f"), ErrorKind.TYPE_MISMATCH)


# ─────────────────────────────────────────────
#  Names & Errors
# ─────────────────────────────────────────────

class TestNames(EvaluatorTestCase):

    def test_unresolved_name(self):
        value = self.calc("X")
        self.assertErrorKind(value, ErrorKind.UNRESOLVED_NAME)
        self.assertIn("X", value.message)

    def test_alias_chain(self):
        self.parser.parse("A := 1")
        self.parser.parse("B := A")
        self.assertEqual(self.calc("B + 1"), Num(2.0))

    def test_left_error_wins(self):
        value = self.calc("X + Y")
        self.assertErrorKind(value, ErrorKind.UNRESOLVED_NAME)
        self.assertIn("X", value.message)

    def test_both_operands_evaluated(self):
        """The right operand still runs when the left one fails."""
        self.parser.register_native_function("Count", lambda ctx: Num(1.0))
        result = self.parser.calculate("X + Count()")
        self.assertErrorKind(result.value, ErrorKind.UNRESOLVED_NAME)
        self.assertEqual([r.name for r in result.trace], ["Count"])

    def test_error_propagates_through_operators(self):
        value = self.calc("1 + (2 * (X - 1))")
        self.assertErrorKind(value, ErrorKind.UNRESOLVED_NAME)

    def test_unresolved_node_is_syntax_error(self):
        value = Evaluator().evaluate(UnresolvedNode(message="bad"), Environment.new_root())
        self.assertErrorKind(value, ErrorKind.MALFORMED_SYNTAX)
        self.assertIn("bad", value.message)

    def test_empty_node_has_no_value(self):
        self.assertEqual(Evaluator().evaluate(EMPTY, Environment.new_root()), NoValue())

    def test_self_reference_hits_depth_limit(self):
        self.parser.parse("A := A + 1")
        self.assertErrorKind(self.calc("A"), ErrorKind.RECURSION_LIMIT_EXCEEDED)


# ─────────────────────────────────────────────
#  User Functions
# ─────────────────────────────────────────────

class TestUserFunctions(EvaluatorTestCase):

    def test_call(self):
        self.parser.parse("add(a, b) { a + b }")
        self.assertEqual(self.calc("add(2, 3)"), Num(5.0))

    def test_definition_alone_is_marker(self):
        self.assertEqual(self.calc("f(x) { x }"), FuncMarker())

    def test_arity_mismatch(self):
        self.parser.parse("add(a, b) { a + b }")
        self.assertErrorKind(self.calc("add(1)"), ErrorKind.ARITY_MISMATCH)
        self.assertErrorKind(self.calc("add(1, 2, 3)"), ErrorKind.ARITY_MISMATCH)

    def test_body_names_rebind_in_sequence(self):
        self.parser.parse("f(x) { y := x * 2; y := y + 1; y * 10 }")
        self.assertEqual(self.calc("f(3)"), Num(70.0))

    def test_result_is_last_expression(self):
        self.parser.parse("f(x) { x + 1; x + 2 }")
        self.assertEqual(self.calc("f(1)"), Num(3.0))

    def test_body_names_stay_local(self):
        self.parser.parse("f(x) { y := x; y }")
        self.calc("f(1)")
        self.assertIsNone(self.parser.env.get("y"))

    def test_body_name_must_be_scalar(self):
        self.parser.parse("g(x) { x }")
        self.parser.parse("h(x) { y := g; y }")
        self.assertErrorKind(self.calc("h(1)"), ErrorKind.MALFORMED_FUNCTION_BODY)

    def test_body_error_fails_fast(self):
        self.parser.parse("f(x) { Q; x }")
        self.assertErrorKind(self.calc("f(1)"), ErrorKind.UNRESOLVED_NAME)

    def test_argument_error_names_callee(self):
        self.parser.parse("f(x) { x }")
        value = self.calc("f(Q)")
        self.assertErrorKind(value, ErrorKind.UNRESOLVED_NAME)
        self.assertIn("f", value.message)
        self.assertIn("Q", value.message)

    def test_arguments_evaluated_in_caller_scope(self):
        self.parser.parse("x := 100")
        self.parser.parse("f(x, y) { x + y }")
        self.assertEqual(self.calc("f(1, x)"), Num(101.0))

    def test_function_passed_by_reference(self):
        self.parser.parse("double(x) { x * 2 }")
        self.parser.parse("apply(fn, v) { fn(v) }")
        self.assertEqual(self.calc("apply(double, 5)"), Num(10.0))

    def test_bool_arguments(self):
        self.parser.parse("neg(b) { !b }")
        self.assertEqual(self.calc("neg(1 > 2)"), Bool(True))

    def test_undefined_function(self):
        result = self.parser.calculate("nope(1)")
        self.assertErrorKind(result.value, ErrorKind.UNDEFINED_FUNCTION)
        self.assertEqual(result.trace, ())

    def test_calling_a_formula(self):
        self.parser.parse("A := 1")
        self.assertErrorKind(self.calc("A(2)"), ErrorKind.UNDEFINED_FUNCTION)

    def test_unbounded_recursion(self):
        self.parser.parse("loop(x) { loop(x) }")
        with self.assertLogs("formula.evaluator", level="WARNING"):
            value = self.calc("loop(1)")
        self.assertErrorKind(value, ErrorKind.RECURSION_LIMIT_EXCEEDED)

    def test_configurable_depth(self):
        parser = Parser(max_depth=3)
        parser.parse("one(x) { x }")
        parser.parse("two(x) { one(x) }")
        parser.parse("three(x) { two(x) }")
        parser.parse("four(x) { three(x) }")
        self.assertEqual(parser.calculate("three(1)").value, Num(1.0))
        self.assertErrorKind(parser.calculate("four(1)").value,
                             ErrorKind.RECURSION_LIMIT_EXCEEDED)


# ─────────────────────────────────────────────
#  Built-ins
# ─────────────────────────────────────────────

class TestBuiltins(EvaluatorTestCase):

    def test_lazy_builtin_enables_recursion(self):
        self.parser.register_native_function("If", if_builtin)
        self.parser.parse("fact(n) { If(n <= 1, 1, n * fact(n - 1)) }")
        self.assertEqual(self.calc("fact(5)"), Num(120.0))

    def test_builtin_sees_caller_scope(self):
        self.parser.register_native_function("HasX", lambda ctx: Bool(ctx.env.get("x") is not None))
        self.parser.parse("f(x) { HasX() }")
        self.assertEqual(self.calc("f(1)"), Bool(True))
        self.assertEqual(self.calc("HasX()"), Bool(False))

    def test_builtin_gets_raw_arguments(self):
        seen = []

        def spy(ctx):
            seen.extend(ctx.args)
            return NoValue()

        self.parser.register_native_function("Spy", spy)
        self.assertEqual(self.calc("Spy(1, Q)"), NoValue())
        self.assertEqual(seen, [ConstantNode(value=1.0), parse_formula("Q")])

    def test_builtin_result_returned_unchanged(self):
        self.parser.register_native_function("Fail", lambda ctx: Err("boom", ErrorKind.TYPE_MISMATCH))
        value = self.calc("Fail()")
        self.assertEqual(value, Err("boom", ErrorKind.TYPE_MISMATCH))

    def test_plain_python_results_coerced(self):
        self.parser.register_native_function("Pi", lambda ctx: 3.5)
        self.parser.register_native_function("Yes", lambda ctx: True)
        self.parser.register_native_function("Nothing", lambda ctx: None)
        self.parser.register_native_function("Text", lambda ctx: "text")
        self.assertEqual(self.calc("Pi()"), Num(3.5))
        self.assertEqual(self.calc("Yes()"), Bool(True))
        self.assertEqual(self.calc("Nothing()"), NoValue())
        self.assertErrorKind(self.calc("Text()"), ErrorKind.TYPE_MISMATCH)

    def test_builtin_passed_by_reference(self):
        self.parser.register_native_function(
            "Twice", lambda ctx: Num(ctx.evaluate(0).value * 2))
        self.parser.parse("apply(fn, v) { fn(v) }")
        self.assertEqual(self.calc("apply(Twice, 4)"), Num(8.0))

    def test_unregistered_builtin_id(self):
        self.parser.env.set("Ghost", BuiltInNode(func_id="Ghost"))
        self.assertErrorKind(self.calc("Ghost()"), ErrorKind.UNDEFINED_FUNCTION)


if __name__ == "__main__":
    unittest.main()
