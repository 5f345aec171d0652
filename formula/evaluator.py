"""
Formula Evaluator
=================
Tree-walking interpreter over the AST produced by the Scanner.

Extensions:
  - Errors are Err values; every operator evaluates both operands before
    reporting the first failure
  - User functions bind eagerly evaluated arguments in a fresh scope
  - Built-ins receive raw arguments and the caller's environment
  - Call depth is bounded by max_depth
"""
import logging
import math
from typing import Callable

from .ast import (
    ARITHMETIC_OPS, ASTNode, BinaryOpNode, BoolNode, BuiltInNode, COMPARISON_OPS,
    ConstantNode, FormulaNode, FunctionCallNode, FunctionNode, NotNode, Op,
    OperatorNode, QuoteNode, UnresolvedNode, VariantNode,
)
from .environment import Environment
from .values import (
    Bool, CalculateOption, CallKind, Err, ErrorKind, FuncMarker, NoValue, Num,
    is_truthy, to_option,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 64

ARITHMETIC: dict[Op, Callable[[float, float], float]] = {
    Op.ADD: lambda l, r: l + r,
    Op.SUB: lambda l, r: l - r,
    Op.MUL: lambda l, r: l * r,
    Op.DIV: lambda l, r: _divide(l, r),
}

COMPARISON: dict[Op, Callable[[float, float], bool]] = {
    Op.LT: lambda l, r: l < r,
    Op.LE: lambda l, r: l <= r,
    Op.GT: lambda l, r: l > r,
    Op.GE: lambda l, r: l >= r,
    Op.EQ: lambda l, r: l == r,
}


def _divide(left: float, right: float) -> float:
    """IEEE division: x/0 is ±inf, 0/0 is nan."""
    try:
        return left / right
    except ZeroDivisionError:
        if left == 0.0 or math.isnan(left):
            return math.nan
        return math.copysign(math.inf, left) * math.copysign(1.0, right)


class CallContext:
    """What a native function sees: raw arguments and the caller's scope.

    Usage inside a native function:
        def add(ctx):
            left, right = ctx.evaluate(0), ctx.evaluate(1)
            ...
    """

    def __init__(self, args: tuple[ASTNode, ...], env: Environment, evaluator: "Evaluator"):
        self.args = args
        self.env = env
        self.evaluator = evaluator

    def evaluate(self, arg: int | ASTNode) -> CalculateOption:
        """Evaluate a raw argument (by index or node) under the caller's scope."""
        node = self.args[arg] if isinstance(arg, int) else arg
        return self.evaluator.evaluate(node, self.env)

    def __len__(self) -> int:
        return len(self.args)


class Evaluator:
    """
    Tree-walking evaluator.

    Usage:
        evaluator = Evaluator()
        value = evaluator.evaluate(node, Environment.extend(root))
    """

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH):
        self.max_depth = max_depth
        self.depth = 0

    def evaluate(self, node: ASTNode, env: Environment) -> CalculateOption:
        """Evaluate a node against env."""
        method = f"_eval_{node.node_type}"
        evaluator = getattr(self, method, None)
        if evaluator is None:
            return Err(f"cannot evaluate {type(node).__name__}, malformed formula?",
                       ErrorKind.MALFORMED_SYNTAX)
        return evaluator(node, env)

    def _enter(self, what: str) -> Err | None:
        if self.depth >= self.max_depth:
            logger.warning("Depth limit %d exceeded at %s", self.max_depth, what)
            return Err(f"call depth exceeded {self.max_depth} while evaluating {what}",
                       ErrorKind.RECURSION_LIMIT_EXCEEDED)
        self.depth += 1
        return None

    # ─────────────────────────────────────────────────────────
    #  Literals & Names
    # ─────────────────────────────────────────────────────────

    def _eval_constant(self, node: ConstantNode, env: Environment) -> CalculateOption:
        return Num(node.value)

    def _eval_bool(self, node: BoolNode, env: Environment) -> CalculateOption:
        return Bool(node.value)

    def _eval_variant(self, node: VariantNode, env: Environment) -> CalculateOption:
        binding = env.lookup(node.name)
        if binding is None:
            return Err(f"unresolved name {node.name}", ErrorKind.UNRESOLVED_NAME)
        if binding.pending:
            return Err(f"value of {node.name} is not ready yet", ErrorKind.PENDING_VALUE)

        if isinstance(binding.node, (ConstantNode, BoolNode)):
            value = self.evaluate(binding.node, env)
        else:
            failed = self._enter(node.name)
            if failed is not None:
                return failed
            try:
                value = self.evaluate(binding.node, env)
            finally:
                self.depth -= 1
        if not value.is_error:
            env.set_value(node.name, value)
        return value

    def _eval_formula(self, node: FormulaNode, env: Environment) -> CalculateOption:
        return self.evaluate(node.inner, env)

    def _eval_quote(self, node: QuoteNode, env: Environment) -> CalculateOption:
        return self.evaluate(node.inner, env)

    def _eval_function(self, node: FunctionNode, env: Environment) -> CalculateOption:
        return FuncMarker()

    def _eval_empty(self, node: ASTNode, env: Environment) -> CalculateOption:
        return NoValue()

    def _eval_unresolved(self, node: UnresolvedNode, env: Environment) -> CalculateOption:
        return Err(f"syntax error: {node.message}", ErrorKind.MALFORMED_SYNTAX)

    def _eval_builtin(self, node: BuiltInNode, env: Environment) -> CalculateOption:
        # A built-in passed by reference
        return FuncMarker()

    # ─────────────────────────────────────────────────────────
    #  Operators
    # ─────────────────────────────────────────────────────────

    def _eval_operator(self, node: OperatorNode, env: Environment) -> CalculateOption:
        if isinstance(node, NotNode):
            return self._eval_not(node, env)

        left = self.evaluate(node.left, env)
        right = self.evaluate(node.right, env)
        if isinstance(left, Err):
            return left
        if isinstance(right, Err):
            return right

        if node.op in ARITHMETIC_OPS or node.op in COMPARISON_OPS:
            if not (isinstance(left, Num) and isinstance(right, Num)):
                return Err(
                    f"operator {node.op.value!r} needs two numbers, got "
                    f"{type(left).__name__} and {type(right).__name__}",
                    ErrorKind.TYPE_MISMATCH,
                )
            if node.op in ARITHMETIC_OPS:
                return Num(ARITHMETIC[node.op](left.value, right.value))
            return Bool(COMPARISON[node.op](left.value, right.value))

        return self._eval_logic(node, left, right)

    def _eval_not(self, node: NotNode, env: Environment) -> CalculateOption:
        value = self.evaluate(node.operand, env)
        match value:
            case Err():
                return value
            case Bool(value=b):
                return Bool(not b)
            case Num(value=n):
                return Bool(n == 0.0)
            case _:
                return Err(f"cannot negate {type(value).__name__}", ErrorKind.TYPE_MISMATCH)

    def _eval_logic(self, node: BinaryOpNode, left: CalculateOption,
                    right: CalculateOption) -> CalculateOption:
        """&& and || keep each operand's own representation."""
        for operand in (left, right):
            if not isinstance(operand, (Num, Bool)):
                return Err(
                    f"operator {node.op.value!r} needs numbers or booleans, "
                    f"got {type(operand).__name__}",
                    ErrorKind.TYPE_MISMATCH,
                )
        if node.op == Op.AND:
            return right if is_truthy(left) else left
        return left if is_truthy(left) else right

    # ─────────────────────────────────────────────────────────
    #  Function Calls
    # ─────────────────────────────────────────────────────────

    def _eval_function_call(self, node: FunctionCallNode, env: Environment) -> CalculateOption:
        """Execute name(args...) against a user function or a built-in."""
        binding = env.lookup(node.name)
        if binding is None:
            return Err(f"undefined function {node.name}", ErrorKind.UNDEFINED_FUNCTION)
        if binding.pending:
            return Err(f"function {node.name} is not ready yet", ErrorKind.PENDING_VALUE)
        target = binding.node

        call_env = Environment.extend_sharing_trace(env)
        kind = CallKind.BUILT_IN if isinstance(target, BuiltInNode) else CallKind.FUNCTION_CALL
        call_env.record_invocation(kind, node.name, node.args)
        logger.debug("Calling %s %s with %d argument(s)", kind.value, node.name, len(node.args))

        if not isinstance(target, (FunctionNode, BuiltInNode)):
            return Err(f"{node.name} is bound to a {type(target).__name__}, not a function",
                       ErrorKind.UNDEFINED_FUNCTION)

        failed = self._enter(node.name)
        if failed is not None:
            return failed
        try:
            if isinstance(target, FunctionNode):
                return self._call_function(node, target, env, call_env)
            return self._call_builtin(node, target, env)
        finally:
            self.depth -= 1

    def _call_function(self, call: FunctionCallNode, func: FunctionNode,
                       env: Environment, call_env: Environment) -> CalculateOption:
        if len(call.args) != len(func.params):
            return Err(
                f"function {call.name} takes {len(func.params)} argument(s), "
                f"got {len(call.args)}",
                ErrorKind.ARITY_MISMATCH,
            )

        # Evaluate every argument before binding any parameter
        bound_args = []
        for param, arg in zip(func.params, call.args):
            value = self.evaluate(arg, env)
            match value:
                case Num(value=n):
                    bound = ConstantNode(value=n)
                case Bool(value=b):
                    bound = BoolNode(value=b)
                case FuncMarker() if isinstance(arg, VariantNode):
                    # Function passed by reference
                    bound = call_env.get(arg.name)
                case FuncMarker():
                    return Err(
                        f"argument {param.name} of {call.name} is an unnamed function",
                        ErrorKind.TYPE_MISMATCH,
                    )
                case Err():
                    return Err(
                        f"error evaluating arguments of {call.name}: {value.message}",
                        value.kind,
                    )
                case _:
                    return Err(
                        f"error evaluating arguments of {call.name}: "
                        f"argument {param.name} produced no value",
                        ErrorKind.TYPE_MISMATCH,
                    )
            bound_args.append((param.name, bound))
        for name, bound in bound_args:
            call_env.set(name, bound)

        result: CalculateOption = NoValue()
        for expr in func.body:
            result = self.evaluate(expr, call_env)
            if isinstance(expr, FormulaNode):
                match result:
                    case Num(value=n):
                        call_env.set(expr.name, ConstantNode(value=n))
                    case Bool(value=b):
                        call_env.set(expr.name, BoolNode(value=b))
                    case _:
                        return Err(
                            f"{expr.name} in the body of {call.name} must be a "
                            f"number or boolean, got {result}",
                            ErrorKind.MALFORMED_FUNCTION_BODY,
                        )
            elif isinstance(result, Err):
                return result
        return result

    def _call_builtin(self, call: FunctionCallNode, target: BuiltInNode,
                      env: Environment) -> CalculateOption:
        fn = env.lookup_builtin(target.func_id)
        if fn is None:
            return Err(f"built-in {target.func_id} is not registered",
                       ErrorKind.UNDEFINED_FUNCTION)
        return to_option(fn(CallContext(call.args, env, self)))
