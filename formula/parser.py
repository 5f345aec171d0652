"""
Formula Parser
==============
The embedding interface: scan text, keep named formulas and functions in
a root environment, and calculate expressions against it.

Usage:
    parser = Parser()
    parser.parse("A := 1; B := 2")
    parser.calculate("A + B").value      # Num(3.0)
"""
import logging
import time
from typing import Callable

from .ast import ASTNode, EMPTY, FormulaNode, FunctionNode, UnresolvedNode
from .environment import DEFAULT_HISTORY_LIMIT, Environment, NativeFunction
from .evaluator import DEFAULT_MAX_DEPTH, Evaluator
from .scanner import Scanner
from .values import CalculateResult, Err, ErrorKind

logger = logging.getLogger(__name__)


class Parser:
    """
    Owns the root environment for a sequence of parse/calculate calls.

    Not safe for concurrent use: parse mutates the root scope in place.
    """

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH,
                 clock: Callable[[], float] = time.monotonic,
                 history_limit: int | None = DEFAULT_HISTORY_LIMIT):
        self.env = Environment.new_root(clock=clock, history_limit=history_limit)
        self.max_depth = max_depth

    def register_native_function(self, name: str, fn: NativeFunction):
        """Expose a Python callable ``fn(ctx) -> CalculateOption`` as name."""
        self.env.register_builtin(name, fn)

    def parse(self, text: str, delay: float | None = None) -> ASTNode:
        """Scan text and register every named statement in the root scope.

        Returns the last statement, or the first UnresolvedNode met.
        With delay set, registered bindings stay pending for that many seconds.
        """
        node: ASTNode = EMPTY
        try:
            for node in Scanner(text).statements():
                if isinstance(node, (FunctionNode, FormulaNode)):
                    self.env.set(node.name, node, delay=delay)
                    logger.debug("Registered %s %s", node.node_type, node.name)
                elif isinstance(node, UnresolvedNode):
                    break
        except RecursionError:
            return UnresolvedNode(message="formula nests too deeply to scan")
        return node

    def calculate(self, text: str) -> CalculateResult:
        """Parse text, then evaluate its last statement in a fresh call scope."""
        node = self.parse(text)
        env = Environment.extend(self.env)
        try:
            value = Evaluator(max_depth=self.max_depth).evaluate(node, env)
        except RecursionError:
            value = Err("formula nests too deeply to evaluate",
                        ErrorKind.RECURSION_LIMIT_EXCEEDED)
        if value.is_error:
            logger.debug("Calculation of %r failed: %s", text, value)
        return CalculateResult(value=value, trace=env.read_trace())
