# Formula: embeddable formula scripting engine
"""
Formula: named formulas, user functions and host built-ins evaluated
against a lexically scoped environment.
"""
import logging

from .ast import (
    Op, ASTNode, VariantNode, ConstantNode, BoolNode, OperatorNode,
    BinaryOpNode, NotNode, FunctionCallNode, FunctionNode, BuiltInNode,
    FormulaNode, QuoteNode, UnresolvedNode, EmptyNode, EMPTY,
)
from .values import (
    CalculateOption, Num, Bool, Err, FuncMarker, NoValue,
    ErrorKind, FormulaError, FormulaSyntaxError,
    CallKind, InvocationRecord, CalculateResult,
)
from .scanner import Scanner, parse_formula
from .environment import Environment, Binding, Delay, DEFAULT_HISTORY_LIMIT
from .evaluator import Evaluator, CallContext, DEFAULT_MAX_DEPTH
from .parser import Parser

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.4.0"
__all__ = [
    "Op", "ASTNode", "VariantNode", "ConstantNode", "BoolNode", "OperatorNode",
    "BinaryOpNode", "NotNode", "FunctionCallNode", "FunctionNode", "BuiltInNode",
    "FormulaNode", "QuoteNode", "UnresolvedNode", "EmptyNode", "EMPTY",
    "CalculateOption", "Num", "Bool", "Err", "FuncMarker", "NoValue",
    "ErrorKind", "FormulaError", "FormulaSyntaxError",
    "CallKind", "InvocationRecord", "CalculateResult",
    "Scanner", "parse_formula",
    "Environment", "Binding", "Delay", "DEFAULT_HISTORY_LIMIT",
    "Evaluator", "CallContext", "DEFAULT_MAX_DEPTH",
    "Parser",
]
