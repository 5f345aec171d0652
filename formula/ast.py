"""
Formula AST
===========
Immutable node types produced by the Scanner and consumed by the Evaluator.

Every node carries a ``node_type`` tag; the evaluator dispatches on it.
Child sequences are tuples so a tree can be shared freely between the
root environment, call traces and invocation scopes.
"""
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar


class Op(Enum):
    """Operator kinds carried by operator nodes."""
    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"
    LT  = "<"
    LE  = "<="
    GT  = ">"
    GE  = ">="
    EQ  = "="
    NOT = "!"
    AND = "&&"
    OR  = "||"


ARITHMETIC_OPS = frozenset({Op.ADD, Op.SUB, Op.MUL, Op.DIV})
COMPARISON_OPS = frozenset({Op.LT, Op.LE, Op.GT, Op.GE, Op.EQ})


# ─────────────────────────────────────────────────────────────
#  AST Node Types
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ASTNode:
    """Base class for all AST nodes."""
    node_type: ClassVar[str] = ""


@dataclass(frozen=True)
class VariantNode(ASTNode):
    """A reference to a bound name: variable, formula or function."""
    name: str = ""
    node_type: ClassVar[str] = "variant"


@dataclass(frozen=True)
class ConstantNode(ASTNode):
    """A numeric literal."""
    value: float = 0.0
    node_type: ClassVar[str] = "constant"


@dataclass(frozen=True)
class BoolNode(ASTNode):
    """A boolean literal: true, false."""
    value: bool = False
    node_type: ClassVar[str] = "bool"


@dataclass(frozen=True)
class OperatorNode(ASTNode):
    """Base for arithmetic, comparison and logical operators."""
    node_type: ClassVar[str] = "operator"


@dataclass(frozen=True)
class BinaryOpNode(OperatorNode):
    """A binary operator: left op right."""
    op: Op = Op.ADD
    left: ASTNode | None = None
    right: ASTNode | None = None


@dataclass(frozen=True)
class NotNode(OperatorNode):
    """Unary negation: ^expr or !expr."""
    operand: ASTNode | None = None
    op: ClassVar[Op] = Op.NOT


@dataclass(frozen=True)
class FunctionCallNode(ASTNode):
    """An invocation: name(arg, arg, ...).

    Arguments are kept unevaluated; user functions evaluate them eagerly,
    built-ins decide for themselves.
    """
    name: str = ""
    args: tuple[ASTNode, ...] = ()
    node_type: ClassVar[str] = "function_call"


@dataclass(frozen=True)
class FunctionNode(ASTNode):
    """A user function definition: name(param, ...) { expr; expr; ... }."""
    name: str = ""
    params: tuple[VariantNode, ...] = ()
    body: tuple[ASTNode, ...] = ()
    node_type: ClassVar[str] = "function"


@dataclass(frozen=True)
class BuiltInNode(ASTNode):
    """Marker bound in the root scope for a host-registered native function."""
    func_id: str = ""
    node_type: ClassVar[str] = "builtin"


@dataclass(frozen=True)
class FormulaNode(ASTNode):
    """A named binding: name := inner."""
    name: str = ""
    inner: ASTNode | None = None
    node_type: ClassVar[str] = "formula"


@dataclass(frozen=True)
class QuoteNode(ASTNode):
    """A parenthesized group: (inner) or [inner]."""
    inner: ASTNode | None = None
    node_type: ClassVar[str] = "quote"


@dataclass(frozen=True)
class UnresolvedNode(ASTNode):
    """A recoverable parse failure captured as data."""
    message: str = ""
    node_type: ClassVar[str] = "unresolved"


@dataclass(frozen=True)
class EmptyNode(ASTNode):
    """No-op placeholder for empty input."""
    node_type: ClassVar[str] = "empty"


EMPTY = EmptyNode()
