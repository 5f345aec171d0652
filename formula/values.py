"""
Formula Values
==============
Evaluation results, error kinds and the call-trace record types.

Errors travel as ``Err`` values so that every operator can evaluate both
operands eagerly and still report the first failure. Hosts that prefer
exceptions call ``unwrap()`` and get a ``FormulaError``.
"""
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any

from .ast import ASTNode


class ErrorKind(Enum):
    """Error taxonomy of the engine."""
    UNRESOLVED_NAME          = auto()   # variable not found in any scope
    UNDEFINED_FUNCTION       = auto()   # call target or built-in id not bound
    ARITY_MISMATCH           = auto()   # user function argument count mismatch
    TYPE_MISMATCH            = auto()   # operator applied to incompatible operands
    MALFORMED_FUNCTION_BODY  = auto()   # named body expression is not a scalar
    MALFORMED_SYNTAX         = auto()   # parse-time structural error
    RECURSION_LIMIT_EXCEEDED = auto()
    PENDING_VALUE            = auto()   # delayed binding read before it is ready


class FormulaError(Exception):
    """Base error raised by the formula engine."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.MALFORMED_SYNTAX):
        super().__init__(message)
        self.message = message
        self.kind = kind


class FormulaSyntaxError(FormulaError):
    """Structural error met while scanning formula text."""

    def __init__(self, message: str):
        super().__init__(message, ErrorKind.MALFORMED_SYNTAX)


# ─────────────────────────────────────────────────────────────
#  Calculate Options
# ─────────────────────────────────────────────────────────────

class CalculateOption:
    """Base class for the result of evaluating a node."""

    def unwrap(self) -> Any:
        """Return the plain Python value or raise FormulaError."""
        return None

    @property
    def is_error(self) -> bool:
        return False


@dataclass(frozen=True)
class Num(CalculateOption):
    value: float

    def unwrap(self) -> float:
        return self.value

    def __repr__(self) -> str:
        return f"Num({self.value!r})"


@dataclass(frozen=True)
class Bool(CalculateOption):
    value: bool

    def unwrap(self) -> bool:
        return self.value

    def __repr__(self) -> str:
        return f"Bool({self.value!r})"


@dataclass(frozen=True)
class Err(CalculateOption):
    message: str
    kind: ErrorKind = ErrorKind.MALFORMED_SYNTAX

    def unwrap(self) -> Any:
        raise FormulaError(self.message, self.kind)

    @property
    def is_error(self) -> bool:
        return True

    def __str__(self) -> str:
        return f"{self.kind.name}: {self.message}"


@dataclass(frozen=True)
class FuncMarker(CalculateOption):
    """Result of evaluating a bare function definition."""


@dataclass(frozen=True)
class NoValue(CalculateOption):
    """The evaluation produced no value."""


def is_truthy(value: CalculateOption) -> bool:
    """Truthiness used by && and ||: Bool(true) or a nonzero Num."""
    if isinstance(value, Bool):
        return value.value
    if isinstance(value, Num):
        return value.value != 0.0
    return False


def to_option(value: Any) -> CalculateOption:
    """Coerce a native function's return value into a CalculateOption."""
    if isinstance(value, CalculateOption):
        return value
    if value is None:
        return NoValue()
    # bool first: bool is an int subclass
    if isinstance(value, bool):
        return Bool(value)
    if isinstance(value, (int, float)):
        return Num(float(value))
    return Err(
        f"native function returned unsupported value {value!r}",
        ErrorKind.TYPE_MISMATCH,
    )


# ─────────────────────────────────────────────────────────────
#  Call Trace
# ─────────────────────────────────────────────────────────────

class CallKind(Enum):
    FUNCTION_CALL = "FunctionCall"
    BUILT_IN      = "BuiltIn"


@dataclass(frozen=True)
class InvocationRecord:
    """One entry of the call trace: what was called, with which raw args."""
    kind: CallKind
    name: str
    args: tuple[ASTNode, ...] = ()


@dataclass(frozen=True)
class CalculateResult:
    """Outcome of one top-level calculate call."""
    value: CalculateOption
    trace: tuple[InvocationRecord, ...] = ()

    def unwrap(self) -> Any:
        return self.value.unwrap()

    @property
    def ok(self) -> bool:
        return not self.value.is_error
