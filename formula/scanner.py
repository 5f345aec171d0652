"""
Formula Scanner
===============
Character-level recursive-descent parser that turns formula text into
an AST.

Grammar notes:
  - Operators fold sequentially: an operator takes the node accumulated
    so far as its left operand and parses everything that remains as its
    right operand. There is no precedence table, so ``2 * 3 + 1`` is
    ``Mul(2, Add(3, 1))``.
  - Call arguments and function bodies are cut out of the text first
    (respecting bracket nesting) and each piece is scanned on its own.
  - ``;`` ends the current statement at every nesting level.
  - Malformed forms raise FormulaSyntaxError internally; the statement
    loop turns them into UnresolvedNode values.
"""
import logging
from typing import Iterator

from .ast import (
    ASTNode, BinaryOpNode, BoolNode, ConstantNode, EMPTY, FormulaNode,
    FunctionCallNode, FunctionNode, NotNode, Op, QuoteNode, UnresolvedNode,
    VariantNode,
)
from .values import FormulaSyntaxError

logger = logging.getLogger(__name__)

WHITESPACE = (" ", "\t", "\r", "\n")
DIGITS = "0123456789"
OPEN_BRACES = ("(", "[", "{")
CLOSE_BRACES = (")", "]", "}")

MATH_OPS = {
    "+": Op.ADD,
    "-": Op.SUB,
    "*": Op.MUL,
    "/": Op.DIV,
}

KEYWORDS = {
    "true": True,
    "false": False,
}


class Scanner:
    """
    Scans formula text statement by statement.

    Usage:
        scanner = Scanner("A := 1; A + 2")
        statements = list(scanner.statements())
    """

    def __init__(self, source: str):
        self.source = source
        self.pos = 0

    def _current(self) -> str | None:
        if self.pos >= len(self.source):
            return None
        return self.source[self.pos]

    def _advance(self) -> str:
        ch = self.source[self.pos]
        self.pos += 1
        return ch

    def _skip_whitespace(self):
        while self.pos < len(self.source) and self.source[self.pos] in WHITESPACE:
            self.pos += 1

    # ─────────────────────────────────────────────────────────
    #  Statements
    # ─────────────────────────────────────────────────────────

    def statements(self) -> Iterator[ASTNode]:
        """Yield one node per ;-separated statement.

        Scanning stops after the first UnresolvedNode.
        """
        while True:
            self._skip_whitespace()
            ch = self._current()
            if ch is None:
                return
            if ch == ";":
                self._advance()
                continue
            try:
                node = self.scan_node()
            except FormulaSyntaxError as e:
                logger.debug("Unresolved statement in %r: %s", self.source, e.message)
                yield UnresolvedNode(message=e.message)
                return
            yield node

    def scan_node(self, limit: bool = False) -> ASTNode:
        """Scan one node.

        With limit set, return as soon as a single node has been produced;
        otherwise keep folding tokens until the statement ends.
        """
        node: ASTNode | None = None
        while True:
            self._skip_whitespace()
            ch = self._current()
            if ch is None or ch == ";":
                break

            if node is not None and _starts_operand(ch):
                raise FormulaSyntaxError(
                    f"unexpected operand {ch!r} at position {self.pos}, missing operator?"
                )

            if ch == ":":
                return self._scan_naming(node)
            elif ch in ("^", "!"):
                self._advance()
                node = NotNode(operand=self.scan_node(limit=True))
            elif ch in ("(", "["):
                node = self._scan_group()
            elif ch.isalpha() or ch == "_":
                node = self._scan_identifier()
            elif ch in DIGITS or ch == ".":
                node = self._scan_number()
            elif ch in MATH_OPS:
                node = self._scan_math(node)
            elif ch in ("<", ">", "="):
                node = self._scan_compare(node)
            elif ch == "&":
                node = self._scan_logic(node, "&", Op.AND)
            elif ch == "|":
                node = self._scan_logic(node, "|", Op.OR)
            else:
                raise FormulaSyntaxError(f"unexpected symbol {ch!r} at position {self.pos}")

            if limit and node is not None:
                return node

        return node if node is not None else EMPTY

    # ─────────────────────────────────────────────────────────
    #  Operands
    # ─────────────────────────────────────────────────────────

    def _scan_identifier(self) -> ASTNode:
        """Scan a name, then a call head and an optional definition body."""
        start = self.pos
        while self.pos < len(self.source):
            ch = self.source[self.pos]
            if ch.isalnum() or ch in ("_", " "):
                self.pos += 1
            else:
                break
        name = self.source[start:self.pos].strip()

        self._skip_whitespace()
        if self._current() != "(":
            if self._current() == "{":
                raise FormulaSyntaxError(f"function body for {name} is missing its parameter list")
            if name in KEYWORDS:
                return BoolNode(value=KEYWORDS[name])
            return VariantNode(name=name)

        args = split_top_level(self._read_enclosed(), ",", keep_empty=True)
        self._skip_whitespace()
        if self._current() != "{":
            return FunctionCallNode(name=name, args=tuple(parse_formula(a) for a in args))

        params = []
        for arg in args:
            param = parse_formula(arg)
            if not isinstance(param, VariantNode):
                raise FormulaSyntaxError(f"parameters of function {name} must be plain names")
            params.append(param)
        body = split_top_level(self._read_enclosed(), ";")
        return FunctionNode(
            name=name,
            params=tuple(params),
            body=tuple(parse_formula(expr) for expr in body),
        )

    def _scan_number(self) -> ConstantNode:
        start = self.pos
        while self.pos < len(self.source) and (
                self.source[self.pos] in DIGITS or self.source[self.pos] == "."):
            self.pos += 1
        text = self.source[start:self.pos]
        if text.endswith("."):
            text = text[:-1]
        if not text or text.count(".") > 1:
            raise FormulaSyntaxError(f"malformed number {self.source[start:self.pos]!r}")
        try:
            return ConstantNode(value=float(text))
        except ValueError:
            raise FormulaSyntaxError(f"malformed number {text!r}") from None

    def _scan_group(self) -> ASTNode:
        inner = self._read_enclosed()
        if not inner.strip():
            return EMPTY
        return QuoteNode(inner=parse_formula(inner))

    def _read_enclosed(self) -> str:
        """Consume a bracketed region and return the text between the brackets."""
        opening = self._advance()
        start = self.pos
        depth = 1
        while self.pos < len(self.source):
            ch = self._advance()
            if ch in OPEN_BRACES:
                depth += 1
            elif ch in CLOSE_BRACES:
                depth -= 1
                if depth == 0:
                    return self.source[start:self.pos - 1]
        raise FormulaSyntaxError(f"unclosed {opening!r} starting at position {start - 1}")

    # ─────────────────────────────────────────────────────────
    #  Operators
    # ─────────────────────────────────────────────────────────

    def _scan_naming(self, node: ASTNode | None) -> FormulaNode:
        """Scan ``name := expression``; node is the name already scanned."""
        if node is None:
            raise FormulaSyntaxError("naming needs a name before ':='")
        self._advance()  # consume :
        if self._current() != "=":
            raise FormulaSyntaxError("expected '=' after ':' in naming")
        self._advance()
        if not isinstance(node, VariantNode):
            raise FormulaSyntaxError("only a plain name can be given a formula")
        self._skip_whitespace()
        if self._current() in (None, ";"):
            raise FormulaSyntaxError(f"formula {node.name} has no expression after ':='")
        return FormulaNode(name=node.name, inner=self.scan_node())

    def _scan_math(self, left: ASTNode | None) -> BinaryOpNode:
        symbol = self._advance()
        if left is None:
            raise FormulaSyntaxError(f"operator {symbol!r} has no left operand")
        return BinaryOpNode(op=MATH_OPS[symbol], left=left, right=self.scan_node())

    def _scan_compare(self, left: ASTNode | None) -> BinaryOpNode:
        symbol = self._advance()
        or_equal = self._current() == "="
        if or_equal:
            self._advance()
        if left is None:
            raise FormulaSyntaxError(f"comparison {symbol!r} has no left operand")

        match symbol:
            case ">":
                op = Op.GE if or_equal else Op.GT
            case "<":
                op = Op.LE if or_equal else Op.LT
            case _:
                op = Op.EQ
        return BinaryOpNode(op=op, left=left, right=self.scan_node())

    def _scan_logic(self, left: ASTNode | None, symbol: str, op: Op) -> BinaryOpNode:
        self._advance()
        if self._current() != symbol:
            raise FormulaSyntaxError(
                f"logical operator is written {symbol * 2!r}, found a single {symbol!r}"
            )
        self._advance()
        if left is None:
            raise FormulaSyntaxError(f"{symbol * 2!r} has no left operand")
        return BinaryOpNode(op=op, left=left, right=self.scan_node(limit=True))


# ─────────────────────────────────────────────────────────────
#  Helpers
# ─────────────────────────────────────────────────────────────

def split_top_level(text: str, splitter: str, keep_empty: bool = False) -> list[str]:
    """Split text on splitter wherever no bracket is open.

    Blank pieces are dropped unless keep_empty is set, which keeps inner
    blanks but still drops a blank final piece. Text that is blank as a
    whole always yields no pieces.
    """
    if not text.strip():
        return []
    pieces = []
    depth = 0
    start = 0
    for i, ch in enumerate(text):
        if ch in OPEN_BRACES:
            depth += 1
        elif ch in CLOSE_BRACES:
            depth -= 1
        elif ch == splitter and depth == 0:
            pieces.append(text[start:i])
            start = i + 1
    pieces.append(text[start:])
    if keep_empty:
        # A trailing separator does not open another piece: f(1,) has one argument
        if not pieces[-1].strip():
            pieces.pop()
        return pieces
    return [p for p in pieces if p.strip()]


def _starts_operand(ch: str) -> bool:
    return ch in ("^", "!", "(", "[", ".") or ch in DIGITS or ch.isalpha() or ch == "_"


def parse_formula(text: str) -> ASTNode:
    """Scan a sub-formula without registering anything.

    Returns the last statement, or the first UnresolvedNode met.
    """
    node: ASTNode = EMPTY
    for node in Scanner(text).statements():
        if isinstance(node, UnresolvedNode):
            break
    return node
