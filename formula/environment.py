"""
Formula Environment
===================
Lexical scope chain for the evaluator.

Each scope maps names to bindings and links to its enclosing scope.
Only the root scope owns a built-in registry; every other scope delegates
built-in lookups upward. Scopes created within one top-level calculation
share a single call trace.
"""
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from .ast import ASTNode, BuiltInNode
from .values import CalculateOption, CallKind, InvocationRecord, NoValue

if TYPE_CHECKING:
    from .evaluator import CallContext

NativeFunction = Callable[["CallContext"], object]

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 16


class Delay:
    """A time gate that latches from pending to ready once elapsed."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        self.seconds = seconds
        self.clock = clock
        self.started = clock()
        self.ready = False

    def check(self) -> bool:
        if not self.ready and self.clock() - self.started >= self.seconds:
            self.ready = True
        return self.ready


@dataclass
class Binding:
    """A bound node plus the most recent values computed for it."""
    node: ASTNode
    value: CalculateOption = field(default_factory=NoValue)
    history: deque[CalculateOption] = field(default_factory=deque)
    delay: Delay | None = None

    @property
    def pending(self) -> bool:
        return self.delay is not None and not self.delay.check()


class Environment:
    """
    One scope in the chain.

    Usage:
        root = Environment.new_root()
        root.set("A", ConstantNode(1.0))
        call_scope = Environment.extend(root)
        call_scope.get("A")  # found through the parent link
    """

    def __init__(self, parent: "Environment | None" = None,
                 builtins: dict[str, NativeFunction] | None = None,
                 trace: list[InvocationRecord] | None = None,
                 clock: Callable[[], float] | None = None,
                 history_limit: int | None = DEFAULT_HISTORY_LIMIT):
        self.parent = parent
        self.bindings: dict[str, Binding] = {}
        self.builtins = builtins
        self.trace: list[InvocationRecord] = trace if trace is not None else []
        if clock is None:
            clock = parent.clock if parent is not None else time.monotonic
        self.clock = clock
        # None keeps every value
        self.history_limit = parent.history_limit if parent is not None else history_limit

    # ─────────────────────────────────────────────────────────
    #  Construction
    # ─────────────────────────────────────────────────────────

    @classmethod
    def new_root(cls, clock: Callable[[], float] | None = None,
                 history_limit: int | None = DEFAULT_HISTORY_LIMIT) -> "Environment":
        """Create a global scope with an empty built-in registry."""
        return cls(builtins={}, clock=clock, history_limit=history_limit)

    @classmethod
    def extend(cls, parent: "Environment") -> "Environment":
        """Child scope with a fresh trace (one per top-level calculation)."""
        return cls(parent=parent)

    @classmethod
    def extend_sharing_trace(cls, parent: "Environment") -> "Environment":
        """Child scope that appends to the parent's trace."""
        return cls(parent=parent, trace=parent.trace)

    # ─────────────────────────────────────────────────────────
    #  Bindings
    # ─────────────────────────────────────────────────────────

    def lookup(self, name: str) -> Binding | None:
        """Find the nearest binding for name, walking outward."""
        scope = self
        while scope is not None:
            binding = scope.bindings.get(name)
            if binding is not None:
                return binding
            scope = scope.parent
        return None

    def get(self, name: str) -> ASTNode | None:
        binding = self.lookup(name)
        return binding.node if binding is not None else None

    def set(self, name: str, node: ASTNode, delay: float | None = None) -> Binding | None:
        """Bind name in this scope only; return the binding it replaced."""
        previous = self.bindings.get(name)
        gate = Delay(delay, self.clock) if delay is not None else None
        self.bindings[name] = Binding(node, history=deque(maxlen=self.history_limit), delay=gate)
        if previous is not None:
            logger.debug("Overwriting binding %s", name)
        return previous

    def set_value(self, name: str, value: CalculateOption) -> CalculateOption:
        """Cache a computed value on the nearest binding; return the old one.

        History keeps only the last history_limit values.
        """
        binding = self.lookup(name)
        if binding is None:
            return NoValue()
        previous = binding.value
        binding.value = value
        binding.history.append(value)
        return previous

    def value_of(self, name: str) -> CalculateOption:
        binding = self.lookup(name)
        return binding.value if binding is not None else NoValue()

    def history_of(self, name: str) -> list[CalculateOption]:
        binding = self.lookup(name)
        return list(binding.history) if binding is not None else []

    def names(self) -> list[str]:
        return list(self.bindings)

    # ─────────────────────────────────────────────────────────
    #  Built-in Registry
    # ─────────────────────────────────────────────────────────

    def register_builtin(self, name: str, fn: NativeFunction):
        """Store a native function; a no-op outside the root scope."""
        if self.builtins is None:
            return
        self.builtins[name] = fn
        self.set(name, BuiltInNode(func_id=name))
        logger.debug("Registered built-in %s", name)

    def lookup_builtin(self, name: str) -> NativeFunction | None:
        if self.builtins is not None:
            return self.builtins.get(name)
        if self.parent is not None:
            return self.parent.lookup_builtin(name)
        return None

    # ─────────────────────────────────────────────────────────
    #  Call Trace
    # ─────────────────────────────────────────────────────────

    def record_invocation(self, kind: CallKind, name: str, args: tuple[ASTNode, ...]):
        self.trace.append(InvocationRecord(kind, name, tuple(args)))

    def read_trace(self) -> tuple[InvocationRecord, ...]:
        return tuple(self.trace)

    def __repr__(self) -> str:
        depth = 0
        scope = self.parent
        while scope is not None:
            depth += 1
            scope = scope.parent
        return f"Environment(depth={depth}, names={self.names()})"
