"""Compile accessor expressions into dot-joined member paths.

An accessor expression is a one-argument callable such as
``lambda window: window.data_context.add(1, 2)``. It is evaluated once against a
recording placeholder; every attribute access, call and cast creates a node
linked to its parent, and compilation walks those nodes back to the root.
"""

import inspect
from collections.abc import Callable
from typing import Any
from typing import TypeVar

from instantrpc.codec import safe_type_hints
from instantrpc.errors import UnsupportedExpressionError

V = TypeVar("V")

_KIND_ROOT: str = "root"
_KIND_MEMBER: str = "member"
_KIND_CALL: str = "call"
_KIND_CAST: str = "cast"

# Operations a member path cannot express.
_UNSUPPORTED_OPERATIONS: tuple[str, ...] = (
    "__getitem__", "__setitem__", "__delitem__", "__contains__", "__iter__", "__len__", "__bool__",
    "__eq__", "__ne__", "__lt__", "__le__", "__gt__", "__ge__",
    "__add__", "__radd__", "__sub__", "__rsub__", "__mul__", "__rmul__", "__matmul__", "__rmatmul__",
    "__truediv__", "__rtruediv__", "__floordiv__", "__rfloordiv__", "__mod__", "__rmod__",
    "__pow__", "__rpow__", "__lshift__", "__rlshift__", "__rshift__", "__rrshift__",
    "__and__", "__rand__", "__or__", "__ror__", "__xor__", "__rxor__",
    "__neg__", "__pos__", "__abs__", "__invert__", "__int__", "__float__", "__index__",
)


class _Unresolved:
    """Marker for a static type that annotations do not reveal."""


UNRESOLVED: _Unresolved = _Unresolved()


def _member_types(owner: object, name: str) -> tuple[object, object]:
    """Look up the annotated type of one member.

    :param owner: Static type of the object holding the member.
    :param name: Member name.
    :returns: ``(value_type, call_return_type)``; either may be ``UNRESOLVED``.
    """
    if isinstance(owner, type) is False:
        return UNRESOLVED, UNRESOLVED

    raw: object = inspect.getattr_static(owner, name, None)
    if isinstance(raw, property) is True:
        getter_hints: dict[str, object] = safe_type_hints(raw.fget)
        return getter_hints.get("return", UNRESOLVED), UNRESOLVED
    if isinstance(raw, (staticmethod, classmethod)) is True:
        raw = raw.__func__
    if inspect.isfunction(raw) is True:
        function_hints: dict[str, object] = safe_type_hints(raw)
        return UNRESOLVED, function_hints.get("return", UNRESOLVED)

    class_hints: dict[str, object] = safe_type_hints(owner)
    return class_hints.get(name, UNRESOLVED), UNRESOLVED


class PathNode:
    """One step of a recorded accessor expression."""

    __slots__ = ("_rpc_parent", "_rpc_kind", "_rpc_name", "_rpc_arguments", "_rpc_static_type", "_rpc_call_type")

    _rpc_parent: "PathNode | None"
    _rpc_kind: str
    _rpc_name: str
    _rpc_arguments: tuple[object, ...]
    _rpc_static_type: object
    _rpc_call_type: object

    def __init__(
        self,
        parent: "PathNode | None",
        kind: str,
        name: str = "",
        arguments: tuple[object, ...] = (),
        static_type: object = UNRESOLVED,
        call_type: object = UNRESOLVED,
    ) -> None:
        """Initialize a node.

        :param parent: Node this step was taken from; ``None`` for the root.
        :param kind: One of root, member, call or cast.
        :param name: Member name for member nodes.
        :param arguments: Positional arguments for call nodes.
        :param static_type: Annotated type of the value this node denotes.
        :param call_type: Annotated return type when this node is called.
        """
        object.__setattr__(self, "_rpc_parent", parent)
        object.__setattr__(self, "_rpc_kind", kind)
        object.__setattr__(self, "_rpc_name", name)
        object.__setattr__(self, "_rpc_arguments", arguments)
        object.__setattr__(self, "_rpc_static_type", static_type)
        object.__setattr__(self, "_rpc_call_type", call_type)

    def __getattr__(self, name: str) -> "PathNode":
        if name.startswith("__") and name.endswith("__"):
            raise AttributeError(name)
        value_type, call_type = _member_types(self._rpc_static_type, name)
        return PathNode(self, _KIND_MEMBER, name, static_type=value_type, call_type=call_type)

    def __setattr__(self, name: str, value: object) -> None:
        raise UnsupportedExpressionError("Assignments cannot appear in an accessor expression; use set().")

    def __call__(self, *args: object, **kwargs: object) -> "PathNode":
        if len(kwargs) > 0:
            raise UnsupportedExpressionError(
                f"Keyword arguments are not supported in calls: {', '.join(sorted(kwargs))}"
            )
        return PathNode(self, _KIND_CALL, arguments=args, static_type=self._rpc_call_type)

    def __repr__(self) -> str:
        return f"<PathNode {self._rpc_kind} {self._rpc_name!r}>"


def _unsupported_operation(operation: str) -> Callable[..., Any]:
    """Build a dunder that rejects ``operation`` inside accessor expressions."""
    def _raise(self: PathNode, *args: object) -> Any:
        raise UnsupportedExpressionError(f"Unsupported expression type: {operation}")

    _raise.__name__ = operation
    return _raise


for _operation in _UNSUPPORTED_OPERATIONS:
    setattr(PathNode, _operation, _unsupported_operation(_operation))
PathNode.__hash__ = object.__hash__  # type: ignore[method-assign]


def as_type(target_type: type[V], node: object) -> V:
    """Cast a node of an accessor expression to ``target_type``.

    Casts do not change the path; they only tell the compiler which annotations
    to read for the members accessed next. Outside an accessor expression the
    value is returned unchanged.

    :param target_type: Type the value is known to have.
    :param node: Value or node to cast.
    :returns: ``node`` re-typed as ``target_type``.
    """
    if isinstance(node, PathNode) is False:
        return node  # type: ignore[return-value]
    return PathNode(node, _KIND_CAST, static_type=target_type)  # type: ignore[return-value]


class CompiledPath:
    """Result of compiling one accessor expression."""

    path: str
    is_call: bool
    arguments: tuple[object, ...]
    static_type: object

    def __init__(self, path: str, is_call: bool, arguments: tuple[object, ...], static_type: object) -> None:
        """Initialize a compiled path.

        :param path: Dot-joined member path.
        :param is_call: Whether the outermost step is a method call.
        :param arguments: Positional arguments of that call.
        :param static_type: Annotated type of the expression, or ``UNRESOLVED``.
        """
        self.path = path
        self.is_call = is_call
        self.arguments = arguments
        self.static_type = static_type

    def __repr__(self) -> str:
        return f"CompiledPath(path={self.path!r}, is_call={self.is_call!r})"


def compile_node(outermost: object) -> CompiledPath:
    """Walk a recorded expression from its outermost node back to the root.

    :param outermost: Value returned by the accessor expression.
    :returns: Compiled path.
    :raises UnsupportedExpressionError: If the value is not a member path.
    """
    if isinstance(outermost, PathNode) is False:
        raise UnsupportedExpressionError(
            f"Unsupported expression type: {type(outermost).__name__} (expected a member of the root)"
        )

    names: list[str] = []
    is_call: bool = False
    arguments: tuple[object, ...] = ()
    static_type: object = outermost._rpc_static_type
    is_outermost: bool = True
    current: PathNode | None = outermost
    while current is not None:
        kind: str = current._rpc_kind
        if kind == _KIND_ROOT:
            break
        if kind == _KIND_MEMBER:
            names.insert(0, current._rpc_name)
        elif kind == _KIND_CALL:
            if is_outermost is True:
                is_call = True
                arguments = current._rpc_arguments
            elif len(current._rpc_arguments) > 0:
                raise UnsupportedExpressionError("Only the outermost call of a path may take arguments.")
            callee: PathNode | None = current._rpc_parent
            if callee is None or callee._rpc_kind != _KIND_MEMBER:
                raise UnsupportedExpressionError("Only methods reached through a member can be called.")
            names.insert(0, callee._rpc_name)
            current = callee
        is_outermost = False
        current = current._rpc_parent

    if len(names) == 0:
        raise UnsupportedExpressionError("Expression must access at least one member of the root.")
    return CompiledPath(".".join(names), is_call, arguments, static_type)


def compile_path(expression: Callable[[Any], object], root_type: object = UNRESOLVED) -> CompiledPath:
    """Compile an accessor expression into a member path.

    :param expression: One-argument callable applied to the root placeholder.
    :param root_type: Static type of the root, used to infer result types.
    :returns: Compiled path.
    :raises UnsupportedExpressionError: If the expression is not a member path.
    """
    root: PathNode = PathNode(None, _KIND_ROOT, static_type=root_type)
    return compile_node(expression(root))
