"""Capability table and factory registry keyed by type identity.

The host never imports a type from a name received on the wire. Every class
it may construct or parse must be registered, either explicitly or because it
is named in the annotations of an already registered class (the exposed
root's class is registered at exposure time).
"""

import inspect
import logging
import threading
import typing
from collections.abc import Iterator

from instantrpc.codec import BUILTIN_LEAF_TYPES
from instantrpc.codec import describe_type
from instantrpc.codec import is_tuple_alias
from instantrpc.codec import is_union
from instantrpc.codec import normalize_type
from instantrpc.codec import safe_type_hints
from instantrpc.codec import type_identity
from instantrpc.errors import UnknownTypeError

_LOGGER: logging.Logger = logging.getLogger(__name__)
_TUPLE_PREFIX: str = "tuple["


def annotation_accepts(annotation: object, argument_type: object) -> bool:
    """Check one declared parameter type against one node type.

    :param annotation: Parameter annotation; ``None`` when unannotated.
    :param argument_type: Type declared by the argument node.
    :returns: ``True`` on an exact match. ``object``, ``Any`` and missing
        annotations accept every type; unions accept any matching member.
    """
    if annotation is None or annotation is object or annotation is typing.Any:
        return True
    if is_union(annotation) is True:
        return any(annotation_accepts(member, argument_type) for member in typing.get_args(annotation))
    return normalize_type(annotation) == normalize_type(argument_type)


class ParameterSpec:
    """One positional parameter of a callable."""

    name: str
    annotation: object
    required: bool

    def __init__(self, name: str, annotation: object, required: bool) -> None:
        self.name = name
        self.annotation = annotation
        self.required = required


class CallableSpec:
    """Signature of one method or constructor, as used for exact-match selection."""

    name: str
    parameters: list[ParameterSpec] | None
    variadic_annotation: object
    accepts_variadic: bool
    has_required_keyword_only: bool

    def __init__(
        self,
        name: str,
        parameters: list[ParameterSpec] | None,
        accepts_variadic: bool = False,
        variadic_annotation: object = None,
        has_required_keyword_only: bool = False,
    ) -> None:
        """Initialize a callable spec.

        :param name: Method name, or the class name for constructors.
        :param parameters: Positional parameters; ``None`` when the signature
            cannot be inspected, in which case any arguments are accepted.
        :param accepts_variadic: Whether ``*args`` is declared.
        :param variadic_annotation: Annotation of ``*args`` items.
        :param has_required_keyword_only: Whether a keyword-only parameter lacks a default.
        """
        self.name = name
        self.parameters = parameters
        self.accepts_variadic = accepts_variadic
        self.variadic_annotation = variadic_annotation
        self.has_required_keyword_only = has_required_keyword_only

    def accepts(self, argument_types: list[object]) -> bool:
        """Report whether positional arguments of these types select this callable.

        :param argument_types: Node-declared types in call order.
        :returns: ``True`` when count and every type match.
        """
        if self.parameters is None:
            return True
        if self.has_required_keyword_only is True:
            return False

        required_count: int = sum(1 for parameter in self.parameters if parameter.required is True)
        if len(argument_types) < required_count:
            return False
        if len(argument_types) > len(self.parameters) and self.accepts_variadic is False:
            return False

        for index, argument_type in enumerate(argument_types):
            annotation: object = self.variadic_annotation
            if index < len(self.parameters):
                annotation = self.parameters[index].annotation
            if annotation_accepts(annotation, argument_type) is False:
                return False
        return True

    def describe(self) -> str:
        """Render the signature for diagnostics.

        :returns: ``name(type, ...)``.
        """
        if self.parameters is None:
            return f"{self.name}(...)"
        rendered: list[str] = []
        for parameter in self.parameters:
            annotation_text: str = "any" if parameter.annotation is None else describe_type(parameter.annotation)
            if parameter.required is False:
                annotation_text += "=?"
            rendered.append(annotation_text)
        if self.accepts_variadic is True:
            rendered.append("*args")
        return f"{self.name}({', '.join(rendered)})"


def build_callable_spec(name: str, function: object, skip_first: bool) -> CallableSpec:
    """Inspect one callable.

    :param name: Name recorded in the spec.
    :param function: Function, class or method descriptor to inspect.
    :param skip_first: Drop the leading ``self``/``cls`` parameter.
    :returns: Callable spec.
    """
    try:
        signature: inspect.Signature = inspect.signature(function)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return CallableSpec(name, None)

    hint_source: object = function
    if isinstance(function, type) is True:
        hint_source = function.__init__  # type: ignore[misc]
    hints: dict[str, object] = safe_type_hints(hint_source)

    parameters: list[ParameterSpec] = []
    accepts_variadic: bool = False
    variadic_annotation: object = None
    has_required_keyword_only: bool = False
    remaining: list[inspect.Parameter] = list(signature.parameters.values())
    if skip_first is True and len(remaining) > 0:
        remaining = remaining[1:]

    for parameter in remaining:
        annotation: object = hints.get(parameter.name, parameter.annotation)
        if annotation is inspect.Parameter.empty or isinstance(annotation, str) is True:
            annotation = None
        if parameter.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD):
            required: bool = parameter.default is inspect.Parameter.empty
            parameters.append(ParameterSpec(parameter.name, annotation, required))
        elif parameter.kind == inspect.Parameter.VAR_POSITIONAL:
            accepts_variadic = True
            variadic_annotation = annotation
        elif parameter.kind == inspect.Parameter.KEYWORD_ONLY:
            if parameter.default is inspect.Parameter.empty:
                has_required_keyword_only = True

    return CallableSpec(name, parameters, accepts_variadic, variadic_annotation, has_required_keyword_only)


def _method_spec(name: str, raw: object) -> CallableSpec | None:
    """Build the spec of a class attribute when it is a method.

    :param name: Attribute name.
    :param raw: Attribute as stored on the class.
    :returns: Callable spec, or ``None`` for data attributes.
    """
    if isinstance(raw, staticmethod) is True:
        return build_callable_spec(name, raw.__func__, skip_first=False)
    if isinstance(raw, classmethod) is True:
        return build_callable_spec(name, raw.__func__, skip_first=True)
    if inspect.isfunction(raw) is True or inspect.ismethoddescriptor(raw) is True:
        return build_callable_spec(name, raw, skip_first=True)
    return None


class TypeInfo:
    """Capabilities of one registered class: its constructor, methods and data members."""

    type_object: type
    identity: str
    constructor: CallableSpec
    methods: dict[str, CallableSpec]
    members: frozenset[str]
    annotations: dict[str, object]

    def __init__(
        self,
        type_object: type,
        constructor: CallableSpec,
        methods: dict[str, CallableSpec],
        members: frozenset[str],
        annotations: dict[str, object],
    ) -> None:
        self.type_object = type_object
        self.identity = type_identity(type_object)
        self.constructor = constructor
        self.methods = methods
        self.members = members
        self.annotations = annotations

    def referenced_types(self) -> Iterator[object]:
        """Yield every annotation that mentions another class.

        :yields: Annotations of members, constructor and method parameters and returns.
        """
        yield from self.annotations.values()
        specs: list[CallableSpec] = [self.constructor, *self.methods.values()]
        for spec in specs:
            if spec.parameters is None:
                continue
            for parameter in spec.parameters:
                yield parameter.annotation
            yield spec.variadic_annotation


def build_type_info(cls: type) -> TypeInfo:
    """Build the capability table of one class.

    :param cls: Class to inspect.
    :returns: Type info.
    """
    methods: dict[str, CallableSpec] = {}
    members: set[str] = set()
    for name in dir(cls):
        if name.startswith("__") and name.endswith("__"):
            continue
        raw: object = inspect.getattr_static(cls, name, None)
        spec: CallableSpec | None = _method_spec(name, raw)
        if spec is not None:
            methods[name] = spec
        elif inspect.isdatadescriptor(raw) is True:
            members.add(name)

    annotations: dict[str, object] = safe_type_hints(cls)
    members.update(name for name in annotations if name.startswith("__") is False)
    constructor: CallableSpec = build_callable_spec(cls.__qualname__, cls, skip_first=False)
    return TypeInfo(cls, constructor, methods, frozenset(members), annotations)


def _classes_in(annotation: object) -> Iterator[type]:
    """Yield the classes named by an annotation, looking inside unions and tuples."""
    if is_union(annotation) is True or is_tuple_alias(annotation) is True:
        for member in typing.get_args(annotation):
            yield from _classes_in(member)
        return
    if isinstance(annotation, type) is True and annotation is not type(None):
        yield annotation


def split_top_level(text: str) -> list[str]:
    """Split on commas that are not nested inside brackets.

    :param text: Comma-separated identities.
    :returns: Stripped pieces.
    """
    pieces: list[str] = []
    depth: int = 0
    start: int = 0
    for index, character in enumerate(text):
        if character == "[":
            depth += 1
        elif character == "]":
            depth -= 1
        elif character == "," and depth == 0:
            pieces.append(text[start:index].strip())
            start = index + 1
    pieces.append(text[start:].strip())
    return pieces


class TypeCatalog:
    """Registry of the classes a host can construct, parse and call into."""

    _lock: threading.RLock
    _types_by_identity: dict[str, type]
    _info_by_type: dict[type, TypeInfo]

    def __init__(self) -> None:
        """Initialize a catalog holding the built-in leaf types."""
        self._lock = threading.RLock()
        self._types_by_identity = {}
        self._info_by_type = {}
        for leaf_type in BUILTIN_LEAF_TYPES:
            self._types_by_identity[type_identity(leaf_type)] = leaf_type

    def register(self, cls: type) -> TypeInfo:
        """Register a class and every class its annotations name.

        :param cls: Class to register.
        :returns: Type info of ``cls``.
        """
        with self._lock:
            pending: list[type] = [cls]
            while len(pending) > 0:
                current: type = pending.pop()
                if current in self._info_by_type:
                    continue
                identity: str = type_identity(current)
                previous: type | None = self._types_by_identity.get(identity)
                if previous is not None and previous is not current:
                    _LOGGER.debug("Type identity %s now refers to a different class object", identity)
                self._types_by_identity[identity] = current
                info: TypeInfo = build_type_info(current)
                self._info_by_type[current] = info
                if current.__module__ == "builtins":
                    continue
                for annotation in info.referenced_types():
                    for referenced in _classes_in(annotation):
                        if referenced not in self._info_by_type:
                            pending.append(referenced)
            return self._info_by_type[cls]

    def describe(self, cls: type) -> TypeInfo:
        """Return the capability table of a class, registering it on first use.

        :param cls: Class to describe.
        :returns: Type info.
        """
        with self._lock:
            existing: TypeInfo | None = self._info_by_type.get(cls)
            if existing is not None:
                return existing
        return self.register(cls)

    def is_registered(self, identity: str) -> bool:
        """Report whether an identity resolves.

        :param identity: Wire type identity.
        :returns: ``True`` when known.
        """
        try:
            self.resolve(identity)
        except UnknownTypeError:
            return False
        return True

    def resolve(self, identity: str) -> object:
        """Map a wire identity back onto a registered type.

        :param identity: ``module:qualname`` or ``tuple[...]`` identity.
        :returns: Class or ``tuple[...]`` alias.
        :raises UnknownTypeError: If any named class is not registered.
        """
        if identity.startswith(_TUPLE_PREFIX) is True and identity.endswith("]") is True:
            inner: str = identity[len(_TUPLE_PREFIX):-1]
            element_ids: list[str] = []
            if len(inner.strip()) > 0:
                element_ids = split_top_level(inner)
            element_types: tuple[object, ...] = tuple(self.resolve(element_id) for element_id in element_ids)
            return tuple[element_types]

        with self._lock:
            resolved: type | None = self._types_by_identity.get(identity)
        if resolved is None:
            raise UnknownTypeError(
                f"Type [{identity}] is not registered with the host; register it with register_type()."
            )
        return resolved
