"""Type-directed string conversion used for every leaf value on the wire."""

import datetime
import decimal
import enum
import fractions
import re
import types
import typing
import uuid
from collections.abc import Callable

from instantrpc.errors import CodecNotSupportedError
from instantrpc.errors import CodecParseError

PARSE_CONVENTIONS: tuple[str, ...] = ("parse", "from_string", "fromisoformat")
_TUPLE_TEXT_PATTERN: re.Pattern[str] = re.compile(r"^\((.*)\)$", re.DOTALL)


def _parse_bool(text: str) -> bool:
    """Parse ``True``/``False`` case-insensitively, like ``str(bool)`` renders them.

    :param text: Boolean literal.
    :returns: Parsed boolean.
    :raises ValueError: If ``text`` is not a boolean literal.
    """
    normalized: str = text.strip().lower()
    if normalized == "true":
        return True
    if normalized == "false":
        return False
    raise ValueError(f"{text!r} is not a boolean literal")


# Scalar types whose constructor parses their own ``str()`` rendering.
_SCALAR_PARSERS: dict[type, Callable[[str], object]] = {
    bool: _parse_bool,
    int: int,
    float: float,
    complex: complex,
    decimal.Decimal: decimal.Decimal,
    fractions.Fraction: fractions.Fraction,
    uuid.UUID: uuid.UUID,
}

BUILTIN_LEAF_TYPES: tuple[type, ...] = (
    str,
    *_SCALAR_PARSERS.keys(),
    datetime.date,
    datetime.datetime,
    datetime.time,
)


def is_tuple_alias(tp: object) -> bool:
    """Report whether ``tp`` is a parametrized tuple such as ``tuple[int, str]``.

    :param tp: Candidate type.
    :returns: ``True`` for ``tuple[...]`` and ``typing.Tuple[...]`` aliases.
    """
    return typing.get_origin(tp) is tuple


def is_union(tp: object) -> bool:
    """Report whether ``tp`` is a ``Union``/``X | Y`` annotation.

    :param tp: Candidate annotation.
    :returns: ``True`` for union annotations.
    """
    origin: object = typing.get_origin(tp)
    return origin is typing.Union or origin is types.UnionType


def normalize_type(tp: object) -> object:
    """Map equivalent spellings of one type onto a single comparable value.

    :param tp: Type or annotation.
    :returns: ``tuple[...]`` for any tuple alias, ``tp`` otherwise.
    """
    if is_tuple_alias(tp) is True:
        element_types: tuple[object, ...] = tuple(normalize_type(item) for item in typing.get_args(tp))
        return tuple[element_types]
    return tp


def type_identity(tp: object) -> str:
    """Return the wire identity of a type.

    :param tp: Class or ``tuple[...]`` alias.
    :returns: ``module:qualname`` or ``tuple[<id>, ...]``.
    :raises CodecNotSupportedError: If ``tp`` is neither.
    """
    if is_tuple_alias(tp) is True:
        element_ids: str = ", ".join(type_identity(item) for item in typing.get_args(tp))
        return f"tuple[{element_ids}]"
    if isinstance(tp, type) is True:
        return f"{tp.__module__}:{tp.__qualname__}"
    raise CodecNotSupportedError(f"{tp!r} has no type identity")


def describe_type(tp: object) -> str:
    """Return a type identity for messages, falling back to ``repr``.

    :param tp: Any annotation.
    :returns: Printable type name.
    """
    try:
        return type_identity(tp)
    except CodecNotSupportedError:
        return repr(tp)


def runtime_type_of(value: object) -> object:
    """Return the codec type describing a concrete value.

    Plain tuples carry no element types, so they are described by the runtime
    types of their elements.

    :param value: Concrete value.
    :returns: ``type(value)`` or a ``tuple[...]`` alias.
    """
    value_type: type = type(value)
    if value_type is tuple:
        element_types: tuple[object, ...] = tuple(runtime_type_of(item) for item in value)
        return tuple[element_types]
    return value_type


def safe_type_hints(owner: object) -> dict[str, object]:
    """Resolve annotations, returning nothing for unresolvable forward references.

    :param owner: Class, function or property getter.
    :returns: Resolved annotations.
    """
    try:
        return typing.get_type_hints(owner)
    except (NameError, TypeError, AttributeError):
        return {}


class CompositeCodec:
    """Describe one family of fixed-arity product types for the codec."""

    def matches(self, tp: object) -> bool:
        """Report whether this composite handles ``tp``.

        :param tp: Candidate type.
        :returns: ``True`` when handled.
        """
        raise NotImplementedError

    def element_types(self, tp: object) -> tuple[object, ...]:
        """Return the element types of ``tp`` in rendering order.

        :param tp: Handled type.
        :returns: Element types.
        """
        raise NotImplementedError

    def explode(self, tp: object, value: object) -> tuple[object, ...]:
        """Split a value into its elements.

        :param tp: Handled type.
        :param value: Value of ``tp``.
        :returns: Element values.
        """
        return tuple(value)  # type: ignore[call-overload]

    def assemble(self, tp: object, elements: list[object]) -> object:
        """Build a value of ``tp`` from parsed elements.

        :param tp: Handled type.
        :param elements: Parsed element values.
        :returns: New value.
        """
        raise NotImplementedError


class TupleCodec(CompositeCodec):
    """Fixed-arity ``tuple[A, B, ...]`` values."""

    def matches(self, tp: object) -> bool:
        """Match fixed-arity tuple aliases."""
        if is_tuple_alias(tp) is False:
            return False
        return Ellipsis not in typing.get_args(tp)

    def element_types(self, tp: object) -> tuple[object, ...]:
        """Return the alias arguments."""
        return typing.get_args(tp)

    def assemble(self, tp: object, elements: list[object]) -> object:
        """Build a plain tuple."""
        return tuple(elements)


class NamedTupleCodec(CompositeCodec):
    """``typing.NamedTuple`` classes whose fields are all annotated."""

    def matches(self, tp: object) -> bool:
        """Match named tuple classes with every field annotated."""
        if isinstance(tp, type) is False:
            return False
        if issubclass(tp, tuple) is False:
            return False
        fields: object = getattr(tp, "_fields", None)
        if isinstance(fields, tuple) is False:
            return False
        hints: dict[str, object] = safe_type_hints(tp)
        return all(name in hints for name in fields)

    def element_types(self, tp: object) -> tuple[object, ...]:
        """Return the field annotations in field order."""
        hints: dict[str, object] = safe_type_hints(tp)
        return tuple(hints[name] for name in tp._fields)  # type: ignore[attr-defined]

    def assemble(self, tp: object, elements: list[object]) -> object:
        """Call the named tuple class positionally."""
        return tp(*elements)  # type: ignore[operator]


class TypeCodec:
    """Convert values to and from text according to their type.

    Rules, first match wins: ``str`` is the identity, enums go by member name,
    composites render as ``(e1, e2, ...)`` and types with a parse convention
    parse their ``str()`` rendering. Anything else is not codec-able.
    """

    _composites: list[CompositeCodec]

    def __init__(self, composites: list[CompositeCodec] | None = None) -> None:
        """Initialize a codec.

        :param composites: Composite codecs; defaults to named tuples and tuples.
        """
        if composites is None:
            self._composites = [NamedTupleCodec(), TupleCodec()]
        else:
            self._composites = list(composites)

    def register_composite(self, composite: CompositeCodec) -> None:
        """Add a composite codec, consulted before the ones already present.

        :param composite: Composite codec to add.
        """
        self._composites.insert(0, composite)

    def _composite_for(self, tp: object) -> CompositeCodec | None:
        """Find the composite codec handling ``tp``, if any."""
        for composite in self._composites:
            if composite.matches(tp) is True:
                return composite
        return None

    def _parser_for(self, tp: object) -> Callable[[str], object] | None:
        """Find the parse convention of a leaf type.

        :param tp: Candidate type.
        :returns: Parser callable, or ``None`` when the type has none.
        """
        if isinstance(tp, type) is False:
            return None
        scalar_parser: Callable[[str], object] | None = _SCALAR_PARSERS.get(tp)
        if scalar_parser is not None:
            return scalar_parser
        for convention in PARSE_CONVENTIONS:
            candidate: object = getattr(tp, convention, None)
            if callable(candidate) is True:
                return candidate  # type: ignore[return-value]
        return None

    def _is_leaf(self, tp: object) -> bool:
        """Report whether ``tp`` is a codec-able non-composite type."""
        if tp is str:
            return True
        if isinstance(tp, type) is True and issubclass(tp, enum.Enum) is True:
            return True
        if self._composite_for(tp) is not None:
            return False
        return self._parser_for(tp) is not None

    def can_encode(self, tp: object) -> bool:
        """Report whether values of ``tp`` convert to and from text.

        :param tp: Candidate type.
        :returns: ``True`` when codec-able.
        """
        if self._is_leaf(tp) is True:
            return True
        composite: CompositeCodec | None = self._composite_for(tp)
        if composite is None:
            return False
        return all(self._is_leaf(item) for item in composite.element_types(tp))

    def stringify(self, tp: object, value: object) -> str:
        """Render ``value`` as text for type ``tp``.

        :param tp: Codec type of ``value``.
        :param value: Value to render.
        :returns: Text form.
        :raises CodecNotSupportedError: If ``tp`` is not codec-able.
        """
        composite: CompositeCodec | None = self._composite_for(tp)
        if composite is None:
            return self._stringify_leaf(tp, value)

        self._require_flat(tp, composite)
        element_types: tuple[object, ...] = composite.element_types(tp)
        elements: tuple[object, ...] = composite.explode(tp, value)
        if len(elements) != len(element_types):
            raise CodecParseError(
                f"Value {value!r} has {len(elements)} elements; "
                + f"[{describe_type(tp)}] expects {len(element_types)}."
            )
        rendered: list[str] = [
            self._stringify_leaf(element_type, element)
            for element_type, element in zip(element_types, elements)
        ]
        for text in rendered:
            if "," in text or text != text.strip():
                raise CodecNotSupportedError(
                    f"Element {text!r} of [{describe_type(tp)}] cannot be written as a tuple literal "
                    + "element: it contains a comma or surrounding whitespace."
                )
        return "(" + ", ".join(rendered) + ")"

    def _require_flat(self, tp: object, composite: CompositeCodec) -> None:
        """Reject composites whose elements are composites themselves.

        :param tp: Composite type.
        :param composite: Codec handling ``tp``.
        :raises CodecNotSupportedError: If an element type is a composite.
        """
        for element_type in composite.element_types(tp):
            if self._composite_for(element_type) is not None:
                raise CodecNotSupportedError(f"Nested composite type [{describe_type(tp)}] is not supported.")

    def _stringify_leaf(self, tp: object, value: object) -> str:
        """Render a non-composite value.

        :param tp: Leaf type.
        :param value: Value to render.
        :returns: Text form.
        """
        if tp is str:
            return str(value)
        if isinstance(tp, type) is True and issubclass(tp, enum.Enum) is True:
            return value.name  # type: ignore[attr-defined]
        if self._composite_for(tp) is not None:
            raise CodecNotSupportedError(f"Nested composite type [{describe_type(tp)}] is not supported.")
        if self._parser_for(tp) is None:
            raise CodecNotSupportedError(f"'parse' is not implemented on type [{describe_type(tp)}].")
        return str(value)

    def parse(self, tp: object, text: str) -> object:
        """Parse ``text`` into a value of ``tp``.

        :param tp: Target type.
        :param text: Text form.
        :returns: Parsed value.
        :raises CodecNotSupportedError: If ``tp`` is not codec-able.
        :raises CodecParseError: If ``text`` does not fit ``tp``.
        """
        composite: CompositeCodec | None = self._composite_for(tp)
        if composite is None:
            return self._parse_leaf(tp, text)

        match: re.Match[str] | None = _TUPLE_TEXT_PATTERN.match(text)
        if match is None:
            raise CodecParseError(f"{text!r} is not a tuple literal for [{describe_type(tp)}].")

        self._require_flat(tp, composite)
        inner: str = match.group(1)
        element_types: tuple[object, ...] = composite.element_types(tp)
        pieces: list[str] = []
        if len(element_types) > 0 or len(inner.strip()) > 0:
            pieces = [piece.strip() for piece in inner.split(",")]
        if len(pieces) != len(element_types):
            raise CodecParseError(
                f"{text!r} has {len(pieces)} elements; "
                + f"[{describe_type(tp)}] expects {len(element_types)}."
            )
        elements: list[object] = [
            self._parse_leaf(element_type, piece)
            for element_type, piece in zip(element_types, pieces)
        ]
        return composite.assemble(tp, elements)

    def _parse_leaf(self, tp: object, text: str) -> object:
        """Parse a non-composite value.

        :param tp: Leaf type.
        :param text: Text form.
        :returns: Parsed value.
        """
        if tp is str:
            return text
        if isinstance(tp, type) is True and issubclass(tp, enum.Enum) is True:
            try:
                return tp[text]
            except KeyError as exc:
                raise CodecParseError(f"{text!r} is not a member of [{describe_type(tp)}].") from exc
        if self._composite_for(tp) is not None:
            raise CodecNotSupportedError(f"Nested composite type [{describe_type(tp)}] is not supported.")

        parser: Callable[[str], object] | None = self._parser_for(tp)
        if parser is None:
            raise CodecNotSupportedError(f"'parse' is not implemented on type [{describe_type(tp)}].")
        try:
            return parser(text)
        except (ValueError, TypeError, ArithmeticError) as exc:
            raise CodecParseError(f"Cannot parse {text!r} as [{describe_type(tp)}]: {exc}") from exc

    def render_result(self, value: object) -> str:
        """Render a GET or INVOKE result for the response envelope.

        :param value: Result value.
        :returns: ``""`` for ``None``, the codec form when the runtime type is
            codec-able, ``str(value)`` otherwise.
        """
        if value is None:
            return ""
        value_type: object = runtime_type_of(value)
        if self.can_encode(value_type) is True:
            return self.stringify(value_type, value)
        return str(value)


DEFAULT_CODEC: TypeCodec = TypeCodec()


def can_encode(tp: object) -> bool:
    """Report whether ``tp`` is codec-able with the default codec.

    :param tp: Candidate type.
    :returns: ``True`` when codec-able.
    """
    return DEFAULT_CODEC.can_encode(tp)


def stringify(tp: object, value: object) -> str:
    """Render ``value`` with the default codec.

    :param tp: Codec type of ``value``.
    :param value: Value to render.
    :returns: Text form.
    """
    return DEFAULT_CODEC.stringify(tp, value)


def parse(tp: object, text: str) -> object:
    """Parse ``text`` with the default codec.

    :param tp: Target type.
    :param text: Text form.
    :returns: Parsed value.
    """
    return DEFAULT_CODEC.parse(tp, text)
