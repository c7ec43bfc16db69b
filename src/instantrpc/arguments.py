"""Argument nodes: client-side encoding and their XML wire form."""

import re
import xml.etree.ElementTree as ElementTree
from typing import Generic
from typing import TypeVar

from instantrpc.codec import DEFAULT_CODEC
from instantrpc.codec import TypeCodec
from instantrpc.codec import runtime_type_of
from instantrpc.codec import type_identity
from instantrpc.errors import CodecNotSupportedError
from instantrpc.errors import InstantRpcProtocolError
from instantrpc.errors import UnsupportedExpressionError
from instantrpc.paths import PathNode

T = TypeVar("T")

VALUE_TAG: str = "value"
CTOR_TAG: str = "ctor"
INIT_TAG: str = "init"
ARGS_TAG: str = "args"
TYPE_ATTR: str = "type"
PROP_ATTR: str = "prop"
# Characters outside the XML 1.0 Char production.
_XML_ILLEGAL_PATTERN: re.Pattern[str] = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")


class Construct(Generic[T]):
    """A constructor call to perform on the host instead of in the caller.

    ``Construct(MyParam, "1", "2", value="3")`` stands for
    ``p = MyParam("1", "2"); p.value = "3"`` executed by the host process.
    Positional arguments may be further ``Construct`` specs; keyword arguments
    are property initializers and must be plain codec-able values.
    """

    target_type: type[T]
    arguments: tuple[object, ...]
    initializers: dict[str, object]

    def __init__(self, target_type: type[T], *arguments: object, **initializers: object) -> None:
        """Initialize a constructor spec.

        :param target_type: Class to instantiate on the host.
        :param arguments: Positional constructor arguments.
        :param initializers: Properties assigned after construction.
        """
        self.target_type = target_type
        self.arguments = arguments
        self.initializers = initializers

    def __repr__(self) -> str:
        return f"Construct({self.target_type.__qualname__}, {len(self.arguments)} args, {sorted(self.initializers)})"


class ValueNode:
    """Leaf node holding a value already reduced to text."""

    type_identity: str
    text: str

    def __init__(self, type_identity: str, text: str) -> None:
        self.type_identity = type_identity
        self.text = text

    def __repr__(self) -> str:
        return f"ValueNode({self.type_identity!r}, {self.text!r})"


class ConstructorNode:
    """Node describing a constructor call with optional property initializers."""

    type_identity: str
    arguments: list["ValueNode | ConstructorNode"]
    initializers: dict[str, ValueNode]

    def __init__(
        self,
        type_identity: str,
        arguments: list["ValueNode | ConstructorNode"] | None = None,
        initializers: dict[str, ValueNode] | None = None,
    ) -> None:
        self.type_identity = type_identity
        self.arguments = [] if arguments is None else list(arguments)
        self.initializers = {} if initializers is None else dict(initializers)

    def __repr__(self) -> str:
        return f"ConstructorNode({self.type_identity!r}, {self.arguments!r}, {self.initializers!r})"


ArgumentNode = ValueNode | ConstructorNode


def encode_value(value: object, codec: TypeCodec = DEFAULT_CODEC) -> ValueNode:
    """Reduce a concrete value to a leaf node.

    :param value: Already evaluated value.
    :param codec: Codec used for the text form.
    :returns: Leaf node typed with the value's runtime type.
    :raises CodecNotSupportedError: If the runtime type is not codec-able, or
        its text holds characters XML cannot carry.
    :raises UnsupportedExpressionError: If ``value`` is part of an accessor expression.
    """
    if isinstance(value, PathNode) is True:
        raise UnsupportedExpressionError("Members of the remote root cannot be used as argument values.")
    if isinstance(value, Construct) is True:
        raise UnsupportedExpressionError("Constructor calls cannot be used as property initializers.")
    value_type: object = runtime_type_of(value)
    if codec.can_encode(value_type) is False:
        raise CodecNotSupportedError(f"{type_identity(type(value))} does not support parse.")
    text: str = codec.stringify(value_type, value)
    illegal: re.Match[str] | None = _XML_ILLEGAL_PATTERN.search(text)
    if illegal is not None:
        raise CodecNotSupportedError(
            f"{type_identity(type(value))} value contains {illegal.group()!r}, which an argument node cannot carry."
        )
    return ValueNode(type_identity(value_type), text)


def encode_argument(value: object, codec: TypeCodec = DEFAULT_CODEC) -> ArgumentNode:
    """Encode one argument, keeping ``Construct`` specs as constructor nodes.

    :param value: Argument value or ``Construct`` spec.
    :param codec: Codec used for leaf values.
    :returns: Argument node.
    """
    if isinstance(value, Construct) is False:
        return encode_value(value, codec)

    arguments: list[ArgumentNode] = encode_arguments(value.arguments, codec)
    initializers: dict[str, ValueNode] = {}
    for name, initializer in value.initializers.items():
        initializers[name] = encode_value(initializer, codec)
    return ConstructorNode(type_identity(value.target_type), arguments, initializers)


def encode_arguments(values: tuple[object, ...] | list[object], codec: TypeCodec = DEFAULT_CODEC) -> list[ArgumentNode]:
    """Encode positional arguments in order.

    :param values: Argument values.
    :param codec: Codec used for leaf values.
    :returns: One node per argument.
    """
    return [encode_argument(value, codec) for value in values]


def node_to_element(node: ArgumentNode) -> ElementTree.Element:
    """Build the XML element for one node.

    :param node: Argument node.
    :returns: ``<value>`` or ``<ctor>`` element.
    """
    if isinstance(node, ValueNode) is True:
        value_element: ElementTree.Element = ElementTree.Element(VALUE_TAG, {TYPE_ATTR: node.type_identity})
        value_element.text = node.text
        return value_element

    ctor_element: ElementTree.Element = ElementTree.Element(CTOR_TAG, {TYPE_ATTR: node.type_identity})
    for argument in node.arguments:
        ctor_element.append(node_to_element(argument))
    for name, initializer in node.initializers.items():
        init_element: ElementTree.Element = ElementTree.SubElement(
            ctor_element,
            INIT_TAG,
            {TYPE_ATTR: initializer.type_identity, PROP_ATTR: name},
        )
        init_element.text = initializer.text
    return ctor_element


def _require_attribute(element: ElementTree.Element, name: str) -> str:
    """Read a mandatory attribute of a node element.

    :param element: Node element.
    :param name: Attribute name.
    :returns: Attribute value.
    :raises InstantRpcProtocolError: If the attribute is missing.
    """
    value: str | None = element.get(name)
    if value is None:
        raise InstantRpcProtocolError(f"<{element.tag}> element is missing its {name!r} attribute")
    return value


def element_to_node(element: ElementTree.Element) -> ArgumentNode:
    """Rebuild a node from its XML element.

    :param element: ``<value>`` or ``<ctor>`` element.
    :returns: Argument node.
    :raises InstantRpcProtocolError: If the element is not a valid node.
    """
    node_type: str = _require_attribute(element, TYPE_ATTR)
    if element.tag == VALUE_TAG:
        return ValueNode(node_type, element.text or "")
    if element.tag != CTOR_TAG:
        raise InstantRpcProtocolError(f"Unexpected <{element.tag}> element in argument payload")

    node: ConstructorNode = ConstructorNode(node_type)
    for child in element:
        if child.tag == INIT_TAG:
            prop: str = _require_attribute(child, PROP_ATTR)
            node.initializers[prop] = ValueNode(_require_attribute(child, TYPE_ATTR), child.text or "")
        else:
            node.arguments.append(element_to_node(child))
    return node


def _parse_xml(payload: str) -> ElementTree.Element:
    """Parse a payload, reporting malformed XML as a protocol error."""
    try:
        return ElementTree.fromstring(payload)
    except ElementTree.ParseError as exc:
        raise InstantRpcProtocolError(f"Argument payload is not well-formed: {exc}") from exc


def _to_xml(element: ElementTree.Element) -> str:
    """Serialize an element, keeping carriage returns as character references.

    ``ElementTree`` leaves ``\\r`` in text as is, and XML parsers fold it into
    ``\\n``. Attribute values are already escaped, so a raw ``\\r`` can only come
    from element text.

    :param element: Root element.
    :returns: XML text.
    """
    return ElementTree.tostring(element, encoding="unicode").replace("\r", "&#13;")


def dumps_argument(node: ArgumentNode) -> str:
    """Serialize one node (SET payload).

    :param node: Argument node.
    :returns: XML text.
    """
    return _to_xml(node_to_element(node))


def loads_argument(payload: str) -> ArgumentNode:
    """Parse one node (SET payload).

    :param payload: XML text.
    :returns: Argument node.
    """
    return element_to_node(_parse_xml(payload))


def dumps_arguments(nodes: list[ArgumentNode]) -> str:
    """Serialize positional nodes wrapped in ``<args>`` (INVOKE payload).

    :param nodes: Argument nodes in call order.
    :returns: XML text.
    """
    wrapper: ElementTree.Element = ElementTree.Element(ARGS_TAG)
    for node in nodes:
        wrapper.append(node_to_element(node))
    return _to_xml(wrapper)


def loads_arguments(payload: str) -> list[ArgumentNode]:
    """Parse an ``<args>`` payload.

    :param payload: XML text.
    :returns: Argument nodes in call order.
    :raises InstantRpcProtocolError: If the payload is not an ``<args>`` element.
    """
    wrapper: ElementTree.Element = _parse_xml(payload)
    if wrapper.tag != ARGS_TAG:
        raise InstantRpcProtocolError(f"Expected <{ARGS_TAG}> payload, got <{wrapper.tag}>")
    return [element_to_node(child) for child in wrapper]
