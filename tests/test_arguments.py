"""Tests for argument encoding and the XML payload format."""

import xml.etree.ElementTree as ElementTree

import pytest

from instantrpc.arguments import ARGS_TAG
from instantrpc.arguments import ArgumentNode
from instantrpc.arguments import Construct
from instantrpc.arguments import ConstructorNode
from instantrpc.arguments import ValueNode
from instantrpc.arguments import dumps_argument
from instantrpc.arguments import dumps_arguments
from instantrpc.arguments import encode_argument
from instantrpc.arguments import encode_arguments
from instantrpc.arguments import loads_argument
from instantrpc.arguments import loads_arguments
from instantrpc.errors import CodecNotSupportedError
from instantrpc.errors import InstantRpcProtocolError
from instantrpc.errors import UnsupportedExpressionError
from instantrpc.paths import compile_path
from tests.fixtures.hosted_objects import Account
from tests.fixtures.hosted_objects import Color
from tests.fixtures.hosted_objects import Opaque
from tests.fixtures.hosted_objects import Workspace

ACCOUNT_ID: str = "tests.fixtures.hosted_objects:Account"


def test_plain_values_become_value_nodes() -> None:
    """Values carry their runtime type identity and codec text."""
    nodes: list[ArgumentNode] = encode_arguments((1, "x", Color.GREEN, (3, 4)))
    assert [(node.type_identity, node.text) for node in nodes] == [  # type: ignore[union-attr]
        ("builtins:int", "1"),
        ("builtins:str", "x"),
        ("tests.fixtures.hosted_objects:Color", "GREEN"),
        ("tuple[builtins:int, builtins:int]", "(3, 4)"),
    ]


def test_construct_becomes_constructor_node() -> None:
    """``Construct`` keeps positional nodes and initializers."""
    node: ArgumentNode = encode_argument(Construct(Account, "ann", 5, nickname="a"))
    assert isinstance(node, ConstructorNode) is True
    assert node.type_identity == ACCOUNT_ID
    assert [argument.type_identity for argument in node.arguments] == ["builtins:str", "builtins:int"]  # type: ignore[union-attr]
    assert node.initializers["nickname"].text == "a"  # type: ignore[union-attr]


def test_nested_construct_is_recursive() -> None:
    """Constructor arguments may themselves be constructor specs."""
    node: ArgumentNode = encode_argument(Construct(tuple, Construct(Account, "ann")))
    assert isinstance(node, ConstructorNode) is True
    inner: ArgumentNode = node.arguments[0]  # type: ignore[union-attr]
    assert isinstance(inner, ConstructorNode) is True
    assert inner.type_identity == ACCOUNT_ID


def test_non_codec_value_fails_before_sending() -> None:
    """Values without string conversion are rejected while encoding."""
    with pytest.raises(CodecNotSupportedError, match="does not support parse"):
        encode_argument(Opaque("x"))


def test_construct_as_initializer_is_rejected() -> None:
    """Initializers must be plain values."""
    with pytest.raises(UnsupportedExpressionError):
        encode_argument(Construct(Account, "ann", nickname=Construct(Account, "bob")))


def test_remote_member_as_argument_is_rejected() -> None:
    """Members of the remote root cannot be passed as values."""
    with pytest.raises(UnsupportedExpressionError):
        compiled = compile_path(lambda w: w.add(w.counter, 1), Workspace)
        encode_arguments(compiled.arguments)


def test_value_node_xml_shape() -> None:
    """Value nodes serialize as ``<value type=...>text</value>``."""
    element: ElementTree.Element = ElementTree.fromstring(dumps_argument(ValueNode("builtins:int", "7")))
    assert element.tag == "value"
    assert element.get("type") == "builtins:int"
    assert element.text == "7"


def test_constructor_node_xml_shape() -> None:
    """Constructor nodes nest positional nodes and ``<init>`` children."""
    node: ArgumentNode = encode_argument(Construct(Account, "ann", nickname="a"))
    element: ElementTree.Element = ElementTree.fromstring(dumps_argument(node))
    assert element.tag == "ctor"
    assert element.get("type") == ACCOUNT_ID
    assert [child.tag for child in element] == ["value", "init"]
    init_element: ElementTree.Element = element[1]
    assert init_element.get("prop") == "nickname"
    assert init_element.get("type") == "builtins:str"


def test_args_payload_round_trip_preserves_structure() -> None:
    """Nodes read back from the payload equal the nodes written."""
    nodes: list[ArgumentNode] = encode_arguments(
        (
            " spaced | text <&> ",
            "",
            Construct(Account, "ann", 5, nickname="a"),
        )
    )
    payload: str = dumps_arguments(nodes)
    assert payload.startswith(f"<{ARGS_TAG}>") is True
    decoded: list[ArgumentNode] = loads_arguments(payload)
    assert repr(decoded) == repr(nodes)


def test_empty_args_payload() -> None:
    """A call without arguments sends an empty ``<args>`` element."""
    assert loads_arguments(dumps_arguments([])) == []


def test_malformed_payloads_are_protocol_errors() -> None:
    """Broken XML, unknown tags and missing attributes are rejected."""
    with pytest.raises(InstantRpcProtocolError):
        loads_argument("<value type='builtins:int'>1")
    with pytest.raises(InstantRpcProtocolError, match="Unexpected"):
        loads_argument("<thing type='builtins:int'>1</thing>")
    with pytest.raises(InstantRpcProtocolError, match="type"):
        loads_argument("<value>1</value>")
    with pytest.raises(InstantRpcProtocolError, match="args"):
        loads_arguments("<value type='builtins:int'>1</value>")


def test_carriage_returns_survive_the_payload() -> None:
    """Line endings in values and initializers come back exactly as written."""
    node: ArgumentNode = loads_argument(dumps_argument(encode_argument("a\r\nb\rc")))
    assert node.text == "a\r\nb\rc"  # type: ignore[union-attr]

    nodes: list[ArgumentNode] = loads_arguments(
        dumps_arguments(encode_arguments(("x\ry", Construct(Account, "ann\r", nickname="\r\n"))))
    )
    assert nodes[0].text == "x\ry"  # type: ignore[union-attr]
    constructed: ArgumentNode = nodes[1]
    assert constructed.arguments[0].text == "ann\r"  # type: ignore[union-attr]
    assert constructed.initializers["nickname"].text == "\r\n"  # type: ignore[union-attr]


def test_characters_xml_cannot_carry_fail_before_sending() -> None:
    """Control characters outside XML are refused while encoding."""
    with pytest.raises(CodecNotSupportedError, match="cannot carry"):
        encode_argument("a\x00b")
    with pytest.raises(CodecNotSupportedError, match="cannot carry"):
        encode_argument(Construct(Account, "ann", nickname="\x1b[0m"))
    assert encode_argument("tab\tnewline\n").text == "tab\tnewline\n"  # type: ignore[union-attr]


def test_lossy_tuple_argument_fails_before_sending() -> None:
    """Tuple elements that would not parse back are refused while encoding."""
    with pytest.raises(CodecNotSupportedError):
        encode_argument(("a, b", "c"))
