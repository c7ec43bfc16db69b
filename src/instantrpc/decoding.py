"""Host-side reconstruction of argument values from argument nodes."""

from instantrpc.arguments import ArgumentNode
from instantrpc.arguments import ConstructorNode
from instantrpc.arguments import ValueNode
from instantrpc.catalog import TypeCatalog
from instantrpc.catalog import TypeInfo
from instantrpc.codec import TypeCodec
from instantrpc.codec import describe_type
from instantrpc.errors import ArgumentDecodeError
from instantrpc.errors import CodecNotSupportedError
from instantrpc.errors import ConstructionError
from instantrpc.errors import MemberResolutionError


class ArgumentDecoder:
    """Turn argument nodes back into values, constructing objects where asked."""

    _catalog: TypeCatalog
    _codec: TypeCodec

    def __init__(self, catalog: TypeCatalog, codec: TypeCodec) -> None:
        """Initialize a decoder.

        :param catalog: Catalog resolving node type identities.
        :param codec: Codec parsing leaf text.
        """
        self._catalog = catalog
        self._codec = codec

    def node_type(self, node: ArgumentNode) -> object:
        """Resolve the type a node declares.

        :param node: Argument node.
        :returns: Registered class or ``tuple[...]`` alias.
        """
        return self._catalog.resolve(node.type_identity)

    def decode_all(self, nodes: list[ArgumentNode]) -> list[object]:
        """Decode positional nodes in order.

        :param nodes: Argument nodes.
        :returns: Decoded values.
        """
        return [self.decode(node) for node in nodes]

    def decode(self, node: ArgumentNode) -> object:
        """Decode one node.

        :param node: Argument node.
        :returns: Decoded value.
        :raises ArgumentDecodeError: If the node cannot be decoded.
        """
        if isinstance(node, ValueNode) is True:
            return self._parse_leaf(node)
        return self._construct(node)

    def _parse_leaf(self, node: ValueNode) -> object:
        """Parse a value node against its resolved type."""
        leaf_type: object = self.node_type(node)
        if self._codec.can_encode(leaf_type) is False:
            raise ArgumentDecodeError(f"'parse' is not implemented on type [{node.type_identity}].")
        return self._codec.parse(leaf_type, node.text)

    def _construct(self, node: ConstructorNode) -> object:
        """Call the constructor a node describes, then apply its initializers.

        Construction runs directly on the dispatcher thread; the new object is
        not yet part of the hosted graph.

        :param node: Constructor node.
        :returns: New instance.
        :raises ConstructionError: If no constructor accepts the arguments.
        """
        target_type: object = self.node_type(node)
        if isinstance(target_type, type) is False:
            raise ConstructionError(f"[{node.type_identity}] cannot be constructed.")
        info: TypeInfo = self._catalog.describe(target_type)

        arguments: list[object] = self.decode_all(node.arguments)
        argument_types: list[object] = [self.node_type(argument) for argument in node.arguments]
        if info.constructor.accepts(argument_types) is False:
            received: str = ", ".join(describe_type(argument_type) for argument_type in argument_types)
            raise ConstructionError(
                f"No constructor of [{info.identity}] accepts ({received}); "
                + f"available: {info.constructor.describe()}."
            )
        try:
            instance: object = target_type(*arguments)
        except TypeError as exc:
            raise ConstructionError(f"Constructing [{info.identity}] failed: {exc}") from exc

        for name, initializer in node.initializers.items():
            if name not in info.members and hasattr(instance, name) is False:
                raise MemberResolutionError(name, info.identity)
            try:
                value: object = self._parse_leaf(initializer)
            except CodecNotSupportedError as exc:
                raise ArgumentDecodeError(f"Initializer {name!r} of [{info.identity}]: {exc}") from exc
            setattr(instance, name, value)
        return instance
