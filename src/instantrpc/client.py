"""Client side: compile accessor expressions and exchange commands with the host."""

import logging
import time
import types
import typing
from collections.abc import Callable
from typing import Any
from typing import Generic
from typing import TypeVar

from instantrpc.arguments import ArgumentNode
from instantrpc.arguments import dumps_argument
from instantrpc.arguments import dumps_arguments
from instantrpc.arguments import encode_argument
from instantrpc.arguments import encode_arguments
from instantrpc.codec import DEFAULT_CODEC
from instantrpc.codec import TypeCodec
from instantrpc.codec import is_union
from instantrpc.codec import type_identity
from instantrpc.config import DEFAULT_MAX_POLL_INTERVAL
from instantrpc.config import DEFAULT_POLL_INTERVAL
from instantrpc.config import default_address
from instantrpc.errors import ExposeTimeoutError
from instantrpc.errors import InstantRpcTransportError
from instantrpc.errors import OperationFailedError
from instantrpc.errors import UnsupportedExpressionError
from instantrpc.paths import UNRESOLVED
from instantrpc.paths import CompiledPath
from instantrpc.paths import compile_path
from instantrpc.protocol import COMMAND_GET
from instantrpc.protocol import COMMAND_INVOKE
from instantrpc.protocol import COMMAND_SET
from instantrpc.protocol import COMMAND_WAITFOR
from instantrpc.protocol import Request
from instantrpc.protocol import Response
from instantrpc.protocol import exchange

T = TypeVar("T")

_LOGGER: logging.Logger = logging.getLogger(__name__)


class InstantRpcClient(Generic[T]):
    """Typed handle on one target exposed by the host process."""

    _type_identity: str
    _root_type: object
    _instance_id: str
    _address: str
    _codec: TypeCodec

    def __init__(
        self,
        target: type[T] | str,
        instance_id: str = "",
        address: str | None = None,
        codec: TypeCodec | None = None,
    ) -> None:
        """Initialize a client.

        :param target: Exposed root class, or its ``module:qualname`` identity
            when the class is not importable here (results are then returned as
            text unless ``result_type`` is given).
        :param instance_id: Instance id the target was exposed under.
        :param address: Host listener address; defaults to ``config.default_address()``.
        :param codec: Leaf codec.
        """
        if isinstance(target, str) is True:
            self._type_identity = target  # type: ignore[assignment]
            self._root_type = UNRESOLVED
        else:
            self._type_identity = type_identity(target)
            self._root_type = target
        self._instance_id = instance_id
        self._address = default_address() if address is None else address
        self._codec = DEFAULT_CODEC if codec is None else codec

    @property
    def type_identity(self) -> str:
        return self._type_identity

    @property
    def instance_id(self) -> str:
        return self._instance_id

    @property
    def address(self) -> str:
        return self._address

    def get(self, expression: Callable[[T], Any], result_type: object = UNRESOLVED) -> Any:
        """Read a member of the remote graph.

        :param expression: Accessor such as ``lambda w: w.data_context.title``.
        :param result_type: Type to parse the result into; inferred from annotations when omitted.
        :returns: Parsed value, ``None`` for ``None``-typed members, raw text for unknown types.
        :raises UnsupportedExpressionError: If the expression ends in a call.
        :raises OperationFailedError: If the host reports a failure.
        """
        compiled: CompiledPath = compile_path(expression, self._root_type)
        if compiled.is_call is True:
            raise UnsupportedExpressionError(f"get() needs a member path, got a call to {compiled.path!r}; use invoke().")
        payload: str = self._execute(Request(COMMAND_GET, self._type_identity, self._instance_id, compiled.path))
        return self._decode_result(payload, result_type, compiled.static_type)

    def set(self, expression: Callable[[T], Any], value: object) -> None:
        """Assign a member of the remote graph.

        :param expression: Accessor naming the member, such as ``lambda w: w.data_context.title``.
        :param value: Codec-able value or a ``Construct`` spec built on the host.
        :raises UnsupportedExpressionError: If the expression ends in a call.
        :raises CodecNotSupportedError: If ``value`` cannot be encoded; nothing is sent.
        :raises OperationFailedError: If the host reports a failure.
        """
        compiled: CompiledPath = compile_path(expression, self._root_type)
        if compiled.is_call is True:
            raise UnsupportedExpressionError(f"set() needs a member path, got a call to {compiled.path!r}.")
        node: ArgumentNode = encode_argument(value, self._codec)
        request: Request = Request(
            COMMAND_SET,
            self._type_identity,
            self._instance_id,
            compiled.path,
            dumps_argument(node),
        )
        self._execute(request)

    def invoke(self, expression: Callable[[T], Any], result_type: object = UNRESOLVED) -> Any:
        """Call a method of the remote graph.

        :param expression: Accessor ending in a call, such as ``lambda w: w.data_context.add(1, 2)``.
        :param result_type: Type to parse the result into; inferred from the return annotation when omitted.
        :returns: Parsed result, ``None`` for ``None``-returning methods, raw text for unknown types.
        :raises UnsupportedExpressionError: If the expression does not end in a call.
        :raises CodecNotSupportedError: If an argument cannot be encoded; nothing is sent.
        :raises OperationFailedError: If the host reports a failure.
        """
        compiled: CompiledPath = compile_path(expression, self._root_type)
        if compiled.is_call is False:
            raise UnsupportedExpressionError(f"invoke() needs a method call, got member {compiled.path!r}.")
        nodes: list[ArgumentNode] = encode_arguments(compiled.arguments, self._codec)
        request: Request = Request(
            COMMAND_INVOKE,
            self._type_identity,
            self._instance_id,
            compiled.path,
            dumps_arguments(nodes),
        )
        payload: str = self._execute(request)
        return self._decode_result(payload, result_type, compiled.static_type)

    def is_exposed(self) -> bool:
        """Ask the host whether this target is exposed.

        :returns: ``True`` when the host has the target registered.
        :raises InstantRpcTransportError: If no host is listening.
        """
        payload: str = self._execute(Request(COMMAND_WAITFOR, self._type_identity, self._instance_id, ""))
        return payload.strip().lower() == "true"

    def wait_until_exposed(
        self,
        timeout: float = 10.0,
        interval: float = DEFAULT_POLL_INTERVAL,
        max_interval: float = DEFAULT_MAX_POLL_INTERVAL,
    ) -> None:
        """Poll the host until this target is exposed.

        Connection failures count as "not yet" while the host starts up. The
        delay between polls doubles up to ``max_interval``.

        :param timeout: Seconds to wait in total.
        :param interval: First delay between polls.
        :param max_interval: Upper bound for the delay.
        :raises ExposeTimeoutError: If the target is not exposed in time.
        """
        deadline: float = time.monotonic() + timeout
        delay: float = interval
        while True:
            try:
                if self.is_exposed() is True:
                    return
            except InstantRpcTransportError as exc:
                _LOGGER.debug("Host not reachable yet at %s: %s", self._address, exc)

            remaining: float = deadline - time.monotonic()
            if remaining <= 0:
                raise ExposeTimeoutError(
                    f"({self._type_identity!r}, {self._instance_id!r}) was not exposed within {timeout} seconds."
                )
            time.sleep(min(delay, remaining))
            delay = min(delay * 2, max_interval)

    def send(self, request: Request) -> Response:
        """Exchange one raw request with the host.

        :param request: Wire request.
        :returns: Parsed response envelope.
        :raises InstantRpcTransportError: If the channel fails.
        """
        _LOGGER.debug("Sending %r to %s", request, self._address)
        return Response.parse(exchange(self._address, request.format()))

    def _execute(self, request: Request) -> str:
        """Send a request and return its payload, raising on a failure envelope."""
        response: Response = self.send(request)
        if response.success is False:
            raise OperationFailedError(response.payload)
        return response.payload

    def _decode_result(self, payload: str, result_type: object, static_type: object) -> Any:
        """Parse a result payload into its expected type.

        :param payload: Result text.
        :param result_type: Explicit result type, or ``UNRESOLVED``.
        :param static_type: Type inferred from annotations, or ``UNRESOLVED``.
        :returns: Parsed value, ``None`` or ``payload`` itself.
        """
        expected: object = static_type if result_type is UNRESOLVED else result_type
        if expected is None or expected is type(None):
            return None
        if expected is UNRESOLVED or expected is Any or expected is object:
            return payload

        if is_union(expected) is True:
            members: list[object] = [item for item in typing.get_args(expected) if item is not types.NoneType]
            if len(members) < len(typing.get_args(expected)) and payload == "":
                return None
            if len(members) != 1:
                return payload
            expected = members[0]

        if self._codec.can_encode(expected) is False:
            return payload
        return self._codec.parse(expected, payload)

    def __repr__(self) -> str:
        return f"InstantRpcClient({self._type_identity!r}, instance_id={self._instance_id!r})"
