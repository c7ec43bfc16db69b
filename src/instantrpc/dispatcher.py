"""Host-side accept loop and GET/SET/INVOKE/WAITFOR handlers."""

import logging
import os
import threading
import traceback
from multiprocessing.connection import Client
from multiprocessing.connection import Connection
from multiprocessing.connection import Listener
from multiprocessing.connection import address_type

from instantrpc.arguments import ArgumentNode
from instantrpc.arguments import loads_argument
from instantrpc.arguments import loads_arguments
from instantrpc.catalog import CallableSpec
from instantrpc.catalog import TypeCatalog
from instantrpc.catalog import TypeInfo
from instantrpc.codec import TypeCodec
from instantrpc.codec import describe_type
from instantrpc.config import LISTENER_BACKLOG
from instantrpc.decoding import ArgumentDecoder
from instantrpc.errors import ArgumentDecodeError
from instantrpc.errors import InstantRpcProtocolError
from instantrpc.errors import MemberResolutionError
from instantrpc.errors import MethodNotFoundError
from instantrpc.protocol import COMMAND_GET
from instantrpc.protocol import COMMAND_INVOKE
from instantrpc.protocol import COMMAND_SET
from instantrpc.protocol import COMMAND_WAITFOR
from instantrpc.protocol import Request
from instantrpc.protocol import Response
from instantrpc.protocol import read_message
from instantrpc.protocol import write_message
from instantrpc.registry import HostedTarget
from instantrpc.registry import TargetKey
from instantrpc.registry import TargetRegistry
from instantrpc.resolver import extract_path
from instantrpc.resolver import read_member

_LOGGER: logging.Logger = logging.getLogger(__name__)
_STOP_JOIN_TIMEOUT: float = 2.0


def _format_failure(exc: BaseException) -> str:
    """Render an exception as a failure payload.

    :param exc: Caught exception.
    :returns: ``Type: message`` followed by the formatted traceback.
    """
    formatted_traceback: str = "".join(traceback.format_exception(exc))
    return f"{type(exc).__name__}: {exc}\n{formatted_traceback}"


class CommandDispatcher:
    """Serve one request per connection, one connection at a time."""

    _registry: TargetRegistry
    _catalog: TypeCatalog
    _codec: TypeCodec
    _decoder: ArgumentDecoder
    _address: str
    _listener: Listener | None
    _thread: threading.Thread | None
    _stopping: threading.Event
    _lock: threading.Lock

    def __init__(self, registry: TargetRegistry, catalog: TypeCatalog, codec: TypeCodec, address: str) -> None:
        """Initialize a dispatcher.

        :param registry: Targets to serve.
        :param catalog: Capability table for path leaves and argument types.
        :param codec: Codec for leaf values and results.
        :param address: Listener address.
        """
        self._registry = registry
        self._catalog = catalog
        self._codec = codec
        self._decoder = ArgumentDecoder(catalog, codec)
        self._address = address
        self._listener = None
        self._thread = None
        self._stopping = threading.Event()
        self._lock = threading.Lock()

    @property
    def address(self) -> str:
        return self._address

    @property
    def is_running(self) -> bool:
        thread: threading.Thread | None = self._thread
        return thread is not None and thread.is_alive()

    def handle_text(self, text: str) -> Response:
        """Parse wire text and answer it.

        :param text: Request wire text.
        :returns: Response envelope.
        :raises InstantRpcProtocolError: If ``text`` has fewer than five fields.
        """
        return self.handle_request(Request.parse(text))

    def handle_request(self, request: Request) -> Response:
        """Answer one request.

        Every error raised while resolving, decoding or invoking becomes a
        failure envelope carrying its diagnostic text.

        :param request: Parsed request.
        :returns: Response envelope.
        """
        key: TargetKey = TargetKey(request.type_identity, request.instance_id)
        if request.command == COMMAND_WAITFOR:
            return Response.ok(str(key in self._registry))

        target: HostedTarget | None = self._registry.get(key)
        if target is None:
            return Response.failure(f"{tuple(key)} is not exposed.")

        try:
            if request.command == COMMAND_GET:
                return self._get(target, request)
            if request.command == COMMAND_SET:
                return self._set(target, request)
            if request.command == COMMAND_INVOKE:
                return self._invoke(target, request)
            raise InstantRpcProtocolError(f"Unsupported command: {request.command!r}")
        except Exception as exc:
            _LOGGER.debug("%r failed: %s", request, exc)
            return Response.failure(_format_failure(exc))

    def _get(self, target: HostedTarget, request: Request) -> Response:
        """Read a data member and render it."""
        container, name = extract_path(target, request.path)
        info: TypeInfo = self._catalog.describe(type(container))
        if name in info.methods:
            raise MemberResolutionError(
                name,
                info.identity,
                f"Member {name!r} of type [{info.identity}] is a method and cannot be read; use INVOKE.",
            )
        value: object = read_member(target, container, name)
        return Response.ok(self._codec.render_result(value))

    def _set(self, target: HostedTarget, request: Request) -> Response:
        """Decode one argument node and assign it through the mutate wrapper."""
        container, name = extract_path(target, request.path)
        if len(request.payload) == 0:
            raise ArgumentDecodeError("SET requires exactly one argument node.")
        node: ArgumentNode = loads_argument(request.payload)

        info: TypeInfo = self._catalog.describe(type(container))
        if name in info.methods:
            raise MemberResolutionError(
                name,
                info.identity,
                f"Member {name!r} of type [{info.identity}] is a method and cannot be set.",
            )
        value: object = self._decoder.decode(node)

        def _write() -> None:
            if name not in info.members and hasattr(container, name) is False:
                raise MemberResolutionError(name, info.identity)
            setattr(container, name, value)

        target.mutate(_write)
        return Response.ok()

    def _invoke(self, target: HostedTarget, request: Request) -> Response:
        """Select a method by exact argument types and call it through the evaluate wrapper."""
        container, name = extract_path(target, request.path)
        nodes: list[ArgumentNode] = []
        if len(request.payload) > 0:
            nodes = loads_arguments(request.payload)

        info: TypeInfo = self._catalog.describe(type(container))
        argument_types: list[object] = [self._decoder.node_type(node) for node in nodes]
        spec: CallableSpec | None = info.methods.get(name)
        if spec is None or spec.accepts(argument_types) is False:
            received: str = ", ".join(describe_type(argument_type) for argument_type in argument_types)
            message: str = f"Method {name}({received}) not found on type [{info.identity}]."
            if spec is not None:
                message += f" Available: {spec.describe()}."
            raise MethodNotFoundError(name, info.identity, message)
        arguments: list[object] = self._decoder.decode_all(nodes)

        def _call() -> object:
            return getattr(container, name)(*arguments)

        result: object = target.evaluate(_call)
        return Response.ok(self._codec.render_result(result))

    def start(self) -> None:
        """Bind the listener and start the accept loop once.

        The caller must hold the machine-wide host lock: a leftover Unix
        socket file at the address is removed before binding.
        """
        with self._lock:
            if self._thread is not None:
                return
            if address_type(self._address) == "AF_UNIX" and os.path.exists(self._address) is True:
                _LOGGER.debug("Removing stale socket %s", self._address)
                os.unlink(self._address)
            self._listener = Listener(self._address, backlog=LISTENER_BACKLOG)
            self._stopping.clear()
            self._thread = threading.Thread(
                target=self._serve_forever,
                name="instantrpc-dispatcher",
                daemon=True,
            )
            self._thread.start()
        _LOGGER.info("Dispatcher listening on %s", self._address)

    def stop(self) -> None:
        """Stop accepting connections and close the listener."""
        with self._lock:
            thread: threading.Thread | None = self._thread
            listener: Listener | None = self._listener
            if thread is None or listener is None:
                return
            self._stopping.set()
            try:
                # Wake the blocked accept().
                Client(self._address).close()
            except OSError:
                pass
            thread.join(timeout=_STOP_JOIN_TIMEOUT)
            listener.close()
            self._thread = None
            self._listener = None
        _LOGGER.info("Dispatcher on %s stopped", self._address)

    def _serve_forever(self) -> None:
        """Accept connections until ``stop`` is called."""
        listener: Listener | None = self._listener
        if listener is None:
            return
        while self._stopping.is_set() is False:
            try:
                connection: Connection = listener.accept()
            except OSError:
                if self._stopping.is_set() is True:
                    break
                _LOGGER.exception("Accepting a connection on %s failed", self._address)
                continue
            try:
                if self._stopping.is_set() is True:
                    break
                self._serve_connection(connection)
            except Exception:
                _LOGGER.exception("Unexpected failure while serving a connection")
            finally:
                connection.close()

    def _serve_connection(self, connection: Connection) -> None:
        """Read one request, write one response.

        :param connection: Accepted connection.
        """
        try:
            text: str = read_message(connection)
        except (EOFError, OSError):
            _LOGGER.debug("Client closed the connection before sending a request")
            return

        try:
            request: Request = Request.parse(text)
        except InstantRpcProtocolError as exc:
            _LOGGER.warning("Dropping malformed request: %s", exc)
            return

        _LOGGER.debug("Handling %r", request)
        response: Response = self.handle_request(request)
        try:
            write_message(connection, response.format())
        except (EOFError, OSError):
            _LOGGER.debug("Client disconnected before the response to %r was written", request)
