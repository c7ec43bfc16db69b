"""Wire commands, response envelopes and the one-exchange-per-connection transport.

Request::

    COMMAND|TypeIdentity|InstanceId|MemberPath|ArgsPayload

Response::

    True|payload    or    False|diagnostic

Frames are length-prefixed by ``multiprocessing.connection``.
"""

import logging
from multiprocessing.connection import Client
from multiprocessing.connection import Connection

from instantrpc.errors import InstantRpcProtocolError
from instantrpc.errors import InstantRpcTransportError

_LOGGER: logging.Logger = logging.getLogger(__name__)

COMMAND_GET: str = "GET"
COMMAND_SET: str = "SET"
COMMAND_INVOKE: str = "INVOKE"
COMMAND_WAITFOR: str = "WAITFOR"
COMMANDS: frozenset[str] = frozenset({COMMAND_GET, COMMAND_SET, COMMAND_INVOKE, COMMAND_WAITFOR})
FIELD_SEPARATOR: str = "|"
REQUEST_FIELD_COUNT: int = 5
_ENCODING: str = "utf-8"


class Request:
    """One parsed wire command."""

    command: str
    type_identity: str
    instance_id: str
    path: str
    payload: str

    def __init__(self, command: str, type_identity: str, instance_id: str, path: str, payload: str = "") -> None:
        self.command = command
        self.type_identity = type_identity
        self.instance_id = instance_id
        self.path = path
        self.payload = payload

    def format(self) -> str:
        """Render the wire text.

        :returns: Five ``|``-separated fields.
        """
        fields: list[str] = [self.command, self.type_identity, self.instance_id, self.path, self.payload]
        return FIELD_SEPARATOR.join(fields)

    @classmethod
    def parse(cls, text: str) -> "Request":
        """Parse wire text.

        The payload is the last field and keeps any ``|`` it contains.

        :param text: Wire text.
        :returns: Request.
        :raises InstantRpcProtocolError: If fewer than five fields are present.
        """
        fields: list[str] = text.split(FIELD_SEPARATOR, REQUEST_FIELD_COUNT - 1)
        if len(fields) < REQUEST_FIELD_COUNT:
            raise InstantRpcProtocolError(
                f"Request must have {REQUEST_FIELD_COUNT} fields, got {len(fields)}: {text[:200]!r}"
            )
        return cls(fields[0], fields[1], fields[2], fields[3], fields[4])

    def __repr__(self) -> str:
        return f"Request({self.command} {self.type_identity!r} id={self.instance_id!r} path={self.path!r})"


class Response:
    """Success flag plus result text or diagnostic."""

    success: bool
    payload: str

    def __init__(self, success: bool, payload: str = "") -> None:
        self.success = success
        self.payload = payload

    @classmethod
    def ok(cls, payload: str = "") -> "Response":
        return cls(True, payload)

    @classmethod
    def failure(cls, diagnostic: str) -> "Response":
        return cls(False, diagnostic)

    def format(self) -> str:
        """Render the wire text.

        :returns: ``True|payload`` or ``False|payload``.
        """
        return f"{self.success}{FIELD_SEPARATOR}{self.payload}"

    @classmethod
    def parse(cls, text: str) -> "Response":
        """Parse wire text.

        :param text: Wire text.
        :returns: Response.
        :raises InstantRpcProtocolError: If the success flag is missing or not a boolean.
        """
        flag, separator, payload = text.partition(FIELD_SEPARATOR)
        if separator == "":
            raise InstantRpcProtocolError(f"Response has no success flag: {text[:200]!r}")
        normalized: str = flag.strip().lower()
        if normalized not in ("true", "false"):
            raise InstantRpcProtocolError(f"Response success flag must be True or False, got {flag!r}")
        return cls(normalized == "true", payload)

    def __repr__(self) -> str:
        return f"Response(success={self.success!r}, payload={self.payload[:80]!r})"


def write_message(connection: Connection, text: str) -> None:
    """Send one framed string.

    :param connection: Open connection.
    :param text: Message text.
    """
    connection.send_bytes(text.encode(_ENCODING))


def read_message(connection: Connection) -> str:
    """Receive one framed string.

    :param connection: Open connection.
    :returns: Message text.
    """
    return connection.recv_bytes().decode(_ENCODING)


def exchange(address: str, text: str) -> str:
    """Open a connection, send one request, read one response and close.

    :param address: Listener address.
    :param text: Request text.
    :returns: Response text.
    :raises InstantRpcTransportError: If the channel cannot be opened or breaks.
    """
    try:
        connection: Connection = Client(address)
    except OSError as exc:
        raise InstantRpcTransportError(f"Cannot connect to {address}: {exc}") from exc

    try:
        write_message(connection, text)
        response_text: str = read_message(connection)
    except (EOFError, OSError) as exc:
        raise InstantRpcTransportError(f"Channel to {address} broke before a response arrived") from exc
    finally:
        connection.close()

    _LOGGER.debug("Exchanged %d request bytes for %d response bytes", len(text), len(response_text))
    return response_text
