"""Custom error types for instantrpc."""


class InstantRpcError(Exception):
    """Base class for all instantrpc errors."""


class InstantRpcProtocolError(InstantRpcError):
    """Raised for malformed requests, responses or argument payloads."""


class InstantRpcTransportError(InstantRpcError):
    """Raised when the local channel cannot be opened or breaks mid-exchange."""


class OperationFailedError(InstantRpcError):
    """Raised on the client when the host answers with a failure envelope."""

    detail: str

    def __init__(self, detail: str) -> None:
        """Initialize an operation failure.

        :param detail: Diagnostic text sent by the host, kept verbatim.
        """
        self.detail = detail
        super().__init__(f"Operation failed. Detail: {detail}")


class UnsupportedExpressionError(InstantRpcError):
    """Raised when an accessor expression uses a shape that cannot become a path."""


class CodecNotSupportedError(InstantRpcError):
    """Raised when a type has no string conversion."""


class CodecParseError(InstantRpcError):
    """Raised when text does not parse into the requested codec-able type."""


class DuplicateRegistrationError(InstantRpcError):
    """Raised when a ``(type, instance id)`` pair is exposed twice in one process."""


class AlreadyHostedError(InstantRpcError):
    """Raised when another process on this machine already hosts targets."""


class MemberResolutionError(InstantRpcError):
    """Raised when a member cannot be found on a container object."""

    member_name: str
    container_type: str

    def __init__(self, member_name: str, container_type: str, message: str | None = None) -> None:
        """Initialize a resolution error.

        :param member_name: Name of the missing member.
        :param container_type: Type identity of the object searched.
        :param message: Optional replacement for the default message.
        """
        self.member_name = member_name
        self.container_type = container_type
        if message is None:
            message = f"Member {member_name!r} not found on type [{container_type}]."
        super().__init__(message)


class MethodNotFoundError(MemberResolutionError):
    """Raised when no method matches the requested name and argument types."""


class ArgumentDecodeError(InstantRpcError):
    """Raised when an argument node cannot be turned back into a value."""


class UnknownTypeError(ArgumentDecodeError):
    """Raised when a node names a type identity missing from the type catalog."""


class ConstructionError(ArgumentDecodeError):
    """Raised when no constructor accepts the decoded positional arguments."""


class ExposeTimeoutError(InstantRpcError, TimeoutError):
    """Raised when a target is not exposed before the caller's deadline."""
