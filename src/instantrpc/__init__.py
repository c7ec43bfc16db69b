"""Public package API for instantrpc."""

from instantrpc.affinity import OwnerThreadExecutor
from instantrpc.api import connect
from instantrpc.api import expose
from instantrpc.api import register_type
from instantrpc.arguments import Construct
from instantrpc.client import InstantRpcClient
from instantrpc.codec import CompositeCodec
from instantrpc.codec import TypeCodec
from instantrpc.errors import AlreadyHostedError
from instantrpc.errors import ArgumentDecodeError
from instantrpc.errors import CodecNotSupportedError
from instantrpc.errors import CodecParseError
from instantrpc.errors import ConstructionError
from instantrpc.errors import DuplicateRegistrationError
from instantrpc.errors import ExposeTimeoutError
from instantrpc.errors import InstantRpcError
from instantrpc.errors import InstantRpcProtocolError
from instantrpc.errors import InstantRpcTransportError
from instantrpc.errors import MemberResolutionError
from instantrpc.errors import MethodNotFoundError
from instantrpc.errors import OperationFailedError
from instantrpc.errors import UnknownTypeError
from instantrpc.errors import UnsupportedExpressionError
from instantrpc.host import RpcHost
from instantrpc.paths import as_type

__all__: list[str] = [
    "connect",
    "expose",
    "register_type",
    "as_type",
    "Construct",
    "CompositeCodec",
    "InstantRpcClient",
    "OwnerThreadExecutor",
    "RpcHost",
    "TypeCodec",
    "AlreadyHostedError",
    "ArgumentDecodeError",
    "CodecNotSupportedError",
    "CodecParseError",
    "ConstructionError",
    "DuplicateRegistrationError",
    "ExposeTimeoutError",
    "InstantRpcError",
    "InstantRpcProtocolError",
    "InstantRpcTransportError",
    "MemberResolutionError",
    "MethodNotFoundError",
    "OperationFailedError",
    "UnknownTypeError",
    "UnsupportedExpressionError",
]
