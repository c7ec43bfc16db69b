"""User-facing API entrypoints for instantrpc."""

from typing import TypeVar

from instantrpc.catalog import TypeInfo
from instantrpc.client import InstantRpcClient
from instantrpc.host import get_default_host
from instantrpc.registry import EvaluateWrapper
from instantrpc.registry import MutateWrapper
from instantrpc.registry import TargetKey

T = TypeVar("T")


def expose(
    instance: object,
    instance_id: str = "",
    mutate: MutateWrapper | None = None,
    evaluate: EvaluateWrapper | None = None,
) -> TargetKey:
    """Expose an object graph through the process-wide host.

    The first call claims the machine-wide host lock for the rest of the
    process lifetime and starts listening.

    :param instance: Root object.
    :param instance_id: Distinguishes several roots of the same type.
    :param mutate: Runs SET writes in the owner's execution context.
    :param evaluate: Runs GET reads and INVOKE calls in the owner's execution context.
    :returns: Key clients use to address the target.
    """
    return get_default_host().expose(instance, instance_id=instance_id, mutate=mutate, evaluate=evaluate)


def register_type(cls: type) -> TypeInfo:
    """Allow ``cls`` as an argument or constructor type on the process-wide host.

    Classes named in the annotations of exposed types are registered
    automatically; this covers the rest.

    :param cls: Class to register.
    :returns: Its capability entry.
    """
    return get_default_host().register_type(cls)


def connect(
    target: type[T] | str,
    instance_id: str = "",
    address: str | None = None,
    wait_timeout: float | None = None,
) -> InstantRpcClient[T]:
    """Create a client for an exposed target.

    :param target: Exposed root class or its ``module:qualname`` identity.
    :param instance_id: Instance id the target was exposed under.
    :param address: Host listener address.
    :param wait_timeout: When set, wait this many seconds for the target to be exposed.
    :returns: Client.
    :raises ExposeTimeoutError: If ``wait_timeout`` elapses first.
    """
    client: InstantRpcClient[T] = InstantRpcClient(target, instance_id=instance_id, address=address)
    if wait_timeout is not None:
        client.wait_until_exposed(timeout=wait_timeout)
    return client
