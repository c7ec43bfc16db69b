"""Process-side hosting: lock, registry, capability table and dispatcher."""

import atexit
import logging
import threading

from instantrpc.catalog import TypeCatalog
from instantrpc.catalog import TypeInfo
from instantrpc.codec import DEFAULT_CODEC
from instantrpc.codec import TypeCodec
from instantrpc.codec import type_identity
from instantrpc.config import default_address
from instantrpc.config import default_lock_path
from instantrpc.dispatcher import CommandDispatcher
from instantrpc.errors import DuplicateRegistrationError
from instantrpc.errors import InstantRpcError
from instantrpc.hostlock import HostLock
from instantrpc.registry import EvaluateWrapper
from instantrpc.registry import HostedTarget
from instantrpc.registry import MutateWrapper
from instantrpc.registry import TargetKey
from instantrpc.registry import TargetRegistry

_LOGGER: logging.Logger = logging.getLogger(__name__)
_DEFAULT_HOST_LOCK: threading.Lock = threading.Lock()
_DEFAULT_HOST: "RpcHost | None" = None


class RpcHost:
    """Expose object graphs of this process to clients on the same machine."""

    _address: str
    _catalog: TypeCatalog
    _codec: TypeCodec
    _registry: TargetRegistry
    _host_lock: HostLock
    _dispatcher: CommandDispatcher
    _is_closed: bool
    _exit_hook_registered: bool
    _lock: threading.RLock

    def __init__(
        self,
        address: str | None = None,
        lock_path: str | None = None,
        catalog: TypeCatalog | None = None,
        codec: TypeCodec | None = None,
    ) -> None:
        """Initialize a host. Nothing is locked or bound until the first ``expose``.

        :param address: Listener address; defaults to ``config.default_address()``.
        :param lock_path: Machine-wide lock file; defaults to ``config.default_lock_path()``.
        :param catalog: Capability table; a fresh one by default.
        :param codec: Leaf codec; the default codec by default.
        """
        if address is None:
            address = default_address()
        if lock_path is None:
            lock_path = default_lock_path()
        self._address = address
        self._catalog = TypeCatalog() if catalog is None else catalog
        self._codec = DEFAULT_CODEC if codec is None else codec
        self._registry = TargetRegistry()
        self._host_lock = HostLock(lock_path)
        self._dispatcher = CommandDispatcher(self._registry, self._catalog, self._codec, address)
        self._is_closed = False
        self._exit_hook_registered = False
        self._lock = threading.RLock()

    @property
    def address(self) -> str:
        return self._address

    @property
    def lock_path(self) -> str:
        return self._host_lock.path

    @property
    def catalog(self) -> TypeCatalog:
        return self._catalog

    @property
    def registry(self) -> TargetRegistry:
        return self._registry

    @property
    def dispatcher(self) -> CommandDispatcher:
        return self._dispatcher

    @property
    def is_serving(self) -> bool:
        """Report whether the dispatcher is accepting connections.

        :returns: ``True`` after the first successful ``expose``.
        """
        return self._dispatcher.is_running

    @property
    def is_closed(self) -> bool:
        with self._lock:
            return self._is_closed

    def expose(
        self,
        instance: object,
        instance_id: str = "",
        mutate: MutateWrapper | None = None,
        evaluate: EvaluateWrapper | None = None,
    ) -> TargetKey:
        """Expose an object graph under ``(type(instance), instance_id)``.

        The first exposure claims the machine-wide host lock and starts the
        dispatcher.

        :param instance: Root object.
        :param instance_id: Distinguishes several roots of the same type.
        :param mutate: Runs SET writes in the owner's execution context.
        :param evaluate: Runs GET reads and INVOKE calls in the owner's execution context.
        :returns: Key clients use to address the target.
        :raises ValueError: If ``instance`` is ``None``.
        :raises DuplicateRegistrationError: If the key is already exposed here.
        :raises AlreadyHostedError: If another process hosts targets on this machine.
        :raises OSError: If the listener cannot be bound; nothing stays registered.
        """
        if instance is None:
            raise ValueError("instance must not be None")

        with self._lock:
            if self._is_closed is True:
                raise InstantRpcError("RpcHost is closed")

            key: TargetKey = TargetKey(type_identity(type(instance)), instance_id)
            if key in self._registry:
                raise DuplicateRegistrationError(
                    f"Duplicated instanceId {instance_id!r} for type [{key.type_identity}]."
                )

            lock_was_held: bool = self._host_lock.is_held
            self._host_lock.acquire()
            try:
                self._catalog.register(type(instance))
                self._registry.add(key, HostedTarget(instance, mutate=mutate, evaluate=evaluate))
                self._dispatcher.start()
            except BaseException:
                # Leave the host as it was before this call.
                self._registry.remove(key)
                if lock_was_held is False:
                    self._host_lock.release()
                raise
            if self._exit_hook_registered is False:
                atexit.register(self.close)
                self._exit_hook_registered = True

        _LOGGER.info("Exposed %s id=%r on %s", key.type_identity, instance_id, self._address)
        return key

    def register_type(self, cls: type) -> TypeInfo:
        """Allow ``cls`` as an argument or constructor type.

        :param cls: Class to register.
        :returns: Its capability entry.
        """
        return self._catalog.register(cls)

    def close(self) -> None:
        """Stop the dispatcher and release the host lock."""
        with self._lock:
            if self._is_closed is True:
                return
            self._is_closed = True
            self._dispatcher.stop()
            self._host_lock.release()
        _LOGGER.debug("Host on %s closed", self._address)

    def __enter__(self) -> "RpcHost":
        return self

    def __exit__(self, exc_type: object, exc_value: object, exc_traceback: object) -> None:
        self.close()


def get_default_host() -> RpcHost:
    """Return the process-wide host, creating it on first use.

    It reads its address and lock path from the environment and holds the
    host lock until the process exits.

    :returns: Default host.
    """
    global _DEFAULT_HOST
    with _DEFAULT_HOST_LOCK:
        if _DEFAULT_HOST is None:
            _DEFAULT_HOST = RpcHost()
        return _DEFAULT_HOST
