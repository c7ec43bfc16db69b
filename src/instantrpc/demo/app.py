"""Host the demo window in this process until asked to stop."""

import logging
import threading

from instantrpc.affinity import OwnerThreadExecutor
from instantrpc.demo.main_window import MainWindow
from instantrpc.host import RpcHost
from instantrpc.host import get_default_host
from instantrpc.registry import TargetKey

_LOGGER: logging.Logger = logging.getLogger(__name__)


def host_main_window(host: RpcHost, executor: OwnerThreadExecutor, instance_id: str = "") -> MainWindow:
    """Create a window on the owner thread and expose it through ``host``.

    :param host: Host to expose through.
    :param executor: Owner thread of the window.
    :param instance_id: Instance id to expose under.
    :returns: The hosted window.
    """
    window: MainWindow = executor.invoke(MainWindow)  # type: ignore[assignment]
    mutate, evaluate = executor.wrappers()
    key: TargetKey = host.expose(window, instance_id=instance_id, mutate=mutate, evaluate=evaluate)
    _LOGGER.info("Hosting %s", key)
    return window


def run_hosted_app(
    address: str | None = None,
    lock_path: str | None = None,
    stop_event: threading.Event | None = None,
    instance_id: str = "",
) -> None:
    """Host a ``MainWindow`` until ``stop_event`` is set.

    Without an address or lock path the process-wide default host is used and
    the process serves until it exits.

    :param address: Listener address.
    :param lock_path: Machine-wide lock file.
    :param stop_event: Event ending the run; waits forever when omitted.
    :param instance_id: Instance id to expose under.
    """
    if address is None and lock_path is None:
        host: RpcHost = get_default_host()
    else:
        host = RpcHost(address=address, lock_path=lock_path)
    if stop_event is None:
        stop_event = threading.Event()

    with OwnerThreadExecutor(name="demo-ui") as executor:
        host_main_window(host, executor, instance_id=instance_id)
        try:
            stop_event.wait()
        finally:
            host.close()
