"""End-to-end tests over a real local channel."""

import multiprocessing
import os
import sys
import threading
from multiprocessing.connection import Client
from multiprocessing.connection import Connection

import pytest

from instantrpc import Construct
from instantrpc import InstantRpcClient
from instantrpc import OwnerThreadExecutor
from instantrpc import RpcHost
from instantrpc import as_type
from instantrpc.demo import MainWindow
from instantrpc.demo import MainWindowViewModel
from instantrpc.demo import MyParam
from instantrpc.demo import Visibility
from instantrpc.demo import host_main_window
from instantrpc.errors import AlreadyHostedError
from instantrpc.errors import CodecNotSupportedError
from instantrpc.errors import DuplicateRegistrationError
from instantrpc.errors import ExposeTimeoutError
from instantrpc.errors import InstantRpcTransportError
from instantrpc.errors import OperationFailedError
from instantrpc.errors import UnsupportedExpressionError
from instantrpc.hostlock import HostLock
from instantrpc.protocol import exchange
from instantrpc.registry import TargetKey
from tests.fixtures.endpoints import Endpoint
from tests.fixtures.host_process import serve_workspace
from tests.fixtures.host_process import try_expose
from tests.fixtures.hosted_objects import Account
from tests.fixtures.hosted_objects import Color
from tests.fixtures.hosted_objects import Opaque
from tests.fixtures.hosted_objects import Point
from tests.fixtures.hosted_objects import Settings
from tests.fixtures.hosted_objects import Workspace

WAIT_SECONDS: float = 10.0


def test_get_set_invoke_round_trip(endpoint: Endpoint) -> None:
    """Typed values survive SET, GET and INVOKE through the channel."""
    with RpcHost(address=endpoint.address, lock_path=endpoint.lock_path) as host:
        workspace: Workspace = Workspace()
        host.expose(workspace)
        client: InstantRpcClient[Workspace] = InstantRpcClient(Workspace, address=endpoint.address)
        client.wait_until_exposed(timeout=WAIT_SECONDS)

        client.set(lambda w: w.title, "hello")
        assert client.get(lambda w: w.title) == "hello"
        assert client.get(lambda w: w.upper_title) == "HELLO"
        assert workspace.title == "hello"

        assert client.invoke(lambda w: w.add(1, 2)) == 3
        assert client.invoke(lambda w: w.greet("ann")) == "hello ann!"
        assert client.invoke(lambda w: w.next_color(Color.BLUE)) is Color.RED

        client.set(lambda w: w.settings.origin, Point(3, 4))
        assert client.get(lambda w: w.settings.origin) == Point(3, 4)
        client.set(lambda w: w.settings.size, (3, 4))
        assert client.get(lambda w: w.settings.size) == (3, 4)
        assert client.invoke(lambda w: w.swap((3, 4))) == (4, 3)

        assert client.get(lambda w: w.settings.ratio) == 0.5
        assert client.get(lambda w: w.settings.enabled) is True
        assert client.get(lambda w: w.settings.maybe_level) is None
        client.set(lambda w: w.settings.maybe_level, 5)
        assert client.get(lambda w: w.settings.maybe_level) == 5

        assert client.invoke(lambda w: w.increment()) == 1
        assert client.invoke(lambda w: w.reset()) is None
        assert workspace.counter == 0

        assert client.invoke(lambda w: w.describe_account(Construct(Account, "ann", 2, nickname="a"))) == "ann:2:a"
        assert client.invoke(lambda w: w.make_opaque()) == "Opaque<hello>"

        client.set(lambda w: w.title, "a\r\nb")
        assert client.get(lambda w: w.title) == "a\r\nb"
        assert client.invoke(lambda w: w.echo("x\ry")) == "x\ry"


def test_result_type_overrides_inference(endpoint: Endpoint) -> None:
    """Explicit result types win; unresolved types come back as text."""
    with RpcHost(address=endpoint.address, lock_path=endpoint.lock_path) as host:
        host.expose(Workspace())
        typed: InstantRpcClient[Workspace] = InstantRpcClient(Workspace, address=endpoint.address)
        untyped: InstantRpcClient[object] = InstantRpcClient(
            "tests.fixtures.hosted_objects:Workspace",
            address=endpoint.address,
        )
        assert typed.get(lambda w: w.settings.level, result_type=str) == "1"
        assert untyped.get(lambda w: w.settings.level) == "1"
        assert untyped.get(lambda w: w.settings.level, result_type=int) == 1
        assert typed.get(lambda w: w.extra.color) == "RED"
        assert typed.get(lambda w: as_type(Settings, w.extra).color) is Color.RED


def test_host_failures_raise_operation_failed(endpoint: Endpoint) -> None:
    """Failure envelopes surface with the host's diagnostic."""
    with RpcHost(address=endpoint.address, lock_path=endpoint.lock_path) as host:
        host.expose(Workspace())
        client: InstantRpcClient[Workspace] = InstantRpcClient(Workspace, address=endpoint.address)

        with pytest.raises(OperationFailedError, match="Operation failed. Detail: MemberResolutionError") as info:
            client.get(lambda w: w.settings.nothing)
        assert "nothing" in info.value.detail

        with pytest.raises(OperationFailedError, match="ValueError: boom"):
            client.invoke(lambda w: w.fail())

        other: InstantRpcClient[Workspace] = InstantRpcClient(Workspace, "other", address=endpoint.address)
        with pytest.raises(OperationFailedError, match="is not exposed"):
            other.get(lambda w: w.title)


def test_client_rejects_bad_calls_before_sending(endpoint: Endpoint) -> None:
    """Shape and encoding errors are raised locally, without a host."""
    client: InstantRpcClient[Workspace] = InstantRpcClient(Workspace, address=endpoint.address)
    with pytest.raises(UnsupportedExpressionError, match="invoke"):
        client.get(lambda w: w.add(1, 2))
    with pytest.raises(UnsupportedExpressionError):
        client.set(lambda w: w.reset(), 1)
    with pytest.raises(UnsupportedExpressionError, match="method call"):
        client.invoke(lambda w: w.title)
    with pytest.raises(CodecNotSupportedError):
        client.set(lambda w: w.extra, Opaque("x"))
    with pytest.raises(UnsupportedExpressionError):
        client.get(lambda w: w.settings[0])


def test_duplicate_instance_id_is_rejected(endpoint: Endpoint) -> None:
    """One key per process; other instance ids coexist."""
    with RpcHost(address=endpoint.address, lock_path=endpoint.lock_path) as host:
        first: TargetKey = host.expose(Workspace())
        with pytest.raises(DuplicateRegistrationError, match="Duplicated instanceId ''"):
            host.expose(Workspace())
        second: TargetKey = host.expose(Workspace(), instance_id="second")
        assert first != second

        assert InstantRpcClient(Workspace, address=endpoint.address).is_exposed() is True
        assert InstantRpcClient(Workspace, "second", address=endpoint.address).is_exposed() is True
        assert InstantRpcClient(Workspace, "third", address=endpoint.address).is_exposed() is False


def test_expose_rejects_none(endpoint: Endpoint) -> None:
    """There is nothing to expose in ``None``."""
    with RpcHost(address=endpoint.address, lock_path=endpoint.lock_path) as host:
        with pytest.raises(ValueError):
            host.expose(None)
        assert host.is_serving is False


@pytest.mark.skipif(sys.platform == "win32", reason="Unix socket directories only")
def test_failed_expose_leaves_nothing_behind(endpoint: Endpoint) -> None:
    """A listener that cannot bind undoes the registration and the host lock."""
    socket_dir: str = os.path.join(os.path.dirname(endpoint.lock_path), "later")
    host: RpcHost = RpcHost(address=os.path.join(socket_dir, "h.sock"), lock_path=endpoint.lock_path)
    try:
        with pytest.raises(OSError):
            host.expose(Workspace())
        assert host.registry.keys() == []
        assert host.is_serving is False
        with HostLock(endpoint.lock_path) as other_lock:
            assert other_lock.is_held is True

        os.mkdir(socket_dir)
        host.expose(Workspace())
        assert host.is_serving is True
        assert InstantRpcClient(Workspace, address=host.address).is_exposed() is True
    finally:
        host.close()


def test_second_host_on_the_machine_is_refused(endpoint: Endpoint) -> None:
    """The host lock admits one hosting process at a time."""
    second_address: str = endpoint.address + "2"
    with RpcHost(address=endpoint.address, lock_path=endpoint.lock_path) as host:
        host.expose(Workspace())
        contender: RpcHost = RpcHost(address=second_address, lock_path=endpoint.lock_path)
        try:
            with pytest.raises(AlreadyHostedError):
                contender.expose(Workspace())
            assert contender.is_serving is False
        finally:
            contender.close()

    successor: RpcHost = RpcHost(address=second_address, lock_path=endpoint.lock_path)
    try:
        successor.expose(Workspace())
        assert successor.is_serving is True
    finally:
        successor.close()


def test_second_hosting_process_is_refused(endpoint: Endpoint) -> None:
    """Another process cannot host while this one holds the lock."""
    context = multiprocessing.get_context("spawn")
    result_queue = context.Queue()
    with RpcHost(address=endpoint.address, lock_path=endpoint.lock_path) as host:
        host.expose(Workspace())
        process = context.Process(target=try_expose, args=(endpoint.address + "2", endpoint.lock_path, result_queue))
        process.start()
        try:
            outcome: object = result_queue.get(timeout=WAIT_SECONDS * 3)
        finally:
            process.join(timeout=WAIT_SECONDS)
    assert outcome == "already-hosted"


def test_cross_process_round_trip(endpoint: Endpoint) -> None:
    """A spawned host process serves the same operations."""
    context = multiprocessing.get_context("spawn")
    stop_event = context.Event()
    process = context.Process(
        target=serve_workspace,
        args=(endpoint.address, endpoint.lock_path, "remote", stop_event),
        daemon=True,
    )
    process.start()
    try:
        client: InstantRpcClient[Workspace] = InstantRpcClient(Workspace, "remote", address=endpoint.address)
        client.wait_until_exposed(timeout=WAIT_SECONDS * 3)
        client.set(lambda w: w.settings.color, Color.GREEN)
        assert client.get(lambda w: w.settings.color) is Color.GREEN
        assert client.invoke(lambda w: w.settings.bump(2)) == 3
    finally:
        stop_event.set()
        process.join(timeout=WAIT_SECONDS)
        if process.is_alive() is True:
            process.terminate()


def test_wait_until_exposed_times_out(endpoint: Endpoint) -> None:
    """Waiting for a target nobody hosts ends in a timeout."""
    client: InstantRpcClient[Workspace] = InstantRpcClient(Workspace, address=endpoint.address)
    with pytest.raises(ExposeTimeoutError) as info:
        client.wait_until_exposed(timeout=0.3)
    assert isinstance(info.value, TimeoutError) is True


def test_wait_until_exposed_sees_late_exposure(endpoint: Endpoint) -> None:
    """Polling continues until the target appears."""
    with RpcHost(address=endpoint.address, lock_path=endpoint.lock_path) as host:
        host.expose(Workspace())
        timer: threading.Timer = threading.Timer(0.2, host.expose, args=(Workspace(), "late"))
        timer.start()
        try:
            InstantRpcClient(Workspace, "late", address=endpoint.address).wait_until_exposed(timeout=WAIT_SECONDS)
        finally:
            timer.join()


def test_malformed_request_drops_the_connection(endpoint: Endpoint) -> None:
    """Requests with fewer than five fields get no response."""
    with RpcHost(address=endpoint.address, lock_path=endpoint.lock_path) as host:
        host.expose(Workspace())
        with pytest.raises(InstantRpcTransportError):
            exchange(endpoint.address, "GET|only")
        assert InstantRpcClient(Workspace, address=endpoint.address).is_exposed() is True


def test_client_disconnect_does_not_stop_the_host(endpoint: Endpoint) -> None:
    """A client that connects and leaves is tolerated."""
    with RpcHost(address=endpoint.address, lock_path=endpoint.lock_path) as host:
        host.expose(Workspace())
        connection: Connection = Client(endpoint.address)
        connection.close()
        assert InstantRpcClient(Workspace, address=endpoint.address).is_exposed() is True


def test_closed_host_stops_answering(endpoint: Endpoint) -> None:
    """After close the channel is gone and the lock is free."""
    host: RpcHost = RpcHost(address=endpoint.address, lock_path=endpoint.lock_path)
    host.expose(Workspace())
    host.close()
    assert host.is_serving is False
    with pytest.raises(InstantRpcTransportError):
        InstantRpcClient(Workspace, address=endpoint.address).is_exposed()
    with HostLock(endpoint.lock_path) as lock:
        assert lock.is_held is True


def test_stale_socket_file_is_replaced(endpoint: Endpoint) -> None:
    """A leftover socket path from a dead host does not block binding."""
    if os.name == "nt":
        pytest.skip("named pipes leave no file behind")
    with open(endpoint.address, "w", encoding="utf-8"):
        pass
    with RpcHost(address=endpoint.address, lock_path=endpoint.lock_path) as host:
        host.expose(Workspace())
        assert InstantRpcClient(Workspace, address=endpoint.address).is_exposed() is True


def test_host_lock_is_exclusive(endpoint: Endpoint) -> None:
    """A held lock refuses other holders until released."""
    first: HostLock = HostLock(endpoint.lock_path)
    second: HostLock = HostLock(endpoint.lock_path)
    first.acquire()
    try:
        first.acquire()
        with pytest.raises(AlreadyHostedError):
            second.acquire()
        assert second.is_held is False
    finally:
        first.release()
    second.acquire()
    second.release()


def test_wrappers_marshal_onto_the_owner_thread(endpoint: Endpoint) -> None:
    """Every access runs on the owner thread when its wrappers are used."""
    with OwnerThreadExecutor(name="owner") as executor, RpcHost(
        address=endpoint.address,
        lock_path=endpoint.lock_path,
    ) as host:
        workspace: Workspace = Workspace()
        mutate, evaluate = executor.wrappers()
        host.expose(workspace, mutate=mutate, evaluate=evaluate)
        client: InstantRpcClient[Workspace] = InstantRpcClient(Workspace, address=endpoint.address)
        assert client.invoke(lambda w: w.record_thread()) == "owner"
        assert workspace.calls_by_thread == {"owner": 1}


def test_hosted_window_with_thread_affinity(endpoint: Endpoint) -> None:
    """The demo window works through its owner thread and refuses other threads."""
    with OwnerThreadExecutor(name="ui") as executor, RpcHost(
        address=endpoint.address,
        lock_path=endpoint.lock_path,
    ) as host:
        host_main_window(host, executor)
        client: InstantRpcClient[MainWindow] = InstantRpcClient(MainWindow, address=endpoint.address)

        client.set(lambda w: w.top, 10)
        assert client.get(lambda w: w.top) == 10

        client.set(lambda w: w.visibility, Visibility.COLLAPSED)
        assert client.get(lambda w: w.visibility) is Visibility.COLLAPSED
        client.set(lambda w: w.visibility, Visibility.VISIBLE)
        assert client.get(lambda w: w.visibility) is Visibility.VISIBLE

        client.invoke(lambda w: w.hide())
        assert client.get(lambda w: w.is_visible) is False
        client.invoke(lambda w: w.show())
        assert client.get(lambda w: w.is_visible) is True

        client.set(lambda w: as_type(MainWindowViewModel, w.data_context).value, "changed")
        assert client.get(lambda w: as_type(MainWindowViewModel, w.data_context).value) == "changed"
        assert client.invoke(lambda w: as_type(MainWindowViewModel, w.data_context).get_value()) == "changed"
        assert client.invoke(lambda w: as_type(MainWindowViewModel, w.data_context).add(1, 2)) == 3

        concatenated: object = client.invoke(
            lambda w: as_type(MainWindowViewModel, w.data_context).concat(
                Construct(MyParam, "1", "2"),
                Construct(MyParam, value="3"),
            )
        )
        assert concatenated == "123"

        client.set(lambda w: as_type(MainWindowViewModel, w.data_context).pair, (3, 4))
        assert client.get(lambda w: as_type(MainWindowViewModel, w.data_context).pair) == (3, 4)
        assert client.invoke(lambda w: as_type(MainWindowViewModel, w.data_context).get_pair()) == (3, 4)

        client.set(lambda w: as_type(MainWindowViewModel, w.data_context).parsable_value, MyParam("1", "2"))
        fetched: object = client.get(lambda w: as_type(MainWindowViewModel, w.data_context).parsable_value)
        assert isinstance(fetched, MyParam) is True
        assert fetched.value == "12"  # type: ignore[attr-defined]
        returned: object = client.invoke(lambda w: as_type(MainWindowViewModel, w.data_context).get_parsable_value())
        assert returned.value == "12"  # type: ignore[attr-defined]


def test_window_without_wrappers_hits_thread_affinity(endpoint: Endpoint) -> None:
    """Without wrappers the dispatcher thread is refused by the window."""
    with RpcHost(address=endpoint.address, lock_path=endpoint.lock_path) as host:
        host.expose(MainWindow())
        client: InstantRpcClient[MainWindow] = InstantRpcClient(MainWindow, address=endpoint.address)
        with pytest.raises(OperationFailedError, match="ThreadAffinityError"):
            client.get(lambda w: w.top)
