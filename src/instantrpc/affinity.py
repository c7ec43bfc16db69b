"""Run hosted-object access on the thread that owns the objects."""

import logging
import queue
import threading
from collections.abc import Callable
from concurrent.futures import Future

from instantrpc.registry import EvaluateWrapper
from instantrpc.registry import MutateWrapper

_LOGGER: logging.Logger = logging.getLogger(__name__)

_WorkItem = tuple[Callable[[], object], "Future[object]"]


class OwnerThreadExecutor:
    """A dedicated owner thread draining a queue of work items.

    Objects created through ``invoke`` live on the owner thread, and passing
    ``run``/``invoke`` as the mutate/evaluate wrappers of ``RpcHost.expose``
    keeps every GET, SET and INVOKE on that thread. Exceptions raised by a work
    item are re-raised on the calling thread.
    """

    _name: str
    _queue: "queue.Queue[_WorkItem | None]"
    _thread: threading.Thread | None
    _lock: threading.Lock

    def __init__(self, name: str = "instantrpc-owner") -> None:
        """Initialize an executor; the thread starts on first use.

        :param name: Owner thread name.
        """
        self._name = name
        self._queue = queue.Queue()
        self._thread = None
        self._lock = threading.Lock()

    @property
    def thread(self) -> threading.Thread | None:
        return self._thread

    def start(self) -> None:
        """Start the owner thread if it is not running."""
        with self._lock:
            self._start_locked()

    def _start_locked(self) -> threading.Thread:
        """Start the owner thread unless one is running; the caller holds ``_lock``.

        :returns: Running owner thread.
        """
        if self._thread is None:
            # One queue per owner thread: a stop sentinel only reaches its own thread.
            self._queue = queue.Queue()
            self._thread = threading.Thread(target=self._drain, args=(self._queue,), name=self._name, daemon=True)
            self._thread.start()
        return self._thread

    def stop(self, timeout: float | None = None) -> None:
        """Finish queued work and stop the owner thread.

        :param timeout: Seconds to wait for the thread to finish.
        """
        with self._lock:
            thread: threading.Thread | None = self._thread
            if thread is None:
                return
            self._thread = None
            self._queue.put(None)
        if thread is not threading.current_thread():
            thread.join(timeout=timeout)

    def invoke(self, action: Callable[[], object]) -> object:
        """Run ``action`` on the owner thread and wait for its result.

        Calls made from the owner thread itself run inline.

        :param action: Zero-argument callable.
        :returns: Its result.
        """
        future: "Future[object]" = Future()
        with self._lock:
            # Enqueued under the lock, so the item lands ahead of any stop sentinel.
            if threading.current_thread() is self._start_locked():
                inline: bool = True
            else:
                inline = False
                self._queue.put((action, future))
        if inline is True:
            return action()
        return future.result()

    def run(self, action: Callable[[], None]) -> None:
        """Run a mutating ``action`` on the owner thread and wait for it.

        :param action: Zero-argument callable.
        """
        self.invoke(action)

    def wrappers(self) -> tuple[MutateWrapper, EvaluateWrapper]:
        """Return ``(mutate, evaluate)`` for ``RpcHost.expose``.

        :returns: Bound ``run`` and ``invoke``.
        """
        return self.run, self.invoke

    def _drain(self, work_queue: "queue.Queue[_WorkItem | None]") -> None:
        """Run queued work items until the stop sentinel arrives."""
        while True:
            item: _WorkItem | None = work_queue.get()
            if item is None:
                return
            action, future = item
            if future.set_running_or_notify_cancel() is False:
                continue
            try:
                result: object = action()
            except BaseException as exc:
                _LOGGER.debug("Owner-thread work item raised %s", type(exc).__name__)
                future.set_exception(exc)
            else:
                future.set_result(result)

    def __enter__(self) -> "OwnerThreadExecutor":
        self.start()
        return self

    def __exit__(self, exc_type: object, exc_value: object, exc_traceback: object) -> None:
        self.stop()
