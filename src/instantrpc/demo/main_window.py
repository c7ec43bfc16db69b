"""A window-like object that may only be touched from the thread that created it."""

import enum
import threading

from instantrpc.demo.view_model import MainWindowViewModel


class Visibility(enum.Enum):
    """Display state of a window."""

    VISIBLE = 0
    HIDDEN = 1
    COLLAPSED = 2


class ThreadAffinityError(RuntimeError):
    """Raised when a window is accessed from a thread other than its owner."""


class MainWindow:
    """Demo root object with UI-style thread affinity.

    Every property and method checks that it runs on the owner thread, so it
    must be exposed with wrappers that marshal onto that thread.
    """

    _owner_thread_id: int
    _top: int
    _visibility: Visibility
    _data_context: object

    def __init__(self) -> None:
        self._owner_thread_id = threading.get_ident()
        self._top = 0
        self._visibility = Visibility.VISIBLE
        self._data_context = MainWindowViewModel()

    @property
    def owner_thread_id(self) -> int:
        return self._owner_thread_id

    def verify_access(self) -> None:
        """Check that the caller runs on the owner thread.

        :raises ThreadAffinityError: On any other thread.
        """
        if threading.get_ident() != self._owner_thread_id:
            raise ThreadAffinityError("The calling thread cannot access this object because a different thread owns it.")

    @property
    def top(self) -> int:
        self.verify_access()
        return self._top

    @top.setter
    def top(self, value: int) -> None:
        self.verify_access()
        self._top = value

    @property
    def visibility(self) -> Visibility:
        self.verify_access()
        return self._visibility

    @visibility.setter
    def visibility(self, value: Visibility) -> None:
        self.verify_access()
        self._visibility = value

    @property
    def is_visible(self) -> bool:
        self.verify_access()
        return self._visibility is Visibility.VISIBLE

    @property
    def data_context(self) -> object:
        """View model, typed loosely; cast it with ``as_type`` in accessors."""
        self.verify_access()
        return self._data_context

    def show(self) -> None:
        self.verify_access()
        self._visibility = Visibility.VISIBLE

    def hide(self) -> None:
        self.verify_access()
        self._visibility = Visibility.HIDDEN
