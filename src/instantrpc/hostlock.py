"""Machine-wide advisory lock guarding the single hosting process."""

import logging
import os
import sys

from instantrpc.errors import AlreadyHostedError

if sys.platform == "win32":
    import msvcrt
else:
    import fcntl

_LOGGER: logging.Logger = logging.getLogger(__name__)


class HostLock:
    """Non-blocking exclusive lock on a well-known file.

    The lock belongs to the open file, so a second ``HostLock`` on the same
    path fails even inside the same process. Closing the file or exiting the
    process releases it.
    """

    _path: str
    _fd: int | None

    def __init__(self, path: str) -> None:
        """Initialize an unacquired lock.

        :param path: Lock file path.
        """
        self._path = path
        self._fd = None

    @property
    def path(self) -> str:
        return self._path

    @property
    def is_held(self) -> bool:
        """Report whether this object holds the lock.

        :returns: ``True`` after a successful ``acquire``.
        """
        return self._fd is not None

    def acquire(self) -> None:
        """Take the lock without waiting.

        :raises AlreadyHostedError: If another holder has it.
        """
        if self._fd is not None:
            return

        fd: int = os.open(self._path, os.O_RDWR | os.O_CREAT, 0o600)
        try:
            if sys.platform == "win32":
                msvcrt.locking(fd, msvcrt.LK_NBLCK, 1)
            else:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as exc:
            os.close(fd)
            raise AlreadyHostedError(
                f"Another process already hosts instantrpc targets on this machine (lock {self._path})."
            ) from exc

        self._fd = fd
        _LOGGER.debug("Acquired host lock %s", self._path)

    def release(self) -> None:
        """Release the lock if held."""
        fd: int | None = self._fd
        if fd is None:
            return
        self._fd = None
        try:
            if sys.platform == "win32":
                msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)
            else:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)
        _LOGGER.debug("Released host lock %s", self._path)

    def __enter__(self) -> "HostLock":
        self.acquire()
        return self

    def __exit__(self, exc_type: object, exc_value: object, exc_traceback: object) -> None:
        self.release()
