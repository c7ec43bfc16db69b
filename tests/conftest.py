"""Shared fixtures for tests that open real channels."""

import os
import shutil
import sys
import tempfile
from collections.abc import Iterator

import pytest

from tests.fixtures.endpoints import Endpoint


@pytest.fixture()
def endpoint() -> Iterator[Endpoint]:
    """Provide a short, private address and lock path.

    Unix socket paths are limited to about a hundred bytes, so a short
    ``mkdtemp`` directory is used instead of ``tmp_path``.

    :yields: Endpoint for the active test.
    """
    work_dir: str = tempfile.mkdtemp(prefix="irpc")
    address: str = os.path.join(work_dir, "h.sock")
    if sys.platform == "win32":
        address = rf"\\.\pipe\irpc-{os.path.basename(work_dir)}"
    try:
        yield Endpoint(address, os.path.join(work_dir, "h.lock"))
    finally:
        shutil.rmtree(work_dir, ignore_errors=True)
