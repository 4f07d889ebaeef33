import os
import shutil
import sys
import tempfile

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from ipc_service import IpcEchoServer


@pytest.fixture
def socket_path():
    # AF_UNIX paths are limited to ~100 bytes, so stay out of pytest's deep tmp_path
    directory = tempfile.mkdtemp(prefix="echo-", dir="/tmp")
    yield os.path.join(directory, "ipc.sock")
    shutil.rmtree(directory, ignore_errors=True)


@pytest.fixture
async def ipc_server(socket_path):
    server = IpcEchoServer(socket_path)
    await server.start()
    yield server
    await server.stop()
