"""
Shared fixtures for the peerdrop test suite.
"""

import asyncio
import time

import pytest

from peerdrop.transfer.protocol import TransferProtocol, MAX_HEADER_LENGTH


class FakeWriter:
    """Collects written bytes in memory in place of a StreamWriter."""

    def __init__(self, peer=('127.0.0.1', 50000)):
        self.buffer = bytearray()
        self.closed = False
        self.peer = peer

    def write(self, data):
        self.buffer.extend(data)

    async def drain(self):
        pass

    def close(self):
        self.closed = True

    async def wait_closed(self):
        pass

    def get_extra_info(self, name, default=None):
        if name == 'peername':
            return self.peer
        return default


@pytest.fixture
def fed_protocol():
    """
    Factory for a TransferProtocol whose reader already holds `data`.

    The reader sees end-of-stream after the data unless eof=False.
    """
    def make(data: bytes, eof: bool = True, buffer_size: int = 32 * 1024,
             limit: int = MAX_HEADER_LENGTH) -> TransferProtocol:
        reader = asyncio.StreamReader(limit=limit)
        reader.feed_data(data)
        if eof:
            reader.feed_eof()
        return TransferProtocol(reader, FakeWriter(), buffer_size=buffer_size)
    return make


@pytest.fixture
def fake_writer():
    return FakeWriter()


@pytest.fixture
def make_tree(tmp_path):
    """Create files from a {relative path: bytes} mapping under tmp_path/src."""
    def make(files: dict, root_name: str = 'src'):
        root = tmp_path / root_name
        root.mkdir(parents=True, exist_ok=True)
        for rel, content in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        return root
    return make


async def wait_for_sessions(receiver, count: int, timeout: float = 5.0):
    """Wait until the receiver has finished `count` sessions."""
    deadline = time.monotonic() + timeout
    while receiver.sessions_completed + receiver.sessions_failed < count:
        if time.monotonic() > deadline:
            raise AssertionError(
                f"only {receiver.sessions_completed + receiver.sessions_failed} "
                f"of {count} sessions finished"
            )
        await asyncio.sleep(0.01)


@pytest.fixture
def wait_sessions():
    return wait_for_sessions
