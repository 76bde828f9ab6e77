"""
File Transfer Protocol

Design Decision: Frame Format
=============================

Options Considered:
1. Length-prefixed binary header (4B length + JSON)
   - Unambiguous, but needs a decoder to debug

2. Newline-terminated text header + raw payload
   - Readable with netcat/tcpdump
   - Path must not contain a newline

3. One connection per file
   - No framing at all, but a handshake per file

Decision: Text header line followed by raw bytes
- One TCP connection carries a whole session
- Header is `<relative/path>:<decimal-length>\\n`
- Exactly `length` payload bytes follow, no padding
- An explicit `DONE\\n` line ends the session; a bare close is also accepted

Session Format:
```
+--------------------------+-------------------+
| a.txt:2\\n                | hi                |
| sub/b.txt:0\\n            |                   |
| DONE\\n                   |                   |
+--------------------------+-------------------+
```

The length field is everything after the first colon, so a path that
contains a colon is rejected as an invalid length rather than silently
mis-split.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Tuple, Callable, Awaitable, Set

from ..errors import (
    MalformedFrameError, InvalidLengthError, TransferIOError,
    ShortPayloadError, ConnectionFailedError,
)

logger = logging.getLogger(__name__)

# Longest header line accepted, also used as the StreamReader limit
MAX_HEADER_LENGTH = 64 * 1024

# Copy buffer for payloads in both directions
DEFAULT_BUFFER_SIZE = 32 * 1024

TERMINATOR = 'DONE'

# How a session ended (TransferProtocol.end_marker)
END_TERMINATOR = 'terminator'
END_OF_STREAM = 'eof'


@dataclass(frozen=True)
class FrameHeader:
    """Metadata line announcing one file on the stream."""
    path: str
    size: int

    def encode(self) -> bytes:
        """Serialize the header line (payload is written separately)."""
        if '\n' in self.path or '\r' in self.path:
            raise MalformedFrameError(f"path contains a newline: {self.path!r}")
        if not self.path:
            raise MalformedFrameError("empty path")
        if self.size < 0:
            raise InvalidLengthError(f"negative size {self.size} for {self.path}")
        return f"{self.path}:{self.size}\n".encode('utf-8')

    @classmethod
    def decode(cls, line: bytes) -> Optional['FrameHeader']:
        """
        Parse one header line.

        Returns:
            FrameHeader, or None if the line is the session terminator

        Raises:
            MalformedFrameError: no colon, empty path or undecodable bytes
            InvalidLengthError: length field is not a non-negative integer
        """
        if line.endswith(b'\n'):
            line = line[:-1]
            if line.endswith(b'\r'):
                line = line[:-1]

        try:
            text = line.decode('utf-8')
        except UnicodeDecodeError as e:
            raise MalformedFrameError(f"header is not UTF-8: {line[:64]!r}") from e

        if text == TERMINATOR:
            return None

        path, sep, length = text.partition(':')
        if not sep:
            raise MalformedFrameError(repr(text))
        if not path:
            raise MalformedFrameError(f"empty path in {text!r}")
        if "\x00" in path:
            raise MalformedFrameError(f"NUL byte in path {path!r}")

        # str.isdigit() admits non-ASCII digits, int() admits signs and '_'
        if not (length.isascii() and length.isdigit()):
            raise InvalidLengthError(f"{length!r} in {text!r}")

        return cls(path=path, size=int(length, 10))


class TransferProtocol:
    """
    One end of a transfer connection.

    Wraps the asyncio stream pair and knows how to read and write frames.
    Payloads are always moved through a bounded buffer so file size never
    affects memory use.
    """

    def __init__(self, reader: asyncio.StreamReader,
                 writer: asyncio.StreamWriter,
                 buffer_size: int = DEFAULT_BUFFER_SIZE):
        self.reader = reader
        self.writer = writer
        self.buffer_size = buffer_size
        self.end_marker: Optional[str] = None
        self._closed = False

    @property
    def remote_address(self) -> Tuple[str, int]:
        """Get remote peer address."""
        peer = self.writer.get_extra_info('peername')
        if peer is None:
            return ('?', 0)
        return peer[0], peer[1]

    @property
    def peer_label(self) -> str:
        host, port = self.remote_address
        return f"{host}:{port}"

    # === Receiving ===

    async def read_header(self) -> Optional[FrameHeader]:
        """
        Read the next header line.

        Returns:
            FrameHeader, or None when the session has ended. `end_marker`
            then tells whether the peer sent DONE or just closed.
        """
        try:
            line = await self.reader.readuntil(b'\n')
        except asyncio.IncompleteReadError as e:
            if not e.partial:
                self.end_marker = END_OF_STREAM
                return None
            raise MalformedFrameError(f"truncated header {e.partial[:64]!r}") from e
        except asyncio.LimitOverrunError as e:
            raise MalformedFrameError(
                f"header line exceeds {MAX_HEADER_LENGTH} bytes"
            ) from e
        except OSError as e:
            raise TransferIOError(f"connection: {e}") from e

        header = FrameHeader.decode(line)
        if header is None:
            self.end_marker = END_TERMINATOR
        return header

    async def receive_payload(self, header: FrameHeader, out) -> int:
        """
        Copy exactly header.size bytes from the stream into `out`.

        Args:
            header: Frame being received
            out: Open aiofiles binary handle

        Returns:
            Number of bytes written
        """
        remaining = header.size
        written = 0

        while remaining > 0:
            try:
                data = await self.reader.read(min(remaining, self.buffer_size))
            except OSError as e:
                raise TransferIOError(f"connection: {e}") from e

            if not data:
                raise ShortPayloadError(header.path, header.size, written)

            try:
                await out.write(data)
            except OSError as e:
                raise TransferIOError(f"writing {header.path}: {e}") from e

            written += len(data)
            remaining -= len(data)

        return written

    # === Sending ===

    async def write_header(self, header: FrameHeader):
        """Send a header line."""
        await self._write(header.encode())

    async def send_file_payload(self, header: FrameHeader, source) -> int:
        """
        Copy exactly header.size bytes from `source` to the peer.

        Bytes appended to the file after the header went out are not sent.
        A file that shrinks underneath us fails the transfer, since the
        receiver is still waiting for the announced length.
        """
        remaining = header.size
        sent = 0

        while remaining > 0:
            try:
                data = await source.read(min(remaining, self.buffer_size))
            except OSError as e:
                raise TransferIOError(f"reading {header.path}: {e}") from e

            if not data:
                raise TransferIOError(
                    f"{header.path} shrank during send "
                    f"({sent} of {header.size} bytes)"
                )

            await self._write(data)
            sent += len(data)
            remaining -= len(data)

        return sent

    async def write_done(self):
        """Send the end-of-session terminator."""
        await self._write(f"{TERMINATOR}\n".encode('utf-8'))

    async def _write(self, data: bytes):
        if self._closed:
            raise TransferIOError("connection closed")
        try:
            self.writer.write(data)
            await self.writer.drain()
        except OSError as e:
            raise TransferIOError(f"connection: {e}") from e

    async def close(self):
        """Close the connection."""
        if self._closed:
            return
        self._closed = True
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except OSError as e:
            # Peer already gone; nothing left to flush
            logger.debug(f"Error closing connection to {self.peer_label}: {e}")


# Handler run once per accepted connection
SessionHandler = Callable[[TransferProtocol], Awaitable[None]]


class TransferServer:
    """
    TCP listener that runs one session task per accepted connection.

    Sessions share nothing, so they run fully in parallel. When
    max_sessions is set, connections beyond the bound are accepted but
    wait for a free slot before their session starts.
    """

    def __init__(self, host: str = '0.0.0.0', port: int = 9000,
                 buffer_size: int = DEFAULT_BUFFER_SIZE,
                 max_sessions: int = 0):
        self.host = host
        self.port = port
        self.buffer_size = buffer_size
        self.max_sessions = max_sessions
        self.server: Optional[asyncio.AbstractServer] = None
        self._handler: Optional[SessionHandler] = None
        self._slots = asyncio.Semaphore(max_sessions) if max_sessions > 0 else None
        self._sessions: Set[asyncio.Task] = set()

    def set_handler(self, handler: SessionHandler):
        """Set the per-connection session handler."""
        self._handler = handler

    @property
    def is_running(self) -> bool:
        return self.server is not None and self.server.is_serving()

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port); port is resolved when 0 was requested."""
        if self.server is None or not self.server.sockets:
            return self.host, self.port
        sockname = self.server.sockets[0].getsockname()
        return sockname[0], sockname[1]

    @property
    def active_sessions(self) -> int:
        return len(self._sessions)

    async def start(self):
        """Start accepting connections."""
        if self._handler is None:
            raise RuntimeError("No session handler set")

        try:
            self.server = await asyncio.start_server(
                self._handle_connection,
                self.host,
                self.port,
                limit=MAX_HEADER_LENGTH,
            )
        except OSError as e:
            raise ConnectionFailedError(f"cannot listen on {self.host}:{self.port}: {e}") from e

        host, port = self.address
        logger.info(f"Transfer server listening on {host}:{port}")

    async def stop(self):
        """Stop accepting and cancel sessions still in flight."""
        if self.server is None:
            return

        self.server.close()

        sessions = list(self._sessions)
        for task in sessions:
            task.cancel()
        if sessions:
            await asyncio.gather(*sessions, return_exceptions=True)

        await self.server.wait_closed()
        self.server = None
        logger.info("Transfer server stopped")

    async def serve_forever(self):
        """Block until the server is stopped or the task is cancelled."""
        if self.server is None:
            await self.start()
        await self.server.serve_forever()

    async def _handle_connection(self, reader: asyncio.StreamReader,
                                 writer: asyncio.StreamWriter):
        """Run one session for an incoming connection."""
        protocol = TransferProtocol(reader, writer, buffer_size=self.buffer_size)
        peer = protocol.peer_label
        task = asyncio.current_task()
        self._sessions.add(task)
        logger.debug(f"New transfer connection from {peer}")

        try:
            if self._slots is not None:
                async with self._slots:
                    await self._handler(protocol)
            else:
                await self._handler(protocol)
        except Exception as e:
            logger.error(f"Error handling connection from {peer}: {e}")
        finally:
            self._sessions.discard(task)
            await protocol.close()
            logger.debug(f"Connection closed: {peer}")


async def connect_to_peer(host: str, port: int,
                          timeout: Optional[float] = 10.0,
                          buffer_size: int = DEFAULT_BUFFER_SIZE) -> TransferProtocol:
    """
    Connect to a peer's transfer server.

    Raises:
        ConnectionFailedError: if the connection cannot be established
    """
    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port, limit=MAX_HEADER_LENGTH),
            timeout=timeout
        )
    except asyncio.TimeoutError as e:
        raise ConnectionFailedError(f"{host}:{port}: timed out after {timeout}s") from e
    except OSError as e:
        raise ConnectionFailedError(f"{host}:{port}: {e}") from e

    return TransferProtocol(reader, writer, buffer_size=buffer_size)
