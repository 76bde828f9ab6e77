"""
File Sender

Streams a file, or every visible file under a directory, to a listening
peer over one connection, then sends the DONE terminator.

Send Flow:
1. Classify the path (single file or directory)
2. Dial the peer
3. For each file: header, exactly `size` payload bytes
4. DONE, close

The first error aborts the whole send. The connection is closed without
DONE, so a receiver mid-payload sees a short read.
"""

import logging
import time
from pathlib import Path
from typing import Optional, Tuple

import aiofiles
import aiofiles.os

from ..errors import TransferError, TransferIOError
from .protocol import TransferProtocol, FrameHeader, connect_to_peer, DEFAULT_BUFFER_SIZE
from .session import SessionState, SessionResult, TransferredFile, FileCallback
from ..file.walker import SourceFile, iter_source_files

logger = logging.getLogger(__name__)


class SendSession:
    """Sends one source path over an established connection."""

    def __init__(self, protocol: TransferProtocol, root: Path,
                 on_file: Optional[FileCallback] = None):
        self.protocol = protocol
        self.root = Path(root)
        self.on_file = on_file
        self.result = SessionResult(peer=protocol.peer_label)

    @property
    def state(self) -> SessionState:
        return self.result.state

    async def run(self) -> SessionResult:
        """
        Send every file, then the terminator.

        Raises:
            TransferError: on the first failure; the result records it too
        """
        try:
            try:
                async for source in iter_source_files(self.root):
                    await self._send_file(source)
            except OSError as e:
                raise TransferIOError(f"walking {self.root}: {e}") from e

            await self.protocol.write_done()

        except TransferError as e:
            self.result.state = SessionState.SESSION_FAILED
            self.result.error = e
            raise
        else:
            self.result.state = SessionState.SESSION_COMPLETE
        finally:
            self.result.end_time = time.time()

        return self.result

    async def _send_file(self, source: SourceFile):
        self.result.state = SessionState.STREAMING_PAYLOAD

        try:
            size = (await aiofiles.os.stat(source.path)).st_size
            async with aiofiles.open(source.path, 'rb') as f:
                header = FrameHeader(path=source.relative_path, size=size)
                await self.protocol.write_header(header)
                sent = await self.protocol.send_file_payload(header, f)
        except OSError as e:
            raise TransferIOError(f"opening {source.path}: {e}") from e

        self.result.files.append(TransferredFile(source.relative_path, sent))
        self.result.state = SessionState.AWAITING_FRAME
        logger.info(f"Sent: {source.relative_path} ({sent:,} bytes)")
        if self.on_file:
            self.on_file(source.relative_path, sent)


async def send_path(address: Tuple[str, int], path: Path,
                    buffer_size: int = DEFAULT_BUFFER_SIZE,
                    connect_timeout: Optional[float] = 10.0,
                    on_file: Optional[FileCallback] = None) -> SessionResult:
    """
    Send a file or folder to a peer.

    Args:
        address: (host, port) of the listening peer
        path: File or directory to send
        buffer_size: Payload copy buffer
        connect_timeout: Dial timeout in seconds, None to wait forever
        on_file: Called with (relative path, bytes) after each file

    Returns:
        The completed SessionResult

    Raises:
        ConnectionFailedError: the peer could not be reached
        TransferError: the send aborted
    """
    path = Path(path)
    if not await aiofiles.os.path.exists(path):
        raise TransferIOError(f"source not found: {path}")

    host, port = address
    protocol = await connect_to_peer(host, port, timeout=connect_timeout,
                                     buffer_size=buffer_size)
    logger.info(f"Sending {path} to {host}:{port}")

    try:
        result = await SendSession(protocol, path, on_file).run()
    except TransferError as e:
        logger.error(f"Send to {host}:{port} failed: {e}")
        raise
    finally:
        await protocol.close()

    logger.info(f"Transfer complete: {len(result.files)} files, "
                f"{result.total_bytes:,} bytes")
    return result
