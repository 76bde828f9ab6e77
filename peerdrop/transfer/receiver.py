"""
File Receiver

Decodes a session off one connection and writes each file under the
output root.

State Machine:
```
AWAITING_FRAME --header--> STREAMING_PAYLOAD --N bytes--> AWAITING_FRAME
      |                            |
      +--DONE / EOF--> SESSION_COMPLETE
      +--any error------------------+--> SESSION_FAILED
```

A failed session ends only itself. The file being written when it failed
stays on disk, truncated.
"""

import logging
import time
from pathlib import Path
from typing import Optional

from ..errors import TransferError
from .protocol import TransferProtocol, TransferServer, DEFAULT_BUFFER_SIZE
from .session import SessionState, SessionResult, TransferredFile, FileCallback
from ..file.storage import OutputRoot

logger = logging.getLogger(__name__)


class ReceiveSession:
    """
    Receives every frame of one connection.

    Frames are handled strictly in order: the next header is only read
    after the previous payload has been consumed byte for byte.
    """

    def __init__(self, protocol: TransferProtocol, output: OutputRoot,
                 on_file: Optional[FileCallback] = None):
        self.protocol = protocol
        self.output = output
        self.on_file = on_file
        self.result = SessionResult(peer=protocol.peer_label)

    @property
    def state(self) -> SessionState:
        return self.result.state

    async def run(self) -> SessionResult:
        """
        Run until the peer ends the session or an error occurs.

        Transfer errors are recorded on the result, never raised.
        """
        peer = self.result.peer
        logger.debug(f"Receive session started from {peer}")

        try:
            while True:
                self.result.state = SessionState.AWAITING_FRAME
                header = await self.protocol.read_header()
                if header is None:
                    break

                self.result.state = SessionState.STREAMING_PAYLOAD
                async with self.output.open_for_write(header.path) as out:
                    written = await self.protocol.receive_payload(header, out)

                self.result.files.append(TransferredFile(header.path, written))
                logger.info(f"Received: {header.path} ({written:,} bytes)")
                if self.on_file:
                    self.on_file(header.path, written)

        except TransferError as e:
            self.result.state = SessionState.SESSION_FAILED
            self.result.error = e
            logger.error(f"Session from {peer} failed: {e}")
        else:
            self.result.state = SessionState.SESSION_COMPLETE
            logger.info(
                f"Transfer from {peer} finished: {len(self.result.files)} files, "
                f"{self.result.total_bytes:,} bytes ({self.protocol.end_marker})"
            )
        finally:
            self.result.end_time = time.time()

        return self.result


class FileReceiver:
    """
    Listener side of the transfer: a TransferServer whose sessions write
    to a shared output root.
    """

    def __init__(self, output_dir: Path, host: str = '0.0.0.0',
                 port: int = 9000, buffer_size: int = DEFAULT_BUFFER_SIZE,
                 max_sessions: int = 0,
                 on_file: Optional[FileCallback] = None):
        self.output = OutputRoot(output_dir)
        self.server = TransferServer(
            host=host, port=port,
            buffer_size=buffer_size,
            max_sessions=max_sessions,
        )
        self.on_file = on_file
        self.server.set_handler(self._handle_session)

        # Statistics
        self.sessions_completed = 0
        self.sessions_failed = 0
        self.files_received = 0
        self.bytes_received = 0

    @property
    def address(self):
        return self.server.address

    async def start(self):
        """Create the output root and start listening."""
        await self.output.ensure()
        await self.server.start()
        logger.info(f"Saving received files under {self.output.root_dir}")

    async def stop(self):
        """Stop the receiver."""
        await self.server.stop()
        logger.info(f"File receiver stopped. Received {self.files_received} files, "
                    f"{self.bytes_received:,} bytes")

    async def _handle_session(self, protocol: TransferProtocol):
        result = await ReceiveSession(protocol, self.output, self.on_file).run()

        self.files_received += len(result.files)
        self.bytes_received += result.total_bytes
        if result.ok:
            self.sessions_completed += 1
        else:
            self.sessions_failed += 1

    def get_stats(self) -> dict:
        """Get receiver statistics."""
        host, port = self.address
        return {
            'host': host,
            'port': port,
            'output_dir': str(self.output.root_dir),
            'active_sessions': self.server.active_sessions,
            'sessions_completed': self.sessions_completed,
            'sessions_failed': self.sessions_failed,
            'files_received': self.files_received,
            'bytes_received': self.bytes_received,
        }
