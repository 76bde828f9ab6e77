"""
Peer - Main Controller

Ties the two roles together:
- A FileReceiver listening for incoming sessions
- Outgoing send sessions to other peers

One Peer can do both at once: a send runs as its own task next to the
accept loop.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Tuple

from .config import Config
from .errors import TransferError
from .transfer import FileReceiver, SessionResult, send_path
from .transfer.session import FileCallback

logger = logging.getLogger(__name__)


def parse_address(address: str, default_port: int) -> Tuple[str, int]:
    """
    Parse `host:port`, `[ipv6]:port` or a bare host.

    Raises:
        ValueError: if the port is not a valid TCP port
    """
    address = address.strip()
    if not address:
        raise ValueError("empty address")

    if address.startswith('['):
        host, sep, rest = address[1:].partition(']')
        if not sep:
            raise ValueError(f"unterminated IPv6 address: {address}")
        port_str = rest[1:] if rest.startswith(':') else ''
        if rest and not rest.startswith(':'):
            raise ValueError(f"invalid address: {address}")
    elif address.count(':') == 1:
        host, port_str = address.split(':')
    else:
        # Bare hostname, IPv4 or unbracketed IPv6
        host, port_str = address, ''

    if not port_str:
        return host or 'localhost', default_port

    if not port_str.isdigit() or not 0 < int(port_str) <= 65535:
        raise ValueError(f"invalid port in address: {address}")

    return host or 'localhost', int(port_str)


class Peer:
    """
    A peerdrop node.

    - start()/stop(): run the listener
    - send(address, path): push a file or folder to another peer
    - serve(push=...): listen until cancelled, optionally pushing once
    """

    def __init__(self, config: Optional[Config] = None,
                 on_file_received: Optional[FileCallback] = None,
                 on_file_sent: Optional[FileCallback] = None):
        """
        Initialize a peer.

        Args:
            config: Peer configuration (uses defaults if not provided)
            on_file_received: Called with (path, bytes) per received file
            on_file_sent: Called with (path, bytes) per sent file
        """
        self.config = config or Config()
        self.on_file_sent = on_file_sent

        self.receiver = FileReceiver(
            output_dir=self.config.output_dir,
            host=self.config.host,
            port=self.config.port,
            buffer_size=self.config.buffer_size,
            max_sessions=self.config.max_sessions,
            on_file=on_file_received,
        )

        # Statistics
        self.sends_completed = 0
        self.sends_failed = 0
        self.files_sent = 0
        self.bytes_sent = 0

        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        return self.receiver.address

    async def start(self):
        """Start listening for incoming transfers."""
        if self._running:
            return

        await self.receiver.start()
        self._running = True

        host, port = self.address
        logger.info(f"Peer listening on {host}:{port}")

    async def stop(self):
        """Stop the listener; in-flight receive sessions are cancelled."""
        if not self._running:
            return

        self._running = False
        await self.receiver.stop()
        logger.info("Peer stopped")

    async def send(self, address: Tuple[str, int], path: Path) -> SessionResult:
        """
        Send a file or folder to another peer.

        Raises:
            ConnectionFailedError: if the peer cannot be reached
            TransferError: if the send aborts
        """
        try:
            result = await send_path(
                address,
                Path(path),
                buffer_size=self.config.buffer_size,
                connect_timeout=self.config.connect_timeout,
                on_file=self.on_file_sent,
            )
        except TransferError:
            self.sends_failed += 1
            raise

        self.sends_completed += 1
        self.files_sent += len(result.files)
        self.bytes_sent += result.total_bytes
        return result

    async def serve(self, push: Optional[Tuple[Tuple[str, int], Path]] = None):
        """
        Listen until cancelled.

        Args:
            push: Optional (address, path) sent once the listener is up.
                A failed push is logged; the listener keeps running.
        """
        await self.start()

        push_task = None
        if push is not None:
            address, path = push
            push_task = asyncio.create_task(self._push(address, path))

        try:
            await self.receiver.server.serve_forever()
        finally:
            if push_task is not None and not push_task.done():
                push_task.cancel()
                await asyncio.gather(push_task, return_exceptions=True)
            await self.stop()

    async def _push(self, address: Tuple[str, int], path: Path):
        host, port = address
        try:
            await self.send(address, path)
        except TransferError as e:
            logger.error(f"Push of {path} to {host}:{port} failed: {e}")

    def get_stats(self) -> dict:
        """Get complete peer statistics."""
        return {
            'running': self._running,
            'receiver': self.receiver.get_stats(),
            'sender': {
                'sends_completed': self.sends_completed,
                'sends_failed': self.sends_failed,
                'files_sent': self.files_sent,
                'bytes_sent': self.bytes_sent,
            },
        }
