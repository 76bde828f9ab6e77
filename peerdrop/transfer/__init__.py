"""
Transfer Module - Framed File Streaming

Handles the TCP session protocol between a sending and a receiving peer.
"""

from ..errors import (
    TransferError, MalformedFrameError, InvalidLengthError, PathTraversalError,
    TransferIOError, ShortPayloadError, ConnectionFailedError,
)
from .protocol import FrameHeader, TransferProtocol, TransferServer, connect_to_peer
from .session import SessionState, SessionResult, TransferredFile
from .receiver import ReceiveSession, FileReceiver
from .sender import SendSession, send_path

__all__ = [
    'TransferError',
    'MalformedFrameError',
    'InvalidLengthError',
    'PathTraversalError',
    'TransferIOError',
    'ShortPayloadError',
    'ConnectionFailedError',
    'FrameHeader',
    'TransferProtocol',
    'TransferServer',
    'connect_to_peer',
    'SessionState',
    'SessionResult',
    'TransferredFile',
    'ReceiveSession',
    'FileReceiver',
    'SendSession',
    'send_path',
]
