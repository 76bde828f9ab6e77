"""
Session bookkeeping shared by the sending and receiving sides.
"""

import time
from enum import Enum
from dataclasses import dataclass, field
from typing import Callable, List, Optional


class SessionState(Enum):
    """Receive/send session states."""
    AWAITING_FRAME = 'awaiting_frame'
    STREAMING_PAYLOAD = 'streaming_payload'
    SESSION_COMPLETE = 'session_complete'
    SESSION_FAILED = 'session_failed'

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.SESSION_COMPLETE, SessionState.SESSION_FAILED)


@dataclass
class TransferredFile:
    """One file that crossed the wire in full."""
    path: str
    size: int


@dataclass
class SessionResult:
    """Outcome of one session, returned to whoever ran it."""
    peer: str
    state: SessionState = SessionState.AWAITING_FRAME
    files: List[TransferredFile] = field(default_factory=list)
    error: Optional[Exception] = None
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None

    @property
    def ok(self) -> bool:
        return self.state == SessionState.SESSION_COMPLETE

    @property
    def total_bytes(self) -> int:
        return sum(f.size for f in self.files)

    @property
    def elapsed_seconds(self) -> float:
        end = self.end_time if self.end_time is not None else time.time()
        return end - self.start_time

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'peer': self.peer,
            'state': self.state.value,
            'files': [{'path': f.path, 'size': f.size} for f in self.files],
            'total_bytes': self.total_bytes,
            'elapsed_seconds': self.elapsed_seconds,
            'error': str(self.error) if self.error else None,
        }


# Called with (relative path, byte count) after each completed file
FileCallback = Callable[[str, int], None]
