"""
Source Enumeration

Turns a send path into the ordered list of (local file, wire path) pairs
a send session streams.

Policy:
- A non-directory path is sent alone, relative to its parent directory
- Directories are walked depth-first, names in sorted order
- Names starting with '.' are skipped; a hidden directory takes its
  whole subtree with it
- Only regular files produce frames; the receiver rebuilds directories
  from the file paths
- A symlink whose target is missing aborts the walk like any other
  unreadable file

Filesystem calls go through aiofiles.os so a large tree never blocks the
event loop a listener may be sharing.
"""

import errno
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator

import aiofiles.os

logger = logging.getLogger(__name__)

HIDDEN_PREFIX = '.'


@dataclass(frozen=True)
class SourceFile:
    """A local file and the slash-separated path it is sent under."""
    path: Path
    relative_path: str


def is_hidden(name: str) -> bool:
    return name.startswith(HIDDEN_PREFIX)


def to_wire_path(path: Path, base: Path) -> str:
    """Relative path from base, always '/'-separated."""
    return path.relative_to(base).as_posix()


async def iter_source_files(root: Path) -> AsyncIterator[SourceFile]:
    """
    Enumerate files to send for `root`.

    Errors from stat or directory listing propagate; the caller aborts
    the session on the first one.

    Yields:
        SourceFile entries in send order
    """
    root = Path(root)

    if not await aiofiles.os.path.isdir(root):
        # Raises FileNotFoundError for a missing path
        await aiofiles.os.stat(root)
        yield SourceFile(path=root, relative_path=root.name)
        return

    async for source in _walk(root, root):
        yield source


async def _walk(directory: Path, base: Path) -> AsyncIterator[SourceFile]:
    names = sorted(await aiofiles.os.listdir(directory))

    for name in names:
        path = directory / name

        if is_hidden(name):
            logger.debug(f"Skipping hidden entry {path}")
            continue

        if await aiofiles.os.path.islink(path):
            if not await aiofiles.os.path.exists(path):
                raise FileNotFoundError(errno.ENOENT, "Dangling symlink", str(path))
            if await aiofiles.os.path.isdir(path):
                logger.debug(f"Skipping symlinked directory {path}")
                continue

        if await aiofiles.os.path.isdir(path):
            async for source in _walk(path, base):
                yield source
        elif await aiofiles.os.path.isfile(path):
            yield SourceFile(path=path, relative_path=to_wire_path(path, base))
        else:
            logger.debug(f"Skipping non-regular entry {path}")
