"""
Output Storage

Design Decision: Where Received Files Land
==========================================

Options Considered:
1. Write to a temp file, rename on completion
   - No half-written files visible
   - Needs cleanup of orphaned temp files

2. Write in place under the output root
   - What the sender sees is what the receiver gets, path for path
   - A failed frame leaves a truncated file behind

Decision: Write in place
- Relative paths are reconstructed verbatim under the output root
- Parent directories are created on demand
- A truncated file from a failed session is left for the user to inspect

Layout:
```
received_data/          # output root
├── a.txt
└── sub/
    └── b.txt
```

Every destination is canonicalized and must stay strictly inside the
root; `..` segments, absolute paths and symlinks leading out are refused.
"""

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path, PurePosixPath

import aiofiles
import aiofiles.os

from ..errors import PathTraversalError, TransferIOError

logger = logging.getLogger(__name__)


class OutputRoot:
    """
    Local directory that received relative paths are resolved against.

    Safe to share between concurrent sessions: it holds no mutable state
    beyond the directory tree itself.
    """

    def __init__(self, root_dir: Path):
        self.root_dir = Path(root_dir)

    async def ensure(self):
        """Create the root directory if missing."""
        try:
            await aiofiles.os.makedirs(self.root_dir, exist_ok=True)
        except OSError as e:
            raise TransferIOError(f"creating output root {self.root_dir}: {e}") from e

    def resolve(self, relative_path: str) -> Path:
        """
        Map a wire path to a destination under the root.

        Raises:
            PathTraversalError: if the result is not strictly inside the root
            TransferIOError: if the path cannot be canonicalized
        """
        if '\x00' in relative_path:
            raise PathTraversalError(f"NUL byte in {relative_path!r}")

        wire_path = PurePosixPath(relative_path)
        if wire_path.is_absolute() or Path(relative_path).is_absolute():
            raise PathTraversalError(f"absolute path {relative_path!r}")

        try:
            root = self.root_dir.resolve()
            destination = root.joinpath(*wire_path.parts).resolve()
        except (OSError, RuntimeError, ValueError) as e:
            # Symlink loops, over-long names
            raise TransferIOError(f"resolving {relative_path!r}: {e}") from e

        if destination == root or root not in destination.parents:
            raise PathTraversalError(f"{relative_path!r} escapes {self.root_dir}")

        return destination

    @asynccontextmanager
    async def open_for_write(self, relative_path: str):
        """
        Create parent directories and open the destination for writing.

        The file is truncated if it already exists and closed when the
        block exits.

        Usage:
            async with output.open_for_write('sub/b.txt') as f:
                await f.write(data)
        """
        destination = self.resolve(relative_path)
        logger.debug(f"Writing {relative_path} to {destination}")

        try:
            await aiofiles.os.makedirs(destination.parent, exist_ok=True)
        except OSError as e:
            raise TransferIOError(f"creating directory for {relative_path}: {e}") from e

        try:
            f = await aiofiles.open(destination, 'wb')
        except OSError as e:
            raise TransferIOError(f"creating {relative_path}: {e}") from e

        try:
            yield f
        finally:
            try:
                await f.close()
            except OSError as e:
                raise TransferIOError(f"closing {relative_path}: {e}") from e

    def __repr__(self) -> str:
        return f"OutputRoot({os.fspath(self.root_dir)!r})"
