import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncGenerator, List

import aiofiles
import aiofiles.os

from streamsaver.core.errors import IOFailure, NotFound
from streamsaver.models import Artifact
from streamsaver.utils.file_utils import is_safe_name

STREAM_BLOCK_SIZE = 1024 * 1024  # 1MB blocks for streaming downloads


class ArtifactCatalog:
    """
    Read-only view of the final directory. Nothing is cached: every call
    enumerates the directory, so it always reflects what is on disk.
    """

    def __init__(self, final_dir: Path):
        self.final_dir = final_dir

    async def list(self) -> List[Artifact]:
        """
        List finished artifacts, most recently modified first.
        """
        try:
            artifacts = await asyncio.to_thread(self._scan)
        except OSError as e:
            raise IOFailure(f"failed to list artifacts: {e}") from e
        artifacts.sort(key=lambda artifact: (artifact.modified_at, artifact.name), reverse=True)
        return artifacts

    async def stat(self, name: str) -> Artifact:
        path = self._path(name)
        try:
            stat = await aiofiles.os.stat(path)
        except FileNotFoundError:
            raise NotFound(f"file {name} not found")
        except OSError as e:
            raise IOFailure(f"failed to stat {name}: {e}") from e
        return Artifact(name=name, size_bytes=stat.st_size, modified_at=_mtime(stat.st_mtime))

    async def read_range(self, name: str, start_byte: int, end_byte: int) -> AsyncGenerator[bytes, None]:
        """
        Read an inclusive byte range of an artifact and yield it in blocks.
        Used for streaming downloads.
        """
        path = self._path(name)
        async with aiofiles.open(path, "rb") as f:
            await f.seek(start_byte)
            bytes_to_read = end_byte - start_byte + 1
            bytes_read = 0

            while bytes_read < bytes_to_read:
                block = await f.read(min(STREAM_BLOCK_SIZE, bytes_to_read - bytes_read))
                if not block:
                    break
                bytes_read += len(block)
                yield block

    def _scan(self) -> List[Artifact]:
        if not self.final_dir.exists():
            return []
        artifacts = []
        for path in self.final_dir.iterdir():
            if not path.is_file():
                continue
            stat = path.stat()
            artifacts.append(
                Artifact(name=path.name, size_bytes=stat.st_size, modified_at=_mtime(stat.st_mtime))
            )
        return artifacts

    def _path(self, name: str) -> Path:
        if not is_safe_name(name):
            raise NotFound(f"file {name} not found")
        return self.final_dir / name


def _mtime(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)
