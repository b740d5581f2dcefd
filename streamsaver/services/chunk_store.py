import asyncio
import logging
import shutil
from pathlib import Path

import aiofiles

from streamsaver.core.errors import IOFailure, NotFound

logger = logging.getLogger(__name__)


class ChunkStore:
    """
    Persists chunk payloads under the staging area, one directory per
    upload session and one file per chunk index.
    """

    def __init__(self, temp_dir: Path):
        self.temp_dir = temp_dir

    def session_dir(self, session_id: str) -> Path:
        return self.temp_dir / session_id

    def chunk_path(self, session_id: str, index: int) -> Path:
        return self.session_dir(session_id) / f"chunk-{index}.part"

    async def put(self, session_id: str, index: int, data: bytes) -> None:
        """
        Write a chunk, replacing whatever an earlier attempt left at the same index.
        """
        chunk_path = self.chunk_path(session_id, index)
        try:
            chunk_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(chunk_path, "wb") as f:
                await f.write(data)
        except OSError as e:
            raise IOFailure(f"failed to store chunk {index} of {session_id}: {e}") from e
        logger.debug(f"Stored chunk {index} of {session_id} ({len(data)} bytes)")

    async def get(self, session_id: str, index: int) -> bytes:
        chunk_path = self.chunk_path(session_id, index)
        try:
            async with aiofiles.open(chunk_path, "rb") as f:
                return await f.read()
        except FileNotFoundError as e:
            raise NotFound(f"chunk {index} of {session_id} is missing") from e
        except OSError as e:
            raise IOFailure(f"failed to read chunk {index} of {session_id}: {e}") from e

    async def purge(self, session_id: str) -> None:
        """
        Remove every chunk and the session's staging directory.
        """
        session_dir = self.session_dir(session_id)
        try:
            await asyncio.to_thread(shutil.rmtree, session_dir)
        except FileNotFoundError:
            return
        except OSError as e:
            raise IOFailure(f"failed to purge staging area of {session_id}: {e}") from e
        logger.debug(f"Purged staging area of {session_id}")
