import asyncio
import logging
import time
import uuid
from pathlib import Path
from typing import Dict, List

import aiofiles
import aiofiles.os
from pydantic import ValidationError

from streamsaver.core.errors import InvalidArgument, IOFailure, NotFound, StreamSaverError
from streamsaver.models import UploadSession
from streamsaver.services.chunk_store import ChunkStore
from streamsaver.utils.file_utils import is_safe_name, safe_name

logger = logging.getLogger(__name__)

SNAPSHOT_NAME = "meta.json"


class SessionRegistry:
    """
    Owns the in-memory record of every staged upload session.

    Each session also has a JSON snapshot next to its chunks. The snapshot
    is only a recovery aid: a registry miss reloads it and re-registers the
    session, after which memory is authoritative again.
    """

    def __init__(self, chunk_store: ChunkStore):
        self.chunk_store = chunk_store
        self._sessions: Dict[str, UploadSession] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def snapshot_path(self, session_id: str) -> Path:
        return self.chunk_store.session_dir(session_id) / SNAPSHOT_NAME

    def lock(self, session_id: str) -> asyncio.Lock:
        """Critical section guarding read-mutate-persist for one session."""
        if session_id not in self._locks:
            self._locks[session_id] = asyncio.Lock()
        return self._locks[session_id]

    async def create(
        self,
        filename: str,
        total_size: int = 0,
        total_chunks: int = 1,
        mime_type: str = "application/octet-stream",
    ) -> UploadSession:
        if not filename:
            raise InvalidArgument("filename is required")
        if total_chunks < 0:
            raise InvalidArgument("totalChunks must not be negative")
        if total_size < 0:
            raise InvalidArgument("totalSize must not be negative")

        session = UploadSession(
            session_id=str(uuid.uuid4()),
            original_name=safe_name(filename),
            total_size=total_size,
            total_chunks=total_chunks,
            mime_type=mime_type,
        )
        await self.save(session)
        self._sessions[session.session_id] = session
        logger.info(
            f"Created upload session {session.session_id} for {session.original_name} "
            f"({session.total_chunks} chunks)"
        )
        return session

    async def get(self, session_id: str) -> UploadSession:
        session = self._sessions.get(session_id)
        if session is not None:
            return session

        try:
            session = await self._load_snapshot(session_id)
        except StreamSaverError:
            self._locks.pop(session_id, None)
            raise
        self._sessions[session_id] = session
        logger.info(f"Recovered upload session {session_id} from snapshot")
        return session

    async def record_chunk(self, session_id: str, index: int) -> UploadSession:
        """
        Mark index as received.

        The snapshot is rewritten unless this chunk completes the session,
        in which case the merge that follows tears the session down anyway.
        """
        if index < 0:
            raise InvalidArgument("valid chunk index is required")
        session = await self.get(session_id)
        session.mark_received(index)
        session.updated_at = time.time()
        if not self.is_complete(session):
            await self.save(session)
        return session

    @staticmethod
    def is_complete(session: UploadSession) -> bool:
        return session.is_complete

    async def remove(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
        self._locks.pop(session_id, None)
        try:
            await aiofiles.os.remove(self.snapshot_path(session_id))
        except FileNotFoundError:
            pass
        except OSError as e:
            raise IOFailure(f"failed to remove snapshot of {session_id}: {e}") from e
        logger.info(f"Removed upload session {session_id}")

    async def save(self, session: UploadSession) -> None:
        """Write the snapshot atomically: temp file first, then rename over."""
        snapshot_path = self.snapshot_path(session.session_id)
        temp_path = snapshot_path.with_suffix(".tmp")
        try:
            snapshot_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(temp_path, "w") as f:
                await f.write(session.model_dump_json(indent=2))
            await aiofiles.os.replace(temp_path, snapshot_path)
        except OSError as e:
            raise IOFailure(f"failed to write snapshot of {session.session_id}: {e}") from e

    def active_sessions(self) -> List[UploadSession]:
        return list(self._sessions.values())

    def staged_session_ids(self) -> List[str]:
        """Session ids with a staging directory on disk, registered or not."""
        temp_dir = self.chunk_store.temp_dir
        if not temp_dir.exists():
            return []
        return [path.name for path in temp_dir.iterdir() if path.is_dir()]

    async def _load_snapshot(self, session_id: str) -> UploadSession:
        if not is_safe_name(session_id):
            raise NotFound("upload session not found")
        try:
            async with aiofiles.open(self.snapshot_path(session_id), "r") as f:
                content = await f.read()
        except FileNotFoundError:
            raise NotFound("upload session not found")
        except OSError as e:
            raise IOFailure(f"failed to read snapshot of {session_id}: {e}") from e

        try:
            return UploadSession.model_validate_json(content)
        except ValidationError as e:
            raise IOFailure(f"snapshot of {session_id} is corrupt") from e
