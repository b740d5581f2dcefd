import logging
import time
from typing import Any, Dict, Optional

from streamsaver.core.errors import InvalidArgument
from streamsaver.services.chunk_store import ChunkStore
from streamsaver.services.merge_engine import MergeEngine
from streamsaver.services.session_registry import SessionRegistry

logger = logging.getLogger(__name__)


class UploadService:
    """
    Service to handle staged uploads: session creation, status reporting
    and chunk submission, merging once every chunk has arrived.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        chunk_store: ChunkStore,
        merge_engine: MergeEngine,
        default_mime_type: str = "application/octet-stream",
        max_chunks: int = 1_000_000,
    ):
        self.registry = registry
        self.chunk_store = chunk_store
        self.merge_engine = merge_engine
        self.default_mime_type = default_mime_type
        self.max_chunks = max_chunks

    async def init_upload(
        self,
        filename: Optional[str],
        total_size: Optional[int] = None,
        total_chunks: Optional[int] = None,
        mime_type: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Start a session. A session declared with zero chunks is merged into
        an empty artifact straight away.
        """
        if total_chunks is not None and total_chunks > self.max_chunks:
            raise InvalidArgument(f"totalChunks must not exceed {self.max_chunks}")

        session = await self.registry.create(
            filename,
            total_size=0 if total_size is None else total_size,
            total_chunks=1 if total_chunks is None else total_chunks,
            mime_type=mime_type or self.default_mime_type,
        )

        output = None
        complete = False
        if session.total_chunks == 0:
            async with self.registry.lock(session.session_id):
                result = await self.merge_engine.merge(session)
            if not result.merged:
                raise result.error
            complete = True
            output = result.artifact_name

        return {
            "session_id": session.session_id,
            "complete": complete,
            "output": output,
        }

    async def get_status(self, session_id: str) -> Dict[str, Any]:
        session = await self.registry.get(session_id)
        return {
            "session_id": session_id,
            "total_chunks": session.total_chunks,
            "received_chunks": list(session.received_chunks),
            "complete": self.registry.is_complete(session),
        }

    async def submit_chunk(self, session_id: str, index: Any, data: Optional[bytes]) -> Dict[str, Any]:
        """
        Store one chunk and merge the session if it is now complete.

        Safe to retry: the chunk overwrites any earlier copy and the index is
        recorded at most once. If the merge fails the session stays registered
        and resubmitting any chunk tries the merge again.
        """
        if data is None:
            raise InvalidArgument("chunk file is required")
        index = self._parse_index(index)

        async with self.registry.lock(session_id):
            # Looked up inside the lock so a submission queued behind the
            # completing one sees the session gone rather than merging twice.
            await self.registry.get(session_id)
            await self.chunk_store.put(session_id, index, data)
            session = await self.registry.record_chunk(session_id, index)
            logger.debug(
                f"Chunk {index} of {session_id}: "
                f"{len(session.received_chunks)}/{session.total_chunks} received"
            )

            output = None
            complete = self.registry.is_complete(session)
            if complete:
                result = await self.merge_engine.merge(session)
                if not result.merged:
                    if result.missing_index is not None:
                        session.received_chunks.remove(result.missing_index)
                    session.updated_at = time.time()
                    await self.registry.save(session)
                    raise result.error
                output = result.artifact_name

        return {
            "session_id": session_id,
            "index": index,
            "received": len(session.received_chunks),
            "total_chunks": session.total_chunks,
            "complete": complete,
            "output": output,
        }

    def _parse_index(self, index: Any) -> int:
        if isinstance(index, bool):
            raise InvalidArgument("valid chunk index is required")
        try:
            index = int(index)
        except (TypeError, ValueError):
            raise InvalidArgument("valid chunk index is required")
        if index < 0 or index >= self.max_chunks:
            raise InvalidArgument("valid chunk index is required")
        return index
