import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os

from streamsaver.core.errors import IOFailure, NotFound, StreamSaverError
from streamsaver.models import UploadSession
from streamsaver.services.chunk_store import ChunkStore
from streamsaver.services.session_registry import SessionRegistry
from streamsaver.utils.file_utils import Disambiguator

logger = logging.getLogger(__name__)

PARTIAL_NAME = "merge.partial"


@dataclass
class MergeResult:
    """
    Outcome of a merge attempt.

    When merged is False the session and its chunks are untouched and the
    merge may be retried. missing_index names the chunk that was absent,
    if that is what stopped it.
    """
    merged: bool
    artifact_name: Optional[str] = None
    artifact_path: Optional[Path] = None
    error: Optional[StreamSaverError] = None
    missing_index: Optional[int] = None


class MergeEngine:
    """
    Concatenates a completed session's chunks, strictly in index order,
    into one artifact under the final directory.
    """

    def __init__(
        self,
        chunk_store: ChunkStore,
        registry: SessionRegistry,
        final_dir: Path,
        disambiguator: Disambiguator,
    ):
        self.chunk_store = chunk_store
        self.registry = registry
        self.final_dir = final_dir
        self.disambiguator = disambiguator

    async def merge(self, session: UploadSession) -> MergeResult:
        session_id = session.session_id
        artifact_name = self.disambiguator.artifact_name(session.original_name)
        artifact_path = self.final_dir / artifact_name

        # Assemble inside the staging area so a half-written file never
        # shows up in the final directory.
        partial_path = self.chunk_store.session_dir(session_id) / PARTIAL_NAME
        index = None
        try:
            partial_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(partial_path, "wb") as out_file:
                for index in range(session.total_chunks):
                    await out_file.write(await self.chunk_store.get(session_id, index))
                await out_file.flush()
                await asyncio.to_thread(os.fsync, out_file.fileno())
            await aiofiles.os.replace(partial_path, artifact_path)
        except NotFound as e:
            await self._discard_partial(partial_path)
            logger.error(f"Merge of {session_id} aborted: {e.message}")
            return MergeResult(merged=False, error=e, missing_index=index)
        except IOFailure as e:
            await self._discard_partial(partial_path)
            logger.error(f"Merge of {session_id} failed: {e.message}")
            return MergeResult(merged=False, error=e)
        except OSError as e:
            await self._discard_partial(partial_path)
            logger.error(f"Merge of {session_id} failed: {e}")
            return MergeResult(
                merged=False, error=IOFailure(f"failed to write artifact for {session_id}: {e}")
            )

        # Teardown only once the artifact is durable under its final name.
        # From here on the merge has happened; leftovers go to the reaper.
        for teardown in (self.registry.remove, self.chunk_store.purge):
            try:
                await teardown(session_id)
            except StreamSaverError as e:
                logger.warning(f"Teardown of {session_id} incomplete: {e.message}")
        logger.info(
            f"Merged {session.total_chunks} chunks of {session_id} into {artifact_name}"
        )
        return MergeResult(merged=True, artifact_name=artifact_name, artifact_path=artifact_path)

    async def _discard_partial(self, partial_path: Path) -> None:
        try:
            await aiofiles.os.remove(partial_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove partial artifact {partial_path}: {e}")
