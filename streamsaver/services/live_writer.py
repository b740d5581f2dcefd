import asyncio
import logging
import os
import time
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles
import aiofiles.os

from streamsaver.core.errors import InvalidArgument, IOFailure, NotFound
from streamsaver.models import LiveCaptureSession
from streamsaver.utils.file_utils import Disambiguator

logger = logging.getLogger(__name__)


class LiveAppendWriter:
    """
    Keeps one open append handle per live capture and writes chunks in the
    order they are received. There is no index and no reordering.

    Captures grow under live_dir and move into final_dir on finish, so the
    artifact catalog only ever sees finished captures.
    """

    def __init__(
        self,
        live_dir: Path,
        final_dir: Path,
        disambiguator: Disambiguator,
        default_filename: str = "live.webm",
        default_mime_type: str = "video/webm",
    ):
        self.live_dir = live_dir
        self.final_dir = final_dir
        self.disambiguator = disambiguator
        self.default_filename = default_filename
        self.default_mime_type = default_mime_type
        self._streams: Dict[str, LiveCaptureSession] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    async def init(self, filename: Optional[str] = None, mime_type: Optional[str] = None) -> LiveCaptureSession:
        stream_id = str(uuid.uuid4())
        artifact_name = self.disambiguator.artifact_name(filename or self.default_filename)
        capture_path = self.live_dir / artifact_name
        try:
            capture_path.parent.mkdir(parents=True, exist_ok=True)
            handle = await aiofiles.open(capture_path, "ab")
        except OSError as e:
            raise IOFailure(f"failed to open live capture {artifact_name}: {e}") from e

        stream = LiveCaptureSession(
            stream_id=stream_id,
            artifact_name=artifact_name,
            capture_path=capture_path,
            mime_type=mime_type or self.default_mime_type,
            handle=handle,
        )
        self._streams[stream_id] = stream
        self._locks[stream_id] = asyncio.Lock()
        logger.info(f"Opened live stream {stream_id} -> {artifact_name}")
        return stream

    async def append_chunk(self, stream_id: str, data: Optional[bytes]) -> Dict[str, Any]:
        """
        Append data to the stream. Appends to one stream never interleave:
        each waits for the previous one to finish writing.
        """
        self._get(stream_id)
        if data is None:
            raise InvalidArgument("chunk is required")

        async with self._locks[stream_id]:
            stream = self._get(stream_id)
            if stream.failed:
                raise IOFailure(f"live stream {stream_id} failed earlier ({stream.error}); finish it to close")
            try:
                await stream.handle.write(data)
                await stream.handle.flush()
            except OSError as e:
                stream.failed = True
                stream.error = str(e)
                logger.error(f"Append to live stream {stream_id} failed: {e}")
                raise IOFailure(f"failed to append to live stream {stream_id}: {e}") from e

            stream.chunk_count += 1
            stream.bytes_written += len(data)
            stream.last_update = time.time()
            result = {
                "stream_id": stream_id,
                "received_chunks": stream.chunk_count,
                "bytes_written": stream.bytes_written,
            }
        logger.debug(
            f"Live stream {stream_id}: chunk {result['received_chunks']}, {result['bytes_written']} bytes"
        )
        return result

    async def finish(self, stream_id: str) -> Dict[str, Any]:
        """
        Flush and close the capture, move it into the final directory and
        forget the stream.
        """
        self._get(stream_id)
        async with self._locks[stream_id]:
            stream = self._get(stream_id)
            # Gone from the registry before the first await on I/O, so a
            # concurrent finish or append sees NotFound.
            self._streams.pop(stream_id, None)
            self._locks.pop(stream_id, None)
            try:
                try:
                    await stream.handle.flush()
                    await asyncio.to_thread(os.fsync, stream.handle.fileno())
                finally:
                    await stream.handle.close()
                await aiofiles.os.replace(stream.capture_path, self.final_dir / stream.artifact_name)
            except OSError as e:
                logger.error(f"Finishing live stream {stream_id} failed: {e}")
                raise IOFailure(f"failed to finalize live capture {stream.artifact_name}: {e}") from e

        logger.info(
            f"Finished live stream {stream_id}: {stream.chunk_count} chunks, "
            f"{stream.bytes_written} bytes -> {stream.artifact_name}"
        )
        return {
            "stream_id": stream_id,
            "output": stream.artifact_name,
            "bytes_written": stream.bytes_written,
            "chunks": stream.chunk_count,
        }

    async def abort(self, stream_id: str) -> None:
        """Close the capture and delete whatever was written."""
        self._get(stream_id)
        async with self._locks[stream_id]:
            stream = self._get(stream_id)
            self._streams.pop(stream_id, None)
            self._locks.pop(stream_id, None)
            try:
                await stream.handle.close()
                await aiofiles.os.remove(stream.capture_path)
            except FileNotFoundError:
                pass
            except OSError as e:
                raise IOFailure(f"failed to delete live capture {stream.artifact_name}: {e}") from e
        logger.info(f"Aborted live stream {stream_id}")

    def active_streams(self) -> List[LiveCaptureSession]:
        return list(self._streams.values())

    def _get(self, stream_id: str) -> LiveCaptureSession:
        stream = self._streams.get(stream_id)
        if stream is None:
            raise NotFound("live stream session not found")
        return stream
