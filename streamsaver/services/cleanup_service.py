import asyncio
import logging
import time
from typing import Dict

import aiofiles.os
from fastapi import FastAPI

from streamsaver.core.errors import NotFound, StreamSaverError
from streamsaver.services.container import ServiceContainer

logger = logging.getLogger(__name__)


async def run_cleanup_once(services: ServiceContainer, now: float = None) -> Dict[str, int]:
    """
    One sweep over abandoned state.

    - Staged sessions idle past STALE_UPLOAD_TIMEOUT_SECONDS are purged.
    - Live streams idle past STALE_STREAM_TIMEOUT_SECONDS are finished, so
      what was captured so far becomes an artifact.
    - Captures left in the live directory by a previous process are moved
      into the final directory once they are equally stale.
    """
    settings = services.settings
    now = time.time() if now is None else now
    upload_threshold = now - settings.STALE_UPLOAD_TIMEOUT_SECONDS
    stream_threshold = now - settings.STALE_STREAM_TIMEOUT_SECONDS
    counts = {"sessions_purged": 0, "streams_finished": 0, "captures_recovered": 0}

    registry = services.registry
    for session_id in registry.staged_session_ids():
        async with registry.lock(session_id):
            try:
                last_update = (await registry.get(session_id)).updated_at
            except StreamSaverError:
                # No readable snapshot; judge by the directory itself
                session_dir = services.chunk_store.session_dir(session_id)
                try:
                    last_update = session_dir.stat().st_mtime
                except FileNotFoundError:
                    continue
            if last_update >= upload_threshold:
                continue

            logger.info(f"Found stale upload session: {session_id}")
            try:
                await registry.remove(session_id)
                await services.chunk_store.purge(session_id)
                counts["sessions_purged"] += 1
            except StreamSaverError as e:
                logger.error(f"Error purging stale session {session_id}: {e.message}")

    live_writer = services.live_writer
    for stream in live_writer.active_streams():
        if stream.last_update >= stream_threshold:
            continue
        logger.info(f"Finishing idle live stream: {stream.stream_id}")
        try:
            await live_writer.finish(stream.stream_id)
            counts["streams_finished"] += 1
        except NotFound:
            # Finished by its client while we were sweeping
            continue
        except StreamSaverError as e:
            logger.error(f"Error finishing idle stream {stream.stream_id}: {e.message}")

    owned = {stream.capture_path for stream in live_writer.active_streams()}
    if settings.LIVE_DIR.exists():
        for capture_path in settings.LIVE_DIR.iterdir():
            if not capture_path.is_file() or capture_path in owned:
                continue
            if capture_path.stat().st_mtime >= stream_threshold:
                continue
            logger.info(f"Recovering orphaned live capture: {capture_path.name}")
            try:
                await aiofiles.os.replace(capture_path, settings.FINAL_DIR / capture_path.name)
                counts["captures_recovered"] += 1
            except OSError as e:
                logger.error(f"Error recovering capture {capture_path.name}: {e}")

    return counts


async def cleanup_stale_uploads(services: ServiceContainer):
    """
    Periodically sweep abandoned uploads and live streams.
    """
    while True:
        try:
            logger.info("Running cleanup task for stale uploads")
            counts = await run_cleanup_once(services)
            logger.info(f"Cleanup finished: {counts}")
        except Exception as e:
            logger.error(f"Error in cleanup task: {str(e)}")

        # Wait for next run
        await asyncio.sleep(services.settings.CLEANUP_INTERVAL_SECONDS)


async def close_live_streams(services: ServiceContainer) -> None:
    """
    Finish every open live stream so no file handle outlives the process.
    """
    for stream in services.live_writer.active_streams():
        try:
            await services.live_writer.finish(stream.stream_id)
        except StreamSaverError as e:
            logger.error(f"Error closing live stream {stream.stream_id}: {e.message}")


def setup_cleanup_tasks(app: FastAPI):
    """
    Set up background tasks for the FastAPI application.
    """
    @app.on_event("startup")
    async def start_cleanup_task():
        app.state.cleanup_task = asyncio.create_task(cleanup_stale_uploads(app.state.services))

    @app.on_event("shutdown")
    async def stop_cleanup_task():
        task = getattr(app.state, "cleanup_task", None)
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await close_live_streams(app.state.services)
