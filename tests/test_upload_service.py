"""Upload coordination tests that drive the services directly.

Tests cover:
    - Merge failure keeps the session and its chunks, and a resend retries it
    - A chunk lost from staging surfaces as NotFound and is reported missing
    - Concurrent submissions for one session trigger exactly one merge
    - Registry recovery from the on-disk snapshot
"""

import asyncio

import aiofiles
import aiofiles.os
import pytest

from streamsaver.core.errors import InvalidArgument, IOFailure, NotFound
from streamsaver.services.container import build_services


@pytest.mark.asyncio
async def test_failed_merge_keeps_session_for_retry(services, monkeypatch):
    uploads = services.uploads
    session_id = (await uploads.init_upload("clip.mp4", total_chunks=2))["session_id"]
    await uploads.submit_chunk(session_id, 0, b"AA")

    real_replace = aiofiles.os.replace
    calls = {"count": 0}

    async def flaky_replace(src, dst):
        calls["count"] += 1
        if calls["count"] == 1:
            raise OSError("disk full")
        return await real_replace(src, dst)

    monkeypatch.setattr(aiofiles.os, "replace", flaky_replace)

    with pytest.raises(IOFailure):
        await uploads.submit_chunk(session_id, 1, b"BB")

    # Nothing published, nothing torn down
    assert list(services.settings.FINAL_DIR.iterdir()) == []
    assert services.chunk_store.chunk_path(session_id, 0).exists()
    assert services.chunk_store.chunk_path(session_id, 1).exists()
    status = await uploads.get_status(session_id)
    assert status["received_chunks"] == [0, 1]

    result = await uploads.submit_chunk(session_id, 1, b"BB")
    assert result["complete"] is True
    assert (services.settings.FINAL_DIR / result["output"]).read_bytes() == b"AABB"
    assert not services.chunk_store.session_dir(session_id).exists()


@pytest.mark.asyncio
async def test_missing_chunk_aborts_merge(services):
    uploads = services.uploads
    session_id = (await uploads.init_upload("clip.mp4", total_chunks=2))["session_id"]
    await uploads.submit_chunk(session_id, 0, b"AA")
    services.chunk_store.chunk_path(session_id, 0).unlink()

    with pytest.raises(NotFound):
        await uploads.submit_chunk(session_id, 1, b"BB")

    assert list(services.settings.FINAL_DIR.iterdir()) == []
    status = await uploads.get_status(session_id)
    assert status["received_chunks"] == [1]
    assert status["complete"] is False

    result = await uploads.submit_chunk(session_id, 0, b"AA")
    assert (services.settings.FINAL_DIR / result["output"]).read_bytes() == b"AABB"


@pytest.mark.asyncio
async def test_concurrent_submissions_merge_once(services):
    uploads = services.uploads
    session_id = (await uploads.init_upload("race.bin", total_chunks=4))["session_id"]

    results = await asyncio.gather(
        *(uploads.submit_chunk(session_id, i, bytes([65 + i]) * 3) for i in (3, 1, 0, 2)),
        uploads.submit_chunk(session_id, 2, b"CCC"),
        return_exceptions=True,
    )

    completed = [r for r in results if isinstance(r, dict) and r["complete"]]
    assert len(completed) == 1
    # The duplicate either landed before completion or found the session gone
    for r in results:
        assert isinstance(r, dict) or isinstance(r, NotFound)
    artifacts = list(services.settings.FINAL_DIR.iterdir())
    assert len(artifacts) == 1
    assert artifacts[0].read_bytes() == b"AAABBBCCCDDD"


@pytest.mark.asyncio
async def test_session_recovered_after_restart(test_settings):
    before = build_services(test_settings)
    session_id = (await before.uploads.init_upload("resume.bin", total_chunks=3))["session_id"]
    await before.uploads.submit_chunk(session_id, 0, b"one-")
    await before.uploads.submit_chunk(session_id, 2, b"-three")

    # A new container has an empty registry and must reload the snapshot
    after = build_services(test_settings)
    status = await after.uploads.get_status(session_id)
    assert status["received_chunks"] == [0, 2]
    assert status["total_chunks"] == 3

    result = await after.uploads.submit_chunk(session_id, 1, b"two")
    assert result["complete"] is True
    assert (test_settings.FINAL_DIR / result["output"]).read_bytes() == b"one-two-three"


@pytest.mark.asyncio
async def test_completion_transitions_once(services):
    uploads = services.uploads
    session_id = (await uploads.init_upload("n.bin", total_chunks=3))["session_id"]

    flags = [(await uploads.submit_chunk(session_id, i, b"x"))["complete"] for i in range(3)]

    assert flags == [False, False, True]
    with pytest.raises(NotFound):
        await uploads.submit_chunk(session_id, 2, b"x")


@pytest.mark.asyncio
async def test_submit_validates_before_touching_storage(services):
    uploads = services.uploads
    session_id = (await uploads.init_upload("v.bin", total_chunks=2))["session_id"]

    with pytest.raises(InvalidArgument):
        await uploads.submit_chunk(session_id, 0, None)
    with pytest.raises(InvalidArgument):
        await uploads.submit_chunk(session_id, -3, b"x")
    with pytest.raises(InvalidArgument):
        await uploads.submit_chunk(session_id, True, b"x")

    assert not services.chunk_store.chunk_path(session_id, 0).exists()


@pytest.mark.asyncio
async def test_chunk_write_failure_is_retryable(services, monkeypatch):
    uploads = services.uploads
    session_id = (await uploads.init_upload("w.bin", total_chunks=1))["session_id"]

    def broken_open(*args, **kwargs):
        raise OSError("read-only file system")

    monkeypatch.setattr(aiofiles, "open", broken_open)
    with pytest.raises(IOFailure):
        await uploads.submit_chunk(session_id, 0, b"data")
    assert (await uploads.get_status(session_id))["received_chunks"] == []

    monkeypatch.undo()
    result = await uploads.submit_chunk(session_id, 0, b"data")
    assert result["complete"] is True


@pytest.mark.asyncio
async def test_status_of_largest_allowed_session(services):
    uploads = services.uploads
    session_id = (await uploads.init_upload("big.bin", total_chunks=uploads.max_chunks))["session_id"]
    await uploads.submit_chunk(session_id, uploads.max_chunks - 1, b"tail")

    status = await uploads.get_status(session_id)

    assert status["received_chunks"] == [uploads.max_chunks - 1]
    assert status["complete"] is False


@pytest.mark.asyncio
async def test_chunk_index_past_limit_is_invalid(services):
    uploads = services.uploads
    session_id = (await uploads.init_upload("clip.mp4", total_chunks=2))["session_id"]

    for index in (uploads.max_chunks, "9" * 260):
        with pytest.raises(InvalidArgument):
            await uploads.submit_chunk(session_id, index, b"data")

    assert not any(services.chunk_store.session_dir(session_id).glob("chunk-*"))
