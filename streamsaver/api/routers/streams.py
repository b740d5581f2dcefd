from typing import Optional
from fastapi import APIRouter, Depends, File, UploadFile, status
from streamsaver.api.schemas import FinishStreamResponse, InitStreamRequest, InitStreamResponse, StreamChunkResponse
from streamsaver.api.dependencies import get_live_writer, get_settings
from streamsaver.core.config import Settings
from streamsaver.services.live_writer import LiveAppendWriter
from streamsaver.utils.file_utils import read_chunk_body

router = APIRouter(tags=["streams"])

@router.post("/streams/init", response_model=InitStreamResponse, status_code=status.HTTP_201_CREATED)
async def init_stream(
    payload: Optional[InitStreamRequest] = None,
    live_writer: LiveAppendWriter = Depends(get_live_writer)
):
    """
    Open a live capture. Chunks sent to it are appended in arrival order.
    """
    payload = payload or InitStreamRequest()
    stream = await live_writer.init(filename=payload.filename, mime_type=payload.mime_type)
    return InitStreamResponse(stream_id=stream.stream_id, file=stream.artifact_name)

@router.post("/streams/{stream_id}/chunk", response_model=StreamChunkResponse, status_code=status.HTTP_202_ACCEPTED)
async def append_stream_chunk(
    stream_id: str,
    chunk: Optional[UploadFile] = File(None),
    live_writer: LiveAppendWriter = Depends(get_live_writer),
    settings: Settings = Depends(get_settings)
):
    chunk_data = await read_chunk_body(chunk, settings.MAX_CHUNK_BYTES)
    return await live_writer.append_chunk(stream_id, chunk_data)

@router.post("/streams/{stream_id}/finish", response_model=FinishStreamResponse)
async def finish_stream(
    stream_id: str,
    live_writer: LiveAppendWriter = Depends(get_live_writer)
):
    """
    Close a live capture and publish it as an artifact.
    """
    return await live_writer.finish(stream_id)

@router.delete("/streams/{stream_id}")
async def abort_stream(
    stream_id: str,
    live_writer: LiveAppendWriter = Depends(get_live_writer)
):
    """
    Discard a live capture without publishing it.
    """
    await live_writer.abort(stream_id)
    return {"detail": f"Stream {stream_id} aborted"}
