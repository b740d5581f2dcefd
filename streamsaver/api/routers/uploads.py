from typing import Optional
from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from streamsaver.api.schemas import ChunkResponse, InitUploadRequest, InitUploadResponse, UploadStatus
from streamsaver.api.dependencies import get_settings, get_upload_service
from streamsaver.utils.file_utils import read_chunk_body
from streamsaver.core.config import Settings
from streamsaver.services.upload_service import UploadService

router = APIRouter(tags=["uploads"])

@router.post("/uploads/init", response_model=InitUploadResponse, status_code=status.HTTP_201_CREATED)
async def init_upload(
    payload: Optional[InitUploadRequest] = None,
    upload_service: UploadService = Depends(get_upload_service)
):
    """
    Start a resumable upload session.
    """
    payload = payload or InitUploadRequest()
    return await upload_service.init_upload(
        filename=payload.filename,
        total_size=payload.total_size,
        total_chunks=payload.total_chunks,
        mime_type=payload.mime_type,
    )

@router.get("/uploads/{session_id}/status", response_model=UploadStatus)
async def get_upload_status(
    session_id: str,
    upload_service: UploadService = Depends(get_upload_service)
):
    """
    Report which chunks of a session have been received.
    """
    return await upload_service.get_status(session_id)

@router.post("/uploads/{session_id}/chunk", response_model=ChunkResponse, status_code=status.HTTP_202_ACCEPTED)
async def upload_chunk(
    session_id: str,
    index: Optional[str] = Form(None),
    chunk: Optional[UploadFile] = File(None),
    upload_service: UploadService = Depends(get_upload_service),
    settings: Settings = Depends(get_settings)
):
    """
    Upload one indexed chunk of a session.

    Chunks may arrive in any order and may be resent. The response carries
    the artifact name once the last missing chunk has arrived and the
    session has been merged.
    """
    chunk_data = await read_chunk_body(chunk, settings.MAX_CHUNK_BYTES)
    return await upload_service.submit_chunk(session_id, index, chunk_data)
