from typing import Optional
from fastapi import APIRouter, Depends, Header, status
from fastapi.responses import StreamingResponse
from streamsaver.api.schemas import ArtifactInfo, FileListResponse
from streamsaver.api.dependencies import get_catalog
from streamsaver.core.errors import RangeNotSatisfiable
from streamsaver.services.catalog import ArtifactCatalog
from streamsaver.utils.file_utils import parse_range_header

router = APIRouter(tags=["files"])

@router.get("/files", response_model=FileListResponse)
async def list_files(
    catalog: ArtifactCatalog = Depends(get_catalog)
):
    """
    List finished artifacts, most recent first.
    """
    artifacts = await catalog.list()
    return FileListResponse(files=[
        ArtifactInfo(name=a.name, size_bytes=a.size_bytes, modified_at=a.modified_at)
        for a in artifacts
    ])

@router.get("/files/{name}")
async def download_file(
    name: str,
    range: Optional[str] = Header(None),
    catalog: ArtifactCatalog = Depends(get_catalog)
):
    """
    Download a finished artifact or a specific range of it.
    Supports partial content requests using the Range header.
    """
    artifact = await catalog.stat(name)
    file_size = artifact.size_bytes

    start_byte = 0
    end_byte = file_size - 1

    if range:
        start_byte, end_byte = parse_range_header(range, file_size)
        if start_byte >= file_size or start_byte > end_byte:
            raise RangeNotSatisfiable(f"Range not satisfiable for file of size {file_size}")

    content_length = max(end_byte - start_byte + 1, 0)

    headers = {
        "Content-Disposition": f"attachment; filename={name}",
        "Accept-Ranges": "bytes",
        "Content-Length": str(content_length),
    }

    # If this is a partial response
    if range:
        headers["Content-Range"] = f"bytes {start_byte}-{end_byte}/{file_size}"
        return StreamingResponse(
            catalog.read_range(name, start_byte, end_byte),
            status_code=status.HTTP_206_PARTIAL_CONTENT,
            headers=headers,
            media_type="application/octet-stream"
        )

    # Full file download
    return StreamingResponse(
        catalog.read_range(name, start_byte, end_byte),
        headers=headers,
        media_type="application/octet-stream"
    )
