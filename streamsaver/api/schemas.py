from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Fields are snake_case in Python and camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InitUploadRequest(CamelModel):
    filename: Optional[str] = None
    total_size: Optional[int] = None
    total_chunks: Optional[int] = None
    mime_type: Optional[str] = None

class InitUploadResponse(CamelModel):
    session_id: str
    complete: bool = False
    output: Optional[str] = None

class UploadStatus(CamelModel):
    session_id: str
    total_chunks: int
    received_chunks: List[int]
    complete: bool

class ChunkResponse(CamelModel):
    session_id: str
    index: int
    received: int
    total_chunks: int
    complete: bool
    output: Optional[str] = None


class InitStreamRequest(CamelModel):
    filename: Optional[str] = None
    mime_type: Optional[str] = None

class InitStreamResponse(CamelModel):
    stream_id: str
    file: str

class StreamChunkResponse(CamelModel):
    stream_id: str
    received_chunks: int
    bytes_written: int

class FinishStreamResponse(CamelModel):
    stream_id: str
    output: str
    bytes_written: int
    chunks: int


class ArtifactInfo(CamelModel):
    name: str
    size_bytes: int
    modified_at: datetime

class FileListResponse(BaseModel):
    files: List[ArtifactInfo]
