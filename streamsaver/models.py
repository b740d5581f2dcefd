import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional

from pydantic import BaseModel, Field


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class UploadSession(BaseModel):
    """
    State of a staged upload. Also the shape of its on-disk snapshot.
    """
    session_id: str
    original_name: str
    total_size: int = 0
    total_chunks: int = 1
    mime_type: str = "application/octet-stream"
    created_at: str = Field(default_factory=utc_now)
    updated_at: float = Field(default_factory=time.time)
    received_chunks: List[int] = Field(default_factory=list)

    def mark_received(self, index: int) -> bool:
        """Add index to the received set. Returns False if it was already there."""
        if index in self.received_chunks:
            return False
        self.received_chunks.append(index)
        self.received_chunks.sort()
        return True

    @property
    def is_complete(self) -> bool:
        # received_chunks holds no duplicates, so counting in-range indices
        # is enough without walking 0..total_chunks-1
        in_range = sum(1 for i in self.received_chunks if i < self.total_chunks)
        return in_range == self.total_chunks


@dataclass
class LiveCaptureSession:
    stream_id: str
    artifact_name: str
    capture_path: Path
    mime_type: str
    handle: Any
    chunk_count: int = 0
    bytes_written: int = 0
    started_at: str = field(default_factory=utc_now)
    last_update: float = field(default_factory=time.time)
    failed: bool = False
    error: Optional[str] = None


@dataclass
class Artifact:
    name: str
    size_bytes: int
    modified_at: datetime
