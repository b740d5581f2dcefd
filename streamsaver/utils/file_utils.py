import re
import time
from typing import Optional, Tuple

from fastapi import UploadFile

from streamsaver.core.errors import InvalidArgument, PayloadTooLarge

UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")
DEFAULT_NAME = "video.bin"


def safe_name(name: Optional[str]) -> str:
    """
    Sanitize a client supplied filename.

    Every character outside letters, digits, dot, dash and underscore is
    replaced with an underscore. An empty name falls back to DEFAULT_NAME.
    """
    return UNSAFE_CHARS.sub("_", name or DEFAULT_NAME)


def is_safe_name(name: str) -> bool:
    """True if name is already sanitized and cannot address a parent directory."""
    return bool(name) and name not in (".", "..") and not UNSAFE_CHARS.search(name)


class Disambiguator:
    """
    Issues millisecond timestamps used as artifact name prefixes.

    Tokens are strictly increasing within a process, so two artifacts
    created in the same millisecond still get distinct names.
    """

    def __init__(self):
        self._last = 0

    def next_token(self) -> int:
        token = max(int(time.time() * 1000), self._last + 1)
        self._last = token
        return token

    def artifact_name(self, original_name: str) -> str:
        return f"{self.next_token()}-{safe_name(original_name)}"


def parse_range_header(range_header: str, file_size: int) -> Tuple[int, int]:
    """
    Parse a single `bytes=start-end` Range header into inclusive offsets.

    Raises InvalidArgument when the header is malformed. The caller checks
    the returned range against the file size.
    """
    range_type, _, range_value = range_header.partition("=")
    if range_type.strip() != "bytes" or "-" not in range_value or "," in range_value:
        raise InvalidArgument("invalid range header format")

    start_str, end_str = (part.strip() for part in range_value.split("-", 1))
    try:
        if not start_str:
            # Suffix range: the last N bytes
            suffix = int(end_str)
            return max(file_size - suffix, 0), file_size - 1
        start = int(start_str)
        end = min(int(end_str), file_size - 1) if end_str else file_size - 1
    except ValueError:
        raise InvalidArgument("invalid range header format")
    return start, end


async def read_chunk_body(upload: Optional[UploadFile], max_bytes: int) -> Optional[bytes]:
    """
    Read an uploaded chunk, refusing anything over max_bytes.

    Returns None when the request carried no chunk part at all.
    """
    if upload is None:
        return None
    data = await upload.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise PayloadTooLarge(f"chunk exceeds the {max_bytes} byte limit")
    return data

