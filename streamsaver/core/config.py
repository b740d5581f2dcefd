from pathlib import Path
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

class Settings(BaseSettings):
    PROJECT_NAME: str = "StreamSaver"
    API_PREFIX: str = "/api"
    LOG_LEVEL: str = "INFO"

    # Storage settings
    UPLOAD_DIR: Path = Path("uploads")
    MAX_CHUNK_BYTES: int = 50 * 1024 * 1024
    # Upper bound on totalChunks, and so on any chunk index
    MAX_CHUNKS_PER_UPLOAD: int = 1_000_000

    # Defaults applied when the client leaves a field out
    DEFAULT_UPLOAD_MIME_TYPE: str = "application/octet-stream"
    DEFAULT_LIVE_FILENAME: str = "live.webm"
    DEFAULT_LIVE_MIME_TYPE: str = "video/webm"

    # Cleanup settings
    CLEANUP_INTERVAL_SECONDS: int = 3600  # Run cleanup every hour
    STALE_UPLOAD_TIMEOUT_SECONDS: int = 86400  # 24 hours
    STALE_STREAM_TIMEOUT_SECONDS: int = 3600

    @property
    def TEMP_DIR(self) -> Path:
        """Staging area, one subdirectory per upload session."""
        return self.UPLOAD_DIR / "tmp"

    @property
    def FINAL_DIR(self) -> Path:
        return self.UPLOAD_DIR / "final"

    @property
    def LIVE_DIR(self) -> Path:
        """Live captures grow here until they are finished."""
        return self.UPLOAD_DIR / "live"

    def ensure_directories(self) -> None:
        for directory in (self.UPLOAD_DIR, self.TEMP_DIR, self.FINAL_DIR, self.LIVE_DIR):
            directory.mkdir(parents=True, exist_ok=True)

# Global settings instance
settings = Settings()
