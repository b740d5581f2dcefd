import pytest
from fastapi.testclient import TestClient
from streamsaver.core.config import Settings
from streamsaver.main import create_app
from streamsaver.services.container import build_services

@pytest.fixture
def test_settings(tmp_path):
    """Settings rooted at a per-test upload directory."""
    settings = Settings(UPLOAD_DIR=tmp_path / "uploads")
    settings.ensure_directories()
    return settings

@pytest.fixture
def services(test_settings):
    """A fresh service container for direct service tests."""
    return build_services(test_settings)

@pytest.fixture
def test_app(test_settings):
    return create_app(test_settings)

@pytest.fixture
def test_client(test_app):
    """Create a test client for the FastAPI app."""
    with TestClient(test_app) as client:
        yield client

@pytest.fixture
def start_upload(test_client):
    """Start a staged upload and return its session id."""
    def _start(filename="clip.mp4", total_chunks=3, **extra):
        response = test_client.post(
            "/api/uploads/init",
            json={"filename": filename, "totalChunks": total_chunks, **extra},
        )
        assert response.status_code == 201
        return response.json()["sessionId"]
    return _start

@pytest.fixture
def send_chunk(test_client):
    """Post one chunk of a staged upload."""
    def _send(session_id, index, data):
        return test_client.post(
            f"/api/uploads/{session_id}/chunk",
            data={"index": str(index)},
            files={"chunk": (f"part.{index}", data)},
        )
    return _send
