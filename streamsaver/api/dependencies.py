from fastapi import Request
from streamsaver.core.config import Settings
from streamsaver.services.catalog import ArtifactCatalog
from streamsaver.services.live_writer import LiveAppendWriter
from streamsaver.services.upload_service import UploadService

# Services live on the application that is handling the request
def get_upload_service(request: Request) -> UploadService:
    return request.app.state.services.uploads

def get_live_writer(request: Request) -> LiveAppendWriter:
    return request.app.state.services.live_writer

def get_catalog(request: Request) -> ArtifactCatalog:
    return request.app.state.services.catalog

def get_settings(request: Request) -> Settings:
    return request.app.state.services.settings
