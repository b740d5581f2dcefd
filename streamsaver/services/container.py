from dataclasses import dataclass

from streamsaver.core.config import Settings
from streamsaver.services.catalog import ArtifactCatalog
from streamsaver.services.chunk_store import ChunkStore
from streamsaver.services.live_writer import LiveAppendWriter
from streamsaver.services.merge_engine import MergeEngine
from streamsaver.services.session_registry import SessionRegistry
from streamsaver.services.upload_service import UploadService
from streamsaver.utils.file_utils import Disambiguator


@dataclass
class ServiceContainer:
    """
    Everything that holds session state, owned by one application instance.
    """
    settings: Settings
    disambiguator: Disambiguator
    chunk_store: ChunkStore
    registry: SessionRegistry
    merge_engine: MergeEngine
    uploads: UploadService
    live_writer: LiveAppendWriter
    catalog: ArtifactCatalog


def build_services(settings: Settings) -> ServiceContainer:
    disambiguator = Disambiguator()
    chunk_store = ChunkStore(settings.TEMP_DIR)
    registry = SessionRegistry(chunk_store)
    merge_engine = MergeEngine(chunk_store, registry, settings.FINAL_DIR, disambiguator)
    return ServiceContainer(
        settings=settings,
        disambiguator=disambiguator,
        chunk_store=chunk_store,
        registry=registry,
        merge_engine=merge_engine,
        uploads=UploadService(
            registry, chunk_store, merge_engine,
            default_mime_type=settings.DEFAULT_UPLOAD_MIME_TYPE,
            max_chunks=settings.MAX_CHUNKS_PER_UPLOAD,
        ),
        live_writer=LiveAppendWriter(
            settings.LIVE_DIR,
            settings.FINAL_DIR,
            disambiguator,
            default_filename=settings.DEFAULT_LIVE_FILENAME,
            default_mime_type=settings.DEFAULT_LIVE_MIME_TYPE,
        ),
        catalog=ArtifactCatalog(settings.FINAL_DIR),
    )
