"""
Process-wide object graph.

Built once at startup by ``build_services`` and handed to the API and the
scheduler. Tests build the same graph with fake provider chains.
"""
import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from sqlalchemy.orm import sessionmaker

from .ai.ai_factory import build_image_chain, build_text_chain
from .ai.image_chain import ImageGenerationChain
from .ai.text_chain import TextGenerationChain
from .analyzer.scene_composer import SceneComposer
from .config.settings import Settings
from .database.models import create_session_factory, init_db
from .database.repository import PhotoStore, QuotaTracker, StoryRepository
from .generator.arc_progression import ArcProgressionStateMachine, ArcService
from .generator.episode_orchestrator import EpisodeOrchestrator
from .metrics import MetricsRecorder
from .storage.blob_store import BlobStore, LocalBlobStore
from .templates.catalog import TemplateCatalog, load_default_catalog

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    metrics: MetricsRecorder
    catalog: TemplateCatalog
    repository: StoryRepository
    photos: PhotoStore
    quota: QuotaTracker
    arcs: ArcService
    orchestrator: EpisodeOrchestrator
    http: Optional[httpx.AsyncClient] = None

    async def aclose(self):
        if self.http is not None:
            await self.http.aclose()


def build_services(
    settings: Settings,
    session_factory: Optional[sessionmaker] = None,
    catalog: Optional[TemplateCatalog] = None,
    metrics: Optional[MetricsRecorder] = None,
    text_chain: Optional[TextGenerationChain] = None,
    image_chain: Optional[ImageGenerationChain] = None,
    blob_store: Optional[BlobStore] = None,
    quota: Optional[QuotaTracker] = None,
    scene_composer: Optional[SceneComposer] = None,
) -> Services:
    """
    Wire repositories, catalog, metrics and provider chains.

    Raises:
        ConfigurationError: a provider chain had to be built and its
            credentials are missing
    """
    session_factory = session_factory or create_session_factory(settings.database_url)
    init_db(session_factory)

    metrics = metrics or MetricsRecorder()
    catalog = catalog or load_default_catalog()
    repository = StoryRepository(session_factory)
    photos = PhotoStore(session_factory)
    quota = quota or QuotaTracker(session_factory)

    http = None
    if text_chain is None:
        text_chain = build_text_chain(settings, metrics)
    if image_chain is None:
        http = httpx.AsyncClient(timeout=httpx.Timeout(60.0))
        blob_store = blob_store or LocalBlobStore(settings.media_root, settings.media_base_url)
        image_chain = build_image_chain(settings, metrics, blob_store, http)

    orchestrator = EpisodeOrchestrator(
        repository,
        photos,
        ArcProgressionStateMachine(repository, quota),
        catalog,
        text_chain,
        image_chain,
        scene_composer=scene_composer,
    )
    logger.info("Services ready: %d templates", len(catalog))
    return Services(
        settings=settings,
        metrics=metrics,
        catalog=catalog,
        repository=repository,
        photos=photos,
        quota=quota,
        arcs=ArcService(repository, catalog),
        orchestrator=orchestrator,
        http=http,
    )
