"""Service factory.

Builds adapters from Settings and wires them into the orchestrator.
Backend selection:
- IMAGE_STORE_BACKEND=inmemory|supabase
- RECORD_STORE_BACKEND=inmemory|mongodb
Both default to inmemory (fast, transient).

Usage:
    async with build_services(Settings.from_env()) as services:
        outcome = await services.orchestrator.analyze(user_id, data, "lunch.jpg")
"""

from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional

import structlog
from motor.motor_asyncio import AsyncIOMotorClient

from nutrivision.application.nutrition.resolver import NutrientResolver
from nutrivision.application.pipeline.orchestrator import PipelineOrchestrator
from nutrivision.config import ImageStoreConfig, PipelineConfig, RecordStoreConfig, Settings
from nutrivision.domain.analysis.ports import IAnalysisRecordStore, IImageStore
from nutrivision.domain.recognition.candidates import (
    AdmissionRule,
    ThresholdAdmission,
    TopKAdmission,
)
from nutrivision.infrastructure.huggingface.classifier_client import (
    HuggingFaceClassifierClient,
)
from nutrivision.infrastructure.persistence.in_memory_record_store import (
    InMemoryAnalysisRecordStore,
)
from nutrivision.infrastructure.persistence.mongo_record_store import (
    MongoAnalysisRecordStore,
)
from nutrivision.infrastructure.storage.in_memory_image_store import InMemoryImageStore
from nutrivision.infrastructure.storage.supabase_image_store import SupabaseImageStore
from nutrivision.infrastructure.usda.api_client import USDAApiClient

logger = structlog.get_logger(__name__)


@dataclass
class Services:
    """Everything the HTTP layer needs."""

    settings: Settings
    orchestrator: PipelineOrchestrator
    record_store: IAnalysisRecordStore
    image_store: IImageStore


def create_admission_rule(config: PipelineConfig) -> AdmissionRule:
    if config.admission_rule == "threshold":
        return ThresholdAdmission(threshold=config.threshold)
    return TopKAdmission(k=config.top_k)


def create_image_store(config: ImageStoreConfig) -> IImageStore:
    """Create image store based on config.backend.

    Raises:
        ValueError: If supabase is selected without credentials
    """
    if config.backend == "supabase":
        return SupabaseImageStore.from_config(config)
    return InMemoryImageStore(config.public_base_url)


def create_record_store(
    config: RecordStoreConfig,
    mongo_client: Optional[AsyncIOMotorClient[Any]] = None,
) -> IAnalysisRecordStore:
    """Create record store based on config.backend.

    Args:
        config: Record store section
        mongo_client: Motor client to use for the mongodb backend

    Raises:
        ValueError: If mongodb is selected without a client or URI
    """
    if config.backend == "mongodb":
        if mongo_client is None:
            if not config.mongodb_uri:
                raise ValueError(
                    "RECORD_STORE_BACKEND=mongodb but MONGODB_URI not set. "
                    "Set MONGODB_URI in .env or use RECORD_STORE_BACKEND=inmemory"
                )
            mongo_client = AsyncIOMotorClient(config.mongodb_uri)
        return MongoAnalysisRecordStore(mongo_client[config.database], config.collection)
    return InMemoryAnalysisRecordStore()


@asynccontextmanager
async def build_services(settings: Settings) -> AsyncIterator[Services]:
    """Open HTTP sessions and database clients, close them on exit."""
    async with AsyncExitStack() as stack:
        classifier = await stack.enter_async_context(
            HuggingFaceClassifierClient(settings.classifier)
        )
        usda_client = await stack.enter_async_context(USDAApiClient(settings.usda))

        mongo_client: Optional[AsyncIOMotorClient[Any]] = None
        if settings.record_store.backend == "mongodb":
            mongo_client = AsyncIOMotorClient(settings.record_store.mongodb_uri)
            stack.callback(mongo_client.close)

        record_store = create_record_store(settings.record_store, mongo_client)
        image_store = create_image_store(settings.image_store)

        resolver = NutrientResolver(
            usda_client,
            data_types=settings.usda.data_types,
            page_size=settings.usda.page_size,
        )
        orchestrator = PipelineOrchestrator(
            image_store=image_store,
            classifier=classifier,
            resolver=resolver,
            record_store=record_store,
            admission_rule=create_admission_rule(settings.pipeline),
            call_timeout_seconds=settings.pipeline.call_timeout_seconds,
        )

        logger.info(
            "Services ready",
            image_store=settings.image_store.backend,
            record_store=settings.record_store.backend,
            admission_rule=settings.pipeline.admission_rule,
        )
        yield Services(
            settings=settings,
            orchestrator=orchestrator,
            record_store=record_store,
            image_store=image_store,
        )
