"""
Engine wiring - builds the classification components from Settings

One ClassificationEngine per process. Nothing here is a module-level
singleton: the API keeps the engine on app.state, tests build their own
with fake providers and in-memory stores.
"""
from dataclasses import dataclass
from typing import List, Optional

import structlog

from packages.common.config import Settings
from packages.common.database import sessionmanager
from packages.domain.classification.catalog import CodeCatalog, load_priority_codes
from packages.domain.classification.feedback_recorder import FeedbackRecorder
from packages.domain.classification.inference import AnthropicInferenceProvider, InferenceProvider
from packages.domain.classification.inference_adapter import InferenceAdapter
from packages.domain.classification.override_repository import PostgresOverrideBackend
from packages.domain.classification.override_store import (
    JsonFileOverrideBackend,
    OverrideBackend,
    OverrideStore,
)
from packages.domain.classification.resolution_service import ResolutionService

logger = structlog.get_logger()


@dataclass
class ClassificationEngine:
    """Everything a caller needs: resolve, record feedback, browse the catalog"""
    catalog: CodeCatalog
    override_store: OverrideStore
    resolver: ResolutionService
    feedback: FeedbackRecorder
    provider: InferenceProvider
    priority_codes: Optional[List[str]] = None

    @property
    def inference_configured(self) -> bool:
        return getattr(self.provider, "configured", True)


def assemble_engine(
    catalog: CodeCatalog,
    backend: OverrideBackend,
    provider: InferenceProvider,
    sentinel: str,
    priority_codes: Optional[List[str]] = None,
    analysis_language: str = "Bahasa Indonesia",
    max_concurrency: int = 5,
) -> ClassificationEngine:
    """Wire already-built collaborators together"""
    override_store = OverrideStore(backend)
    adapter = InferenceAdapter(
        provider=provider,
        catalog=catalog,
        sentinel=sentinel,
        analysis_language=analysis_language,
    )
    resolver = ResolutionService(
        catalog=catalog,
        override_store=override_store,
        adapter=adapter,
        priority_codes=priority_codes,
        max_concurrency=max_concurrency,
    )
    return ClassificationEngine(
        catalog=catalog,
        override_store=override_store,
        resolver=resolver,
        feedback=FeedbackRecorder(override_store),
        provider=provider,
        priority_codes=priority_codes,
    )


async def build_engine(
    settings: Settings,
    provider: Optional[InferenceProvider] = None,
) -> ClassificationEngine:
    """
    Load catalog and priority list, open the override backend, create the provider.

    Raises:
        CatalogError: Catalog cannot be loaded (empty, duplicate, malformed)
        RuntimeError: postgres backend selected without DATABASE_URL
    """
    catalog = CodeCatalog.from_file(settings.catalog_path)

    priority_codes = None
    if settings.priority_codes_path:
        priority_codes = load_priority_codes(settings.priority_codes_path)
        missing = [code for code in priority_codes if code not in catalog]
        if missing:
            logger.warning("priority_codes_not_in_catalog", codes=missing)

    if settings.override_backend == "postgres":
        if not settings.database_url:
            raise RuntimeError("OVERRIDE_BACKEND=postgres requires DATABASE_URL")
        await sessionmanager.init(settings.database_url, pool_size=settings.database_pool_size)
        backend = PostgresOverrideBackend(sessionmanager)
    else:
        backend = JsonFileOverrideBackend(settings.overrides_path)

    if provider is None:
        provider = AnthropicInferenceProvider(
            api_key=settings.anthropic_api_key,
            model=settings.inference_model,
            max_tokens=settings.inference_max_tokens,
            timeout_seconds=settings.inference_timeout_seconds,
            temperature=settings.inference_temperature,
            quota_cooldown_seconds=settings.quota_cooldown_seconds,
        )

    engine = assemble_engine(
        catalog=catalog,
        backend=backend,
        provider=provider,
        sentinel=settings.sentinel,
        priority_codes=priority_codes,
        analysis_language=settings.analysis_language,
        max_concurrency=settings.max_concurrent_inference,
    )

    logger.info("classification_engine_ready",
                catalog_entries=len(catalog),
                priority_codes=len(priority_codes) if priority_codes else 0,
                override_backend=settings.override_backend,
                inference_configured=engine.inference_configured)

    return engine
