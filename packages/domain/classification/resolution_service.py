"""
Resolution Service - orchestrates classification of one or more product names

Flow per item:
1. Override lookup: a confirmed correction whose code is in the catalog
   is returned directly, no model call.
2. Otherwise: candidate block + override block -> InferenceAdapter.

Input may hold several items separated by ';'. Items are classified
concurrently (bounded by max_concurrency); results come back in input
order. resolve() is all-or-nothing, resolve_partial() returns a result or
an error marker per item.
"""
import asyncio
from typing import List, Optional, Sequence

import structlog

from packages.domain.classification.candidates import CandidateBlock, build_candidates
from packages.domain.classification.catalog import CodeCatalog
from packages.domain.classification.errors import (
    ClassificationError,
    InferenceUnavailable,
    NoValidItems,
)
from packages.domain.classification.inference_adapter import InferenceAdapter
from packages.domain.classification.override_store import OverrideStore
from packages.domain.classification.schemas import (
    ClassificationResult,
    ItemError,
    ItemOutcome,
    ResolutionSource,
)

logger = structlog.get_logger()

ITEM_SEPARATOR = ";"
MIN_ITEM_LENGTH = 2

DEFAULT_OVERRIDE_ANALYSIS = (
    "Kode {code} berasal dari koreksi pengguna yang telah dikonfirmasi untuk \"{product_name}\"."
)


def split_items(raw_input: str) -> List[str]:
    """Split on ';', trim, drop items shorter than 2 characters"""
    items = [item.strip() for item in (raw_input or "").split(ITEM_SEPARATOR)]
    return [item for item in items if len(item) >= MIN_ITEM_LENGTH]


class ResolutionService:
    """
    Usage:
        service = ResolutionService(catalog, override_store, adapter)
        results = await service.resolve("sapi hidup; komputer portabel")
        for r in results:
            print(r.original_product_name, r.code_and_description)
    """

    def __init__(
        self,
        catalog: CodeCatalog,
        override_store: OverrideStore,
        adapter: InferenceAdapter,
        priority_codes: Optional[Sequence[str]] = None,
        max_concurrency: int = 5,
        override_analysis: str = DEFAULT_OVERRIDE_ANALYSIS,
    ):
        self.catalog = catalog
        self.override_store = override_store
        self.adapter = adapter
        self.priority_codes = list(priority_codes) if priority_codes is not None else None
        self.max_concurrency = max_concurrency
        self.override_analysis = override_analysis

    async def resolve(self, raw_input: str, product_context: Optional[str] = None) -> List[ClassificationResult]:
        """
        Classify every item in raw_input; any item failure fails the batch.

        Raises:
            NoValidItems: No item survives splitting/trimming
            InferenceUnavailable / InvalidInferenceOutput / PersistenceFailure:
                first failing item in input order
        """
        items = self._items_or_fail(raw_input)

        logger.info("batch_resolution_started",
                    item_count=len(items),
                    has_context=bool(product_context))

        outcomes = await self._run_batch(items, product_context)

        # All calls have finished; report the earliest failure by position
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                logger.error("batch_resolution_failed",
                             item_count=len(items),
                             error=type(outcome).__name__)
                raise outcome

        logger.info("batch_resolution_complete",
                    item_count=len(items),
                    overrides=sum(1 for r in outcomes if r.source == ResolutionSource.OVERRIDE),
                    inferred=sum(1 for r in outcomes if r.source == ResolutionSource.INFERENCE))

        return outcomes

    async def resolve_partial(self, raw_input: str, product_context: Optional[str] = None) -> List[ItemOutcome]:
        """
        Classify every item; failed items carry an error marker instead of failing the batch.

        Raises:
            NoValidItems: No item survives splitting/trimming
        """
        items = self._items_or_fail(raw_input)
        outcomes = await self._run_batch(items, product_context)

        results = []
        for item, outcome in zip(items, outcomes):
            if isinstance(outcome, ClassificationError):
                results.append(ItemOutcome(
                    original_product_name=item,
                    error=ItemError(
                        error=outcome.error_code,
                        message=outcome.message,
                        retry_after_seconds=getattr(outcome, "retry_after_seconds", None),
                    ),
                ))
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results.append(ItemOutcome(original_product_name=item, result=outcome))

        logger.info("partial_batch_resolution_complete",
                    item_count=len(items),
                    failed=sum(1 for r in results if not r.ok))

        return results

    async def resolve_one(self, product_name: str, product_context: Optional[str] = None) -> ClassificationResult:
        """Classify a single, already-trimmed product name"""
        override = await self.override_store.lookup(product_name)
        if override is not None:
            entry = self.catalog.match_code(override.correct_code)
            if entry is not None:
                logger.info("override_applied",
                            product=product_name,
                            code=entry.code)
                return ClassificationResult.build(
                    original_product_name=product_name,
                    analysis_text=self.override_analysis.format(
                        code=entry.code,
                        product_name=override.product_name,
                    ),
                    code_and_description=entry.formatted,
                    source=ResolutionSource.OVERRIDE,
                )
            logger.warning("override_code_not_in_catalog",
                           product=product_name,
                           code=override.correct_code)

        output = await self.adapter.classify(
            product_name=product_name,
            product_context=product_context,
            candidates=self._candidates(),
            override_block=await self.override_store.serialize(),
        )

        return ClassificationResult.build(
            original_product_name=product_name,
            analysis_text=output.analysis_text,
            code_and_description=output.code_and_description,
            source=ResolutionSource.INFERENCE,
        )

    def _candidates(self) -> CandidateBlock:
        return build_candidates(self.catalog, self.priority_codes)

    def _items_or_fail(self, raw_input: str) -> List[str]:
        items = split_items(raw_input)
        if not items:
            logger.warning("no_valid_items", raw_input=raw_input)
            raise NoValidItems("Enter at least one product name of 2 or more characters")
        return items

    async def _run_batch(self, items: List[str], product_context: Optional[str]) -> list:
        """Fan out, fan in; exceptions are returned in place, not raised"""
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run(item: str) -> ClassificationResult:
            async with semaphore:
                try:
                    return await self.resolve_one(item, product_context)
                except InferenceUnavailable as e:
                    logger.warning("item_inference_unavailable",
                                   product=item,
                                   quota_exhausted=e.quota_exhausted)
                    raise

        return await asyncio.gather(*(run(item) for item in items), return_exceptions=True)
