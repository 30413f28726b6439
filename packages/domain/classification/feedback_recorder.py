"""
Feedback Recorder - folds user corrections back into the override store
"""
from typing import Optional

import structlog

from packages.domain.classification.errors import InvalidCorrection
from packages.domain.classification.override_store import OverrideStore
from packages.domain.classification.schemas import Override

logger = structlog.get_logger()

SENTINEL_CODE = "000000"
MIN_CODE_LENGTH = 6


class FeedbackRecorder:
    """
    Validates feedback and upserts it. The change is visible to the very
    next resolution, the store is re-read on every call.
    """

    def __init__(self, override_store: OverrideStore):
        self.override_store = override_store

    async def record(self, product_name: str, correct_code: str) -> Override:
        """
        Store correct_code as the confirmed code for product_name.

        Raises:
            InvalidCorrection: Missing product name or code shorter than 6 characters
            PersistenceFailure: Store write failed
        """
        product_name = (product_name or "").strip()
        correct_code = (correct_code or "").strip()

        if not product_name:
            raise InvalidCorrection("Product name is required")
        if len(correct_code) < MIN_CODE_LENGTH:
            raise InvalidCorrection(f"Correct HS code must be at least {MIN_CODE_LENGTH} characters")

        override = await self.override_store.upsert(product_name, correct_code)

        logger.info("feedback_recorded",
                    product=override.product_name,
                    code=override.correct_code)

        return override

    async def record_verdict(
        self,
        product_name: str,
        agree: bool,
        suggested_code: Optional[str] = None,
        correct_code: Optional[str] = None,
    ) -> Optional[Override]:
        """
        Thumbs-up / thumbs-down on a classification.

        agree=True confirms suggested_code; agree=False requires correct_code.
        Confirming the unclassified sentinel stores nothing and returns None.
        """
        if not agree:
            if not correct_code:
                raise InvalidCorrection("A correct HS code is required when disagreeing")
            return await self.record(product_name, correct_code)

        code = (suggested_code or "").strip()[:MIN_CODE_LENGTH]
        if code == SENTINEL_CODE:
            logger.info("sentinel_confirmation_ignored", product=product_name)
            return None

        return await self.record(product_name, code)
