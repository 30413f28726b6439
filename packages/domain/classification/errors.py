"""
Typed failures raised by the classification engine

Callers branch on these types: input errors are re-prompted, quota errors
wait out a cooldown, everything else can be retried immediately.
"""
from typing import Optional


class ClassificationError(Exception):
    """Base for every failure the engine surfaces"""

    error_code = "classification_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# ---- Catalog (startup) -----------------------------------------------------------------

class CatalogError(ClassificationError):
    """Catalog could not be loaded; fatal at startup"""
    error_code = "catalog_error"


class EmptyCatalog(CatalogError):
    error_code = "empty_catalog"


class DuplicateCatalogCode(CatalogError):
    error_code = "duplicate_catalog_code"

    def __init__(self, code: str):
        super().__init__(f"HS code {code} appears more than once in the catalog")
        self.code = code


class InvalidCatalogRecord(CatalogError):
    error_code = "invalid_catalog_record"


# ---- Caller input ----------------------------------------------------------------------

class NoValidItems(ClassificationError):
    """Input held no product name of at least 2 characters"""
    error_code = "no_valid_items"


class InvalidCorrection(ClassificationError):
    """Feedback rejected before touching the override store"""
    error_code = "invalid_correction"


# ---- Inference -------------------------------------------------------------------------

class InvalidInferenceOutput(ClassificationError):
    """Provider answered, but not with a value the output contract allows"""
    error_code = "invalid_inference_output"


class InferenceUnavailable(ClassificationError):
    """
    Provider could not be reached or refused the call.

    quota_exhausted distinguishes rate-limit/quota refusals, which callers
    must wait out (retry_after_seconds) before retrying.
    """
    error_code = "inference_unavailable"

    def __init__(
        self,
        message: str,
        quota_exhausted: bool = False,
        retry_after_seconds: Optional[int] = None,
    ):
        super().__init__(message)
        self.quota_exhausted = quota_exhausted
        self.retry_after_seconds = retry_after_seconds
        if quota_exhausted:
            self.error_code = "inference_quota_exhausted"


# ---- Persistence -----------------------------------------------------------------------

class PersistenceFailure(ClassificationError):
    """Override storage read/write failed"""
    error_code = "persistence_failure"
