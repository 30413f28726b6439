"""
Classification API schemas (Pydantic models)
Request/response shapes for the classification, feedback and catalog endpoints
"""
from typing import List, Optional

from pydantic import BaseModel, Field, validator

from packages.domain.classification.schemas import (
    CatalogPage,
    ClassificationResult,
    ItemOutcome,
)


class ClassifyRequest(BaseModel):
    """Product name(s) to classify; several names separated by ';'"""
    product_name: str = Field(..., min_length=2, description="One or more names, ';'-separated")
    product_context: Optional[str] = Field(None, description="Optional detail applied to every item")

    class Config:
        json_schema_extra = {
            "example": {
                "product_name": "sapi hidup; komputer portabel",
                "product_context": None,
            }
        }


class ClassifyResponse(BaseModel):
    """All-or-nothing batch result"""
    results: List[ClassificationResult]
    count: int


class PartialClassifyResponse(BaseModel):
    """Partial-success batch result"""
    outcomes: List[ItemOutcome]
    count: int
    failed: int


class FeedbackRequest(BaseModel):
    """
    Correction or verdict for a classification.

    Either correct_code (correction), or agree + suggested_code (verdict).
    """
    product_name: str = Field(..., min_length=1)
    correct_code: Optional[str] = Field(None, description="Correct HS code (at least 6 characters)")
    agree: Optional[bool] = Field(None, description="True = result confirmed, False = result disputed")
    suggested_code: Optional[str] = Field(None, description="Code (or 'CODE - description') being confirmed")

    @validator("correct_code", "suggested_code")
    def strip_codes(cls, v):
        return v.strip() if v is not None else v

    class Config:
        json_schema_extra = {
            "example": {
                "product_name": "Sapi Hidup",
                "correct_code": "010229",
            }
        }


class FeedbackResponse(BaseModel):
    """Stored override, or recorded=False when nothing was stored"""
    recorded: bool
    product_name: Optional[str] = None
    correct_code: Optional[str] = None


class CatalogResponse(CatalogPage):
    """Paginated catalog search"""
    search: str = ""


class ErrorResponse(BaseModel):
    """Error body; error names the cause so clients know whether to wait or retry"""
    error: str
    detail: str
    retry_after_seconds: Optional[int] = None
