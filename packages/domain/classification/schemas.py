"""
Data schemas for the classification engine
"""
import re
from enum import Enum
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, Field, validator

CODE_AND_DESCRIPTION_PATTERN = re.compile(r"^(\d{6}) - (\S.*)$", re.DOTALL)


def normalize_product_key(product_name: str) -> str:
    """Key used for case-insensitive override comparison"""
    return product_name.lower()


class ResolutionSource(str, Enum):
    """Where a classification came from"""
    OVERRIDE = "override"     # User-confirmed correction, no model call
    INFERENCE = "inference"   # Model selected from the candidate list


class CodeEntry(BaseModel):
    """One row of the HS code catalog"""
    code: str = Field(..., pattern=r"^\d{6}$", strict=True, description="6-digit HS code")
    description: str = Field(..., description="Catalog description")

    @validator("description")
    def validate_description(cls, v):
        """Reject blank descriptions"""
        if not v.strip():
            raise ValueError("description must not be empty")
        return v.strip()

    @property
    def formatted(self) -> str:
        """'CODE - description' pairing offered to and expected from inference"""
        return f"{self.code} - {self.description}"

    class Config:
        frozen = True


class Override(BaseModel):
    """User-confirmed correction for one product name"""
    product_name: str = Field(..., alias="productName", min_length=1)
    # Written as correctCode; correctHsCode is what older corrections files hold
    correct_code: str = Field(
        ...,
        alias="correctCode",
        validation_alias=AliasChoices("correctCode", "correctHsCode", "correct_code"),
        min_length=6,
    )

    @property
    def key(self) -> str:
        return normalize_product_key(self.product_name)

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "productName": "Sapi Hidup",
                "correctCode": "010229",
            }
        }


class InferenceOutput(BaseModel):
    """
    Structured value the inference provider must return.

    Strict: wrong types or extra keys are contract violations, not coerced.
    """
    analysis_text: str = Field(..., description="Short rationale for the selected code")
    code_and_description: str = Field(
        ...,
        description="Selected entry exactly as listed, formatted 'CODE - Description'",
    )

    @validator("code_and_description")
    def validate_shape(cls, v):
        if not CODE_AND_DESCRIPTION_PATTERN.match(v):
            raise ValueError("code_and_description must look like 'CODE - description'")
        return v

    class Config:
        extra = "forbid"
        strict = True


class ClassificationResult(BaseModel):
    """Resolved classification for one input item"""
    original_product_name: str
    analysis_text: str
    code_and_description: str
    code: str
    source: ResolutionSource

    @classmethod
    def build(
        cls,
        original_product_name: str,
        analysis_text: str,
        code_and_description: str,
        source: ResolutionSource,
    ) -> "ClassificationResult":
        return cls(
            original_product_name=original_product_name,
            analysis_text=analysis_text,
            code_and_description=code_and_description,
            code=code_and_description.split(" - ", 1)[0],
            source=source,
        )

    class Config:
        json_schema_extra = {
            "example": {
                "original_product_name": "komputer portabel",
                "analysis_text": "Komputer portabel adalah mesin pengolah data otomatis portabel.",
                "code_and_description": "847130 - Mesin pengolah data otomatis portabel, berat tidak melebihi 10 kg",
                "code": "847130",
                "source": "inference",
            }
        }


class ItemError(BaseModel):
    """Failure marker for one item in a partial-success batch"""
    error: str
    message: str
    retry_after_seconds: Optional[int] = None


class ItemOutcome(BaseModel):
    """Partial-success batch entry: exactly one of result / error is set"""
    original_product_name: str
    result: Optional[ClassificationResult] = None
    error: Optional[ItemError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class CatalogPage(BaseModel):
    """One page of catalog search results"""
    items: List[CodeEntry]
    total: int
    page: int
    per_page: int
    total_pages: int
