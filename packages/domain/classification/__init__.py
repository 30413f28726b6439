"""
Classification Module - HS code resolution for free-text product names

Per product name:
1. Override lookup: a user-confirmed correction wins, no model call
2. Inference: the model picks ONE entry from the catalog candidate list
   (priority codes first), or the "000000" sentinel when nothing fits

Feedback loop:
- User disputes or confirms a result → FeedbackRecorder upserts an override
- Next lookup for the same name (any casing) → deterministic override hit

Example flow:
- "komputer portabel" → AI → "847130 - Mesin pengolah data otomatis portabel..."
- User corrects "Sapi Hidup" → 010229
- "sapi hidup" → override → "010229 - Sapi hidup lainnya" (no AI call)
"""

from packages.domain.classification.catalog import CodeCatalog
from packages.domain.classification.engine import ClassificationEngine, build_engine
from packages.domain.classification.schemas import (
    ClassificationResult,
    CodeEntry,
    ItemOutcome,
    Override,
    ResolutionSource,
)

__all__ = [
    'ClassificationEngine',
    'ClassificationResult',
    'CodeCatalog',
    'CodeEntry',
    'ItemOutcome',
    'Override',
    'ResolutionSource',
    'build_engine',
]
