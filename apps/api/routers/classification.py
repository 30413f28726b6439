"""
Classification API Router
Classify product names, record feedback, browse the HS code catalog
"""
import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from apps.api.metrics import classification_failures_total, feedback_total, resolutions_total
from packages.common.schemas.classification import (
    CatalogResponse,
    ClassifyRequest,
    ClassifyResponse,
    ErrorResponse,
    FeedbackRequest,
    FeedbackResponse,
    PartialClassifyResponse,
)
from packages.domain.classification.catalog import PAGE_SIZES
from packages.domain.classification.engine import ClassificationEngine

logger = structlog.get_logger()
router = APIRouter()

INFERENCE_ERRORS = {
    422: {"model": ErrorResponse, "description": "No valid product name"},
    429: {"model": ErrorResponse, "description": "Inference quota exhausted, see Retry-After"},
    502: {"model": ErrorResponse, "description": "Inference returned an answer outside the catalog"},
    503: {"model": ErrorResponse, "description": "Inference provider unavailable"},
}

FEEDBACK_ERRORS = {
    422: {"model": ErrorResponse, "description": "Invalid correction"},
    500: {"model": ErrorResponse, "description": "Correction could not be stored"},
}


def get_engine(request: Request) -> ClassificationEngine:
    """Engine built during app lifespan"""
    return request.app.state.engine


@router.post(
    "/classifications",
    response_model=ClassifyResponse | PartialClassifyResponse,
    responses=INFERENCE_ERRORS,
)
async def classify(
    body: ClassifyRequest,
    partial: bool = Query(False, description="Return per-item errors instead of failing the batch"),
    engine: ClassificationEngine = Depends(get_engine),
):
    """
    Classify one or more product names

    - **product_name**: e.g. "sapi hidup; komputer portabel"
    - **product_context**: optional detail (material, use) for every item
    - **partial**: when true, failed items are returned with an error marker
    """
    logger.info("classification_requested",
                product_name=body.product_name,
                partial=partial)

    if partial:
        outcomes = await engine.resolver.resolve_partial(body.product_name, body.product_context)
        for outcome in outcomes:
            if outcome.ok:
                resolutions_total.labels(source=outcome.result.source.value).inc()
            else:
                classification_failures_total.labels(error=outcome.error.error).inc()
        return PartialClassifyResponse(
            outcomes=outcomes,
            count=len(outcomes),
            failed=sum(1 for o in outcomes if not o.ok),
        )

    results = await engine.resolver.resolve(body.product_name, body.product_context)
    for result in results:
        resolutions_total.labels(source=result.source.value).inc()

    return ClassifyResponse(results=results, count=len(results))


@router.post(
    "/feedback",
    response_model=FeedbackResponse,
    status_code=status.HTTP_201_CREATED,
    responses=FEEDBACK_ERRORS,
)
async def submit_feedback(
    body: FeedbackRequest,
    engine: ClassificationEngine = Depends(get_engine),
) -> FeedbackResponse:
    """
    Record a correction or a verdict

    - **correct_code**: the right HS code for product_name
    - **agree** + **suggested_code**: confirm (or dispute) a returned classification
    """
    if body.correct_code is not None and body.agree is None:
        override = await engine.feedback.record(body.product_name, body.correct_code)
        feedback_total.labels(kind="correction").inc()
    elif body.agree is not None:
        override = await engine.feedback.record_verdict(
            product_name=body.product_name,
            agree=body.agree,
            suggested_code=body.suggested_code,
            correct_code=body.correct_code,
        )
        feedback_total.labels(kind="agree" if body.agree else "disagree").inc()
    else:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Provide correct_code, or agree with suggested_code",
        )

    if override is None:
        return FeedbackResponse(recorded=False)

    return FeedbackResponse(
        recorded=True,
        product_name=override.product_name,
        correct_code=override.correct_code,
    )


@router.get("/catalog", response_model=CatalogResponse)
async def browse_catalog(
    search: str = Query("", description="Substring of code or description"),
    page: int = Query(1, ge=1),
    per_page: int = Query(10, description=f"One of {PAGE_SIZES}"),
    engine: ClassificationEngine = Depends(get_engine),
) -> CatalogResponse:
    """Search and page through the HS code catalog"""
    if per_page not in PAGE_SIZES:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"per_page must be one of {list(PAGE_SIZES)}",
        )

    result = engine.catalog.search(search, page=page, per_page=per_page)
    return CatalogResponse(**result.model_dump(), search=search)
