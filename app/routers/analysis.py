"""
Exam strategy API endpoints.

Provides the upload quick check, the analysis pipeline and the markdown
export of its result.
"""

import logging
from functools import lru_cache
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Request, Response, UploadFile, status
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.exceptions import ErrorKind, FatalReason, MissingInputError, PipelineError
from app.middleware.logging import get_request_id
from app.middleware.rate_limit import RATE_LIMITS, get_limiter
from app.models.analysis import AnalysisResult, GateDecision
from app.services.file_validator import read_upload, validate_pdf
from app.services.markdown_export import DEFAULT_EXPORT_FILENAME, export_markdown
from app.services.strategy_orchestrator import StrategyOrchestrator, create_orchestrator
from app.services.upload_gate import check_document_async

router = APIRouter(prefix="/api", tags=["analysis"])
limiter = get_limiter()
logger = logging.getLogger(__name__)

_STATUS_BY_KIND = {
    ErrorKind.EXTRACTION_FAILURE: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.INVALID_DOCUMENT: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.MISSING_INPUT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.MODEL_FATAL: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.MODEL_TRANSIENT: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.MODELS_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.MALFORMED_RESPONSE: status.HTTP_502_BAD_GATEWAY,
}


@lru_cache
def get_orchestrator() -> StrategyOrchestrator:
    """Process-wide orchestrator, built once from validated settings."""
    return create_orchestrator(get_settings())


def pipeline_error_response(error: PipelineError) -> JSONResponse:
    """Map a PipelineError to a JSON error response."""
    status_code = _STATUS_BY_KIND.get(error.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
    if getattr(error, "reason", None) is FatalReason.TIMEOUT:
        status_code = status.HTTP_504_GATEWAY_TIMEOUT

    body: Dict[str, Any] = {
        "error": error.kind.value,
        "message": error.user_message,
    }
    if error.kind is ErrorKind.INVALID_DOCUMENT:
        body["detected_type"] = getattr(error, "detected_type", None)

    return JSONResponse(
        content=body,
        status_code=status_code,
        headers={"X-Error-Kind": error.kind.value},
    )


@router.post("/uploads/check", response_model=GateDecision)
@limiter.limit(RATE_LIMITS["check"])  # type: ignore[untyped-decorator]
async def check_upload(
    request: Request,
    response: Response,
    file: UploadFile = File(..., description="File the user just selected"),
) -> GateDecision:
    """
    Quick academic-content check run when a file is selected.

    Returns:
        200 with status ``accepted``, ``warning`` (client should ask the user
        to confirm) or ``ignored`` (not a PDF)
    """
    settings = get_settings()
    document = await read_upload(file, settings.max_upload_bytes)
    decision = await check_document_async(document, settings)
    response.headers["X-Gate-Status"] = decision.status
    return decision


@router.post("/analysis", response_model=None)
@limiter.limit(RATE_LIMITS["analysis"])  # type: ignore[untyped-decorator]
async def analyze(
    request: Request,
    syllabus: Optional[UploadFile] = File(None, description="Syllabus PDF"),
    past_papers: Optional[UploadFile] = File(None, description="Past exam papers PDF"),
    orchestrator: StrategyOrchestrator = Depends(get_orchestrator),
) -> Response:
    """
    Cross-reference a syllabus with past exam papers.

    Returns:
        200: AnalysisResult (camelCase keys)
        400: Missing file or invalid file type
        413: File too large
        422: Documents are not academic (``detected_type`` when known)
        502/503/504: Model failure, unavailability or timeout
    """
    request_id = get_request_id(request)

    if syllabus is None or past_papers is None:
        return pipeline_error_response(MissingInputError())

    settings = get_settings()
    syllabus_doc = await validate_pdf(syllabus, settings.max_upload_bytes)
    papers_doc = await validate_pdf(past_papers, settings.max_upload_bytes)

    def on_progress(step: str) -> None:
        logger.info(f"[{request_id}] {step}")

    try:
        result = await orchestrator.run(syllabus_doc, papers_doc, on_progress)
    except PipelineError as e:
        return pipeline_error_response(e)

    return JSONResponse(
        content=result.model_dump(mode="json", by_alias=True, exclude_unset=True)
    )


@router.post("/analysis/export")
@limiter.limit(RATE_LIMITS["export"])  # type: ignore[untyped-decorator]
async def export_analysis(request: Request, result: AnalysisResult) -> Response:
    """Render an AnalysisResult as a downloadable markdown file."""
    return Response(
        content=export_markdown(result),
        media_type="text/markdown; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{DEFAULT_EXPORT_FILENAME}"'},
    )
