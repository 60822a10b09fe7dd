"""
Hybrid Field Extraction API Routes
==================================

REST API endpoints for the field fusion engine. Evidence is posted as JSON
(already fetched from the layout and semantic services); nothing upstream
is called from here.

Endpoints:
- POST /api/v1/hybrid-fields/extract-page - Fuse the evidence of one page
- POST /api/v1/hybrid-fields/extract-document - Fuse every page of a document
- GET /api/v1/hybrid-fields/settings - Get the active engine settings
"""

import logging
from typing import Any, Dict
from fastapi import APIRouter, HTTPException

from app.models import (
    DocumentExtractionResponse,
    ExtractDocumentRequest,
    ExtractPageRequest,
    PageExtractionResponse,
)
from app.services.hybrid_field_pipeline import (
    FusionSettings,
    HybridFieldPipeline,
    PageExtractionError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/hybrid-fields", tags=["Hybrid Field Extraction"])


# ============================================================================
# Pipeline Instance (Singleton)
# ============================================================================

_pipeline_instance = None


def get_pipeline() -> HybridFieldPipeline:
    """Get or create the pipeline instance."""
    global _pipeline_instance

    if _pipeline_instance is None:
        _pipeline_instance = HybridFieldPipeline(FusionSettings.from_config())
        logger.info("Initialized HybridFieldPipeline singleton")

    return _pipeline_instance


def _evidence_mismatch(e: PageExtractionError) -> HTTPException:
    logger.warning(f"Rejected evidence: {e}")
    return HTTPException(
        status_code=422,
        detail={'pageNumber': e.page_number, 'reason': e.reason}
    )


# ============================================================================
# API Endpoints
# ============================================================================

@router.post("/extract-page", response_model=PageExtractionResponse)
async def extract_page(request: ExtractPageRequest) -> PageExtractionResponse:
    """
    Fuse layout and semantic evidence for a single page.

    Returns the field list in tab order plus diagnostics for every
    recovered or unresolved field. Evidence that describes different pages
    is rejected with 422.
    """
    pipeline = get_pipeline()
    try:
        result = pipeline.process_page(
            request.ocr_page.to_evidence(),
            request.semantic_page.to_evidence()
        )
    except PageExtractionError as e:
        raise _evidence_mismatch(e)

    return PageExtractionResponse.from_extraction(result)


@router.post("/extract-document", response_model=DocumentExtractionResponse)
async def extract_document(request: ExtractDocumentRequest) -> DocumentExtractionResponse:
    """
    Fuse evidence for every page of a document.

    Pages run in parallel. A page whose evidence is inconsistent is listed
    under pageErrors; a document whose page sets disagree is rejected
    with 422.
    """
    if not request.ocr_pages:
        raise HTTPException(status_code=400, detail="No pages provided")

    logger.info(f"Extracting document: {len(request.ocr_pages)} pages")

    pipeline = get_pipeline()
    try:
        result = pipeline.process_document(
            [p.to_evidence() for p in request.ocr_pages],
            [p.to_evidence() for p in request.semantic_pages],
            document_id=request.document_id
        )
    except PageExtractionError as e:
        raise _evidence_mismatch(e)

    statistics = pipeline.get_statistics(result) if request.include_statistics else None
    return DocumentExtractionResponse.from_extraction(result, statistics)


@router.get("/settings")
async def get_settings() -> Dict[str, Any]:
    """
    Get the engine settings in effect.

    Useful for checking thresholds (fuzzy ratio, digit counts, tolerances)
    when reviewing low-confidence output.
    """
    return get_pipeline().settings.to_dict()
