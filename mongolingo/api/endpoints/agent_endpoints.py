"""Agent interaction endpoints."""
import logging

from fastapi import APIRouter, Depends

from mongolingo.api.dependencies import get_executor, get_translator, new_request_id
from mongolingo.schemas.request.mongo_request import ExecuteRequest, TranslateRequest
from mongolingo.schemas.response.mongo_response import ExecuteResponse, TranslateResponse
from mongolingo.services.agents.action_validator import ensure_valid
from mongolingo.services.agents.translator import QueryTranslator
from mongolingo.services.mongodb.query_service import ActionExecutor

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/translate", response_model=TranslateResponse)
async def translate(request: TranslateRequest, translator: QueryTranslator = Depends(get_translator)):
    """
    Translate a natural-language request into a MongoDB action.

    - user_text: The request, in any language
    - connection: Optional database whose schema grounds the translation
    - collections: Collection names to offer when no connection is given
    - preview_limit: Default limit for reads
    - force_schema_refresh: Rescan the database instead of using the cache

    The action is returned, not executed.
    """
    request_id = new_request_id()
    logger.info(f"[{request_id}] Translating: {request.user_text[:200]}")

    translation = await translator.translate(
        request.user_text,
        descriptor=request.connection,
        collections=request.collections,
        preview_limit=request.preview_limit,
        force_schema_refresh=request.force_schema_refresh,
    )

    logger.info(f"[{request_id}] Translated to {translation.action.action} on {translation.action.collection} via {translation.provider}")

    metadata = {
        "provider": translation.provider,
        "preview_limit": request.preview_limit,
    }
    if translation.snapshot is not None:
        metadata["database"] = translation.snapshot.database_name
        metadata["collections"] = translation.snapshot.collection_names()
        metadata["schema_scanned_at"] = translation.snapshot.scanned_at.isoformat()

    return TranslateResponse(
        action=translation.action,
        schema_used=translation.schema_used,
        warnings=translation.warnings,
        request_id=request_id,
        metadata=metadata,
    )

@router.post("/execute", response_model=ExecuteResponse)
async def execute(request: ExecuteRequest, executor: ActionExecutor = Depends(get_executor)):
    """
    Validate and run an action against the given database.

    Deletes and updates without a filter are refused.
    """
    request_id = new_request_id()
    logger.info(f"[{request_id}] Executing {request.action.action} on {request.action.collection}")

    report = ensure_valid(request.action)
    for warning in report.warnings:
        logger.warning(f"[{request_id}] {warning}")

    result = await executor.execute(request.connection, request.action)
    logger.info(f"[{request_id}] Execution complete")

    return ExecuteResponse(result=result, request_id=request_id)
