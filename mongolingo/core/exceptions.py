"""
Error taxonomy for the translation and execution pipeline.

Every error carries the pipeline stage it came from so that callers can tell
where a request failed without reading the server logs.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

class MongoLingoError(Exception):
    """Base error for all typed pipeline failures."""

    status_code = 500
    error_code = "INTERNAL_ERROR"
    default_stage = "pipeline"

    def __init__(self, message: str, stage: Optional[str] = None, detail: Any = None):
        self.message = message
        self.stage = stage or self.default_stage
        self.detail = detail
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": False,
            "error": self.message,
            "error_code": self.error_code,
            "stage": self.stage,
            "detail": self.detail,
        }

class DatabaseConnectionError(MongoLingoError):
    """The target database could not be reached."""

    status_code = 503
    error_code = "DATABASE_UNREACHABLE"
    default_stage = "connection"

class ProviderError(MongoLingoError):
    """A single model provider failed to produce a completion."""

    status_code = 502
    error_code = "PROVIDER_ERROR"
    default_stage = "model"

    def __init__(self, provider: str, message: str, detail: Any = None):
        self.provider = provider
        super().__init__(f"{provider}: {message}", detail=detail)

class RateLimitError(ProviderError):
    """The provider signalled a rate limit or exhausted quota."""

    error_code = "PROVIDER_RATE_LIMITED"

class AllProvidersExhausted(MongoLingoError):
    """Every configured model provider failed."""

    status_code = 502
    error_code = "ALL_PROVIDERS_EXHAUSTED"
    default_stage = "model"

    def __init__(self, failures: List[Tuple[str, str]]):
        self.failures = failures
        if failures:
            reasons = "; ".join(f"{name}: {reason}" for name, reason in failures)
            message = f"All model providers failed ({reasons})"
        else:
            message = "All model providers failed (no model providers configured)"
        super().__init__(
            message,
            detail=[{"provider": name, "reason": reason} for name, reason in failures],
        )

class MalformedResponse(MongoLingoError):
    """The model output could not be recovered into an action."""

    status_code = 422
    error_code = "MALFORMED_RESPONSE"
    default_stage = "normalize"
    RAW_PREVIEW_CHARS = 500

    def __init__(self, message: str, raw_text: Any = None):
        preview = None
        if raw_text is not None:
            preview = str(raw_text)[: self.RAW_PREVIEW_CHARS]
        self.raw_text = preview
        super().__init__(message, detail={"raw_text": preview})

class ActionValidationError(MongoLingoError):
    """The action broke a structural or safety rule."""

    status_code = 400
    error_code = "INVALID_ACTION"
    default_stage = "validate"

    def __init__(self, errors: List[str], action: Any = None):
        self.errors = list(errors)
        if hasattr(action, "model_dump"):
            action = action.model_dump()
        super().__init__(
            f"Invalid action: {'; '.join(self.errors)}",
            detail={"errors": self.errors, "action": action},
        )

class ExecutionError(MongoLingoError):
    """The database operation failed."""

    status_code = 500
    error_code = "EXECUTION_FAILED"
    default_stage = "execute"

class UnsafeActionError(ExecutionError):
    """The executor refused a destructive action with an empty filter."""

    status_code = 400
    error_code = "UNSAFE_ACTION_REFUSED"

def register_exception_handlers(app: FastAPI) -> None:
    """Return every pipeline error as a structured JSON body."""

    @app.exception_handler(MongoLingoError)
    async def handle_pipeline_error(request: Request, exc: MongoLingoError):
        logger.error(f"{exc.error_code} at stage '{exc.stage}' for {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(f"Unexpected error for {request.url.path}: {str(exc)}", exc_info=exc)
        error = MongoLingoError(f"Internal server error: {str(exc)}")
        return JSONResponse(status_code=error.status_code, content=error.to_dict())
