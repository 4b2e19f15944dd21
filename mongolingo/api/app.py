"""Main FastAPI application factory."""
import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mongolingo.api.endpoints.agent_endpoints import router as agent_router
from mongolingo.api.endpoints.mongo_endpoints import router as mongo_router
from mongolingo.config.settings import LOG_LEVEL
from mongolingo.core.exceptions import register_exception_handlers
from mongolingo.services.agents.translator import QueryTranslator
from mongolingo.services.llm.orchestrator import ModelOrchestrator
from mongolingo.services.mongodb.query_service import ActionExecutor
from mongolingo.services.mongodb.schema_service import SchemaIntrospector

logger = logging.getLogger(__name__)

def create_app(
    introspector: Optional[SchemaIntrospector] = None,
    orchestrator: Optional[ModelOrchestrator] = None,
    executor: Optional[ActionExecutor] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        introspector: Schema introspector; its cache is shared by every request
        orchestrator: Model fallback chain, built from settings when omitted
        executor: Action executor
    """
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    app = FastAPI(
        title="MongoLingo",
        description="Translate natural-language requests in any language into safe MongoDB operations",
        version="0.1.0",
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.state.introspector = introspector or SchemaIntrospector()
    app.state.orchestrator = orchestrator or ModelOrchestrator.from_settings()
    app.state.executor = executor or ActionExecutor()
    app.state.translator = QueryTranslator(app.state.introspector, app.state.orchestrator)

    # Include routers
    app.include_router(mongo_router, prefix="/mcp/mongo", tags=["MongoDB MCP"])
    app.include_router(agent_router, prefix="/agent", tags=["AI Agent"])

    @app.get("/", tags=["Health"])
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "ok",
            "message": "MongoLingo server is running",
            "providers": app.state.orchestrator.provider_names,
        }

    @app.get("/diagnose", tags=["Health"])
    async def diagnose():
        """Report each model provider's configuration and whether it answers."""
        report = await app.state.orchestrator.diagnose()
        return {
            "ok": any(entry.get("status") == "connected" for entry in report),
            "providers": report,
        }

    logger.info(f"MongoLingo app created, providers: {app.state.orchestrator.provider_names}")
    return app
