"""Natural-language to MongoDB action translation."""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from mongolingo.config.settings import DEFAULT_PREVIEW_LIMIT
from mongolingo.core.exceptions import ActionValidationError
from mongolingo.schemas.action import Action
from mongolingo.schemas.request.mongo_request import ConnectionDescriptor
from mongolingo.schemas.response.mongo_response import DatabaseSnapshot
from mongolingo.services.agents import context_composer, response_normalizer
from mongolingo.services.agents.action_validator import ensure_valid
from mongolingo.services.llm.orchestrator import ModelOrchestrator
from mongolingo.services.mongodb.schema_service import SchemaIntrospector

logger = logging.getLogger(__name__)

@dataclass
class Translation:
    action: Action
    schema_used: bool
    warnings: List[str] = field(default_factory=list)
    provider: Optional[str] = None
    snapshot: Optional[DatabaseSnapshot] = None

class QueryTranslator:
    """
    Schema-aware translation of user requests into validated actions.

    Pipeline: snapshot (cached) -> prompt -> model fallback chain ->
    normalize -> validate.
    """

    def __init__(self, introspector: SchemaIntrospector, orchestrator: ModelOrchestrator):
        self.introspector = introspector
        self.orchestrator = orchestrator

    async def translate(
        self,
        user_text: str,
        descriptor: Optional[ConnectionDescriptor] = None,
        collections: Optional[List[str]] = None,
        preview_limit: int = DEFAULT_PREVIEW_LIMIT,
        force_schema_refresh: bool = False,
    ) -> Translation:
        """
        Translate a user request into a validated action.

        Args:
            user_text: Request in natural language
            descriptor: Database whose schema grounds the prompt; optional
            collections: Collection names to offer the model when there is no descriptor
            preview_limit: Default limit for reads
            force_schema_refresh: Rescan the database instead of using the cache

        Returns:
            Translation with the action and the validator's warnings

        Raises:
            ActionValidationError: For empty input or an action that breaks the rules
            DatabaseConnectionError: If the descriptor's database is unreachable
            AllProvidersExhausted: If no model produced a completion
            MalformedResponse: If the completion holds no usable action
        """
        if not user_text or not user_text.strip():
            raise ActionValidationError(["user_text must not be empty"])

        snapshot = None
        if descriptor is not None:
            snapshot = await self.introspector.get_cached(descriptor, force_refresh=force_schema_refresh)

        prompt = context_composer.compose(
            snapshot,
            user_text.strip(),
            available_collections=collections,
            preview_limit=preview_limit,
        )
        logger.info(f"Prompt composed ({len(prompt)} chars), schema {'attached' if snapshot else 'not attached'}")

        completion = await self.orchestrator.complete(prompt)
        action = response_normalizer.normalize(completion.text, preview_limit=preview_limit)

        collection_schema = snapshot.get_collection(action.collection) if snapshot else None
        report = ensure_valid(action, collection_schema)

        warnings = list(report.warnings)
        if snapshot is not None and collection_schema is None:
            warnings.append(f"Collection '{action.collection}' was not found in {snapshot.database_name}")
            logger.warning(warnings[-1])

        return Translation(
            action=action,
            schema_used=snapshot is not None,
            warnings=warnings,
            provider=completion.provider,
            snapshot=snapshot,
        )
