"""MongoDB request schemas."""
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from mongolingo.config.settings import DEFAULT_PREVIEW_LIMIT, MONGODB_URI
from mongolingo.schemas.action import Action

class ConnectionDescriptor(BaseModel):
    """Where the target database lives."""
    uri: str = Field(MONGODB_URI, validate_default=True, description="MongoDB connection string; defaults to MONGODB_URI")
    db_name: Optional[str] = Field(None, description="Database name; defaults to the one in the URI")

    @field_validator("uri")
    @classmethod
    def check_scheme(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith("mongodb"):
            raise ValueError("URI must start with mongodb:// or mongodb+srv://")
        return value

    @property
    def cache_key(self) -> str:
        """Connection identity used to key the schema cache."""
        return f"{self.uri}|{self.db_name or ''}"

class ConnectRequest(ConnectionDescriptor):
    """Request schema for checking that a database is reachable."""

class SchemaRequest(BaseModel):
    """Request schema for database introspection."""
    connection: ConnectionDescriptor
    refresh: bool = Field(False, description="Bypass the schema cache")
    format: str = Field("json", pattern="^(json|ai)$", description="'json' for the snapshot, 'ai' to add the model-facing context")

class TranslateRequest(BaseModel):
    """Request schema for turning user text into an action."""
    user_text: str = Field(..., min_length=1, max_length=5000, description="Natural-language request, in any language")
    connection: Optional[ConnectionDescriptor] = Field(None, description="Database to introspect for schema context")
    collections: List[str] = Field(default_factory=list, description="Collection names to offer when no connection is given")
    preview_limit: int = Field(DEFAULT_PREVIEW_LIMIT, ge=1, le=1000, description="Default options.limit for reads")
    force_schema_refresh: bool = Field(False, description="Rescan the database instead of using the cache")

class ExecuteRequest(BaseModel):
    """Request schema for running a previously translated action."""
    connection: ConnectionDescriptor
    action: Action
