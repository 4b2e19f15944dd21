"""MongoDB response schemas."""
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from typing import Annotated, Dict, Any, List, Literal, Optional, Union
from mongolingo.schemas.action import Action

class IndexInfo(BaseModel):
    """An index on a collection."""
    name: str
    keys: List[str]
    unique: bool = False

class CollectionSchema(BaseModel):
    """Inferred structure of a MongoDB collection."""
    model_config = ConfigDict(frozen=True)

    name: str
    fields: List[str] = Field(default_factory=list)  # first-seen order
    field_types: Dict[str, List[str]] = Field(default_factory=dict)
    sample_values: Dict[str, Any] = Field(default_factory=dict)
    indexes: List[IndexInfo] = Field(default_factory=list)
    document_count: int = 0

class DatabaseSnapshot(BaseModel):
    """Schemas of every collection in a database at one point in time."""
    model_config = ConfigDict(frozen=True)

    database_name: str
    collections: List[CollectionSchema] = Field(default_factory=list)
    total_collections: int = 0
    total_documents: int = 0
    scanned_at: datetime

    def collection_names(self) -> List[str]:
        return [collection.name for collection in self.collections]

    def get_collection(self, name: Optional[str]) -> Optional[CollectionSchema]:
        for collection in self.collections:
            if collection.name == name:
                return collection
        return None

class ResultMetadata(BaseModel):
    """How the action was applied."""
    projection_used: bool = False
    fields_returned: List[str] = Field(default_factory=list)
    skipped: int = 0
    sort_corrections: Dict[str, Any] = Field(default_factory=dict)  # field -> rejected value

class _BaseResult(BaseModel):
    collection: str
    metadata: ResultMetadata = Field(default_factory=ResultMetadata)

class FindResult(_BaseResult):
    action: Literal["find"] = "find"
    documents: List[Dict[str, Any]] = Field(default_factory=list)
    count: int = 0

class AggregateResult(_BaseResult):
    action: Literal["aggregate"] = "aggregate"
    documents: List[Dict[str, Any]] = Field(default_factory=list)
    count: int = 0

class InsertResult(_BaseResult):
    action: Literal["insert"] = "insert"
    inserted_count: int = 0
    inserted_ids: List[str] = Field(default_factory=list)

class UpdateResult(_BaseResult):
    action: Literal["update"] = "update"
    matched_count: int = 0
    modified_count: int = 0
    upserted_count: int = 0

class DeleteResult(_BaseResult):
    action: Literal["delete"] = "delete"
    deleted_count: int = 0

ExecutionResult = Annotated[
    Union[FindResult, AggregateResult, InsertResult, UpdateResult, DeleteResult],
    Field(discriminator="action"),
]

class TranslateResponse(BaseModel):
    """Response schema for the translate operation."""
    ok: bool = True
    action: Action
    schema_used: bool
    warnings: List[str] = Field(default_factory=list)
    request_id: str
    metadata: Dict[str, Any] = Field(default_factory=dict)

class ExecuteResponse(BaseModel):
    """Response schema for the execute operation."""
    ok: bool = True
    result: ExecutionResult
    request_id: str

class SchemaResponse(BaseModel):
    """Response schema for database introspection."""
    ok: bool = True
    metadata: DatabaseSnapshot
    ai_context: Optional[str] = None
