"""Structured database action derived from natural-language input."""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

class ActionKind(str, Enum):
    """The closed set of operations an action may request."""
    FIND = "find"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    AGGREGATE = "aggregate"

    @classmethod
    def values(cls) -> List[str]:
        return [kind.value for kind in cls]

DESTRUCTIVE_KINDS = {ActionKind.UPDATE, ActionKind.DELETE}

class ActionOptions(BaseModel):
    """Read options for find actions."""
    model_config = ConfigDict(extra="ignore")

    limit: Optional[int] = Field(None, description="Maximum number of documents to return")
    skip: Optional[int] = Field(None, description="Number of documents to skip")
    sort: Optional[Dict[str, Any]] = Field(None, description="Field -> 1 (ascending) or -1 (descending)")
    projection: Optional[Dict[str, Any]] = Field(None, description="Field inclusion/exclusion document")

class Action(BaseModel):
    """
    A database operation proposed by the model.

    Fields are typed loosely. Per-kind required fields are checked by the
    ActionValidator, which reports every violation at once.
    """
    model_config = ConfigDict(extra="ignore")

    action: Optional[str] = Field(None, description="One of find, insert, update, delete, aggregate")
    collection: Optional[str] = Field(None, description="Target collection name")
    query: Optional[Dict[str, Any]] = Field(None, description="Filter document")
    update: Optional[Dict[str, Any]] = Field(None, description="Update-operator document")
    insert: Optional[Any] = Field(None, description="Document or list of documents to insert")
    pipeline: Optional[Any] = Field(None, description="Aggregation stages")
    options: ActionOptions = Field(default_factory=ActionOptions)

    @property
    def kind(self) -> Optional[ActionKind]:
        """The action kind, or None when the model asked for something unsupported."""
        try:
            return ActionKind(self.action)
        except ValueError:
            return None

    @property
    def is_destructive(self) -> bool:
        return self.kind in DESTRUCTIVE_KINDS

class ValidationReport(BaseModel):
    """Outcome of checking an action against the structural and safety rules."""
    valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
