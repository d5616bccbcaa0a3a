from pydantic import BaseModel, Field
from typing import Any, Dict, Optional
from datetime import datetime
from enum import Enum

class MutationKind(str, Enum):
    CREATE_ARTICLE = "create_article"
    CREATE_HIGHLIGHT = "create_highlight"
    CREATE_NOTE = "create_note"

class MutationStatus(str, Enum):
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    ACKNOWLEDGED = "acknowledged"
    DEAD_LETTER = "dead_letter"

class MutationCreate(BaseModel):
    kind: MutationKind
    payload: Dict[str, Any]

class MutationResubmit(BaseModel):
    payload: Optional[Dict[str, Any]] = None

class QueuedMutation(BaseModel):
    id: str
    seq: int = 0
    kind: MutationKind
    payload: Dict[str, Any]
    created_at: datetime
    attempt_count: int = Field(default=0, ge=0)
    status: MutationStatus = MutationStatus.PENDING
    last_error: Optional[str] = None

    class Config:
        from_attributes = True

class DrainReport(BaseModel):
    acknowledged: int = 0
    retried_later: int = 0
    dead_lettered: int = 0

    @property
    def is_empty(self) -> bool:
        return not (self.acknowledged or self.retried_later or self.dead_lettered)

class ConnectivityUpdate(BaseModel):
    online: bool
