from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    # Fields are optional so a missing one gets the relay's own 400 body
    model_config = ConfigDict(populate_by_name=True)

    project_path: Optional[str] = Field(default=None, alias="projectPath")
    message: Optional[str] = None
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class ErrorResponse(BaseModel):
    error: str


class SessionSummary(BaseModel):
    session_id: str
    project_id: str
    status: str
    turn_count: int
    message_count: int
    last_activity_at: datetime


class SessionListResponse(BaseModel):
    sessions: List[SessionSummary]
    count: int


class ClearResponse(BaseModel):
    session_id: str
    cleared: int


class CancelResponse(BaseModel):
    session_id: str
    cancelled: bool


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    pa_root: str
    engine_type: str
    metrics: Dict[str, Any] = Field(default_factory=dict)
