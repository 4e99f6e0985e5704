from abc import ABC, abstractmethod
from typing import AsyncIterator, List, Optional

from pydantic import BaseModel, Field


class TurnRequest(BaseModel):
    """One turn handed to the agent backend."""

    project_path: str
    message: str
    resume_session_id: Optional[str] = None
    allowed_tools: List[str] = Field(default_factory=list)


class BaseEngine(ABC):
    """
    An opaque, turn-based agent backend.

    ``stream_turn`` yields raw SSE records (``data: {...}``) in the backend's
    chunk shapes; the caller decodes them.
    """

    @abstractmethod
    def stream_turn(self, request: TurnRequest) -> AsyncIterator[str]:
        pass

    async def aclose(self) -> None:
        return None
