from .base import BaseEngine, TurnRequest
from .factory import EngineFactory

__all__ = ["BaseEngine", "EngineFactory", "TurnRequest"]
