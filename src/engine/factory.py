import logging
from typing import Any, Dict, Optional

from engine import BaseEngine


class EngineFactory:
    @staticmethod
    def create_engine(
        engine_type: str,
        config: Dict[str, Any],
        logger: Optional[logging.Logger] = None,
    ) -> BaseEngine:
        if engine_type.lower() == 'anthropic':
            from engine.implementations import AnthropicEngine
            return AnthropicEngine(config, logger=logger)
        elif engine_type.lower() == 'sse':
            from engine.implementations import SSEBackendEngine
            return SSEBackendEngine(config, logger=logger)
        else:
            raise ValueError(f"Unknown Engine type: {engine_type}")
