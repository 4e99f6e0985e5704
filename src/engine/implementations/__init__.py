from .anthropic_engine import AnthropicEngine
from .sse_engine import SSEBackendEngine


__all__ = ["AnthropicEngine", "SSEBackendEngine"]
