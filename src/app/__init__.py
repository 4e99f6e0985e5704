"""
Application Package

Turns decoded stream events into session message logs:
- SessionRegistry owns sessions and their logs
- ToolCorrelationTable pairs tool invocations with their results
- MessageAssembler folds a session's events into its log
- TurnCoordinator runs turns from the engine to the SSE response
- ClientReconciler and RelayClient rebuild the same log on the consumer side
"""

from .assembler import MessageAssembler
from .client import RelayClient
from .command_router import TaskInfo, enhance_prompt, identify_task
from .coordinator import TurnCoordinator, TurnHandle
from .correlation import ToolCorrelationTable
from .models import Message, Session, ToolInvocation, TurnStatus
from .reconciler import ClientReconciler
from .session import SessionBusyError, SessionNotFoundError, SessionRegistry
from .streaming import ChatStreamingHandler

__all__ = [
    "ChatStreamingHandler",
    "ClientReconciler",
    "Message",
    "MessageAssembler",
    "RelayClient",
    "Session",
    "SessionBusyError",
    "SessionNotFoundError",
    "SessionRegistry",
    "TaskInfo",
    "ToolCorrelationTable",
    "ToolInvocation",
    "TurnCoordinator",
    "TurnHandle",
    "TurnStatus",
    "enhance_prompt",
    "identify_task",
]
