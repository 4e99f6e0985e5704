import logging
from collections import OrderedDict
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .models import ToolInvocation, ToolResultMessage, ToolUseMessage, utc_now

UNKNOWN_TOOL = "unknown"


class ToolCategory(str, Enum):
    GENERAL = "general"
    TODO = "todo"


# Keyed by lower-cased tool name
TOOL_CATEGORIES: Dict[str, ToolCategory] = {
    "todowrite": ToolCategory.TODO,
}


def categorize_tool(tool_name: Optional[str]) -> ToolCategory:
    if not tool_name:
        return ToolCategory.GENERAL
    return TOOL_CATEGORIES.get(tool_name.lower(), ToolCategory.GENERAL)


def tool_use_message_id(invocation_id: str) -> str:
    return f"tool-use-{invocation_id}"


def tool_result_message_id(invocation_id: str) -> str:
    return f"tool-result-{invocation_id}"


class ToolCorrelationTable:
    """
    Pairs tool invocations with their results, per session.

    Pending invocations are removed as soon as they complete, or when the
    turn ends without their result. A bounded history of completed
    invocations lets a redelivered result still report the right tool
    name and keeps a late tool_use from being tracked again.
    """

    def __init__(
        self,
        completed_history: int = 256,
        logger: Optional[logging.Logger] = None,
    ):
        self.completed_history = completed_history
        self.logger = logger or logging.getLogger("ToolCorrelationTable")

        self._pending: Dict[str, "OrderedDict[str, ToolInvocation]"] = {}
        self._completed: Dict[str, "OrderedDict[str, ToolInvocation]"] = {}
        self._orphans: Dict[str, int] = {}

    def begin(
        self,
        session_id: str,
        invocation_id: str,
        tool_name: str,
        tool_input: Any,
    ) -> ToolUseMessage:
        """
        Record a pending invocation.

        A second begin for an id that is still pending overwrites the
        earlier record. An id that has already completed (its result
        arrived first, or this is a redelivery) is not tracked again.

        Returns:
            The ``tool_use`` message to append to the log
        """
        message = ToolUseMessage(
            id=tool_use_message_id(invocation_id),
            tool_id=invocation_id,
            tool_name=tool_name,
            tool_input=tool_input,
        )

        completed = self._completed.get(session_id, {})
        if invocation_id in completed:
            previous = completed[invocation_id]
            if previous.tool_name == UNKNOWN_TOOL:
                previous.tool_name = tool_name
            if previous.input is None:
                previous.input = tool_input
            self.logger.debug(
                f"tool_use {invocation_id} in session {session_id} has already completed"
            )
            return message

        pending = self._pending.setdefault(session_id, OrderedDict())
        if invocation_id in pending:
            self.logger.warning(
                f"Duplicate tool_use {invocation_id} in session {session_id}; "
                f"replacing pending {pending[invocation_id].tool_name} record"
            )

        pending[invocation_id] = ToolInvocation(
            invocation_id=invocation_id,
            tool_name=tool_name,
            input=tool_input,
        )
        self.logger.debug(f"Tool {tool_name} started ({invocation_id}) in session {session_id}")

        return message

    def complete(
        self,
        session_id: str,
        invocation_id: Optional[str],
        output: Any,
        is_error: bool = False,
        tool_name: Optional[str] = None,
    ) -> List[ToolResultMessage]:
        """
        Match a result to its pending invocation.

        Args:
            session_id: Session identifier
            invocation_id: Id of the invocation; when absent, the oldest
                pending invocation of ``tool_name`` is used
            output: Result payload
            is_error: Whether the tool reported a failure
            tool_name: Tool name reported alongside the result, if any

        Returns:
            The ``tool_result`` message, followed by a todo-list message
            when the tool manages the todo list
        """
        invocation_id, invocation = self._take(session_id, invocation_id, tool_name)

        if invocation is None:
            invocation = self._recall(session_id, invocation_id)
            if invocation is not None:
                self.logger.warning(
                    f"tool_result {invocation_id} arrived after its invocation was closed "
                    f"in session {session_id}"
                )
            else:
                self.logger.warning(
                    f"tool_result {invocation_id} has no pending tool_use in session {session_id}"
                )
                invocation = ToolInvocation(
                    invocation_id=invocation_id,
                    tool_name=tool_name or UNKNOWN_TOOL,
                )

        invocation.completion_time = utc_now()
        invocation.result = output
        invocation.is_error = is_error
        self._remember(session_id, invocation)

        messages = [
            ToolResultMessage(
                id=tool_result_message_id(invocation_id),
                tool_id=invocation_id,
                tool_name=invocation.tool_name,
                tool_input=invocation.input,
                tool_result=output,
                is_error=is_error,
                error=self._error_text(output) if is_error else None,
            )
        ]

        todo_message = self._todo_update(invocation)
        if todo_message is not None:
            messages.append(todo_message)

        return messages

    def pending(self, session_id: str) -> List[ToolInvocation]:
        return list(self._pending.get(session_id, {}).values())

    def is_pending(self, session_id: str, invocation_id: str) -> bool:
        return invocation_id in self._pending.get(session_id, {})

    def is_completed(self, session_id: str, invocation_id: str) -> bool:
        return invocation_id in self._completed.get(session_id, {})

    def settle(self, session_id: str) -> int:
        """
        Close out invocations still pending when a turn ends.

        They move to the completed history without a result, so a late
        result or a redelivered tool_use is recognised rather than
        tracked again.

        Returns:
            Number of invocations that never got a result
        """
        pending = self._pending.pop(session_id, None)
        if not pending:
            return 0

        for invocation in pending.values():
            self._remember(session_id, invocation)

        self.logger.warning(
            f"Turn ended with {len(pending)} unanswered tool invocations in session "
            f"{session_id}: {', '.join(pending)}"
        )
        return len(pending)

    def clear(self, session_id: str) -> int:
        """
        Drop all state for a session.

        Returns:
            Number of pending invocations that were discarded
        """
        dropped = len(self._pending.pop(session_id, {}))
        self._completed.pop(session_id, None)
        self._orphans.pop(session_id, None)
        if dropped:
            self.logger.info(f"Discarded {dropped} pending tool invocations for session {session_id}")
        return dropped

    def _take(
        self,
        session_id: str,
        invocation_id: Optional[str],
        tool_name: Optional[str],
    ) -> Tuple[str, Optional[ToolInvocation]]:
        pending = self._pending.get(session_id, OrderedDict())

        if invocation_id is None:
            for candidate_id, candidate in pending.items():
                if tool_name and candidate.tool_name == tool_name:
                    invocation_id = candidate_id
                    break
            else:
                # Numbered per session so every consumer derives the same id
                count = self._orphans.get(session_id, 0) + 1
                self._orphans[session_id] = count
                invocation_id = f"{tool_name or UNKNOWN_TOOL}-orphan-{count}"

        invocation = pending.pop(invocation_id, None)
        if not pending:
            self._pending.pop(session_id, None)
        return invocation_id, invocation

    def _remember(self, session_id: str, invocation: ToolInvocation) -> None:
        completed = self._completed.setdefault(session_id, OrderedDict())
        completed[invocation.invocation_id] = invocation
        completed.move_to_end(invocation.invocation_id)
        while len(completed) > self.completed_history:
            completed.popitem(last=False)

    def _recall(self, session_id: str, invocation_id: str) -> Optional[ToolInvocation]:
        completed = self._completed.get(session_id)
        if not completed or invocation_id not in completed:
            return None
        previous = completed[invocation_id]
        return ToolInvocation(
            invocation_id=invocation_id,
            tool_name=previous.tool_name,
            input=previous.input,
            start_time=previous.start_time,
        )

    def _todo_update(self, invocation: ToolInvocation) -> Optional[ToolResultMessage]:
        """Synthesize the todo-list message from the original tool input."""
        if categorize_tool(invocation.tool_name) != ToolCategory.TODO:
            return None

        tool_input = invocation.input
        todos = tool_input.get("todos") if isinstance(tool_input, dict) else None
        if not todos:
            return None

        return ToolResultMessage(
            id=f"todo-{invocation.invocation_id}",
            tool_id=invocation.invocation_id,
            tool_name=invocation.tool_name,
            tool_input={"todos": todos},
            tool_result="Todo list updated successfully",
        )

    @staticmethod
    def _error_text(output: Any) -> str:
        if isinstance(output, str):
            return output
        if isinstance(output, list):
            # Content block lists: [{"type": "text", "text": ...}]
            texts = [
                block.get("text", "")
                for block in output
                if isinstance(block, dict) and block.get("type") == "text"
            ]
            if texts:
                return "\n".join(texts)
        return str(output)
