import json
import logging
import time
import uuid
from typing import Any, AsyncIterator, Dict, List, Optional

from anthropic import AsyncAnthropic

from engine import BaseEngine, TurnRequest


def _frame(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, default=str)}"


class AnthropicEngine(BaseEngine):
    """
    Runs turns against the Anthropic Messages API.

    The API is stateless, so the engine keeps each conversation's history
    under the session id it reports in ``init`` and resumes from it when
    that id comes back.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        client: Optional[AsyncAnthropic] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.api_key = config.get('api_key')
        self.llm_model = config.get('llm_model', 'claude-3-5-sonnet-20241022')
        self.max_tokens = config.get('max_tokens', 4096)
        self.logger = logger or logging.getLogger("AnthropicEngine")

        self.client = client or AsyncAnthropic(api_key=self.api_key)
        self._histories: Dict[str, List[Dict[str, Any]]] = {}

    async def stream_turn(self, request: TurnRequest) -> AsyncIterator[str]:
        session_id = request.resume_session_id
        if not session_id or session_id not in self._histories:
            session_id = str(uuid.uuid4())
        history = self._histories.setdefault(session_id, [])
        history.append({"role": "user", "content": request.message})

        yield _frame(
            {
                "type": "init",
                "sessionId": session_id,
                "model": self.llm_model,
                "tools": list(request.allowed_tools),
            }
        )

        start_time = time.monotonic()
        message_id: Optional[str] = None
        full_text = ""

        self.logger.debug(
            f"API request: model={self.llm_model}, max_tokens={self.max_tokens}, "
            f"messages={len(history)}"
        )

        try:
            async with self.client.messages.stream(
                model=self.llm_model,
                max_tokens=self.max_tokens,
                system=self._system_prompt(request),
                messages=history,
            ) as stream:
                async for event in stream:
                    if event.type == "message_start":
                        message_id = event.message.id
                    elif event.type == "content_block_delta" and event.delta.type == "text_delta":
                        full_text += event.delta.text
                        yield _frame(
                            {
                                "type": "text",
                                "text": event.delta.text,
                                "fullText": full_text,
                                "messageId": message_id,
                            }
                        )

                response = await stream.get_final_message()
        except BaseException:
            # Leave the history as it was before this turn
            history.pop()
            raise

        content = self._content_blocks(response)
        history.append({"role": "assistant", "content": content})

        usage = response.usage
        self.logger.debug(
            f"API response: stop_reason={response.stop_reason}, "
            f"input_tokens={usage.input_tokens}, output_tokens={usage.output_tokens}"
        )

        yield _frame(
            {
                "type": "result",
                "success": True,
                "duration": round((time.monotonic() - start_time) * 1000),
                "usage": {
                    "input_tokens": usage.input_tokens,
                    "output_tokens": usage.output_tokens,
                },
            }
        )

    def forget(self, session_id: str) -> None:
        self._histories.pop(session_id, None)

    def _system_prompt(self, request: TurnRequest) -> str:
        return (
            "You are a personal assistant working in the project at "
            f"{request.project_path}."
        )

    @staticmethod
    def _content_blocks(response: Any) -> List[Dict[str, Any]]:
        # No tools are offered to the model, so only text comes back
        return [
            {"type": "text", "text": block.text}
            for block in response.content
            if block.type == "text"
        ]

    async def aclose(self) -> None:
        await self.client.close()
