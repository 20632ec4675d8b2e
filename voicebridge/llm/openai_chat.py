"""
OpenAI chat completion adapters.

Each adapter instance keeps the message history for one call and replays it, with
the live system prompt in front, on every request. Function schemas are offered
to the model as tools; tool calls in the reply are surfaced as pending function
calls and their results are appended as tool messages.
"""

import asyncio
import json
import logging
import os
from typing import Any, Dict, List, Optional

import requests

from voicebridge.config.constants import (
    DEFAULT_CHAT_MODEL,
    GPT4_CHAT_MODEL,
    LOGGER_NAME,
    OPENAI_API_URL,
    OPENAI_REQUEST_TIMEOUT,
)
from voicebridge.exceptions import ModelError
from voicebridge.llm.base import Llm, RawCompletion
from voicebridge.models.openai_schemas import (
    ChatCompletionResponse,
    ChatMessage,
    FunctionSchema,
    MessageRole,
    ToolCall,
)

logger = logging.getLogger(LOGGER_NAME)

# Options forwarded to the chat completions request when present
MODEL_OPTIONS = ("temperature", "max_tokens", "top_p")


class Gpt35(Llm):
    """
    Implements the Llm class against the OpenAI GPT-3.5-turbo chat model.
    """

    supports_functions = True
    description = "OpenAI GPT-3.5-turbo chat completion"
    model = DEFAULT_CHAT_MODEL

    def __init__(
        self,
        user: str,
        prompt: str,
        functions: Optional[List[Dict[str, Any]]] = None,
        options: Optional[Dict[str, Any]] = None,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        api_url: str = OPENAI_API_URL,
    ):
        super().__init__(user, prompt, functions=functions, options=options, model=model)
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.api_url = api_url
        self.tools = [FunctionSchema(**function).to_tool() for function in functions] if functions else None
        # Everything after the system prompt
        self.history: List[ChatMessage] = []

    def messages(self) -> List[Dict[str, Any]]:
        system = ChatMessage(role=MessageRole.SYSTEM, content=self.prompt)
        return [message.to_request() for message in [system, *self.history]]

    def payload(self) -> Dict[str, Any]:
        payload = {
            "model": self.model,
            "messages": self.messages(),
            "user": self.user,
        }
        payload.update({key: self.options[key] for key in MODEL_OPTIONS if key in self.options})
        if self.tools:
            payload["tools"] = self.tools
        return payload

    async def raw_initial(self) -> RawCompletion:
        return await self._post()

    async def raw_completion(self, text: str) -> RawCompletion:
        self.history.append(ChatMessage(role=MessageRole.USER, content=text))
        return await self._post()

    async def raw_call_result(self, results: List[Dict[str, Any]]) -> RawCompletion:
        for result in results:
            self.history.append(
                ChatMessage(
                    role=MessageRole.TOOL,
                    tool_call_id=result.get("id"),
                    content=self._result_content(result.get("result")),
                )
            )
        return await self._post()

    async def _post(self) -> RawCompletion:
        if not self.api_key:
            raise ModelError("OPENAI_API_KEY environment variable not set")

        response = await asyncio.to_thread(
            requests.post,
            self.api_url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            json=self.payload(),
            timeout=OPENAI_REQUEST_TIMEOUT,
        )
        if response.status_code != 200:
            raise ModelError(f"Chat completion failed ({response.status_code}): {response.text}")

        message = ChatCompletionResponse(**response.json()).choices[0].message
        self.history.append(message)

        calls = None
        if message.tool_calls:
            calls = [self._to_call(tool_call) for tool_call in message.tool_calls]
            logger.info(f"Model requested {len(calls)} function call(s) for user {self.user}")
        return RawCompletion(text=message.content, calls=calls)

    @staticmethod
    def _to_call(tool_call: ToolCall) -> Dict[str, Any]:
        try:
            arguments = json.loads(tool_call.function.arguments or "{}")
        except json.JSONDecodeError:
            logger.warning(f"Function {tool_call.function.name} arguments are not valid JSON")
            arguments = {"arguments": tool_call.function.arguments}
        return {"id": tool_call.id, "name": tool_call.function.name, "input": arguments}

    @staticmethod
    def _result_content(result: Any) -> str:
        if isinstance(result, str):
            return result
        return json.dumps(result)


class Gpt4(Gpt35):
    """
    Implements the Llm class against the OpenAI GPT-4 chat model.
    """

    description = "OpenAI GPT-4 chat completion"
    model = GPT4_CHAT_MODEL
