"""
Pydantic models for OpenAI chat completion message structures.

This module provides type-safe models for the messages exchanged with the OpenAI
chat completions API, including tool (function) calls and their results.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class MessageRole(str, Enum):
    """Role of a participant in a conversation."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolFunction(BaseModel):
    """Function invocation inside a tool call, arguments are a JSON string."""
    name: str
    arguments: str = "{}"


class ToolCall(BaseModel):
    """Tool call requested by the assistant."""
    id: str
    type: str = "function"
    function: ToolFunction


class ChatMessage(BaseModel):
    """Message within a conversation."""
    model_config = ConfigDict(use_enum_values=True)

    role: MessageRole
    content: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None
    tool_call_id: Optional[str] = None

    def to_request(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ChatChoice(BaseModel):
    index: int = 0
    message: ChatMessage
    finish_reason: Optional[str] = None


class ChatCompletionResponse(BaseModel):
    """Response body of a chat completion request."""
    id: Optional[str] = None
    model: Optional[str] = None
    choices: List[ChatChoice] = Field(..., min_length=1)


class FunctionSchema(BaseModel):
    """
    Function the model may call.

    Accepts either ``parameters`` (OpenAI naming) or ``input_schema`` for the
    JSON schema of the arguments.
    """
    model_config = ConfigDict(extra="allow")

    name: str
    description: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})

    @model_validator(mode="before")
    @classmethod
    def accept_input_schema(cls, data):
        if isinstance(data, dict) and "parameters" not in data and "input_schema" in data:
            data = {**data, "parameters": data["input_schema"]}
        return data

    def to_tool(self) -> Dict[str, Any]:
        function = {"name": self.name, "parameters": self.parameters}
        if self.description:
            function["description"] = self.description
        return {"type": "function", "function": function}
