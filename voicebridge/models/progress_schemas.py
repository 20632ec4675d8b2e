"""
Pydantic models for the progress channel.

Outbound progress events are plain dictionaries tagged with the call id. Inbound
messages arrive from external listeners on the agent's progress websocket and are
validated here before being routed to a live call session.
"""

import json
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from voicebridge.exceptions import MalformedInboundMessage


class FunctionCall(BaseModel):
    """Function call requested by the model."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(..., description="Call identifier assigned by the model service")
    name: str = Field(..., description="Function name")
    input: Dict[str, Any] = Field(default_factory=dict, description="Decoded arguments")


class FunctionResult(BaseModel):
    """Result of a function call, resolved by an external listener."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(..., description="Identifier of the call this result answers")
    name: Optional[str] = None
    result: Any = None


class ProgressInboundMessage(BaseModel):
    """Message received on a progress websocket."""

    model_config = ConfigDict(extra="allow")

    call_id: str = Field(..., description="Call the message is addressed to")
    function_results: Optional[List[FunctionResult]] = None

    @field_validator("call_id")
    def validate_call_id(cls, v):
        """Validate that the call id is not empty."""
        if not v.strip():
            raise ValueError("call_id cannot be empty")
        return v

    @classmethod
    def parse_raw_message(cls, raw: str) -> "ProgressInboundMessage":
        """
        Parse a websocket text frame.

        Raises:
            MalformedInboundMessage: If the frame is not JSON or does not match the schema
        """
        try:
            return cls(**json.loads(raw))
        except (json.JSONDecodeError, TypeError, ValidationError) as e:
            raise MalformedInboundMessage(str(e)) from e

    def results_as_dicts(self) -> Optional[List[Dict[str, Any]]]:
        if self.function_results is None:
            return None
        return [result.model_dump() for result in self.function_results]
