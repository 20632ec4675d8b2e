"""
Pydantic models for the administrative agent API.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class AgentCreateRequest(BaseModel):
    """Body of POST /api/agents."""

    agentName: str = Field(..., description="LLM implementation to run, see /api/implementations")
    prompt: str = Field(..., description="System prompt for the agent")
    options: Dict[str, Any] = Field(default_factory=dict, description="Combined model, TTS and STT options")
    functions: Optional[List[Dict[str, Any]]] = Field(None, description="Function schemas the model may call")
    callbackUrl: Optional[str] = Field(None, description="URL progress events are POSTed to")
    model: Optional[str] = Field(None, description="Model name overriding the implementation default")

    @field_validator("prompt")
    def validate_prompt(cls, v):
        """Validate that the prompt is not empty."""
        if not v.strip():
            raise ValueError("Prompt cannot be empty")
        return v


class AgentCreatedResponse(BaseModel):
    """Response to a successful agent creation."""

    id: str = Field(..., description="Agent identifier")
    path: str = Field(..., description="Telephony websocket path for the agent")
    socket: str = Field(..., description="Progress websocket path for the agent")


class AgentUpdateRequest(BaseModel):
    """Body of PUT /api/agents/{id}."""

    prompt: Optional[str] = None
    options: Optional[Dict[str, Any]] = None


class AgentSummary(BaseModel):
    """Listing entry for a live agent."""

    id: str
    implementation: str
    path: str
    socket: str
    prompt: str
    options: Dict[str, Any] = Field(default_factory=dict)
    sessions: List[str] = Field(default_factory=list)


class ImplementationSummary(BaseModel):
    """Listing entry for an available LLM implementation."""

    name: str
    description: str
    supportsFunctions: bool
