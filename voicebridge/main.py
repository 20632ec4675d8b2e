"""
FastAPI server for voicebridge voice agents.

This module initializes and configures the FastAPI application that the telephony
platform calls into. Agents are created through the admin API; each one gets a
telephony websocket path, used as the platform's application URL, and a
progress websocket path where listeners follow its conversations and answer
function calls.
"""

import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List

import dotenv
from fastapi import FastAPI, HTTPException, WebSocket

from voicebridge.bot.registry import AgentRegistry
from voicebridge.config.constants import AGENT_PATH_PREFIX, PROGRESS_PATH_PREFIX
from voicebridge.config.logging_config import configure_logging
from voicebridge.exceptions import UnsupportedCapability
from voicebridge.handlers.agent_handlers import (
    handle_create_agent,
    handle_delete_agent,
    handle_list_agents,
    handle_list_implementations,
    handle_update_agent,
)
from voicebridge.models.agent_schemas import (
    AgentCreatedResponse,
    AgentCreateRequest,
    AgentSummary,
    AgentUpdateRequest,
    ImplementationSummary,
)
from voicebridge.websocket_manager import WebSocketManager

# Load environment variables from .env file if it exists
env_path = Path(".") / ".env"
if env_path.exists():
    dotenv.load_dotenv(env_path)

# Configure logging
logger = configure_logging(os.getenv("LOG_LEVEL", "INFO"))

# Get configuration from environment variables
PORT = int(os.getenv("PORT", "8000"))
HOST = os.getenv("HOST", "0.0.0.0")

# Live agents, shared by the websocket manager and the admin API
registry = AgentRegistry()
websocket_manager = WebSocketManager(registry)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    logger.info("Shutting down, destroying live agents")
    await registry.clean()


# Create FastAPI application
app = FastAPI(
    title="Voicebridge",
    description="Voice agents bridging jambonz call control and LLM chat completions",
    version="1.0.0",
    lifespan=lifespan,
)


@app.websocket(AGENT_PATH_PREFIX + "/{name}")
async def telephony_endpoint(websocket: WebSocket, name: str):
    """WebSocket endpoint the telephony platform connects to, one connection per call."""
    await websocket_manager.handle_telephony(websocket, name)


@app.websocket(PROGRESS_PATH_PREFIX + "/{name}")
async def progress_endpoint(websocket: WebSocket, name: str):
    """Progress stream of an agent. Function results are sent back on the same socket."""
    await websocket_manager.handle_progress(websocket, name)


@app.get("/api/implementations", response_model=List[ImplementationSummary])
async def list_implementations():
    return await handle_list_implementations()


@app.get("/api/agents", response_model=List[AgentSummary])
async def list_agents():
    return await handle_list_agents(registry)


@app.post("/api/agents", response_model=AgentCreatedResponse, status_code=201)
async def create_agent(request: AgentCreateRequest):
    """Create an agent.

    Returns:
        dict: The agent id, its telephony path and its progress socket path.
    """
    try:
        return await handle_create_agent(request, registry)
    except (ValueError, UnsupportedCapability) as e:
        logger.info(f"Rejected agent creation: {e}")
        raise HTTPException(status_code=400, detail=str(e))


@app.put("/api/agents/{name}", response_model=AgentSummary)
async def update_agent(name: str, request: AgentUpdateRequest):
    """Change the prompt or merge options of a live agent. Live calls pick the change up."""
    try:
        return await handle_update_agent(name, request, registry)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"No agent {name}")


@app.delete("/api/agents/{name}", status_code=204)
async def delete_agent(name: str):
    """Destroy an agent, politely hanging up its live calls first."""
    try:
        await handle_delete_agent(name, registry)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"No agent {name}")


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring system status.

    Returns:
        dict: Status information indicating the server is operational.
    """
    agents = registry.list()
    return {
        "status": "healthy",
        "openai_api_key_configured": bool(os.getenv("OPENAI_API_KEY")),
        "agents": len(agents),
        "active_calls": sum(len(agent.sessions) for agent in agents),
    }


@app.get("/")
async def root():
    """Root endpoint to display basic information about the API.

    Returns:
        dict: Basic information about the API and its purpose.
    """
    return {
        "name": "Voicebridge",
        "description": "Voice agents bridging jambonz call control and LLM chat completions",
        "version": "1.0.0",
        "endpoints": {
            f"{AGENT_PATH_PREFIX}/{{id}}": "WebSocket endpoint for the telephony platform",
            f"{PROGRESS_PATH_PREFIX}/{{id}}": "WebSocket progress stream of an agent",
            "/api/agents": "Create and list agents",
            "/api/implementations": "Available LLM implementations",
            "/health": "Health check endpoint",
        },
    }


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting server on http://{HOST}:{PORT}")
    uvicorn.run(
        app,
        host=HOST,
        port=PORT,
        websocket_ping_interval=5,
        websocket_ping_timeout=20,
        http="h11",
    )
