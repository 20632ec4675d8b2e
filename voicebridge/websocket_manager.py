"""
WebSocket connection manager for voicebridge agents.

Each agent is reachable on two websocket paths:
- ``/agent/{name}``: one connection per call from the telephony platform, speaking
  the jambonz websocket API. The first frame must be ``session:new``; it starts a
  call session on the agent and every later frame is fed to that session.
- ``/progress/{name}``: the live progress stream. Conversation events are written
  to it and listeners send function results back on it. When it closes, the
  agent's close handler runs.

The WebSocketManager looks agents up in the AgentRegistry it is given.
"""

import asyncio
import json
import logging
import socket
from typing import Optional

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from voicebridge.bot.registry import AgentRegistry
from voicebridge.config.constants import (
    FORCE_CLOSE_TIMEOUT,
    LOGGER_NAME,
    MESSAGE_TYPE_SESSION_NEW,
    TELEPHONY_SUBPROTOCOL,
)
from voicebridge.handlers.progress_handlers import handle_progress_message
from voicebridge.models.telephony_events import TelephonyMessage
from voicebridge.services.telephony import JambonzSession

logger = logging.getLogger(LOGGER_NAME)

# Close code used when a websocket names an agent that does not exist
UNKNOWN_AGENT_CLOSE_CODE = 4404


class WebSocketManager:
    """Accepts agent websockets and routes their frames."""

    def __init__(self, registry: AgentRegistry):
        self.registry = registry

    async def _optimize_socket(self, websocket: WebSocket) -> None:
        """
        Disable Nagle's algorithm on the underlying TCP socket so verbs go out immediately.

        Args:
            websocket: The FastAPI WebSocket connection
        """
        try:
            client = websocket.client
            if hasattr(client, "sock") and client.sock is not None:
                client.sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
                logger.info("Optimized socket: TCP_NODELAY enabled for low latency")
        except Exception as e:
            logger.warning(f"Could not optimize socket: {e}")

    async def handle_telephony(self, websocket: WebSocket, name: str) -> None:
        """Handle one call's websocket from the telephony platform throughout its lifecycle.

        Args:
            websocket: The FastAPI WebSocket connection
            name: Agent name taken from the path
        """
        agent = self.registry.find(name)
        if agent is None:
            logger.warning(f"Call arrived for unknown agent {name}")
            await websocket.close(code=UNKNOWN_AGENT_CLOSE_CODE)
            return

        await websocket.accept(subprotocol=TELEPHONY_SUBPROTOCOL)
        await self._optimize_socket(websocket)
        logger.info(f"Telephony connection established for agent {name}")

        session: Optional[JambonzSession] = None
        call_task: Optional[asyncio.Task] = None
        disconnected = False

        try:
            while True:
                data = await websocket.receive_text()
                try:
                    message = json.loads(data)
                except json.JSONDecodeError as e:
                    logger.error(f"Invalid JSON from telephony platform: {e}")
                    continue

                if session is None:
                    if message.get("type") != MESSAGE_TYPE_SESSION_NEW:
                        logger.warning(f"Expected {MESSAGE_TYPE_SESSION_NEW}, got {message.get('type')}")
                        continue
                    try:
                        session = JambonzSession(websocket, TelephonyMessage(**message))
                    except ValidationError as e:
                        logger.error(f"Invalid {MESSAGE_TYPE_SESSION_NEW} message: {e}")
                        continue
                    logger.info(f"New call {session.call_sid} on agent {name}")
                    call_task = asyncio.create_task(agent.handle_call(session))
                    continue

                try:
                    session.handle_message(message)
                except ValidationError as e:
                    logger.error(f"Message validation error on call {session.call_sid}: {e}")

        except WebSocketDisconnect as e:
            disconnected = True
            logger.info(f"Telephony connection closed for agent {name} (code={e.code})")
            if session is not None:
                session.handle_close(e.code, getattr(e, "reason", None))
        except Exception as e:
            logger.error(f"Error in telephony connection for agent {name}: {e}", exc_info=True)
            if session is not None:
                session.handle_transport_error(e)
        finally:
            if call_task is not None:
                await self._finish_call(session, call_task)
            if not disconnected:
                try:
                    await websocket.close()
                except Exception as e:
                    logger.debug(f"Telephony websocket already closed: {e}")
            logger.info(f"Telephony connection for agent {name} cleaned up")

    async def _finish_call(self, session: JambonzSession, call_task: asyncio.Task) -> None:
        """Wait for the session to wind down, closing it locally if it does not."""
        try:
            await asyncio.wait_for(asyncio.shield(call_task), FORCE_CLOSE_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning(f"Call {session.call_sid} still running after its connection ended, closing")
            session.handle_close(reason="connection lost")
            await call_task

    async def handle_progress(self, websocket: WebSocket, name: str) -> None:
        """Handle an agent's progress websocket throughout its lifecycle.

        Args:
            websocket: The FastAPI WebSocket connection
            name: Agent name taken from the path
        """
        agent = self.registry.find(name)
        if agent is None:
            logger.warning(f"Progress connection for unknown agent {name}")
            await websocket.close(code=UNKNOWN_AGENT_CLOSE_CODE)
            return

        await websocket.accept()
        await agent.progress.attach(websocket)

        try:
            while True:
                data = await websocket.receive_text()
                await handle_progress_message(data, agent)
        except WebSocketDisconnect as e:
            logger.info(f"Progress connection closed for agent {name} (code={e.code})")
        except Exception as e:
            logger.error(f"Error in progress connection for agent {name}: {e}", exc_info=True)
        finally:
            agent.progress.detach(websocket)
            await agent.on_progress_closed()
