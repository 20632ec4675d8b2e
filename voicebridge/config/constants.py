"""
Constants and configuration values used throughout the application.

This module defines constants that are used across different parts of the application,
providing a centralized location for configuration values and making it easier to
maintain consistent naming throughout the codebase. Values that operators may want to
tune are read from the environment with sensible defaults.
"""

import os

# Logger name used throughout the application
LOGGER_NAME = "voicebridge"

# OpenAI chat completions
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_API_URL = os.getenv("OPENAI_API_URL", "https://api.openai.com/v1/chat/completions")
OPENAI_REQUEST_TIMEOUT = float(os.getenv("OPENAI_REQUEST_TIMEOUT", "60"))
DEFAULT_CHAT_MODEL = "gpt-3.5-turbo"
GPT4_CHAT_MODEL = "gpt-4"

# Agent endpoints
AGENT_PATH_PREFIX = "/agent"
PROGRESS_PATH_PREFIX = "/progress"

# Number of failed progress callbacks tolerated before callbacks are disabled for an agent
CALLBACK_RETRIES = int(os.getenv("CALLBACK_RETRIES", "6"))

# Seconds the telephony platform listens for speech before reporting a timeout
GATHER_TIMEOUT = int(os.getenv("GATHER_TIMEOUT", "20"))

# Upper bounds (seconds) on the session's suspension points
FUNCTION_RESULTS_TIMEOUT = float(os.getenv("FUNCTION_RESULTS_TIMEOUT", "60"))
FORCE_CLOSE_TIMEOUT = float(os.getenv("FORCE_CLOSE_TIMEOUT", "10"))
ACK_TIMEOUT = float(os.getenv("ACK_TIMEOUT", "30"))

# Sessions force-closed at once while an agent is destroyed
MAX_PARALLEL_CLOSE = int(os.getenv("MAX_PARALLEL_CLOSE", "32"))

# Speech defaults, overridden per agent by options["tts"] and options["stt"]
DEFAULT_TTS_VENDOR = "google"
DEFAULT_STT_VENDOR = "google"
DEFAULT_STT_LANGUAGE = "en-GB"

# Telephony (jambonz websocket API) message types
TELEPHONY_SUBPROTOCOL = "ws.jambonz.org"
MESSAGE_TYPE_SESSION_NEW = "session:new"
MESSAGE_TYPE_SESSION_RECONNECT = "session:reconnect"
MESSAGE_TYPE_VERB_HOOK = "verb:hook"
MESSAGE_TYPE_VERB_STATUS = "verb:status"
MESSAGE_TYPE_CALL_STATUS = "call:status"
MESSAGE_TYPE_ERROR = "jambonz:error"
MESSAGE_TYPE_ACK = "ack"
MESSAGE_TYPE_COMMAND = "command"

# Hooks the session registers with the telephony platform
PROMPT_HOOK = "/prompt"
RECORD_HOOK = "/record"

# Prompt hook reasons
REASON_SPEECH_DETECTED = "speechDetected"
REASON_TIMEOUT = "timeout"

# Fixed phrases spoken to callers
MODEL_APOLOGY = "Sorry, I am having a bit of trouble at the moment. This is a me thing, not a you thing."
FUNCTION_APOLOGY = (
    "Sorry, I am having a bit of trouble getting the data you need at the moment. Lets try again..."
)
RESPONSE_FALLBACK = "Sorry I seem to be having a problem at the moment"
INITIAL_FALLBACK = "Sorry I seem to be having an LLM problem at the moment"
TIMEOUT_GOODBYE = "I'm struggling to understand, please try again later"
FORCE_CLOSE_GOODBYE = "I'm sorry, I have to go now. Goodbye"
FUNCTION_UNREACHABLE_RESULT = "Error: couldn't contact server"
FUNCTION_TIMEOUT_RESULT = "Error: timed out waiting for a result"
INTERNAL_ERROR_GOODBYE = "Sorry, I'm having some sort of internal issue, {error} please try again later"

# Seconds of silence before the opening prompt is spoken
OPENING_PAUSE = 0.5
