"""
Configuration module for the voicebridge application.

This module provides centralized configuration management for the entire application,
including constants, logging setup, and environment-based configuration.

Key components:
- constants: Defines application-wide constants used across modules, including
  telephony message types, fixed caller-facing phrases, timeouts and the progress
  callback retry budget.
- logging_config: Provides a consistent logging infrastructure with support for
  console and file-based logging with rotation capabilities.

Usage examples:
```python
from voicebridge.config.constants import LOGGER_NAME, CALLBACK_RETRIES

from voicebridge.config.logging_config import configure_logging
logger = configure_logging()
logger.info("Application started")
```
"""
