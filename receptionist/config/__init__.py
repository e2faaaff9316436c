"""
Configuration module for the AI receptionist relay.

This module provides centralized configuration management for the entire application,
including constants, environment-based settings, and logging setup.

Key components:
- constants: Defines application-wide constants used across modules, including
  message types, audio formats, sample rates, and default model settings.
- settings: Loads runtime settings (API keys, public URL, timers, collaborator
  credentials) from the environment into a validated pydantic model.
- logging_config: Provides a consistent logging infrastructure with support for
  console and file-based logging with rotation capabilities.

Usage examples:
```python
from receptionist.config.constants import LOGGER_NAME, RESAMPLE_FACTOR
from receptionist.config.settings import load_settings
from receptionist.config.logging_config import configure_logging

settings = load_settings()
logger = configure_logging(settings.log_level)
logger.info(f"Streaming to {settings.media_stream_url}")
```
"""

# Config module initialization
