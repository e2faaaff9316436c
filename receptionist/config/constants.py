"""
Constants and configuration values used throughout the application.

This module defines constants that are used across different parts of the application,
providing a centralized location for wire-level values (message types, audio formats,
sample rates) and keeping naming consistent between the telephony side and the
speech-AI side of the relay.
"""

# Logger name used throughout the application
LOGGER_NAME = "receptionist"

# Default OpenAI model for Realtime API
DEFAULT_REALTIME_MODEL = "gpt-realtime-mini"
DEFAULT_REALTIME_URL = "wss://api.openai.com/v1/realtime"
DEFAULT_VOICE = "alloy"
DEFAULT_BUSINESS_NAME = "RegularUpkeep.com"

# Audio format constants
TELEPHONY_SAMPLE_RATE = 8000
MODEL_SAMPLE_RATE = 24000
RESAMPLE_FACTOR = MODEL_SAMPLE_RATE // TELEPHONY_SAMPLE_RATE
SILENCE_FRAME_SAMPLES = 160  # 20 ms at 8 kHz
MULAW_SILENCE_BYTE = 0xFF
AUDIO_FORMAT_PCM16 = "pcm16"

# Telephony media stream event types
EVENT_CONNECTED = "connected"
EVENT_START = "start"
EVENT_MEDIA = "media"
EVENT_MARK = "mark"
EVENT_STOP = "stop"

# Realtime API outbound message types
MESSAGE_TYPE_SESSION_UPDATE = "session.update"
MESSAGE_TYPE_AUDIO_APPEND = "input_audio_buffer.append"
MESSAGE_TYPE_AUDIO_COMMIT = "input_audio_buffer.commit"
MESSAGE_TYPE_RESPONSE_CREATE = "response.create"

# Realtime API inbound message types (beta, GA and short aliases)
AUDIO_DELTA_TYPES = frozenset(
    {"response.audio.delta", "response.output_audio.delta", "output_audio.delta"}
)
TEXT_DELTA_TYPES = frozenset(
    {"response.text.delta", "response.output_text.delta", "output_text.delta"}
)
TEXT_DONE_TYPES = frozenset(
    {"response.text.done", "response.output_text.done", "output_text.done"}
)
MESSAGE_TYPE_ERROR = "error"
MESSAGE_TYPE_RESPONSE_DONE = "response.done"

# Upstream connection modes
UPSTREAM_MODE_PER_CALL = "per_call"
UPSTREAM_MODE_SHARED = "shared"

# Call redirect destinations (paths on the public base URL)
DESTINATION_TRANSFER = "transfer"
DESTINATION_GOODBYE = "goodbye"

# Media WebSocket path exposed to the telephony transport
MEDIA_STREAM_PATH = "/twilio-media"

# Say voice used by the TwiML glue
TWIML_VOICE = "Polly.Joanna-Neural"
