"""
Audio helpers for the relay.

Key components:
- codec: G.711 mu-law encode/decode plus the fixed-ratio 8 kHz <-> 24 kHz
  resampling used between the telephony transport and the speech model.
- keepalive: Fixed-cadence silence frame generator that keeps the telephony
  media stream alive until the AI starts speaking.
"""

from receptionist.audio.codec import (
    SILENCE_FRAME_B64,
    decode,
    downsample,
    encode,
    model_to_telephony,
    telephony_to_model,
    upsample,
)
from receptionist.audio.keepalive import KeepaliveGenerator

__all__ = [
    "SILENCE_FRAME_B64",
    "decode",
    "downsample",
    "encode",
    "model_to_telephony",
    "telephony_to_model",
    "upsample",
    "KeepaliveGenerator",
]
