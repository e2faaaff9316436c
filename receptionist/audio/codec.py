"""
G.711 mu-law codec and fixed-ratio resampling between the telephony and model formats.

The telephony transport carries 8 kHz mu-law; the speech model expects 24 kHz
little-endian PCM16. Conversion in both directions is done with numpy on whole
frames and is stateless, so it is safe to call from any number of sessions at once.

Resampling is a deliberately naive zero-order hold (upsample) and decimation
(downsample) without any anti-aliasing filter. Callers depend only on the
frame-in/frame-out fixed-ratio contract, so a band-limited resampler can replace
these two functions later without touching the session code.
"""

import base64

import numpy as np

from receptionist.config.constants import (
    MULAW_SILENCE_BYTE,
    RESAMPLE_FACTOR,
    SILENCE_FRAME_SAMPLES,
)

MULAW_BIAS = 0x84
MULAW_CLIP = 32635

PCM16_DTYPE = np.dtype("<i2")


def _build_decode_table() -> np.ndarray:
    codes = ~np.arange(256, dtype=np.int32) & 0xFF
    sign = codes & 0x80
    exponent = (codes >> 4) & 0x07
    mantissa = codes & 0x0F
    magnitude = (((mantissa << 3) + MULAW_BIAS) << exponent) - MULAW_BIAS
    return np.where(sign != 0, -magnitude, magnitude).astype(np.int16)


def _build_exponent_table() -> np.ndarray:
    # Index is (biased magnitude >> 7); value is the segment number 0..7
    return np.array(
        [0] + [i.bit_length() - 1 for i in range(1, 256)], dtype=np.int32
    )


_DECODE_TABLE = _build_decode_table()
_EXPONENT_TABLE = _build_exponent_table()


def decode(frame: bytes) -> np.ndarray:
    """
    Decode a mu-law frame into 16-bit linear samples.

    Args:
        frame: Raw mu-law bytes, one byte per sample

    Returns:
        np.ndarray: int16 samples, same length as the input
    """
    codes = np.frombuffer(frame, dtype=np.uint8)
    return _DECODE_TABLE[codes]


def encode(samples) -> bytes:
    """
    Encode 16-bit linear samples as mu-law bytes.

    Args:
        samples: Sequence or array of int16 samples

    Returns:
        bytes: One mu-law byte per input sample
    """
    pcm = np.asarray(samples, dtype=np.int16).astype(np.int32)
    sign = (pcm >> 8) & 0x80
    magnitude = np.where(sign != 0, -pcm, pcm)
    magnitude = np.minimum(magnitude, MULAW_CLIP) + MULAW_BIAS
    exponent = _EXPONENT_TABLE[(magnitude >> 7) & 0xFF]
    mantissa = (magnitude >> (exponent + 3)) & 0x0F
    codes = ~(sign | (exponent << 4) | mantissa) & 0xFF
    return codes.astype(np.uint8).tobytes()


def upsample(samples, factor: int = RESAMPLE_FACTOR) -> np.ndarray:
    """Repeat every sample ``factor`` times (zero-order hold)."""
    if factor < 1:
        raise ValueError(f"Resample factor must be positive: {factor}")
    return np.repeat(np.asarray(samples, dtype=np.int16), factor)


def downsample(samples, factor: int = RESAMPLE_FACTOR) -> np.ndarray:
    """
    Keep every ``factor``-th sample and discard the rest.

    A trailing group shorter than ``factor`` samples is dropped, so the output
    length is always ``len(samples) // factor``.
    """
    if factor < 1:
        raise ValueError(f"Resample factor must be positive: {factor}")
    pcm = np.asarray(samples, dtype=np.int16)
    usable = len(pcm) - (len(pcm) % factor)
    return pcm[:usable:factor]


def pcm16_from_bytes(data: bytes) -> np.ndarray:
    """Interpret little-endian PCM16 bytes; an odd trailing byte is ignored."""
    usable = len(data) - (len(data) % 2)
    return np.frombuffer(data[:usable], dtype=PCM16_DTYPE).astype(np.int16)


def pcm16_to_bytes(samples) -> bytes:
    return np.asarray(samples, dtype=np.int16).astype(PCM16_DTYPE).tobytes()


def telephony_to_model(payload_b64: str, factor: int = RESAMPLE_FACTOR) -> str:
    """
    Convert a base64 mu-law telephony frame into base64 PCM16 for the model.

    Args:
        payload_b64: Base64-encoded 8 kHz mu-law audio
        factor: Upsampling ratio (3 for 8 kHz -> 24 kHz)

    Returns:
        str: Base64-encoded 24 kHz little-endian PCM16 audio
    """
    pcm = upsample(decode(base64.b64decode(payload_b64)), factor)
    return base64.b64encode(pcm16_to_bytes(pcm)).decode("ascii")


def model_to_telephony(audio_b64: str, factor: int = RESAMPLE_FACTOR) -> str:
    """
    Convert base64 PCM16 model output into a base64 mu-law telephony frame.

    Args:
        audio_b64: Base64-encoded 24 kHz little-endian PCM16 audio
        factor: Downsampling ratio (3 for 24 kHz -> 8 kHz)

    Returns:
        str: Base64-encoded 8 kHz mu-law audio
    """
    pcm = downsample(pcm16_from_bytes(base64.b64decode(audio_b64)), factor)
    return base64.b64encode(encode(pcm)).decode("ascii")


def silence_frame(samples: int = SILENCE_FRAME_SAMPLES) -> bytes:
    """Mu-law encoded silence; 0xFF is the code for a zero sample."""
    return bytes([MULAW_SILENCE_BYTE]) * samples


SILENCE_FRAME_B64 = base64.b64encode(silence_frame()).decode("ascii")
