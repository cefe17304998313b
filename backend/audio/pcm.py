"""
PCM conversion utilities.

Float32 <-> PCM16 uses asymmetric scaling:
    negative samples scale by 32768, positive by 32767.
Both directions use the same factors, so a decode(encode(x)) round trip
stays within one quantization step.

Transport encoding is base64 over little-endian PCM16 bytes, which is what
input_audio_buffer.append / response.audio.delta carry.
"""

from __future__ import annotations

import base64
import binascii

import numpy as np

from spec import AUDIO_SAMPLE_WIDTH_BYTES, PCM16_NEGATIVE_SCALE, PCM16_POSITIVE_SCALE


class PCMDecodeError(ValueError):
    """Raised when a transport payload cannot be decoded to PCM16."""


def float32_to_pcm16(samples: np.ndarray) -> np.ndarray:
    """
    Convert float samples to int16.

    Each sample is clamped to [-1, 1] before scaling. Scaled values are
    rounded to the nearest integer.
    """
    clamped = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 1.0)
    scaled = np.where(
        clamped < 0,
        clamped * PCM16_NEGATIVE_SCALE,
        clamped * PCM16_POSITIVE_SCALE,
    )
    return np.rint(scaled).astype(np.int16)


def pcm16_to_float32(samples: np.ndarray) -> np.ndarray:
    """Inverse of float32_to_pcm16 (same asymmetric factors)."""
    ints = np.asarray(samples, dtype=np.int16).astype(np.float32)
    return np.where(
        ints < 0,
        ints / PCM16_NEGATIVE_SCALE,
        ints / PCM16_POSITIVE_SCALE,
    ).astype(np.float32)


def pcm16_to_bytes(samples: np.ndarray) -> bytes:
    """Pack int16 samples as little-endian bytes."""
    return np.asarray(samples, dtype=np.int16).astype("<i2").tobytes()


def bytes_to_pcm16(pcm_bytes: bytes) -> np.ndarray:
    """
    Unpack little-endian PCM16 bytes.

    A trailing odd byte is a truncated sample and is dropped.
    """
    usable = len(pcm_bytes) - len(pcm_bytes) % AUDIO_SAMPLE_WIDTH_BYTES
    pcm_bytes = pcm_bytes[:usable]
    return np.frombuffer(pcm_bytes, dtype="<i2").astype(np.int16)


def encode_transport(pcm_bytes: bytes) -> str:
    """Binary -> text-safe transport string."""
    return base64.b64encode(pcm_bytes).decode("ascii")


def decode_transport(payload: str) -> bytes:
    """Text-safe transport string -> binary."""
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise PCMDecodeError(f"invalid base64 audio payload: {e}") from e


def encode_float_block(samples: np.ndarray) -> str:
    """Capture path: float block -> PCM16 -> bytes -> transport string."""
    return encode_transport(pcm16_to_bytes(float32_to_pcm16(samples)))


def decode_audio_delta(payload: str) -> np.ndarray:
    """Playback path: transport string -> bytes -> PCM16 samples."""
    return bytes_to_pcm16(decode_transport(payload))
