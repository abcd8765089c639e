from __future__ import annotations

import base64
import binascii
import os
from typing import Optional

import requests

from .config import GEMINI_BASE_URL, GEMINI_IMAGE_MODEL, GEMINI_TIMEOUT_S, REMOVAL_PROMPT
from .errors import GenerationError
from .io import bytes_to_base64


def _get_base_url() -> str:
    return os.getenv("GEMINI_BASE_URL", GEMINI_BASE_URL).rstrip("/")


def _get_model() -> str:
    return os.getenv("GEMINI_IMAGE_MODEL", GEMINI_IMAGE_MODEL)


def _get_timeout_s() -> float:
    try:
        return float(os.getenv("GEMINI_TIMEOUT_S", str(GEMINI_TIMEOUT_S)))
    except ValueError:
        return GEMINI_TIMEOUT_S


def _decode_image_part(part: dict) -> Optional[bytes]:
    """
    Raw bytes of a Gemini inlineData image part, or None for any other part.
    """
    inline = part.get("inlineData") if isinstance(part, dict) else None
    if not isinstance(inline, dict):
        return None
    mime = inline.get("mimeType", "")
    data = inline.get("data")
    if not (isinstance(data, str) and data):
        return None
    if mime and not mime.startswith("image/"):
        return None
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise GenerationError("Image part in model response is not valid base64") from e


def generate(image_bytes: bytes, mime_type: str, prompt: str = REMOVAL_PROMPT) -> bytes:
    """
    One generateContent call: square image + prompt in, first image part out.

    Single attempt. HTTP/network errors, an empty candidate list and a response
    without any image part all raise GenerationError.
    """
    api_key = os.getenv("GEMINI_API_KEY")
    if not api_key:
        raise GenerationError("Missing GEMINI_API_KEY")

    url = f"{_get_base_url()}/v1beta/models/{_get_model()}:generateContent"
    payload = {
        "contents": [
            {
                "role": "user",
                "parts": [
                    {"text": prompt},
                    {"inlineData": {"mimeType": mime_type, "data": bytes_to_base64(image_bytes)}},
                ],
            }
        ],
        "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
    }
    try:
        resp = requests.post(url, params={"key": api_key}, json=payload, timeout=_get_timeout_s())
        resp.raise_for_status()
        data = resp.json()
    except requests.RequestException as e:
        raise GenerationError(f"Image generation request failed: {e}") from e
    except ValueError as e:
        raise GenerationError("Image generation response is not JSON") from e

    if not isinstance(data, dict):
        raise GenerationError(f"Unexpected response type from image generation model: {type(data).__name__}")
    candidates = data.get("candidates") or []
    if not candidates:
        raise GenerationError("No candidates returned from image generation model")
    content = (candidates[0] or {}).get("content") or {}
    parts = content.get("parts") or []

    # First image part wins; text parts are commentary.
    for p in parts:
        img = _decode_image_part(p)
        if img is not None:
            return img

    raise GenerationError("No image data returned from AI.")
