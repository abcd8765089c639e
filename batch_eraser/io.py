from __future__ import annotations

import base64
import io
import json
import mimetypes
from pathlib import Path
from typing import Any, Dict

import numpy as np
from PIL import Image, UnidentifiedImageError
from pydantic import ValidationError

from .config import SETTINGS_FILENAME_TEMPLATE
from .contracts import ImageRecord, MaskSettings
from .errors import DecodeError, InputError


def _flatten_alpha_to_white(img: Image.Image) -> Image.Image:
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        bg = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
        comp = Image.alpha_composite(bg, rgba)
        return comp.convert("RGB")
    return img.convert("RGB")


def open_image(data: bytes) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise DecodeError(f"Unreadable image data: {e}") from e
    return img


def decode_image(data: bytes) -> np.ndarray:
    """
    Encoded bytes -> RGB uint8 ndarray (H, W, 3). Transparency is flattened onto white.
    """
    img = _flatten_alpha_to_white(open_image(data))
    arr = np.array(img, dtype=np.uint8)
    if arr.ndim != 3 or arr.shape[2] != 3:
        raise DecodeError(f"Expected RGB image array, got shape={arr.shape}")
    return arr


def encode_png(arr: np.ndarray) -> bytes:
    """
    RGB/RGBA uint8 ndarray -> lossless PNG bytes.
    """
    if arr.ndim != 3 or arr.shape[2] not in (3, 4):
        raise ValueError(f"Expected RGB/RGBA image (H,W,3|4), got {arr.shape}")
    img = Image.fromarray(np.ascontiguousarray(arr, dtype=np.uint8))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def bytes_to_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("utf-8")


def image_record_from_bytes(data: bytes, name: str, mime_type: str = "") -> ImageRecord:
    img = open_image(data)
    if not mime_type:
        mime_type = Image.MIME.get(img.format or "", "application/octet-stream")
    w, h = img.size
    return ImageRecord(data=data, mime_type=mime_type, width=int(w), height=int(h), name=name)


def load_image_record(path: str, name: str = "") -> ImageRecord:
    p = Path(path)
    try:
        data = p.read_bytes()
    except OSError as e:
        raise DecodeError(f"Could not read image: {path}") from e
    mime_type = mimetypes.guess_type(p.name)[0] or ""
    return image_record_from_bytes(data, name=name or p.name, mime_type=mime_type)


def save_png(arr: np.ndarray, path: str) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_bytes(encode_png(arr))


def write_json(path: str, data: Dict[str, Any]) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")


def default_settings_filename(settings: MaskSettings) -> str:
    """Example: aspectRatio "9:16" -> "mask_settings_9-16.json"."""
    return SETTINGS_FILENAME_TEMPLATE.format(ratio=settings.aspectRatio.replace(":", "-"))


def save_mask_settings(settings: MaskSettings, path: str) -> None:
    if not settings.has_mask:
        raise InputError("Draw a mask area first.")
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(settings.model_dump(), indent=2), encoding="utf-8")


def load_mask_settings(path: str) -> MaskSettings:
    """
    Read a settings file written by save_mask_settings.

    Malformed JSON, unknown fields, out-of-range values and aspect ratios
    outside the supported set all raise DecodeError.
    """
    try:
        raw = Path(path).read_text(encoding="utf-8")
        obj = json.loads(raw)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DecodeError(f"Invalid config file: {path}") from e
    if not isinstance(obj, dict):
        raise DecodeError(f"Invalid config file (expected an object): {path}")
    try:
        return MaskSettings.model_validate(obj)
    except ValidationError as e:
        raise DecodeError(f"Invalid config file: {path}: {e.error_count()} invalid field(s)") from e
