from __future__ import annotations

import logging
from typing import Optional

import cv2
import numpy as np

from .contracts import MaskSettings
from .geometry import PixelRect

logger = logging.getLogger(__name__)


def _axis_coverage(n: int, start: float, length: float) -> np.ndarray:
    """Fraction of each pixel in [0, n) covered by the interval [start, start + length)."""
    lo = np.arange(n, dtype=np.float32)
    cov = np.minimum(lo + 1.0, start + length) - np.maximum(lo, start)
    return np.clip(cov, 0.0, 1.0).astype(np.float32, copy=False)


def build_mask(height: int, width: int, rect: PixelRect, feather_px: float = 0.0) -> np.ndarray:
    """
    Soft alpha mask for a (possibly fractional) pixel rectangle.

    Output:
      - float32 (height, width) in [0,1]
      - solid inside the rectangle, 0 outside, partial coverage on sub-pixel edges
      - feather_px > 0: Gaussian falloff with sigma = feather_px (capped at the larger
        canvas side), zero beyond the canvas
    """
    if height <= 0 or width <= 0:
        raise ValueError(f"Invalid mask size: {(height, width)}")
    if rect.is_empty:
        return np.zeros((height, width), dtype=np.float32)

    mask = np.outer(_axis_coverage(height, rect.y, rect.h), _axis_coverage(width, rect.x, rect.w))
    mask = mask.astype(np.float32, copy=False)

    if feather_px > 0:
        # kernel width grows with sigma; cap it at the canvas
        sigma = min(float(feather_px), float(max(height, width)))
        mask = cv2.GaussianBlur(mask, (0, 0), sigmaX=sigma, sigmaY=sigma, borderType=cv2.BORDER_CONSTANT)
    return np.clip(mask, 0.0, 1.0).astype(np.float32, copy=False)


def _split_alpha(img: np.ndarray):
    if img.ndim != 3 or img.shape[2] not in (3, 4):
        raise ValueError(f"Expected RGB/RGBA image (H,W,3|4), got shape={img.shape}")
    rgb = img[..., :3].astype(np.float32)
    if img.shape[2] == 4:
        alpha = img[..., 3].astype(np.float32) / 255.0
    else:
        alpha = np.ones(img.shape[:2], dtype=np.float32)
    return rgb, alpha


def composite(
    base: np.ndarray,
    overlay: Optional[np.ndarray],
    rect: PixelRect,
    feather_px: float = 0.0,
    opacity: float = 1.0,
) -> np.ndarray:
    """
    Draw `overlay` over a copy of `base` through a feathered rectangle mask.

    Effective alpha per pixel = mask * overlay alpha * opacity, blended source-over.
    The result always has base's shape and channel count.
    """
    if base.ndim != 3 or base.shape[2] not in (3, 4):
        raise ValueError(f"Expected RGB/RGBA base (H,W,3|4), got shape={base.shape}")
    if overlay is None or rect.is_empty or opacity <= 0:
        return base.copy()

    h, w = base.shape[:2]
    if overlay.shape[:2] != (h, w):
        # overlay is stretched onto the base canvas
        overlay = cv2.resize(overlay, (w, h), interpolation=cv2.INTER_LINEAR)

    mask = build_mask(h, w, rect, feather_px)
    ov_rgb, ov_a = _split_alpha(overlay)
    a = mask * ov_a * float(min(opacity, 1.0))

    base_rgb, base_a = _split_alpha(base)
    a3 = a[..., None]
    if base.shape[2] == 3:
        out_rgb = base_rgb * (1.0 - a3) + ov_rgb * a3
        out = out_rgb
    else:
        out_a = a + base_a * (1.0 - a)
        num = ov_rgb * a3 + base_rgb * (base_a * (1.0 - a))[..., None]
        out_rgb = np.divide(num, out_a[..., None], out=np.zeros_like(num), where=out_a[..., None] > 0)
        out = np.dstack([out_rgb, out_a * 255.0])

    out = np.clip(np.rint(out), 0, 255).astype(np.uint8)
    # untouched pixels are copied through bit-exact
    untouched = a <= 0
    out[untouched] = base[untouched]
    return out


def composite_with_settings(base: np.ndarray, overlay: Optional[np.ndarray], settings: MaskSettings) -> np.ndarray:
    """Pixel rect is recomputed from the percentages for this base's own size."""
    h, w = base.shape[:2]
    return composite(base, overlay, settings.pixel_rect(w, h), settings.feather, settings.opacity)


def render_preview(base: np.ndarray, overlay: Optional[np.ndarray], settings: MaskSettings) -> np.ndarray:
    """
    Display-path composite: never raises. On failure the base is shown unmodified.
    """
    try:
        return composite_with_settings(base, overlay, settings)
    except Exception:  # noqa: BLE001
        logger.exception("Blending error; showing base image")
        return base.copy()
