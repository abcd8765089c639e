from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .config import ASPECT_RATIOS, PAD_COLOR


@dataclass(frozen=True)
class SquareMeta:
    """Placement of the source image inside its square canvas."""

    orig_h: int
    orig_w: int
    side: int
    x_offset: int
    y_offset: int
    aspect_ratio: str


def _check_ratio(aspect_ratio: str) -> None:
    if aspect_ratio not in ASPECT_RATIOS:
        raise ValueError(f"Unsupported aspect ratio {aspect_ratio!r}; expected one of {ASPECT_RATIOS}")


def compute_draw_offset(width: int, height: int, aspect_ratio: str) -> Tuple[int, int]:
    """
    Where the source's top-left corner lands on the square canvas.

    4:5 portraits (strictly narrower than tall) are left-aligned and only centered
    vertically; everything else is centered on both axes. The crop in
    postprocess.compute_source_offset must stay in lockstep with this.
    """
    _check_ratio(aspect_ratio)
    side = max(width, height)
    if aspect_ratio == "4:5" and width < height:
        return 0, (side - height) // 2
    return (side - width) // 2, (side - height) // 2


def flatten_to_rgb(img: np.ndarray) -> np.ndarray:
    """
    RGB uint8 passthrough; RGBA is composited onto PAD_COLOR.
    """
    if img.ndim != 3 or img.shape[2] not in (3, 4):
        raise ValueError(f"Expected RGB/RGBA image (H,W,3|4), got shape={img.shape}")
    if img.shape[2] == 3:
        return img.astype(np.uint8, copy=False)

    a = img[..., 3:4].astype(np.float32) / 255.0
    bg = np.array(PAD_COLOR, dtype=np.float32).reshape(1, 1, 3)
    rgb = img[..., :3].astype(np.float32) * a + bg * (1.0 - a)
    return np.clip(np.rint(rgb), 0, 255).astype(np.uint8)


def normalize_to_square(img: np.ndarray, aspect_ratio: str) -> Tuple[np.ndarray, SquareMeta]:
    """
    Pad an image into a white square of side max(W, H) without resampling.

    Returns:
      - square: uint8 ndarray (side, side, 3)
      - meta: SquareMeta with the offsets the crop needs to undo this
    """
    rgb = flatten_to_rgb(img)
    orig_h, orig_w = rgb.shape[:2]
    if orig_h <= 0 or orig_w <= 0:
        raise ValueError(f"Invalid image size: {(orig_h, orig_w)}")

    side = max(orig_w, orig_h)
    x_offset, y_offset = compute_draw_offset(orig_w, orig_h, aspect_ratio)

    square = np.empty((side, side, 3), dtype=np.uint8)
    square[...] = np.array(PAD_COLOR, dtype=np.uint8)
    square[y_offset : y_offset + orig_h, x_offset : x_offset + orig_w] = rgb

    meta = SquareMeta(
        orig_h=orig_h,
        orig_w=orig_w,
        side=side,
        x_offset=x_offset,
        y_offset=y_offset,
        aspect_ratio=aspect_ratio,
    )
    return square, meta
