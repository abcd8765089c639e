from __future__ import annotations

import enum
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from .composite import composite_with_settings
from .config import INTERMEDIATE_MIME_TYPE, REMOVAL_PROMPT
from .contracts import BatchItem, ImageRecord, MaskSettings, StageTimings
from .errors import BatchCancelledError, DecodeError, GenerationError, InputError
from .generation import generate
from .io import decode_image, encode_png
from .postprocess import crop_from_square, match_square_side
from .preprocess import normalize_to_square

logger = logging.getLogger(__name__)

GenerateFn = Callable[[bytes, str, str], bytes]
ProgressFn = Callable[[int, ImageRecord], None]


class BatchState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


class CancelToken:
    """
    Set from any thread; the pipeline only looks at it between images.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class BatchRun:
    """Everything one pipeline invocation needs, fixed at construction."""

    images: Tuple[ImageRecord, ...]
    settings: MaskSettings
    prompt: str = REMOVAL_PROMPT

    @classmethod
    def create(cls, images: Sequence[ImageRecord], settings: MaskSettings, prompt: str = REMOVAL_PROMPT) -> "BatchRun":
        # Snapshot: later edits to the caller's settings never reach a running batch.
        return cls(images=tuple(images), settings=settings.model_copy(deep=True), prompt=prompt)


class BatchTracker:
    """Observable state of the most recent run (for progress displays)."""

    def __init__(self):
        self.state = BatchState.IDLE
        self.index: Optional[int] = None
        self.error: Optional[str] = None

    def __repr__(self) -> str:
        return f"BatchTracker(state={self.state.value}, index={self.index}, error={self.error!r})"


def process_item(
    record: ImageRecord,
    aspect_ratio: str,
    prompt: str = REMOVAL_PROMPT,
    generate_fn: GenerateFn = generate,
) -> BatchItem:
    """
    Deterministic, linear per-image pipeline:
      1) Decode + pad to square
      2) External generation (single attempt)
      3) Rescale answer to the sent side if needed, crop back to native size
    """
    t0 = time.perf_counter()

    t_norm0 = time.perf_counter()
    rgb = decode_image(record.data)
    if rgb.shape[:2] != (record.height, record.width):
        raise DecodeError(
            f"{record.name}: decoded size {rgb.shape[1]}x{rgb.shape[0]} "
            f"does not match record {record.width}x{record.height}"
        )
    square, meta = normalize_to_square(rgb, aspect_ratio)
    square_png = encode_png(square)
    t_norm1 = time.perf_counter()

    t_gen0 = time.perf_counter()
    try:
        generated_bytes = generate_fn(square_png, INTERMEDIATE_MIME_TYPE, prompt)
    except GenerationError:
        raise
    except Exception as e:  # noqa: BLE001
        raise GenerationError(f"Failed to remove watermark from {record.name}: {e}") from e
    if not generated_bytes:
        raise GenerationError(f"{record.name}: empty response from image generation model")
    try:
        generated = decode_image(generated_bytes)
    except DecodeError as e:
        raise GenerationError(f"{record.name}: generated image could not be decoded") from e
    t_gen1 = time.perf_counter()

    t_den0 = time.perf_counter()
    generated = match_square_side(generated, meta.side)
    cropped = crop_from_square(generated, record.width, record.height, aspect_ratio)
    result = encode_png(cropped)
    t_den1 = time.perf_counter()

    t1 = time.perf_counter()
    return BatchItem(
        original=record,
        result=result,
        timings=StageTimings(
            normalize_s=t_norm1 - t_norm0,
            generate_s=t_gen1 - t_gen0,
            denormalize_s=t_den1 - t_den0,
            total_s=t1 - t0,
        ),
    )


def run_batch(
    run: BatchRun,
    generate_fn: GenerateFn = generate,
    *,
    cancel_token: Optional[CancelToken] = None,
    on_progress: Optional[ProgressFn] = None,
    tracker: Optional[BatchTracker] = None,
) -> List[BatchItem]:
    """
    Process every image of the run in order. All-or-nothing:
    the first failure (or a cancellation) raises and no items are returned.
    """
    if tracker is None:
        tracker = BatchTracker()

    if not run.settings.has_mask:
        raise InputError("Please draw a mask area on the reference image first.")
    if not run.images:
        raise InputError("No images to process.")

    tracker.state = BatchState.RUNNING
    tracker.error = None
    ratio = run.settings.aspectRatio
    logger.info("Batch started: %d image(s), ratio=%s", len(run.images), ratio)

    results: List[BatchItem] = []
    try:
        for i, record in enumerate(run.images):
            if cancel_token is not None and cancel_token.cancelled:
                tracker.state = BatchState.CANCELLED
                raise BatchCancelledError(f"Batch cancelled before image {i + 1}/{len(run.images)}")

            tracker.index = i
            if on_progress is not None:
                on_progress(i, record)

            item = process_item(record, ratio, run.prompt, generate_fn)
            logger.info(
                "%s: total=%.3fs (norm=%.3fs gen=%.3fs crop=%.3fs)",
                record.name,
                item.timings.total_s,
                item.timings.normalize_s,
                item.timings.generate_s,
                item.timings.denormalize_s,
            )
            results.append(item)
    except BatchCancelledError:
        results.clear()
        raise
    except Exception as e:
        results.clear()
        tracker.state = BatchState.FAILED
        tracker.error = str(e)
        logger.error("Batch failed at image %s: %s", tracker.index, e)
        raise
    finally:
        tracker.index = None

    tracker.state = BatchState.DONE
    logger.info("Batch done: %d image(s)", len(results))
    return results


def composite_batch(items: Sequence[BatchItem], settings: MaskSettings) -> List[np.ndarray]:
    """
    Blend each generated result over its original through the shared mask.

    Pixel rects come from the shared percentages, per image size.
    """
    out: List[np.ndarray] = []
    for item in items:
        base = decode_image(item.original.data)
        overlay = decode_image(item.result)
        out.append(composite_with_settings(base, overlay, settings))
    return out
