from __future__ import annotations

import argparse
import logging
import signal
import time
from pathlib import Path

from dotenv import load_dotenv
from tqdm import tqdm

from batch_eraser.config import ASPECT_RATIOS, DEFAULT_ASPECT_RATIO, DEFAULT_FEATHER, DEFAULT_OPACITY
from batch_eraser.contracts import MaskSettings
from batch_eraser.errors import BatchCancelledError, DecodeError, GenerationError, InputError
from batch_eraser.io import (
    default_settings_filename,
    load_image_record,
    load_mask_settings,
    save_mask_settings,
    save_png,
    write_json,
)
from batch_eraser.pipeline import BatchRun, CancelToken, composite_batch, run_batch


def _iter_images(input_dir: Path):
    exts = {".jpg", ".jpeg", ".png", ".webp", ".bmp", ".tif", ".tiff"}
    for p in sorted(input_dir.rglob("*")):
        if p.is_file() and p.suffix.lower() in exts:
            yield p


def _output_relpaths(names):
    """
    Relative input path -> relative .png output path, one per input.

    "a/x.jpg" -> "a/x.png"; inputs that only differ by extension keep it in the
    stem ("y.png", "y.jpg" -> "y_png.png", "y_jpg.png").
    """
    plain = [Path(n).with_suffix(".png") for n in names]
    counts = {}
    for p in plain:
        counts[p] = counts.get(p, 0) + 1

    out = {}
    for name, p in zip(names, plain):
        if counts[p] > 1:
            src = Path(name)
            p = src.with_name(f"{src.stem}_{src.suffix.lstrip('.').lower()}.png")
        out[name] = p
    return out


def _parse_rect(value: str):
    parts = [p.strip() for p in value.split(",")]
    if len(parts) != 4:
        raise argparse.ArgumentTypeError("--rect must be 'maskX,maskY,width,height' in percent")
    try:
        x, y, w, h = (float(p) for p in parts)
    except ValueError:
        raise argparse.ArgumentTypeError("--rect values must be numbers")
    for v in (x, y, w, h):
        if not (0.0 <= v <= 100.0):
            raise argparse.ArgumentTypeError("--rect values must be within [0,100]")
    return x, y, w, h


def _build_settings(args: argparse.Namespace) -> MaskSettings:
    if args.settings:
        settings = load_mask_settings(args.settings)
    else:
        x, y, w, h = args.rect
        settings = MaskSettings(maskX=x, maskY=y, width=w, height=h)

    # Presentation fields may be overridden independently of the rectangle.
    update = {}
    if args.feather is not None:
        update["feather"] = args.feather
    if args.opacity is not None:
        update["opacity"] = args.opacity
    if args.aspect_ratio is not None:
        update["aspectRatio"] = args.aspect_ratio
    if update:
        settings = MaskSettings.model_validate({**settings.model_dump(), **update})
    return settings


def main() -> int:
    load_dotenv()

    parser = argparse.ArgumentParser(description="Batch object/watermark removal with a shared feathered mask.")
    parser.add_argument("--input", required=True, type=str, help="Input directory containing images.")
    parser.add_argument("--output", required=True, type=str, help="Output directory for composited PNGs.")
    mask = parser.add_mutually_exclusive_group(required=True)
    mask.add_argument("--settings", type=str, help="Mask settings JSON (width/height/maskX/maskY/...).")
    mask.add_argument("--rect", type=_parse_rect, help="Mask rectangle 'maskX,maskY,width,height' in percent.")
    parser.add_argument("--feather", type=float, help=f"Feather radius in px (default {DEFAULT_FEATHER}).")
    parser.add_argument("--opacity", type=float, help=f"Overlay opacity 0..1 (default {DEFAULT_OPACITY}).")
    parser.add_argument(
        "--aspect-ratio",
        choices=ASPECT_RATIOS,
        help=f"Padding policy (default {DEFAULT_ASPECT_RATIO}).",
    )
    parser.add_argument(
        "--save-settings",
        type=str,
        help="Write the effective mask settings here (a directory gets the default file name).",
    )
    parser.add_argument("--keep-raw", action="store_true", help="Also write cropped generations to <output>/raw/.")
    parser.add_argument("--log-level", default="WARNING", type=str, help="Python logging level (default WARNING).")
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    input_dir = Path(args.input)
    output_dir = Path(args.output)
    if not input_dir.exists():
        raise FileNotFoundError(f"Input dir not found: {input_dir}")

    try:
        settings = _build_settings(args)
    except (DecodeError, ValueError) as e:
        print(f"Invalid mask settings: {e}")
        return 2

    if args.save_settings:
        target = Path(args.save_settings)
        if target.is_dir():
            target = target / default_settings_filename(settings)
        try:
            save_mask_settings(settings, str(target))
        except (InputError, OSError) as e:
            print(f"Invalid mask settings: {e}")
            return 2

    paths = list(_iter_images(input_dir))
    if not paths:
        print(f"No images found under {input_dir}")
        return 0

    records = []
    for p in paths:
        try:
            records.append(load_image_record(str(p), name=p.relative_to(input_dir).as_posix()))
        except DecodeError as e:
            print(f"Skipping {p.name}: {e}")
    out_rel = _output_relpaths([r.name for r in records])

    run = BatchRun.create(records, settings)
    cancel = CancelToken()
    bar = tqdm(total=len(run.images), desc="Erasing", unit="img")

    def _progress(i, record):
        bar.n = i
        bar.set_postfix_str(record.name)
        bar.refresh()

    t0 = time.perf_counter()
    # Ctrl-C finishes the in-flight image, then stops the batch.
    prev_sigint = signal.signal(signal.SIGINT, lambda _sig, _frame: cancel.cancel())
    try:
        items = run_batch(run, cancel_token=cancel, on_progress=_progress)
    except (InputError, GenerationError, DecodeError, BatchCancelledError) as e:
        bar.close()
        print(f"Batch operation failed: {e}")
        return 1
    finally:
        signal.signal(signal.SIGINT, prev_sigint)
    bar.n = len(run.images)
    bar.close()

    composited = composite_batch(items, run.settings)
    manifest = []
    for item, out in zip(items, composited):
        rel = out_rel[item.original.name]
        out_path = output_dir / rel
        save_png(out, str(out_path))
        record = {
            "name": item.original.name,
            "width": item.original.width,
            "height": item.original.height,
            "output": str(out_path),
            "generate_s": round(item.timings.generate_s, 3),
        }
        if args.keep_raw:
            raw_path = output_dir / "raw" / rel
            raw_path.parent.mkdir(parents=True, exist_ok=True)
            raw_path.write_bytes(item.result)
            record["raw"] = str(raw_path)
        manifest.append(record)

    write_json(str(output_dir / "manifest.json"), {"settings": run.settings.model_dump(), "items": manifest})

    t1 = time.perf_counter()
    print(f"Done. {len(items)} images in {t1 - t0:.2f}s -> {output_dir.resolve()}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
