from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest
from PIL import Image


def test_save_and_load_round_trip(tmp_path: Path):
    from batch_eraser.contracts import MaskSettings
    from batch_eraser.io import default_settings_filename, load_mask_settings, save_mask_settings

    s = MaskSettings(maskX=30, maskY=40, width=20, height=10, feather=15, opacity=1, aspectRatio="4:5")
    path = tmp_path / default_settings_filename(s)
    save_mask_settings(s, str(path))

    assert path.name == "mask_settings_4-5.json"
    on_disk = json.loads(path.read_text(encoding="utf-8"))
    assert set(on_disk) == {"width", "height", "maskX", "maskY", "feather", "opacity", "aspectRatio"}
    assert load_mask_settings(str(path)) == s


def test_save_refuses_undefined_mask(tmp_path: Path):
    from batch_eraser.contracts import MaskSettings
    from batch_eraser.errors import InputError
    from batch_eraser.io import save_mask_settings

    with pytest.raises(InputError):
        save_mask_settings(MaskSettings(), str(tmp_path / "s.json"))


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        "[1, 2, 3]",
        json.dumps({"width": 10, "height": 10, "maskX": 0, "maskY": 0, "feather": 1, "opacity": 1, "aspectRatio": "1:1"}),
        json.dumps({"width": 10, "height": 10, "maskX": 0, "maskY": 0, "feather": 1, "opacity": 2, "aspectRatio": "9:16"}),
        json.dumps({"width": "wide", "aspectRatio": "9:16"}),
    ],
)
def test_load_rejects_invalid_files(tmp_path: Path, content: str):
    from batch_eraser.errors import DecodeError
    from batch_eraser.io import load_mask_settings

    path = tmp_path / "bad.json"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(DecodeError):
        load_mask_settings(str(path))


def test_load_missing_file(tmp_path: Path):
    from batch_eraser.errors import DecodeError
    from batch_eraser.io import load_mask_settings

    with pytest.raises(DecodeError):
        load_mask_settings(str(tmp_path / "nope.json"))


def test_load_image_record(tmp_path: Path):
    from batch_eraser.io import decode_image, load_image_record

    path = tmp_path / "photo.jpg"
    Image.new("RGB", (12, 7), (1, 2, 3)).save(str(path), format="JPEG")

    rec = load_image_record(str(path))
    assert (rec.width, rec.height) == (12, 7)
    assert rec.mime_type == "image/jpeg"
    assert rec.name == "photo.jpg"
    assert decode_image(rec.data).shape == (7, 12, 3)


def test_unreadable_image_is_decode_error(tmp_path: Path):
    from batch_eraser.errors import DecodeError
    from batch_eraser.io import load_image_record

    path = tmp_path / "broken.png"
    path.write_bytes(b"\x89PNG garbage")
    with pytest.raises(DecodeError):
        load_image_record(str(path))


def test_encode_png_is_lossless():
    from batch_eraser.io import decode_image, encode_png

    rng = np.random.default_rng(3)
    arr = rng.integers(0, 256, size=(9, 5, 3), dtype=np.uint8)
    np.testing.assert_array_equal(decode_image(encode_png(arr)), arr)


def test_transparent_png_is_flattened_to_white():
    from batch_eraser.io import decode_image, encode_png

    rgba = np.zeros((2, 2, 4), dtype=np.uint8)
    assert (decode_image(encode_png(rgba)) == 255).all()
