from __future__ import annotations

import argparse
import json
from pathlib import Path

import pytest


def _args(**kw) -> argparse.Namespace:
    base = dict(settings=None, rect=None, feather=None, opacity=None, aspect_ratio=None)
    base.update(kw)
    return argparse.Namespace(**base)


def test_parse_rect():
    import run

    assert run._parse_rect("30, 40, 20, 10") == (30.0, 40.0, 20.0, 10.0)
    with pytest.raises(argparse.ArgumentTypeError):
        run._parse_rect("1,2,3")
    with pytest.raises(argparse.ArgumentTypeError):
        run._parse_rect("1,2,3,101")


def test_build_settings_overrides_presentation_only(tmp_path: Path):
    import run

    path = tmp_path / "s.json"
    path.write_text(
        json.dumps({"width": 20, "height": 10, "maskX": 30, "maskY": 40, "feather": 15, "opacity": 1, "aspectRatio": "9:16"}),
        encoding="utf-8",
    )
    s = run._build_settings(_args(settings=str(path), feather=3.0, aspect_ratio="4:5"))
    assert (s.maskX, s.maskY, s.width, s.height) == (30, 40, 20, 10)
    assert s.feather == 3.0
    assert s.opacity == 1
    assert s.aspectRatio == "4:5"


def test_build_settings_validates_overrides():
    import run

    with pytest.raises(ValueError):
        run._build_settings(_args(rect=(0.0, 0.0, 10.0, 10.0), opacity=3.0))


class _FakeResp:
    def __init__(self, payload: dict):
        self._payload = payload

    def raise_for_status(self) -> None:
        return None

    def json(self) -> dict:
        return self._payload


def _write_image(path: Path, size, color, fmt: str) -> None:
    from PIL import Image

    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, color).save(str(path), format=fmt)


def test_output_relpaths_keep_folders_and_extensions():
    import run

    rel = run._output_relpaths(["a/x.png", "b/x.jpg", "y.png", "y.jpg", "z.webp"])
    assert rel == {
        "a/x.png": Path("a/x.png"),
        "b/x.jpg": Path("b/x.png"),
        "y.png": Path("y_png.png"),
        "y.jpg": Path("y_jpg.png"),
        "z.webp": Path("z.png"),
    }


def test_main_writes_one_output_per_input(monkeypatch, tmp_path: Path, capsys):
    import sys

    import run
    from batch_eraser import generation as generation_mod

    in_dir = tmp_path / "in"
    out_dir = tmp_path / "out"
    _write_image(in_dir / "a" / "x.png", (12, 20), (10, 20, 30), "PNG")
    _write_image(in_dir / "b" / "x.png", (20, 12), (40, 50, 60), "PNG")
    _write_image(in_dir / "y.png", (16, 16), (70, 80, 90), "PNG")
    _write_image(in_dir / "y.jpg", (10, 14), (100, 110, 120), "JPEG")

    calls = {"n": 0}

    def _echo_post(url, params=None, json=None, timeout=None):
        calls["n"] += 1
        sent = json["contents"][0]["parts"][1]["inlineData"]
        return _FakeResp({"candidates": [{"content": {"parts": [{"inlineData": sent}]}}]})

    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    monkeypatch.setattr(generation_mod.requests, "post", _echo_post)
    monkeypatch.setattr(
        sys,
        "argv",
        ["run.py", "--input", str(in_dir), "--output", str(out_dir), "--rect", "0,0,50,50", "--keep-raw"],
    )

    assert run.main() == 0
    assert calls["n"] == 4

    expected = ["a/x.png", "b/x.png", "y_jpg.png", "y_png.png"]
    written = sorted(p.relative_to(out_dir).as_posix() for p in out_dir.rglob("*.png") if "raw" not in p.parts)
    assert written == expected
    raw = sorted(p.relative_to(out_dir / "raw").as_posix() for p in (out_dir / "raw").rglob("*.png"))
    assert raw == expected

    manifest = json.loads((out_dir / "manifest.json").read_text(encoding="utf-8"))
    assert sorted(item["name"] for item in manifest["items"]) == ["a/x.png", "b/x.png", "y.jpg", "y.png"]
    assert "Done. 4 images" in capsys.readouterr().out


def test_main_reports_undefined_mask_on_save(monkeypatch, tmp_path: Path, capsys):
    import sys

    import run

    in_dir = tmp_path / "in"
    in_dir.mkdir()
    target = tmp_path / "s.json"

    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(
        sys,
        "argv",
        [
            "run.py",
            "--input",
            str(in_dir),
            "--output",
            str(tmp_path / "out"),
            "--rect",
            "0,0,0,10",
            "--save-settings",
            str(target),
        ],
    )

    assert run.main() == 2
    assert not target.exists()
    assert "Draw a mask area first." in capsys.readouterr().out
