"""Tests for the ppm_invert command line."""

import io
import sys
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from ppm_invert import Variant, main, read_pixmap_file


def test_invert_files(tmp_path):
    src = tmp_path / "in.ppm"
    dst = tmp_path / "out.ppm"
    src.write_bytes(b"P6\n1 1\n255\n" + bytes([0, 100, 255]))

    assert main(["invert", str(src), str(dst)]) == 0
    assert dst.read_bytes() == b"P6\n1 1\n255\n" + bytes([255, 155, 0])


def test_invert_textual_payload_flag(tmp_path):
    src = tmp_path / "in.ppm"
    dst = tmp_path / "out.ppm"
    src.write_bytes(b"P3 1 1 255 10 20 30")

    assert main(["invert", str(src), str(dst), "--textual-payload"]) == 0
    assert dst.read_bytes() == b"P3\n1 1\n255\n245 235 225\n"


def test_invert_stdin_to_stdout(monkeypatch, capsysbinary):
    stdin = io.TextIOWrapper(io.BytesIO(b"P3 1 1 255 10 20 30"))
    monkeypatch.setattr(sys, "stdin", stdin)

    assert main(["invert"]) == 0
    out = capsysbinary.readouterr().out
    assert out == b"P3\n1 1\n255\n" + bytes([245, 235, 225])


def test_invert_reports_error_without_output(tmp_path, capsys):
    src = tmp_path / "bad.ppm"
    dst = tmp_path / "out.ppm"
    src.write_bytes(b"P9 1 1 255")

    assert main(["invert", str(src), str(dst)]) == 1
    out = capsys.readouterr().out
    assert out.startswith("[ERR] ")
    assert out.count("\n") == 1
    assert not dst.exists()


def test_invert_reports_truncation(tmp_path, capsys):
    src = tmp_path / "short.ppm"
    src.write_bytes(b"P6\n2 2\n255\n" + bytes(11))

    assert main(["invert", str(src), str(tmp_path / "out.ppm")]) == 1
    assert "truncated" in capsys.readouterr().out


def test_info(tmp_path, capsys):
    src = tmp_path / "in.ppm"
    src.write_bytes(b"P3 2 1 100 1 2 3 40 50 60")

    assert main(["info", str(src)]) == 0
    out = capsys.readouterr().out
    assert "variant: P3" in out
    assert "size: 2x1" in out
    assert "max value: 100" in out
    assert "R: min=1 max=40" in out
    assert "B: min=3 max=60" in out


def test_to_png_scales_to_eight_bits(tmp_path):
    src = tmp_path / "in.ppm"
    dst = tmp_path / "out.png"
    src.write_bytes(b"P6\n1 1\n1023\n" + b"\x03\xff\x00\x00\x01\xff")

    assert main(["to-png", str(src), str(dst), "--invert"]) == 0
    with Image.open(dst) as im:
        assert im.mode == "RGB"
        assert im.getpixel((0, 0)) == (0, 255, 127)


def test_from_image_binary(tmp_path):
    src = tmp_path / "in.png"
    dst = tmp_path / "out.ppm"
    arr = np.array([[[255, 0, 128], [1, 2, 3]]], dtype=np.uint8)
    Image.fromarray(arr).save(src)

    assert main(["from-image", str(src), str(dst)]) == 0
    image = read_pixmap_file(dst).unwrap()
    assert image.variant is Variant.BINARY
    assert (image.width, image.height, image.max_value) == (2, 1, 255)
    assert image.samples.tolist() == [255, 0, 128, 1, 2, 3]


def test_from_image_textual_rescaled(tmp_path):
    src = tmp_path / "in.png"
    dst = tmp_path / "out.ppm"
    arr = np.array([[[255, 0, 255]]], dtype=np.uint8)
    Image.fromarray(arr).save(src)

    assert main(["from-image", str(src), str(dst), "--textual", "--max-value", "1000"]) == 0
    assert dst.read_bytes() == b"P3\n1 1\n1000\n1000 0 1000\n"


def test_from_image_too_large(tmp_path, capsys):
    src = tmp_path / "wide.png"
    Image.new("RGB", (1921, 1)).save(src)

    assert main(["from-image", str(src), str(tmp_path / "out.ppm")]) == 1
    assert "width" in capsys.readouterr().out


def test_unknown_command_exits_with_usage_error():
    with pytest.raises(SystemExit) as exc:
        main(["bogus"])
    assert exc.value.code == 2
