"""Colour inversion for PPM pixmaps (textual P3 and binary P6).

This module implements a small, self-contained codec for the PPM pixmap
interchange format and a pointwise colour-inversion transform:

- Parse the header (magic, width, height, max value)
- Decode samples from either the textual (P3) or binary (P6) payload
- Validate header fields and every sample against fixed bounds
- Invert every sample in place (s -> max_value - s)
- Re-encode the image, choosing the payload width from the max value

Usage (CLI):

    # Invert stdin to stdout
    python ppm_invert.py invert < in.ppm > out.ppm

    # Print basic properties of a pixmap
    python ppm_invert.py info in.ppm

    # Preview a pixmap as PNG, or build a pixmap from any image Pillow reads
    python ppm_invert.py to-png in.ppm preview.png --invert
    python ppm_invert.py from-image photo.jpg out.ppm --max-value 1023

Decoding never raises for bad input. `read_pixmap` returns a
:class:`DecodeResult` carrying either the image or the first error met.
"""

from __future__ import annotations

import argparse
import enum
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple, Union

import numpy as np
from PIL import Image


logger = logging.getLogger(__name__)


MAX_WIDTH = 1920
MAX_HEIGHT = 1080
MAX_COLOR_VALUE = 65_536
CHANNELS = 3

# Largest value a single payload byte holds; above it samples take two bytes.
_ONE_BYTE_MAX = 0xFF
_TWO_BYTE_MAX = 0xFFFF

_WHITESPACE = b" \t\n\r\x0b\x0c"


class Variant(enum.Enum):
    """Wire variant of a pixmap, valued by its magic literal."""

    TEXTUAL = "P3"
    BINARY = "P6"

    @property
    def magic(self) -> bytes:
        return self.value.encode("ascii")

    @classmethod
    def from_magic(cls, token: bytes) -> Optional["Variant"]:
        for variant in cls:
            if variant.magic == token:
                return variant
        return None


# === Errors ==================================================================


class PixmapError(ValueError):
    """Base class for problems with the input pixmap."""

    @property
    def message(self) -> str:
        return str(self)


class FormatError(PixmapError):
    """The magic token is not one of the recognised variants."""


class RangeError(PixmapError):
    """A header field or a sample is unparsable or exceeds its bound."""


class TruncatedInputError(PixmapError):
    """The input ended before all required samples were read."""


# === Data model ==============================================================


@dataclass
class PixmapImage:
    """In-memory representation of a decoded RGB pixmap.

    Attributes
    ----------
    variant:
        Wire variant the image was decoded from (or is meant for).
    width, height:
        Dimensions in pixels, bounded by MAX_WIDTH and MAX_HEIGHT.
    max_value:
        Largest legal sample value, bounded by MAX_COLOR_VALUE. Also decides
        the binary sample width (1 byte up to 255, else 2 bytes big-endian).
    samples:
        Flat uint32 array of width * height * 3 samples, R,G,B per pixel.
    """

    variant: Variant
    width: int
    height: int
    max_value: int
    samples: np.ndarray

    def __post_init__(self) -> None:
        # Guards against misuse by calling code; bad input never gets here.
        if not isinstance(self.variant, Variant):
            raise TypeError(f"Unknown pixmap variant: {self.variant!r}")
        if not 0 <= self.width <= MAX_WIDTH:
            raise ValueError(f"Width {self.width} outside [0, {MAX_WIDTH}]")
        if not 0 <= self.height <= MAX_HEIGHT:
            raise ValueError(f"Height {self.height} outside [0, {MAX_HEIGHT}]")
        if not 0 <= self.max_value <= MAX_COLOR_VALUE:
            raise ValueError(
                f"Max value {self.max_value} outside [0, {MAX_COLOR_VALUE}]"
            )
        if self.samples.ndim != 1 or self.samples.size != self.sample_count:
            raise ValueError(
                f"Sample buffer holds {self.samples.size} values, "
                f"expected {self.sample_count}"
            )
        if self.samples.size and (
            int(self.samples.min()) < 0 or int(self.samples.max()) > self.max_value
        ):
            raise ValueError(f"Samples outside [0, {self.max_value}]")

    @property
    def sample_count(self) -> int:
        return self.width * self.height * CHANNELS

    @property
    def sample_width(self) -> int:
        """Bytes per sample in the binary payload."""
        return 1 if self.max_value <= _ONE_BYTE_MAX else 2

    @property
    def pixels(self) -> np.ndarray:
        """View of the samples with shape (height, width, 3)."""
        return self.samples.reshape(self.height, self.width, CHANNELS)

    def to_pil(self) -> Image.Image:
        """Return an 8-bit RGB Pillow image, rescaling samples to [0, 255]."""

        if self.max_value == 0:
            scaled = np.zeros(self.sample_count, dtype=np.uint8)
        else:
            wide = self.samples.astype(np.uint64)
            scaled = (wide * 255 // self.max_value).astype(np.uint8)
        arr = scaled.reshape(self.height, self.width, CHANNELS)
        return Image.fromarray(arr)

    @classmethod
    def from_pil(
        cls,
        image: Image.Image,
        max_value: int = 255,
        variant: Variant = Variant.BINARY,
    ) -> "PixmapImage":
        """Build a pixmap from any Pillow image, converted to RGB.

        Raises
        ------
        RangeError
            If the image is larger than the pixmap limits or `max_value` is
            outside [1, 65535].
        """

        if not 1 <= max_value <= _TWO_BYTE_MAX:
            raise RangeError(f"max value {max_value} outside [1, {_TWO_BYTE_MAX}]")
        width, height = image.size
        if width > MAX_WIDTH:
            raise RangeError(f"width {width} too large (MAX {MAX_WIDTH})")
        if height > MAX_HEIGHT:
            raise RangeError(f"height {height} too large (MAX {MAX_HEIGHT})")

        arr = np.asarray(image.convert("RGB"), dtype=np.uint32).reshape(-1)
        if max_value != 255:
            # Round to nearest so 255 always maps onto max_value exactly.
            arr = (arr * max_value + 127) // 255
        return cls(
            variant=variant,
            width=width,
            height=height,
            max_value=max_value,
            samples=arr.astype(np.uint32),
        )


@dataclass
class DecodeResult:
    """Outcome of :func:`read_pixmap`: exactly one of image or error is set."""

    image: Optional[PixmapImage] = None
    error: Optional[PixmapError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> PixmapImage:
        if self.error is not None:
            raise self.error
        assert self.image is not None
        return self.image


# === Decoding ================================================================


class _ByteReader:
    """Cursor over an in-memory byte string with whitespace tokenising."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    def next_token(self) -> Optional[bytes]:
        """Return the next whitespace-delimited token, or None at end of input.

        The cursor is left on the byte right after the token.
        """

        data = self._data
        n = len(data)
        i = self._pos
        while i < n and data[i] in _WHITESPACE:
            i += 1
        if i >= n:
            self._pos = n
            return None
        start = i
        while i < n and data[i] not in _WHITESPACE:
            i += 1
        self._pos = i
        return data[start:i]

    def take_tokens(self, count: int) -> List[bytes]:
        """Return up to `count` further tokens and consume the rest of input."""

        rest = self._data[self._pos :]
        self._pos = len(self._data)
        if count == 0:
            return []
        return rest.split(None, count)[:count]

    def skip(self, n: int) -> int:
        """Advance up to n bytes and return how many were skipped."""

        skipped = min(n, len(self._data) - self._pos)
        self._pos += skipped
        return skipped

    def read(self, n: int) -> bytes:
        chunk = self._data[self._pos : self._pos + n]
        self._pos += len(chunk)
        return chunk


def _parse_unsigned(token: bytes) -> Optional[int]:
    if not token or not token.isdigit():
        return None
    return int(token)


def _parse_field(
    reader: _ByteReader, name: str, limit: int
) -> Union[int, RangeError]:
    token = reader.next_token()
    if token is None:
        return RangeError(f"PPM {name} missing")
    value = _parse_unsigned(token)
    if value is None:
        return RangeError(f"PPM {name} is not an unsigned integer: {token!r}")
    if value > limit:
        return RangeError(f"PPM {name} too large: {value} (MAX {limit})")
    return value


def parse_header(
    reader: _ByteReader,
) -> Union[Tuple[Variant, int, int, int], PixmapError]:
    """Read magic, width, height and max value, stopping at the first error."""

    magic = reader.next_token()
    variant = Variant.from_magic(magic) if magic is not None else None
    if variant is None:
        return FormatError(f"PPM magic num is not P3 or P6: {magic!r}")

    width = _parse_field(reader, "width", MAX_WIDTH)
    if isinstance(width, PixmapError):
        return width
    height = _parse_field(reader, "height", MAX_HEIGHT)
    if isinstance(height, PixmapError):
        return height
    max_value = _parse_field(reader, "max color value", MAX_COLOR_VALUE)
    if isinstance(max_value, PixmapError):
        return max_value

    logger.debug(
        "Header %s %dx%d max=%d", variant.value, width, height, max_value
    )
    return variant, width, height, max_value


def _decode_textual(
    reader: _ByteReader, count: int, max_value: int
) -> Union[np.ndarray, PixmapError]:
    tokens = reader.take_tokens(count)
    samples = np.empty(count, dtype=np.uint32)
    for i, token in enumerate(tokens):
        value = _parse_unsigned(token)
        if value is None:
            return RangeError(f"PPM sample {i} is not an unsigned integer: {token!r}")
        if value > max_value:
            return RangeError(
                f"PPM sample {i} out of range: {value} (MAX {max_value})"
            )
        samples[i] = value
    if len(tokens) < count:
        return TruncatedInputError(
            f"PPM data truncated: read {len(tokens)} of {count} samples"
        )
    return samples


def _decode_binary(
    reader: _ByteReader, count: int, max_value: int
) -> Union[np.ndarray, PixmapError]:
    # A single whitespace byte terminates the header line.
    reader.skip(1)

    width = 1 if max_value <= _ONE_BYTE_MAX else 2
    payload = reader.read(count * width)
    available = len(payload) // width
    if available:
        dtype = np.uint8 if width == 1 else np.dtype(">u2")
        raw = np.frombuffer(payload[: available * width], dtype=dtype)
        samples = raw.astype(np.uint32)
    else:
        samples = np.empty(0, dtype=np.uint32)

    over = np.flatnonzero(samples > max_value)
    if over.size:
        i = int(over[0])
        return RangeError(
            f"PPM sample {i} out of range: {int(samples[i])} (MAX {max_value})"
        )
    if available < count:
        return TruncatedInputError(
            f"PPM data truncated: read {available} of {count} samples"
        )
    return samples


def decode_samples(
    reader: _ByteReader, variant: Variant, count: int, max_value: int
) -> Union[np.ndarray, PixmapError]:
    """Read exactly `count` samples in the given variant's encoding."""

    if variant is Variant.TEXTUAL:
        return _decode_textual(reader, count, max_value)
    if variant is Variant.BINARY:
        return _decode_binary(reader, count, max_value)
    raise TypeError(f"Unknown pixmap variant: {variant!r}")


def read_pixmap(data: bytes) -> DecodeResult:
    """Decode a complete pixmap held in memory.

    Parameters
    ----------
    data:
        Entire input, header and payload.

    Returns
    -------
    DecodeResult
        The decoded image, or the first header/sample error encountered.
        Nothing is partially returned on failure.
    """

    reader = _ByteReader(data)

    header = parse_header(reader)
    if isinstance(header, PixmapError):
        return DecodeResult(error=header)
    variant, width, height, max_value = header

    count = width * height * CHANNELS
    samples = decode_samples(reader, variant, count, max_value)
    if isinstance(samples, PixmapError):
        return DecodeResult(error=samples)

    logger.debug("Decoded %d samples", count)
    return DecodeResult(
        image=PixmapImage(
            variant=variant,
            width=width,
            height=height,
            max_value=max_value,
            samples=samples,
        )
    )


def read_pixmap_file(path: Union[str, Path]) -> DecodeResult:
    return read_pixmap(Path(path).read_bytes())


# === Transform ===============================================================


def invert_image(image: PixmapImage) -> PixmapImage:
    """Replace every sample s with max_value - s, in place.

    Applying it twice restores the original samples.
    """

    np.subtract(image.max_value, image.samples, out=image.samples)
    return image


# === Encoding ================================================================


def _encode_textual_payload(image: PixmapImage) -> bytes:
    if image.sample_count == 0:
        return b""
    row_len = image.width * CHANNELS
    lines = []
    for y in range(image.height):
        row = image.samples[y * row_len : (y + 1) * row_len]
        lines.append(" ".join(str(int(v)) for v in row))
    return ("\n".join(lines) + "\n").encode("ascii")


def encode_pixmap(image: PixmapImage, textual_payload: bool = False) -> bytes:
    """Serialise a pixmap to bytes.

    The header is always `<magic>\\n<width> <height>\\n<max_value>\\n`. The
    payload is raw bytes whose width follows `max_value` (1 byte up to 255,
    else 2 bytes big-endian), regardless of the image's variant. Passing
    `textual_payload=True` writes a P3 image's samples as ASCII decimals
    instead, one image row per line.

    Raises
    ------
    RangeError
        If a sample does not fit in two bytes (only possible when
        max_value is 65536). This is the encoder's one failure mode; the
        value would otherwise wrap around silently in the 2-byte payload.
    """

    header = b"%s\n%d %d\n%d\n" % (
        image.variant.magic,
        image.width,
        image.height,
        image.max_value,
    )

    if textual_payload and image.variant is Variant.TEXTUAL:
        return header + _encode_textual_payload(image)

    if image.variant is Variant.TEXTUAL:
        logger.warning(
            "Writing P3 image with a raw binary payload; "
            "use textual_payload=True for a conforming P3 file"
        )

    if image.sample_width == 1:
        payload = image.samples.astype(np.uint8).tobytes()
    else:
        if image.samples.size and int(image.samples.max()) > _TWO_BYTE_MAX:
            raise RangeError(
                f"Sample value {int(image.samples.max())} does not fit in two bytes"
            )
        payload = image.samples.astype(">u2").tobytes()
    return header + payload


def write_pixmap(image: PixmapImage, stream, textual_payload: bool = False) -> None:
    stream.write(encode_pixmap(image, textual_payload=textual_payload))


def write_pixmap_file(
    image: PixmapImage, path: Union[str, Path], textual_payload: bool = False
) -> None:
    Path(path).write_bytes(encode_pixmap(image, textual_payload=textual_payload))


# === Command line ============================================================


def _read_input(path: str) -> bytes:
    if path == "-":
        return sys.stdin.buffer.read()
    return Path(path).read_bytes()


def _write_output(path: str, data: bytes) -> None:
    if path == "-":
        sys.stdout.buffer.write(data)
        sys.stdout.buffer.flush()
    else:
        Path(path).write_bytes(data)


def _report(error: PixmapError) -> int:
    print(f"[ERR] {error.message}")
    return 1


def _cmd_invert(args: argparse.Namespace) -> int:
    result = read_pixmap(_read_input(args.input))
    if not result.ok:
        return _report(result.error)

    image = invert_image(result.unwrap())
    try:
        data = encode_pixmap(image, textual_payload=args.textual_payload)
    except RangeError as exc:
        return _report(exc)
    _write_output(args.output, data)
    return 0


def _cmd_info(args: argparse.Namespace) -> int:
    result = read_pixmap(_read_input(args.input))
    if not result.ok:
        return _report(result.error)

    image = result.unwrap()
    print(f"variant: {image.variant.value}")
    print(f"size: {image.width}x{image.height}")
    print(f"max value: {image.max_value}")
    if image.sample_count:
        channels = image.samples.reshape(-1, CHANNELS)
        lo = channels.min(axis=0)
        hi = channels.max(axis=0)
        for name, a, b in zip("RGB", lo, hi):
            print(f"{name}: min={int(a)} max={int(b)}")
    return 0


def _cmd_to_png(args: argparse.Namespace) -> int:
    result = read_pixmap(_read_input(args.input))
    if not result.ok:
        return _report(result.error)

    image = result.unwrap()
    if args.invert:
        invert_image(image)
    image.to_pil().save(args.output, format="PNG")
    return 0


def _cmd_from_image(args: argparse.Namespace) -> int:
    variant = Variant.TEXTUAL if args.textual else Variant.BINARY
    with Image.open(args.input) as im:
        try:
            image = PixmapImage.from_pil(im, max_value=args.max_value, variant=variant)
        except RangeError as exc:
            return _report(exc)
    write_pixmap_file(image, args.output, textual_payload=args.textual)
    return 0


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Colour inversion and conversion for PPM (P3/P6) pixmaps.",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log decoding details"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_invert = subparsers.add_parser("invert", help="Invert the colours of a pixmap")
    p_invert.add_argument("input", nargs="?", default="-", help="Input pixmap (default: stdin)")
    p_invert.add_argument("output", nargs="?", default="-", help="Output pixmap (default: stdout)")
    p_invert.add_argument(
        "--textual-payload",
        action="store_true",
        help="Write P3 samples as ASCII decimals instead of raw bytes",
    )

    p_info = subparsers.add_parser("info", help="Print pixmap properties")
    p_info.add_argument("input", nargs="?", default="-", help="Input pixmap (default: stdin)")

    p_png = subparsers.add_parser("to-png", help="Save a pixmap as an 8-bit PNG")
    p_png.add_argument("input", help="Input pixmap path")
    p_png.add_argument("output", help="Output image path (e.g., .png)")
    p_png.add_argument("--invert", action="store_true", help="Invert before saving")

    p_from = subparsers.add_parser(
        "from-image", help="Convert any image Pillow supports into a pixmap"
    )
    p_from.add_argument("input", help="Input image path (any format Pillow supports)")
    p_from.add_argument("output", help="Output pixmap path")
    p_from.add_argument(
        "--textual", action="store_true", help="Write a textual P3 file instead of P6"
    )
    p_from.add_argument(
        "--max-value",
        type=int,
        default=255,
        help="Max sample value [1-65535] (default: 255)",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.command == "invert":
        return _cmd_invert(args)
    elif args.command == "info":
        return _cmd_info(args)
    elif args.command == "to-png":
        return _cmd_to_png(args)
    elif args.command == "from-image":
        return _cmd_from_image(args)
    else:
        parser.error(f"Unknown command: {args.command}")


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
