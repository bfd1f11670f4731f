"""Screenshot decoding and pixel comparison for the stability detector."""

from __future__ import annotations

import io

import numpy as np
from PIL import Image

BLANK_FRAME_SIZE = (800, 600)
# Squared YIQ distance between black and white, the ceiling for a threshold of 1.0.
MAX_YIQ_DELTA = 35215.0


def decode_frame(raw: bytes, ratio: float = 1.0) -> Image.Image:
    image = Image.open(io.BytesIO(raw))
    image.load()
    image = image.convert("RGB")
    if ratio and ratio != 1.0:
        width = max(1, int(round(image.width * ratio)))
        height = max(1, int(round(image.height * ratio)))
        image = image.resize((width, height), Image.Resampling.BILINEAR)
    return image


def blank_frame(size=BLANK_FRAME_SIZE) -> Image.Image:
    return Image.new("RGB", size, (0, 0, 0))


def white_percentage(image: Image.Image) -> float:
    pixels = np.asarray(image.convert("RGB"))
    if pixels.size == 0:
        return 0.0
    white = np.all(pixels == 255, axis=-1)
    return float(white.mean() * 100.0)


def _yiq_delta(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    diff = a.astype(np.float64) - b.astype(np.float64)
    r, g, bl = diff[..., 0], diff[..., 1], diff[..., 2]
    y = r * 0.29889531 + g * 0.58662247 + bl * 0.11448223
    i = r * 0.59597799 - g * 0.27417610 - bl * 0.32180189
    q = r * 0.21147017 - g * 0.52261711 + bl * 0.31114694
    return 0.5053 * y * y + 0.299 * i * i + 0.1957 * q * q


def mismatched_pixels(first: Image.Image, second: Image.Image, threshold: float = 0.1) -> int:
    """Count pixels whose perceptual colour distance exceeds ``threshold`` (0..1)."""
    a = np.asarray(first.convert("RGB"))
    b = np.asarray(second.convert("RGB"))
    if a.shape != b.shape:
        return int(max(a.shape[0] * a.shape[1], b.shape[0] * b.shape[1]))
    max_delta = MAX_YIQ_DELTA * threshold * threshold
    return int(np.count_nonzero(_yiq_delta(a, b) > max_delta))


def diff_percent(first: Image.Image, second: Image.Image, threshold: float = 0.1) -> float:
    """Percentage of mismatched pixels; frames of different sizes differ completely."""
    if first.size != second.size:
        return 100.0
    total = first.width * first.height
    if total == 0:
        return 0.0
    return mismatched_pixels(first, second, threshold) / total * 100.0
