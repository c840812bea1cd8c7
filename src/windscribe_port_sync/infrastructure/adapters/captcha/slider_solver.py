"""Slider captcha solver working on the raw challenge images.

Two challenge flavours are served by the provider:

* a background with a thin bright outline marking the target, plus a separate
  puzzle piece image with transparency (outline matching), and
* a background alone, with a shadowed cutout where the piece belongs
  (cutout detection).

Offsets are deterministic for identical inputs; only the pointer trail is random.
"""
from __future__ import annotations

import base64
import binascii
import io
import logging
import random
import re
import time
from dataclasses import dataclass
from pathlib import Path

import numpy as np
from PIL import Image, UnidentifiedImageError

from windscribe_port_sync.domain.errors import CaptchaUnsolvable
from windscribe_port_sync.domain.model import CaptchaChallenge, CaptchaSolution
from windscribe_port_sync.infrastructure.adapters.captcha.trail import generate_trail

logger = logging.getLogger(__name__)

_DATA_URL_RE = re.compile(r"^data:image/\w+;base64,")

ALPHA_THRESHOLD = 128
BRIGHTNESS_THRESHOLD = 150
MIN_COLUMN_FILL = 0.1
PAIR_TOLERANCE = 0.3
SEARCH_START = 0.3
OUTLINE_RIGHT_MARGIN = 50
CUTOUT_SEARCH_END = 0.9
CUTOUT_ABOVE = 10
CUTOUT_BELOW = 70


@dataclass(frozen=True)
class PieceBounds:
    min_x: int
    max_x: int
    min_y: int
    max_y: int

    @property
    def width(self) -> int:
        return self.max_x - self.min_x + 1

    @property
    def height(self) -> int:
        return self.max_y - self.min_y + 1


@dataclass(frozen=True)
class ColumnScore:
    x: int
    bright_pixels: int
    brightness: int


class _DebugLog:
    """Collects solver notes and, when a directory is given, writes them to disk."""

    def __init__(self, directory: str | Path | None) -> None:
        self.directory = Path(directory) if directory else None
        self.stamp = int(time.time() * 1000)
        self.lines: list[str] = []

    def note(self, message: str) -> None:
        logger.debug(message)
        if self.directory:
            self.lines.append(message)

    def save_image(self, name: str, raw: bytes) -> None:
        if not self.directory:
            return
        self.directory.mkdir(parents=True, exist_ok=True)
        (self.directory / f"{self.stamp}_{name}.png").write_bytes(raw)

    def flush(self) -> None:
        if not self.directory:
            return
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / f"{self.stamp}_debug.txt"
        path.write_text("\n".join(["CAPTCHA Debug Log", f"Timestamp: {self.stamp}", "", *self.lines]) + "\n")
        logger.info("Captcha debug log saved to %s", path)


# =========================
# Entry point
# =========================
def solve_captcha(
    challenge: CaptchaChallenge,
    *,
    rng: random.Random | None = None,
    debug_dir: str | Path | None = None,
) -> CaptchaSolution:
    """Computes the drag offset for ``challenge`` and a pointer trail reaching it.

    Raises CaptchaUnsolvable when an image cannot be decoded or the puzzle piece
    has no visible pixels.
    """
    debug = _DebugLog(debug_dir)
    try:
        background_raw = decode_base64(challenge.background)
        debug.save_image("background", background_raw)
        background = open_image(background_raw)
        debug.note(f"CAPTCHA top offset: {challenge.top}, background {background.width}x{background.height}")

        if challenge.has_distinct_slider:
            assert challenge.slider is not None
            slider_raw = decode_base64(challenge.slider)
            debug.save_image("slider", slider_raw)
            offset = find_outline_offset(background, open_image(slider_raw), challenge.top, debug=debug)
        else:
            debug.note("No separate slider image, using cutout detection")
            offset = find_cutout_offset(background, challenge.top, debug=debug)

        trail = generate_trail(offset, rng)
        debug.note(f"Final solution: offset={offset}, trail of {len(trail)} points")
        return CaptchaSolution(offset=offset, trail=trail)
    finally:
        debug.flush()


def decode_base64(data: bytes | str) -> bytes:
    if isinstance(data, bytes):
        return data
    try:
        return base64.b64decode(_DATA_URL_RE.sub("", data.strip(), count=1))
    except (binascii.Error, ValueError) as e:
        raise CaptchaUnsolvable(f"Captcha image is not valid base64: {e}") from e


def open_image(raw: bytes) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(raw))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise CaptchaUnsolvable(f"Could not decode captcha image: {e}") from e
    return image


# =========================
# Outline matching
# =========================
def piece_bounds(slider: Image.Image) -> PieceBounds:
    """Bounding box of the puzzle piece's opaque pixels."""
    alpha = np.asarray(slider.convert("RGBA"))[:, :, 3]
    ys, xs = np.nonzero(alpha > ALPHA_THRESHOLD)
    if xs.size == 0:
        raise CaptchaUnsolvable("Slider image has no opaque pixels")
    return PieceBounds(int(xs.min()), int(xs.max()), int(ys.min()), int(ys.max()))


def score_columns(gray: np.ndarray, top: int, piece_height: int) -> tuple[list[ColumnScore], int]:
    """Scores the search band's columns by bright pixel count and brightness.

    Returns the scores of every column in ``[0.3*width, width-50)`` together with
    the expected outline height used for thresholding.
    """
    height, width = gray.shape
    start_x = int(width * SEARCH_START)
    end_x = width - OUTLINE_RIGHT_MARGIN
    bottom = min(height - 1, top + piece_height)
    expected_height = bottom - top
    if end_x <= start_x or bottom < top:
        return [], expected_height

    band = gray[max(0, top) : bottom + 1, start_x:end_x].astype(np.int64)
    bright = band > BRIGHTNESS_THRESHOLD
    counts = bright.sum(axis=0)
    totals = np.where(bright, band, 0).sum(axis=0)
    scores = [
        ColumnScore(x=start_x + i, bright_pixels=int(counts[i]), brightness=int(totals[i]))
        for i in range(end_x - start_x)
    ]
    return scores, expected_height


def pick_left_edge(candidates: list[ColumnScore], piece_width: int, default: int) -> int:
    """Chooses the outline's left edge among candidate columns (sorted by x).

    Prefers the strongest pair of columns about one piece width apart; falls
    back to the brightest single column, then to ``default``.
    """
    best: tuple[tuple[int, int], int] | None = None
    tolerance = piece_width * PAIR_TOLERANCE
    for i, left in enumerate(candidates):
        for right in candidates[i + 1 :]:
            if abs((right.x - left.x) - piece_width) >= tolerance:
                continue
            score = (left.bright_pixels + right.bright_pixels, left.brightness + right.brightness)
            if best is None or score > best[0]:
                best = (score, left.x)
    if best is not None:
        return best[1]
    if candidates:
        return max(candidates, key=lambda c: c.brightness).x
    return default


def find_outline_offset(
    background: Image.Image,
    slider: Image.Image,
    top: int,
    *,
    debug: _DebugLog | None = None,
) -> int:
    debug = debug or _DebugLog(None)
    bounds = piece_bounds(slider)
    debug.note(
        f"Puzzle piece bounds: x={bounds.min_x}-{bounds.max_x}, y={bounds.min_y}-{bounds.max_y}, "
        f"size={bounds.width}x{bounds.height}"
    )

    gray = np.asarray(background.convert("L"))
    scores, expected_height = score_columns(gray, top, bounds.height)
    candidates = [c for c in scores if c.bright_pixels > expected_height * MIN_COLUMN_FILL]
    debug.note(f"Outline candidates (x, bright): {[(c.x, c.bright_pixels) for c in candidates[:20]]}")

    left_edge = pick_left_edge(candidates, bounds.width, default=gray.shape[1] // 2)
    offset = left_edge - bounds.min_x
    debug.note(f"Outline left edge x={left_edge}, drag offset {left_edge} - {bounds.min_x} = {offset}")
    return offset


# =========================
# Cutout detection
# =========================
def edge_strength(background: Image.Image, top: int) -> np.ndarray:
    """Per-column horizontal gradient energy in the rows around ``top``."""
    rgb = np.asarray(background.convert("RGB"), dtype=np.float64)
    height, width = rgb.shape[:2]
    rows = rgb[max(0, top - CUTOUT_ABOVE) : min(height, top + CUTOUT_BELOW)].mean(axis=2)
    strength = np.zeros(width)
    if width >= 3 and rows.shape[0]:
        centre = rows[:, 1:-1]
        strength[1:-1] = (np.abs(centre - rows[:, :-2]) + np.abs(centre - rows[:, 2:])).sum(axis=0)
    return strength


def find_cutout_offset(background: Image.Image, top: int, *, debug: _DebugLog | None = None) -> int:
    debug = debug or _DebugLog(None)
    strength = edge_strength(background, top)
    width = strength.size
    start_x = int(width * SEARCH_START)
    end_x = int(width * CUTOUT_SEARCH_END)

    padded = np.concatenate([strength, np.zeros(2)])
    window = padded[start_x:end_x] + padded[start_x + 1 : end_x + 1] + padded[start_x + 2 : end_x + 2]
    if window.size == 0 or window.max() <= 0:
        debug.note("Cutout detection found no edges, defaulting to the middle")
        return width // 2

    best_x = start_x + int(np.argmax(window))
    debug.note(f"Cutout detection: found position at x={best_x}")
    return best_x
