"""Five-digit challenge image rendering using Pillow."""

from __future__ import annotations

import io
import secrets
from typing import Protocol

import structlog
from PIL import Image, ImageDraw, ImageFont

from captchagate.engine.identifiers import format_answer

logger = structlog.get_logger(__name__)

CANVAS_SIZE = (280, 100)
FONT_SIZE = 50
GLYPH_X = (40, 80, 120, 160, 200)
BASELINE_Y = 75
COLOR_RANGE = (0x22, 0xCC)
MAX_ROTATION_DEGREES = 8.0


class GlyphRandom(Protocol):
    def randint(self, a: int, b: int) -> int: ...

    def uniform(self, a: float, b: float) -> float: ...


class DigitRenderer:
    """Draws a challenge answer as a PNG.

    Each digit gets its own mid-range color and a small random rotation.
    The noise is cosmetic; it only keeps naive scripted readers out.
    """

    def __init__(self, rng: GlyphRandom | None = None) -> None:
        self._rng: GlyphRandom = rng or secrets.SystemRandom()
        self._font = ImageFont.load_default(size=FONT_SIZE)

    def random_color(self) -> tuple[int, int, int]:
        low, high = COLOR_RANGE
        return (
            self._rng.randint(low, high),
            self._rng.randint(low, high),
            self._rng.randint(low, high),
        )

    def random_rotation(self) -> float:
        return self._rng.uniform(-MAX_ROTATION_DEGREES, MAX_ROTATION_DEGREES)

    def render(self, answer: int) -> bytes:
        canvas = Image.new("RGB", CANVAS_SIZE, color=(255, 255, 255))
        for x, digit in zip(GLYPH_X, format_answer(answer), strict=True):
            glyph = self._glyph(digit)
            # Anchor each glyph so its baseline sits at BASELINE_Y
            top = BASELINE_Y - glyph.height + glyph.height // 4
            canvas.paste(glyph, (x - glyph.width // 4, top), glyph)

        buf = io.BytesIO()
        canvas.save(buf, format="PNG")
        return buf.getvalue()

    def _glyph(self, digit: str) -> Image.Image:
        tile = Image.new("RGBA", (FONT_SIZE, int(FONT_SIZE * 1.4)), (0, 0, 0, 0))
        draw = ImageDraw.Draw(tile)
        draw.text(
            (tile.width // 2, tile.height // 2),
            digit,
            font=self._font,
            fill=self.random_color(),
            anchor="mm",
        )
        return tile.rotate(self.random_rotation(), resample=Image.Resampling.BICUBIC, expand=True)
