#!/usr/bin/env python3
"""
Raster drawing surface used by the route overlay and postcard renderers
"""

import logging
from functools import lru_cache
from typing import Iterable, Optional, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFilter, ImageFont

logger = logging.getLogger(__name__)

Color = Tuple[int, int, int, int]

FONT_CANDIDATES = {
    'regular': (
        "/System/Library/Fonts/Helvetica.ttc",
        "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
        "DejaVuSans.ttf",
    ),
    'bold': (
        "/System/Library/Fonts/Helvetica.ttc",
        "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
        "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
        "DejaVuSans-Bold.ttf",
    ),
}


@lru_cache(maxsize=64)
def load_font(size: int, weight: str = 'regular'):
    """
    Load a TrueType font, trying macOS then common Linux locations

    Falls back to Pillow's bundled default font at the requested size.
    """
    for path in FONT_CANDIDATES.get(weight, FONT_CANDIDATES['regular']):
        try:
            return ImageFont.truetype(path, size)
        except OSError:
            continue
    logger.debug(f"No TrueType font found, using Pillow default at {size}px")
    return ImageFont.load_default(size=size)


def hex_to_rgba(value: str, alpha: int = 255) -> Color:
    value = value.lstrip('#')
    r, g, b = (int(value[i:i + 2], 16) for i in (0, 2, 4))
    return (r, g, b, alpha)


class RenderSurface:
    """
    An RGBA canvas with alpha-blended drawing primitives

    ImageDraw writes translucent colours straight into an RGBA image without
    blending, so every translucent primitive is drawn on its own layer and
    alpha-composited onto the canvas.
    """

    def __init__(self, width: int, height: int, background: Optional[Color] = None,
                 image: Optional[Image.Image] = None):
        if image is not None:
            self.image = image.convert('RGBA')
        else:
            self.image = Image.new('RGBA', (width, height), background or (0, 0, 0, 0))

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    def _layer(self):
        layer = Image.new('RGBA', self.image.size, (0, 0, 0, 0))
        return layer, ImageDraw.Draw(layer)

    def _composite(self, layer: Image.Image):
        self.image = Image.alpha_composite(self.image, layer)

    # Measurement -------------------------------------------------------

    def measure_text(self, text: str, font) -> Tuple[float, float]:
        """Width and height of the inked area of ``text``."""
        left, top, right, bottom = font.getbbox(text)
        return (right - left, bottom - top)

    # Primitives --------------------------------------------------------

    def fill_rect(self, box: Sequence[float], color: Color):
        layer, draw = self._layer()
        draw.rectangle(list(box), fill=color)
        self._composite(layer)

    def fill_circle(self, center: Tuple[float, float], radius: float, color: Color,
                    outline: Optional[Color] = None, outline_width: int = 0):
        cx, cy = center
        layer, draw = self._layer()
        draw.ellipse([cx - radius, cy - radius, cx + radius, cy + radius],
                     fill=color, outline=outline, width=outline_width)
        self._composite(layer)

    def stroke_polyline(self, points: Sequence[Tuple[float, float]], color: Color, width: int):
        if len(points) < 2:
            return
        layer, draw = self._layer()
        draw.line(list(points), fill=color, width=width, joint='curve')
        # Round caps
        radius = width / 2
        for x, y in (points[0], points[-1]):
            draw.ellipse([x - radius, y - radius, x + radius, y + radius], fill=color)
        self._composite(layer)

    def draw_text(self, xy: Tuple[float, float], text: str, font, color: Color, anchor: str = 'la'):
        layer, draw = self._layer()
        draw.text(xy, text, font=font, fill=color, anchor=anchor)
        self._composite(layer)

    def draw_texts_with_shadow(self, items: Iterable[Tuple[Tuple[float, float], str]], font,
                               color: Color, shadow: Color = (0, 0, 0, 160),
                               shadow_offset: Tuple[int, int] = (2, 2), shadow_blur: float = 2.0):
        """
        Draw several centred strings with a soft drop shadow in two passes

        All shadows go down first so one label's shadow never darkens
        another label's text.
        """
        items = list(items)
        if not items:
            return
        dx, dy = shadow_offset
        shadow_layer, shadow_draw = self._layer()
        text_layer, text_draw = self._layer()
        for (x, y), text in items:
            shadow_draw.text((x + dx, y + dy), text, font=font, fill=shadow, anchor='mm')
            text_draw.text((x, y), text, font=font, fill=color, anchor='mm')
        if shadow_blur > 0:
            shadow_layer = shadow_layer.filter(ImageFilter.GaussianBlur(radius=shadow_blur))
        self._composite(shadow_layer)
        self._composite(text_layer)

    def draw_centered_numeral(self, center: Tuple[float, float], text: str, font, color: Color):
        """
        Centre ``text`` on ``center`` using its measured ascent

        Digits have different ink widths and heights, so the glyph box is
        measured from the baseline rather than relying on a fixed offset.
        """
        cx, cy = center
        left, top, right, _ = font.getbbox(text, anchor='ls')
        ascent = -top
        x = cx - (left + right) / 2
        y = cy + ascent / 2
        layer, draw = self._layer()
        draw.text((x, y), text, font=font, fill=color, anchor='ls')
        self._composite(layer)

    def to_rgb(self, background: Tuple[int, int, int] = (255, 255, 255)) -> Image.Image:
        flattened = Image.new('RGB', self.image.size, background)
        flattened.paste(self.image, mask=self.image.split()[3])
        return flattened
