#!/usr/bin/env python3
"""
Compose activity postcards sized for social media
"""

import enum
import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import requests
from PIL import Image, ImageEnhance, ImageFilter

from .models import GpsStream
from .route_overlay import RenderOutcome, RouteOverlayRenderer
from .surface import RenderSurface, hex_to_rgba, load_font

logger = logging.getLogger(__name__)

FORMATS = {
    'square': (1080, 1080),
    'portrait': (1080, 1350),
    'landscape': (1080, 566),
    'story': (1080, 1920),
    'reel': (1080, 1920),
}

GRADIENT_START = '#667eea'
GRADIENT_END = '#764ba2'


class SlotKind(enum.Enum):
    """What a canvas slot shows."""

    TITLE = 'title'
    ROUTE_OVERLAY = 'route'
    GALLERY = 'gallery'


@dataclass
class Slot:
    kind: SlotKind
    photo: Optional[Image.Image] = None


@dataclass
class PostcardStyle:
    text_color: str = '#FFFFFF'
    overlay_opacity: float = 0.3
    # Tone photos down so the route and text stay readable
    photo_saturation: float = 1.0
    photo_brightness: float = 1.0
    photo_blur: float = 0


@dataclass
class PostcardResult:
    image: Image.Image
    format_key: str
    slot: SlotKind
    overlay: Optional[RenderOutcome] = None


def format_time(seconds: float) -> str:
    """Return a human readable string for seconds."""

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)

    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def activity_stats(activity: Dict[str, Any]) -> List[Tuple[str, str]]:
    """(label, value) pairs for the stats the activity actually has."""
    stats = []
    elevation = activity.get('total_elevation_gain')
    if elevation:
        stats.append(('Elev Gain', f"{elevation:.0f} m"))
    moving_time = activity.get('moving_time')
    if moving_time:
        stats.append(('Time', format_time(moving_time)))
    distance = activity.get('distance')
    if distance:
        stats.append(('Distance', f"{distance / 1000:.2f} km"))
    return stats


def photo_url(photo: Dict[str, Any]) -> Optional[str]:
    """Largest URL of a Strava photo record."""
    urls = photo.get('urls') or {}
    if not urls:
        return None
    largest = max(urls, key=lambda size: int(size) if str(size).isdigit() else 0)
    return urls[largest]


class ImageProcessor:
    """Process background images for postcards"""

    @staticmethod
    def download_image(url, timeout=10):
        """
        Download image from URL

        Args:
            url: Image URL

        Returns:
            PIL Image object or None
        """
        try:
            response = requests.get(url, timeout=timeout)
            response.raise_for_status()
            img = Image.open(BytesIO(response.content))
            img.load()
            return img
        except (requests.exceptions.RequestException, OSError) as e:
            logger.warning(f"⚠️  Could not download image: {e}")
            return None

    @staticmethod
    def process_background(img, saturation=0.3, brightness=0.7, blur_radius=0):
        """
        Process background image to tone down colors

        Args:
            img: PIL Image object
            saturation: Saturation level (0.0 to 1.0, where 0 is grayscale)
            brightness: Brightness level (0.0 to 1.0)
            blur_radius: Optional blur radius

        Returns:
            Processed PIL Image
        """
        if img.mode != 'RGB':
            img = img.convert('RGB')

        if saturation != 1.0:
            img = ImageEnhance.Color(img).enhance(saturation)
        if brightness != 1.0:
            img = ImageEnhance.Brightness(img).enhance(brightness)
        if blur_radius > 0:
            img = img.filter(ImageFilter.GaussianBlur(radius=blur_radius))

        return img

    @staticmethod
    def fit_image_to_canvas(img, canvas_width, canvas_height):
        """
        Fit image to canvas maintaining aspect ratio (cover mode)

        Args:
            img: PIL Image object
            canvas_width: Target width
            canvas_height: Target height

        Returns:
            Cropped/resized PIL Image
        """
        img_aspect = img.width / img.height
        canvas_aspect = canvas_width / canvas_height

        if img_aspect > canvas_aspect:
            # Image is wider - fit to height
            new_height = canvas_height
            new_width = max(canvas_width, int(round(new_height * img_aspect)))
        else:
            # Image is taller - fit to width
            new_width = canvas_width
            new_height = max(canvas_height, int(round(new_width / img_aspect)))

        img = img.resize((new_width, new_height), Image.Resampling.LANCZOS)

        # Center crop
        left = (new_width - canvas_width) // 2
        top = (new_height - canvas_height) // 2
        return img.crop((left, top, left + canvas_width, top + canvas_height))

    @staticmethod
    def gradient_background(width, height, start=GRADIENT_START, end=GRADIENT_END):
        """Diagonal linear gradient from top-left to bottom-right"""
        start_rgb = np.array(hex_to_rgba(start)[:3], dtype=float)
        end_rgb = np.array(hex_to_rgba(end)[:3], dtype=float)
        t = (np.linspace(0.0, 1.0, width)[np.newaxis, :] + np.linspace(0.0, 1.0, height)[:, np.newaxis]) / 2
        rgb = start_rgb + (end_rgb - start_rgb) * t[..., np.newaxis]
        return Image.fromarray(np.round(rgb).astype(np.uint8))


class PostcardComposer:
    """
    Compose one canvas slot of a postcard

    Every SlotKind has exactly one drawing routine; compose() refuses kinds it
    does not know about.
    """

    def __init__(self, renderer: Optional[RouteOverlayRenderer] = None,
                 style: Optional[PostcardStyle] = None):
        self.renderer = renderer or RouteOverlayRenderer()
        self.style = style or PostcardStyle()
        self._drawers = {
            SlotKind.TITLE: self._draw_title_slot,
            SlotKind.ROUTE_OVERLAY: self._draw_route_slot,
            SlotKind.GALLERY: self._draw_gallery_slot,
        }
        missing = set(SlotKind) - set(self._drawers)
        if missing:
            raise RuntimeError(f"No drawer for slot kinds: {missing}")

    def compose(self, format_key: str, slot: Slot, activity: Dict[str, Any],
                stream: Optional[GpsStream] = None) -> PostcardResult:
        """
        Render ``slot`` for ``activity`` at the size of ``format_key``

        Raises:
            ValueError: For an unknown format
        """
        if format_key not in FORMATS:
            raise ValueError(f"Unknown format '{format_key}', expected one of {sorted(FORMATS)}")
        drawer = self._drawers.get(slot.kind)
        if drawer is None:
            raise ValueError(f"Unknown slot kind: {slot.kind!r}")

        width, height = FORMATS[format_key]
        surface = RenderSurface(width, height, image=self._background(width, height, slot.photo))
        overlay = drawer(surface, slot, activity, stream)
        return PostcardResult(image=surface.to_rgb(), format_key=format_key,
                              slot=slot.kind, overlay=overlay)

    def _background(self, width, height, photo: Optional[Image.Image]) -> Image.Image:
        if photo is None:
            return ImageProcessor.gradient_background(width, height)
        style = self.style
        img = ImageProcessor.process_background(
            photo, saturation=style.photo_saturation,
            brightness=style.photo_brightness, blur_radius=style.photo_blur,
        )
        return ImageProcessor.fit_image_to_canvas(img, width, height)

    def _darken(self, surface: RenderSurface):
        alpha = int(round(max(0.0, min(1.0, self.style.overlay_opacity)) * 255))
        if alpha:
            surface.fill_rect((0, 0, surface.width, surface.height), (0, 0, 0, alpha))

    def _draw_gallery_slot(self, surface, slot, activity, stream):
        """Gallery slots are the background photo (or gradient) alone, nothing is drawn over it."""
        return None

    def _draw_route_slot(self, surface, slot, activity, stream):
        self._darken(surface)
        return self.renderer.render(surface, surface.width, surface.height, activity, stream)

    def _draw_title_slot(self, surface, slot, activity, stream):
        self._darken(surface)
        width, height = surface.width, surface.height
        color = hex_to_rgba(self.style.text_color)
        margin = max(50, int(width * 0.05))
        # Text grows on the taller formats
        scale = 1.1 if height <= width * 1.05 else 2.2
        if height < width * 0.75:
            scale = 1.86

        stats_height = self._draw_stats(surface, activity_stats(activity), height - margin,
                                        margin, width - 2 * margin, scale, color)

        title = activity.get('name') or ''
        if title:
            title_gap = max(66, int(height * 0.033 * scale))
            self._draw_title(surface, title, height - margin - stats_height - title_gap,
                             margin, width - 2 * margin, scale, color)
        return None

    def _draw_title(self, surface, title, bottom_y, x, max_width, scale, color):
        """Bottom-left title, shrunk until it fits on one line."""
        size = int(48 * scale)
        font = load_font(size, 'bold')
        while size > 16 and surface.measure_text(title, font)[0] > max_width:
            size -= 2
            font = load_font(size, 'bold')
        surface.draw_text((x, bottom_y), title, font, color, anchor='ls')

    def _draw_stats(self, surface, stats, bottom_y, start_x, max_width, scale, color) -> int:
        """
        Lay stats out left to right, wrapping upwards when a row is full

        Returns:
            Total height used, so the title can sit above it
        """
        if not stats:
            return 0
        label_size = int(18 * scale)
        value_size = int(36 * scale)
        h_gap = int(40 * scale)
        v_gap = int(40 * scale)
        label_value_gap = int(12 * scale)
        label_font = load_font(label_size)
        value_font = load_font(value_size, 'bold')
        label_color = color[:3] + (200,)

        current_y = bottom_y
        current_x = start_x
        line_width = 0
        line_height = 0
        used = 0
        for label, value in stats:
            stat_width = max(surface.measure_text(label, label_font)[0],
                             surface.measure_text(value, value_font)[0])
            stat_height = label_size + label_value_gap + value_size
            gap = h_gap if line_width else 0

            if line_width and line_width + gap + stat_width > max_width:
                current_y -= line_height + v_gap
                used += line_height + v_gap
                current_x = start_x
                line_width = 0
                line_height = 0
                gap = 0

            surface.draw_text((current_x, current_y - value_size - label_value_gap), label,
                              label_font, label_color, anchor='ls')
            surface.draw_text((current_x, current_y), value, value_font, color, anchor='ls')

            current_x += stat_width + h_gap
            line_width += gap + stat_width
            line_height = max(line_height, stat_height)

        return used + line_height
