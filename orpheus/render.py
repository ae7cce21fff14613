"""
Pillow image helpers: album chart grids, dominant colours, icon tinting.

All functions are synchronous and CPU-bound; callers run them through
``asyncio.to_thread``.
"""
from __future__ import annotations

import colorsys
import io
from enum import Enum
from typing import Optional, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont, ImageOps, UnidentifiedImageError

from .utils.logging import get_logger

logger = get_logger(__name__)

BACKGROUND = (20, 20, 20)
MISSING_TILE = (50, 50, 50)
TEXT_COLOR = (255, 255, 255)

UNDER_LABEL_HEIGHT = 40
TOPSTER_TEXT_WIDTH = 450


class Labelling(str, Enum):
    NO_NAMES = "no_names"
    UNDER = "under"
    TOPSTER = "topster"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Labelling":
        try:
            return cls(value or cls.NO_NAMES.value)
        except ValueError:
            return cls.NO_NAMES


def _font(size: int):
    return ImageFont.load_default(size=size)


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


def _tile(data: Optional[bytes], size: int) -> Image.Image:
    if data:
        try:
            with Image.open(io.BytesIO(data)) as img:
                return ImageOps.fit(img.convert("RGB"), (size, size), Image.Resampling.LANCZOS)
        except (UnidentifiedImageError, OSError) as e:
            logger.debug(f"Unreadable chart tile: {e}", extra={"subsys": "render"})
    return Image.new("RGB", (size, size), MISSING_TILE)


def tile_size_for(grid_width: int, grid_height: int) -> int:
    return 150 if grid_width > 8 or grid_height > 8 else 300


def render_chart(
    tiles: Sequence[Optional[bytes]],
    labels: Sequence[str],
    grid_width: int,
    grid_height: int,
    labelling: Labelling = Labelling.NO_NAMES,
) -> bytes:
    """Compose album covers into a ``grid_width`` x ``grid_height`` PNG.

    ``tiles`` holds raw image bytes per album (``None`` for a grey square),
    ``labels`` the matching "Artist - Album" strings.
    """
    size = tile_size_for(grid_width, grid_height)
    dense = size == 150
    font_size, line_height, char_limit = (11, 15, 60) if dense else (14, 22, 48)
    under = UNDER_LABEL_HEIGHT if labelling is Labelling.UNDER else 0
    side = TOPSTER_TEXT_WIDTH if labelling is Labelling.TOPSTER else 0

    canvas = Image.new("RGB", (size * grid_width + side, (size + under) * grid_height), BACKGROUND)
    draw = ImageDraw.Draw(canvas)
    font = _font(font_size)

    for index, data in enumerate(tiles[: grid_width * grid_height]):
        row, col = divmod(index, grid_width)
        left, top = col * size, row * (size + under)
        canvas.paste(_tile(data, size), (left, top))
        if labelling is Labelling.UNDER and index < len(labels):
            draw.text(
                (left + size // 2, top + size + under // 2),
                _truncate(labels[index], 40),
                fill=TEXT_COLOR,
                font=font,
                anchor="mm",
            )

    if labelling is Labelling.TOPSTER:
        draw.rectangle([size * grid_width, 0, canvas.width, canvas.height], fill=(0, 0, 0))
        for row in range(grid_height):
            y = row * (size + under) + 15
            for label in labels[row * grid_width : (row + 1) * grid_width]:
                draw.text((size * grid_width + 10, y), _truncate(label, char_limit), fill=TEXT_COLOR, font=font)
                y += line_height

    out = io.BytesIO()
    canvas.save(out, format="PNG")
    return out.getvalue()


def dominant_color(data: bytes) -> Optional[int]:
    """Most vibrant well-represented colour of an image as ``0xRRGGBB``."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            small = img.convert("RGB").resize((64, 64))
    except (UnidentifiedImageError, OSError) as e:
        logger.debug(f"Failed to get dominant color: {e}", extra={"subsys": "render"})
        return None

    quantized = small.quantize(colors=8)
    palette = quantized.getpalette() or []
    best: Optional[Tuple[float, Tuple[int, int, int]]] = None
    fallback: Optional[Tuple[int, Tuple[int, int, int]]] = None
    for count, idx in quantized.getcolors() or []:
        rgb = tuple(palette[idx * 3 : idx * 3 + 3])
        if len(rgb) != 3:
            continue
        if fallback is None or count > fallback[0]:
            fallback = (count, rgb)
        _, saturation, value = colorsys.rgb_to_hsv(*(c / 255 for c in rgb))
        # Skip near-black, near-white and washed-out swatches
        if saturation < 0.3 or not 0.2 <= value <= 0.95:
            continue
        weight = count * saturation
        if best is None or weight > best[0]:
            best = (weight, rgb)

    chosen = best[1] if best else (fallback[1] if fallback else None)
    if chosen is None:
        return None
    r, g, b = chosen
    return (r << 16) | (g << 8) | b


def parse_hex_color(value: Optional[str], default: int) -> int:
    cleaned = (value or "").strip().lstrip("#")
    if len(cleaned) != 6:
        return default
    try:
        return int(cleaned, 16)
    except ValueError:
        return default


def tint_icon(data: bytes, color: int) -> bytes:
    """Recolour an icon to ``color``, keeping its luminance and alpha channel."""
    rgb = ((color >> 16) & 0xFF, (color >> 8) & 0xFF, color & 0xFF)
    with Image.open(io.BytesIO(data)) as img:
        rgba = img.convert("RGBA")
    alpha = rgba.getchannel("A")
    tinted = ImageOps.colorize(ImageOps.grayscale(rgba), black=(0, 0, 0), white=rgb).convert("RGBA")
    tinted.putalpha(alpha)
    out = io.BytesIO()
    tinted.save(out, format="PNG")
    return out.getvalue()
