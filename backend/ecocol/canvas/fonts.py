"""Font loading and text metrics for canvas labels."""

from functools import lru_cache

from PIL import ImageFont


@lru_cache(maxsize=32)
def get_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Get Pillow's bundled font at ``size`` pixels."""
    return ImageFont.load_default(size=size)


def text_width(text: str, font_size: int) -> float:
    """Rendered width of ``text`` in pixels."""
    return float(get_font(font_size).getlength(text))
