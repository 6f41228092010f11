from __future__ import annotations

from io import BytesIO

from PIL import Image as PILImage
from PIL import ImageEnhance
from rich.style import Style
from rich.text import Text


def image_to_rich_blocks(data: bytes, *, width: int = 30, max_rows: int = 14) -> Text:
    """Render image bytes as upper-half-block characters (two pixels per cell)."""

    if not data:
        return Text("")
    img = PILImage.open(BytesIO(data)).convert("RGB")
    img = ImageEnhance.Contrast(img).enhance(1.15)
    img = ImageEnhance.Color(img).enhance(1.10)

    w, h = img.size
    if not w or not h:
        return Text("")

    aspect = h / w
    out_rows = min(max_rows, max(4, int(aspect * int(width) * 0.55)))
    px_h = out_rows * 2
    px_w = max(8, int(width))
    img = img.resize((px_w, px_h), resample=PILImage.Resampling.LANCZOS)

    out = Text()
    pixels = img.load()
    for y in range(0, px_h, 2):
        for x in range(px_w):
            r1, g1, b1 = pixels[x, y]
            r2, g2, b2 = pixels[x, y + 1]
            style = Style(color=f"#{r1:02x}{g1:02x}{b1:02x}", bgcolor=f"#{r2:02x}{g2:02x}{b2:02x}")
            out.append("▀", style=style)
        if y + 2 < px_h:
            out.append("\n")
    return out
