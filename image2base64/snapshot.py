import io
import json
import textwrap
from typing import List

from PIL import Image, ImageDraw, ImageFont

BACKGROUND = "#f8fafc"
TEXT_COLOR = "#1e293b"
PADDING = 20
LINE_SPACING = 4
WRAP_WIDTH = 100


def _panel_lines(extracted_text: str) -> List[str]:
    try:
        body = json.dumps(json.loads(extracted_text), ensure_ascii=False, indent=2)
    except (TypeError, ValueError):
        body = extracted_text
    lines: List[str] = []
    for line in body.splitlines() or [""]:
        lines.extend(textwrap.wrap(line, WRAP_WIDTH, drop_whitespace=False, replace_whitespace=False) or [""])
    return lines


def render_json_snapshot(extracted_text: str) -> bytes:
    """Rend le panneau de données extraites (texte complet) en image PNG."""
    font = ImageFont.load_default()
    lines = _panel_lines(extracted_text)

    probe = ImageDraw.Draw(Image.new("RGB", (1, 1)))
    widths, heights = [], []
    for line in lines:
        left, top, right, bottom = probe.textbbox((0, 0), line or " ", font=font)
        widths.append(right - left)
        heights.append(bottom - top)
    line_height = max(heights) + LINE_SPACING

    width = max(widths) + 2 * PADDING
    height = line_height * len(lines) + 2 * PADDING
    img = Image.new("RGB", (width, height), BACKGROUND)
    draw = ImageDraw.Draw(img)
    y = PADDING
    for line in lines:
        draw.text((PADDING, y), line, fill=TEXT_COLOR, font=font)
        y += line_height

    with io.BytesIO() as buf:
        img.save(buf, format="PNG")
        return buf.getvalue()
