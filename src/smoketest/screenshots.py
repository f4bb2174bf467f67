from __future__ import annotations

import re
import textwrap
from io import BytesIO
from pathlib import Path
from typing import Optional

from PIL import Image, ImageDraw, ImageFont

from .driver import AutomationDriver
from .errors import DiagnosticCaptureError
from .interfaces import RunContext


_UNSAFE = re.compile(r"[^A-Za-z0-9._ -]+")
MAX_NAME_LEN = 120


def screenshot_name(label: str) -> str:
    """File stem for a label; fatal error text is used verbatim where safe."""
    name = _UNSAFE.sub("_", label).strip(" ._")
    name = re.sub(r"_+", "_", name)[:MAX_NAME_LEN].rstrip(" ._")
    return name or "screenshot"


def _annotate(img: Image.Image, caption: str) -> Image.Image:
    font = ImageFont.load_default()
    width_chars = max(20, img.width // 7)
    lines = textwrap.wrap(caption, width=width_chars)[:6] or [caption]
    line_h = 14
    banner_h = line_h * len(lines) + 10

    out = Image.new("RGB", (img.width, img.height + banner_h), (160, 20, 20))
    out.paste(img.convert("RGB"), (0, banner_h))
    draw = ImageDraw.Draw(out)
    for i, line in enumerate(lines):
        draw.text((6, 5 + i * line_h), line, fill=(255, 255, 255), font=font)
    return out


class ScreenshotTaker:
    """Writes driver screenshots as PNG files named after a phase label.

    The PNG is decoded before saving: a session that hands back an empty or
    corrupt image is not really interactive.
    """

    def __init__(self, out_dir: Path):
        self.out_dir = Path(out_dir)

    def take(self, driver: AutomationDriver, label: str, caption: Optional[str] = None) -> Path:
        try:
            png = driver.screenshot_png()
            img = Image.open(BytesIO(png))
            img.load()
        except Exception as exc:
            raise DiagnosticCaptureError(f"could not capture screenshot {label!r}: {exc}") from exc
        if img.width <= 0 or img.height <= 0:
            raise DiagnosticCaptureError(f"screenshot {label!r} is empty")

        if caption:
            img = _annotate(img, caption)

        self.out_dir.mkdir(parents=True, exist_ok=True)
        path = self.out_dir / f"{screenshot_name(label)}.png"
        try:
            img.save(path, format="PNG")
        except OSError as exc:
            raise DiagnosticCaptureError(f"could not save screenshot {path}: {exc}") from exc
        return path


def take_screenshot(ctx: RunContext, label: str, caption: Optional[str] = None) -> Path:
    if ctx.driver is None or not ctx.ready_for_screenshot:
        raise DiagnosticCaptureError(f"not ready for screenshot {label!r}")
    path = ScreenshotTaker(ctx.config.screenshots_path).take(ctx.driver, label, caption=caption)
    ctx.events.emit("screenshot", label=label, path=str(path))
    return path
