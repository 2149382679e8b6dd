"""Watermark compositing for generated images.

Downloads the processor's output and stamps a faded text mark in the
bottom-right corner: a dark shadow offset by two pixels under a
semi-transparent white label. Font size scales with the image width
(width / 15, at least 40px), padding is half the font size.
"""

import asyncio
import io
from typing import Optional

import httpx
from PIL import Image, ImageDraw, ImageFont

from wrapbot.config import settings
from wrapbot.logging_config import get_logger
from wrapbot.services.errors import WatermarkError
from wrapbot.services.result import Result

logger = get_logger("watermark_service")

TEXT_FILL = (255, 255, 255, 102)
SHADOW_FILL = (0, 0, 0, 51)
FONT_CANDIDATES = ("DejaVuSans-Bold.ttf", "Arial Bold.ttf", "arialbd.ttf")


def _load_font(size: int) -> ImageFont.ImageFont:
    for name in FONT_CANDIDATES:
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue
    return ImageFont.load_default(size=size)


def compose_watermark(image_bytes: bytes, text: str) -> bytes:
    """Return PNG bytes of `image_bytes` with `text` stamped bottom-right."""
    try:
        base = Image.open(io.BytesIO(image_bytes))
        base.load()
    except Exception as exc:
        raise WatermarkError("Downloaded bytes are not a supported image format") from exc

    base = base.convert("RGBA")
    width, height = base.size
    font_size = max(width // 15, 40)
    padding = font_size // 2

    overlay = Image.new("RGBA", base.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    font = _load_font(font_size)

    x, y = width - padding, height - padding
    draw.text((x + 2, y + 2), text, font=font, fill=SHADOW_FILL, anchor="rs")
    draw.text((x, y), text, font=font, fill=TEXT_FILL, anchor="rs")

    out = io.BytesIO()
    Image.alpha_composite(base, overlay).save(out, format="PNG")
    return out.getvalue()


class Watermarker:
    def __init__(
        self,
        text: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.text = text or settings.watermark_text
        self.timeout_seconds = timeout_seconds or settings.watermark_timeout_seconds
        self._transport = transport

    async def _download(self, image_url: str) -> bytes:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self._transport, follow_redirects=True
            ) as client:
                response = await client.get(image_url)
                response.raise_for_status()
                return response.content
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise WatermarkError(f"Failed to download image: {exc}") from exc

    async def apply(self, image_url: str) -> bytes:
        """Download and watermark. Raises WatermarkError."""
        image_bytes = await self._download(image_url)
        try:
            return await asyncio.to_thread(compose_watermark, image_bytes, self.text)
        except WatermarkError:
            raise
        except Exception as exc:
            raise WatermarkError(f"Failed to composite watermark: {exc}") from exc

    async def apply_or_fallback(self, image_url: str) -> Result[bytes | str]:
        """Watermarked bytes, or a degraded result carrying the original URL."""
        try:
            return Result.success(await self.apply(image_url))
        except WatermarkError as e:
            logger.warning(
                "Watermark failed, using original image",
                extra={"context": {"image_url": image_url, "error": str(e)}},
            )
            return Result.degrade(image_url, str(e), WatermarkError.code)
