"""Thumbnail post-processing for raw browser screenshots."""

import io
import logging

from PIL import Image

from ..models.capture import CaptureError, CaptureFailure, CapturedImage

logger = logging.getLogger(__name__)


class ThumbnailProcessor:
    """Resizes a raster to a fixed width and re-encodes it as JPEG."""

    def __init__(self, width: int = 350, quality: int = 80):
        self.width = width
        self.quality = quality

    def process(self, raw: bytes) -> CapturedImage:
        """Turn raw PNG bytes into a JPEG thumbnail.

        Aspect ratio is preserved and images narrower than the target are
        never upscaled. Transparent and palette images are flattened onto
        white.

        Raises:
            CaptureError: ENCODING_FAILED on any decode/resize/encode error
        """
        try:
            with Image.open(io.BytesIO(raw)) as img:
                img.load()
                rgb = self._to_rgb(img)

            if rgb.width > self.width:
                height = max(1, round(rgb.height * self.width / rgb.width))
                rgb = rgb.resize((self.width, height), Image.Resampling.LANCZOS)

            buffer = io.BytesIO()
            rgb.save(buffer, format="JPEG", quality=self.quality, optimize=True)
        except Exception as e:
            logger.warning(f"Thumbnail encoding failed: {e}")
            raise CaptureError(CaptureFailure.ENCODING_FAILED, str(e)) from e

        data = buffer.getvalue()
        logger.debug(f"Encoded thumbnail {rgb.width}x{rgb.height} ({len(data)} bytes)")
        return CapturedImage(
            data=data,
            content_type="image/jpeg",
            extension="jpg",
            width=rgb.width,
            height=rgb.height,
        )

    @staticmethod
    def _to_rgb(img: Image.Image) -> Image.Image:
        if img.mode == "P":
            img = img.convert("RGBA")
        if img.mode in ("RGBA", "LA"):
            background = Image.new("RGB", img.size, (255, 255, 255))
            background.paste(img, mask=img.getchannel("A"))
            return background
        return img.convert("RGB")
