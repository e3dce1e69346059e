"""Screen Capture - Page screenshots, optionally downscaled for the model."""

import io

import structlog
from PIL import Image

from helmsman.core.config import Config
from helmsman.executor.executor import BrowserSession


logger = structlog.get_logger()


class PlaywrightScreenCapture:
    """Captures the session's page as PNG bytes."""

    def __init__(self, session: BrowserSession, config: Config | None = None) -> None:
        """Initialize the capture.

        Args:
            session: Started browser session
            config: Application configuration
        """
        self.session = session
        self.config = config or Config()

    async def capture_screen(self) -> bytes:
        """Capture the current page.

        Screenshots wider than screenshot_max_width are shrunk; the session
        remembers the factor so the executor can map model coordinates back.

        Returns:
            PNG bytes
        """
        screenshot = await self.session.page.screenshot()
        return self.downscale(screenshot)

    def downscale(self, png_bytes: bytes) -> bytes:
        max_width = self.config.screenshot_max_width
        image = Image.open(io.BytesIO(png_bytes))

        if not max_width or image.width <= max_width:
            self.session.screenshot_scale = 1.0
            return png_bytes

        scale = image.width / max_width
        resized = image.resize(
            (max_width, max(1, round(image.height / scale))),
            Image.Resampling.LANCZOS,
        )

        buffer = io.BytesIO()
        resized.save(buffer, format="PNG")
        self.session.screenshot_scale = scale

        logger.debug(
            "screenshot_downscaled",
            original_width=image.width,
            width=resized.width,
            scale=round(scale, 3),
        )
        return buffer.getvalue()
