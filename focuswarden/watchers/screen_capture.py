import base64
import time
from io import BytesIO
from typing import cast

import mss  # pyright: ignore[reportMissingImports]
from PIL import Image  # pyright: ignore[reportMissingImports]

from focuswarden.watchers.logger import logger

# keeps vision requests small; the model only needs to read window content
MAX_EDGE_PX = 1600


class ScreenCapture:
    """Grab the screen as a base64 PNG."""

    def __init__(self, bbox: dict[str, int] | None = None, *, all_monitors: bool = True) -> None:
        """Initialize.

        Args:
            bbox: capture region {"top", "left", "width", "height"}; None picks a monitor
            all_monitors: with no bbox, capture the whole virtual desktop instead
                of only the primary monitor

        """
        self.bbox = bbox or self._get_monitor_bbox(all_monitors=all_monitors)
        self.last_capture_time: float = 0.0
        logger.info("ScreenCapture initialized | bbox=%s", self.bbox)

    def _get_monitor_bbox(self, *, all_monitors: bool) -> dict[str, int]:
        with mss.mss() as sct:
            monitors = sct.monitors
            # monitors[0] is the union of every screen, [1] the primary
            index = 0 if all_monitors or len(monitors) < 2 else 1  # noqa: PLR2004
            chosen = cast("dict[str, int]", monitors[index])
            logger.info("Monitors detected: %s | chosen=%s", len(monitors) - 1, chosen)
            return dict(chosen)

    def capture_image(self) -> Image.Image:
        with mss.mss() as sct:
            screenshot = sct.grab(self.bbox)
            image = Image.frombytes("RGB", screenshot.size, screenshot.bgra, "raw", "BGRX")
        if max(image.size) > MAX_EDGE_PX:
            image.thumbnail((MAX_EDGE_PX, MAX_EDGE_PX))
        self.last_capture_time = time.time()
        return image

    def capture_as_base64(self) -> str:
        image = self.capture_image()
        buffer = BytesIO()
        image.save(buffer, format="PNG")
        return base64.b64encode(buffer.getvalue()).decode()
