"""
Capture request/result types.
"""

from dataclasses import dataclass
from typing import Optional

from .errors import InvalidCaptureRequest

DEFAULT_WIDTH = 1200
DEFAULT_HEIGHT = 630
DEFAULT_QUALITY = 90

# Only JPEG output is produced
CONTENT_TYPE = "image/jpeg"
IMAGE_TYPE = "jpeg"


@dataclass
class CaptureRequest:
    """
    What to capture and when the page counts as ready.

    Attributes:
        url: Page to render
        width: Viewport width in pixels
        height: Viewport height in pixels
        wait_for_selector: CSS selector that must appear before capture
        wait_for_function: JS expression that must become truthy in the page
            (e.g. "window.chartReady")
        wait_for_timeout: Extra milliseconds to wait after the other conditions
        quality: JPEG quality 0-100
        full_page: Capture the whole document instead of the viewport
        timezone: Timezone id (e.g. "America/New_York") for page rendering
    """
    url: str
    width: int = DEFAULT_WIDTH
    height: int = DEFAULT_HEIGHT
    wait_for_selector: Optional[str] = None
    wait_for_function: Optional[str] = None
    wait_for_timeout: int = 0
    quality: int = DEFAULT_QUALITY
    full_page: bool = False
    timezone: Optional[str] = None

    def __post_init__(self):
        if not self.url:
            raise InvalidCaptureRequest("url is required")
        if self.width <= 0 or self.height <= 0:
            raise InvalidCaptureRequest(
                f"viewport must be positive, got {self.width}x{self.height}"
            )
        if not 0 <= self.quality <= 100:
            raise InvalidCaptureRequest(f"quality must be in [0, 100], got {self.quality}")
        if self.wait_for_timeout < 0:
            raise InvalidCaptureRequest(
                f"wait_for_timeout must be >= 0, got {self.wait_for_timeout}"
            )

    @property
    def clip(self) -> Optional[dict]:
        """Viewport rectangle at the origin, or None for full-page captures."""
        if self.full_page:
            return None
        return {"x": 0, "y": 0, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class CaptureResult:
    buffer: bytes
    content_type: str = CONTENT_TYPE

    @property
    def size(self) -> int:
        return len(self.buffer)
