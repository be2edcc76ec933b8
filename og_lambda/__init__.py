"""
og_lambda package: scheduled og:image screenshots published to S3

Usage:
    from og_lambda import CaptureRequest, capture

    result = await capture(CaptureRequest(url="https://example.com"))
    upload_screenshot(result, "my-bucket", "og-image.jpg")
"""
from .models import CaptureRequest, CaptureResult
from .errors import (
    CaptureError,
    SessionStartFailure,
    PageSetupFailure,
    NavigationTimeout,
    NavigationFailure,
    SelectorTimeout,
    PredicateTimeout,
    ReadinessFailure,
    EncodingFailure,
    ConfigError,
)
from .screenshots import capture
from .storage import upload_screenshot
from .config import LambdaConfig, DeployConfig, resolve_capture_config

__all__ = [
    # Capture
    "CaptureRequest",
    "CaptureResult",
    "capture",
    "upload_screenshot",
    # Config
    "LambdaConfig",
    "DeployConfig",
    "resolve_capture_config",
    # Errors
    "CaptureError",
    "SessionStartFailure",
    "PageSetupFailure",
    "NavigationTimeout",
    "NavigationFailure",
    "SelectorTimeout",
    "PredicateTimeout",
    "ReadinessFailure",
    "EncodingFailure",
    "ConfigError",
]

__version__ = "1.0.0"
