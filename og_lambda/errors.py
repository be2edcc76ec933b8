"""
Error types for og-lambda.

Every capture failure is a CaptureError subclass carrying a short ``kind``
so the handler can report it without inspecting messages.

Usage:
    from og_lambda.errors import CaptureError, SelectorTimeout

    try:
        result = await capture(request)
    except CaptureError as e:
        logger.error(f"{e.kind}: {e}")
"""

from typing import Dict


class CaptureError(Exception):
    """Base class for failures of a single capture call"""
    kind: str = "capture"

    def to_dict(self) -> Dict[str, str]:
        return {"kind": self.kind, "message": str(self)}


class SessionStartFailure(CaptureError):
    """Browser could not be launched (binary missing, resources exhausted)"""
    kind = "session_start"


class PageSetupFailure(CaptureError):
    """New page could not be opened or prepared (e.g. invalid timezone id)"""
    kind = "page_setup"


class NavigationTimeout(CaptureError):
    """Page did not reach network idle within the navigation timeout"""
    kind = "navigation_timeout"


class NavigationFailure(CaptureError):
    """Navigation failed for a reason other than a timeout"""
    kind = "navigation"


class SelectorTimeout(CaptureError):
    """Readiness selector never matched"""
    kind = "selector_timeout"


class PredicateTimeout(CaptureError):
    """Readiness predicate never became truthy"""
    kind = "predicate_timeout"


class ReadinessFailure(CaptureError):
    """Readiness check failed outright (invalid selector, throwing predicate)"""
    kind = "readiness"


class EncodingFailure(CaptureError):
    """Screenshot could not be taken or did not decode as the expected format"""
    kind = "encoding"


class InvalidCaptureRequest(ValueError):
    """CaptureRequest violates one of its invariants"""
    pass


class ConfigError(ValueError):
    """Missing or malformed configuration"""
    pass


class DeployError(RuntimeError):
    """Provisioning or control-plane call failed"""
    pass
