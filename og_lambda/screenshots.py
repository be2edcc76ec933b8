"""
Screenshot capture - render a page, wait until it is ready, grab a JPEG.

One call owns one browser session from launch to close:

    1. launch session (viewport = request size)
    2. open page, dark color scheme, optional timezone
    3. forward page console/errors to the log
    4. goto url, wait for network idle
    5. optional readiness: selector, then predicate, then settle delay
    6. screenshot (viewport clip or full page), verify JPEG
    7. close session, always

Each wait has its own 30s ceiling; there is no overall deadline.
"""

import asyncio
import io
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from PIL import Image
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .browser_setup import BrowserSession
from .diagnostics import attach_page_diagnostics
from .errors import (
    CaptureError,
    EncodingFailure,
    NavigationFailure,
    NavigationTimeout,
    PageSetupFailure,
    PredicateTimeout,
    ReadinessFailure,
    SelectorTimeout,
    SessionStartFailure,
)
from .models import CaptureRequest, CaptureResult, CONTENT_TYPE, IMAGE_TYPE

logger = logging.getLogger(__name__)

# Upper bound for navigation, selector wait and predicate wait, each
STAGE_TIMEOUT_MS = 30000

SessionFactory = Callable[[CaptureRequest], Awaitable[Any]]


async def launch_session(request: CaptureRequest) -> BrowserSession:
    return await BrowserSession.start(request.width, request.height)


async def capture(
    request: CaptureRequest,
    session_factory: Optional[SessionFactory] = None,
) -> CaptureResult:
    """
    Capture a screenshot of ``request.url``.

    Args:
        request: What to capture
        session_factory: Coroutine function returning a started session
            (anything with ``new_page(timezone=...)`` and ``close()``);
            defaults to launching Chromium

    Returns:
        CaptureResult with the JPEG bytes

    Raises:
        CaptureError: subclass naming the stage that failed. The session is
            closed before the error leaves this function.
    """
    factory = session_factory or launch_session
    try:
        session = await factory(request)
    except CaptureError:
        raise
    except Exception as e:
        raise SessionStartFailure(f"Failed to start browser session: {e}") from e

    try:
        return await _run(session, request)
    finally:
        try:
            await session.close()
        except Exception as e:
            logger.warning(f"Failed to close browser session: {e}")


async def _run(session, request: CaptureRequest) -> CaptureResult:
    page = await _prepare_page(session, request)
    attach_page_diagnostics(page, logger)
    await _navigate(page, request.url)
    await _wait_until_ready(page, request)
    return await _take_screenshot(page, request)


async def _prepare_page(session, request: CaptureRequest):
    try:
        page = await session.new_page(timezone=request.timezone)
        await page.emulate_media(color_scheme="dark")
    except Exception as e:
        raise PageSetupFailure(f"Failed to prepare page: {e}") from e
    return page


async def _navigate(page, url: str) -> None:
    started = time.monotonic()
    try:
        await page.goto(url, wait_until="networkidle", timeout=STAGE_TIMEOUT_MS)
    except PlaywrightTimeoutError as e:
        raise NavigationTimeout(
            f"Navigation to {url} did not settle within {STAGE_TIMEOUT_MS}ms"
        ) from e
    except Exception as e:
        raise NavigationFailure(f"Navigation to {url} failed: {e}") from e
    logger.info(f"Loaded {url} in {time.monotonic() - started:.2f}s")


async def _wait_until_ready(page, request: CaptureRequest) -> None:
    if request.wait_for_selector:
        selector = request.wait_for_selector
        try:
            await page.wait_for_selector(selector, timeout=STAGE_TIMEOUT_MS)
        except PlaywrightTimeoutError as e:
            raise SelectorTimeout(
                f"Selector {selector!r} not found within {STAGE_TIMEOUT_MS}ms"
            ) from e
        except Exception as e:
            raise ReadinessFailure(f"Waiting for selector {selector!r} failed: {e}") from e
        logger.debug(f"Selector ready: {selector}")

    if request.wait_for_function:
        expression = request.wait_for_function
        try:
            await page.wait_for_function(expression, timeout=STAGE_TIMEOUT_MS)
        except PlaywrightTimeoutError as e:
            raise PredicateTimeout(
                f"Expression {expression!r} not truthy within {STAGE_TIMEOUT_MS}ms"
            ) from e
        except Exception as e:
            raise ReadinessFailure(f"Waiting for expression {expression!r} failed: {e}") from e
        logger.debug(f"Expression ready: {expression}")

    if request.wait_for_timeout > 0:
        logger.debug(f"Settling for {request.wait_for_timeout}ms")
        await asyncio.sleep(request.wait_for_timeout / 1000)


async def _take_screenshot(page, request: CaptureRequest) -> CaptureResult:
    options = {
        "type": IMAGE_TYPE,
        "quality": request.quality,
        "full_page": request.full_page,
    }
    if request.clip:
        options["clip"] = request.clip
    try:
        buffer = await page.screenshot(**options)
    except Exception as e:
        raise EncodingFailure(f"Screenshot failed: {e}") from e

    verify_jpeg(buffer)
    return CaptureResult(buffer=buffer, content_type=CONTENT_TYPE)


def verify_jpeg(buffer: bytes) -> None:
    """Raise EncodingFailure unless ``buffer`` decodes as a JPEG image."""
    if not buffer:
        raise EncodingFailure("Screenshot returned an empty buffer")
    try:
        with Image.open(io.BytesIO(buffer)) as img:
            fmt = img.format
            img.verify()
    except Exception as e:
        raise EncodingFailure(f"Screenshot is not a valid image: {e}") from e
    if fmt != "JPEG":
        raise EncodingFailure(f"Expected JPEG output, got {fmt}")
