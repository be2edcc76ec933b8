"""Shared fakes for capture tests: a recording page and session."""

import io
import time

import pytest
from PIL import Image

ENV_VARS = [
    "SCREENSHOT_URL", "S3_BUCKET", "S3_KEY", "STACK_NAME",
    "VIEWPORT_WIDTH", "VIEWPORT_HEIGHT", "WAIT_FOR_SELECTOR", "WAIT_FOR_FUNCTION",
    "WAIT_FOR_TIMEOUT", "SCREENSHOT_QUALITY", "FULL_PAGE", "TIMEZONE",
    "SCHEDULE_RATE_MINUTES", "LAMBDA_MEMORY_MB", "LAMBDA_TIMEOUT_MINUTES",
    "LAMBDA_RUNTIME", "CHROMIUM_LAYER_ARN", "CHROMIUM_EXECUTABLE_PATH",
    "AWS_LAMBDA_FUNCTION_NAME", "HEADLESS",
]


def make_jpeg(width=120, height=63, color=(30, 30, 30), fmt="JPEG") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format=fmt)
    return buf.getvalue()


class FakePage:
    """Records every call; ``fail_on`` maps a method name to the exception it raises."""

    def __init__(self, fail_on=None, screenshot_bytes=None):
        self.fail_on = fail_on or {}
        self.screenshot_bytes = make_jpeg() if screenshot_bytes is None else screenshot_bytes
        self.calls = []
        self.listeners = {}

    def on(self, event, callback):
        self.listeners[event] = callback

    async def _record(self, name, *args, **kwargs):
        self.calls.append((name, args, kwargs, time.monotonic()))
        exc = self.fail_on.get(name)
        if exc is not None:
            raise exc

    async def emulate_media(self, **kwargs):
        await self._record("emulate_media", **kwargs)

    async def goto(self, url, **kwargs):
        await self._record("goto", url, **kwargs)

    async def wait_for_selector(self, selector, **kwargs):
        await self._record("wait_for_selector", selector, **kwargs)

    async def wait_for_function(self, expression, **kwargs):
        await self._record("wait_for_function", expression, **kwargs)

    async def screenshot(self, **kwargs):
        await self._record("screenshot", **kwargs)
        return self.screenshot_bytes

    def call(self, name):
        for call in self.calls:
            if call[0] == name:
                return call
        return None

    def names(self):
        return [c[0] for c in self.calls]


class FakeSession:
    def __init__(self, page=None, new_page_error=None, close_error=None):
        self.page = page or FakePage()
        self.new_page_error = new_page_error
        self.close_error = close_error
        self.timezone = None
        self.close_calls = 0

    async def new_page(self, timezone=None):
        self.timezone = timezone
        if self.new_page_error is not None:
            raise self.new_page_error
        return self.page

    async def close(self):
        self.close_calls += 1
        if self.close_error is not None:
            raise self.close_error


def factory_for(session):
    async def factory(request):
        return session
    return factory


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every og-lambda variable from the process environment."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch
