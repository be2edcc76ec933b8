#!/usr/bin/env python3
"""
Browser Setup - one short-lived Chromium session per capture.

A session owns the Playwright driver, the browser process and the single
context/page opened in it. It is never reused; close() tears all of it down.

Usage:
    session = await BrowserSession.start(width=1200, height=630)
    try:
        page = await session.new_page(timezone="Europe/Warsaw")
        ...
    finally:
        await session.close()
"""
import logging
from typing import Any, Dict, Optional

from .config import BrowserConfig
from .errors import SessionStartFailure

logger = logging.getLogger(__name__)


class BrowserSession:
    def __init__(self, playwright, browser, width: int, height: int):
        self.playwright = playwright
        self.browser = browser
        self.width = width
        self.height = height
        self.context = None
        self._closed = False

    @classmethod
    async def start(
        cls,
        width: int,
        height: int,
        browser_config: Optional[BrowserConfig] = None,
    ) -> 'BrowserSession':
        """
        Launch a new headless Chromium.

        Raises:
            SessionStartFailure: driver or browser could not be started
        """
        from playwright.async_api import async_playwright

        browser_config = browser_config or BrowserConfig.from_env()
        launch_args: Dict[str, Any] = {
            "headless": bool(browser_config.headless),
            "args": list(browser_config.args),
        }
        if browser_config.executable_path:
            launch_args["executable_path"] = browser_config.executable_path

        playwright = None
        try:
            playwright = await async_playwright().start()
            browser = await playwright.chromium.launch(**launch_args)
        except Exception as e:
            if playwright is not None:
                try:
                    await playwright.stop()
                except Exception as stop_error:
                    logger.warning(f"Failed to stop playwright after launch error: {stop_error}")
            raise SessionStartFailure(f"Failed to launch browser: {e}") from e

        logger.debug(f"Browser launched ({width}x{height}, headless={launch_args['headless']})")
        return cls(playwright, browser, width, height)

    async def new_page(self, timezone: Optional[str] = None):
        """Open the session's page in a fresh context with the fixed viewport."""
        context_args: Dict[str, Any] = {
            "viewport": {"width": self.width, "height": self.height},
        }
        if timezone:
            context_args["timezone_id"] = timezone
        self.context = await self.browser.new_context(**context_args)
        return await self.context.new_page()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self.browser.close()
        finally:
            await self.playwright.stop()
        logger.debug("Browser closed")

    async def __aenter__(self) -> 'BrowserSession':
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
