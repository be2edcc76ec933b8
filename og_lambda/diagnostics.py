import logging
import os
from typing import Dict


# Parent of every module logger in this package
PACKAGE_LOGGER = "og_lambda"

_LOGGER_CACHE: Dict[str, logging.Logger] = {}


def get_logger(name: str) -> logging.Logger:
    """Return a configured logger.

    Respects OG_LAMBDA_DEBUG env var to set DEBUG/INFO level.
    Ensures we don't duplicate handlers across multiple imports.
    """
    lg = _LOGGER_CACHE.get(name)
    if lg:
        return lg
    lg = logging.getLogger(name)
    if not lg.handlers:
        level = logging.DEBUG if str(os.getenv("OG_LAMBDA_DEBUG", "false")).lower() == "true" else logging.INFO
        lg.setLevel(level)
        handler = logging.StreamHandler()
        handler.setLevel(level)
        fmt = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        handler.setFormatter(fmt)
        lg.addHandler(handler)
        lg.propagate = False
    _LOGGER_CACHE[name] = lg
    return lg


def attach_page_diagnostics(page, logger: logging.Logger) -> None:
    """
    Forward the page's console output and uncaught errors to ``logger``.

    Listeners only log; an exception inside one is logged at debug level
    and dropped so it can never reach the capture.
    """
    def on_console(msg):
        try:
            logger.info(f"PAGE LOG [{msg.type}]: {msg.text}")
        except Exception as e:
            logger.debug(f"console listener failed: {e}")

    def on_page_error(error):
        try:
            logger.info(f"PAGE ERROR: {getattr(error, 'message', error)}")
        except Exception as e:
            logger.debug(f"pageerror listener failed: {e}")

    page.on("console", on_console)
    page.on("pageerror", on_page_error)
