"""
Function entry point: capture the configured page and store it in S3.

Triggered by the EventBridge schedule (empty event, everything from env vars)
or by a manual invoke whose event fields override the env vars.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

from .config import resolve_capture_config
from .diagnostics import PACKAGE_LOGGER, get_logger
from .errors import CaptureError
from .screenshots import capture
from .storage import upload_screenshot

# Module loggers under og_lambda.* inherit this handler and level
get_logger(PACKAGE_LOGGER)
logger = logging.getLogger(__name__)


def handler(event: Optional[Dict[str, Any]] = None, context=None) -> Dict[str, Any]:
    """
    Lambda handler function.

    Args:
        event: Scheduled event payload or manual overrides (camelCase keys)
        context: Lambda context object (unused)

    Returns:
        dict: {statusCode, body, s3Uri?}; failures are reported as 500, never raised
    """
    event = event or {}
    logger.info(f"og-lambda: starting screenshot {json.dumps(event, default=str)}")

    try:
        cfg = resolve_capture_config(event)
        logger.info(
            f"og-lambda: config url={cfg.url} s3Bucket={cfg.s3_bucket} "
            f"s3Key={cfg.s3_key} width={cfg.width} height={cfg.height}"
        )

        result = asyncio.run(capture(cfg.to_capture_request()))
        logger.info(f"og-lambda: screenshot taken size={result.size} contentType={result.content_type}")

        s3_uri = upload_screenshot(result, cfg.s3_bucket, cfg.s3_key)
        logger.info(f"og-lambda: uploaded to S3 {s3_uri}")

        return {
            "statusCode": 200,
            "body": json.dumps({
                "message": "Screenshot uploaded successfully",
                "s3Uri": s3_uri,
                "size": result.size,
            }),
            "s3Uri": s3_uri,
        }
    except Exception as e:
        logger.error(f"og-lambda: error {e}", exc_info=True)
        body = {
            "message": "Screenshot failed",
            "error": str(e),
        }
        if isinstance(e, CaptureError):
            body["kind"] = e.kind
        return {
            "statusCode": 500,
            "body": json.dumps(body),
        }
