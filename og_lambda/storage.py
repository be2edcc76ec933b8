"""
S3 sink for captured screenshots.
"""

import logging
from typing import Optional

import boto3

from .models import CaptureResult

logger = logging.getLogger(__name__)

CACHE_CONTROL = "public, max-age=3600"


def upload_screenshot(
    result: CaptureResult,
    bucket: str,
    key: str,
    s3_client=None,
    cache_control: Optional[str] = CACHE_CONTROL,
) -> str:
    """
    Write the screenshot to ``s3://bucket/key``.

    Returns:
        The S3 URI of the stored object
    """
    s3 = s3_client or boto3.client("s3")
    params = {
        "Bucket": bucket,
        "Key": key,
        "Body": result.buffer,
        "ContentType": result.content_type,
    }
    if cache_control:
        params["CacheControl"] = cache_control
    s3.put_object(**params)
    s3_uri = f"s3://{bucket}/{key}"
    logger.debug(f"Stored {result.size} bytes at {s3_uri}")
    return s3_uri


def public_url(bucket: str, key: str) -> str:
    return f"https://{bucket}.s3.amazonaws.com/{key}"
