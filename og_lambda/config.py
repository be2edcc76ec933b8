#!/usr/bin/env python3
"""
Configuration for og-lambda.

Three layers:
    BrowserConfig  - how Chromium is launched (executable, args, headless)
    LambdaConfig   - one capture job: event fields merged over env vars
    DeployConfig   - what the deploy commands provision

Values come from the process environment; a local .env file is loaded at
import like the rest of the tooling expects.
"""
from dataclasses import dataclass, field, asdict
import os
from typing import Any, Dict, List, Mapping, Optional

from dotenv import load_dotenv

from .errors import ConfigError
from .models import CaptureRequest

load_dotenv()

DEFAULT_STACK_NAME = "og-lambda"
DEFAULT_S3_KEY = "og-image.jpg"

# Flags for Chromium inside the function sandbox (no /dev/shm, no zygote, single process)
LAMBDA_CHROMIUM_ARGS = [
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--single-process",
    "--no-zygote",
    "--hide-scrollbars",
    "--font-render-hinting=none",
]

LOCAL_CHROMIUM_ARGS = [
    "--no-sandbox",
    "--disable-dev-shm-usage",
]


def _is_set(value: Any) -> bool:
    return value is not None and value != ""


def _to_int(value: Any, name: str) -> Optional[int]:
    if not _is_set(value):
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from e


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    """Integer env var; only an unset or empty value falls back to ``default``."""
    value = _to_int(env.get(name), name)
    return default if value is None else value


def _to_bool(value: Any) -> Optional[bool]:
    if not _is_set(value):
        return None
    if isinstance(value, bool):
        return value
    return str(value).lower() in ["true", "1", "yes"]


@dataclass
class BrowserConfig:
    """How the headless browser is started"""
    executable_path: Optional[str] = None
    headless: bool = True
    args: List[str] = field(default_factory=lambda: list(LOCAL_CHROMIUM_ARGS))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'BrowserConfig':
        env = os.environ if environ is None else environ
        # AWS_LAMBDA_FUNCTION_NAME is set by the function runtime
        on_lambda = bool(env.get("AWS_LAMBDA_FUNCTION_NAME"))
        return cls(
            executable_path=env.get("CHROMIUM_EXECUTABLE_PATH") or None,
            headless=env.get("HEADLESS", "true").lower() in ["true", "1", "yes"],
            args=list(LAMBDA_CHROMIUM_ARGS if on_lambda else LOCAL_CHROMIUM_ARGS),
        )


@dataclass
class LambdaConfig:
    """One capture job: target, destination and capture options"""
    url: str
    s3_bucket: str
    s3_key: str
    width: Optional[int] = None
    height: Optional[int] = None
    wait_for_selector: Optional[str] = None
    wait_for_function: Optional[str] = None
    wait_for_timeout: Optional[int] = None
    quality: Optional[int] = None
    full_page: Optional[bool] = None
    timezone: Optional[str] = None

    def to_capture_request(self) -> CaptureRequest:
        """Build the CaptureRequest; unset options keep the capture defaults."""
        options = {
            "width": self.width,
            "height": self.height,
            "wait_for_selector": self.wait_for_selector,
            "wait_for_function": self.wait_for_function,
            "wait_for_timeout": self.wait_for_timeout,
            "quality": self.quality,
            "full_page": self.full_page,
            "timezone": self.timezone,
        }
        return CaptureRequest(
            url=self.url,
            **{k: v for k, v in options.items() if v is not None},
        )

    @property
    def s3_uri(self) -> str:
        return f"s3://{self.s3_bucket}/{self.s3_key}"


def resolve_capture_config(
    event: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> LambdaConfig:
    """
    Merge an invocation event over environment defaults.

    A non-empty event value wins, otherwise the env var is used. Pure: reads
    nothing but its arguments (``environ`` defaults to os.environ).

    Raises:
        ConfigError: url, bucket or key missing, or a numeric field malformed
    """
    event = event or {}
    env = os.environ if environ is None else environ

    def pick(key: str, env_name: str) -> Any:
        value = event.get(key)
        if _is_set(value):
            return value
        value = env.get(env_name)
        return value if _is_set(value) else None

    url = pick("url", "SCREENSHOT_URL")
    s3_bucket = pick("s3Bucket", "S3_BUCKET")
    s3_key = pick("s3Key", "S3_KEY")

    if not url:
        raise ConfigError("Missing url: provide in event or set SCREENSHOT_URL env var")
    if not s3_bucket:
        raise ConfigError("Missing s3Bucket: provide in event or set S3_BUCKET env var")
    if not s3_key:
        raise ConfigError("Missing s3Key: provide in event or set S3_KEY env var")

    return LambdaConfig(
        url=str(url),
        s3_bucket=str(s3_bucket),
        s3_key=str(s3_key),
        width=_to_int(pick("width", "VIEWPORT_WIDTH"), "width"),
        height=_to_int(pick("height", "VIEWPORT_HEIGHT"), "height"),
        wait_for_selector=pick("waitForSelector", "WAIT_FOR_SELECTOR"),
        wait_for_function=pick("waitForFunction", "WAIT_FOR_FUNCTION"),
        wait_for_timeout=_to_int(pick("waitForTimeout", "WAIT_FOR_TIMEOUT"), "waitForTimeout"),
        quality=_to_int(pick("quality", "SCREENSHOT_QUALITY"), "quality"),
        full_page=_to_bool(pick("fullPage", "FULL_PAGE")),
        timezone=pick("timezone", "TIMEZONE"),
    )


@dataclass
class DeployConfig:
    """Deployment settings for the scheduled screenshot function"""
    stack_name: str = DEFAULT_STACK_NAME
    screenshot_url: Optional[str] = None
    s3_bucket: Optional[str] = None
    s3_key: str = DEFAULT_S3_KEY
    viewport_width: int = 1200
    viewport_height: int = 630
    wait_for_selector: Optional[str] = None
    wait_for_function: Optional[str] = None
    wait_for_timeout: Optional[int] = None
    quality: int = 90
    full_page: bool = False
    timezone: Optional[str] = None
    schedule_rate_minutes: int = 60
    memory_size: int = 2048
    timeout_minutes: int = 2
    runtime: str = "python3.12"
    chromium_layer_arn: Optional[str] = None
    chromium_executable_path: Optional[str] = None
    region: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'DeployConfig':
        """Create config from environment variables"""
        env = os.environ if environ is None else environ
        return cls(
            stack_name=env.get("STACK_NAME") or DEFAULT_STACK_NAME,
            screenshot_url=env.get("SCREENSHOT_URL") or None,
            s3_bucket=env.get("S3_BUCKET") or None,
            s3_key=env.get("S3_KEY") or DEFAULT_S3_KEY,
            viewport_width=_env_int(env, "VIEWPORT_WIDTH", 1200),
            viewport_height=_env_int(env, "VIEWPORT_HEIGHT", 630),
            wait_for_selector=env.get("WAIT_FOR_SELECTOR") or None,
            wait_for_function=env.get("WAIT_FOR_FUNCTION") or None,
            wait_for_timeout=_to_int(env.get("WAIT_FOR_TIMEOUT"), "WAIT_FOR_TIMEOUT"),
            quality=_env_int(env, "SCREENSHOT_QUALITY", 90),
            full_page=bool(_to_bool(env.get("FULL_PAGE"))),
            timezone=env.get("TIMEZONE") or None,
            schedule_rate_minutes=_env_int(env, "SCHEDULE_RATE_MINUTES", 60),
            memory_size=_env_int(env, "LAMBDA_MEMORY_MB", 2048),
            timeout_minutes=_env_int(env, "LAMBDA_TIMEOUT_MINUTES", 2),
            runtime=env.get("LAMBDA_RUNTIME") or "python3.12",
            chromium_layer_arn=env.get("CHROMIUM_LAYER_ARN") or None,
            chromium_executable_path=env.get("CHROMIUM_EXECUTABLE_PATH") or None,
            region=env.get("AWS_REGION") or env.get("AWS_DEFAULT_REGION") or None,
        )

    @property
    def function_name(self) -> str:
        return self.stack_name

    @property
    def rule_name(self) -> str:
        return f"{self.stack_name}-schedule"

    @property
    def role_name(self) -> str:
        return f"{self.stack_name}-role"

    @property
    def log_group(self) -> str:
        return f"/aws/lambda/{self.stack_name}"

    @property
    def schedule_expression(self) -> str:
        n = self.schedule_rate_minutes
        return "rate(1 minute)" if n == 1 else f"rate({n} minutes)"

    def require_target(self) -> None:
        """
        Check the settings a deployment needs.

        Raises:
            ConfigError: target missing, or a value every scheduled run
                would reject (viewport, quality, wait) or AWS would refuse
        """
        if not self.screenshot_url:
            raise ConfigError("SCREENSHOT_URL environment variable is required")
        if not self.s3_bucket:
            raise ConfigError("S3_BUCKET environment variable is required")
        if self.viewport_width <= 0 or self.viewport_height <= 0:
            raise ConfigError(
                f"VIEWPORT_WIDTH and VIEWPORT_HEIGHT must be positive, "
                f"got {self.viewport_width}x{self.viewport_height}"
            )
        if not 0 <= self.quality <= 100:
            raise ConfigError(f"SCREENSHOT_QUALITY must be in [0, 100], got {self.quality}")
        if self.wait_for_timeout is not None and self.wait_for_timeout < 0:
            raise ConfigError(f"WAIT_FOR_TIMEOUT must be >= 0, got {self.wait_for_timeout}")
        if self.schedule_rate_minutes < 1:
            raise ConfigError(f"SCHEDULE_RATE_MINUTES must be >= 1, got {self.schedule_rate_minutes}")

    def function_environment(self) -> Dict[str, str]:
        """Environment variables set on the deployed function."""
        environment = {
            "SCREENSHOT_URL": self.screenshot_url or "",
            "S3_BUCKET": self.s3_bucket or "",
            "S3_KEY": self.s3_key,
            "VIEWPORT_WIDTH": str(self.viewport_width),
            "VIEWPORT_HEIGHT": str(self.viewport_height),
            "SCREENSHOT_QUALITY": str(self.quality),
        }
        if self.wait_for_selector:
            environment["WAIT_FOR_SELECTOR"] = self.wait_for_selector
        if self.wait_for_function:
            environment["WAIT_FOR_FUNCTION"] = self.wait_for_function
        if self.wait_for_timeout:
            environment["WAIT_FOR_TIMEOUT"] = str(self.wait_for_timeout)
        if self.full_page:
            environment["FULL_PAGE"] = "true"
        if self.timezone:
            environment["TIMEZONE"] = self.timezone
        if self.chromium_executable_path:
            environment["CHROMIUM_EXECUTABLE_PATH"] = self.chromium_executable_path
        return environment

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
