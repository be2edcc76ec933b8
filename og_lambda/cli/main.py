#!/usr/bin/env python3
"""og-lambda - Scheduled function for generating og:image screenshots."""
import argparse
import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from og_lambda import bundle, deploy
from og_lambda.config import DeployConfig
from og_lambda.diagnostics import PACKAGE_LOGGER, get_logger
from og_lambda.errors import ConfigError, DeployError

EPILOG = """
Environment Variables:
  SCREENSHOT_URL         URL to screenshot (required for deploy)
  S3_BUCKET              S3 bucket for output (required for deploy)
  S3_KEY                 S3 key/path (default: og-image.jpg)
  STACK_NAME             Resource name prefix (default: og-lambda)
  VIEWPORT_WIDTH         Screenshot width (default: 1200)
  VIEWPORT_HEIGHT        Screenshot height (default: 630)
  WAIT_FOR_SELECTOR      CSS selector to wait for before screenshot
  WAIT_FOR_FUNCTION      JS expression that must return truthy (e.g., "window.chartReady")
  WAIT_FOR_TIMEOUT       Additional ms to wait after conditions are met
  SCHEDULE_RATE_MINUTES  How often to run (default: 60)

Examples:
  SCREENSHOT_URL=https://mysite.com S3_BUCKET=mybucket og-lambda deploy
  og-lambda logs --follow
  og-lambda invoke
"""


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def _print_table(title: str, row: Dict[str, Any]) -> None:
    print(f"{title}:")
    width = max(len(k) for k in row) if row else 0
    for key, value in row.items():
        print(f"  {key.ljust(width)}  {value}")
    print()


def _format_ts(ms: Optional[int]) -> str:
    if ms is None:
        return "-"
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat(timespec="seconds")


def cmd_config(args: argparse.Namespace) -> int:
    _print_json(DeployConfig.from_env().to_dict())
    return 0


def cmd_synth(args: argparse.Namespace) -> int:
    _print_json(deploy.synthesize(DeployConfig.from_env()))
    return 0


def cmd_bundle(args: argparse.Namespace) -> int:
    archive = bundle.build_bundle(python_version=args.python_version)
    print(f"Bundle created at {archive}")
    return 0


def cmd_deploy(args: argparse.Namespace) -> int:
    cfg = DeployConfig.from_env()
    cfg.require_target()
    archive = bundle.build_bundle() if args.rebuild else bundle.ensure_bundle()
    print(f"Deploying {cfg.stack_name}...")
    outputs = deploy.deploy(cfg, archive)
    for key, value in outputs.items():
        print(f"  {key}: {value}")
    return 0


def cmd_destroy(args: argparse.Namespace) -> int:
    cfg = DeployConfig.from_env()
    print(f"Destroying stack: {cfg.stack_name}")
    removed = deploy.destroy(cfg)
    if not removed:
        print("Nothing to remove")
    for item in removed:
        print(f"  removed {item}")
    return 0


def cmd_invoke(args: argparse.Namespace) -> int:
    cfg = DeployConfig.from_env()
    event = json.loads(args.event) if args.event else {}
    print(f"Invoking function: {cfg.function_name}")
    result = deploy.invoke(cfg, event)
    if result["log"]:
        print(result["log"])
    _print_json(result["payload"])
    payload = result["payload"]
    if result["functionError"]:
        return 1
    if isinstance(payload, dict) and payload.get("statusCode", 200) != 200:
        return 1
    return 0


def cmd_logs(args: argparse.Namespace) -> int:
    cfg = DeployConfig.from_env()
    print(f"Tailing logs: {cfg.log_group}")
    try:
        for event in deploy.fetch_logs(cfg, since_minutes=args.since, follow=args.follow):
            print(f"{_format_ts(event.get('timestamp'))} {event.get('message', '').rstrip()}")
    except KeyboardInterrupt:
        pass
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    cfg = DeployConfig.from_env()
    print(f"Stack: {cfg.stack_name}\n")
    info = deploy.status(cfg)
    if info["function"] is None:
        print("Function not found or not deployed")
        return 0
    _print_table("Lambda Function", info["function"])
    if info["rule"]:
        _print_table("Schedule Rule", info["rule"])
    if info["last_log"]:
        _print_table("Last Log Entry", {
            "timestamp": _format_ts(info["last_log"]["timestamp"]),
            "message": info["last_log"]["message"],
        })
    return 0


def cmd_doctor(args: argparse.Namespace) -> int:
    from og_lambda.cli import doctor
    return doctor.main()


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="og-lambda",
        description="og-lambda - Scheduled function for generating og:image screenshots",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = p.add_subparsers(dest="sub")

    p_config = sub.add_parser("config", help="Show resolved deployment configuration")
    p_config.set_defaults(func=cmd_config)

    p_synth = sub.add_parser("synth", help="Print the resources deploy would create")
    p_synth.set_defaults(func=cmd_synth)

    p_bundle = sub.add_parser("bundle", help="Build the function zip")
    p_bundle.add_argument("--python-version", default="3.12", help="Function runtime Python version")
    p_bundle.set_defaults(func=cmd_bundle)

    p_deploy = sub.add_parser("deploy", help="Deploy the function and schedule")
    p_deploy.add_argument("--rebuild", action="store_true", help="Rebuild the bundle even if present")
    p_deploy.set_defaults(func=cmd_deploy)

    p_destroy = sub.add_parser("destroy", help="Remove the function, schedule and role")
    p_destroy.set_defaults(func=cmd_destroy)

    p_invoke = sub.add_parser("invoke", help="Manually invoke the function")
    p_invoke.add_argument("--event", help="JSON event overriding env config, e.g. '{\"url\": \"...\"}'")
    p_invoke.set_defaults(func=cmd_invoke)

    p_logs = sub.add_parser("logs", help="Show function logs")
    p_logs.add_argument("--follow", "-f", action="store_true", help="Keep polling for new entries")
    p_logs.add_argument("--since", type=int, default=10, help="Minutes of history (default: 10)")
    p_logs.set_defaults(func=cmd_logs)

    p_status = sub.add_parser("status", help="Show function status")
    p_status.set_defaults(func=cmd_status)

    p_doctor = sub.add_parser("doctor", help="Check the local installation")
    p_doctor.set_defaults(func=cmd_doctor)

    return p


def main(argv: List[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    get_logger(PACKAGE_LOGGER)
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return 0
    try:
        return int(args.func(args) or 0)
    except (ConfigError, DeployError, RuntimeError, json.JSONDecodeError, BotoCoreError, ClientError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
