#!/usr/bin/env python3
"""Installation verification for og-lambda."""

import importlib.metadata
import os
import sys
from pathlib import Path


def print_header(text):
    """Print a formatted header."""
    print(f"\n{'='*70}")
    print(f"  {text}")
    print(f"{'='*70}\n")


def print_check(text):
    """Print a check being performed."""
    print(f"Checking {text}...", end=" ")


def print_ok():
    print("✓ OK")


def print_fail(reason=""):
    print(f"✗ FAIL ({reason})" if reason else "✗ FAIL")


def print_warn(reason=""):
    print(f"⚠ WARNING ({reason})" if reason else "⚠ WARNING")


def check_python_version():
    """Check Python version."""
    print_check("Python version")
    version = sys.version_info
    if version >= (3, 10):
        print_ok()
        print(f"  Python {version.major}.{version.minor}.{version.micro}")
        return True
    print_fail(f"Python 3.10+ required, found {version.major}.{version.minor}")
    return False


def check_dependencies():
    """Check if all dependencies are importable."""
    print_check("Python dependencies")
    required = ["playwright", "PIL", "dotenv", "boto3"]
    missing = []
    for module in required:
        try:
            __import__(module)
        except ImportError:
            missing.append(module)
    if not missing:
        print_ok()
        return True
    print_fail(f"missing: {', '.join(missing)}")
    return False


def check_package_installation():
    """Check if og-lambda is installed as a distribution."""
    print_check("og-lambda package")
    try:
        version = importlib.metadata.version("og-lambda")
        print_ok()
        print(f"  Version: {version}")
        return True
    except importlib.metadata.PackageNotFoundError:
        print_warn("not installed, running from source")
        return True


def check_chromium():
    """Check that Chromium can be located for Playwright."""
    print_check("Chromium")
    custom = os.getenv("CHROMIUM_EXECUTABLE_PATH")
    if custom:
        if Path(custom).exists():
            print_ok()
            print(f"  Using {custom}")
            return True
        print_fail(f"CHROMIUM_EXECUTABLE_PATH does not exist: {custom}")
        return False
    try:
        from playwright.sync_api import sync_playwright
        with sync_playwright() as p:
            path = p.chromium.executable_path
    except Exception as e:
        print_fail(str(e))
        return False
    if Path(path).exists():
        print_ok()
        print(f"  {path}")
        return True
    print_fail("not installed")
    print("  Run: playwright install chromium")
    return False


def check_aws_credentials():
    """Check that AWS credentials resolve (needed for deploy/invoke/logs/status)."""
    print_check("AWS credentials")
    try:
        import boto3
        identity = boto3.client("sts").get_caller_identity()
    except Exception as e:
        print_warn(f"not available: {e}")
        return True
    print_ok()
    print(f"  Account {identity.get('Account')} as {identity.get('Arn')}")
    return True


def check_env_file():
    """Check if .env file exists."""
    print_check(".env configuration")
    if (Path.cwd() / ".env").exists():
        print_ok()
    else:
        print_warn("not found, using process environment only")
    return True


def main():
    """Run all verification checks."""
    print_header("og-lambda Installation Verification")

    checks = [
        ("Python Version", check_python_version, True),
        ("Dependencies", check_dependencies, True),
        ("Package", check_package_installation, False),
        ("Chromium", check_chromium, True),
        ("AWS", check_aws_credentials, False),
        ("Configuration", check_env_file, False),
    ]

    passed = 0
    failed = 0
    for name, check_func, critical in checks:
        try:
            ok = check_func()
        except Exception as e:
            print_fail(f"error: {e}")
            ok = False
        if ok:
            passed += 1
        elif critical:
            failed += 1

    print_header("Summary")
    print(f"Total checks: {len(checks)}")
    print(f"  ✓ Passed:   {passed}")
    if failed:
        print(f"  ✗ Failed:   {failed}")
        print("\n✗ Critical issues found! Please fix the failed checks above.")
        return 1
    print("\n✓ Ready to capture.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
