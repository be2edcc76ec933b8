#!/usr/bin/env python3
"""
Bundle the function code for deployment.

Layout of dist/lambda/ (zipped to dist/lambda.zip):
    og_lambda/          this package
    <site-packages>     runtime dependencies, installed for the Lambda platform
    fonts/              copied from the project root when present (emoji support)

boto3 is provided by the function runtime and is not bundled.
"""
import logging
import shutil
import subprocess
import sys
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_OUT_DIR = PROJECT_ROOT / "dist" / "lambda"

RUNTIME_REQUIREMENTS = [
    "playwright",
    "Pillow",
    "python-dotenv",
]

LAMBDA_PLATFORM = "manylinux2014_x86_64"


def pip_install_command(target: Path, python_version: str = "3.12") -> List[str]:
    return [
        sys.executable, "-m", "pip", "install",
        "--quiet",
        "--target", str(target),
        "--platform", LAMBDA_PLATFORM,
        "--implementation", "cp",
        "--python-version", python_version,
        "--only-binary=:all:",
        *RUNTIME_REQUIREMENTS,
    ]


def _dir_size(path: Path) -> int:
    return sum(p.stat().st_size for p in path.rglob("*") if p.is_file())


def build_bundle(
    out_dir: Path = DEFAULT_OUT_DIR,
    python_version: str = "3.12",
    install_deps: bool = True,
    fonts_dir: Optional[Path] = None,
) -> Path:
    """
    Build the deployment zip.

    Args:
        out_dir: Staging directory; removed and recreated
        python_version: Function runtime version the wheels are picked for
        install_deps: Install RUNTIME_REQUIREMENTS into the bundle
        fonts_dir: Extra fonts to ship (default: <project>/fonts)

    Returns:
        Path to the zip archive next to ``out_dir``
    """
    out_dir = Path(out_dir)
    if out_dir.exists():
        shutil.rmtree(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    logger.info("Bundling function code...")
    if install_deps:
        result = subprocess.run(
            pip_install_command(out_dir, python_version),
            capture_output=True,
            text=True,
        )
        if result.returncode != 0:
            raise RuntimeError(f"pip install failed: {result.stderr[-2000:]}")

    shutil.copytree(
        Path(__file__).resolve().parent,
        out_dir / "og_lambda",
        ignore=shutil.ignore_patterns("__pycache__", "*.pyc"),
    )

    fonts = Path(fonts_dir) if fonts_dir else PROJECT_ROOT / "fonts"
    if fonts.exists():
        shutil.copytree(fonts, out_dir / "fonts")
        logger.info(f"Copied fonts to {out_dir / 'fonts'}")

    archive = shutil.make_archive(str(out_dir), "zip", root_dir=out_dir)
    logger.info(f"Bundle size: {_dir_size(out_dir) / 1024 / 1024:.1f} MB unpacked")
    logger.info(f"Bundle created at {archive}")
    return Path(archive)


def ensure_bundle(out_dir: Path = DEFAULT_OUT_DIR) -> Path:
    """Return the existing zip, building it first if missing."""
    archive = Path(f"{out_dir}.zip")
    if archive.exists():
        return archive
    logger.info("Building function bundle...")
    return build_bundle(out_dir)
