# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

import sys
from pathlib import Path

from loguru import logger

__all__ = ["logger", "configure_logging"]

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level> {extra}"
)


def configure_logging(level: str = "INFO", log_dir: str | Path | None = None) -> None:
    """Install the sandbox log sinks.

    Replaces existing sinks with a stderr sink and, when log_dir is given, a
    rotating JSON file sink at ``<log_dir>/app.log``.
    """
    logger.remove()
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)

    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path / "app.log",
            rotation="50 MB",
            retention="10 days",
            serialize=True,
            enqueue=True,
            level=level,
        )
