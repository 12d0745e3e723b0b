#!/usr/bin/env python3
from __future__ import annotations

import logging
import sys
from pathlib import Path

# Minimal, truly shared utilities only.

REPO_ROOT = Path(__file__).resolve().parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


def info(msg: str) -> None:
    sys.stdout.write(f"[INFO] {msg}\n")


def ok(msg: str) -> None:
    sys.stdout.write(f"[OK] {msg}\n")


def warn(msg: str) -> None:
    sys.stdout.write(f"[WARN] {msg}\n")


def error(msg: str) -> None:
    sys.stdout.write(f"[ERROR] {msg}\n")


def echo_logs_to_console(level: int = logging.INFO) -> None:
    """Mirror the package logger on stderr."""
    from focuswarden.watchers.logger import LOG_DATEFMT, LOG_FORMAT, logger

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT))
    logger.addHandler(handler)
