#!/usr/bin/env python3
"""Classify the current screen once, optionally after a delay to switch windows."""

from __future__ import annotations

import argparse

from utils import echo_logs_to_console, error, info

from focuswarden.config import load_local_env
from focuswarden.services.llm import create_llm_service
from focuswarden.services.screen import ScreenClassifier


def main() -> int:
    parser = argparse.ArgumentParser(description="One-shot screen analysis")
    parser.add_argument("--delay", type=float, default=0, help="seconds to wait before the screenshot")
    args = parser.parse_args()

    echo_logs_to_console()
    load_local_env()
    try:
        llm = create_llm_service()
    except RuntimeError as e:
        error(str(e))
        return 1

    result = ScreenClassifier(llm).classify(delay_seconds=args.delay)
    info(f"Off task:   {'YES' if result.is_off_task else 'NO'}")
    info(f"Confidence: {result.confidence}%")
    info(f"Reason:     {result.reason}")
    info(f"Suggestion: {result.suggested_action}")
    if result.failed:
        error(f"Analysis failed ({result.error})")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
