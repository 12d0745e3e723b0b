#!/usr/bin/env python3
"""Run the productivity monitor in the foreground (Ctrl+C to stop)."""

from __future__ import annotations

import argparse
import signal
import sys
from types import FrameType

from utils import echo_logs_to_console, error, info, ok, warn

from focuswarden.config import ConfigError, load_config, load_local_env
from focuswarden.detector import AgentDetector, SimpleDetector
from focuswarden.services.agent import ProductivityAgent
from focuswarden.services.llm import create_llm_service
from focuswarden.services.memory import MemorySystem
from focuswarden.services.screen import ScreenClassifier
from focuswarden.ui.notifications import InterventionExecutor, NotificationConfig, NotificationService


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="focuswarden productivity monitor")
    parser.add_argument(
        "--mode",
        choices=["agent", "simple"],
        default="agent",
        help="agent: the model picks interventions; simple: fixed idle/off-task alarms",
    )
    return parser


def main() -> int:
    args = build_parser().parse_args()
    echo_logs_to_console()
    load_local_env()

    try:
        config = load_config()
        llm = create_llm_service()
    except (ConfigError, RuntimeError) as e:
        error(str(e))
        return 1

    if not llm.is_available():
        warn(f"LLM server not reachable at {llm.base_url}; decisions will fail closed until it is")

    executor = InterventionExecutor(
        NotificationService(NotificationConfig(sound=config.sound_enabled)),
        sound_enabled=config.sound_enabled,
    )
    classifier = ScreenClassifier(llm) if config.enable_ai_analysis else None

    detector: AgentDetector | SimpleDetector
    if args.mode == "simple":
        detector = SimpleDetector(config, screen_classifier=classifier, executor=executor)
    else:
        agent = ProductivityAgent(llm, max_history_size=config.max_history_size)
        memory = MemorySystem(config.memory_path) if config.enable_memory else None
        detector = AgentDetector(
            config,
            agent,
            screen_classifier=classifier,
            memory=memory,
            executor=executor,
        )
        try:
            detector.initialize()
        except OSError as e:
            error(f"Initialization failed: {e}")
            error("Check you have write permission for the memory file location")
            return 1
        if config.status_port:
            from focuswarden.api.main import create_app, serve_in_background

            serve_in_background(create_app(detector), config.status_port)

    def handle_sigint(_signum: int, _frame: FrameType | None) -> None:
        info("Ctrl+C detected - stopping...")
        detector.stop()

    signal.signal(signal.SIGINT, handle_sigint)

    sys.stdout.write("=" * 60 + "\n")
    sys.stdout.write(f" focuswarden started ({args.mode} mode)\n")
    sys.stdout.write("=" * 60 + "\n")
    info(f"Idle threshold: {config.idle_threshold_seconds}s")
    info(f"Check interval: {config.check_interval_seconds}s")
    info(f"AI screen analysis: {'ON' if config.enable_ai_analysis else 'OFF'}")
    info(f"Memory & learning: {'ON' if config.enable_memory else 'OFF'}")
    info(f"Sound alerts: {'ON' if config.sound_enabled else 'OFF'}")

    detector.start()
    detector.run_forever()
    ok("Shutdown complete")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
