"""Orchestration: ties idle detection, screen analysis, the decision engine
and the memory store together on a fixed cadence.

Everything runs on two threads (the activity poller and the tick loop); one
lock serializes a full decision cycle against activity callbacks so the
engine history and the memory profile are never touched concurrently.
"""

import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from typing import Any

from focuswarden.config import MonitorConfig
from focuswarden.model.models import (
    AgentDecision,
    DecisionContext,
    InterventionKind,
    ScreenClassification,
    UserProfile,
)
from focuswarden.services.agent import ProductivityAgent
from focuswarden.services.memory import MemorySystem
from focuswarden.services.screen import ScreenClassifier
from focuswarden.ui.notifications import InterventionExecutor
from focuswarden.watchers.activity import ActivityMonitor
from focuswarden.watchers.logger import logger

SIMPLE_MODE_CONFIDENCE_THRESHOLD = 60
SESSION_END_SUMMARY = "Session ended by user"


class _PeriodicDetector(ABC):
    """Owns the activity monitor and a non-overlapping periodic tick."""

    def __init__(
        self,
        config: MonitorConfig,
        activity_monitor: ActivityMonitor | None,
    ) -> None:
        self.config = config
        if activity_monitor is None:
            activity_monitor = ActivityMonitor(
                idle_threshold_seconds=config.idle_threshold_seconds,
                on_idle_detected=self.handle_idle_detected,
                on_activity_detected=self.handle_activity_detected,
            )
        else:
            activity_monitor.on_idle_detected = self.handle_idle_detected
            activity_monitor.on_activity_detected = self.handle_activity_detected
        self.activity_monitor = activity_monitor

        self._cycle_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._tick_thread: threading.Thread | None = None
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._tick_thread is not None and not self._stop_event.is_set()

    @abstractmethod
    def handle_idle_detected(self) -> None: ...

    @abstractmethod
    def handle_activity_detected(self) -> None: ...

    @abstractmethod
    def tick(self) -> object: ...

    def start(self) -> None:
        """Start the activity monitor and the periodic tick (first tick runs now)."""
        try:
            self.activity_monitor.start()
        except Exception:
            # degraded mode: periodic checks still run without idle edges
            logger.exception("Activity monitor failed to start, continuing without it")

        self._stop_event.clear()
        self._tick_thread = threading.Thread(target=self._tick_loop, name="detector-tick", daemon=True)
        self._tick_thread.start()
        logger.info("Checks will run every %ss", self.config.check_interval_seconds)

    def _tick_loop(self) -> None:
        while not self._stop_event.is_set():
            started = time.monotonic()
            try:
                self.tick()
            except Exception:
                logger.exception("Periodic check crashed")
            elapsed = time.monotonic() - started
            self._stop_event.wait(max(0.0, self.config.check_interval_seconds - elapsed))

    def _stop_loops(self) -> None:
        self._stop_event.set()
        thread = self._tick_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.config.check_interval_seconds + 5)
        self._tick_thread = None
        try:
            self.activity_monitor.stop()
        except Exception:
            logger.exception("Failed to stop activity monitor")

    def run_forever(self) -> None:
        """Block until :meth:`stop` is called from another thread or a signal handler."""
        while not self._stopped:
            self._stop_event.wait(1.0)


class AgentDetector(_PeriodicDetector):
    """Agent mode: the reasoning backend chooses every intervention."""

    def __init__(
        self,
        config: MonitorConfig,
        agent: ProductivityAgent,
        *,
        activity_monitor: ActivityMonitor | None = None,
        screen_classifier: ScreenClassifier | None = None,
        memory: MemorySystem | None = None,
        executor: InterventionExecutor | None = None,
        clock: Callable[[], float] = time.time,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        super().__init__(config, activity_monitor)
        self.agent = agent
        self.screen_classifier = screen_classifier if config.enable_ai_analysis else None
        self.memory = memory if config.enable_memory else None
        self.executor = executor or InterventionExecutor(sound_enabled=config.sound_enabled)
        self.clock = clock
        self.now = now

        # issue time of the intervention awaiting an activity-resume verdict
        self._pending_intervention_at: float | None = None
        self.last_decision: AgentDecision | None = None
        self.last_context: DecisionContext | None = None

    def initialize(self) -> None:
        """Load memory and open a session."""
        if self.memory is not None:
            self.memory.load()
            self.memory.start_session()
            logger.info("Memory system initialized")
        logger.info("Agent-based detector ready")

    # ------------------------------------------------------------------
    # decision cycle

    def tick(self) -> AgentDecision | None:
        return self.run_agent_check()

    def run_agent_check(self) -> AgentDecision | None:
        """Run one decision cycle; returns None if another cycle is in flight or it failed."""
        if not self._cycle_lock.acquire(blocking=False):
            logger.info("Previous check still running, skipping this tick")
            return None
        try:
            return self._run_cycle()
        except Exception:
            logger.exception("Agent check failed")
            return None
        finally:
            self._cycle_lock.release()

    def _run_cycle(self) -> AgentDecision:
        context = self.build_context()
        self.last_context = context
        logger.info("Agent analyzing situation: %ss idle, %s", context.idle_time_seconds, context.time_of_day)

        decision = self.agent.decide_intervention(context)
        self.last_decision = decision
        logger.info(
            "Agent decision: intervene=%s type=%s confidence=%s%% reasoning=%s",
            decision.should_intervene,
            decision.intervention.kind.value,
            decision.confidence,
            decision.reasoning,
        )

        if decision.should_intervene and decision.intervention.kind is not InterventionKind.NONE:
            self._pending_intervention_at = decision.intervention.issued_at
            self.executor.execute(decision.intervention.kind, decision.intervention.message)
            if self.memory is not None:
                self.memory.record_intervention()
        return decision

    def build_context(self) -> DecisionContext:
        idle_time_seconds = self.activity_monitor.get_idle_time_seconds()
        now = self.now()
        time_of_day = f"{now.hour}:{now.minute:02d}"

        screen: ScreenClassification | None = None
        if self.screen_classifier is not None:
            screen = self.screen_classifier.classify()

        goals: tuple[str, ...] = ()
        if self.memory is not None:
            goals = tuple(self.build_user_goals(self.memory.get_user_profile()))

        return DecisionContext(
            idle_time_seconds=idle_time_seconds,
            time_of_day=time_of_day,
            screen_classification=screen,
            recent_interventions=tuple(self.agent.get_intervention_history()),
            user_goal_hints=goals,
            current_activity=screen.reason if screen is not None and not screen.failed else "Unknown",
        )

    def build_user_goals(self, profile: UserProfile) -> list[str]:
        goals = [
            f"Maintain {profile.intervention_effectiveness_rate * 100:.0f}% intervention effectiveness",
        ]
        if self.memory is not None:
            productive = self.memory.get_top_productive_hours(3)
            unproductive = self.memory.get_top_unproductive_hours(3)
            if productive:
                goals.append(f"User is most productive at: {', '.join(f'{h}:00' for h in productive)}")
            if unproductive:
                goals.append(f"User struggles most at: {', '.join(f'{h}:00' for h in unproductive)}")
        if profile.total_sessions > 0:
            rate = profile.productive_sessions / profile.total_sessions * 100
            goals.append(
                f"Overall productivity: {rate:.0f}% "
                f"({profile.productive_sessions}/{profile.total_sessions} sessions)",
            )
        return goals

    # ------------------------------------------------------------------
    # activity callbacks

    def handle_idle_detected(self) -> None:
        if self._pending_intervention_at is None:
            logger.info("Idle detected (%ss)", self.activity_monitor.get_idle_time_seconds())

    def handle_activity_detected(self) -> None:
        # read before the lock; an in-flight cycle must not delay the resume time
        resumed_at = self.clock()
        with self._cycle_lock:
            issued_at = self._pending_intervention_at
            if issued_at is None:
                return
            self._pending_intervention_at = None
            time_to_resume = resumed_at - issued_at
            was_effective = time_to_resume < self.config.effective_resume_seconds
            logger.info("Activity resumed %.0fs after intervention", time_to_resume)
            if self.agent.record_intervention_effectiveness(was_effective) and self.memory is not None:
                self.memory.update_intervention_effectiveness(was_effective)

    # ------------------------------------------------------------------
    # shutdown

    def stop(self) -> str:
        """Shut down, closing the session and flushing memory.

        Every step after the loops stop is attempted even if an earlier one
        failed. Returns the final report.
        """
        if self._stopped:
            return ""
        self._stopped = True
        self._stop_loops()

        report: list[str] = []
        # wait for an in-flight cycle before touching memory
        with self._cycle_lock:
            if self.memory is not None:
                try:
                    self.memory.end_session(True, SESSION_END_SUMMARY)  # noqa: FBT003
                except Exception:
                    logger.exception("Failed to end session")
                try:
                    self.memory.save()
                except Exception:
                    logger.exception("Failed to flush memory")
                try:
                    report.append(self.memory.get_insights())
                except Exception:
                    logger.exception("Failed to build insights")
            try:
                analysis = self.agent.analyze_productivity_patterns()
                report.append(f"Agent Productivity Analysis:\n{analysis}")
            except Exception:
                logger.exception("Pattern analysis failed")

        text = "\n\n".join(report)
        if text:
            logger.info("%s", text)
        logger.info("Agent-based detector stopped")
        return text

    def status(self) -> dict[str, Any]:
        session = self.memory.current_session if self.memory is not None else None
        return {
            "running": self.running,
            "mode": "agent",
            "idle_seconds": self.activity_monitor.get_idle_time_seconds(),
            "user_idle": self.activity_monitor.is_idle,
            "intervention_pending": self._pending_intervention_at is not None,
            "session_open": session is not None,
            "session_interventions": session.interventions_count if session else 0,
            "config": {
                "idle_threshold_seconds": self.config.idle_threshold_seconds,
                "check_interval_seconds": self.config.check_interval_seconds,
                "enable_ai_analysis": self.config.enable_ai_analysis,
                "enable_memory": self.config.enable_memory,
                "sound_enabled": self.config.sound_enabled,
            },
        }


class SimpleDetector(_PeriodicDetector):
    """Rule-based mode: alarm on idle, or when the screen looks off task."""

    def __init__(
        self,
        config: MonitorConfig,
        *,
        activity_monitor: ActivityMonitor | None = None,
        screen_classifier: ScreenClassifier | None = None,
        executor: InterventionExecutor | None = None,
    ) -> None:
        super().__init__(config, activity_monitor)
        self.screen_classifier = screen_classifier if config.enable_ai_analysis else None
        self.executor = executor or InterventionExecutor(sound_enabled=config.sound_enabled)
        self.alarm_active = False

    def tick(self) -> ScreenClassification | None:
        return self.check_screen()

    def check_screen(self) -> ScreenClassification | None:
        if self.screen_classifier is None:
            return None
        with self._cycle_lock:
            analysis = self.screen_classifier.classify()
            logger.info(
                "Screen analysis: off_task=%s confidence=%s%% reason=%s",
                analysis.is_off_task,
                analysis.confidence,
                analysis.reason,
            )
            if analysis.is_off_task and analysis.confidence > SIMPLE_MODE_CONFIDENCE_THRESHOLD:
                self._trigger_alarm(analysis.reason)
            return analysis

    def _trigger_alarm(self, reason: str) -> None:
        self.alarm_active = True
        self.executor.execute(InterventionKind.ALARM, f"Get back to work! {reason}")

    def handle_idle_detected(self) -> None:
        with self._cycle_lock:
            if self.alarm_active:
                return
            self._trigger_alarm("No activity detected - you are idle")

    def handle_activity_detected(self) -> None:
        with self._cycle_lock:
            if self.alarm_active:
                self.alarm_active = False
                logger.info("Activity detected - alarm dismissed")

    def stop(self) -> str:
        if self._stopped:
            return ""
        self._stopped = True
        self._stop_loops()
        logger.info("Procrastination detector stopped")
        return ""
