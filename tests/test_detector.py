import threading
import time
from datetime import datetime
from unittest.mock import Mock

import pytest

from focuswarden.config import MonitorConfig
from focuswarden.detector import AgentDetector, SimpleDetector, _PeriodicDetector
from focuswarden.model.models import InterventionKind, ScreenClassification
from focuswarden.services.agent import ProductivityAgent
from focuswarden.services.llm import LLMError
from focuswarden.services.memory import MemorySaveError, MemorySystem
from focuswarden.services.screen import ScreenClassifier
from focuswarden.ui.notifications import InterventionExecutor
from focuswarden.watchers.activity import ActivityMonitor


class ScriptedIdle:
    def __init__(self) -> None:
        self.idle_ms = 0

    def __call__(self) -> int:
        return self.idle_ms


@pytest.fixture
def config(tmp_path):
    return MonitorConfig(
        idle_threshold_seconds=5,
        check_interval_seconds=0.05,
        memory_path=str(tmp_path / "memory.json"),
    )


@pytest.fixture
def idle_source():
    return ScriptedIdle()


@pytest.fixture
def activity_monitor(idle_source):
    return ActivityMonitor(5, Mock(), Mock(), idle_ms_source=idle_source, poll_interval=0.01)


@pytest.fixture
def screen_classifier():
    classifier = Mock(spec=ScreenClassifier)
    classifier.classify.return_value = ScreenClassification(
        is_off_task=True,
        confidence=88,
        reason="Scrolling a video feed",
        suggested_action="Close it",
    )
    return classifier


@pytest.fixture
def executor():
    return Mock(spec=InterventionExecutor)


@pytest.fixture
def memory(config, clock):
    return MemorySystem(config.memory_path, clock=clock)


@pytest.fixture
def agent(mock_llm, clock):
    return ProductivityAgent(mock_llm, clock=clock)


@pytest.fixture
def detector(config, agent, activity_monitor, screen_classifier, memory, executor, clock):
    detector = AgentDetector(
        config,
        agent,
        activity_monitor=activity_monitor,
        screen_classifier=screen_classifier,
        memory=memory,
        executor=executor,
        clock=clock,
        now=lambda: datetime(2026, 10, 18, 14, 7),
    )
    detector.initialize()
    return detector


class TestAgentDetector:
    """Decision cycle orchestration tests."""

    def test_callbacks_are_wired_to_detector(self, detector, activity_monitor):
        assert activity_monitor.on_idle_detected == detector.handle_idle_detected
        assert activity_monitor.on_activity_detected == detector.handle_activity_detected

    def test_cold_start_cycle(self, config, agent, activity_monitor, executor, mock_llm):
        config.enable_ai_analysis = False
        config.enable_memory = False
        detector = AgentDetector(config, agent, activity_monitor=activity_monitor, executor=executor)
        mock_llm.run_task.side_effect = LLMError("down")

        decision = detector.run_agent_check()

        assert decision is not None
        assert decision.should_intervene is False
        assert decision.intervention.kind is InterventionKind.NONE
        assert detector.last_context.idle_time_seconds == 0
        assert detector.last_context.screen_classification is None
        assert detector.last_context.recent_interventions == ()
        executor.execute.assert_not_called()

    def test_context_assembly(self, detector, idle_source, mock_llm, make_decision_json):
        idle_source.idle_ms = 42_000
        mock_llm.run_task.return_value = make_decision_json(should_intervene=False, kind="none")

        detector.run_agent_check()

        context = detector.last_context
        assert context.idle_time_seconds == 42
        assert context.time_of_day == "14:07"
        assert context.screen_classification.reason == "Scrolling a video feed"
        assert context.current_activity == "Scrolling a video feed"
        assert context.user_goal_hints[0] == "Maintain 50% intervention effectiveness"

    def test_intervention_executes_and_is_recorded(
        self, detector, mock_llm, executor, memory, make_decision_json
    ):
        mock_llm.run_task.return_value = make_decision_json(kind="alarm", message="Back to work!")

        decision = detector.run_agent_check()

        assert decision.should_intervene is True
        executor.execute.assert_called_once_with(InterventionKind.ALARM, "Back to work!")
        assert memory.current_session.interventions_count == 1
        assert memory.get_user_profile().total_interventions == 1
        assert len(detector.agent.get_intervention_history()) == 1

    def test_next_cycle_sees_previous_intervention(self, detector, mock_llm, make_decision_json):
        mock_llm.run_task.return_value = make_decision_json(kind="notification")
        detector.run_agent_check()
        detector.run_agent_check()

        assert len(detector.last_context.recent_interventions) == 1
        assert "1. notification (0s ago) - ? Unknown" in mock_llm.run_task.call_args.args[0]

    def test_no_intervention_does_not_execute(self, detector, mock_llm, executor, make_decision_json):
        mock_llm.run_task.return_value = make_decision_json(should_intervene=False, kind="none")

        detector.run_agent_check()

        executor.execute.assert_not_called()

    def test_overlapping_tick_is_skipped(self, detector, mock_llm, make_decision_json):
        entered = threading.Event()
        release = threading.Event()

        def slow_backend(prompt):
            entered.set()
            release.wait(2)
            return make_decision_json(should_intervene=False, kind="none")

        mock_llm.run_task.side_effect = slow_backend
        worker = threading.Thread(target=detector.run_agent_check)
        worker.start()
        assert entered.wait(2)

        assert detector.run_agent_check() is None

        release.set()
        worker.join(2)
        assert mock_llm.run_task.call_count == 1

    def test_cycle_failure_is_contained(self, detector, screen_classifier, mock_llm):
        screen_classifier.classify.side_effect = RuntimeError("unexpected")
        mock_llm.run_task.return_value = "{}"

        assert detector.run_agent_check() is None
        # the loop can keep going
        screen_classifier.classify.side_effect = None
        assert detector.run_agent_check() is not None

    def test_quick_resume_is_effective(self, detector, mock_llm, memory, clock, make_decision_json):
        mock_llm.run_task.return_value = make_decision_json()
        detector.run_agent_check()
        clock.advance(20)

        detector.handle_activity_detected()

        assert detector.agent.get_intervention_history()[-1].was_effective is True
        assert memory.get_user_profile().intervention_effectiveness_rate == pytest.approx(0.6)

    def test_slow_resume_is_not_effective(self, detector, mock_llm, memory, clock, make_decision_json):
        mock_llm.run_task.return_value = make_decision_json()
        detector.run_agent_check()
        clock.advance(61)

        detector.handle_activity_detected()

        assert detector.agent.get_intervention_history()[-1].was_effective is False
        assert memory.get_user_profile().intervention_effectiveness_rate == pytest.approx(0.4)

    def test_resume_threshold_is_configurable(
        self, detector, config, mock_llm, clock, make_decision_json
    ):
        config.effective_resume_seconds = 120
        mock_llm.run_task.return_value = make_decision_json()
        detector.run_agent_check()
        clock.advance(90)

        detector.handle_activity_detected()

        assert detector.agent.get_intervention_history()[-1].was_effective is True

    def test_resume_recorded_once(self, detector, mock_llm, memory, clock, make_decision_json):
        mock_llm.run_task.return_value = make_decision_json()
        detector.run_agent_check()
        clock.advance(5)

        detector.handle_activity_detected()
        detector.handle_activity_detected()

        assert memory.get_user_profile().intervention_effectiveness_rate == pytest.approx(0.6)

    def test_resume_time_taken_before_waiting_for_cycle(
        self, detector, mock_llm, clock, make_decision_json
    ):
        mock_llm.run_task.return_value = make_decision_json()
        detector.run_agent_check()
        clock.advance(10)

        clock_read = threading.Event()

        def watched_clock():
            value = clock()
            clock_read.set()
            return value

        detector.clock = watched_clock
        detector._cycle_lock.acquire()
        worker = threading.Thread(target=detector.handle_activity_detected)
        worker.start()
        try:
            assert clock_read.wait(2)
            # a slow in-flight cycle pushes the wall clock past the threshold
            clock.advance(120)
        finally:
            detector._cycle_lock.release()
        worker.join(2)

        assert detector.agent.get_intervention_history()[-1].was_effective is True

    def test_resume_without_intervention_records_nothing(self, detector, memory):
        detector.handle_activity_detected()

        assert memory.get_user_profile().intervention_effectiveness_rate == 0.5

    def test_idle_edge_through_monitor_then_resume(
        self, detector, activity_monitor, idle_source, mock_llm, clock, make_decision_json
    ):
        mock_llm.run_task.return_value = make_decision_json()
        idle_source.idle_ms = 8_000
        activity_monitor.poll()
        detector.run_agent_check()
        clock.advance(10)
        idle_source.idle_ms = 0
        activity_monitor.poll()

        assert detector.agent.get_intervention_history()[-1].was_effective is True

    def test_stop_closes_session_and_reports(self, detector, memory, mock_llm, make_decision_json):
        mock_llm.run_task.return_value = make_decision_json()
        for _ in range(3):
            detector.run_agent_check()
        mock_llm.run_task.return_value = "Alarms work best after lunch."

        report = detector.stop()

        assert memory.current_session is None
        assert len(memory.sessions) == 1
        assert memory.sessions[0].activity_summary == "Session ended by user"
        assert memory.sessions[0].was_productive is True
        assert "Total Sessions: 1" in report
        assert "Alarms work best after lunch." in report

    def test_stop_continues_after_failures(self, detector, memory, mock_llm):
        memory.end_session = Mock(side_effect=MemorySaveError("disk full"))
        memory.save = Mock(side_effect=MemorySaveError("disk full"))
        detector.agent.analyze_productivity_patterns = Mock(return_value="analysis")

        report = detector.stop()

        memory.end_session.assert_called_once()
        memory.save.assert_called_once()
        detector.agent.analyze_productivity_patterns.assert_called_once()
        assert "analysis" in report

    def test_stop_is_idempotent(self, detector):
        detector.stop()
        assert detector.stop() == ""

    def test_start_runs_periodic_checks(self, detector, mock_llm, make_decision_json):
        mock_llm.run_task.return_value = make_decision_json(should_intervene=False, kind="none")
        detector.start()
        try:
            deadline = time.monotonic() + 2
            while mock_llm.run_task.call_count < 2 and time.monotonic() < deadline:
                time.sleep(0.01)
        finally:
            detector.stop()

        assert mock_llm.run_task.call_count >= 2
        assert detector.running is False

    def test_start_survives_monitor_failure(self, detector, activity_monitor, mock_llm):
        activity_monitor.start = Mock(side_effect=OSError("no input hooks"))
        mock_llm.run_task.return_value = "{}"

        detector.start()
        detector.stop()

        activity_monitor.start.assert_called_once()

    def test_status(self, detector):
        status = detector.status()

        assert status["mode"] == "agent"
        assert status["session_open"] is True
        assert status["intervention_pending"] is False
        assert status["config"]["idle_threshold_seconds"] == 5


class TestSimpleDetector:
    """Rule-based mode tests."""

    @pytest.fixture
    def simple(self, config, activity_monitor, screen_classifier, executor):
        return SimpleDetector(
            config,
            activity_monitor=activity_monitor,
            screen_classifier=screen_classifier,
            executor=executor,
        )

    def test_off_task_screen_triggers_alarm(self, simple, executor):
        simple.check_screen()

        executor.execute.assert_called_once()
        assert executor.execute.call_args.args[0] is InterventionKind.ALARM
        assert simple.alarm_active is True

    def test_low_confidence_is_ignored(self, simple, screen_classifier, executor):
        screen_classifier.classify.return_value = ScreenClassification(True, 60, "Maybe", "Hm")

        simple.check_screen()

        executor.execute.assert_not_called()

    def test_idle_alarm_once_until_activity(self, simple, executor):
        simple.handle_idle_detected()
        simple.handle_idle_detected()
        assert executor.execute.call_count == 1

        simple.handle_activity_detected()
        assert simple.alarm_active is False
        simple.handle_idle_detected()
        assert executor.execute.call_count == 2


class TestPeriodicDetectorBase:
    """Detector base class contract."""

    def test_subclass_missing_handlers_cannot_be_built(self, config, activity_monitor):
        class TickOnly(_PeriodicDetector):
            def tick(self):
                return None

        with pytest.raises(TypeError):
            TickOnly(config, activity_monitor)
