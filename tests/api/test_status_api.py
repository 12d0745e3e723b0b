from datetime import datetime
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from focuswarden.api.main import create_app
from focuswarden.config import MonitorConfig
from focuswarden.detector import AgentDetector
from focuswarden.services.agent import ProductivityAgent
from focuswarden.services.memory import MemorySystem
from focuswarden.ui.notifications import InterventionExecutor
from focuswarden.watchers.activity import ActivityMonitor


def build_detector(tmp_path, mock_llm, clock, *, enable_memory=True):
    config = MonitorConfig(
        enable_ai_analysis=False,
        enable_memory=enable_memory,
        memory_path=str(tmp_path / "memory.json"),
    )
    detector = AgentDetector(
        config,
        ProductivityAgent(mock_llm, clock=clock),
        activity_monitor=ActivityMonitor(5, Mock(), Mock(), idle_ms_source=lambda: 2_000),
        memory=MemorySystem(config.memory_path, clock=clock),
        executor=Mock(spec=InterventionExecutor),
        clock=clock,
        now=lambda: datetime(2026, 10, 18, 9, 30),
    )
    detector.initialize()
    return detector


class TestStatusAPI:
    """Read-only status endpoints."""

    @pytest.fixture
    def detector(self, tmp_path, mock_llm, clock):
        return build_detector(tmp_path, mock_llm, clock)

    @pytest.fixture
    def client(self, detector):
        return TestClient(create_app(detector))

    def test_status(self, client):
        response = client.get("/status")

        assert response.status_code == 200
        body = response.json()
        assert body["mode"] == "agent"
        assert body["idle_seconds"] == 2
        assert body["user_idle"] is False
        assert body["session_open"] is True
        assert body["config"]["enable_ai_analysis"] is False

    def test_interventions_empty(self, client):
        body = client.get("/interventions").json()

        assert body == {"count": 0, "max_size": 10, "interventions": []}

    def test_interventions_after_cycle(self, client, detector, mock_llm, make_decision_json):
        mock_llm.run_task.return_value = make_decision_json(kind="alarm", message="Focus!")
        detector.run_agent_check()

        body = client.get("/interventions").json()

        assert body["count"] == 1
        assert body["interventions"][0]["type"] == "alarm"
        assert body["interventions"][0]["message"] == "Focus!"
        assert body["interventions"][0]["wasEffective"] is None

    def test_profile(self, client):
        body = client.get("/profile").json()

        assert body["profile"]["interventionEffectivenessRate"] == 0.5
        assert body["profile"]["totalSessions"] == 0
        assert body["top_productive_hours"] == []
        assert body["insights"].startswith("No sessions recorded yet")

    def test_profile_without_memory(self, tmp_path, mock_llm, clock):
        detector = build_detector(tmp_path, mock_llm, clock, enable_memory=False)
        client = TestClient(create_app(detector))

        response = client.get("/profile")

        assert response.status_code == 404
        assert response.json()["detail"] == "Memory is disabled"

    def test_monitoring_data(self, client, detector, mock_llm, make_decision_json):
        assert client.get("/api/monitoring_data").json()["last_decision"] is None

        mock_llm.run_task.return_value = make_decision_json(should_intervene=False, kind="none")
        detector.run_agent_check()
        body = client.get("/api/monitoring_data").json()

        assert body["last_decision"]["shouldIntervene"] is False
        assert body["last_decision"]["intervention"]["type"] == "none"
        assert isinstance(body["logs"], list)

    def test_monitoring_page(self, client):
        response = client.get("/monitoring")

        assert response.status_code == 200
        assert "focuswarden monitor" in response.text
