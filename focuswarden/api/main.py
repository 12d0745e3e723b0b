"""Read-only FastAPI app exposing the running detector's state."""

import threading
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.responses import HTMLResponse

from focuswarden.detector import AgentDetector
from focuswarden.watchers.logger import logger, recent_logs


def create_app(detector: AgentDetector) -> FastAPI:
    """Build the status app around a detector instance."""
    app = FastAPI(
        title="focuswarden status",
        description="Intervention history and productivity profile of the running monitor",
    )

    @app.get("/status")
    async def get_status() -> dict[str, Any]:
        """Current monitor state."""
        return detector.status()

    @app.get("/interventions")
    async def get_interventions() -> dict[str, Any]:
        """In-process intervention history, oldest first."""
        history = detector.agent.get_intervention_history()
        return {
            "count": len(history),
            "max_size": detector.agent.max_history_size,
            "interventions": [record.to_dict() for record in history],
        }

    @app.get("/profile")
    async def get_profile() -> dict[str, Any]:
        """Persisted user profile and derived insights."""
        memory = detector.memory
        if memory is None:
            raise HTTPException(status_code=404, detail="Memory is disabled")
        return {
            "profile": memory.get_user_profile().model_dump(by_alias=True),
            "top_productive_hours": memory.get_top_productive_hours(3),
            "top_unproductive_hours": memory.get_top_unproductive_hours(3),
            "insights": memory.get_insights(),
        }

    @app.get("/api/monitoring_data")
    async def get_monitoring_data() -> dict[str, Any]:
        """Latest decision plus recent log lines for the monitoring page."""
        decision = detector.last_decision
        return {
            "last_decision": decision.to_dict() if decision else None,
            "logs": list(recent_logs),
        }

    @app.get("/monitoring", response_class=HTMLResponse)
    async def get_monitoring_page() -> HTMLResponse:
        return HTMLResponse(content=MONITORING_PAGE)

    return app


def serve_in_background(app: FastAPI, port: int, host: str = "127.0.0.1") -> threading.Thread:
    """Run uvicorn in a daemon thread next to the detector."""
    import uvicorn

    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level="warning"))
    thread = threading.Thread(target=server.run, name="status-api", daemon=True)
    thread.start()
    logger.info("Status API listening on http://%s:%s", host, port)
    return thread


MONITORING_PAGE = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>focuswarden monitor</title>
    <style>
        body { font-family: sans-serif; line-height: 1.6; padding: 20px; background-color: #f4f4f4; color: #333; }
        .container { max-width: 1100px; margin: auto; background: #fff; padding: 20px; border-radius: 8px; }
        .grid-container { display: grid; grid-template-columns: 1fr 1fr; gap: 20px; }
        pre { background: #eee; padding: 10px; border-radius: 5px; white-space: pre-wrap; }
        #logs { height: 300px; overflow-y: scroll; border: 1px solid #ddd; padding: 10px; }
    </style>
</head>
<body>
    <div class="container">
        <h1>focuswarden monitor</h1>
        <div class="grid-container">
            <div>
                <h2>Status</h2>
                <pre id="status">No data yet.</pre>
                <h2>Last Decision</h2>
                <pre id="decision">No data yet.</pre>
            </div>
            <div>
                <h2>Interventions</h2>
                <pre id="interventions">No data yet.</pre>
                <h2>Logs</h2>
                <div id="logs"></div>
            </div>
        </div>
    </div>
    <script>
        async function fetchJson(path) {
            const response = await fetch(path);
            return response.json();
        }
        async function refresh() {
            try {
                const [status, interventions, data] = await Promise.all([
                    fetchJson('/status'), fetchJson('/interventions'), fetchJson('/api/monitoring_data'),
                ]);
                document.getElementById('status').textContent = JSON.stringify(status, null, 2);
                document.getElementById('interventions').textContent = JSON.stringify(interventions.interventions, null, 2);
                document.getElementById('decision').textContent = JSON.stringify(data.last_decision, null, 2);
                const logsDiv = document.getElementById('logs');
                logsDiv.innerHTML = data.logs.map(log => `<div>${log}</div>`).join('');
                logsDiv.scrollTop = logsDiv.scrollHeight;
            } catch (error) {
                console.error('Error fetching monitoring data:', error);
            }
        }
        setInterval(refresh, 3000);
        window.onload = refresh;
    </script>
</body>
</html>
"""  # noqa: E501
