import threading
from collections.abc import Callable

from focuswarden.watchers.idle import get_idle_ms
from focuswarden.watchers.logger import logger

Callback = Callable[[], object]


class ActivityMonitor:
    """Polls input idle time and reports idle/active transitions.

    Callbacks are edge-triggered: ``on_idle_detected`` fires once when idle
    time crosses the threshold and ``on_activity_detected`` fires once when
    input resumes. Staying idle does not re-fire anything.
    """

    def __init__(
        self,
        idle_threshold_seconds: int,
        on_idle_detected: Callback,
        on_activity_detected: Callback,
        idle_ms_source: Callable[[], int] = get_idle_ms,
        poll_interval: float = 1.0,
    ) -> None:
        self.idle_threshold_seconds = idle_threshold_seconds
        self.on_idle_detected = on_idle_detected
        self.on_activity_detected = on_activity_detected
        self.idle_ms_source = idle_ms_source
        self.poll_interval = poll_interval

        self._is_idle = False
        self._last_idle_ms = 0
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_idle(self) -> bool:
        return self._is_idle

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def get_idle_time_seconds(self) -> int:
        try:
            idle_ms = int(self.idle_ms_source())
        except Exception:  # noqa: BLE001
            logger.warning("Idle time source failed, assuming active", exc_info=True)
            return 0
        return max(0, idle_ms) // 1000

    def poll(self) -> None:
        """Run one check and fire a callback on a state change."""
        try:
            idle_ms = max(0, int(self.idle_ms_source()))
        except Exception:  # noqa: BLE001
            logger.warning("Idle time source failed, skipping tick", exc_info=True)
            return

        # input since the last poll resets the OS idle counter
        resumed = idle_ms < self._last_idle_ms
        self._last_idle_ms = idle_ms
        idle_seconds = idle_ms // 1000

        if self._is_idle and (resumed or idle_seconds < self.idle_threshold_seconds):
            self._is_idle = False
            self._fire(self.on_activity_detected, "activity")

        if not self._is_idle and idle_seconds >= self.idle_threshold_seconds:
            self._is_idle = True
            logger.info("User idle for %ss", idle_seconds)
            self._fire(self.on_idle_detected, "idle")

    def _fire(self, callback: Callback, name: str) -> None:
        try:
            callback()
        except Exception:
            logger.exception("%s callback failed", name)

    def start(self) -> bool:
        """Start polling in a background thread. Returns False if already running."""
        if self.running:
            return False
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="activity-monitor", daemon=True)
        self._thread.start()
        logger.info("Activity monitor started (threshold %ss)", self.idle_threshold_seconds)
        return True

    def _run(self) -> None:
        while not self._stop_event.is_set():
            self.poll()
            self._stop_event.wait(self.poll_interval)

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=self.poll_interval * 2 + 1)
        self._thread = None
        logger.info("Activity monitor stopped")
