import platform
import sys
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

from focuswarden.model.models import InterventionKind
from focuswarden.watchers.logger import logger

if sys.platform == "win32":
    import winsound

    from win10toast import ToastNotifier  # type: ignore[import-untyped, unused-ignore]

APP_TITLE = "Productivity Agent"
BEEP_FREQUENCY_HZ = 1000
BEEP_DURATION_MS = 200
BEEP_COUNT = 5


class NotificationLevel(Enum):
    """Notification severity levels used by the service."""

    INFO = "info"
    WARNING = "warning"
    URGENT = "urgent"


@dataclass
class NotificationConfig:
    """Configuration for :class:`NotificationService`."""

    sound: bool = False
    toast_duration: int = 5


class NotificationService:
    """Desktop popups and alarm beeps, with history tracking.

    Popups and sound are only delivered on Windows; elsewhere the
    notification is recorded and reported as not delivered.
    """

    def __init__(self, config: NotificationConfig | None = None) -> None:
        self.platform = platform.system()
        self.config = config or NotificationConfig()
        self._history: list[dict[str, Any]] = []

    def notify(
        self,
        title: str,
        message: str,
        level: NotificationLevel = NotificationLevel.INFO,
        *,
        sound: bool | None = None,
    ) -> bool:
        """Display a notification and record it. Returns True if delivered."""
        sound = self.config.sound if sound is None else sound

        delivered = False
        if self.platform == "Windows":
            if sound:
                self._play_sound()
            delivered = self._send_toast(title, message)
        self._history.append(
            {
                "title": title,
                "message": message,
                "level": level.value,
                "sound": sound,
                "timestamp": time.time(),
                "delivered": delivered,
            },
        )
        return delivered

    def _send_toast(self, title: str, message: str) -> bool:
        try:
            notifier = ToastNotifier()
            return bool(
                notifier.show_toast(  # pyright: ignore[reportUnknownMemberType]
                    title,
                    message,
                    duration=self.config.toast_duration,
                    threaded=True,
                ),
            )
        except Exception as e:  # noqa: BLE001
            logger.warning("Could not show notification: %s", e)
            return False

    def _play_sound(self) -> None:
        try:
            for _ in range(BEEP_COUNT):
                winsound.Beep(BEEP_FREQUENCY_HZ, BEEP_DURATION_MS)
        except RuntimeError as e:
            logger.warning("Could not play sound: %s", e)

    # ------------------------------------------------------------------
    # Query helpers
    def get_capabilities(self) -> dict[str, Any]:
        return {
            "platform": self.platform,
            "supports_toast": self.platform == "Windows",
            "supports_sound": self.platform == "Windows",
        }

    def get_notification_history(self) -> list[dict[str, Any]]:
        """Return a copy of the notification history."""
        return list(self._history)


class InterventionExecutor:
    """Turns an intervention kind into something the user notices."""

    def __init__(
        self,
        service: NotificationService | None = None,
        *,
        sound_enabled: bool = True,
    ) -> None:
        self.service = service or NotificationService()
        self.sound_enabled = sound_enabled

    def execute(self, kind: InterventionKind | str, message: str) -> None:
        kind = InterventionKind(kind)
        if kind is InterventionKind.ALARM:
            self.trigger_alarm(message)
        elif kind is InterventionKind.NOTIFICATION:
            self.trigger_notification(message)
        elif kind is InterventionKind.GENTLE_REMINDER:
            self.trigger_gentle_reminder(message)

    def trigger_alarm(self, message: str) -> None:
        logger.warning("ALARM: %s", message)
        self._notify(
            f"{APP_TITLE} - Focus!",
            message,
            NotificationLevel.URGENT,
            sound=self.sound_enabled,
        )

    def trigger_notification(self, message: str) -> None:
        logger.warning("NOTIFICATION: %s", message)
        self._notify(APP_TITLE, message, NotificationLevel.WARNING, sound=False)

    def trigger_gentle_reminder(self, message: str) -> None:
        logger.info("Gentle reminder: %s", message)

    def _notify(self, title: str, message: str, level: NotificationLevel, *, sound: bool) -> None:
        try:
            self.service.notify(title, message, level, sound=sound)
        except Exception:
            logger.exception("Notification delivery failed")
