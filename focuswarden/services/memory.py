"""Behavioral memory: persisted sessions and the derived user profile."""

import os
import tempfile
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from focuswarden.model.models import MemoryDocument, ProductivitySession, UserProfile
from focuswarden.watchers.logger import logger

DEFAULT_MEMORY_PATH = "./procrastination_memory.json"
MAX_SESSIONS = 100
EMA_ALPHA = 0.2
SECONDS_PER_DAY = 24 * 60 * 60


class MemorySaveError(OSError):
    """Raised when the memory document cannot be written."""


class MemorySystem:
    """Learns the user's productive hours and how well nudges work.

    The whole state (session log + profile) is persisted as one JSON
    document. Loading never fails; saving failures always propagate.
    """

    def __init__(
        self,
        path: str | os.PathLike[str] = DEFAULT_MEMORY_PATH,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.memory_file_path = Path(path)
        self.clock = clock
        self._sessions: list[ProductivitySession] = []
        self._current_session: ProductivitySession | None = None
        self._profile = UserProfile(last_updated=clock())

    # ------------------------------------------------------------------
    # persistence

    def load(self) -> None:
        """Load persisted memory, falling back to a fresh profile."""
        try:
            raw = self.memory_file_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info("No existing memory found at %s, starting fresh", self.memory_file_path)
            self._reset()
            return
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read memory file %s (%s), starting fresh", self.memory_file_path, e)
            self._reset()
            return

        try:
            document = MemoryDocument.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(
                "Memory file %s is corrupt (%d errors), starting fresh",
                self.memory_file_path,
                e.error_count(),
            )
            self._reset()
            return

        self._sessions = document.sessions[-MAX_SESSIONS:]
        self._profile = document.user_profile
        logger.info("Loaded %d sessions from memory", len(self._sessions))

    def _reset(self) -> None:
        self._sessions = []
        self._profile = UserProfile(last_updated=self.clock())

    def save(self) -> None:
        """Atomically write sessions and profile.

        Raises:
            MemorySaveError: if the file could not be written.

        """
        document = MemoryDocument(sessions=self._sessions, user_profile=self._profile)
        data = document.model_dump_json(by_alias=True, indent=2)
        directory = self.memory_file_path.parent
        tmp_name: str | None = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.memory_file_path.name}.",
                suffix=".tmp",
                dir=directory,
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(data)
            os.replace(tmp_name, self.memory_file_path)
            tmp_name = None
        except OSError as e:
            logger.error("Failed to save memory to %s: %s", self.memory_file_path, e)
            msg = f"could not save memory to {self.memory_file_path}: {e}"
            raise MemorySaveError(msg) from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
        logger.info("Memory saved to %s", self.memory_file_path)

    # ------------------------------------------------------------------
    # sessions

    def start_session(self) -> None:
        """Open a new session. An already-open session is discarded (last start wins)."""
        if self._current_session is not None:
            logger.warning("Session already open since %s, replacing it", self._current_session.start_time)
        self._current_session = ProductivitySession(start_time=self.clock())
        logger.info("Started new productivity session")
        self.save()

    def end_session(self, was_productive: bool, summary: str) -> None:  # noqa: FBT001
        """Close the open session, fold it into the profile and persist."""
        session = self._current_session
        if session is None:
            logger.warning("No active session to end")
            return

        session.end_time = self.clock()
        session.was_productive = was_productive
        session.activity_summary = summary

        self._sessions.append(session)
        if len(self._sessions) > MAX_SESSIONS:
            self._sessions = self._sessions[-MAX_SESSIONS:]
        self._update_user_profile(session)
        self._current_session = None

        logger.info("Ended session (%s)", "productive" if was_productive else "unproductive")
        self.save()

    def record_intervention(self) -> None:
        """Count an intervention and persist immediately."""
        if self._current_session is None:
            logger.warning("Intervention recorded with no open session, ignoring")
            return
        self._current_session.interventions_count += 1
        self._profile.total_interventions += 1
        self.save()

    def _update_user_profile(self, session: ProductivitySession) -> None:
        hour = datetime.fromtimestamp(session.start_time).hour
        profile = self._profile
        if session.was_productive:
            profile.productive_sessions += 1
            profile.productive_hours_map[hour] = profile.productive_hours_map.get(hour, 0) + 1
        else:
            profile.unproductive_hours_map[hour] = profile.unproductive_hours_map.get(hour, 0) + 1
        profile.total_sessions += 1
        profile.last_updated = self.clock()

    def update_intervention_effectiveness(self, was_effective: bool) -> float:  # noqa: FBT001
        """Fold one outcome into the effectiveness EMA; persisted at the next save."""
        sample = 1.0 if was_effective else 0.0
        rate = EMA_ALPHA * sample + (1 - EMA_ALPHA) * self._profile.intervention_effectiveness_rate
        self._profile.intervention_effectiveness_rate = rate
        logger.info("Updated effectiveness rate: %.0f%%", rate * 100)
        return rate

    # ------------------------------------------------------------------
    # queries

    @property
    def current_session(self) -> ProductivitySession | None:
        return self._current_session.model_copy() if self._current_session else None

    @property
    def sessions(self) -> list[ProductivitySession]:
        return [s.model_copy() for s in self._sessions]

    def get_user_profile(self) -> UserProfile:
        return self._profile.model_copy(deep=True)

    def get_top_productive_hours(self, n: int = 3) -> list[int]:
        return _top_hours(self._profile.productive_hours_map, n)

    def get_top_unproductive_hours(self, n: int = 3) -> list[int]:
        return _top_hours(self._profile.unproductive_hours_map, n)

    def get_recent_sessions(self, days: int = 7) -> list[ProductivitySession]:
        cutoff = self.clock() - days * SECONDS_PER_DAY
        return [s.model_copy() for s in self._sessions if s.start_time > cutoff]

    def get_insights(self) -> str:
        if not self._sessions:
            return "No sessions recorded yet. Start working to build your productivity profile!"

        profile = self._profile
        if profile.total_sessions > 0:
            productivity_rate = f"{profile.productive_sessions / profile.total_sessions * 100:.1f}"
            avg_interventions = f"{profile.total_interventions / profile.total_sessions:.1f}"
        else:
            productivity_rate = "0"
            avg_interventions = "0"

        top_productive = ", ".join(str(h) for h in self.get_top_productive_hours(3))
        top_unproductive = ", ".join(str(h) for h in self.get_top_unproductive_hours(3))

        return "\n".join(
            [
                "Productivity Insights",
                "---------------------",
                f"Total Sessions: {profile.total_sessions}",
                f"Productive Rate: {productivity_rate}%",
                f"Avg Interventions/Session: {avg_interventions}",
                f"Most Productive Hours: {top_productive or 'Not enough data'}",
                f"Least Productive Hours: {top_unproductive or 'Not enough data'}",
                f"Intervention Effectiveness: {profile.intervention_effectiveness_rate * 100:.0f}%",
            ],
        )


def _top_hours(hours_map: dict[int, int], n: int) -> list[int]:
    """Hours by descending count; ties go to the earlier hour."""
    ranked = sorted(hours_map.items(), key=lambda item: (-item[1], item[0]))
    return [hour for hour, _ in ranked[:n]]
