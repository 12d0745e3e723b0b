import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

REPO_ROOT = Path(__file__).resolve().parent.parent
ENV_PREFIX = "FOCUSWARDEN_"
_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


class ConfigError(ValueError):
    """Invalid configuration; fatal at startup."""


@dataclass
class MonitorConfig:
    """Runtime settings for the detector."""

    idle_threshold_seconds: int = 5
    check_interval_seconds: float = 10.0
    enable_ai_analysis: bool = True
    sound_enabled: bool = True
    enable_memory: bool = True
    # resuming within this many seconds counts as an effective intervention
    effective_resume_seconds: float = 60.0
    max_history_size: int = 10
    memory_path: str = "./procrastination_memory.json"
    status_port: int | None = None

    def __post_init__(self) -> None:
        if self.idle_threshold_seconds < 1:
            msg = "idle_threshold_seconds must be at least 1"
            raise ConfigError(msg)
        if self.check_interval_seconds <= 0:
            msg = "check_interval_seconds must be positive"
            raise ConfigError(msg)
        if self.effective_resume_seconds <= 0:
            msg = "effective_resume_seconds must be positive"
            raise ConfigError(msg)
        if self.max_history_size < 1:
            msg = "max_history_size must be at least 1"
            raise ConfigError(msg)


def load_local_env(path: Path | None = None) -> None:
    """Load .env.local (if present) without overriding the real environment."""
    env_path = path or REPO_ROOT / ".env.local"
    if env_path.exists():
        load_dotenv(dotenv_path=env_path, override=False)


def _get(name: str) -> str | None:
    value = os.getenv(ENV_PREFIX + name)
    return value.strip() if value and value.strip() else None


def _get_int(name: str, default: int) -> int:
    value = _get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as e:
        msg = f"{ENV_PREFIX}{name} must be an integer, got {value!r}"
        raise ConfigError(msg) from e


def _get_float(name: str, default: float) -> float:
    value = _get(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as e:
        msg = f"{ENV_PREFIX}{name} must be a number, got {value!r}"
        raise ConfigError(msg) from e


def _get_bool(name: str, *, default: bool) -> bool:
    value = _get(name)
    if value is None:
        return default
    lowered = value.lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    msg = f"{ENV_PREFIX}{name} must be a boolean, got {value!r}"
    raise ConfigError(msg)


def load_config() -> MonitorConfig:
    """Build :class:`MonitorConfig` from ``FOCUSWARDEN_*`` environment variables."""
    defaults = MonitorConfig()
    port = _get("STATUS_PORT")
    try:
        status_port = int(port) if port else None
    except ValueError as e:
        msg = f"{ENV_PREFIX}STATUS_PORT must be an integer, got {port!r}"
        raise ConfigError(msg) from e
    return MonitorConfig(
        idle_threshold_seconds=_get_int("IDLE_THRESHOLD_SECONDS", defaults.idle_threshold_seconds),
        check_interval_seconds=_get_float("CHECK_INTERVAL_SECONDS", defaults.check_interval_seconds),
        enable_ai_analysis=_get_bool("ENABLE_AI_ANALYSIS", default=defaults.enable_ai_analysis),
        sound_enabled=_get_bool("SOUND_ENABLED", default=defaults.sound_enabled),
        enable_memory=_get_bool("ENABLE_MEMORY", default=defaults.enable_memory),
        effective_resume_seconds=_get_float(
            "EFFECTIVE_RESUME_SECONDS",
            defaults.effective_resume_seconds,
        ),
        max_history_size=_get_int("MAX_HISTORY_SIZE", defaults.max_history_size),
        memory_path=_get("MEMORY_PATH") or defaults.memory_path,
        status_port=status_port,
    )
