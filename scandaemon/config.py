import logging
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SCAN_INTERVAL = 60
MAX_PATTERNS = 32
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class Settings(BaseSettings):
    # Search
    patterns: List[str] = Field(default_factory=list)
    scan_root: str = "/"
    max_patterns: int = MAX_PATTERNS

    # Timing
    scan_interval_seconds: float = Field(DEFAULT_SCAN_INTERVAL, gt=0)
    supervisor_tick_seconds: Optional[float] = Field(None, gt=0)  # None = scan interval

    # Behaviour
    verbose: bool = False
    respawn_exited_workers: bool = False  # Exited workers are only logged by default
    guard_symlink_loops: bool = False  # Follow whatever stat() reports, like the C daemon
    daemonize: bool = True

    # Logging
    log_level: str = "INFO"
    log_file_path: str = "logs/scandaemon.log"
    log_retention_days: int = 30
    syslog_address: str = "/dev/log"
    syslog_ident: str = "scandaemon"

    model_config = SettingsConfigDict(
        env_file="settings.env",
        env_prefix="SCANDAEMON_",
        extra="ignore",
    )

    @field_validator("patterns")
    @classmethod
    def _patterns_non_empty_and_unique(cls, value: List[str]) -> List[str]:
        unique: List[str] = []
        for pattern in value:
            if not pattern:
                raise ValueError("patterns must not be empty strings")
            if pattern not in unique:
                unique.append(pattern)
        return unique

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"unknown log level {value!r} (choose from {', '.join(LOG_LEVELS)})")
        return level

    @model_validator(mode="after")
    def _check_pattern_limit(self) -> "Settings":
        if len(self.patterns) > self.max_patterns:
            raise ValueError(
                f"too many patterns: {len(self.patterns)} (max {self.max_patterns})"
            )
        return self

    @property
    def tick_interval_seconds(self) -> float:
        """Supervisor tick; falls back to the scan interval."""
        return self.supervisor_tick_seconds or self.scan_interval_seconds

    @property
    def effective_log_level(self) -> int:
        if self.verbose:
            return logging.DEBUG
        return logging.getLevelName(self.log_level)

    @property
    def log_directory(self) -> Path:
        """Directory holding the rotating log file."""
        return Path(self.log_file_path).parent
