from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class LoggingConfig(BaseSettings):
    """Configuration for logging."""

    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR
    log_file_path: Optional[Path] = Path("./logs/scenario.log")
    metrics_file_path: Path = Path("./logs/metrics.json")


class RecoveryConfig(BaseSettings):
    """Element recovery settings."""

    max_attempts: int = 5
    pause_seconds: float = 1.0

    @field_validator("max_attempts")
    @classmethod
    def attempts_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_attempts must be at least 1")
        return v


class TimeoutsConfig(BaseSettings):
    """Wait durations, in seconds."""

    default_timeout: float = 10.0
    short_timeout: float = 2.0
    poll_interval: float = 1.0


class ThresholdsConfig(BaseSettings):
    """Per-category failure thresholds for a scenario execution."""

    failures: int = 2
    alerts: int = 10
    retriable_errors: int = 2
    retriable_failures: int = 5
    multiples: int = 2
    browser_errors: int = 2

    @model_validator(mode="after")
    def check_non_negative(self) -> "ThresholdsConfig":
        for name, value in self.model_dump().items():
            if value < 0:
                raise ValueError(f"Threshold '{name}' must not be negative (got {value})")
        return self


class ExecutionConfig(BaseSettings):
    """Controls what happens to the scenario after a failure."""

    stop_on_failure: bool = False
    # Defaults to stop_on_failure when unset
    stop_on_exception: Optional[bool] = None
    pause_between_tests_seconds: float = 0.0
    restart_pause_seconds: float = 2.0

    @model_validator(mode="after")
    def default_stop_on_exception(self) -> "ExecutionConfig":
        if self.stop_on_exception is None:
            self.stop_on_exception = self.stop_on_failure
        return self


class LifecycleConfig(BaseSettings):
    """Circuit breaker settings around browser session restarts."""

    restart_failure_threshold: int = 3
    restart_reset_timeout: int = 60  # seconds


class SynchronizationConfig(BaseSettings):
    """Cross-test dependency synchronization."""

    enabled: bool = False
    timeout: float = 600.0


class DiagnosticsConfig(BaseSettings):
    """Snapshot capture settings."""

    enabled: bool = True
    capture_screenshot: bool = True
    capture_html: bool = True
    output_dir: Path = Path("./logs/snapshots")
    max_artifacts_per_run: int = 50
    pii_mask_patterns: List[str] = []
    # Lowest severity that produces artifacts on disk: info, warning or failure
    min_severity: str = "info"

    @field_validator("min_severity")
    @classmethod
    def severity_must_be_known(cls, v: str) -> str:
        if v.lower() not in ("info", "warning", "failure"):
            raise ValueError("min_severity must be one of: info, warning, failure")
        return v.lower()


class BrowserConfig(BaseSettings):
    """Browser launched by the Playwright driver."""

    browser_type: str = "chromium"  # chromium, firefox, webkit
    headless: bool = True
    navigation_timeout_ms: int = 30000

    @field_validator("browser_type")
    @classmethod
    def browser_must_be_supported(cls, v: str) -> str:
        if v not in ("chromium", "firefox", "webkit"):
            raise ValueError(f"Unsupported browser_type: {v}")
        return v


class AppConfig(BaseSettings):
    """Root configuration for a scenario execution."""

    logging: LoggingConfig = LoggingConfig()
    recovery: RecoveryConfig = RecoveryConfig()
    timeouts: TimeoutsConfig = TimeoutsConfig()
    thresholds: ThresholdsConfig = ThresholdsConfig()
    execution: ExecutionConfig = ExecutionConfig()
    lifecycle: LifecycleConfig = LifecycleConfig()
    synchronization: SynchronizationConfig = SynchronizationConfig()
    diagnostics: DiagnosticsConfig = DiagnosticsConfig()
    browser: BrowserConfig = BrowserConfig()

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        env_file_encoding="utf-8",
        extra="ignore",
    )
