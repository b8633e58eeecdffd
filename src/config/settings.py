# src/config/settings.py — v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for all deployment-specific settings: where the TOPP
tools live, where scratch directories go, logging and result storage.
Per-run workflow options live in pipeline.state.WorkflowConfig.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === TOPP tools ===
    tools_directory: Path = Path("~/OpenMS")
    data_path_env_var: str = "OPENMS_DATA_PATH"
    executable_suffix: str = ""

    # === Execution ===
    scratch_root: Path = Path("~/.toppbridge/scratch")
    num_threads: int = 1

    # === Result store ===
    result_store_backend: Literal["memory", "sqlite"] = "memory"
    result_store_path: Path = Path("~/.toppbridge/results.db")

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("num_threads")
    @classmethod
    def validate_num_threads(cls, v: int) -> int:
        if v < 1:
            raise ValueError("num_threads must be >= 1")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if not self.data_path_env_var.strip():
            errors.append("DATA_PATH_ENV_VAR must not be empty")

        if self.result_store_backend == "sqlite" and not str(self.result_store_path).strip():
            errors.append("RESULT_STORE_BACKEND=sqlite requires RESULT_STORE_PATH")

        if self.log_retention < 0:
            errors.append("LOG_RETENTION must be >= 0")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def tools_path(self) -> Path:
        """Expanded tools directory."""
        return self.tools_directory.expanduser()

    @property
    def scratch_path(self) -> Path:
        """Expanded scratch root."""
        return self.scratch_root.expanduser()


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or per-run config).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
