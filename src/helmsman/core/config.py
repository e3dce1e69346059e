"""Configuration management for Helmsman."""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field


load_dotenv()


DEFAULT_BLOCKED_SITES = [
    "bank", "paypal", "venmo", "stripe",
    "password", "credential", "secret",
    "admin", "root", "sudo",
]

DESTRUCTIVE_KEYWORDS = [
    "delete", "remove", "format", "wipe",
    "uninstall", "terminate", "kill",
]


class SafetyConfig(BaseModel):
    """Policy knobs read by the safety validator."""

    confirm_destructive_actions: bool = Field(default=True)
    max_actions_per_minute: int = Field(default=60, ge=1)
    blocked_sites: list[str] = Field(
        default_factory=lambda: list(DEFAULT_BLOCKED_SITES)
    )
    blocked_apps: list[str] = Field(default_factory=list)
    require_confirmation_for: list[str] = Field(
        default_factory=list,
        description="Description phrases that always need a human signal",
    )
    auto_confirm_types: list[str] = Field(
        default_factory=lambda: ["click", "scroll", "wait"]
    )


class Config(BaseModel):
    """Application configuration."""

    # API Keys
    anthropic_api_key: str = Field(
        default_factory=lambda: os.getenv("ANTHROPIC_API_KEY", "")
    )

    # Model settings
    model: str = Field(
        default_factory=lambda: os.getenv("HELMSMAN_MODEL", "claude-haiku-4-5-20251001")
    )
    max_tokens: int = Field(default=1024)

    # Agent loop
    max_steps_per_task: int = Field(default=50, ge=1)
    step_delay: float = Field(
        default=0.5, description="Settle delay between iterations (seconds)"
    )
    confirmation_timeout: float = Field(
        default=30.0, description="Seconds to wait for a confirm/deny signal"
    )
    action_timeout: float = Field(
        default=30.0, description="Per-action timeout enforced by the executor"
    )
    plan_before_execute: bool = Field(
        default=True, description="Ask the planner for an outline before acting"
    )
    analysis_history: int = Field(default=5)
    action_history: int = Field(default=10)

    # Retry settings
    max_retries: int = Field(default=3, ge=0)
    retry_base_delay: float = Field(default=1.0)
    retry_max_delay: float = Field(default=10.0)
    retry_exponential_base: float = Field(default=2.0)
    retry_jitter: bool = Field(default=True)
    circuit_threshold: int = Field(default=5, ge=1)
    circuit_reset_time: float = Field(default=30.0)

    # Memory settings
    max_conversation_length: int = Field(default=100)
    conversation_keep_recent: int = Field(default=50)
    max_snapshots: int = Field(default=20)
    context_ttl: float = Field(default=300.0)
    memory_path: Path | None = Field(
        default_factory=lambda: (
            Path(os.environ["HELMSMAN_MEMORY_PATH"])
            if os.getenv("HELMSMAN_MEMORY_PATH")
            else None
        )
    )
    settings_path: Path | None = Field(
        default_factory=lambda: (
            Path(os.environ["HELMSMAN_SETTINGS_PATH"])
            if os.getenv("HELMSMAN_SETTINGS_PATH")
            else None
        )
    )

    # Safety policy
    safety: SafetyConfig = Field(default_factory=SafetyConfig)

    # Browser settings
    headless: bool = Field(default=False)
    viewport_width: int = Field(default=1280)
    viewport_height: int = Field(default=720)
    screenshot_max_width: int | None = Field(default=1280)
    storage_state: Path | None = Field(
        default=None, description="Path to storage state JSON for session persistence"
    )

    # Logging settings
    log_level: str = Field(
        default_factory=lambda: os.getenv("HELMSMAN_LOG_LEVEL", "INFO")
    )
