"""Core module - Shared types, interfaces, errors, and configuration."""

from .types import (
    ActionType,
    AgentState,
    AgentStatus,
    ParsedAction,
    RiskLevel,
    SafetyValidation,
    Task,
    TaskStep,
)
from .config import Config, SafetyConfig
from .errors import AgentError
from .store import JsonSettingsStore

__all__ = [
    "ActionType",
    "AgentState",
    "AgentStatus",
    "ParsedAction",
    "RiskLevel",
    "SafetyValidation",
    "Task",
    "TaskStep",
    "Config",
    "SafetyConfig",
    "AgentError",
    "JsonSettingsStore",
]
