"""Core types and data models for Helmsman."""

import time
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Generic, Mapping, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


T = TypeVar("T")


class ActionType(str, Enum):
    """Closed set of actions the executor can perform."""

    CLICK = "click"
    DOUBLE_CLICK = "double-click"
    RIGHT_CLICK = "right-click"
    TYPE = "type"
    PRESS = "press"
    HOTKEY = "hotkey"
    SCROLL = "scroll"
    WAIT = "wait"
    NAVIGATE = "navigate"
    DRAG = "drag"
    HOVER = "hover"


# Actions that point at a screen location
POINTER_ACTIONS = frozenset(
    {
        ActionType.CLICK,
        ActionType.DOUBLE_CLICK,
        ActionType.RIGHT_CLICK,
        ActionType.DRAG,
        ActionType.HOVER,
    }
)


class Coordinates(BaseModel):
    """Screen coordinates for an element."""

    x: int = Field(..., description="X coordinate")
    y: int = Field(..., description="Y coordinate")


class ParsedAction(BaseModel):
    """A single structured, executable action derived from model output."""

    model_config = ConfigDict(frozen=True)

    type: ActionType = Field(..., description="Action to perform")
    description: str = Field(..., description="Human readable description")
    target: Optional[str] = Field(
        None, description="Natural language description of the target element"
    )
    coordinates: Optional[Coordinates] = Field(
        None, description="Explicit screen coordinates if known"
    )
    params: Mapping[str, Any] = Field(
        default_factory=dict,
        validate_default=True,
        description="Action-specific parameters (read-only)",
    )
    confidence: float = Field(
        default=0.5, ge=0.0, le=1.0, description="Model confidence (0-1)"
    )

    @field_validator("params", mode="after")
    @classmethod
    def _freeze_params(cls, value: Mapping[str, Any]) -> Mapping[str, Any]:
        return MappingProxyType(dict(value))

    @field_serializer("params")
    def _serialize_params(self, value: Mapping[str, Any]) -> dict[str, Any]:
        return dict(value)


class AnalysisResult(BaseModel):
    """Structured reading of a screen analysis response."""

    is_task_complete: bool = Field(default=False)
    current_state: str = Field(default="")
    visible_elements: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


class LocationResult(BaseModel):
    """Result of asking the model where an element is."""

    found: bool = Field(default=False)
    x: int = Field(default=0)
    y: int = Field(default=0)
    confidence: float = Field(default=0.0)
    alternatives: list[dict[str, Any]] = Field(default_factory=list)


class RiskLevel(str, Enum):
    """Four-point risk classification driving the confirmation gate."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SafetyValidation(BaseModel):
    """Outcome of validating one action against the safety policy."""

    allowed: bool = Field(..., description="Whether the action may run at all")
    reason: Optional[str] = Field(None, description="Why it was blocked")
    requires_confirmation: bool = Field(default=False)
    risk_level: RiskLevel = Field(default=RiskLevel.LOW)


class TaskPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskStep(BaseModel):
    """A single step in a task plan."""

    id: str = Field(..., description="Unique step identifier")
    description: str = Field(..., description="What to do")
    type: str = Field(default="click", description="Step type")
    params: dict[str, Any] = Field(default_factory=dict)
    expected_outcome: str = Field(default="")
    fallback_actions: list["TaskStep"] = Field(default_factory=list)


class Task(BaseModel):
    """An ordered plan for a natural-language command."""

    id: str = Field(..., description="Unique task identifier")
    description: str = Field(..., description="Original command")
    steps: list[TaskStep] = Field(default_factory=list)
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM)
    estimated_duration: int = Field(default=60, description="Seconds")
    dependencies: list[str] = Field(default_factory=list)
    status: TaskStatus = Field(default=TaskStatus.PENDING)


class PlanningContext(BaseModel):
    """Working context handed to the planner."""

    current_screen: str = Field(default="")
    previous_actions: list[str] = Field(default_factory=list)
    error_history: list[str] = Field(default_factory=list)


class PlanFeedback(BaseModel):
    """Execution feedback used to refine a plan."""

    step_index: int = Field(..., ge=0)
    error: Optional[str] = None
    observation: Optional[str] = None


@dataclass
class RetryResult(Generic[T]):
    """Outcome of one protected operation invocation."""

    success: bool
    result: Optional[T] = None
    error: Optional[str] = None
    attempts: int = 0
    total_time: float = 0.0


class ConversationRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ConversationEntry(BaseModel):
    role: ConversationRole
    content: str
    timestamp: float = Field(default_factory=time.time)
    metadata: Optional[dict[str, Any]] = None


class ContextEntry(BaseModel):
    key: str
    value: Any = None
    expires_at: Optional[float] = None


class MemorySnapshot(BaseModel):
    screen_state: str
    active_window: str = ""
    timestamp: float = Field(default_factory=time.time)


class AgentState(str, Enum):
    """Lifecycle states of the orchestrator."""

    IDLE = "idle"
    THINKING = "thinking"
    PLANNING = "planning"
    EXECUTING = "executing"
    WAITING = "waiting"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class AgentStatus(BaseModel):
    """Externally observable state of the orchestrator."""

    is_running: bool = False
    state: AgentState = AgentState.IDLE
    current_task: Optional[str] = None
    current_step: Optional[str] = None
    progress: int = Field(default=0, ge=0, le=100)
    steps_completed: int = 0
    total_steps: int = 0
    start_time: Optional[float] = None
    errors: list[str] = Field(default_factory=list)


class ActionResult(BaseModel):
    """Result returned by an executor for one action."""

    success: bool
    error: Optional[str] = None
    data: Optional[dict[str, Any]] = None
    duration: float = 0.0


class UpdateType(str, Enum):
    THINKING = "thinking"
    PLANNING = "planning"
    EXECUTING = "executing"
    COMPLETED = "completed"
    ERROR = "error"
    WAITING = "waiting"


class AgentUpdate(BaseModel):
    """Progress event emitted to listeners."""

    type: UpdateType
    message: str
    progress: Optional[int] = None
    step_index: Optional[int] = None
    total_steps: Optional[int] = None


class ActionPreview(BaseModel):
    """What the agent is about to do, emitted before anything executes."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    type: ActionType
    description: str
    screenshot: Any = None
    coordinates: Optional[Coordinates] = None
    requires_confirmation: bool = False
    risk_level: RiskLevel = RiskLevel.LOW
    reason: Optional[str] = None


class ActivityStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ActivityRecord(BaseModel):
    """One append-only audit record."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    timestamp: str
    action: str
    details: str
    status: ActivityStatus
    screenshot: Any = None
