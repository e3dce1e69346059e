"""Exceptions raised by the agent core."""


class AgentError(Exception):
    """Base class for task-level agent failures."""


class ActionParseError(AgentError):
    """The model's answer could not be turned into an action."""


class PlanningError(AgentError):
    """The planner produced no usable plan."""


class ConfirmationDeniedError(AgentError):
    """A human rejected the action or did not answer in time."""


class ActionExecutionError(AgentError):
    """The executor reported a failed action."""


class StepBudgetExceededError(AgentError):
    """The task used up its step budget without completing."""


class TaskAbortedError(AgentError):
    """The user asked the agent to stop."""


class AlreadyRunningError(AgentError):
    """A task is already in progress on this agent."""
