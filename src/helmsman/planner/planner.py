"""Planner - Breaks natural-language commands into ordered steps."""

import uuid
from typing import Any

import structlog

from helmsman.core.config import Config
from helmsman.core.interfaces import IModelClient
from helmsman.core.types import (
    PlanFeedback,
    PlanningContext,
    Task,
    TaskPriority,
    TaskStep,
)
from helmsman.parser.action_parser import coerce_int, extract_json


logger = structlog.get_logger()


STEP_SCHEMA = """
{
  "description": "What to do",
  "type": "click", // navigate, click, type, scroll, wait, verify, extract
  "params": {
    "target": "element description",
    "text": "text to type (if applicable)",
    "url": "url to navigate to (if applicable)"
  },
  "expectedOutcome": "What should happen after this step"
}
"""

STEP_TYPE_ALIASES = {
    "navigate": "navigate",
    "click": "click",
    "type": "type",
    "input": "type",
    "scroll": "scroll",
    "wait": "wait",
    "verify": "verify",
    "check": "verify",
    "extract": "extract",
    "read": "extract",
}

STEP_SECONDS = {
    "navigate": 3,
    "click": 1,
    "type": 2,
    "scroll": 1,
    "wait": 2,
    "verify": 2,
    "extract": 1,
}
DEFAULT_STEP_SECONDS = 2
DEFAULT_TASK_DURATION = 60


def normalize_step_type(value: Any) -> str:
    """Map a free-form step type onto the planner's vocabulary (default click)."""
    if not isinstance(value, str):
        return "click"
    return STEP_TYPE_ALIASES.get(value.strip().lower(), "click")


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class Planner:
    """Text-only planning on top of the model client."""

    def __init__(self, model: IModelClient, config: Config | None = None) -> None:
        """Initialize the planner.

        Args:
            model: Model client used for text completions
            config: Application configuration
        """
        self.model = model
        self.config = config or Config()
        self._history: list[Task] = []

    async def create_plan(
        self, command: str, context: PlanningContext | None = None
    ) -> Task:
        """Generate an execution plan for a command.

        Args:
            command: Natural language task description
            context: Current screen, previous actions and past errors

        Returns:
            Task with zero or more steps; zero when the answer was unusable
        """
        context = context or PlanningContext()
        prompt = self._build_planning_prompt(command, context)

        try:
            response = await self.model.complete(prompt)
        except Exception as e:
            logger.error("plan_generation_failed", task=command, error=str(e))
            raise

        data = extract_json(response)
        if not isinstance(data, dict):
            data = {}

        steps = self._parse_steps(data.get("steps"))
        task = Task(
            id=_new_id("task"),
            description=command,
            steps=steps,
            priority=self._parse_priority(data.get("priority")),
            estimated_duration=coerce_int(
                data.get("estimatedDuration", data.get("estimated_duration")),
                DEFAULT_TASK_DURATION,
            )
            or DEFAULT_TASK_DURATION,
        )
        self._history.append(task)

        logger.info(
            "plan_generated",
            task=command,
            steps=len(steps),
            step_list=[f"Step {i}: {s.type} - {s.description}" for i, s in enumerate(steps, 1)],
        )
        return task

    async def refine_plan(self, task: Task, feedback: PlanFeedback) -> Task:
        """Replace the steps from the failed one onwards.

        Steps before feedback.step_index are kept as they are. When the model
        answer has no usable revised steps the task comes back unchanged.

        Args:
            task: Plan being executed
            feedback: Which step went wrong and what was observed

        Returns:
            Refined task (a new object) or the original task
        """
        failed_step = (
            task.steps[feedback.step_index].description
            if feedback.step_index < len(task.steps)
            else "None"
        )
        current_steps = "\n".join(
            f"{i}. {step.description}" for i, step in enumerate(task.steps, start=1)
        )

        prompt = f"""The following task step failed or needs adjustment.

Task: {task.description}
Failed Step: {failed_step}
Error: {feedback.error or "None"}
Observation: {feedback.observation or "None"}

Current steps:
{current_steps or "(none)"}

Provide an updated plan that completes the task from the failed step onwards. Consider:
1. What went wrong
2. Alternative approaches
3. Steps needed to recover

Respond with ONLY a JSON object:
{{
  "revisedSteps": [{STEP_SCHEMA}],
  "explanation": "Why these changes were made"
}}
"""

        try:
            response = await self.model.complete(prompt)
        except Exception as e:
            logger.error("plan_refinement_failed", task=task.description, error=str(e))
            raise

        data = extract_json(response)
        revised = None
        if isinstance(data, dict):
            revised = data.get("revisedSteps", data.get("revised_steps"))
        if not isinstance(revised, list):
            logger.warning("plan_refinement_unparseable", task=task.description)
            return task

        kept = task.steps[: feedback.step_index]
        refined = task.model_copy(update={"steps": kept + self._parse_steps(revised)})

        logger.info(
            "plan_refined",
            task=task.description,
            kept_steps=len(kept),
            new_steps=len(refined.steps) - len(kept),
        )
        return refined

    async def decompose(self, command: str) -> list[str]:
        """Split a command into ordered atomic subtasks.

        Returns:
            Subtask strings, or [command] when the answer is not a list
        """
        prompt = f"""Break this task down into simple, atomic subtasks.

Task: {command}

Rules:
1. Each subtask is a single action
2. List subtasks in execution order
3. Be specific about what to click, type, etc.
4. Include verification steps

Respond with ONLY a JSON array of strings:
["subtask 1", "subtask 2"]
"""
        response = await self.model.complete(prompt)
        data = extract_json(response)

        if not isinstance(data, list):
            return [command]

        subtasks = [str(item) for item in data if item is not None and str(item).strip()]
        return subtasks or [command]

    def estimate_time(self, task: Task) -> int:
        """Rough duration in seconds, summed per step type."""
        return sum(
            STEP_SECONDS.get(step.type, DEFAULT_STEP_SECONDS) for step in task.steps
        )

    def get_history(self) -> list[Task]:
        return list(self._history)

    def clear_history(self) -> None:
        self._history = []

    def _build_planning_prompt(self, command: str, context: PlanningContext) -> str:
        previous = ", ".join(context.previous_actions[-5:]) or "None"
        errors = ", ".join(context.error_history[-3:]) or "None"

        return f"""You are an expert at planning computer automation tasks. Plan the steps needed to accomplish this request.

USER REQUEST: {command}

CURRENT CONTEXT:
- Screen: {context.current_screen or "Unknown"}
- Previous actions: {previous}
- Past errors: {errors}

Requirements:
1. Break the request down into discrete, atomic steps
2. Use ONLY these step types: navigate, click, type, scroll, wait, verify, extract
3. Describe targets by their visible text or position
4. Give complete URLs for navigate steps
5. State what should happen after each step

Respond with ONLY a JSON object:
{{
  "priority": "high|medium|low",
  "estimatedDuration": 60,
  "steps": [{STEP_SCHEMA}]
}}
"""

    def _parse_steps(self, raw_steps: Any) -> list[TaskStep]:
        if not isinstance(raw_steps, list):
            return []

        steps = []
        for raw in raw_steps:
            if not isinstance(raw, dict):
                continue
            params = raw.get("params")
            steps.append(
                TaskStep(
                    id=_new_id("step"),
                    description=str(raw.get("description") or ""),
                    type=normalize_step_type(raw.get("type")),
                    params=params if isinstance(params, dict) else {},
                    expected_outcome=str(
                        raw.get("expectedOutcome") or raw.get("expected_outcome") or ""
                    ),
                )
            )
        return steps

    @staticmethod
    def _parse_priority(value: Any) -> TaskPriority:
        try:
            return TaskPriority(str(value).lower())
        except ValueError:
            return TaskPriority.MEDIUM
