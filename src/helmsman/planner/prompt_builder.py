"""Prompt Builder - Prompts for screen analysis, action choice and element location."""

import json
from typing import Any

from helmsman.core.types import ConversationEntry, ConversationRole, Task


HISTORY_WINDOW = 5

ACTION_SCHEMA = """
{
  "type": "click|double-click|right-click|type|press|hotkey|scroll|wait|navigate|drag|hover",
  "description": "Human readable description of the action",
  "target": "Description of the element to interact with",
  "coordinates": {"x": 0, "y": 0}, // only if you are sure of the position
  "params": {
    "text": "text to type (type)",
    "key": "key name (press)",
    "keys": ["Control", "c"], // hotkey
    "direction": "up|down|left|right", // scroll
    "amount": 3, // scroll
    "url": "https://example.com", // navigate
    "app": "application name", // navigate
    "duration": 1000 // wait, in milliseconds
  },
  "confidence": 0.0
}
"""

SYSTEM_PROMPT = """You are Helmsman, an assistant that can see the user's screen and control the mouse and keyboard.

CAPABILITIES:
- See the screen through screenshots
- Move the pointer, click, drag and hover
- Type text and press keys or keyboard shortcuts
- Open applications and websites
- Scroll and wait for the interface to settle

RULES:
1. Always look at the screen before acting
2. Be precise about which element to interact with
3. Prefer the simplest way to finish the task
4. Check that each action had the expected effect
5. Never perform destructive actions without confirmation
6. Report problems plainly

SAFETY:
- Never delete files or data the user did not ask to delete
- Never make purchases or payments
- Never enter or reveal passwords and other secrets
- Never run unknown scripts"""


class PromptBuilder:
    """Builds the prompts the orchestrator sends to the model."""

    def __init__(self) -> None:
        self._system_prompt = SYSTEM_PROMPT

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    def append_instructions(self, instructions: str) -> None:
        """Append extra standing instructions to the system prompt."""
        self._system_prompt += f"\n\nADDITIONAL INSTRUCTIONS:\n{instructions}"

    def build_analysis_prompt(
        self, command: str, history: list[ConversationEntry]
    ) -> str:
        """Prompt asking the model to describe the screen and judge completion.

        Args:
            command: The user's task
            history: Recent conversation entries

        Returns:
            Prompt text to send along with a screenshot
        """
        return f"""{self._system_prompt}

CURRENT TASK: {command}

PREVIOUS ACTIONS:
{self.format_history(history) or "None yet"}

Look at the screenshot and answer:
1. What is on the screen?
2. What is the current state relevant to the task?
3. Is the task complete? If so, why?
4. Which visible elements can be interacted with?

Respond with ONLY a JSON object:
{{
  "isTaskComplete": false,
  "currentState": "description of the relevant screen state",
  "visibleElements": ["element 1", "element 2"],
  "suggestions": ["possible next action 1", "possible next action 2"]
}}
"""

    def build_action_prompt(
        self,
        command: str,
        analysis: Any,
        history: list[ConversationEntry],
        plan: Task | None = None,
    ) -> str:
        """Prompt asking the model for the single next action.

        Args:
            command: The user's task
            analysis: Parsed screen analysis (model or dict)
            history: Recent conversation entries
            plan: Optional up-front plan to follow

        Returns:
            Prompt text to send along with a screenshot
        """
        if hasattr(analysis, "model_dump"):
            analysis = analysis.model_dump()

        plan_section = ""
        if plan is not None and plan.steps:
            outline = "\n".join(
                f"{i}. [{step.type}] {step.description}"
                for i, step in enumerate(plan.steps, start=1)
            )
            plan_section = f"\nPLAN:\n{outline}\n"

        return f"""{self._system_prompt}

CURRENT TASK: {command}
{plan_section}
SCREEN ANALYSIS:
{json.dumps(analysis, indent=2, default=str)}

PREVIOUS ACTIONS:
{self.format_history(history) or "None yet"}

Based on the current screen, decide the SINGLE next action to take.
Be specific about:
- The exact element to click (by its text or position)
- The exact text to type
- The exact key or shortcut to press

Respond with ONLY a JSON object following this schema:
{ACTION_SCHEMA}"""

    def build_location_prompt(self, target: str) -> str:
        """Prompt asking for the pixel position of an element."""
        return f"""Find the {target} element in this screenshot.

Give the exact pixel coordinates (x, y) of the CENTER of the element.

Respond with ONLY a JSON object:
{{
  "found": true,
  "x": 0,
  "y": 0,
  "confidence": 0.0,
  "alternatives": [{{"x": 0, "y": 0, "description": "other candidate"}}]
}}
"""

    @staticmethod
    def format_history(history: list[ConversationEntry]) -> str:
        """Render the last few non-system entries, one per line."""
        entries = [e for e in history if e.role != ConversationRole.SYSTEM]
        lines = []
        for entry in entries[-HISTORY_WINDOW:]:
            if entry.role == ConversationRole.USER:
                lines.append(f"User: {entry.content}")
                continue

            metadata = entry.metadata or {}
            action = metadata.get("action") or entry.content
            result = metadata.get("result")
            lines.append(f"Agent: {action} -> {result}" if result else f"Agent: {action}")

        return "\n".join(lines)
