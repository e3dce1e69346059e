"""Planner module - Task decomposition and prompt construction."""

from .planner import Planner
from .prompt_builder import PromptBuilder

__all__ = ["Planner", "PromptBuilder"]
