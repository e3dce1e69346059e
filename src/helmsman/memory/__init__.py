"""Memory module - Layered working memory for the agent."""

from .agent_memory import AgentMemory

__all__ = ["AgentMemory"]
