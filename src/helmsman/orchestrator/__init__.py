"""Orchestrator module - The agent's observe, plan and act loop."""

from .orchestrator import ACTION_PREVIEW_EVENT, UPDATE_EVENT, Orchestrator

__all__ = ["Orchestrator", "ACTION_PREVIEW_EVENT", "UPDATE_EVENT"]
