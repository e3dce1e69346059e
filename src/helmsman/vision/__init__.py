"""Vision module - Model client for screen understanding."""

from .model_client import AnthropicModelClient

__all__ = ["AnthropicModelClient"]
