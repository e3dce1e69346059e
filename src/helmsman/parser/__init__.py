"""Parser module - Structured actions from free-form model output."""

from .action_parser import ActionParser, extract_json

__all__ = ["ActionParser", "extract_json"]
