"""Executor module - Browser control and screen capture."""

from .executor import BrowserSession, PlaywrightExecutor
from .screen_capture import PlaywrightScreenCapture

__all__ = ["BrowserSession", "PlaywrightExecutor", "PlaywrightScreenCapture"]
