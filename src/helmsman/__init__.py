"""Helmsman - Screen-driven agent that turns commands into device actions."""

__version__ = "0.1.0"
