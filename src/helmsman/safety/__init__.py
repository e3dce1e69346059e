"""Safety module - Action validation and audit logging."""

from .activity_logger import StructlogActivityLogger
from .safety_validator import SafetyValidator

__all__ = ["SafetyValidator", "StructlogActivityLogger"]
