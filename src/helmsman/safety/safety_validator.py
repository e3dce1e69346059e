"""Safety Validator - Risk classification and allow/block/confirm decisions."""

import re
import time
from collections import deque
from typing import Any, Callable

import structlog

from helmsman.core.config import DESTRUCTIVE_KEYWORDS, SafetyConfig
from helmsman.core.interfaces import ISettingsStore
from helmsman.core.types import ActionType, ParsedAction, RiskLevel, SafetyValidation


logger = structlog.get_logger()


RATE_LIMIT_WINDOW = 60.0

DANGEROUS_PATTERNS = [
    re.compile(r"rm\s+-rf", re.IGNORECASE),
    re.compile(r"del\s+/[fs]", re.IGNORECASE),
    re.compile(r"format\s+[a-z]:", re.IGNORECASE),
    re.compile(r"sudo\s+rm", re.IGNORECASE),
    re.compile(r"drop\s+table", re.IGNORECASE),
    re.compile(r"delete\s+from", re.IGNORECASE),
]

HIGH_RISK_KEYWORDS = [
    "payment", "purchase", "buy", "checkout",
    "transfer", "send money", "wire",
    "password", "credential", "login",
]

SECRET_FIELD_KEYWORDS = ("password", "credential")

LONG_TEXT_THRESHOLD = 50


class SafetyValidator:
    """Validates actions against the configured safety policy.

    Every call to validate_action() that passes the rate limit counts
    against the per-minute budget; nothing else has side effects.
    """

    def __init__(
        self,
        config: SafetyConfig | None = None,
        store: ISettingsStore | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the validator.

        Args:
            config: Base safety policy
            store: Optional settings store; stored keys override config
            clock: Monotonic time source in seconds
        """
        self._store = store
        self._clock = clock
        self._config = self._load_config(config or SafetyConfig())
        self._recent_actions: deque[float] = deque()

    def _load_config(self, base: SafetyConfig) -> SafetyConfig:
        if self._store is None:
            return base

        overrides: dict[str, Any] = {}
        for key in SafetyConfig.model_fields:
            value = self._store.get(key)
            if value is not None:
                overrides[key] = value

        if overrides:
            logger.debug("safety_config_loaded", keys=sorted(overrides))
        return SafetyConfig.model_validate({**base.model_dump(), **overrides})

    def validate_action(self, action: ParsedAction) -> SafetyValidation:
        """Validate an action before execution.

        Args:
            action: Action to check

        Returns:
            SafetyValidation with allow/confirm decision and risk level
        """
        if not self._check_rate_limit():
            logger.warning(
                "rate_limit_exceeded",
                limit=self._config.max_actions_per_minute,
                type=action.type.value,
            )
            return SafetyValidation(
                allowed=False,
                reason="Rate limit exceeded. Too many actions per minute.",
                requires_confirmation=False,
                risk_level=RiskLevel.MEDIUM,
            )

        blocked_reason = self._check_blocked(action)
        if blocked_reason:
            logger.warning(
                "action_blocked",
                type=action.type.value,
                description=action.description,
                reason=blocked_reason,
            )
            return SafetyValidation(
                allowed=False,
                reason=blocked_reason,
                requires_confirmation=False,
                risk_level=RiskLevel.CRITICAL,
            )

        risk_level = self.assess_risk(action)
        requires_confirmation = self._needs_confirmation(action, risk_level)

        logger.debug(
            "action_validated",
            type=action.type.value,
            risk_level=risk_level.value,
            requires_confirmation=requires_confirmation,
        )

        return SafetyValidation(
            allowed=True,
            requires_confirmation=requires_confirmation,
            risk_level=risk_level,
        )

    def requires_confirmation(self, action: ParsedAction) -> bool:
        """Check whether an action needs a human signal before running."""
        return self.validate_action(action).requires_confirmation

    def _check_rate_limit(self) -> bool:
        now = self._clock()
        while self._recent_actions and now - self._recent_actions[0] >= RATE_LIMIT_WINDOW:
            self._recent_actions.popleft()

        if len(self._recent_actions) >= self._config.max_actions_per_minute:
            return False

        self._recent_actions.append(now)
        return True

    def _check_blocked(self, action: ParsedAction) -> str | None:
        description = action.description.lower()
        target = (action.target or "").lower()
        text = str(action.params.get("text") or "").lower()
        url = str(action.params.get("url") or "").lower()
        app = str(action.params.get("app") or "").lower()

        for site in self._config.blocked_sites:
            site_lower = site.lower()
            if site_lower and any(site_lower in field for field in (url, target, app)):
                return f'Blocked: Actions involving "{site}" are not allowed'

        for blocked_app in self._config.blocked_apps:
            app_lower = blocked_app.lower()
            if app_lower and (app_lower in target or app_lower in app):
                return f'Blocked: Actions involving "{blocked_app}" are not allowed'

        all_text = f"{description} {target} {text} {url}"
        for pattern in DANGEROUS_PATTERNS:
            if pattern.search(all_text):
                return "Blocked: This action matches a dangerous pattern"

        if action.type == ActionType.TYPE and any(
            keyword in target for keyword in SECRET_FIELD_KEYWORDS
        ):
            return "Blocked: Automated password entry is not allowed for security"

        return None

    def assess_risk(self, action: ParsedAction) -> RiskLevel:
        """Classify the risk of an action from its description and type."""
        description = action.description.lower()

        if any(pattern.search(description) for pattern in DANGEROUS_PATTERNS):
            return RiskLevel.CRITICAL

        if any(keyword in description for keyword in HIGH_RISK_KEYWORDS):
            return RiskLevel.HIGH

        if any(keyword in description for keyword in DESTRUCTIVE_KEYWORDS):
            return RiskLevel.MEDIUM

        if action.type == ActionType.NAVIGATE:
            return RiskLevel.MEDIUM

        if (
            action.type == ActionType.TYPE
            and len(str(action.params.get("text") or "")) > LONG_TEXT_THRESHOLD
        ):
            return RiskLevel.MEDIUM

        return RiskLevel.LOW

    def _needs_confirmation(self, action: ParsedAction, risk_level: RiskLevel) -> bool:
        # High and critical risk override the auto-confirm allowlist
        if risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL):
            return True

        if action.type.value in self._config.auto_confirm_types:
            return False

        description = action.description.lower()
        if any(
            trigger.lower() in description
            for trigger in self._config.require_confirmation_for
            if trigger
        ):
            return True

        return self._config.confirm_destructive_actions and risk_level == RiskLevel.MEDIUM

    def update_config(self, **updates: Any) -> SafetyConfig:
        """Merge updates into the policy and persist them.

        Args:
            **updates: SafetyConfig fields to change

        Returns:
            The new configuration
        """
        unknown = set(updates) - set(SafetyConfig.model_fields)
        if unknown:
            raise ValueError(f"Unknown safety settings: {', '.join(sorted(unknown))}")

        self._config = SafetyConfig.model_validate({**self._config.model_dump(), **updates})

        if self._store is not None:
            for key in updates:
                self._store.set(key, getattr(self._config, key))

        logger.info("safety_config_updated", keys=sorted(updates))
        return self.get_config()

    def get_config(self) -> SafetyConfig:
        """Get a copy of the current policy."""
        return self._config.model_copy(deep=True)

    def block_site(self, site: str) -> None:
        if site not in self._config.blocked_sites:
            self.update_config(blocked_sites=[*self._config.blocked_sites, site])

    def unblock_site(self, site: str) -> None:
        if site in self._config.blocked_sites:
            self.update_config(
                blocked_sites=[s for s in self._config.blocked_sites if s != site]
            )

    def reset_rate_limits(self) -> None:
        self._recent_actions.clear()

    def reset(self) -> None:
        """Clear all mutable counters."""
        self.reset_rate_limits()
