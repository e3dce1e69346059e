"""Unit tests for SafetyValidator and activity logging."""

import pytest

from helmsman.core.config import SafetyConfig
from helmsman.core.store import JsonSettingsStore
from helmsman.core.types import ActionType, ActivityStatus, ParsedAction, RiskLevel
from helmsman.safety import SafetyValidator, StructlogActivityLogger


def make_action(
    action_type: ActionType = ActionType.CLICK,
    description: str = "Click the OK button",
    target: str | None = None,
    **params,
) -> ParsedAction:
    return ParsedAction(type=action_type, description=description, target=target, params=params)


class TestRiskAssessment:
    """Test suite for risk classification and confirmation."""

    def test_plain_click_is_low_and_auto_confirmed(self) -> None:
        """Test a harmless click runs without confirmation."""
        validation = SafetyValidator().validate_action(make_action())

        assert validation.allowed is True
        assert validation.risk_level == RiskLevel.LOW
        assert validation.requires_confirmation is False

    def test_dangerous_pattern_is_blocked(self) -> None:
        """Test shell wipe commands never run."""
        action = make_action(ActionType.TYPE, "Type rm -rf / into terminal", text="rm -rf /")

        validation = SafetyValidator().validate_action(action)

        assert validation.allowed is False
        assert validation.risk_level == RiskLevel.CRITICAL

    def test_payment_click_is_high_and_overrides_auto_confirm(self) -> None:
        """Test high risk requires confirmation even for auto-confirm types."""
        validation = SafetyValidator().validate_action(
            make_action(description="Click the checkout button")
        )

        assert validation.allowed is True
        assert validation.risk_level == RiskLevel.HIGH
        assert validation.requires_confirmation is True

    def test_destructive_action_follows_confirm_setting(self) -> None:
        """Test delete actions need confirmation only while the switch is on."""
        action = make_action(ActionType.PRESS, "Press delete to remove the file", key="Delete")

        strict = SafetyValidator(SafetyConfig(confirm_destructive_actions=True))
        relaxed = SafetyValidator(SafetyConfig(confirm_destructive_actions=False))

        assert strict.validate_action(action).risk_level == RiskLevel.MEDIUM
        assert strict.requires_confirmation(action) is True
        assert relaxed.requires_confirmation(action) is False

    def test_navigate_is_medium(self) -> None:
        """Test navigation is medium risk and confirmed by default."""
        action = make_action(ActionType.NAVIGATE, "Navigate to https://example.com", url="https://example.com")

        validation = SafetyValidator().validate_action(action)

        assert validation.risk_level == RiskLevel.MEDIUM
        assert validation.requires_confirmation is True

    def test_long_text_is_medium(self) -> None:
        """Test typing long text is medium risk."""
        action = make_action(ActionType.TYPE, "Type a paragraph", text="x" * 51)

        assert SafetyValidator().validate_action(action).risk_level == RiskLevel.MEDIUM

    def test_require_confirmation_for_phrases(self) -> None:
        """Test configured phrases force confirmation."""
        validator = SafetyValidator(SafetyConfig(require_confirmation_for=["submit form"]))
        action = make_action(ActionType.PRESS, "Press enter to submit form", key="Enter")

        assert validator.requires_confirmation(action) is True


class TestBlocklists:
    """Test suite for blocked sites, apps and secret fields."""

    def test_password_field_typing_is_blocked(self) -> None:
        """Test automated password entry is refused."""
        action = make_action(ActionType.TYPE, "Type the secret", target="Password field", text="hunter2")

        validation = SafetyValidator().validate_action(action)

        assert validation.allowed is False
        assert validation.risk_level == RiskLevel.CRITICAL

    def test_blocked_site_in_url(self) -> None:
        """Test default blocked sites match the url."""
        action = make_action(ActionType.NAVIGATE, "Open my account", url="https://www.paypal.com")

        validation = SafetyValidator().validate_action(action)

        assert validation.allowed is False
        assert "paypal" in validation.reason

    def test_blocked_app(self) -> None:
        """Test blocked apps match the app param."""
        validator = SafetyValidator(SafetyConfig(blocked_apps=["Terminal"]))
        action = make_action(ActionType.NAVIGATE, "Launch terminal", app="terminal")

        assert validator.validate_action(action).allowed is False

    def test_block_and_unblock_site(self) -> None:
        """Test runtime blocklist edits."""
        validator = SafetyValidator()
        action = make_action(ActionType.NAVIGATE, "Open example", url="https://example.com")

        validator.block_site("example.com")
        assert validator.validate_action(action).allowed is False

        validator.unblock_site("example.com")
        assert validator.validate_action(action).allowed is True


class TestRateLimit:
    """Test suite for the per-minute action budget."""

    def test_sixty_allowed_then_blocked(self, fake_clock) -> None:
        """Test the 61st action inside a minute is refused."""
        validator = SafetyValidator(clock=fake_clock)
        action = make_action()

        results = [validator.validate_action(action).allowed for _ in range(60)]
        assert all(results)

        rejected = validator.validate_action(action)
        assert rejected.allowed is False
        assert "Rate limit" in rejected.reason

    def test_window_slides(self, fake_clock) -> None:
        """Test the budget frees up once the window passes."""
        validator = SafetyValidator(SafetyConfig(max_actions_per_minute=2), clock=fake_clock)
        action = make_action()

        assert validator.validate_action(action).allowed
        fake_clock.advance(30)
        assert validator.validate_action(action).allowed
        assert not validator.validate_action(action).allowed

        fake_clock.advance(31)
        assert validator.validate_action(action).allowed

    def test_reset_rate_limits(self, fake_clock) -> None:
        """Test reset clears the window."""
        validator = SafetyValidator(SafetyConfig(max_actions_per_minute=1), clock=fake_clock)
        action = make_action()

        validator.validate_action(action)
        assert not validator.validate_action(action).allowed

        validator.reset_rate_limits()
        assert validator.validate_action(action).allowed


class TestConfigPersistence:
    """Test suite for update_config and the settings store."""

    def test_update_persists_and_reloads(self, settings_store: JsonSettingsStore) -> None:
        """Test updates are written through and picked up by a new validator."""
        validator = SafetyValidator(store=settings_store)

        updated = validator.update_config(max_actions_per_minute=5, confirm_destructive_actions=False)

        assert updated.max_actions_per_minute == 5
        reloaded = SafetyValidator(store=JsonSettingsStore(settings_store.path))
        assert reloaded.get_config().max_actions_per_minute == 5
        assert reloaded.get_config().confirm_destructive_actions is False

    def test_unknown_setting_rejected(self) -> None:
        """Test unknown keys raise."""
        with pytest.raises(ValueError, match="Unknown safety settings"):
            SafetyValidator().update_config(allow_everything=True)

    def test_get_config_returns_copy(self) -> None:
        """Test callers cannot mutate the live policy."""
        validator = SafetyValidator()

        config = validator.get_config()
        config.blocked_sites.clear()

        assert "paypal" in validator.get_config().blocked_sites


class TestStructlogActivityLogger:
    """Test suite for StructlogActivityLogger."""

    @pytest.mark.asyncio
    async def test_log_returns_unique_ids(self) -> None:
        """Test each record gets its own id."""
        activity = StructlogActivityLogger()

        first = await activity.log("click", "Click OK", ActivityStatus.SUCCESS)
        second = await activity.log("click", "Click OK", ActivityStatus.SUCCESS)

        assert first != second

    @pytest.mark.asyncio
    async def test_recent_filters_by_status(self) -> None:
        """Test the recent view filters and bounds records."""
        activity = StructlogActivityLogger(max_records=3)

        await activity.log("a", "1", ActivityStatus.SUCCESS)
        await activity.log("b", "2", ActivityStatus.FAILED)
        await activity.log("c", "3", ActivityStatus.SUCCESS)
        await activity.log("d", "4", ActivityStatus.CANCELLED)

        assert [r.action for r in activity.recent()] == ["b", "c", "d"]
        assert [r.action for r in activity.recent(status=ActivityStatus.FAILED)] == ["b"]
        assert [r.action for r in activity.recent(limit=1)] == ["d"]
