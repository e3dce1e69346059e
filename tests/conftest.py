"""Shared pytest fixtures for Helmsman tests."""

import io
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image

from helmsman.core.config import Config
from helmsman.core.store import JsonSettingsStore
from helmsman.core.types import ActionResult


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    """Create a clock that only moves when told to.

    Returns:
        FakeClock starting at t=1000
    """
    return FakeClock()


@pytest.fixture
def test_config() -> Config:
    """Create a test configuration with no real waiting.

    Returns:
        Config instance for testing
    """
    return Config(
        anthropic_api_key="test-api-key",
        model="test-model",
        step_delay=0.0,
        confirmation_timeout=0.2,
        plan_before_execute=False,
        retry_base_delay=0.0,
        retry_max_delay=0.0,
        retry_jitter=False,
        headless=True,
        viewport_width=1280,
        viewport_height=720,
        memory_path=None,
        settings_path=None,
        storage_state=None,
    )


@pytest.fixture
def settings_store(tmp_path: Path) -> JsonSettingsStore:
    """Create a JSON settings store in a temporary directory.

    Args:
        tmp_path: pytest's built-in temporary directory fixture

    Returns:
        JsonSettingsStore backed by tmp_path/settings.json
    """
    return JsonSettingsStore(tmp_path / "settings.json")


@pytest.fixture
def sample_image_bytes() -> bytes:
    """Create a sample PNG image as bytes.

    Returns:
        PNG image bytes (100x100 white image)
    """
    img = Image.new("RGB", (100, 100), color=(255, 255, 255))
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def wide_image_bytes() -> bytes:
    """Create a PNG wider than the default screenshot limit.

    Returns:
        PNG image bytes (2560x1440 white image)
    """
    img = Image.new("RGB", (2560, 1440), color=(255, 255, 255))
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def mock_page() -> MagicMock:
    """Create a mock Playwright Page object.

    Returns:
        MagicMock with async mouse, keyboard and navigation methods
    """
    page = MagicMock()
    page.screenshot = AsyncMock()
    page.goto = AsyncMock()
    page.mouse = MagicMock()
    page.mouse.click = AsyncMock()
    page.mouse.dblclick = AsyncMock()
    page.mouse.move = AsyncMock()
    page.mouse.down = AsyncMock()
    page.mouse.up = AsyncMock()
    page.mouse.wheel = AsyncMock()
    page.keyboard = MagicMock()
    page.keyboard.type = AsyncMock()
    page.keyboard.press = AsyncMock()
    page.keyboard.down = AsyncMock()
    page.keyboard.up = AsyncMock()
    return page


@pytest.fixture
def mock_screen_capture(sample_image_bytes: bytes) -> MagicMock:
    """Create a screen capture returning the sample image."""
    capture = MagicMock()
    capture.capture_screen = AsyncMock(return_value=sample_image_bytes)
    return capture


@pytest.fixture
def mock_executor() -> MagicMock:
    """Create an executor that always succeeds."""
    executor = MagicMock()
    executor.execute = AsyncMock(return_value=ActionResult(success=True, duration=0.01))
    return executor


@pytest.fixture
def mock_activity_logger() -> MagicMock:
    """Create an activity logger recording calls."""
    activity = MagicMock()
    activity.log = AsyncMock(return_value="record-id")
    return activity


@pytest.fixture
def mock_model() -> MagicMock:
    """Create a model client; tests set analyze/complete side effects."""
    model = MagicMock()
    model.analyze = AsyncMock()
    model.complete = AsyncMock()
    return model
