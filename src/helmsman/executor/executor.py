"""Executor - Browser session and action dispatch on top of Playwright."""

import asyncio
import time
from typing import TYPE_CHECKING

import structlog
from playwright.async_api import Browser, BrowserContext, async_playwright

from helmsman.core.config import Config
from helmsman.core.types import ActionResult, ActionType, Coordinates, ParsedAction

if TYPE_CHECKING:
    from playwright.async_api import Page


logger = structlog.get_logger()


APP_URLS = {
    "chrome": "https://www.google.com",
    "browser": "https://www.google.com",
    "google": "https://www.google.com",
    "notion": "https://www.notion.so",
    "github": "https://github.com",
    "youtube": "https://www.youtube.com",
    "gmail": "https://mail.google.com",
    "twitter": "https://twitter.com",
    "linkedin": "https://www.linkedin.com",
    "slack": "https://slack.com",
    "trello": "https://trello.com",
    "asana": "https://app.asana.com",
    "linear": "https://linear.app",
}

KEY_ALIASES = {
    "ctrl": "Control",
    "control": "Control",
    "cmd": "Meta",
    "command": "Meta",
    "meta": "Meta",
    "win": "Meta",
    "alt": "Alt",
    "option": "Alt",
    "shift": "Shift",
    "enter": "Enter",
    "return": "Enter",
    "esc": "Escape",
    "escape": "Escape",
    "tab": "Tab",
    "space": "Space",
    "backspace": "Backspace",
    "delete": "Delete",
    "up": "ArrowUp",
    "down": "ArrowDown",
    "left": "ArrowLeft",
    "right": "ArrowRight",
}

# Pixels per scroll "click"
SCROLL_STEP = 100
TYPE_DELAY_MS = 20


def normalize_key(key: str) -> str:
    """Map common key spellings onto Playwright key names."""
    key = key.strip()
    return KEY_ALIASES.get(key.lower(), key)


def resolve_app_url(app: str) -> str | None:
    """URL to open for an application name, or None if unknown."""
    name = app.strip().lower()
    if not name:
        return None
    if name.startswith(("http://", "https://")):
        return app.strip()
    for service, url in APP_URLS.items():
        if service in name:
            return url
    if "." in name and " " not in name:
        return f"https://{name}"
    return None


class BrowserSession:
    """Owns the Playwright browser, context and page."""

    def __init__(self, config: Config | None = None) -> None:
        """Initialize the session.

        Args:
            config: Application configuration
        """
        self.config = config or Config()
        self._playwright = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: "Page | None" = None

        # Screenshot pixels to page pixels, set by the screen capture
        self.screenshot_scale = 1.0

    async def start(self) -> "Page":
        """Start the browser and return the page.

        Returns:
            Playwright page instance
        """
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.config.headless
        )

        context_options = {
            "viewport": {
                "width": self.config.viewport_width,
                "height": self.config.viewport_height,
            }
        }

        if self.config.storage_state and self.config.storage_state.exists():
            logger.info(
                "loading_storage_state",
                storage_state=str(self.config.storage_state),
            )
            context_options["storage_state"] = str(self.config.storage_state)

        self._context = await self._browser.new_context(**context_options)
        self._page = await self._context.new_page()

        logger.info("browser_started", headless=self.config.headless)
        return self._page

    async def stop(self) -> None:
        """Stop the browser and cleanup resources."""
        if self._context:
            try:
                await self._context.close()
            except Exception as e:
                logger.debug("context_close_error", error=str(e))

        if self._browser:
            try:
                await self._browser.close()
            except Exception as e:
                logger.debug("browser_close_error", error=str(e))

        if self._playwright:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.debug("playwright_stop_error", error=str(e))

        self._page = None
        logger.info("browser_stopped")

    @property
    def page(self) -> "Page":
        """Get the current page instance."""
        if self._page is None:
            raise RuntimeError("Browser not started. Call start() first.")
        return self._page


class PlaywrightExecutor:
    """Performs parsed actions on a browser page, one at a time.

    Every action runs under an asyncio.Lock so physical input never
    interleaves. lock() refuses new actions; emergency_stop() also releases
    any keys or mouse buttons still held down.
    """

    def __init__(self, session: BrowserSession, config: Config | None = None) -> None:
        """Initialize the executor.

        Args:
            session: Started browser session
            config: Application configuration
        """
        self.session = session
        self.config = config or Config()
        self._input_lock = asyncio.Lock()
        self._locked = False
        self._held_keys: list[str] = []
        self._mouse_down = False

    @property
    def is_locked(self) -> bool:
        return self._locked

    def lock(self) -> None:
        self._locked = True
        logger.info("executor_locked")

    def unlock(self) -> None:
        self._locked = False
        logger.info("executor_unlocked")

    async def emergency_stop(self) -> None:
        """Lock the executor and release anything held down."""
        self._locked = True
        page = self.session.page

        for key in reversed(self._held_keys):
            try:
                await page.keyboard.up(key)
            except Exception as e:
                logger.debug("key_release_error", key=key, error=str(e))
        self._held_keys.clear()

        if self._mouse_down:
            try:
                await page.mouse.up()
            except Exception as e:
                logger.debug("mouse_release_error", error=str(e))
            self._mouse_down = False

        logger.warning("executor_emergency_stop")

    async def execute(
        self, action: ParsedAction, timeout: float | None = None
    ) -> ActionResult:
        """Perform one action.

        Args:
            action: Action to perform
            timeout: Seconds before the action is abandoned

        Returns:
            ActionResult; failures are reported, not raised
        """
        start = time.monotonic()

        if self._locked:
            return ActionResult(success=False, error="Executor is locked")

        timeout = self.config.action_timeout if timeout is None else timeout

        async with self._input_lock:
            # emergency_stop() may have run while this action waited for the lock
            if self._locked:
                logger.info("queued_action_dropped", type=action.type.value)
                return ActionResult(
                    success=False,
                    error="Executor is locked",
                    duration=time.monotonic() - start,
                )

            try:
                await asyncio.wait_for(self._dispatch(action), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("action_timed_out", type=action.type.value, timeout=timeout)
                return ActionResult(
                    success=False,
                    error=f"Action timed out after {timeout}s",
                    duration=time.monotonic() - start,
                )
            except Exception as e:
                logger.warning("action_failed", type=action.type.value, error=str(e))
                return ActionResult(
                    success=False, error=str(e), duration=time.monotonic() - start
                )

        return ActionResult(success=True, duration=time.monotonic() - start)

    async def _dispatch(self, action: ParsedAction) -> None:
        page = self.session.page
        params = action.params

        match action.type:
            case ActionType.CLICK:
                x, y = self._point(action)
                await page.mouse.click(x, y)
                logger.info("clicked", x=x, y=y)

            case ActionType.DOUBLE_CLICK:
                x, y = self._point(action)
                await page.mouse.dblclick(x, y)
                logger.info("double_clicked", x=x, y=y)

            case ActionType.RIGHT_CLICK:
                x, y = self._point(action)
                await page.mouse.click(x, y, button="right")
                logger.info("right_clicked", x=x, y=y)

            case ActionType.HOVER:
                x, y = self._point(action)
                await page.mouse.move(x, y)
                logger.info("hovered", x=x, y=y)

            case ActionType.DRAG:
                x, y = self._point(action)
                end = params.get("end_coordinates")
                if not end:
                    raise ValueError("Drag destination not found")
                end_x, end_y = self._scale(Coordinates(x=end["x"], y=end["y"]))

                await page.mouse.move(x, y)
                await page.mouse.down()
                self._mouse_down = True
                await page.mouse.move(end_x, end_y, steps=10)
                await page.mouse.up()
                self._mouse_down = False
                logger.info("dragged", x=x, y=y, end_x=end_x, end_y=end_y)

            case ActionType.TYPE:
                text = params.get("text", "")
                if action.coordinates is not None:
                    x, y = self._scale(action.coordinates)
                    await page.mouse.click(x, y)
                await page.keyboard.type(text, delay=TYPE_DELAY_MS)
                logger.info("typed", text_length=len(text))

            case ActionType.PRESS:
                key = normalize_key(params.get("key", ""))
                if not key:
                    raise ValueError("Invalid key: empty")
                await page.keyboard.press(key)
                logger.info("key_pressed", key=key)

            case ActionType.HOTKEY:
                keys = [normalize_key(k) for k in params.get("keys", []) if k]
                if not keys:
                    raise ValueError("Invalid hotkey: no keys")
                await self._hotkey(keys)
                logger.info("hotkey_pressed", keys="+".join(keys))

            case ActionType.SCROLL:
                await self._scroll(action)

            case ActionType.WAIT:
                duration_ms = params.get("duration", 1000)
                await asyncio.sleep(duration_ms / 1000)
                logger.info("waited", duration_ms=duration_ms)

            case ActionType.NAVIGATE:
                url = params.get("url") or ""
                app = params.get("app") or ""
                target = url if url.startswith(("http://", "https://")) else resolve_app_url(url or app)
                if not target:
                    raise ValueError(f"Application not found: {app or url}")

                # "load" rather than "networkidle"; SPAs keep the network busy
                await page.goto(target, wait_until="load")
                logger.info("navigated", url=target)

    async def _hotkey(self, keys: list[str]) -> None:
        page = self.session.page
        *modifiers, last = keys

        try:
            for key in modifiers:
                await page.keyboard.down(key)
                self._held_keys.append(key)
            await page.keyboard.press(last)
        finally:
            for key in reversed(modifiers):
                if key in self._held_keys:
                    await page.keyboard.up(key)
                    self._held_keys.remove(key)

    async def _scroll(self, action: ParsedAction) -> None:
        page = self.session.page
        direction = action.params.get("direction", "down")
        amount = action.params.get("amount", 3) * SCROLL_STEP

        if action.coordinates is not None:
            x, y = self._scale(action.coordinates)
        else:
            x, y = self.config.viewport_width // 2, self.config.viewport_height // 2

        match direction:
            case "up":
                delta_x, delta_y = 0, -amount
            case "left":
                delta_x, delta_y = -amount, 0
            case "right":
                delta_x, delta_y = amount, 0
            case _:
                delta_x, delta_y = 0, amount

        await page.mouse.move(x, y)
        await page.mouse.wheel(delta_x, delta_y)
        logger.info("scrolled", x=x, y=y, delta_x=delta_x, delta_y=delta_y)

    def _point(self, action: ParsedAction) -> tuple[int, int]:
        if action.coordinates is None:
            raise ValueError(f"Target not found: {action.target or action.description}")
        return self._scale(action.coordinates)

    def _scale(self, coordinates: Coordinates) -> tuple[int, int]:
        scale = self.session.screenshot_scale
        return round(coordinates.x * scale), round(coordinates.y * scale)
