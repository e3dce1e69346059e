"""Example: Execute a simple task with Helmsman."""

import asyncio

from helmsman.core.config import Config
from helmsman.executor import BrowserSession, PlaywrightExecutor, PlaywrightScreenCapture
from helmsman.orchestrator import ACTION_PREVIEW_EVENT, Orchestrator
from helmsman.safety import StructlogActivityLogger
from helmsman.vision import AnthropicModelClient


async def main() -> None:
    """Run a simple example task."""
    config = Config(
        headless=False,  # Show browser for demo
        plan_before_execute=False,
    )

    session = BrowserSession(config)
    orchestrator = Orchestrator(
        screen_capture=PlaywrightScreenCapture(session, config),
        model=AnthropicModelClient(config),
        executor=PlaywrightExecutor(session, config),
        activity_logger=StructlogActivityLogger(),
        config=config,
    )

    # Approve everything; a real UI would ask the user
    def approve(event, payload):
        if event == ACTION_PREVIEW_EVENT and payload.requires_confirmation:
            orchestrator.confirm_action(True)

    orchestrator.add_listener(approve)

    try:
        page = await session.start()
        await page.goto("https://example.com")

        task = "Click the 'More information...' link"
        status = await orchestrator.execute(task)
        print(f"Task completed in {status.steps_completed} steps: {task}")

    finally:
        await session.stop()


if __name__ == "__main__":
    asyncio.run(main())
