"""
Helmsman Command-Line Interface

Runs a single natural language command against a browser session.

Usage:
    helmsman "Your task description here"
    helmsman "Open Chrome and search for weather" --headless
    helmsman "Archive the first email" --storage-state gmail_state.json --auto-approve
"""

import argparse
import asyncio
import logging
import sys
import threading
from pathlib import Path
from typing import Any

import structlog

from helmsman.core.config import Config
from helmsman.core.errors import AgentError
from helmsman.core.store import JsonSettingsStore
from helmsman.core.types import ActionPreview, AgentUpdate
from helmsman.executor import BrowserSession, PlaywrightExecutor, PlaywrightScreenCapture
from helmsman.orchestrator import ACTION_PREVIEW_EVENT, UPDATE_EVENT, Orchestrator
from helmsman.safety import StructlogActivityLogger
from helmsman.vision import AnthropicModelClient


logger = structlog.get_logger()


def add_cli_status_messages(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Add user-friendly CLI status messages for key events."""
    event = event_dict.get("event", "")
    level = event_dict.get("level", "info")

    if level not in ("info", "warning", "error"):
        return event_dict

    status_messages = {
        "plan_generated": lambda d: f"🧠 Plan ready ({d.get('steps', 0)} steps)",
        "plan_refined": "🔁 Plan adjusted after a failed step",
        "action_planned": lambda d: f"🔄 {d.get('description', '?')}",
        "action_executed": lambda d: (
            "✅ Done" if d.get("success") else f"❌ Action failed: {d.get('error', 'Unknown error')}"
        ),
        "action_blocked": lambda d: f"🛑 Blocked: {d.get('reason', '?')}",
        "circuit_opened": lambda d: f"⚠️  Too many failures for {d.get('circuit', '?')} actions",
        "confirmation_timed_out": "⌛ No answer - action rejected",
        "task_reported_complete": "🏁 Model reports the task is complete",
    }

    if event in status_messages:
        msg = status_messages[event]
        status = msg(event_dict) if callable(msg) else msg
        print(status, flush=True)

    return event_dict


def configure_logging(level: str) -> None:
    """Configure structlog for console output at the given level."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            add_cli_status_messages,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for CLI."""
    parser = argparse.ArgumentParser(
        prog="helmsman",
        description="Helmsman - Screen-driven AI agent for browser control",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  helmsman "Open Chrome and search for weather"
  helmsman "Go to github.com and star the first trending repository" --headless
  helmsman "Delete the draft called test" --auto-approve

Environment Variables:
  ANTHROPIC_API_KEY        Required: Your Anthropic API key
  HELMSMAN_MODEL           Model used for vision and planning
  HELMSMAN_SETTINGS_PATH   JSON file persisting safety settings
  HELMSMAN_MEMORY_PATH     JSON file persisting long-term memory
  HELMSMAN_LOG_LEVEL       Default log level
        """,
    )

    parser.add_argument(
        "task",
        type=str,
        help="Natural language description of the task to execute",
    )

    parser.add_argument(
        "--url",
        type=str,
        default=None,
        help="Starting URL to open before executing the task",
    )

    parser.add_argument(
        "--api-key",
        type=str,
        default=None,
        help="Anthropic API key (or set ANTHROPIC_API_KEY env var)",
    )

    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="Model to use (default: HELMSMAN_MODEL or claude-haiku-4-5-20251001)",
    )

    parser.add_argument(
        "--headless",
        action="store_true",
        help="Run browser in headless mode (no visible window)",
    )

    parser.add_argument(
        "--auto-approve",
        action="store_true",
        help="Approve every action that asks for confirmation",
    )

    parser.add_argument(
        "--no-plan",
        action="store_true",
        help="Skip the up-front plan and act step by step",
    )

    parser.add_argument(
        "--max-steps",
        type=int,
        default=50,
        help="Maximum loop iterations per task (default: 50)",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: HELMSMAN_LOG_LEVEL or INFO)",
    )

    parser.add_argument(
        "--storage-state",
        type=str,
        default=None,
        help="Path to storage state JSON file with a saved login session",
    )

    return parser


def build_config(args: argparse.Namespace) -> Config:
    """Turn parsed arguments into a Config, keeping env defaults otherwise."""
    overrides: dict[str, Any] = {
        "headless": args.headless,
        "max_steps_per_task": args.max_steps,
        "plan_before_execute": not args.no_plan,
    }
    if args.api_key:
        overrides["anthropic_api_key"] = args.api_key
    if args.model:
        overrides["model"] = args.model
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.storage_state:
        overrides["storage_state"] = Path(args.storage_state)

    return Config(**overrides)


class ConsoleConfirmation:
    """Listener answering confirmation requests from the terminal.

    stdin is read on a daemon thread so an unanswered prompt never holds up
    interpreter shutdown. An answer is only forwarded while its preview is
    still the one being waited on.
    """

    def __init__(self, orchestrator: Orchestrator, auto_approve: bool = False) -> None:
        self.orchestrator = orchestrator
        self.auto_approve = auto_approve
        self._waiting_for: str | None = None

    def __call__(self, event: str, payload: Any) -> None:
        if event == UPDATE_EVENT and isinstance(payload, AgentUpdate):
            if payload.type.value in ("error", "completed"):
                self._waiting_for = None
                print(f"   {payload.message}", flush=True)
            return

        if event != ACTION_PREVIEW_EVENT or not isinstance(payload, ActionPreview):
            return
        if not payload.requires_confirmation:
            return

        if self.auto_approve:
            print(f"👍 Auto-approved: {payload.description}", flush=True)
            self.orchestrator.confirm_action(True)
            return

        self._waiting_for = payload.id
        question = (
            f"⚠️  [{payload.risk_level.value}] {payload.description} - allow? [y/N] "
        )
        threading.Thread(
            target=self._read_answer,
            args=(asyncio.get_running_loop(), payload.id, question),
            name="confirmation-prompt",
            daemon=True,
        ).start()

    def _read_answer(
        self, loop: asyncio.AbstractEventLoop, action_id: str, question: str
    ) -> None:
        try:
            answer = input(question)
        except EOFError:
            answer = ""

        try:
            loop.call_soon_threadsafe(self._answer, action_id, answer)
        except RuntimeError:
            # Loop already closed, the task is over
            logger.debug("confirmation_answer_dropped", action_id=action_id)

    def _answer(self, action_id: str, answer: str) -> None:
        if action_id != self._waiting_for:
            logger.debug("stale_confirmation_answer", action_id=action_id)
            return

        self._waiting_for = None
        self.orchestrator.confirm_action(answer.strip().lower() in ("y", "yes"))


async def run_task(args: argparse.Namespace) -> bool:
    """Execute the task with a fresh browser session."""
    config = build_config(args)

    if not config.anthropic_api_key:
        print("❌ Error: No API key provided.")
        print("Either set ANTHROPIC_API_KEY environment variable or use --api-key flag")
        return False

    session = BrowserSession(config=config)
    orchestrator = Orchestrator(
        screen_capture=PlaywrightScreenCapture(session, config=config),
        model=AnthropicModelClient(config=config),
        executor=PlaywrightExecutor(session, config=config),
        activity_logger=StructlogActivityLogger(),
        config=config,
        settings_store=JsonSettingsStore(config.settings_path) if config.settings_path else None,
        memory_store=JsonSettingsStore(config.memory_path) if config.memory_path else None,
    )
    orchestrator.add_listener(ConsoleConfirmation(orchestrator, auto_approve=args.auto_approve))

    print("=" * 70)
    print("🤖 Helmsman - Screen-driven agent")
    print("=" * 70)
    print(f"📋 Task: {args.task}")
    if args.url:
        print(f"🌐 Starting URL: {args.url}")
    print(f"🖥️  Headless: {config.headless}")
    print(f"🧠 Model: {config.model}")
    print(f"👍 Auto-approve: {args.auto_approve}")
    print("=" * 70)
    print()

    try:
        page = await session.start()
        if args.url:
            await page.goto(args.url, wait_until="load")

        status = await orchestrator.execute(args.task)

        print()
        print("=" * 70)
        print(f"✅ Task completed in {status.steps_completed} steps")
        if status.errors:
            print(f"⚠️  {len(status.errors)} non-fatal errors along the way")
        print("=" * 70)
        return True

    except AgentError as e:
        print(f"\n❌ Task failed: {e}")
        return False

    finally:
        print("\nCleaning up...")
        await session.stop()


def main() -> int:
    """Main entry point for CLI."""
    parser = create_parser()

    if len(sys.argv) == 1:
        parser.print_help()
        return 1

    args = parser.parse_args()
    configure_logging(args.log_level or Config().log_level)

    try:
        success = asyncio.run(run_task(args))
    except KeyboardInterrupt:
        # asyncio.run has already cancelled run_task and closed the browser
        print("\n\n⚠️  Task interrupted by user")
        return 1

    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
