"""Orchestrator - Observe, plan and act loop driving one agent."""

import asyncio
import time
from typing import Any, Awaitable, Callable

import structlog

from helmsman.core.config import Config
from helmsman.core.errors import (
    ActionExecutionError,
    ActionParseError,
    AlreadyRunningError,
    ConfirmationDeniedError,
    PlanningError,
    StepBudgetExceededError,
    TaskAbortedError,
)
from helmsman.core.interfaces import (
    IActivityLogger,
    IExecutor,
    IModelClient,
    IScreenCapture,
    ISettingsStore,
)
from helmsman.core.types import (
    POINTER_ACTIONS,
    ActionPreview,
    ActionResult,
    ActivityStatus,
    AgentState,
    AgentStatus,
    AgentUpdate,
    AnalysisResult,
    ConversationRole,
    Coordinates,
    MemorySnapshot,
    ParsedAction,
    PlanFeedback,
    PlanningContext,
    RetryResult,
    Task,
    TaskStatus,
    UpdateType,
)
from helmsman.memory import AgentMemory
from helmsman.parser import ActionParser
from helmsman.planner import Planner, PromptBuilder
from helmsman.retry import RetryCoordinator
from helmsman.safety import SafetyValidator


logger = structlog.get_logger()


Listener = Callable[[str, Any], None]

UPDATE_EVENT = "update"
ACTION_PREVIEW_EVENT = "action_preview"


class Orchestrator:
    """Central loop composing parser, safety, retry, memory and planner.

    External collaborators (screen capture, model, executor, activity log)
    are injected; everything else is owned by the instance.
    """

    def __init__(
        self,
        screen_capture: IScreenCapture,
        model: IModelClient,
        executor: IExecutor,
        activity_logger: IActivityLogger,
        config: Config | None = None,
        settings_store: ISettingsStore | None = None,
        memory_store: ISettingsStore | None = None,
        *,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            screen_capture: Screenshot source
            model: Vision/text model client
            executor: Device-control layer
            activity_logger: Append-only audit log
            config: Application configuration
            settings_store: Persistence for safety settings
            memory_store: Persistence for long-term memory
            clock: Wall-clock time source in seconds
            sleep: Coroutine used for the settle delay
        """
        self.config = config or Config()
        self.screen_capture = screen_capture
        self.model = model
        self.executor = executor
        self.activity_logger = activity_logger

        self.parser = ActionParser()
        self.prompts = PromptBuilder()
        self.safety = SafetyValidator(self.config.safety, store=settings_store)
        self.retry = RetryCoordinator(self.config)
        self.memory = AgentMemory(self.config, store=memory_store, clock=clock)
        self.planner = Planner(model, config=self.config)

        self._clock = clock
        self._sleep = sleep
        self._status = AgentStatus()
        self._plan: Task | None = None
        self._abort_requested = False
        self._pending_confirmation: asyncio.Future[bool] | None = None
        self._listeners: list[Listener] = []

    # Public API

    async def execute(self, command: str) -> AgentStatus:
        """Run a natural language command to completion.

        Args:
            command: What the user wants done

        Returns:
            Final status snapshot (state COMPLETED)

        Raises:
            AlreadyRunningError: Another command is in progress
            TaskAbortedError: stop() was requested
            AgentError: Any other fatal task condition
        """
        if self._status.is_running:
            await self.activity_logger.log(
                "command_rejected",
                f"Already running: {self._status.current_task}",
                ActivityStatus.FAILED,
            )
            raise AlreadyRunningError("Agent is already running a task")

        self._abort_requested = False
        self._plan = None
        self._status = AgentStatus(
            is_running=True,
            state=AgentState.THINKING,
            current_task=command,
            start_time=self._clock(),
        )

        logger.info("task_received", task=command)

        try:
            self._emit_update(UpdateType.THINKING, "Understanding your request...")
            await self.activity_logger.log("command_received", command, ActivityStatus.SUCCESS)
            self.memory.add_message(ConversationRole.USER, command)

            if self.config.plan_before_execute:
                await self._create_plan(command)

            await self._execute_loop(command)

        except TaskAbortedError:
            self._finish(AgentState.CANCELLED, TaskStatus.FAILED)
            logger.info("task_cancelled", task=command)
            self._emit_update(UpdateType.ERROR, "Task was stopped by user")
            await self.activity_logger.log(
                "task_cancelled", command, ActivityStatus.CANCELLED
            )
            raise

        except Exception as e:
            message = str(e) or e.__class__.__name__
            self._status.errors.append(message)
            self._finish(AgentState.FAILED, TaskStatus.FAILED)
            logger.error("task_failed", task=command, error=message)
            self._emit_update(UpdateType.ERROR, f"Error: {message}")
            await self.activity_logger.log("task_failed", message, ActivityStatus.FAILED)
            raise

        finally:
            self._status.is_running = False
            self._pending_confirmation = None

        self._status.progress = 100
        self._finish(AgentState.COMPLETED, TaskStatus.COMPLETED)
        logger.info(
            "task_completed",
            task=command,
            steps=self._status.steps_completed,
            errors=len(self._status.errors),
        )
        self._emit_update(UpdateType.COMPLETED, "Task completed successfully!", progress=100)
        await self.activity_logger.log("task_completed", command, ActivityStatus.SUCCESS)

        return self.get_status()

    async def stop(self) -> None:
        """Request cancellation; observed at the top of the next iteration."""
        self._abort_requested = True
        logger.info("task_stop_requested", task=self._status.current_task)
        await self.activity_logger.log(
            "task_stopped", "Stopped by user", ActivityStatus.CANCELLED
        )

    def confirm_action(self, confirmed: bool) -> bool:
        """Answer the pending confirmation request.

        Returns:
            False if nothing was waiting for an answer
        """
        future = self._pending_confirmation
        if future is None or future.done():
            logger.debug("confirmation_ignored", confirmed=confirmed)
            return False

        future.set_result(bool(confirmed))
        return True

    def get_status(self) -> AgentStatus:
        return self._status.model_copy(deep=True)

    @property
    def current_plan(self) -> Task | None:
        return self._plan

    def clear_memory(self) -> None:
        self.memory.clear()

    def add_listener(self, listener: Listener) -> None:
        """Register a callback receiving (event_name, payload)."""
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # Main loop

    async def _execute_loop(self, command: str) -> None:
        max_steps = self.config.max_steps_per_task
        step_count = 0
        successful_actions = 0

        while step_count < max_steps:
            self._check_abort()

            # Observe
            self._status.state = AgentState.THINKING
            self._emit_update(UpdateType.THINKING, "Analyzing screen...")
            screenshot = await self.screen_capture.capture_screen()
            analysis = await self._analyze_screen(screenshot, command)

            self.memory.add_snapshot(
                MemorySnapshot(screen_state=analysis.current_state, timestamp=self._clock())
            )
            self.memory.set_context("current_state", analysis.current_state)

            if analysis.is_task_complete:
                logger.info("task_reported_complete", task=command, steps=step_count)
                return

            # Decide
            self._status.state = AgentState.PLANNING
            self._emit_update(UpdateType.PLANNING, "Deciding next action...")
            action = await self._plan_next_action(command, analysis, screenshot)
            if action is None:
                raise ActionParseError("Could not determine next action")

            action = await self._locate_target(action, screenshot)
            self._status.current_step = action.description

            validation = self.safety.validate_action(action)
            preview = ActionPreview(
                id=f"action-{step_count}",
                type=action.type,
                description=action.description,
                screenshot=screenshot,
                coordinates=action.coordinates,
                requires_confirmation=validation.allowed and validation.requires_confirmation,
                risk_level=validation.risk_level,
                reason=validation.reason,
            )

            # The slot must exist before listeners see the preview
            if preview.requires_confirmation:
                self._pending_confirmation = asyncio.get_running_loop().create_future()
            self._emit(ACTION_PREVIEW_EVENT, preview)

            if not validation.allowed:
                await self._record_blocked(action, validation.reason, screenshot)
            else:
                if preview.requires_confirmation and not await self._wait_for_confirmation(preview):
                    raise ConfirmationDeniedError(
                        f"Action was rejected by user: {action.description}"
                    )

                # Act
                self._status.state = AgentState.EXECUTING
                self._emit_update(
                    UpdateType.EXECUTING, action.description, step_index=step_count + 1
                )
                result = await self._run_action(action)

                if result.success:
                    successful_actions += 1
                else:
                    self._status.errors.append(result.error or "Action failed")
                    await self._refine_plan(successful_actions, result.error)

                await self._record_result(action, result, screenshot)

            step_count += 1
            self._status.steps_completed = step_count
            self._status.progress = self._calculate_progress(step_count)

            await self._sleep(self.config.step_delay)

        raise StepBudgetExceededError(f"Task exceeded maximum steps ({max_steps})")

    async def _create_plan(self, command: str) -> None:
        self._status.state = AgentState.PLANNING
        self._emit_update(UpdateType.PLANNING, "Creating a plan...")

        snapshots = self.memory.get_recent_snapshots(1)
        context = PlanningContext(
            current_screen=snapshots[0].screen_state if snapshots else "",
            previous_actions=[
                entry.metadata["action"]
                for entry in self.memory.get_recent_history(self.config.action_history)
                if entry.metadata and entry.metadata.get("action")
            ],
            error_history=list(self._status.errors),
        )

        plan = await self.planner.create_plan(command, context)
        if not plan.steps:
            raise PlanningError(f"Could not create a plan for: {command}")

        plan.status = TaskStatus.IN_PROGRESS
        self._plan = plan
        self._status.total_steps = len(plan.steps)
        self.memory.add_message(
            ConversationRole.SYSTEM,
            "Plan: " + "; ".join(step.description for step in plan.steps),
        )

    async def _refine_plan(self, step_index: int, error: str | None) -> None:
        if self._plan is None or not self._plan.steps:
            return

        feedback = PlanFeedback(
            step_index=min(step_index, len(self._plan.steps) - 1), error=error
        )
        try:
            self._plan = await self.planner.refine_plan(self._plan, feedback)
        except Exception as e:
            logger.warning("plan_refinement_skipped", error=str(e))
            return

        self._status.total_steps = len(self._plan.steps)

    async def _analyze_screen(self, screenshot: Any, command: str) -> AnalysisResult:
        prompt = self.prompts.build_analysis_prompt(
            command, self.memory.get_recent_history(self.config.analysis_history)
        )
        response = await self.model.analyze(screenshot, prompt)
        analysis = self.parser.parse_analysis(response)

        logger.debug(
            "screen_analyzed",
            complete=analysis.is_task_complete,
            state=analysis.current_state[:100],
        )
        return analysis

    async def _plan_next_action(
        self, command: str, analysis: AnalysisResult, screenshot: Any
    ) -> ParsedAction | None:
        prompt = self.prompts.build_action_prompt(
            command,
            analysis,
            self.memory.get_recent_history(self.config.action_history),
            plan=self._plan,
        )
        response = await self.model.analyze(screenshot, prompt)
        action = self.parser.parse_action(response)

        if action is not None:
            logger.info(
                "action_planned",
                type=action.type.value,
                description=action.description,
                confidence=action.confidence,
            )
        return action

    async def _locate_target(self, action: ParsedAction, screenshot: Any) -> ParsedAction:
        """Ask the model for coordinates when a pointer action only names its target."""
        if (
            action.type not in POINTER_ACTIONS
            or action.coordinates is not None
            or not action.target
        ):
            return action

        response = await self.model.analyze(
            screenshot, self.prompts.build_location_prompt(action.target)
        )
        location = self.parser.parse_location(response)

        if not location.found:
            logger.info("target_not_located", target=action.target)
            return action

        logger.debug("target_located", target=action.target, x=location.x, y=location.y)
        return action.model_copy(
            update={"coordinates": Coordinates(x=location.x, y=location.y)}
        )

    async def _wait_for_confirmation(self, preview: ActionPreview) -> bool:
        """Suspend until confirm_action() answers or the timeout expires (deny)."""
        future = self._pending_confirmation
        if future is None:
            future = self._pending_confirmation = asyncio.get_running_loop().create_future()

        self._status.state = AgentState.WAITING
        self._emit_update(UpdateType.WAITING, "Waiting for confirmation...")
        logger.info("confirmation_requested", action_id=preview.id, risk=preview.risk_level.value)

        try:
            return await asyncio.wait_for(future, timeout=self.config.confirmation_timeout)
        except asyncio.TimeoutError:
            logger.warning("confirmation_timed_out", action_id=preview.id)
            return False
        finally:
            self._pending_confirmation = None

    async def _run_action(self, action: ParsedAction) -> RetryResult[ActionResult]:
        async def operation() -> ActionResult:
            result = await self.executor.execute(action, timeout=self.config.action_timeout)
            if not result.success:
                raise ActionExecutionError(result.error or "Action failed")
            return result

        return await self.retry.execute_with_circuit_breaker(
            operation,
            name=f"Action: {action.type.value}",
            circuit_key=action.type.value,
        )

    async def _record_result(
        self, action: ParsedAction, result: RetryResult[ActionResult], screenshot: Any
    ) -> None:
        outcome = "success" if result.success else (result.error or "failed")

        logger.info(
            "action_executed",
            type=action.type.value,
            success=result.success,
            attempts=result.attempts,
            error=result.error,
        )
        await self.activity_logger.log(
            action.type.value,
            action.description,
            ActivityStatus.SUCCESS if result.success else ActivityStatus.FAILED,
            screenshot=screenshot,
        )
        self.memory.add_message(
            ConversationRole.ASSISTANT,
            f"Executed: {action.description}. Result: {outcome}",
            metadata={"action": action.description, "type": action.type.value, "result": outcome},
        )

    async def _record_blocked(
        self, action: ParsedAction, reason: str | None, screenshot: Any
    ) -> None:
        reason = reason or "Blocked: Not allowed by safety policy"
        self._status.errors.append(reason)

        logger.warning("action_blocked", type=action.type.value, reason=reason)
        await self.activity_logger.log(
            action.type.value,
            f"{action.description} (blocked: {reason})",
            ActivityStatus.FAILED,
            screenshot=screenshot,
        )
        self.memory.add_message(
            ConversationRole.ASSISTANT,
            f"Blocked: {action.description}. Reason: {reason}",
            metadata={
                "action": action.description,
                "type": action.type.value,
                "result": f"blocked: {reason}",
            },
        )

    # Helpers

    def _check_abort(self) -> None:
        if self._abort_requested:
            raise TaskAbortedError("Task aborted")

    def _calculate_progress(self, step_count: int) -> int:
        total = self._status.total_steps or self.config.max_steps_per_task
        return min(100, round(step_count / total * 100))

    def _finish(self, state: AgentState, plan_status: TaskStatus) -> None:
        self._status.state = state
        self._status.current_step = None
        if self._plan is not None:
            self._plan.status = plan_status

    def _emit_update(
        self,
        update_type: UpdateType,
        message: str,
        progress: int | None = None,
        step_index: int | None = None,
    ) -> None:
        self._emit(
            UPDATE_EVENT,
            AgentUpdate(
                type=update_type,
                message=message,
                progress=self._status.progress if progress is None else progress,
                step_index=step_index,
                total_steps=self._status.total_steps or None,
            ),
        )

    def _emit(self, event: str, payload: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, payload)
            except Exception as e:
                logger.warning("listener_failed", listener_event=event, error=str(e))
