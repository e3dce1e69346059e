"""Contracts for the collaborators the agent core talks to."""

from typing import Any, Protocol, runtime_checkable

from .types import ActionResult, ActivityStatus, ParsedAction


@runtime_checkable
class IScreenCapture(Protocol):
    """Interface for screen capture.

    The returned value is an opaque image handle that the model client
    knows how to send.
    """

    async def capture_screen(self) -> Any:
        """Capture the current screen.

        Returns:
            Image reference understood by the model client
        """
        ...


@runtime_checkable
class IModelClient(Protocol):
    """Interface for the language/vision model."""

    async def analyze(self, image: Any, prompt: str) -> str:
        """Ask the model about an image.

        Args:
            image: Image reference from the screen capture
            prompt: Instruction text

        Returns:
            Raw model text
        """
        ...

    async def complete(self, prompt: str) -> str:
        """Text-only completion.

        Args:
            prompt: Instruction text

        Returns:
            Raw model text
        """
        ...


@runtime_checkable
class IExecutor(Protocol):
    """Interface for the device-control layer.

    Implementations serialize physical input so that at most one action is
    in flight, and must tolerate being called again for the same action
    under retry.
    """

    async def execute(
        self, action: ParsedAction, timeout: float | None = None
    ) -> ActionResult:
        """Perform one action.

        Args:
            action: Action to perform
            timeout: Seconds before the executor gives up

        Returns:
            ActionResult describing the outcome
        """
        ...


@runtime_checkable
class IActivityLogger(Protocol):
    """Append-only audit log. Never read back by the agent during a run."""

    async def log(
        self,
        action: str,
        details: str,
        status: ActivityStatus,
        screenshot: Any = None,
    ) -> str:
        """Record an activity.

        Returns:
            ID of the stored record
        """
        ...


@runtime_checkable
class ISettingsStore(Protocol):
    """Key/value persistence for settings and long-term memory."""

    def get(self, key: str, default: Any = None) -> Any:
        ...

    def set(self, key: str, value: Any) -> None:
        ...
