"""Model Client - Anthropic vision and text completions."""

import base64
from typing import Any

import anthropic
import structlog

from helmsman.core.config import Config


logger = structlog.get_logger()


class AnthropicModelClient:
    """Model client backed by the Anthropic Messages API."""

    def __init__(
        self,
        config: Config | None = None,
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Application configuration
            client: Pre-built async client (mainly for tests)
        """
        self.config = config or Config()
        self.client = client or anthropic.AsyncAnthropic(
            api_key=self.config.anthropic_api_key
        )

    async def analyze(self, image: Any, prompt: str) -> str:
        """Send a screenshot with a prompt.

        Args:
            image: PNG bytes, or an already base64-encoded string
            prompt: Instruction text

        Returns:
            Model response text
        """
        if isinstance(image, (bytes, bytearray)):
            image_base64 = base64.standard_b64encode(bytes(image)).decode("utf-8")
        else:
            image_base64 = str(image)

        content = [
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": "image/png",
                    "data": image_base64,
                },
            },
            {
                "type": "text",
                "text": prompt,
            },
        ]
        return await self._create(content, kind="vision")

    async def complete(self, prompt: str) -> str:
        """Text-only completion."""
        return await self._create(prompt, kind="text")

    async def _create(self, content: Any, kind: str) -> str:
        try:
            response = await self.client.messages.create(
                model=self.config.model,
                max_tokens=self.config.max_tokens,
                messages=[{"role": "user", "content": content}],
            )
        except anthropic.APIError as e:
            logger.error("model_call_failed", kind=kind, model=self.config.model, error=str(e))
            raise

        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        logger.debug("model_response", kind=kind, length=len(text))
        return text
