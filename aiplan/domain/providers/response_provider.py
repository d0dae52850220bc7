from abc import ABC, abstractmethod
from typing import Any

from aiplan.domain.models.chat_message import ChatMessage


class ResponseProvider(ABC):
    """Abstract interface for model response providers (Strategy pattern)."""

    @classmethod
    def get_metadata(cls) -> dict[str, Any]:
        """Return provider metadata for discovery commands.

        Returns:
            dict with keys: name, description, requires_config, config_keys
        """
        return {
            "name": "unknown",
            "description": "No description available",
            "requires_config": False,
            "config_keys": [],
        }

    @abstractmethod
    def validate(self) -> None:
        """Verify provider is accessible and configured correctly.

        Raises:
            ProviderError: If provider is misconfigured or unreachable
        """
        ...

    @abstractmethod
    def generate(
        self,
        messages: list[ChatMessage],
        *,
        model: str | None = None,
        temperature: float | None = None,
    ) -> str:
        """Send a conversation to the model and return its reply text.

        Args:
            messages: Ordered conversation turns, system prompt first
            model: Optional model override for this call
            temperature: Optional sampling temperature override

        Returns:
            The final concatenated reply text

        Raises:
            ProviderError: If the provider call fails (network, auth, timeout, etc.)
        """
        ...
