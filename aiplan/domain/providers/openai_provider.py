"""OpenAI-compatible chat completions provider.

Works against any endpoint that speaks the chat completions protocol
(OpenAI, Azure-style gateways, local servers) through the ``openai`` SDK.
The API key is read from the environment variable named by ``api_key_env``.
"""

import logging
import os
from typing import Any

import openai

from aiplan.domain.errors import ProviderError
from aiplan.domain.models.chat_message import ChatMessage
from aiplan.domain.providers.response_provider import ResponseProvider


logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_API_KEY_ENV = "OPENAI_API_KEY"


class OpenAIProvider(ResponseProvider):
    """Response provider using the OpenAI chat completions API.

    Configuration keys:
        - model: Default model name
        - base_url: API base URL (None = SDK default)
        - api_key_env: Environment variable holding the API key
        - temperature: Default sampling temperature
        - request_timeout: Per-request timeout in seconds
        - network_retries: Retries handled by the SDK on transient errors
    """

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        self.config = config or {}
        self._model = self.config.get("model") or DEFAULT_MODEL
        self._base_url = self.config.get("base_url")
        self._api_key_env = self.config.get("api_key_env") or DEFAULT_API_KEY_ENV
        self._temperature = self.config.get("temperature")
        self._request_timeout = self.config.get("request_timeout")
        self._network_retries = self.config.get("network_retries", 2)
        self._client: Any = None

    @classmethod
    def get_metadata(cls) -> dict[str, Any]:
        return {
            "name": "openai",
            "description": "OpenAI-compatible chat completions API",
            "requires_config": True,
            "config_keys": [
                "model",
                "base_url",
                "api_key_env",
                "temperature",
                "request_timeout",
                "network_retries",
            ],
        }

    def validate(self) -> None:
        """Check that the API key environment variable is set.

        Raises:
            ProviderError: If the key is missing
        """
        if not os.environ.get(self._api_key_env):
            raise ProviderError(
                f"Missing API key: set the {self._api_key_env} environment variable"
            )

    def _get_client(self) -> Any:
        if self._client is None:
            self.validate()
            self._client = openai.OpenAI(
                api_key=os.environ[self._api_key_env],
                base_url=self._base_url,
                max_retries=self._network_retries,
                timeout=self._request_timeout,
            )
        return self._client

    def generate(
        self,
        messages: list[ChatMessage],
        *,
        model: str | None = None,
        temperature: float | None = None,
    ) -> str:
        client = self._get_client()
        request: dict[str, Any] = {
            "model": model or self._model,
            "messages": [m.model_dump() for m in messages],
        }
        effective_temperature = temperature if temperature is not None else self._temperature
        if effective_temperature is not None:
            request["temperature"] = effective_temperature

        logger.debug(f"Calling model {request['model']} with {len(messages)} messages")
        try:
            completion = client.chat.completions.create(**request)
        except openai.OpenAIError as e:
            raise ProviderError(f"Model call failed: {e}") from e

        if not completion.choices:
            raise ProviderError("Model returned no choices")
        return completion.choices[0].message.content or ""
