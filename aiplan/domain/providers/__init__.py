from .response_provider import ResponseProvider
from .provider_factory import ProviderFactory
from .openai_provider import OpenAIProvider

# Register built-in providers
ProviderFactory.register("openai", OpenAIProvider)

__all__ = ["ResponseProvider", "ProviderFactory", "OpenAIProvider"]
