"""Provider configuration read from the environment.

Recognised variables:

- ``NVIDIA_API_KEY`` / ``OPENAI_API_KEY``: enable a provider.
- ``NVIDIA_BASE_URL`` / ``OPENAI_BASE_URL``: override the endpoint.
- ``PIAI_NVIDIA_MODELS`` / ``PIAI_OPENAI_MODELS``: comma separated model
  ids to register for that provider.
"""

import logging
import os

from pydantic import BaseModel, Field

from piai.errors import ConfigError
from piai.message import ModelProvider

logger = logging.getLogger(__name__)

DEFAULT_MODELS = ["openai/gpt-oss-20b"]

_ENV = {
    ModelProvider.NVIDIA: (
        "NVIDIA_API_KEY",
        "NVIDIA_BASE_URL",
        "PIAI_NVIDIA_MODELS",
        "https://integrate.api.nvidia.com/v1",
    ),
    ModelProvider.OPENAI: (
        "OPENAI_API_KEY",
        "OPENAI_BASE_URL",
        "PIAI_OPENAI_MODELS",
        "https://api.openai.com/v1",
    ),
}


class ProviderConfig(BaseModel):
    base_url: str | None = None
    api_key: str
    models: list[str] = Field(default_factory=list)


class Config(BaseModel):
    providers: dict[ModelProvider, ProviderConfig] = Field(default_factory=dict)

    @classmethod
    def from_env(cls) -> "Config":
        """Build a config from environment variables.

        Raises:
            ConfigError: If no provider has an API key set.
        """
        cfg = cls()
        for provider, (key_var, url_var, models_var, default_url) in _ENV.items():
            api_key = os.getenv(key_var)
            if not api_key:
                continue
            models = _split(os.getenv(models_var)) or list(DEFAULT_MODELS)
            cfg.providers[provider] = ProviderConfig(
                base_url=os.getenv(url_var) or default_url,
                api_key=api_key,
                models=models,
            )
            logger.debug(f"Configured {provider.value} with models {models}")

        if not cfg.providers:
            raise ConfigError("no provider configurations found")
        return cfg

    def get_provider(self, name: ModelProvider) -> ProviderConfig:
        try:
            return self.providers[name]
        except KeyError:
            raise ConfigError(f"provider {name.value} not configured") from None

    def set_provider(self, name: ModelProvider, provider: ProviderConfig) -> None:
        self.providers[name] = provider


def _split(value: str | None) -> list[str]:
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]
