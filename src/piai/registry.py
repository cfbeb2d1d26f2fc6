import logging
from dataclasses import dataclass

from piai.config import Config
from piai.context import Conversation
from piai.errors import ModelNotFoundError, ProviderNotFoundError
from piai.message import AssistantMessage, ModelProvider as ProviderType
from piai.provider import ModelProvider, OpenAIConfig, OpenAIProvider
from piai.stream import AssistantMessageEventStream

logger = logging.getLogger(__name__)

# Providers served through the OpenAI-compatible client.
OPENAI_COMPATIBLE = (ProviderType.NVIDIA, ProviderType.OPENAI)


@dataclass(frozen=True)
class Model:
    provider: ProviderType
    id: str


class Registry:
    """Maps ``(provider, model id)`` to a :class:`ModelProvider`.

    Construct one explicitly and pass it to whatever needs models;
    nothing is registered at import time.

    Example::

        registry = Registry.from_config(Config.from_env())
        stream = registry.stream(
            Model(ProviderType.NVIDIA, "openai/gpt-oss-20b"), conversation,
        )
    """

    def __init__(self) -> None:
        self._models: dict[ProviderType, dict[str, ModelProvider]] = {}

    @classmethod
    def from_config(cls, config: Config) -> "Registry":
        registry = cls()
        for provider_type, provider_cfg in config.providers.items():
            if provider_type not in OPENAI_COMPATIBLE:
                logger.warning(
                    f"Skipping {provider_type.value}: no client available"
                )
                continue
            client_cfg = OpenAIConfig(
                api_key=provider_cfg.api_key, base_url=provider_cfg.base_url,
            )
            for model_id in provider_cfg.models:
                registry.register(
                    provider_type, model_id,
                    OpenAIProvider(client_cfg, model_id, provider_type),
                )
        return registry

    def register(
        self, provider_type: ProviderType, model_id: str, provider: ModelProvider,
    ) -> None:
        self._models.setdefault(provider_type, {})[model_id] = provider
        logger.info(f"Registered {provider_type.value}/{model_id}")

    def get(self, provider_type: ProviderType, model_id: str) -> ModelProvider:
        """Look up a model.

        Raises:
            ProviderNotFoundError: No models are registered for the provider.
            ModelNotFoundError: The provider has no such model.
        """
        models = self._models.get(provider_type)
        if models is None:
            raise ProviderNotFoundError(f"provider not found: {provider_type.value}")
        try:
            return models[model_id]
        except KeyError:
            raise ModelNotFoundError(f"model not found: {model_id}") from None

    def list_providers(self) -> list[ProviderType]:
        return list(self._models)

    def list_models(self, provider_type: ProviderType) -> list[str]:
        return list(self._models.get(provider_type, {}))

    def stream(
        self,
        model: Model,
        conversation: Conversation,
        *,
        timeout: float | None = None,
    ) -> AssistantMessageEventStream:
        return self.get(model.provider, model.id).stream(
            conversation, timeout=timeout,
        )

    async def complete(
        self, model: Model, conversation: Conversation,
    ) -> AssistantMessage:
        return await self.get(model.provider, model.id).complete(conversation)
