import logging
from enum import Enum
from typing import Callable, Dict

from ..config import ProviderConfig
from ..errors import UnknownProviderType
from ..types import ChatCompletionResponse, ChatRequest, ModelInfo

logger = logging.getLogger(__name__)


class ProviderType(str, Enum):
    OPENAI = "openai"
    DUMMY = "dummy"

    @classmethod
    def parse(cls, raw: str) -> "ProviderType | None":
        try:
            return cls(raw)
        except ValueError:
            return None


class BaseProvider:
    """One configured upstream.

    Subclasses translate every upstream failure into a ``GatewayError``
    subclass (``UpstreamError`` or ``ValidationError``) before it leaves the
    client; callers never see transport exceptions or raw payloads.
    """

    def __init__(self, name: str, config: ProviderConfig):
        self.name = name
        self.config = config
        self._cached_models: list[ModelInfo] | None = None

    def get_name(self) -> str:
        return self.name

    async def create(self) -> None:
        """Validate connectivity and credentials and prime the model cache."""
        self._cached_models = await self.fetch_models()

    async def completion(self, request: ChatRequest) -> ChatCompletionResponse:
        raise NotImplementedError

    async def fetch_models(self) -> list[ModelInfo]:
        raise NotImplementedError

    async def models(self) -> list[ModelInfo]:
        if self._cached_models is not None:
            return list(self._cached_models)
        return await self.refresh_models()

    async def refresh_models(self) -> list[ModelInfo]:
        models = await self.fetch_models()
        self._cached_models = models
        logger.debug("provider.models refreshed name=%s count=%d", self.name, len(models))
        return list(models)


ProviderFactory = Callable[[str, ProviderConfig], BaseProvider]


class ProviderRegistry:
    """Maps a provider type to the factory that builds its clients.

    One factory per type; the same type may back any number of named
    providers (two OpenAI accounts, say).
    """

    def __init__(self) -> None:
        self._factories: Dict[ProviderType, ProviderFactory] = {}

    @classmethod
    def with_defaults(cls) -> "ProviderRegistry":
        registry = cls()
        registry.register(ProviderType.OPENAI, OpenAICompatProvider)
        registry.register(ProviderType.DUMMY, DummyProvider)
        return registry

    def register(self, provider_type: ProviderType | str, factory: ProviderFactory) -> None:
        self._factories[ProviderType(provider_type)] = factory

    def is_registered(self, provider_type: ProviderType | str) -> bool:
        parsed = ProviderType.parse(provider_type)
        return parsed is not None and parsed in self._factories

    def registered_types(self) -> list[ProviderType]:
        return list(self._factories)

    def create_client(self, name: str, config: ProviderConfig) -> BaseProvider:
        available = [item.value for item in self._factories]
        provider_type = ProviderType.parse(config.type)
        if provider_type is None:
            raise UnknownProviderType(config.type or "<missing>", available)
        factory = self._factories.get(provider_type)
        if factory is None:
            raise UnknownProviderType(provider_type.value, available)
        return factory(name, config)


from .dummy import DummyProvider  # noqa: E402
from .openai import OpenAICompatProvider  # noqa: E402

__all__ = [
    "ProviderType",
    "BaseProvider",
    "ProviderFactory",
    "ProviderRegistry",
    "OpenAICompatProvider",
    "DummyProvider",
]
