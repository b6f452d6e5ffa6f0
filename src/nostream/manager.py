"""Provider directory: live provider clients and the model alias table.

Every model a provider exposes is registered under the alias
``"<provider_name>/<model_id>"``. The alias table is derived data: it is
rebuilt for a provider whenever that provider's model list is fetched and is
dropped with the provider.

Table edits never span an ``await``. Removing a provider's aliases and
inserting the new ones each happen in one uninterrupted block, so a
concurrent router call sees either the old complete set, no entries, or the
new complete set for that provider.
"""

import logging
from enum import Enum
from typing import Mapping

from .config import ProviderConfig
from .errors import (
    GatewayError,
    ProviderInitializationFailed,
    ProviderNotFound,
    UnknownProviderType,
    UpstreamError,
)
from .filters import apply_filter
from .providers import BaseProvider, ProviderRegistry
from .result import Err, Found, Lookup, NotFound, Ok, Result
from .types import ModelAlias, ModelInfo

logger = logging.getLogger(__name__)


class ProviderHealth(str, Enum):
    READY = "ready"
    # create() succeeded but the model list could not be fetched; the
    # provider is live with no aliases until a refresh succeeds
    DEGRADED = "degraded"


def make_alias(provider_name: str, model_id: str) -> ModelAlias:
    return f"{provider_name}/{model_id}"


def _as_gateway_error(exc: Exception) -> GatewayError:
    if isinstance(exc, GatewayError):
        return exc
    return UpstreamError(str(exc) or exc.__class__.__name__)


class ProviderManager:
    def __init__(self, registry: ProviderRegistry | None = None) -> None:
        self.registry = registry if registry is not None else ProviderRegistry.with_defaults()
        self._clients: dict[str, BaseProvider] = {}
        self._configs: dict[str, ProviderConfig] = {}
        self._health: dict[str, ProviderHealth] = {}
        self._aliases: dict[ModelAlias, str] = {}
        self._alias_models: dict[ModelAlias, ModelInfo] = {}

    async def initialize_all(self, configs: Mapping[str, ProviderConfig]) -> Result[None]:
        """Bring up every enabled provider in declaration order.

        The first provider whose ``create()`` fails aborts the whole
        initialization. A provider whose model list cannot be read after a
        successful ``create()`` is kept, degraded, with no aliases.
        """
        enabled = [name for name, cfg in configs.items() if cfg.enabled]
        logger.info(
            "providers.initialize total=%d enabled=%d disabled=%d",
            len(configs),
            len(enabled),
            len(configs) - len(enabled),
        )
        for name, config in configs.items():
            if not config.enabled:
                logger.info("provider.skipped name=%s type=%s", name, config.type)
                continue
            result = await self.add_provider(name, config)
            if isinstance(result, Err):
                return result
        return Ok(None)

    async def add_provider(self, name: str, config: ProviderConfig) -> Result[None]:
        logger.debug("provider.create name=%s type=%s", name, config.type)
        try:
            client = self.registry.create_client(name, config)
        except UnknownProviderType as exc:
            logger.error("provider.init_failed name=%s error=%s", name, exc.message)
            return Err(ProviderInitializationFailed(name, exc))
        try:
            await client.create()
        except Exception as exc:
            error = _as_gateway_error(exc)
            logger.error("provider.init_failed name=%s error=%s", name, error.message)
            return Err(ProviderInitializationFailed(name, error))

        models: list[ModelInfo] | None
        try:
            models = await client.models()
        except Exception as exc:
            error = _as_gateway_error(exc)
            logger.warning(
                "provider.models_unavailable name=%s error=%s", name, error.message
            )
            models = None

        filtered = self._apply_filter(name, config, models) if models is not None else []
        if name in self._clients:
            logger.info("provider.replaced name=%s", name)
        self._remove_aliases(name)
        self._clients[name] = client
        self._configs[name] = config
        self._register_models(name, filtered)
        self._health[name] = ProviderHealth.READY if models is not None else ProviderHealth.DEGRADED
        logger.info(
            "provider.initialized name=%s models=%d health=%s",
            name,
            len(filtered),
            self._health[name].value,
        )
        return Ok(None)

    async def refresh(self, name: str) -> Result[list[ModelInfo]]:
        client = self._clients.get(name)
        if client is None:
            logger.warning("provider.refresh_unknown name=%s", name)
            return Err(ProviderNotFound(name))

        self._remove_aliases(name)
        try:
            models = await client.refresh_models()
        except Exception as exc:
            error = _as_gateway_error(exc)
            if self._clients.get(name) is client:
                self._health[name] = ProviderHealth.DEGRADED
            logger.error("provider.refresh_failed name=%s error=%s", name, error.message)
            return Err(error)

        if self._clients.get(name) is not client:
            # destroyed or replaced while the fetch was in flight
            logger.warning("provider.refresh_discarded name=%s", name)
            return Err(ProviderNotFound(name))
        filtered = self._apply_filter(name, self._configs[name], models)
        self._remove_aliases(name)
        self._register_models(name, filtered)
        self._health[name] = ProviderHealth.READY
        logger.info("provider.refreshed name=%s models=%d", name, len(filtered))
        return Ok(filtered)

    def destroy(self, name: str) -> Result[None]:
        if name not in self._clients:
            return Err(ProviderNotFound(name))
        self._remove_aliases(name)
        del self._clients[name]
        self._configs.pop(name, None)
        self._health.pop(name, None)
        logger.info("provider.destroyed name=%s", name)
        return Ok(None)

    def destroy_all(self) -> None:
        for name in list(self._clients):
            self.destroy(name)

    def resolve(self, alias: ModelAlias) -> Lookup:
        provider = self._aliases.get(alias)
        if provider is None:
            return NotFound(alias)
        return Found(provider)

    def get_client(self, name: str) -> Result[BaseProvider]:
        client = self._clients.get(name)
        if client is None:
            return Err(ProviderNotFound(name))
        return Ok(client)

    def list_aliases(self) -> list[ModelAlias]:
        return list(self._aliases)

    def alias_models(self) -> list[ModelInfo]:
        """Registered models with ``id`` replaced by their alias."""
        return [
            info.model_copy(update={"id": alias})
            for alias, info in list(self._alias_models.items())
        ]

    def provider_names(self) -> list[str]:
        return list(self._clients)

    def health(self) -> dict[str, ProviderHealth]:
        return dict(self._health)

    def _apply_filter(
        self, name: str, config: ProviderConfig, models: list[ModelInfo]
    ) -> list[ModelInfo]:
        if config.filter is None:
            return list(models)
        filtered = apply_filter(models, config.filter.model_ids, config.filter.mode)
        logger.debug(
            "provider.filter name=%s mode=%s upstream=%d filtered=%d",
            name,
            config.filter.mode,
            len(models),
            len(filtered),
        )
        return filtered

    def _register_models(self, name: str, models: list[ModelInfo]) -> None:
        for model in models:
            alias = make_alias(name, model.id)
            self._aliases[alias] = name
            self._alias_models[alias] = model

    def _remove_aliases(self, name: str) -> None:
        stale = [alias for alias, provider in self._aliases.items() if provider == name]
        for alias in stale:
            del self._aliases[alias]
            self._alias_models.pop(alias, None)
