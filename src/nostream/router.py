import logging

from .errors import AliasNotFound, ClientNotFound, GatewayError, UpstreamError
from .manager import ProviderManager
from .result import Err, NotFound, Ok, Result
from .types import ChatCompletionResponse, ChatRequest, ModelAlias, ModelInfo

logger = logging.getLogger(__name__)


def strip_provider_prefix(alias: ModelAlias, provider_name: str) -> str:
    prefix = f"{provider_name}/"
    if alias.startswith(prefix):
        return alias[len(prefix):]
    return alias


class ProviderRouter:
    """Routes requests addressed by model alias to the owning provider.

    Holds no state of its own; every call reads the directory afresh.
    """

    def __init__(self, manager: ProviderManager) -> None:
        self.manager = manager

    def list_models(self) -> list[ModelInfo]:
        """Every resolvable alias as a model record whose ``id`` is the alias."""
        return self.manager.alias_models()

    async def completion(self, request: ChatRequest) -> Result[ChatCompletionResponse]:
        alias = request.model
        lookup = self.manager.resolve(alias)
        if isinstance(lookup, NotFound):
            logger.warning("router.alias_not_found alias=%s", alias)
            return Err(AliasNotFound(alias))

        provider_name = lookup.provider
        client_result = self.manager.get_client(provider_name)
        if isinstance(client_result, Err):
            # provider destroyed between the alias lookup and now
            logger.error("router.client_not_found provider=%s alias=%s", provider_name, alias)
            return Err(ClientNotFound(provider_name, alias))
        client = client_result.value

        upstream_model = strip_provider_prefix(alias, provider_name)
        upstream_request = request.model_copy(update={"model": upstream_model, "stream": False})
        logger.debug("router.forward provider=%s model=%s", provider_name, upstream_model)
        try:
            response = await client.completion(upstream_request)
        except GatewayError as exc:
            logger.error(
                "router.completion_failed provider=%s model=%s error=%s",
                provider_name,
                upstream_model,
                exc.message,
            )
            return Err(exc)
        except Exception as exc:
            logger.exception(
                "router.completion_crashed provider=%s model=%s", provider_name, upstream_model
            )
            return Err(UpstreamError(str(exc) or exc.__class__.__name__))
        logger.debug("router.completion_ok provider=%s model=%s", provider_name, upstream_model)
        return Ok(response)
