import logging

from .errors import EmptyCompletion, GatewayError, MaxRetriesExceeded
from .result import Err, Ok, Result
from .router import ProviderRouter
from .types import ChatCompletionResponse, ChatRequest

logger = logging.getLogger(__name__)


class CompletionOrchestrator:
    """Calls the router with immediate retry.

    A response reporting zero completion tokens counts as a failed attempt.
    Routing errors (unknown alias, vanished provider) are not retried.
    """

    def __init__(self, router: ProviderRouter, max_retries: int = 3) -> None:
        self.router = router
        self.max_retries = max_retries

    async def run(
        self, request: ChatRequest, max_retries: int | None = None
    ) -> Result[ChatCompletionResponse]:
        attempts = self.max_retries if max_retries is None else max_retries
        last_error: GatewayError | None = None
        for attempt in range(1, attempts + 1):
            result = await self.router.completion(request)
            if isinstance(result, Err):
                last_error = result.error
                if not last_error.retryable:
                    return result
                logger.error(
                    "completion.attempt_failed model=%s attempt=%d/%d error=%s",
                    request.model,
                    attempt,
                    attempts,
                    last_error.message,
                )
                continue
            response = result.value
            if response.usage.completion_tokens == 0:
                last_error = EmptyCompletion(request.model)
                logger.warning(
                    "completion.empty model=%s attempt=%d/%d",
                    request.model,
                    attempt,
                    attempts,
                )
                continue
            if attempt > 1:
                logger.info("completion.recovered model=%s attempt=%d", request.model, attempt)
            return Ok(response)
        return Err(MaxRetriesExceeded(attempts, last_error))
