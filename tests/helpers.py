"""In-memory providers shared by the test modules."""

from __future__ import annotations

import asyncio
from typing import Any

from nostream.config import ProviderConfig
from nostream.errors import UpstreamError
from nostream.providers import BaseProvider
from nostream.types import (
    ChatChoice,
    ChatCompletionResponse,
    ChatMessage,
    ChatRequest,
    ModelInfo,
    Usage,
)


def provider_config(**overrides: Any) -> ProviderConfig:
    data: dict[str, Any] = {
        "type": "openai",
        "endpoint": "https://upstream.test/v1",
        "api_key": "sk-test",
    }
    data.update(overrides)
    return ProviderConfig.model_validate(data)


def make_request(model: str = "acme/gpt", **overrides: Any) -> ChatRequest:
    data: dict[str, Any] = {
        "model": model,
        "messages": [{"role": "user", "content": "hello"}],
    }
    data.update(overrides)
    return ChatRequest.model_validate(data)


def make_response(
    *,
    content: str = "hi there",
    completion_tokens: int = 3,
    model: str = "gpt",
    response_id: str = "chatcmpl-upstream",
) -> ChatCompletionResponse:
    return ChatCompletionResponse(
        id=response_id,
        created=1_700_000_000,
        model=model,
        choices=[
            ChatChoice(
                index=0,
                message=ChatMessage(role="assistant", content=content),
                finish_reason="stop",
            )
        ],
        usage=Usage(
            prompt_tokens=5,
            completion_tokens=completion_tokens,
            total_tokens=5 + completion_tokens,
        ),
    )


class RecordingProvider(BaseProvider):
    """Provider whose models and completions are scripted by the test."""

    def __init__(
        self,
        name: str,
        config: ProviderConfig,
        *,
        model_ids: list[str] | None = None,
        outcomes: list[ChatCompletionResponse | Exception] | None = None,
        delay: float = 0.0,
        fail_create: Exception | None = None,
        fail_models: Exception | None = None,
    ) -> None:
        super().__init__(name, config)
        self.model_ids = list(model_ids or ["gpt"])
        self.outcomes = list(outcomes or [])
        self.delay = delay
        self.fail_create = fail_create
        self.fail_models = fail_models
        self.requests: list[ChatRequest] = []
        self.completed = 0
        self.fetches = 0

    async def create(self) -> None:
        if self.fail_create is not None:
            raise self.fail_create
        # leave the cache empty so models() goes through fetch_models
        return None

    async def fetch_models(self) -> list[ModelInfo]:
        self.fetches += 1
        if self.fail_models is not None:
            raise self.fail_models
        return [ModelInfo(id=model_id, created=1, owned_by=self.name) for model_id in self.model_ids]

    async def completion(self, request: ChatRequest) -> ChatCompletionResponse:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        self.completed += 1
        if self.outcomes:
            outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        else:
            outcome = make_response(model=request.model)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def upstream_failure(message: str = "boom") -> UpstreamError:
    return UpstreamError(message, status=500)
