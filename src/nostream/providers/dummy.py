from __future__ import annotations

import time
import uuid
from typing import Any

from ..types import ChatChoice, ChatCompletionResponse, ChatMessage, ChatRequest, ModelInfo, Usage
from . import BaseProvider

DEFAULT_MODELS = ("echo",)


def _estimate_tokens(text: str) -> int:
    normalized = text.strip()
    if not normalized:
        return 0
    return max(len(normalized) // 4, 1)


def _text_of(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            item["text"] for item in content if isinstance(item, dict) and isinstance(item.get("text"), str)
        )
    return ""


class DummyProvider(BaseProvider):
    """Offline provider that echoes the last user message.

    The model list comes from an optional ``models`` key in the provider's
    configuration.
    """

    def _configured_models(self) -> list[str]:
        extra = self.config.model_extra or {}
        raw = extra.get("models")
        if isinstance(raw, list) and raw:
            return [str(item) for item in raw]
        return list(DEFAULT_MODELS)

    async def fetch_models(self) -> list[ModelInfo]:
        created = int(time.time())
        return [
            ModelInfo(id=model_id, created=created, owned_by=self.name)
            for model_id in self._configured_models()
        ]

    async def completion(self, request: ChatRequest) -> ChatCompletionResponse:
        last_user = next(
            (_text_of(m.content) for m in reversed(request.messages) if m.role == "user"),
            "ping",
        )
        content = f"dummy:{last_user}"
        prompt_tokens = sum(_estimate_tokens(_text_of(m.content)) for m in request.messages)
        completion_tokens = _estimate_tokens(content)
        return ChatCompletionResponse(
            id=f"chatcmpl-{uuid.uuid4().hex[:12]}",
            created=int(time.time()),
            model=request.model,
            choices=[
                ChatChoice(
                    index=0,
                    message=ChatMessage(role="assistant", content=content),
                    finish_reason="stop",
                )
            ],
            usage=Usage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
        )
