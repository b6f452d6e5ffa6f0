import time
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

ModelAlias = str


class ChatMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    role: Literal["system", "user", "assistant", "function", "tool"]
    content: Union[str, List[Dict[str, Any]], None] = None
    name: Optional[str] = None
    tool_call_id: Optional[str] = None
    tool_calls: Optional[List[Dict[str, Any]]] = None
    function_call: Optional[Dict[str, Any]] = None


class ChatRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    model: str = Field(min_length=1)
    messages: List[ChatMessage] = Field(min_length=1)
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    top_p: Optional[float] = Field(default=None, ge=0, le=1)
    n: Optional[int] = Field(default=None, ge=1)
    stream: Optional[bool] = False
    stop: Union[str, List[str], None] = None
    max_tokens: Optional[int] = Field(default=None, ge=1)
    presence_penalty: Optional[float] = Field(default=None, ge=-2, le=2)
    frequency_penalty: Optional[float] = Field(default=None, ge=-2, le=2)
    logit_bias: Optional[Dict[str, float]] = None
    user: Optional[str] = None
    tools: Optional[List[Dict[str, Any]]] = None
    tool_choice: Optional[Union[str, Dict[str, Any]]] = None
    functions: Optional[List[Dict[str, Any]]] = None
    function_call: Optional[Union[str, Dict[str, Any]]] = None
    response_format: Optional[Dict[str, Any]] = None

    def upstream_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class Usage(BaseModel):
    model_config = ConfigDict(extra="allow")

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatChoice(BaseModel):
    model_config = ConfigDict(extra="allow")

    index: int = 0
    message: ChatMessage
    finish_reason: Optional[
        Literal["stop", "length", "function_call", "tool_calls", "content_filter"]
    ] = None

    @field_validator("finish_reason", mode="before")
    @classmethod
    def _lower_finish_reason(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.lower()
        return value


class ChatCompletionResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    object: Literal["chat.completion"] = "chat.completion"
    created: int
    model: str
    choices: List[ChatChoice]
    usage: Usage


class ModelInfo(BaseModel):
    """Upstream model description; provider specific fields are preserved."""

    model_config = ConfigDict(extra="allow")

    id: str
    object: str = "model"
    created: Optional[int] = None
    owned_by: Optional[str] = None


class ModelListResponse(BaseModel):
    object: Literal["list"] = "list"
    data: List[ModelInfo]


def chunk_payload(
    *,
    chunk_id: str,
    created: int,
    model: str,
    choices: list[dict[str, Any]],
) -> dict[str, Any]:
    return {
        "id": chunk_id,
        "object": "chat.completion.chunk",
        "created": created,
        "model": model,
        "choices": choices,
    }


def keepalive_chunk(chunk_id: str, created: int, model: str) -> dict[str, Any]:
    return chunk_payload(
        chunk_id=chunk_id,
        created=created,
        model=model,
        choices=[{"index": 0, "delta": {"content": ""}, "finish_reason": None}],
    )


def role_chunk(response: ChatCompletionResponse) -> dict[str, Any] | None:
    if not response.choices:
        return None
    first = response.choices[0]
    if not first.message.role:
        return None
    return chunk_payload(
        chunk_id=response.id,
        created=response.created,
        model=response.model,
        choices=[
            {
                "index": first.index,
                "delta": {"role": first.message.role},
                "finish_reason": None,
            }
        ],
    )


def content_chunk(response: ChatCompletionResponse) -> dict[str, Any]:
    return chunk_payload(
        chunk_id=response.id,
        created=response.created,
        model=response.model,
        choices=[
            {
                "index": choice.index,
                "delta": {"content": choice.message.content},
                "finish_reason": None,
            }
            for choice in response.choices
        ],
    )


def finish_chunk(response: ChatCompletionResponse) -> dict[str, Any]:
    return chunk_payload(
        chunk_id=response.id,
        created=response.created,
        model=response.model,
        choices=[
            {"index": choice.index, "delta": {}, "finish_reason": choice.finish_reason}
            for choice in response.choices
        ],
    )


def model_list_from_infos(infos: list[ModelInfo]) -> ModelListResponse:
    now = int(time.time())
    data = [
        ModelInfo(
            id=info.id,
            created=info.created if info.created is not None else now,
            owned_by=info.owned_by or "system",
        )
        for info in sorted(infos, key=lambda item: item.id)
    ]
    return ModelListResponse(data=data)
