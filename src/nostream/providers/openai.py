from __future__ import annotations

import json
import logging
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from ..errors import UpstreamError, ValidationError
from ..types import ChatCompletionResponse, ChatRequest, ModelInfo, ModelListResponse
from . import BaseProvider

logger = logging.getLogger(__name__)

COMPLETION_TIMEOUT_S = 600.0
MODELS_TIMEOUT_S = 30.0


class _UpstreamErrorDetail(BaseModel):
    model_config = ConfigDict(extra="allow")

    message: str
    type: str | None = None
    param: str | None = None
    code: str | int | None = None


class _UpstreamErrorBody(BaseModel):
    model_config = ConfigDict(extra="allow")

    error: _UpstreamErrorDetail


def _parse_error_body(payload: Any) -> _UpstreamErrorDetail | None:
    if not isinstance(payload, dict) or "error" not in payload:
        return None
    try:
        return _UpstreamErrorBody.model_validate(payload).error
    except PydanticValidationError:
        return None


def _describe(payload: Any, response: httpx.Response) -> str:
    if isinstance(payload, (dict, list)):
        return json.dumps(payload)
    text = response.text
    if text:
        return text
    return response.reason_phrase or "no response body"


def _error_from_detail(
    detail: _UpstreamErrorDetail, *, status: int | None
) -> UpstreamError:
    prefix = f"OpenAI API error ({status})" if status is not None else "OpenAI API error"
    message = f"{prefix}: {detail.type or 'error'} - {detail.message}"
    code = str(detail.code) if detail.code is not None else None
    if code:
        message = f"{message} (code: {code})"
    return UpstreamError(message, status=status, upstream_code=code, upstream_type=detail.type)


class OpenAICompatProvider(BaseProvider):
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    def _url(self, path: str) -> str:
        return f"{self.config.base_url}/{path.lstrip('/')}"

    def _decode(self, response: httpx.Response) -> Any:
        """Return the JSON body after rejecting error statuses and error bodies."""
        try:
            payload: Any = response.json()
        except ValueError:
            payload = None
        status = response.status_code
        if status < 200 or status >= 300:
            detail = _parse_error_body(payload)
            if detail is not None:
                raise _error_from_detail(detail, status=status)
            raise UpstreamError(
                f"OpenAI API returned status {status}: {_describe(payload, response)}",
                status=status,
            )
        # some proxies answer 200 with an error object
        detail = _parse_error_body(payload)
        if detail is not None:
            raise _error_from_detail(detail, status=None)
        if payload is None:
            raise ValidationError(
                f"Invalid response format from OpenAI API: body is not JSON ({_describe(payload, response)})"
            )
        return payload

    async def fetch_models(self) -> list[ModelInfo]:
        logger.debug("openai.models fetch name=%s", self.name)
        try:
            async with httpx.AsyncClient(timeout=MODELS_TIMEOUT_S) as client:
                response = await client.get(self._url("models"), headers=self._headers())
        except httpx.HTTPError as exc:
            raise UpstreamError(f"OpenAI API error: {exc}") from exc
        payload = self._decode(response)
        try:
            parsed = ModelListResponse.model_validate(payload)
        except PydanticValidationError as exc:
            raise ValidationError(
                f"Invalid response format from OpenAI API: {exc.error_count()} validation errors"
            ) from exc
        logger.debug("openai.models fetched name=%s count=%d", self.name, len(parsed.data))
        return list(parsed.data)

    async def completion(self, request: ChatRequest) -> ChatCompletionResponse:
        payload = request.upstream_payload()
        logger.debug("openai.completion send name=%s model=%s", self.name, request.model)
        try:
            async with httpx.AsyncClient(timeout=COMPLETION_TIMEOUT_S) as client:
                response = await client.post(
                    self._url("chat/completions"),
                    headers=self._headers(),
                    json=payload,
                )
        except httpx.HTTPError as exc:
            raise UpstreamError(f"OpenAI API error: {exc}") from exc
        data = self._decode(response)
        try:
            parsed = ChatCompletionResponse.model_validate(data)
        except PydanticValidationError as exc:
            logger.error(
                "openai.completion invalid name=%s model=%s errors=%d",
                self.name,
                request.model,
                exc.error_count(),
            )
            raise ValidationError(
                f"Failed to validate completion response: {exc.error_count()} validation errors"
            ) from exc
        return parsed
