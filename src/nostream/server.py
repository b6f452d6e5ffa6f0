import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Literal

from typing_extensions import TypedDict

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse

from .completion import CompletionOrchestrator
from .config import GatewayConfig
from .errors import AliasNotFound, AuthenticationFailed, error_body_from
from .manager import ProviderManager
from .providers import ProviderRegistry
from .result import Err, NotFound
from .router import ProviderRouter
from .streaming import FakeStream
from .types import ChatRequest, model_list_from_infos

logger = logging.getLogger(__name__)

SERVICE_NAME = "nostream"
REQUEST_ID_HEADER = "x-nostream-request-id"
BEARER_PREFIX = "Bearer "
PROTECTED_PREFIX = "/v1/"
SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}


class _HealthResponse(TypedDict):
    status: Literal["ok"]
    timestamp: str
    service: str
    providers: dict[str, str]


def _format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _require_api_key(req: Request, keys: frozenset[str]) -> None:
    """Reject the request unless it carries one of ``keys``; no keys rejects all."""
    auth_header = req.headers.get("authorization")
    if not auth_header:
        raise AuthenticationFailed("Missing Authorization header")
    if not auth_header.startswith(BEARER_PREFIX):
        raise AuthenticationFailed("Invalid Authorization header format")
    token = auth_header[len(BEARER_PREFIX):].strip()
    if token not in keys:
        logger.warning("auth.invalid_key key_prefix=%s...", token[:8])
        raise AuthenticationFailed("Invalid API key")


def _log_request_event(
    level: int,
    *,
    event: str,
    req_id: str,
    model: str,
    detail: str | None = None,
) -> None:
    message = f"{event} req_id={req_id} model={model}"
    if detail:
        message = f"{message} detail={detail}"
    logger.log(level, message)


def create_app(
    config: GatewayConfig,
    *,
    registry: ProviderRegistry | None = None,
    manager: ProviderManager | None = None,
) -> FastAPI:
    """Build the gateway application.

    Providers are brought up by the lifespan handler; a provider that fails
    ``create()`` aborts startup.
    """
    manager = manager if manager is not None else ProviderManager(registry)
    router = ProviderRouter(manager)
    orchestrator = CompletionOrchestrator(router, max_retries=config.app.max_retries)
    keys = frozenset(config.app.keys)
    if not keys:
        logger.warning("auth.no_keys detail=every /v1 request will be rejected")

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        result = await manager.initialize_all(config.providers)
        if isinstance(result, Err):
            logger.error("startup.failed error=%s", result.error.message)
            raise RuntimeError(result.error.message)
        logger.info("startup.ready providers=%d models=%d", len(manager.provider_names()), len(manager.list_aliases()))
        try:
            yield
        finally:
            manager.destroy_all()
            logger.info("shutdown.complete")

    app = FastAPI(title=SERVICE_NAME, lifespan=lifespan)
    app.state.config = config
    app.state.manager = manager
    app.state.router = router
    app.state.orchestrator = orchestrator

    @app.middleware("http")
    async def _authenticate(req: Request, call_next):
        # runs before routing so the body is never parsed for unauthenticated callers
        if req.url.path.startswith(PROTECTED_PREFIX):
            try:
                _require_api_key(req, keys)
            except AuthenticationFailed as exc:
                return JSONResponse(error_body_from(exc), status_code=exc.status_code)
        return await call_next(req)

    @app.get("/health")
    async def health() -> _HealthResponse:
        return {
            "status": "ok",
            "timestamp": _format_timestamp(datetime.now(timezone.utc)),
            "service": SERVICE_NAME,
            "providers": {name: state.value for name, state in manager.health().items()},
        }

    @app.get("/v1/models")
    async def list_models() -> dict[str, Any]:
        payload = model_list_from_infos(router.list_models())
        logger.debug("models.listed count=%d", len(payload.data))
        return payload.model_dump(mode="json", exclude_none=True)

    @app.post("/v1/chat/completions")
    async def chat_completions(body: ChatRequest):
        req_id = str(uuid.uuid4())
        headers = {REQUEST_ID_HEADER: req_id}

        if body.stream:
            if isinstance(manager.resolve(body.model), NotFound):
                _log_request_event(
                    logging.WARNING, event="chat.completions unroutable", req_id=req_id, model=body.model
                )
                error = AliasNotFound(body.model)
                return JSONResponse(error_body_from(error), status_code=error.status_code, headers=headers)
            _log_request_event(
                logging.INFO,
                event="chat.completions stream",
                req_id=req_id,
                model=body.model,
                detail=f"messages={len(body.messages)}",
            )
            stream = FakeStream(
                orchestrator,
                body,
                interval=config.app.fake_stream_interval_s,
                max_retries=config.app.max_retries,
            )
            return StreamingResponse(
                stream.frames(),
                media_type="text/event-stream",
                headers={**SSE_HEADERS, **headers},
            )

        _log_request_event(
            logging.INFO,
            event="chat.completions start",
            req_id=req_id,
            model=body.model,
            detail=f"messages={len(body.messages)}",
        )
        result = await orchestrator.run(body)
        if isinstance(result, Err):
            _log_request_event(
                logging.ERROR,
                event="chat.completions failure",
                req_id=req_id,
                model=body.model,
                detail=result.error.message,
            )
            return JSONResponse(
                error_body_from(result.error),
                status_code=result.error.status_code,
                headers=headers,
            )
        response = result.value
        _log_request_event(
            logging.INFO,
            event="chat.completions success",
            req_id=req_id,
            model=body.model,
            detail=(
                f"prompt_tokens={response.usage.prompt_tokens} "
                f"completion_tokens={response.usage.completion_tokens} "
                f"total_tokens={response.usage.total_tokens}"
            ),
        )
        return JSONResponse(response.model_dump(mode="json", exclude_none=True), headers=headers)

    return app
