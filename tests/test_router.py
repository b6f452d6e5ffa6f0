import asyncio

from helpers import (
    RecordingProvider,
    make_request,
    make_response,
    provider_config,
    upstream_failure,
)

from nostream.completion import CompletionOrchestrator
from nostream.config import ProviderConfig
from nostream.errors import (
    AliasNotFound,
    ClientNotFound,
    MaxRetriesExceeded,
    ProviderNotFound,
    UpstreamError,
)
from nostream.manager import ProviderManager
from nostream.providers import ProviderRegistry
from nostream.result import Err, Found, Ok
from nostream.router import ProviderRouter, strip_provider_prefix


def build_router(*clients: RecordingProvider) -> ProviderRouter:
    by_name = {client.name: client for client in clients}
    registry = ProviderRegistry()

    def factory(name: str, config: ProviderConfig) -> RecordingProvider:
        return by_name[name]

    registry.register("openai", factory)
    manager = ProviderManager(registry)
    asyncio.run(manager.initialize_all({name: provider_config() for name in by_name}))
    return ProviderRouter(manager)


def test_strip_provider_prefix() -> None:
    assert strip_provider_prefix("acme/gpt", "acme") == "gpt"
    assert strip_provider_prefix("acme/org/model", "acme") == "org/model"
    assert strip_provider_prefix("gpt", "acme") == "gpt"


def test_list_models_reports_aliases() -> None:
    router = build_router(RecordingProvider("acme", provider_config(), model_ids=["gpt", "mini"]))

    assert sorted(info.id for info in router.list_models()) == ["acme/gpt", "acme/mini"]


def test_unknown_alias_never_reaches_a_provider() -> None:
    acme = RecordingProvider("acme", provider_config(), model_ids=["foo"])
    router = build_router(acme)

    result = asyncio.run(router.completion(make_request("ghost/foo")))

    assert isinstance(result, Err)
    assert isinstance(result.error, AliasNotFound)
    assert result.error.code.value == "model_not_found"
    assert acme.requests == []


def test_completion_strips_prefix_and_disables_streaming() -> None:
    acme = RecordingProvider("acme", provider_config(), model_ids=["gpt", "org/model"])
    router = build_router(acme)

    first = asyncio.run(router.completion(make_request("acme/gpt", stream=True, temperature=0.3)))
    second = asyncio.run(router.completion(make_request("acme/org/model")))

    assert isinstance(first, Ok)
    assert isinstance(second, Ok)
    sent = acme.requests[0]
    assert sent.model == "gpt"
    assert sent.stream is False
    assert sent.temperature == 0.3
    assert acme.requests[1].model == "org/model"


def test_caller_request_is_not_mutated() -> None:
    router = build_router(RecordingProvider("acme", provider_config()))
    request = make_request("acme/gpt", stream=True)

    asyncio.run(router.completion(request))

    assert request.model == "acme/gpt"
    assert request.stream is True


def test_upstream_response_is_returned_verbatim() -> None:
    upstream = make_response(response_id="chatcmpl-xyz", model="gpt-2024")
    router = build_router(RecordingProvider("acme", provider_config(), outcomes=[upstream]))

    result = asyncio.run(router.completion(make_request("acme/gpt")))

    assert isinstance(result, Ok)
    assert result.value.id == "chatcmpl-xyz"
    assert result.value.model == "gpt-2024"


def test_provider_errors_come_back_as_err() -> None:
    router = build_router(
        RecordingProvider("acme", provider_config(), outcomes=[upstream_failure("rate limited")])
    )

    result = asyncio.run(router.completion(make_request("acme/gpt")))

    assert isinstance(result, Err)
    assert isinstance(result.error, UpstreamError)
    assert result.error.message == "rate limited"


def test_alias_resolving_to_vanished_provider() -> None:
    class StaleDirectory:
        def resolve(self, alias):
            return Found("acme")

        def get_client(self, name):
            return Err(ProviderNotFound(name))

    router = ProviderRouter(StaleDirectory())  # type: ignore[arg-type]

    result = asyncio.run(router.completion(make_request("acme/gpt")))

    assert isinstance(result, Err)
    assert isinstance(result.error, ClientNotFound)
    assert result.error.name == "acme"
    assert result.error.alias == "acme/gpt"


def test_unexpected_provider_exception_comes_back_as_err() -> None:
    router = build_router(RecordingProvider("acme", provider_config(), outcomes=[KeyError("choices")]))

    result = asyncio.run(router.completion(make_request("acme/gpt")))

    assert isinstance(result, Err)
    assert isinstance(result.error, UpstreamError)
    assert result.error.retryable
    assert "choices" in result.error.message


def test_unexpected_provider_exception_is_retried() -> None:
    acme = RecordingProvider("acme", provider_config(), outcomes=[KeyError("choices")])
    orchestrator = CompletionOrchestrator(build_router(acme), max_retries=3)

    result = asyncio.run(orchestrator.run(make_request("acme/gpt")))

    assert isinstance(result, Err)
    assert isinstance(result.error, MaxRetriesExceeded)
    assert result.error.attempts == 3
    assert acme.completed == 3


def test_unexpected_exception_recovers_on_next_attempt() -> None:
    final = make_response(response_id="chatcmpl-second")
    acme = RecordingProvider("acme", provider_config(), outcomes=[RuntimeError(), final])
    orchestrator = CompletionOrchestrator(build_router(acme), max_retries=3)

    result = asyncio.run(orchestrator.run(make_request("acme/gpt")))

    assert isinstance(result, Ok)
    assert result.value.id == "chatcmpl-second"
    assert acme.completed == 2
