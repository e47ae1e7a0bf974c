"""Tests for the FastAPI service mode."""

from __future__ import annotations

from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

from prgen.git.bitbucket import (
    BitbucketErrorCode,
    BitbucketServiceError,
    PullRequestRef,
)
from prgen.llm.base import BackendAdapter, ProviderConfig
from prgen.llm.transport import HTTPStatusError
from prgen.models import AdapterResult, DiffPayload, ProviderType, PullRequestMetadata
from prgen.registry import ProviderRegistry
from prgen.service import create_app


class _StubAdapter(BackendAdapter):
    def __init__(
        self,
        provider_type: ProviderType = ProviderType.OPENAI,
        *,
        error: Optional[Exception] = None,
    ) -> None:
        self.provider_type = provider_type
        super().__init__(ProviderConfig(model="stub-model"), sleep=lambda _: None)
        self.error = error
        self.prompts: List[str] = []

    def execute(self, prompt, options, *, cancel=None):  # type: ignore[no-untyped-def]
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return AdapterResult(
            description="Generated description",
            provider=self.provider_type,
            model=self._resolve_model(options),
            tokens_used=12,
        )

    def probe(self, *, cancel=None):  # type: ignore[no-untyped-def]
        if self.error is not None:
            raise self.error


class _StubBitbucket:
    def __init__(self, token: str) -> None:
        self.token = token
        self.refs: List[PullRequestRef] = []

    def fetch_diff(self, ref: PullRequestRef) -> DiffPayload:
        self.refs.append(ref)
        text = "diff --git a/api.py b/api.py\n+route()\n"
        return DiffPayload(text=text, size_bytes=len(text))

    def fetch_metadata(self, ref: PullRequestRef) -> PullRequestMetadata:
        return PullRequestMetadata(
            title="Add route",
            author="Jo",
            source_branch="feature/route",
            destination_branch="main",
        )


@pytest.fixture
def registry() -> ProviderRegistry:
    return ProviderRegistry()


def _client(registry: ProviderRegistry, bitbucket_factory=_StubBitbucket) -> TestClient:
    return TestClient(create_app(lambda: registry, bitbucket_factory=bitbucket_factory))


def test_health_endpoint(registry) -> None:
    response = _client(registry).get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_generate_uses_registered_provider(registry) -> None:
    adapter = _StubAdapter()
    registry.add("team-gpt", adapter, is_default=True)

    response = _client(registry).post(
        "/generate",
        json={
            "provider_id": "team-gpt",
            "diff_content": "x" * 5000,
            "template": {"content": "Describe: {DIFF_CONTENT}"},
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["description"] == "Generated description"
    assert body["provider"] == "openai"
    assert body["model"] == "stub-model"
    assert body["tokens_used"] == 12
    assert body["diff_size_truncated"] is True
    assert body["original_diff_size"] == 5000
    assert body["truncated_diff_size"] == 4000
    assert body["diff_stats"]["processing_method"] == "chunked"
    assert adapter.prompts == ["Describe: " + "x" * 4000]


def test_generate_reads_the_diff_from_template_data(registry) -> None:
    adapter = _StubAdapter()
    registry.add("team-gpt", adapter, is_default=True)
    diff = "".join(chr(ord("a") + index % 26) for index in range(240_000))

    response = _client(registry).post(
        "/generate",
        json={
            "provider_id": "team-gpt",
            "template": {"content": "Describe: {DIFF_CONTENT}"},
            "template_data": {"DIFF_CONTENT": diff},
            "diff_size_limit": 4000,
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["diff_size_truncated"] is True
    assert body["original_diff_size"] == 240_000
    assert body["truncated_diff_size"] == 4000
    assert body["diff_stats"]["processing_method"] == "chunked"
    assert adapter.prompts == ["Describe: " + diff[:4000]]


def test_pull_request_legacy_diff_token_is_truncated(registry) -> None:
    adapter = _StubAdapter()
    registry.add("gpt", adapter, is_default=True)

    response = _client(registry).post(
        "/generate/pull-request",
        json={
            "pr_url": "https://bitbucket.org/acme/api/pull-requests/7",
            "bitbucket_token": "t",
            "provider_id": "gpt",
            "template": {"content": "{{title}}: {{diff}}"},
            "diff_size_limit": 10,
        },
    )

    assert response.status_code == 200
    assert response.json()["truncated_diff_size"] == 10
    assert adapter.prompts == ["Add route: diff --git"]


def test_generate_falls_back_by_provider_type(registry) -> None:
    registry.add("local", _StubAdapter(ProviderType.OLLAMA))

    response = _client(registry).post("/generate", json={"provider_id": "ollama"})

    assert response.status_code == 200
    assert response.json()["provider"] == "ollama"


def test_generate_without_provider_returns_503(registry) -> None:
    response = _client(registry).post("/generate", json={"provider_id": "missing"})

    assert response.status_code == 503
    assert response.json()["code"] == "NO_PROVIDER_AVAILABLE"


def test_invalid_template_returns_400(registry) -> None:
    adapter = _StubAdapter()
    registry.add("gpt", adapter, is_default=True)

    response = _client(registry).post(
        "/generate",
        json={"provider_id": "gpt", "template": {"content": "{UNKNOWN_FIELD}"}},
    )

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "VALIDATION_ERROR"
    assert body["errors"] == ["Unknown placeholder: {UNKNOWN_FIELD}."]
    assert adapter.prompts == []


def test_request_validation_returns_400(registry) -> None:
    response = _client(registry).post(
        "/generate", json={"provider_id": "gpt", "diff_size_limit": 0}
    )

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


@pytest.mark.parametrize(
    ("status", "code", "retryable"),
    [(429, "RATE_LIMITED", True), (401, "INVALID_API_KEY", False)],
)
def test_provider_errors_are_normalized(registry, status: int, code: str, retryable: bool) -> None:
    registry.add("gpt", _StubAdapter(error=HTTPStatusError(status, f"HTTP {status}")), is_default=True)

    response = _client(registry).post("/generate", json={"provider_id": "gpt"})

    assert response.status_code == status
    body = response.json()
    assert body["code"] == code
    assert body["retryable"] is retryable
    assert body["http_status"] == status


def test_network_errors_map_to_bad_gateway(registry) -> None:
    registry.add("gpt", _StubAdapter(error=ConnectionResetError("reset")), is_default=True)

    response = _client(registry).post("/generate", json={"provider_id": "gpt"})

    assert response.status_code == 502
    assert response.json()["code"] == "NETWORK_ERROR"
    assert "http_status" not in response.json()


def test_per_request_credentials_build_an_adapter(registry, fake_http) -> None:
    fake_http.add_json({"choices": [{"message": {"content": "From request key"}}]})

    response = _client(registry).post(
        "/generate",
        json={"provider_id": "openai", "api_key": "sk-request", "model": "gpt-4o"},
    )

    assert response.status_code == 200
    assert response.json()["description"] == "From request key"
    assert fake_http.calls[0].headers["authorization"] == "Bearer sk-request"
    assert fake_http.calls[0].payload["model"] == "gpt-4o"


def test_generate_for_pull_request(registry) -> None:
    adapter = _StubAdapter()
    registry.add("gpt", adapter, is_default=True)

    response = _client(registry).post(
        "/generate/pull-request",
        json={
            "pr_url": "https://bitbucket.org/acme/api/pull-requests/7",
            "bitbucket_token": "bb-token",
            "provider_id": "gpt",
            "template": {"content": "{PULL_REQUEST_TITLE} ({BRANCH_NAME} -> {{destination_branch}}) by {AUTHOR}\n{FILES_CHANGED}"},
        },
    )

    assert response.status_code == 200
    assert response.json()["diff_stats"]["total_files"] == 1
    assert adapter.prompts == ["Add route (feature/route -> main) by Jo\napi.py"]


def test_pull_request_url_errors_return_400(registry) -> None:
    registry.add("gpt", _StubAdapter(), is_default=True)

    response = _client(registry).post(
        "/generate/pull-request",
        json={
            "pr_url": "https://github.com/acme/api/pull/7",
            "bitbucket_token": "t",
            "provider_id": "gpt",
        },
    )

    assert response.status_code == 400
    assert response.json()["code"] == "NOT_BITBUCKET_DOMAIN"


def test_bitbucket_failures_keep_their_status(registry) -> None:
    registry.add("gpt", _StubAdapter(), is_default=True)

    class _NotFound(_StubBitbucket):
        def fetch_diff(self, ref: PullRequestRef) -> DiffPayload:
            raise BitbucketServiceError(BitbucketErrorCode.NOT_FOUND, "Repository not found", status=404)

    response = _client(registry, _NotFound).post(
        "/generate/pull-request",
        json={
            "pr_url": "https://bitbucket.org/acme/api/pull-requests/7",
            "bitbucket_token": "t",
            "provider_id": "gpt",
        },
    )

    assert response.status_code == 404
    assert response.json() == {
        "code": "NOT_FOUND",
        "message": "Repository not found",
        "retryable": False,
        "http_status": 404,
    }


def test_providers_and_health(registry) -> None:
    registry.add("gpt", _StubAdapter(), is_default=True)
    registry.add("local", _StubAdapter(ProviderType.OLLAMA, error=ConnectionRefusedError("refused")))
    client = _client(registry)

    listing = client.get("/providers").json()
    health = client.get("/providers/health").json()

    assert listing["default"] == "gpt"
    assert set(listing["providers"]) == {"gpt", "local"}
    assert health == {
        "gpt": {"healthy": True, "error": None},
        "local": {"healthy": False, "error": "refused"},
    }
