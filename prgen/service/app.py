"""FastAPI application entrypoint for prgen service mode."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..cancellation import CancellationToken
from ..config import build_registry, load_config
from ..errors import NoProviderAvailableError, ProviderError, TemplateValidationError
from ..git.bitbucket import (
    BitbucketClient,
    BitbucketServiceError,
    BitbucketUrlError,
    parse_pull_request_url,
)
from ..git.diff import DiffAnalyzer
from ..llm.base import BackendAdapter
from ..logging import get_logger
from ..models import DEFAULT_DIFF_SIZE_LIMIT, GenerationOptions, ProviderType, Template
from ..orchestrator import GenerationOrchestrator
from ..prompting.builder import build_template_data
from ..prompting.constants import DIFF_KEY, LEGACY_DIFF_KEY
from ..registry import ProviderRegistry, create_adapter

T = TypeVar("T")

_LOGGER = get_logger("service")


class TemplatePayload(BaseModel):
    id: Optional[str] = None
    content: str


class GenerateRequest(BaseModel):
    provider_id: str
    model: str = ""
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    template: Optional[TemplatePayload] = None
    template_data: Optional[Dict[str, str]] = None
    diff_content: Optional[str] = None
    diff_size_limit: Optional[int] = Field(default=None, gt=0)
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(default=None, ge=1)
    timeout: Optional[float] = Field(default=None, gt=0)


class PullRequestGenerateRequest(BaseModel):
    pr_url: str
    bitbucket_token: str
    provider_id: str
    model: str = ""
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    template: Optional[TemplatePayload] = None
    template_data: Optional[Dict[str, str]] = None
    diff_size_limit: Optional[int] = Field(default=None, gt=0)
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(default=None, ge=1)
    timeout: Optional[float] = Field(default=None, gt=0)


class GenerateResponse(BaseModel):
    description: str
    provider: str
    model: str
    tokens_used: Optional[int] = None
    diff_stats: Dict[str, Any]
    diff_size_truncated: bool
    original_diff_size: int
    truncated_diff_size: int


class HealthResponse(BaseModel):
    status: str


class ProviderHealth(BaseModel):
    healthy: bool
    error: Optional[str] = None


def _default_registry() -> ProviderRegistry:
    return build_registry(load_config(Path.cwd()))


def create_app(
    registry_factory: Callable[[], ProviderRegistry] = _default_registry,
    orchestrator_factory: Callable[[], GenerationOrchestrator] = GenerationOrchestrator,
    bitbucket_factory: Callable[[str], BitbucketClient] = BitbucketClient,
    *,
    diff_size_limit: int = DEFAULT_DIFF_SIZE_LIMIT,
) -> FastAPI:
    """Create the FastAPI application exposing prgen generation."""

    app = FastAPI(title="prgen Service", version="1.0.0")
    registry = registry_factory()
    analyzer = DiffAnalyzer()
    app.state.registry = registry

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.get("/providers")
    async def providers() -> Dict[str, Any]:
        default = registry.get_default()
        return {
            "default": default.key if default else None,
            "providers": registry.discover_capabilities(),
        }

    @app.get("/providers/health", response_model=Dict[str, ProviderHealth])
    async def providers_health() -> Dict[str, ProviderHealth]:
        statuses = await _run_sync(registry.health_check, None)
        return {
            key: ProviderHealth(healthy=status.healthy, error=status.error)
            for key, status in statuses.items()
        }

    @app.post("/generate", response_model=GenerateResponse)
    async def generate(payload: GenerateRequest) -> GenerateResponse:
        cancel = CancellationToken(payload.timeout)

        def _run() -> GenerateResponse:
            adapter = _resolve_adapter(registry, payload)
            options = _options(payload, diff_size_limit)
            diff_text = payload.diff_content
            if diff_text is None:
                supplied = options.template_data or {}
                diff_text = supplied.get(DIFF_KEY) or supplied.get(LEGACY_DIFF_KEY) or ""
            stats = analyzer.compute_stats(diff_text, options.diff_size_limit)
            result = orchestrator_factory().generate(
                adapter, options, diff_content=diff_text, cancel=cancel
            )
            return GenerateResponse(diff_stats=stats.to_dict(), **result.to_dict())

        return await _run_sync(_run, cancel)

    @app.post("/generate/pull-request", response_model=GenerateResponse)
    async def generate_pull_request(payload: PullRequestGenerateRequest) -> GenerateResponse:
        cancel = CancellationToken(payload.timeout)

        def _run() -> GenerateResponse:
            ref = parse_pull_request_url(payload.pr_url)
            adapter = _resolve_adapter(registry, payload)
            client = bitbucket_factory(payload.bitbucket_token)
            diff = client.fetch_diff(ref)
            metadata = client.fetch_metadata(ref)
            options = _options(payload, diff_size_limit)
            stats = analyzer.compute_stats(diff.text, options.diff_size_limit)
            data = build_template_data(
                metadata,
                diff.text,
                stats,
                repo_name=ref.repo,
                files=analyzer.changed_files(diff.text),
            )
            data.update(payload.template_data or {})
            options.template_data = data
            result = orchestrator_factory().generate(
                adapter, options, diff_content=diff.text, cancel=cancel
            )
            return GenerateResponse(diff_stats=stats.to_dict(), **result.to_dict())

        return await _run_sync(_run, cancel)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
        messages = [
            f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', '')}"
            for error in exc.errors()
        ]
        return _failure(400, "VALIDATION_ERROR", "; ".join(messages), errors=messages)

    @app.exception_handler(TemplateValidationError)
    async def template_error_handler(_: Request, exc: TemplateValidationError) -> JSONResponse:
        return _failure(400, "VALIDATION_ERROR", str(exc), errors=exc.errors)

    @app.exception_handler(BitbucketUrlError)
    async def url_error_handler(_: Request, exc: BitbucketUrlError) -> JSONResponse:
        return _failure(400, exc.code.value, str(exc))

    @app.exception_handler(ValueError)
    async def value_error_handler(_: Request, exc: ValueError) -> JSONResponse:
        return _failure(400, "VALIDATION_ERROR", str(exc))

    @app.exception_handler(NoProviderAvailableError)
    async def no_provider_handler(_: Request, exc: NoProviderAvailableError) -> JSONResponse:
        return _failure(503, NoProviderAvailableError.code, str(exc))

    @app.exception_handler(ProviderError)
    async def provider_error_handler(_: Request, exc: ProviderError) -> JSONResponse:
        _LOGGER.warning("Generation failed: %s", exc.code.value)
        body = exc.to_dict()
        return JSONResponse(status_code=exc.http_status or 502, content=body)

    @app.exception_handler(BitbucketServiceError)
    async def bitbucket_error_handler(_: Request, exc: BitbucketServiceError) -> JSONResponse:
        retryable = exc.code.value in {"RATE_LIMITED", "TIMEOUT", "NETWORK_ERROR"}
        return _failure(
            exc.status or 502,
            exc.code.value,
            str(exc),
            retryable=retryable,
            http_status=exc.status,
        )

    return app


def _resolve_adapter(
    registry: ProviderRegistry, payload: GenerateRequest | PullRequestGenerateRequest
) -> BackendAdapter:
    """Per-request credentials build a fresh adapter; otherwise use the registry."""
    provider_id = payload.provider_id
    if payload.api_key or payload.base_url:
        config: Dict[str, Any] = {"model": payload.model}
        if payload.api_key:
            config["api_key"] = payload.api_key
        if payload.base_url:
            config["base_url"] = payload.base_url
        if payload.timeout is not None:
            config["timeout"] = payload.timeout
        return create_adapter(provider_id, config)
    fallback: Optional[ProviderType]
    try:
        fallback = ProviderType.parse(provider_id)
    except ValueError:
        fallback = None
    return registry.get_with_fallback(provider_id, fallback).adapter


def _options(
    payload: GenerateRequest | PullRequestGenerateRequest, default_limit: int
) -> GenerationOptions:
    template = None
    if payload.template is not None:
        template = Template(content=payload.template.content, id=payload.template.id)
    return GenerationOptions(
        model=payload.model,
        temperature=payload.temperature,
        max_tokens=payload.max_tokens,
        diff_size_limit=payload.diff_size_limit or default_limit,
        template=template,
        template_data=dict(payload.template_data) if payload.template_data is not None else None,
    )


async def _run_sync(func: Callable[[], T], cancel: CancellationToken | None) -> T:
    loop = asyncio.get_running_loop()
    try:
        return await loop.run_in_executor(None, func)
    except asyncio.CancelledError:
        if cancel is not None:
            cancel.cancel()
        raise


def _failure(
    status: int,
    code: str,
    message: str,
    *,
    retryable: bool = False,
    http_status: Optional[int] = None,
    errors: Optional[List[str]] = None,
) -> JSONResponse:
    body: Dict[str, Any] = {"code": code, "message": message, "retryable": retryable}
    if http_status is not None:
        body["http_status"] = http_status
    if errors:
        body["errors"] = list(errors)
    return JSONResponse(status_code=status, content=body)


def run_service(host: str = "0.0.0.0", port: int = 8000) -> None:  # pragma: no cover - integration path
    import uvicorn

    uvicorn.run(create_app(), host=host, port=port)


__all__ = ["GenerateRequest", "GenerateResponse", "create_app", "run_service"]
