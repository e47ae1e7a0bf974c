"""CLI entrypoints for prgen commands."""

from __future__ import annotations

import argparse
import json
import subprocess
import sys
from pathlib import Path
from typing import Dict, List, Optional, TypeVar

from .cancellation import CancellationToken
from .config import ConfigError, PrgenConfig, build_registry, load_config
from .errors import (
    NoProviderAvailableError,
    ProviderError,
    TemplateValidationError,
    format_provider_error,
)
from .git.diff import DiffAnalyzer
from .git.local import LocalGitSource
from .llm.base import BackendAdapter
from .logging import configure_logging, get_logger
from .models import GenerationOptions, ProviderType, Template
from .orchestrator import GenerationOrchestrator
from .prompting.builder import build_template_data
from .prompting.template import TemplateEngine
from .registry import ProviderRegistry, create_adapter

T = TypeVar("T")

_LOGGER = get_logger("cli")


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="prgen",
        description="Generate pull request descriptions from diffs with interchangeable LLM backends.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "--config",
        default=".",
        help="Path to .prgen.yml or the directory containing it (defaults to current directory).",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        help="Also write debug-level logs to this file.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate_parser = subparsers.add_parser(
        "generate",
        help="Generate a description for a diff.",
    )
    _add_verbose_option(generate_parser, suppress_default=True)
    source = generate_parser.add_mutually_exclusive_group()
    source.add_argument(
        "--diff-file",
        help="Read the diff from a file ('-' for stdin).",
    )
    source.add_argument(
        "--repo",
        help="Compute the diff from a local Git repository against --base.",
    )
    generate_parser.add_argument(
        "--base",
        default="origin/main",
        help="Commit or ref to compare against when using --repo.",
    )
    generate_parser.add_argument("--template-file", help="Prompt template to render.")
    generate_parser.add_argument(
        "--set",
        dest="template_values",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Template data value (repeatable).",
    )
    generate_parser.add_argument(
        "--provider",
        help="Registry key or provider type (openai, anthropic, ollama, xai).",
    )
    generate_parser.add_argument("--model", default="", help="Model identifier override.")
    generate_parser.add_argument("--api-key", help="API key for a one-off provider.")
    generate_parser.add_argument("--base-url", help="Base URL for a one-off provider.")
    generate_parser.add_argument("--diff-size-limit", type=int, help="Maximum diff characters.")
    generate_parser.add_argument("--temperature", type=float)
    generate_parser.add_argument("--max-tokens", type=int)
    generate_parser.add_argument("--timeout", type=float, help="Overall request deadline in seconds.")
    generate_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full result as JSON instead of only the description.",
    )

    validate_parser = subparsers.add_parser(
        "validate-template",
        help="Check a template against the placeholder vocabulary.",
    )
    _add_verbose_option(validate_parser, suppress_default=True)
    validate_parser.add_argument("template", help="Path to the template file.")
    validate_parser.add_argument(
        "--normalize",
        action="store_true",
        help="Print the template with legacy {{name}} tokens rewritten.",
    )

    stats_parser = subparsers.add_parser("stats", help="Print statistics for a diff.")
    _add_verbose_option(stats_parser, suppress_default=True)
    stats_parser.add_argument(
        "diff",
        nargs="?",
        default="-",
        help="Diff file to analyse (defaults to stdin).",
    )
    stats_parser.add_argument("--size-limit", type=int, help="Diff size limit used for processing method.")

    providers_parser = subparsers.add_parser("providers", help="List configured providers.")
    _add_verbose_option(providers_parser, suppress_default=True)
    providers_parser.add_argument(
        "--health",
        action="store_true",
        help="Probe each provider and report its health.",
    )

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP service.")
    _add_verbose_option(serve_parser, suppress_default=True)
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for prgen commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file)

    try:
        config = load_config(Path(args.config))
    except ConfigError as exc:
        parser.exit(1, f"prgen: {exc}\n")

    if args.command == "generate":
        _run_generate(parser, args, config)
    elif args.command == "validate-template":
        _run_validate(parser, args)
    elif args.command == "stats":
        text = _read_text(parser, args.diff)
        stats = DiffAnalyzer().compute_stats(text, args.size_limit)
        print(json.dumps(stats.to_dict(), indent=2))
    elif args.command == "providers":
        _run_providers(parser, args, config)
    elif args.command == "serve":  # pragma: no cover - integration path
        from .service.app import run_service

        run_service(host=args.host, port=args.port)
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


def _run_generate(
    parser: argparse.ArgumentParser, args: argparse.Namespace, config: PrgenConfig
) -> None:
    try:
        if args.template_file:
            template_text = _read_text(parser, args.template_file)
        else:
            template_text = config.generation.load_template()
        values = _parse_values(parser, args.template_values)
        analyzer = DiffAnalyzer()
        if args.repo:
            source = LocalGitSource()
            diff = source.fetch_diff(args.repo, args.base).text
            metadata = source.fetch_metadata(args.repo, args.base)
            stats = analyzer.compute_stats(diff)
            template_data: Optional[Dict[str, str]] = build_template_data(
                metadata,
                diff,
                stats,
                repo_name=Path(args.repo).resolve().name,
                commit_messages=source.commit_messages(args.repo, args.base),
                files=analyzer.changed_files(diff),
            )
            template_data.update(values)
        else:
            diff = _read_text(parser, args.diff_file or "-")
            template_data = values or None

        options = GenerationOptions(
            model=args.model,
            temperature=_first(args.temperature, config.generation.temperature),
            max_tokens=_first(args.max_tokens, config.generation.max_tokens),
            diff_size_limit=args.diff_size_limit or config.generation.diff_size_limit,
            template=Template(content=template_text) if template_text is not None else None,
            template_data=template_data,
        )
        adapter = _resolve_adapter(args, config)
        result = GenerationOrchestrator().generate(
            adapter,
            options,
            diff_content=diff,
            cancel=CancellationToken(args.timeout),
        )
    except TemplateValidationError as exc:
        details = "\n".join(f"  - {error}" for error in exc.errors)
        parser.exit(1, f"Template is invalid:\n{details}\n")
    except ProviderError as exc:
        parser.exit(1, f"prgen generate failed: {format_provider_error(exc)}\n")
    except (
        NoProviderAvailableError,
        ConfigError,
        ValueError,
        RuntimeError,
        subprocess.CalledProcessError,
    ) as exc:
        parser.exit(1, f"prgen generate failed: {exc}\nRun with --verbose for more details.\n")

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(result.description)
        if result.diff_size_truncated:
            _LOGGER.info(
                "Diff truncated from %d to %d characters",
                result.original_diff_size,
                result.truncated_diff_size,
            )


def _run_validate(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    engine = TemplateEngine()
    template = _read_text(parser, args.template)
    result = engine.validate(template)
    if not result.is_valid:
        details = "\n".join(f"  - {error}" for error in result.errors)
        parser.exit(1, f"Template is invalid:\n{details}\n")
    if args.normalize:
        print(engine.normalize_legacy(template))
    else:
        print("Template is valid")


def _run_providers(
    parser: argparse.ArgumentParser, args: argparse.Namespace, config: PrgenConfig
) -> None:
    try:
        registry = _load_registry(config)
    except ConfigError as exc:
        parser.exit(1, f"prgen: {exc}\n")
    if not len(registry):
        print("No providers configured")
        return
    health = registry.health_check() if args.health else {}
    for entry in registry.entries():
        line = f"{entry.key}\t{entry.provider_type.value}\t{entry.adapter.model}"
        if entry.is_default:
            line += "\t(default)"
        if entry.key in health:
            status = health[entry.key]
            line += "\thealthy" if status.healthy else f"\tunhealthy: {status.error}"
        print(line)


def _load_registry(config: PrgenConfig) -> ProviderRegistry:
    return build_registry(config)


def _resolve_adapter(args: argparse.Namespace, config: PrgenConfig) -> BackendAdapter:
    if args.api_key or args.base_url:
        if not args.provider:
            raise ValueError("--provider must name a provider type when --api-key or --base-url is given")
        settings: Dict[str, object] = {"model": args.model}
        if args.api_key:
            settings["api_key"] = args.api_key
        if args.base_url:
            settings["base_url"] = args.base_url
        return create_adapter(args.provider, settings)

    registry = _load_registry(config)
    fallback: Optional[ProviderType] = None
    if args.provider:
        try:
            fallback = ProviderType.parse(args.provider)
        except ValueError:
            fallback = None
    return registry.get_with_fallback(args.provider, fallback).adapter


def _first(value: Optional[T], fallback: Optional[T]) -> Optional[T]:
    return value if value is not None else fallback


def _parse_values(parser: argparse.ArgumentParser, items: List[str]) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for item in items:
        name, separator, value = item.partition("=")
        if not separator or not name.strip():
            parser.exit(2, f"Invalid --set value '{item}'; expected NAME=VALUE\n")
        values[name.strip()] = value
    return values


def _read_text(parser: argparse.ArgumentParser, path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        parser.exit(1, f"Cannot read {path}: {exc}\n")


if __name__ == "__main__":
    main(sys.argv[1:])
