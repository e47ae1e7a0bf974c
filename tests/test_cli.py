"""CLI parser and command tests."""

from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

import pytest

from prgen import cli
from prgen.cli import _build_parser
from prgen.llm.base import BackendAdapter, ProviderConfig
from prgen.llm.transport import HTTPStatusError
from prgen.models import AdapterResult, ProviderType
from prgen.registry import ProviderRegistry


class _StubAdapter(BackendAdapter):
    provider_type = ProviderType.OLLAMA

    def __init__(self, error: Optional[Exception] = None) -> None:
        super().__init__(ProviderConfig(model="stub-model"), sleep=lambda _: None)
        self.error = error
        self.prompts: List[str] = []

    def execute(self, prompt, options, *, cancel=None):  # type: ignore[no-untyped-def]
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return AdapterResult(
            description="## Summary\nStub output",
            provider=self.provider_type,
            model=self._resolve_model(options),
            tokens_used=9,
        )

    def probe(self, *, cancel=None):  # type: ignore[no-untyped-def]
        if self.error is not None:
            raise self.error


@pytest.fixture
def stub_registry(monkeypatch: pytest.MonkeyPatch) -> ProviderRegistry:
    registry = ProviderRegistry()
    monkeypatch.setattr(cli, "_load_registry", lambda config: registry)
    return registry


def _diff_file(tmp_path: Path, text: str = "diff --git a/a.py b/a.py\n+x\n") -> str:
    path = tmp_path / "change.diff"
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_cli_accepts_verbose_before_command() -> None:
    args = _build_parser().parse_args(["--verbose", "providers"])
    assert args.verbose is True
    assert args.command == "providers"


def test_cli_accepts_verbose_after_command() -> None:
    args = _build_parser().parse_args(["stats", "--verbose"])
    assert args.verbose is True
    assert args.diff == "-"


def test_generate_sources_are_mutually_exclusive() -> None:
    with pytest.raises(SystemExit):
        _build_parser().parse_args(["generate", "--diff-file", "a", "--repo", "b"])


def test_generate_collects_template_values() -> None:
    args = _build_parser().parse_args(
        ["generate", "--set", "AUTHOR=kim", "--set", "REPO_NAME=api", "--provider", "xai"]
    )
    assert args.template_values == ["AUTHOR=kim", "REPO_NAME=api"]
    assert args.provider == "xai"
    assert args.base == "origin/main"


def test_generate_prints_description(tmp_path: Path, stub_registry, capsys) -> None:
    adapter = _StubAdapter()
    stub_registry.add("local", adapter, is_default=True)
    template = tmp_path / "prompt.md"
    template.write_text("By {AUTHOR}: {DIFF_CONTENT}", encoding="utf-8")

    cli.main(
        [
            "--config",
            str(tmp_path),
            "generate",
            "--diff-file",
            _diff_file(tmp_path),
            "--template-file",
            str(template),
            "--set",
            "AUTHOR=kim",
        ]
    )

    assert capsys.readouterr().out == "## Summary\nStub output\n"
    assert adapter.prompts == ["By kim: diff --git a/a.py b/a.py\n+x\n"]


def test_generate_json_output(tmp_path: Path, stub_registry, capsys) -> None:
    stub_registry.add("local", _StubAdapter(), is_default=True)

    cli.main(
        [
            "--config",
            str(tmp_path),
            "generate",
            "--diff-file",
            _diff_file(tmp_path, "x" * 50),
            "--diff-size-limit",
            "10",
            "--model",
            "codellama",
            "--json",
        ]
    )

    payload = json.loads(capsys.readouterr().out)
    assert payload["provider"] == "ollama"
    assert payload["model"] == "codellama"
    assert payload["diff_size_truncated"] is True
    assert payload["truncated_diff_size"] == 10


def test_generate_reports_invalid_template(tmp_path: Path, stub_registry, capsys) -> None:
    stub_registry.add("local", _StubAdapter(), is_default=True)
    template = tmp_path / "bad.md"
    template.write_text("{NOPE}", encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        cli.main(
            ["--config", str(tmp_path), "generate", "--diff-file", _diff_file(tmp_path),
             "--template-file", str(template)]
        )

    assert excinfo.value.code == 1
    assert "Unknown placeholder: {NOPE}." in capsys.readouterr().err


def test_generate_reports_provider_errors(tmp_path: Path, stub_registry, capsys) -> None:
    stub_registry.add("local", _StubAdapter(HTTPStatusError(429, "HTTP 429")), is_default=True)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--config", str(tmp_path), "generate", "--diff-file", _diff_file(tmp_path)])

    assert excinfo.value.code == 1
    assert "Too many requests to OLLAMA" in capsys.readouterr().err


def test_generate_without_providers_fails(tmp_path: Path, stub_registry, capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--config", str(tmp_path), "generate", "--diff-file", _diff_file(tmp_path)])

    assert excinfo.value.code == 1
    assert "prgen generate failed" in capsys.readouterr().err


def test_bad_set_value_exits_with_usage_code(tmp_path: Path, stub_registry) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(
            ["--config", str(tmp_path), "generate", "--diff-file", _diff_file(tmp_path), "--set", "oops"]
        )

    assert excinfo.value.code == 2


def test_validate_template(tmp_path: Path, capsys) -> None:
    template = tmp_path / "legacy.md"
    template.write_text("{{title}}\n{{diff}}", encoding="utf-8")

    cli.main(["--config", str(tmp_path), "validate-template", str(template)])
    assert capsys.readouterr().out == "Template is valid\n"

    cli.main(["--config", str(tmp_path), "validate-template", str(template), "--normalize"])
    assert capsys.readouterr().out == "{PULL_REQUEST_TITLE}\n{DIFF_CONTENT}\n"


def test_stats_prints_json(tmp_path: Path, capsys) -> None:
    cli.main(["--config", str(tmp_path), "stats", _diff_file(tmp_path)])

    stats = json.loads(capsys.readouterr().out)
    assert stats["total_files"] == 1
    assert stats["file_types"] == {"py": 1}


def test_providers_lists_health(tmp_path: Path, stub_registry, capsys) -> None:
    stub_registry.add("local", _StubAdapter(), is_default=True)
    stub_registry.add("broken", _StubAdapter(ConnectionRefusedError("refused")))

    cli.main(["--config", str(tmp_path), "providers", "--health"])

    lines = capsys.readouterr().out.splitlines()
    assert lines == [
        "local\tollama\tstub-model\t(default)\thealthy",
        "broken\tollama\tstub-model\tunhealthy: refused",
    ]


def test_providers_when_empty(tmp_path: Path, stub_registry, capsys) -> None:
    cli.main(["--config", str(tmp_path), "providers"])

    assert capsys.readouterr().out == "No providers configured\n"


def test_log_file_receives_debug_output(tmp_path: Path, stub_registry, capsys) -> None:
    stub_registry.add("local", _StubAdapter(), is_default=True)
    log_file = tmp_path / "prgen.log"

    cli.main(
        ["--config", str(tmp_path), "--log-file", str(log_file),
         "generate", "--diff-file", _diff_file(tmp_path)]
    )

    assert capsys.readouterr().out == "## Summary\nStub output\n"
    assert "stage=delegate_to_adapter" in log_file.read_text(encoding="utf-8")
