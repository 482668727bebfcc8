# tests/unit/test_cli.py

from __future__ import annotations
import json
import sys
from pathlib import Path
from textwrap import dedent
import httpx
import pytest
from typer.testing import CliRunner

# Ensure "src" is importable
sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

import chatwire.bootstrap as bootstrap  # type: ignore
import chatwire.cli as cli  # type: ignore
from chatwire.providers.registry import ProviderRegistry  # type: ignore

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_registry(monkeypatch):
    monkeypatch.setattr(ProviderRegistry, "_profiles", {}, raising=True)


@pytest.fixture
def cfg(tmp_path: Path) -> Path:
    path = tmp_path / "config" / "default.yaml"
    path.parent.mkdir(parents=True)
    path.write_text(
        dedent(
            """
            client: { provider: ollama, model: llama3, stream: true }
            providers:
              mylocal:
                base_url: http://localhost:8080
                api_path: /v1/chat/completions
                list_path: /v1/models
                wire: openai
            secrets: { method: env }
            """
        ).lstrip("\n"),
        encoding="utf-8",
    )
    return path


def serve(monkeypatch, handler):
    """Route every client the CLI builds through an in-memory transport."""
    sent = []

    def record(request: httpx.Request) -> httpx.Response:
        sent.append(request)
        return handler(request)

    def fake_build(config_path, **kwargs):
        return bootstrap.build_client(config_path, transport=httpx.MockTransport(record), **kwargs)

    monkeypatch.setattr(cli, "build_client", fake_build, raising=True)
    return sent


def test_chat_streams_tokens(cfg: Path, monkeypatch):
    body = (
        b'{"message":{"role":"assistant","content":"Hel"},"done":false}\n'
        b'{"message":{"role":"assistant","content":"lo"},"done":false}\n'
        b'{"message":{"role":"assistant","content":""},"done":true}\n'
    )
    sent = serve(monkeypatch, lambda r: httpx.Response(200, content=body))

    result = runner.invoke(cli.app, ["--config", str(cfg), "chat", "hi", "--system", "be brief"])

    assert result.exit_code == 0, result.output
    assert result.output == "Hello\n"
    payload = json.loads(sent[0].content)
    assert payload["stream"] is True
    assert payload["messages"] == [
        {"role": "system", "content": "be brief"},
        {"role": "user", "content": "hi"},
    ]


def test_chat_no_stream(cfg: Path, monkeypatch):
    sent = serve(monkeypatch, lambda r: httpx.Response(200, json={"message": {"content": "whole reply"}}))

    result = runner.invoke(cli.app, ["--config", str(cfg), "-m", "phi3", "chat", "hi", "--no-stream"])

    assert result.exit_code == 0, result.output
    assert "whole reply" in result.output
    payload = json.loads(sent[0].content)
    assert payload["stream"] is False
    assert payload["model"] == "phi3"


def test_chat_custom_provider_from_config(cfg: Path, monkeypatch):
    body = (
        b'data: {"choices":[{"delta":{"content":"ok"},"finish_reason":null}]}\n\n'
        b"data: [DONE]\n\n"
    )
    sent = serve(monkeypatch, lambda r: httpx.Response(200, content=body))

    result = runner.invoke(cli.app, ["--config", str(cfg), "--provider", "mylocal", "chat", "hi"])

    assert result.exit_code == 0, result.output
    assert result.output == "ok\n"
    assert str(sent[0].url) == "http://localhost:8080/v1/chat/completions"


def test_chat_backend_error_exit_code(cfg: Path, monkeypatch):
    serve(monkeypatch, lambda r: httpx.Response(404, json={"error": "model 'llama3' not found"}))

    result = runner.invoke(cli.app, ["--config", str(cfg), "chat", "hi"])

    assert result.exit_code == 2
    assert "API error: 404 - model 'llama3' not found" in result.output


def test_models_lists_names(cfg: Path, monkeypatch):
    tags = {"models": [{"name": "llama3", "details": {"family": "llama"}}, {"name": "phi3"}]}
    serve(monkeypatch, lambda r: httpx.Response(200, json=tags))

    result = runner.invoke(cli.app, ["--config", str(cfg), "models"])

    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    assert lines == ["llama3  (llama)", "phi3"]


def test_probe_reachable_and_unreachable(cfg: Path, monkeypatch):
    serve(monkeypatch, lambda r: httpx.Response(200, json={"models": []}))
    ok = runner.invoke(cli.app, ["--config", str(cfg), "probe"])
    assert ok.exit_code == 0
    assert "ollama: reachable" in ok.output

    def refuse(request):
        raise httpx.ConnectError("refused", request=request)

    serve(monkeypatch, refuse)
    down = runner.invoke(cli.app, ["--config", str(cfg), "probe", "--timeout", "0.5"])
    assert down.exit_code == 1
    assert "ollama: unreachable" in down.output


def test_providers_includes_config_entries(cfg: Path):
    result = runner.invoke(cli.app, ["--config", str(cfg), "providers"])
    assert result.exit_code == 0, result.output
    assert result.output.splitlines() == ["groq", "koboldcpp", "mylocal", "ollama", "openai"]


def test_unknown_provider_is_reported(cfg: Path):
    result = runner.invoke(cli.app, ["--config", str(cfg), "-p", "nowhere", "models"])
    assert result.exit_code == 2
    assert "not registered" in result.output


def test_missing_config_file(tmp_path: Path):
    result = runner.invoke(cli.app, ["--config", str(tmp_path / "absent.yaml"), "models"])
    assert result.exit_code == 2


def test_unknown_secrets_method_is_a_config_error(tmp_path: Path):
    path = tmp_path / "bad.yaml"
    path.write_text("client: { provider: ollama, model: llama3, stream: true }\nsecrets: { method: vault }\n", encoding="utf-8")
    result = runner.invoke(cli.app, ["--config", str(path), "models"])
    assert result.exit_code == 2
    assert "secrets.method" in result.output
