# tests/unit/test_bootstrap.py

from __future__ import annotations
import json
import sys
from pathlib import Path
from textwrap import dedent
import httpx
import pytest

# Ensure "src" is importable
sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from chatwire.bootstrap import build_client  # type: ignore
from chatwire.client import ChatClient  # type: ignore
from chatwire.config_loader import ConfigError  # type: ignore
from chatwire.core.errors import UnknownProvider  # type: ignore
from chatwire.core.ports import CompletionRequest, Message  # type: ignore
from chatwire.providers.registry import ProviderRegistry  # type: ignore


@pytest.fixture(autouse=True)
def isolated_registry(monkeypatch):
    monkeypatch.setattr(ProviderRegistry, "_profiles", {}, raising=True)
    for var in ("GROQ_API_KEY", "OLLAMA_API_KEY", "MYLOCAL_API_KEY"):
        monkeypatch.delenv(var, raising=False)


def write_cfg(tmp_path: Path, text: str) -> Path:
    cfg = tmp_path / "config" / "default.yaml"
    cfg.parent.mkdir(parents=True, exist_ok=True)
    cfg.write_text(dedent(text).lstrip("\n"), encoding="utf-8")
    return cfg


def test_build_client_for_builtin_with_overrides(tmp_path: Path):
    cfg = write_cfg(
        tmp_path,
        """
        client:
          provider: Ollama
          model: llama3
          stream: true
          timeout: 12
        providers:
          ollama:
            base_url: http://gpu-box:11434
            headers: { X-Team: research }
        parameters: { temperature: 0.1 }
        secrets:
          method: env
        """,
    )
    ctx = build_client(cfg)

    client = ctx["client"]
    assert isinstance(client, ChatClient)
    assert client.provider_name == "ollama"
    assert client.timeout == 12.0
    assert client.profile.base_url == "http://gpu-box:11434"
    assert client.profile.headers == {"X-Team": "research"}
    assert client.profile.api_key == ""
    assert ctx["model"] == "llama3"
    assert ctx["stream"] is True
    assert ctx["parameters"] == {"temperature": 0.1}
    assert ctx["probe_timeout"] == 5.0
    # overrides live on the client, not on the shared template
    assert ProviderRegistry.resolve("ollama").base_url == "http://localhost:11434"


def test_build_client_attaches_api_key_from_env(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("GROQ_API_KEY", "gsk-abc")
    cfg = write_cfg(
        tmp_path,
        """
        client: { provider: groq, model: llama-3.1-8b-instant, stream: false }
        secrets:
          method: [env]
          mapping: { groq: { api_key: GROQ_API_KEY } }
        """,
    )
    client = build_client(cfg)["client"]
    assert client.profile.api_key == "gsk-abc"


def test_cli_style_overrides(tmp_path: Path):
    cfg = write_cfg(tmp_path, "client: { provider: ollama, model: llama3, stream: true }\n")
    ctx = build_client(cfg, provider="KoboldCpp", model="tiefighter")
    assert ctx["client"].provider_name == "koboldcpp"
    assert ctx["model"] == "tiefighter"


def test_custom_provider_from_config_end_to_end(tmp_path: Path):
    cfg = write_cfg(
        tmp_path,
        """
        client: { provider: mylocal, model: qwen, stream: true }
        providers:
          mylocal:
            base_url: http://localhost:8080
            api_path: /v1/chat/completions
            list_path: /v1/models
            wire: openai
        """,
    )
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            content=b'data: {"choices":[{"delta":{"content":"ok"},"finish_reason":null}]}\n\ndata: [DONE]\n\n',
        )

    ctx = build_client(cfg, transport=httpx.MockTransport(handler))
    assert "mylocal" in ProviderRegistry.names()

    request = CompletionRequest(model=ctx["model"], messages=(Message("user", "hi"),), streaming=True)
    chunks = [(c.content, c.done) for c in ctx["client"].chat(request)]

    assert chunks == [("ok", False), ("", True)]
    assert str(seen[0].url) == "http://localhost:8080/v1/chat/completions"
    assert json.loads(seen[0].content)["model"] == "qwen"


def test_custom_provider_missing_paths(tmp_path: Path):
    cfg = write_cfg(
        tmp_path,
        """
        client: { provider: half, model: m, stream: true }
        providers:
          half: { base_url: "http://localhost:1" }
        """,
    )
    with pytest.raises(ConfigError) as info:
        build_client(cfg)
    assert "providers.half.api_path" in str(info.value)


def test_unknown_provider_in_config(tmp_path: Path):
    cfg = write_cfg(tmp_path, "client: { provider: nowhere, model: m, stream: true }\n")
    with pytest.raises(UnknownProvider) as info:
        build_client(cfg)
    assert "groq" in str(info.value) and "ollama" in str(info.value)
