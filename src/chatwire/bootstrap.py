from __future__ import annotations
import logging
from pathlib import Path
from typing import Any, Dict, Optional
from dotenv import load_dotenv
import httpx

from .config_loader import load_config, ConfigError
from .client import ChatClient, DEFAULT_PROBE_TIMEOUT, DEFAULT_TIMEOUT
from .providers import koboldcpp, ollama, openai_compat
from .providers.profile import FRAMING_PLAIN, FRAMING_SSE, ProviderProfile
from .providers.registry import ProviderRegistry
from .secrets.sources import SecretsResolver

log = logging.getLogger(__name__)

# config "wire:" value -> (transform module, default framing)
_WIRE_STYLES = {
    "ollama": (ollama, FRAMING_PLAIN),
    "koboldcpp": (koboldcpp, FRAMING_PLAIN),
    "openai": (openai_compat, FRAMING_SSE),
    "generic": (None, FRAMING_PLAIN),
}


def _custom_profile(name: str, block: Dict[str, Any]) -> ProviderProfile:
    missing = [k for k in ("base_url", "api_path", "list_path") if not block.get(k)]
    if missing:
        raise ConfigError(f"Custom provider '{name}' needs {', '.join('providers.%s.%s' % (name, k) for k in missing)}")
    transforms, framing = _WIRE_STYLES[block.get("wire", "generic")]
    return ProviderProfile.build(
        name,
        base_url=str(block["base_url"]),
        api_path=str(block["api_path"]),
        list_path=str(block["list_path"]),
        transforms=transforms,
        framing=block.get("framing", framing),
        headers={str(k): str(v) for k, v in (block.get("headers") or {}).items()},
    )


def register_config_providers(cfg: Dict[str, Any]) -> None:
    """Custom providers from YAML go through the same registry as the built-ins."""
    ProviderRegistry.ensure_builtins()
    known = set(ProviderRegistry.names())
    for name, block in (cfg.get("providers") or {}).items():
        if name in known and "wire" not in block:
            continue  # plain overrides for a built-in; applied to the client below
        ProviderRegistry.register(name, _custom_profile(name, block))
        log.debug("Registered provider '%s' from config", name)


def build_client(
    config_path: Path,
    *,
    provider: Optional[str] = None,
    model: Optional[str] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> Dict[str, Any]:
    """
    Composition root: load .env and YAML, register config providers, build the
    client for the selected provider and attach overrides and credentials.
    Returns: dict with cfg, client, model, stream, parameters, probe_timeout.
    """
    load_dotenv()
    cfg = load_config(config_path)
    if provider:
        cfg["client"]["provider"] = provider.strip().lower()
    if model:
        cfg["client"]["model"] = model

    register_config_providers(cfg)

    provider_name = cfg["client"]["provider"]
    client = ChatClient(
        provider_name,
        timeout=float(cfg["client"].get("timeout") or DEFAULT_TIMEOUT),
        transport=transport,
    )

    overrides = (cfg.get("providers") or {}).get(provider_name, {})
    if overrides.get("base_url"):
        client.set_base_url(str(overrides["base_url"]))
    if overrides.get("headers"):
        client.merge_headers({str(k): str(v) for k, v in overrides["headers"].items()})

    secrets_cfg = cfg.get("secrets") or {}
    resolver = SecretsResolver(method=secrets_cfg.get("method", "env"), mapping=secrets_cfg.get("mapping"))
    api_key = resolver.api_key(provider_name)
    if api_key:
        client.set_api_key(api_key)
    else:
        log.debug("No API key for '%s'; sending requests without one", provider_name)

    return {
        "cfg": cfg,
        "client": client,
        "model": cfg["client"]["model"],
        "stream": cfg["client"]["stream"],
        "parameters": dict(cfg.get("parameters") or {}),
        "probe_timeout": float(cfg["client"].get("probe_timeout") or DEFAULT_PROBE_TIMEOUT),
    }
