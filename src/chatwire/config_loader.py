# src/chatwire/config_loader.py

from __future__ import annotations
from pathlib import Path
from typing import Any, Dict
import yaml

from chatwire.providers.profile import FRAMINGS
from chatwire.secrets.sources import normalise_methods

WIRE_STYLES = ("ollama", "koboldcpp", "openai", "generic")


class ConfigError(ValueError):
    pass


def _require(d: Dict[str, Any], dotted: str, typ: type) -> Any:
    cur: Any = d
    for k in dotted.split("."):
        if not isinstance(cur, dict) or k not in cur:
            raise ConfigError(f"Missing config key: {dotted}")
        cur = cur[k]
    if typ is bool and not isinstance(cur, bool):
        raise ConfigError(f"'{dotted}' must be a boolean")
    if typ is str and not isinstance(cur, str):
        raise ConfigError(f"'{dotted}' must be a string")
    return cur


def _positive_number(raw: Dict[str, Any], dotted: str) -> None:
    section, key = dotted.split(".")
    val = raw[section].get(key)
    if val is None:
        return
    if isinstance(val, bool) or not isinstance(val, (int, float)) or val <= 0:
        raise ConfigError(f"'{dotted}' must be a positive number")


def _check_provider_block(name: str, block: Any) -> Dict[str, Any]:
    if not isinstance(block, dict):
        raise ConfigError(f"'providers.{name}' must be a mapping")
    headers = block.get("headers")
    if headers is not None and not isinstance(headers, dict):
        raise ConfigError(f"'providers.{name}.headers' must be a mapping")
    if "framing" in block:
        framing = str(block["framing"]).lower()
        if framing not in FRAMINGS:
            raise ConfigError(f"Unknown providers.{name}.framing '{framing}' (expected one of {list(FRAMINGS)}).")
        block["framing"] = framing
    if "wire" in block:
        wire = str(block["wire"]).lower()
        if wire not in WIRE_STYLES:
            raise ConfigError(f"Unknown providers.{name}.wire '{wire}' (expected one of {list(WIRE_STYLES)}).")
        block["wire"] = wire
    return block


def load_config(path: Path) -> Dict[str, Any]:
    if not path or not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    raw = yaml.safe_load(path.read_text())
    if not isinstance(raw, dict) or not raw:
        raise ConfigError(f"Config is empty or invalid YAML: {path}")

    # Required keys (no defaults here)
    _require(raw, "client.provider", str)
    _require(raw, "client.model", str)
    _require(raw, "client.stream", bool)
    _positive_number(raw, "client.timeout")
    _positive_number(raw, "client.probe_timeout")

    raw["client"]["provider"] = raw["client"]["provider"].strip().lower()

    providers = raw.get("providers") or {}
    if not isinstance(providers, dict):
        raise ConfigError("'providers' must be a mapping of provider name -> settings")
    # Provider names are case-insensitive, same as the registry
    raw["providers"] = {str(k).lower(): _check_provider_block(str(k), v) for k, v in providers.items()}

    params = raw.get("parameters") or {}
    if not isinstance(params, dict):
        raise ConfigError("'parameters' must be a mapping")
    raw["parameters"] = params

    secrets = raw.get("secrets") or {}
    if not isinstance(secrets, dict):
        raise ConfigError("'secrets' must be a mapping")
    method = secrets.get("method", "env")
    if not isinstance(method, (str, list)):
        raise ConfigError("'secrets.method' must be a string or a list of strings")
    try:
        secrets["method"] = normalise_methods(method)
    except ValueError as e:
        raise ConfigError(f"Invalid secrets.method: {e}") from e
    mapping = secrets.get("mapping")
    if mapping is not None and not isinstance(mapping, dict):
        raise ConfigError("'secrets.mapping' must be a mapping of provider name -> names")
    raw["secrets"] = secrets

    # Whether client.provider actually exists is decided by the registry at bootstrap
    return raw
