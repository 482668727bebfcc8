# src/chatwire/secrets/sources.py

from __future__ import annotations
from typing import Protocol, Optional, Dict, Iterable, List, Union
import logging
import os

import keyring
from keyring.errors import KeyringError

log = logging.getLogger(__name__)


class SecretSource(Protocol):
    def get(self, service: str) -> Optional[str]: ...


class EnvSource:
    def get(self, service: str) -> Optional[str]:
        # 1) exact variable name (mapping may point straight at GROQ_API_KEY)
        # 2) <SERVICE>_API_KEY, then <SERVICE>
        env_name = service.upper().replace("-", "_")
        for key in (service, f"{env_name}_API_KEY", env_name):
            val = os.getenv(key)
            if val and val.strip():
                return val.strip()
        return None


class KeyringSource:
    ACCOUNTS = ("api_key", "API_KEY", "default")

    def get(self, service: str) -> Optional[str]:
        try:
            cred = keyring.get_credential(service, None)
            if cred is not None and cred.password:
                return cred.password.strip()
            for account in (*self.ACCOUNTS, service):
                val = keyring.get_password(service, account)
                if val:
                    return val.strip()
        except KeyringError as exc:
            # no usable backend on this machine; other sources may still answer
            log.debug("keyring lookup for '%s' failed: %s", service, exc)
        return None


_SOURCES = {"env": EnvSource, "keyring": KeyringSource}


def normalise_methods(method: Union[str, Iterable[str]]) -> List[str]:
    methods = [method] if isinstance(method, str) else list(method)
    norm: List[str] = []
    for m in methods:
        key = str(m).strip().lower()
        if key not in _SOURCES:
            raise ValueError(f"Unknown secrets method '{m}'. Allowed: {sorted(_SOURCES)}")
        if key not in norm:
            norm.append(key)
    return norm


def build_secret_sources(method: Union[str, Iterable[str]]) -> List[SecretSource]:
    return [_SOURCES[name]() for name in normalise_methods(method)]


class SecretsResolver:
    """
    Find a provider's API key using one or more methods, in order.
    mapping: per-provider service / env-var names, e.g.
      { "groq": { "api_key": "GROQ_API_KEY" } }
    Without a mapping entry the provider name itself is the service name.
    """
    def __init__(self, method: Union[str, Iterable[str]] = "env", mapping: Optional[Dict[str, Dict[str, str]]] = None):
        self._sources = build_secret_sources(method)
        self._map = mapping or {}

    def api_key(self, provider: str) -> Optional[str]:
        service = (self._map.get(provider) or {}).get("api_key", provider)
        for src in self._sources:
            val = src.get(service)
            if val:
                log.debug("API key for '%s' found via %s", provider, type(src).__name__)
                return val
        return None
