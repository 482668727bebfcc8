from __future__ import annotations
import logging
from typing import Dict, List
from importlib import import_module

from chatwire.core.errors import UnknownProvider
from chatwire.providers.profile import ProviderProfile

log = logging.getLogger(__name__)

_BUILTIN_MODULES = (
    "chatwire.providers.ollama",
    "chatwire.providers.koboldcpp",
    "chatwire.providers.openai_compat",
)


class ProviderRegistry:
    _profiles: Dict[str, ProviderProfile] = {}

    @classmethod
    def register(cls, name: str, profile: ProviderProfile) -> ProviderProfile:
        key = name.lower()
        if key in cls._profiles:
            log.debug("Replacing provider profile '%s'", key)
        cls._profiles[key] = profile.copy()
        return profile

    @classmethod
    def resolve(cls, name: str) -> ProviderProfile:
        key = name.lower()
        if key not in cls._profiles:
            raise UnknownProvider(name, cls._profiles.keys())
        # Hand out a copy; later registry changes must not leak into live clients
        return cls._profiles[key].copy()

    @classmethod
    def names(cls) -> List[str]:
        return sorted(cls._profiles)

    @classmethod
    def ensure_builtins(cls) -> None:
        """
        Register the built-in backends through the same path custom ones use.
        Safe to call repeatedly; a name the caller already registered is left alone.
        """
        for module_name in _BUILTIN_MODULES:
            module = import_module(module_name)
            for profile in module.PROFILES:
                if profile.name.lower() not in cls._profiles:
                    cls.register(profile.name, profile)
