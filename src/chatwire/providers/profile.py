from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterable, Optional

from chatwire.core.errors import ProviderClientError
from chatwire.core.ports import ChatReply, CompletionChunk, CompletionRequest, ModelInfo

FRAMING_PLAIN = "plain"   # one JSON object per line
FRAMING_SSE = "sse"       # "data: {...}" lines, "data: [DONE]" terminates
FRAMINGS = (FRAMING_PLAIN, FRAMING_SSE)

RequestTransform = Callable[[CompletionRequest], Dict[str, Any]]
ResponseTransform = Callable[[Any], ChatReply]
ChunkTransform = Callable[[Any], CompletionChunk]
ModelListTransform = Callable[[Any], Iterable[ModelInfo]]


@dataclass(frozen=True)
class ProviderProfile:
    """
    Network shape of one backend plus its wire transforms.
    Value object: "changing" a profile means making a new one with replace().
    """
    name: str
    base_url: str
    api_path: str
    list_path: str
    api_key: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    framing: str = FRAMING_PLAIN
    to_wire_request: Optional[RequestTransform] = None
    from_wire_response: Optional[ResponseTransform] = None
    from_wire_chunk: Optional[ChunkTransform] = None
    from_wire_model_list: Optional[ModelListTransform] = None

    def __post_init__(self) -> None:
        framing = str(self.framing).lower()
        if framing not in FRAMINGS:
            raise ProviderClientError(
                f"Unknown framing '{self.framing}' for provider '{self.name}' (expected one of {list(FRAMINGS)})"
            )
        object.__setattr__(self, "framing", framing)
        object.__setattr__(self, "headers", dict(self.headers or {}))

    @classmethod
    def build(
        cls,
        name: str,
        *,
        base_url: str,
        api_path: str,
        list_path: str,
        transforms: Any = None,
        **kwargs: Any,
    ) -> "ProviderProfile":
        """
        Build a profile from any object exposing the WireTransforms methods
        (a class instance or a module of functions). Missing methods stay None.
        """
        hooks = {}
        for hook in ("to_wire_request", "from_wire_response", "from_wire_chunk", "from_wire_model_list"):
            fn = getattr(transforms, hook, None) if transforms is not None else None
            if fn is not None:
                hooks[hook] = fn
        hooks.update(kwargs)
        return cls(name=name, base_url=base_url, api_path=api_path, list_path=list_path, **hooks)

    def copy(self) -> "ProviderProfile":
        return replace(self, headers=dict(self.headers))

    @property
    def is_sse(self) -> bool:
        return self.framing == FRAMING_SSE

    @property
    def chat_url(self) -> str:
        return self.base_url.rstrip("/") + self.api_path

    @property
    def list_url(self) -> str:
        return self.base_url.rstrip("/") + self.list_path

    def request_headers(self, *, json_body: bool = False) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if json_body:
            headers["Content-Type"] = "application/json"
        if self.api_key and not any(k.lower() == "authorization" for k in self.headers):
            headers["Authorization"] = f"Bearer {self.api_key}"
        headers.update(self.headers)
        return headers
