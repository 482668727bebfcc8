"""
Ollama daemon (/api/chat). Streams newline-delimited JSON objects and ends
with a record carrying done=true, usually with empty content.
"""
from __future__ import annotations
from typing import Any, Dict, List

from chatwire.core.ports import ChatReply, CompletionChunk, CompletionRequest, ModelInfo
from chatwire.providers.generic import dig, text_or_empty
from chatwire.providers.profile import FRAMING_PLAIN, ProviderProfile


def to_wire_request(request: CompletionRequest) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "model": request.model,
        "messages": request.message_dicts(),
        "stream": request.streaming,
    }
    if request.parameters:
        body["options"] = dict(request.parameters)
    return body


def from_wire_response(body: Any) -> ChatReply:
    return ChatReply(
        content=text_or_empty(dig(body, "message", "content")),
        role=dig(body, "message", "role") or "assistant",
        raw=body,
    )


def from_wire_chunk(record: Dict[str, Any]) -> CompletionChunk:
    return CompletionChunk(
        content=text_or_empty(dig(record, "message", "content")),
        role=dig(record, "message", "role") or "assistant",
        done=bool(record.get("done", False)),
    )


def from_wire_model_list(body: Any) -> List[ModelInfo]:
    models = dig(body, "models") or []
    out: List[ModelInfo] = []
    for m in models:
        details = m.get("details") or {}
        out.append(
            ModelInfo(
                name=m.get("name") or m.get("model") or "",
                size=m.get("size"),
                parameters=details.get("parameter_size"),
                quantization=details.get("quantization_level"),
                family=m.get("family") or details.get("family"),
                details=m,
            )
        )
    return out


OLLAMA = ProviderProfile(
    name="ollama",
    base_url="http://localhost:11434",
    api_path="/api/chat",
    list_path="/api/tags",
    framing=FRAMING_PLAIN,
    to_wire_request=to_wire_request,
    from_wire_response=from_wire_response,
    from_wire_chunk=from_wire_chunk,
    from_wire_model_list=from_wire_model_list,
)

PROFILES = (OLLAMA,)
