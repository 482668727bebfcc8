"""
OpenAI-style chat completions (Groq, OpenAI and anything that copies them).
Streams as server-sent events terminated by "data: [DONE]".
"""
from __future__ import annotations
from typing import Any, Dict, List

from chatwire.core.ports import ChatReply, CompletionChunk, CompletionRequest, ModelInfo
from chatwire.providers.generic import dig, text_or_empty
from chatwire.providers.profile import FRAMING_SSE, ProviderProfile

_FLOAT_PARAMS = ("temperature", "top_p", "presence_penalty", "frequency_penalty")


def to_wire_request(request: CompletionRequest) -> Dict[str, Any]:
    params = request.parameters
    body: Dict[str, Any] = {
        "model": request.model,
        "messages": request.message_dicts(),
        "stream": request.streaming,
    }
    for key in _FLOAT_PARAMS:
        if params.get(key) is not None:
            body[key] = float(params[key])
    if params.get("max_tokens") is not None:
        body["max_tokens"] = int(params["max_tokens"])
    if "stop" in params:
        body["stop"] = params["stop"]
    return body


def from_wire_response(body: Any) -> ChatReply:
    return ChatReply(
        content=text_or_empty(dig(body, "choices", 0, "message", "content")),
        role=dig(body, "choices", 0, "message", "role") or "assistant",
        raw=body,
    )


def from_wire_chunk(record: Dict[str, Any]) -> CompletionChunk:
    choice = dig(record, "choices", 0)
    if choice is None:
        # usage-only or keep-alive records carry no choice
        return CompletionChunk(content="", role="assistant", done=False)
    return CompletionChunk(
        content=text_or_empty(dig(choice, "delta", "content")),
        role=dig(choice, "delta", "role") or "assistant",
        done=choice.get("finish_reason") is not None,
    )


def model_family(model_id: str) -> str:
    return model_id.split("-", 1)[0]


def from_wire_model_list(body: Any) -> List[ModelInfo]:
    out: List[ModelInfo] = []
    for m in dig(body, "data") or []:
        model_id = str(m.get("id", ""))
        out.append(ModelInfo(name=model_id, family=model_family(model_id), details=m))
    return out


def _profile(name: str, base_url: str, api_path: str, list_path: str) -> ProviderProfile:
    return ProviderProfile(
        name=name,
        base_url=base_url,
        api_path=api_path,
        list_path=list_path,
        framing=FRAMING_SSE,
        to_wire_request=to_wire_request,
        from_wire_response=from_wire_response,
        from_wire_chunk=from_wire_chunk,
        from_wire_model_list=from_wire_model_list,
    )


GROQ = _profile("groq", "https://api.groq.com", "/openai/v1/chat/completions", "/openai/v1/models")
OPENAI = _profile("openai", "https://api.openai.com", "/v1/chat/completions", "/v1/models")

PROFILES = (GROQ, OPENAI)
