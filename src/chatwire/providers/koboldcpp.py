"""
KoboldCpp (/api/v1/generate). Prompt-completion backend: the conversation is
flattened into one role-prefixed prompt, and decoding knobs use Kobold names.
"""
from __future__ import annotations
from typing import Any, Dict, List, Mapping

from chatwire.core.ports import ChatReply, CompletionChunk, CompletionRequest, ModelInfo
from chatwire.providers.generic import dig, text_or_empty
from chatwire.providers.profile import FRAMING_PLAIN, ProviderProfile

_PREFIXES = {"user": "User: ", "assistant": "Assistant: ", "system": "System: "}

# canonical name -> (kobold name, default)
_PARAM_MAP = (
    ("max_tokens", "max_length", 2048),
    ("temperature", "temperature", 0.7),
    ("top_p", "top_p", 0.9),
    ("top_k", "top_k", 40),
    ("repeat_penalty", "rep_pen", 1.1),
)


def build_prompt(messages) -> str:
    return "".join(f"{_PREFIXES.get(m.role, '')}{m.content}\n" for m in messages)


def _param(params: Mapping[str, Any], key: str, default: Any) -> Any:
    value = params.get(key)
    return default if value is None else value


def to_wire_request(request: CompletionRequest) -> Dict[str, Any]:
    params = request.parameters
    body: Dict[str, Any] = {"prompt": build_prompt(request.messages)}
    for canonical, wire, default in _PARAM_MAP:
        body[wire] = _param(params, canonical, default)
    body["stream"] = request.streaming
    return body


def from_wire_response(body: Any) -> ChatReply:
    return ChatReply(content=text_or_empty(dig(body, "results", 0, "text")), role="assistant", raw=body)


def from_wire_chunk(record: Dict[str, Any]) -> CompletionChunk:
    return CompletionChunk(
        content=text_or_empty(record.get("token")),
        role="assistant",
        done=bool(record.get("done", False)),
    )


def from_wire_model_list(body: Any) -> List[ModelInfo]:
    # Kobold serves exactly one model and reports it in a status object
    if not isinstance(body, dict):
        return []
    result = body.get("result")
    if result == "ok" and body.get("model"):
        return [ModelInfo(name=str(body["model"]), details=body)]
    if isinstance(result, str) and result and result != "ok":
        return [ModelInfo(name=result, details=body)]
    return []


KOBOLDCPP = ProviderProfile(
    name="koboldcpp",
    base_url="http://localhost:5001",
    api_path="/api/v1/generate",
    list_path="/api/v1/model",
    framing=FRAMING_PLAIN,
    to_wire_request=to_wire_request,
    from_wire_response=from_wire_response,
    from_wire_chunk=from_wire_chunk,
    from_wire_model_list=from_wire_model_list,
)

PROFILES = (KOBOLDCPP,)
