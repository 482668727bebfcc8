# src/chatwire/providers/generic.py
"""
Best-effort transforms used when a profile leaves a hook unset.
They look for the field names the common backends use and otherwise hand the
raw payload back rather than failing.
"""
from __future__ import annotations
from typing import Any, Dict, List, Optional

from chatwire.core.ports import ChatReply, CompletionChunk, CompletionRequest, ModelInfo

_REPLY_PATHS = (
    ("choices", 0, "message"),
    ("message",),
    ("results", 0),
    (),
)
_CHUNK_PATHS = (
    ("choices", 0, "delta"),
    ("choices", 0),
    ("message",),
    (),
)
_TEXT_KEYS = ("content", "text", "response", "token")
_LIST_KEYS = ("models", "data")


def dig(data: Any, *path: Any) -> Any:
    """Walk dict keys / list indexes; None as soon as anything is missing."""
    cur = data
    for step in path:
        if isinstance(step, int):
            if not isinstance(cur, list) or len(cur) <= step:
                return None
            cur = cur[step]
        else:
            if not isinstance(cur, dict):
                return None
            cur = cur.get(step)
        if cur is None:
            return None
    return cur


def text_or_empty(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _first_text(data: Any, paths) -> Optional[Dict[str, Any]]:
    for path in paths:
        node = dig(data, *path) if path else data
        if not isinstance(node, dict):
            continue
        for key in _TEXT_KEYS:
            if isinstance(node.get(key), str):
                return {"content": node[key], "role": node.get("role")}
    return None


def to_wire_request(request: CompletionRequest) -> Dict[str, Any]:
    return request.to_dict()


def from_wire_response(body: Any) -> ChatReply:
    found = _first_text(body, _REPLY_PATHS)
    if found is None:
        return ChatReply(content="", role="assistant", raw=body)
    return ChatReply(content=found["content"], role=found["role"] or "assistant", raw=body)


def from_wire_chunk(record: Any) -> CompletionChunk:
    if not isinstance(record, dict):
        raise ValueError(f"stream record is not an object: {type(record).__name__}")
    found = _first_text(record, _CHUNK_PATHS) or {"content": "", "role": None}
    finish = dig(record, "choices", 0, "finish_reason")
    done = bool(record.get("done")) or finish is not None
    return CompletionChunk(content=found["content"], role=found["role"] or "assistant", done=done)


def from_wire_model_list(body: Any) -> List[ModelInfo]:
    entries: Any = None
    if isinstance(body, list):
        entries = body
    elif isinstance(body, dict):
        entries = next((body[k] for k in _LIST_KEYS if isinstance(body.get(k), list)), None)
    if entries is None:
        return []

    models: List[ModelInfo] = []
    for entry in entries:
        if isinstance(entry, dict):
            name = entry.get("name") or entry.get("id") or entry.get("model")
            models.append(ModelInfo(name=str(name if name is not None else entry), details=entry))
        else:
            models.append(ModelInfo(name=str(entry), details={"raw": entry}))
    return models
