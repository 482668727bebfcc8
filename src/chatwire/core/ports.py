from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Tuple, Union

# Open mapping of decoding knobs: temperature, top_p, top_k, presence_penalty,
# frequency_penalty, max_tokens, repeat_penalty, stop, plus backend extras.
# A missing key means "use the backend default".
ModelParameters = Dict[str, Any]


@dataclass(frozen=True)
class Message:
    role: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}

    @classmethod
    def coerce(cls, value: Union["Message", Mapping[str, Any]]) -> "Message":
        if isinstance(value, Message):
            return value
        return cls(role=str(value.get("role", "user")), content=str(value.get("content", "")))


@dataclass(frozen=True)
class CompletionRequest:
    """
    One chat turn as the caller sees it, independent of any backend.
    'messages' is kept in turn order and frozen into a tuple.
    """
    model: str
    messages: Tuple[Message, ...] = ()
    streaming: bool = False
    parameters: ModelParameters = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "messages", tuple(Message.coerce(m) for m in self.messages))
        object.__setattr__(self, "parameters", dict(self.parameters or {}))

    def message_dicts(self) -> List[Dict[str, str]]:
        return [m.to_dict() for m in self.messages]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": self.message_dicts(),
            "stream": self.streaming,
            "parameters": dict(self.parameters),
        }


@dataclass(frozen=True)
class CompletionChunk:
    content: str = ""
    role: str = "assistant"
    done: bool = False


@dataclass(frozen=True)
class ChatReply:
    content: str = ""
    role: str = "assistant"
    raw: Any = None


@dataclass(frozen=True)
class ModelInfo:
    name: str
    size: Optional[Any] = None
    parameters: Optional[Any] = None
    quantization: Optional[str] = None
    family: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class WireTransforms(Protocol):
    """
    What a backend has to say about its own wire format.
    Any of these may be missing on a profile; the client then falls back to
    chatwire.providers.generic.
    """

    def to_wire_request(self, request: CompletionRequest) -> Dict[str, Any]:
        """Canonical request -> JSON body for the chat endpoint."""
        ...

    def from_wire_response(self, body: Any) -> ChatReply:
        """Full non-streaming JSON body -> single reply. Must not raise on missing fields."""
        ...

    def from_wire_chunk(self, record: Any) -> CompletionChunk:
        """One decoded stream record -> chunk. Raising means 'skip this record'."""
        ...

    def from_wire_model_list(self, body: Any) -> Iterable[ModelInfo]:
        """Model-list JSON body -> ModelInfo entries."""
        ...
