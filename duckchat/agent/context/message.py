import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict

_WHITESPACE = re.compile(r"\s+")

FNV64_OFFSET = 0xCBF29CE484222325
FNV64_PRIME = 0x100000001B3
_MASK64 = 0xFFFFFFFFFFFFFFFF


class ContextKind(str, Enum):
    """
    What a transcript entry is. Context injections travel to the backend
    as user turns but keep their kind here so consumers never sniff prefixes.
    """

    USER = "user"
    ASSISTANT = "assistant"
    FILE_CONTEXT = "file_context"
    URL_CONTEXT = "url_context"
    SEARCH_CONTEXT = "search_context"

    @property
    def is_injection(self) -> bool:
        return self in _INJECTION_TAGS

    @property
    def tag(self) -> str:
        return _INJECTION_TAGS.get(self, "")


_INJECTION_TAGS: Dict[ContextKind, str] = {
    ContextKind.FILE_CONTEXT: "[File Context]",
    ContextKind.URL_CONTEXT: "[URL Context]",
    ContextKind.SEARCH_CONTEXT: "[Search Context]",
}


def normalize_content(content: str) -> str:
    """Collapse every whitespace run to a single space."""
    return _WHITESPACE.sub(" ", (content or "").strip())


def content_hash(content: str) -> int:
    """64-bit FNV-1a over the whitespace-normalized body."""
    h = FNV64_OFFSET
    for byte in normalize_content(content).encode("utf-8"):
        h ^= byte
        h = (h * FNV64_PRIME) & _MASK64
    return h


def byte_size(content: str) -> int:
    return len((content or "").encode("utf-8"))


@dataclass
class Message:
    """
    A single entry of the conversation transcript.

    Attributes:
        kind: User, assistant, or one of the context-injection kinds.
        content: Body exactly as it is sent upstream.
        timestamp: Creation time (epoch seconds).
        importance: Score in [0, 1] assigned by the context scorer.
        content_hash: Normalized FNV-1a hash, filled in by the scorer.
        compressed: True once the body was compacted; never compacted twice.
    """

    kind: ContextKind
    content: str
    timestamp: float = field(default_factory=time.time)
    importance: float = 0.0
    content_hash: int = 0
    compressed: bool = False

    @property
    def role(self) -> str:
        """Role on the wire."""
        return "assistant" if self.kind is ContextKind.ASSISTANT else "user"

    @property
    def size(self) -> int:
        return byte_size(self.content)

    def to_dict(self) -> Dict[str, str]:
        """Payload shape expected by the chat endpoint."""
        return {"role": self.role, "content": self.content}

    # --- Factories ---

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(kind=ContextKind.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(kind=ContextKind.ASSISTANT, content=content)

    @classmethod
    def file_context(cls, path: str, body: str) -> "Message":
        return cls(
            kind=ContextKind.FILE_CONTEXT,
            content=f"{ContextKind.FILE_CONTEXT.tag}\nFile: {path}\n\n{body}",
        )

    @classmethod
    def url_context(cls, url: str, body: str) -> "Message":
        return cls(
            kind=ContextKind.URL_CONTEXT,
            content=f"{ContextKind.URL_CONTEXT.tag}\nURL: {url}\n\n{body}",
        )

    @classmethod
    def search_context(cls, query: str, results: str) -> "Message":
        return cls(
            kind=ContextKind.SEARCH_CONTEXT,
            content=f"{ContextKind.SEARCH_CONTEXT.tag}\nQuery: {query}\n\n{results}",
        )


def transcript_size(messages) -> int:
    """Summed UTF-8 size of every body."""
    return sum(m.size for m in messages)
