"""
Value objects shared by the correlator, the library discovery loop and the
exporter, plus the constants that identify thread API traffic.
"""
from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


# -------------- Resource identification --------------------------------------

THREAD_PATH_MARKERS = ("/rest/thread/", "/api/thread/")
PAGINATION_PARAM = "limit"
RESERVED_THREAD_IDS = frozenset({"list_recent"})
UNKNOWN_THREAD_ID = "unknown"
PLACEHOLDER_STATUS = "placeholder"


# -------------- Thread payloads ----------------------------------------------

@dataclass
class ConversationPayload:
    """Body of a thread API response.

    Only the fields the exporter reasons about are lifted out; everything else
    the API returns is kept in ``extra`` so the saved JSON stays faithful.
    """
    status: str = ""
    entries: List[Dict[str, Any]] = field(default_factory=list)
    has_next_page: bool = False
    next_cursor: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "ConversationPayload":
        """Build a payload from a decoded API body."""
        known = {"status", "entries", "has_next_page", "next_cursor"}
        return cls(
            status=data.get("status") or "",
            entries=list(data.get("entries") or []),
            has_next_page=bool(data.get("has_next_page", False)),
            next_cursor=data.get("next_cursor"),
            extra={k: v for k, v in data.items() if k not in known},
        )

    @classmethod
    def placeholder(cls) -> "ConversationPayload":
        """Empty but well-formed payload used when real data never arrived."""
        return cls(status=PLACEHOLDER_STATUS)

    @property
    def is_placeholder(self) -> bool:
        return self.status == PLACEHOLDER_STATUS

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.extra)
        data.update({
            "status": self.status,
            "entries": self.entries,
            "has_next_page": self.has_next_page,
            "next_cursor": self.next_cursor,
        })
        return data


@dataclass
class ThreadRecord:
    """One loaded conversation; ``id`` always comes from a URL."""
    id: str
    payload: ConversationPayload


# -------------- Library listing ----------------------------------------------

@dataclass(frozen=True)
class Conversation:
    """A conversation link found on the library page."""
    title: str
    url: str


class DiscoveryMode(Enum):
    """How the library scroll decides it has seen enough."""
    SHORT_CIRCUIT = "short_circuit"
    EXHAUSTIVE = "exhaustive"


class ScrollOutcome(Enum):
    """Why the library scroll stopped."""
    STALLED = "stalled"
    MAX_ATTEMPTS = "max_attempts"
    KNOWN_ITEM = "known_item"


# -------------- Done file ----------------------------------------------------

@dataclass
class DoneFile:
    """URLs already exported in earlier runs. Append-only."""
    processed_urls: List[str] = field(default_factory=list)

    def __contains__(self, url: str) -> bool:
        return url in self.processed_urls

    def __len__(self) -> int:
        return len(self.processed_urls)

    def add(self, url: str) -> None:
        if url not in self.processed_urls:
            self.processed_urls.append(url)

    def to_dict(self) -> Dict[str, Any]:
        return {"processedUrls": list(self.processed_urls)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DoneFile":
        return cls(processed_urls=list(data.get("processedUrls") or []))
