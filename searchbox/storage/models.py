"""
Data models for the chat flow and usage accounting.
These define the shape of data flowing between the orchestrator,
the gateways and the usage ledger.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from urllib.parse import urlparse
from uuid import uuid4


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class SearchResult:
    """One retrieved snippet."""
    title: str = ""
    link: str = ""
    snippet: str = ""
    position: int = 1        # 1-based rank
    source: str = ""         # domain or label

    @classmethod
    def from_dict(cls, data: dict, index: int = 0) -> "SearchResult":
        link = data.get("link") or data.get("url") or ""
        source = data.get("source") or urlparse(link).netloc
        try:
            position = int(data.get("position") or index + 1)
        except (TypeError, ValueError):
            position = index + 1
        return cls(
            title=data.get("title") or "",
            link=link,
            snippet=data.get("snippet") or "",
            position=position,
            source=source,
        )

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "link": self.link,
            "snippet": self.snippet,
            "position": self.position,
            "source": self.source,
        }


@dataclass(frozen=True)
class Message:
    """A single turn in the conversation log. Never mutated after creation."""
    content: str = ""
    is_user: bool = True
    id: str = field(default_factory=lambda: uuid4().hex)
    timestamp: str = field(default_factory=utc_now)
    search_results: tuple[SearchResult, ...] | None = None
    search_query: str | None = None
    model_id: str | None = None

    def to_wire(self) -> dict:
        """Shape sent to POST /chat."""
        return {"content": self.content, "isUser": self.is_user}

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "content": self.content,
            "isUser": self.is_user,
            "timestamp": self.timestamp,
        }
        if self.search_results is not None:
            data["searchResults"] = [r.to_dict() for r in self.search_results]
        if self.search_query is not None:
            data["searchQuery"] = self.search_query
        if self.model_id is not None:
            data["modelId"] = self.model_id
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        results = data.get("searchResults")
        return cls(
            id=data.get("id") or uuid4().hex,
            content=data.get("content", ""),
            is_user=bool(data.get("isUser", False)),
            timestamp=data.get("timestamp") or utc_now(),
            search_results=(
                tuple(SearchResult.from_dict(r, i) for i, r in enumerate(results))
                if results is not None else None
            ),
            search_query=data.get("searchQuery"),
            model_id=data.get("modelId"),
        )


@dataclass
class ModelUsage:
    """Per-model accumulator nested inside a UsageRecord."""
    requests: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0


@dataclass
class UsageRecord:
    """Per-user usage accumulator. Mutated only by a usage ledger."""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    images_generated: int = 0
    estimated_cost: float = 0.0
    model_usage: dict[str, ModelUsage] = field(default_factory=dict)
    last_updated: str | None = None


@dataclass
class UserProfile:
    """Profile fields stored alongside a user's usage record."""
    uid: str
    email: str = ""
    name: str = ""
    created_at: str = field(default_factory=utc_now)
    plan: str = "Free"
    last_plan_change: str = field(default_factory=utc_now)
    total_payments: float = 0

    @classmethod
    def for_user(cls, user_id: str) -> "UserProfile":
        email = user_id if "@" in user_id else ""
        name = user_id.split("@")[0] if user_id else "User"
        return cls(uid=user_id, email=email, name=name)
