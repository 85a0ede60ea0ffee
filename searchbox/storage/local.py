"""
Client-local conversation persistence.

The conversation log is saved to a single JSON file after every append so a
restarted chat session picks up where it left off. Persistence is a side
effect only: a failed save is logged and the chat carries on.
"""

import json
import logging
from pathlib import Path

from searchbox.storage.models import Message

logger = logging.getLogger(__name__)


class LocalConversationStore:
    """JSON-file store for one chat session's messages."""

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()

    def load(self) -> list[Message]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return [Message.from_dict(m) for m in data]
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.error("Failed to parse saved messages at %s: %s", self.path, e)
            return []

    def save(self, messages) -> None:
        if not messages:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            payload = [m.to_dict() for m in messages]
            self.path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
        except OSError as e:
            logger.warning("Failed to save messages to %s: %s", self.path, e)

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Failed to remove %s: %s", self.path, e)
