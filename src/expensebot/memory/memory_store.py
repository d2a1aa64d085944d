"""Persist conversations as one JSON document per conversation id."""

import json
import logging
import re
from pathlib import Path
from typing import (
    Iterable,
    List,
)

from expensebot.config import settings
from expensebot.core.schema import Turn

logger = logging.getLogger(__name__)

_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


class ConversationStoreError(RuntimeError):
    """Raised when a conversation cannot be read or written."""


class ConversationStore:
    """
    Key-value store for conversation histories.

    Each conversation lives in ``<root>/<conversation_id>.json`` as a list of turns.  The whole
    list is rewritten on every save.
    """

    def __init__(self, root: Path | str | None = None):
        self.root = Path(root) if root is not None else Path(settings.DATA_DIR) / "conversations"

    def init(self) -> None:
        """Create the storage directory.  Called at application start-up."""
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, conversation_id: str) -> Path:
        if not _ID_RE.match(conversation_id):
            raise ValueError(f"Invalid conversation id: {conversation_id!r}")
        return self.root / f"{conversation_id}.json"

    def exists(self, conversation_id: str) -> bool:
        return self._path(conversation_id).exists()

    def load(self, conversation_id: str) -> List[Turn]:
        """Return the stored turns, or an empty list for an unknown conversation."""
        path = self._path(conversation_id)
        if not path.exists():
            return []
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ConversationStoreError(f"Cannot read conversation {conversation_id}") from exc
        return [Turn.model_validate(item) for item in raw]

    def save(self, conversation_id: str, turns: Iterable[Turn]) -> None:
        """Replace the stored history of *conversation_id* with *turns*."""
        path = self._path(conversation_id)
        payload = [turn.model_dump(mode="json", exclude_unset=True) for turn in turns]
        tmp = path.with_suffix(".json.tmp")
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
            tmp.replace(path)
        except OSError as exc:
            raise ConversationStoreError(f"Cannot save conversation {conversation_id}") from exc
        logger.debug("Saved %d turns for conversation %s", len(payload), conversation_id)

    def list_ids(self) -> List[str]:
        if not self.root.exists():
            return []
        return sorted(p.stem for p in self.root.glob("*.json"))

    def delete(self, conversation_id: str) -> bool:
        """Forget a conversation.  Returns False if it did not exist."""
        path = self._path(conversation_id)
        if not path.exists():
            return False
        path.unlink()
        return True
