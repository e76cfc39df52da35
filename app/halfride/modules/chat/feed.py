"""
Client-side view of a group's chat: an ascending window of messages that grows
backwards with load_more() and forwards with poll()/send().

Pages come from list_messages(); merging is keyed by message id so a message
seen through two paths (sent locally, then returned by a poll) appears once.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any

from app.halfride.constants import MESSAGES_DEFAULT_LIMIT
from app.halfride.modules.chat.service import list_messages, send_message, serialize_message

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.halfride.models import User
    from app.halfride.modules.chat.models import GroupMessage


class GroupChatFeed:
    def __init__(self, s: "Session", user: "User", group_id: int, *, page_size: int = MESSAGES_DEFAULT_LIMIT) -> None:
        self.s = s
        self.user = user
        self.group_id = group_id
        self.page_size = page_size
        self.has_more = False
        self._by_id: dict[int, "GroupMessage"] = {}
        self._ordered: list["GroupMessage"] = []

    @property
    def messages(self) -> list[dict[str, Any]]:
        return [serialize_message(m) for m in self._ordered]

    @property
    def oldest_id(self) -> int | None:
        return self._ordered[0].id if self._ordered else None

    @property
    def newest_id(self) -> int | None:
        return self._ordered[-1].id if self._ordered else None

    def _merge(self, rows: list["GroupMessage"]) -> int:
        added = 0
        for m in rows:
            if m.id not in self._by_id:
                added += 1
            self._by_id[m.id] = m
        self._ordered = sorted(self._by_id.values(), key=lambda m: (m.created_at, m.id))
        return added

    def refresh(self) -> int:
        """Merge the latest page. Sets has_more only on the first load."""
        rows, has_more = list_messages(self.s, self.user, self.group_id, limit=self.page_size)
        first_load = not self._ordered
        added = self._merge(rows)
        if first_load:
            self.has_more = has_more
        return added

    def poll(self) -> int:
        """Merge everything newer than the newest message held."""
        if self.newest_id is None:
            return self.refresh()
        added = 0
        while True:
            rows, more = list_messages(self.s, self.user, self.group_id, limit=self.page_size, after=self.newest_id)
            added += self._merge(rows)
            if not more:
                return added

    def load_more(self) -> int:
        """Prepend the next older page; a no-op once has_more is False."""
        if self.oldest_id is None:
            return self.refresh()
        if not self.has_more:
            return 0
        rows, has_more = list_messages(
            self.s, self.user, self.group_id, limit=self.page_size, before=self.oldest_id
        )
        self.has_more = has_more
        return self._merge(rows)

    def send(self, text: str) -> dict[str, Any]:
        m = send_message(self.s, self.user, self.group_id, text)
        self._merge([m])
        return serialize_message(m)
